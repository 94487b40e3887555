"""Deviation scoring for anomalous route/day aggregates."""

from typing import Any, Dict, List, Optional, Sequence

import numpy as np


def to_float(value: Any) -> Optional[float]:
    """Warehouse values arrive as strings; return None for anything non-numeric."""
    if value is None or isinstance(value, bool):
        return None
    try:
        f = float(value)
    except (TypeError, ValueError):
        return None
    return None if np.isnan(f) else f


def population_stats(values: Sequence[float]) -> Dict[str, float]:
    """Mean and population standard deviation (ddof=0). Empty input -> zeros."""
    if len(values) == 0:
        return {"mean": 0.0, "std": 0.0}
    arr = np.asarray(values, dtype=np.float64)
    return {"mean": float(np.mean(arr)), "std": float(np.std(arr))}


def compute_deviation(
    values: Sequence[Any],
    anomalies: List[Dict[str, Any]],
    value_key: str = "avg_seats",
) -> Dict[str, float]:
    """Attach deviation_std / deviation_pct to each anomaly row in place.

    Statistics are taken over all aggregated values, not just the anomalies.
    A zero std gives deviation_std 0.0; a non-positive mean gives
    deviation_pct 0.0.
    """
    numeric = [f for f in (to_float(v) for v in values) if f is not None]
    stats = population_stats(numeric)
    mean, std = stats["mean"], stats["std"]

    for row in anomalies:
        seats = to_float(row.get(value_key))
        if seats is not None and numeric and std > 0:
            row["deviation_std"] = round((seats - mean) / std, 2)
        else:
            row["deviation_std"] = 0.0
        if seats is not None and numeric and mean > 0:
            row["deviation_pct"] = round((seats - mean) / mean * 100, 1)
        else:
            row["deviation_pct"] = 0.0
    return stats
