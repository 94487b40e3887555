"""Route parsing and location enrichment for anomaly rows."""

from typing import Any, Dict, Iterable, List, Optional, Tuple

from seatwatch.db.queries import ROUTE_SEPARATOR


def split_route(route: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """'JFK_to_LHR' -> ('JFK', 'LHR'). Missing halves come back as None."""
    if not route:
        return None, None
    origin, _, dest = str(route).partition(ROUTE_SEPARATOR)
    return origin or None, dest or None


def route_codes(rows: Iterable[Dict[str, Any]]) -> List[str]:
    codes = set()
    for row in rows:
        codes.update(c for c in split_route(row.get("route")) if c)
    return sorted(codes)


def apply_locations(
    rows: List[Dict[str, Any]],
    locations: Dict[str, Dict[str, Optional[str]]],
) -> List[Dict[str, Any]]:
    """Attach full origin/destination names in place. Returns the rows that matched."""
    enriched = []
    for row in rows:
        origin, dest = split_route(row.get("route"))
        matched = False
        if origin in locations:
            row["origin_city_full"] = locations[origin].get("city")
            row["origin_country_full"] = locations[origin].get("country")
            matched = True
        if dest in locations:
            row["destination_city_full"] = locations[dest].get("city")
            row["destination_country_full"] = locations[dest].get("country")
            matched = True
        if matched:
            enriched.append(row)
    return enriched
