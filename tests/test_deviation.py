import pytest

from seatwatch.processing.deviation import compute_deviation, population_stats, to_float


def test_deviation_against_population_stats():
    anomaly = {"route": "JFK_to_LHR", "avg_seats": "400"}
    stats = compute_deviation(["100", "100", "100", "400"], [anomaly])

    assert stats["mean"] == pytest.approx(175.0)
    assert stats["std"] == pytest.approx(129.9, abs=0.01)
    assert anomaly["deviation_std"] == pytest.approx(1.73)
    assert anomaly["deviation_pct"] == pytest.approx(128.6)


def test_zero_variance_gives_zero_std_deviation():
    anomaly = {"avg_seats": 250}
    compute_deviation([250, 250, 250], [anomaly])
    assert anomaly["deviation_std"] == 0.0
    assert anomaly["deviation_pct"] == 0.0


def test_zero_mean_gives_zero_pct_deviation():
    anomaly = {"avg_seats": 5}
    compute_deviation([-5, 5], [anomaly])
    assert anomaly["deviation_std"] == pytest.approx(1.0)
    assert anomaly["deviation_pct"] == 0.0


def test_no_numeric_values():
    anomaly = {"avg_seats": None}
    stats = compute_deviation([None, "n/a"], [anomaly])
    assert stats == {"mean": 0.0, "std": 0.0}
    assert anomaly["deviation_std"] == 0.0
    assert anomaly["deviation_pct"] == 0.0


def test_population_stats_empty():
    assert population_stats([]) == {"mean": 0.0, "std": 0.0}


@pytest.mark.parametrize(
    "raw, expected",
    [("312", 312.0), (7, 7.0), ("3.5", 3.5), (None, None), ("", None), ("nan", None), (True, None)],
)
def test_to_float(raw, expected):
    assert to_float(raw) == expected
