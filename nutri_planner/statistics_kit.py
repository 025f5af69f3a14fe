"""Descriptive statistics used by outlier detection.

All dispersion measures are population measures (divide by N), and
quartiles use a floor index into the sorted values with no interpolation.
"""

import math
import statistics

from nutri_planner.errors import InsufficientDataError


def _require(values) -> list:
    values = list(values)
    if not values:
        raise InsufficientDataError("Cannot compute statistics of an empty series")
    return values


def mean(values) -> float:
    return statistics.mean(_require(values))


def median(values) -> float:
    return statistics.median(_require(values))


def variance(values) -> float:
    """Population variance."""
    return statistics.pvariance(_require(values))


def std_dev(values) -> float:
    """Population standard deviation."""
    return math.sqrt(variance(values))


def quartile(values, p: float) -> float:
    """Value at sorted index floor(n * p), clamped to the last element."""
    values = sorted(_require(values))
    index = min(int(math.floor(len(values) * p)), len(values) - 1)
    return values[index]


def mad(values) -> float:
    """Median absolute deviation from the median."""
    values = _require(values)
    center = median(values)
    return median([abs(v - center) for v in values])


def summary(values) -> dict:
    """count/mean/median/std_dev (2 dp) plus min/max/range."""
    values = _require(values)
    low, high = min(values), max(values)
    return {
        "count": len(values),
        "mean": round(mean(values), 2),
        "median": round(median(values), 2),
        "std_dev": round(std_dev(values), 2),
        "min": low,
        "max": high,
        "range": high - low,
    }
