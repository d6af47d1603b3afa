"""
Numeric statistics shared by the analytics and performance components.

Every ratio here returns 0.0 on an empty or zero denominator instead of
raising or producing NaN/Inf.
"""

import math
from typing import Dict, Iterable, List, Sequence


def average(values: Iterable[float]) -> float:
    """Arithmetic mean, 0.0 for an empty collection"""
    values = list(values)
    if not values:
        return 0.0
    return sum(values) / len(values)


def safe_ratio(numerator: float, denominator: float) -> float:
    """numerator / denominator, 0.0 when the denominator is zero"""
    if not denominator:
        return 0.0
    return numerator / denominator


def percentage(part: float, whole: float) -> float:
    return safe_ratio(part, whole) * 100


def nearest_rank(values: Iterable[float], fraction: float) -> float:
    """
    Nearest-rank percentile on a sorted copy of ``values``.

    The index is ``floor(fraction * n)`` clamped to the last element, so
    p90 of ten samples is the largest one.
    """
    ordered = sorted(values)
    if not ordered:
        return 0.0
    index = min(int(math.floor(fraction * len(ordered))), len(ordered) - 1)
    return float(ordered[index])


def percentile_rank(value: float, values: Iterable[float]) -> float:
    """Share of ``values`` that are <= ``value``, as a percentage"""
    ordered = sorted(values)
    if not ordered:
        return 0.0
    count = sum(1 for v in ordered if v <= value)
    return count / len(ordered) * 100


def growth_rate(series: Sequence[float]) -> float:
    """
    Growth between the first and last point of a chronologically ordered
    series, as a percentage.

    Returns 0.0 for fewer than two points or a zero first point.
    """
    if len(series) < 2:
        return 0.0
    first, last = series[0], series[-1]
    if first == 0:
        return 0.0
    return (last - first) / first * 100


def average_step_growth(series: Sequence[float]) -> float:
    """
    Mean fractional change between consecutive points.

    Steps whose predecessor is zero contribute nothing but still count
    towards the number of steps.
    """
    if len(series) < 2:
        return 0.0
    total = 0.0
    for prev, curr in zip(series, series[1:]):
        if prev > 0:
            total += (curr - prev) / prev
    return total / (len(series) - 1)


def summarize_latencies(samples: Iterable[float]) -> Dict[str, float]:
    """Average, p90, p95, min, max and count of a latency sample set"""
    ordered: List[float] = sorted(samples)
    if not ordered:
        return {
            "average": 0.0,
            "percentile90": 0.0,
            "percentile95": 0.0,
            "min": 0,
            "max": 0,
            "count": 0,
        }

    return {
        "average": average(ordered),
        "percentile90": nearest_rank(ordered, 0.90),
        "percentile95": nearest_rank(ordered, 0.95),
        "min": ordered[0],
        "max": ordered[-1],
        "count": len(ordered),
    }
