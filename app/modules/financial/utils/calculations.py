"""
Numeric helpers shared by the analysis, KPI and comparison services.

Money stays Decimal while summing; anything returned to clients as a ratio
or statistic is a float.
"""
import math
import statistics
from decimal import Decimal, InvalidOperation
from typing import Iterable, List, Optional, Sequence, Tuple


def to_decimal(value) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return Decimal("0")


def as_float(value, digits: int = 2) -> float:
    return round(float(value or 0), digits)


def sum_amounts(values: Iterable) -> Decimal:
    return sum((to_decimal(v) for v in values), Decimal("0"))


def safe_divide(numerator, denominator, default: float = 0.0) -> float:
    denominator = float(denominator or 0)
    if denominator == 0:
        return default
    return float(numerator or 0) / denominator


def growth_rate(current, previous) -> float:
    """Percentage change against |previous|; 100 when starting from zero."""
    current = float(current or 0)
    previous = float(previous or 0)
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return round((current - previous) / abs(previous) * 100, 2)


def linear_regression(xs: Sequence[float], ys: Sequence[float]) -> Tuple[float, float]:
    """Least squares fit, returns (slope, intercept)."""
    n = len(xs)
    if n == 0:
        return 0.0, 0.0
    if n == 1:
        return 0.0, float(ys[0])

    mean_x = sum(xs) / n
    mean_y = sum(ys) / n
    denominator = sum((x - mean_x) ** 2 for x in xs)
    if denominator == 0:
        return 0.0, mean_y
    slope = sum((x - mean_x) * (y - mean_y) for x, y in zip(xs, ys)) / denominator
    return slope, mean_y - slope * mean_x


def percentile(values: Sequence[float], pct: float) -> float:
    """Linear interpolation between closest ranks."""
    if not values:
        return 0.0
    ordered = sorted(values)
    position = (len(ordered) - 1) * pct / 100
    lower = math.floor(position)
    upper = math.ceil(position)
    if lower == upper:
        return float(ordered[int(position)])
    return float(ordered[lower] + (ordered[upper] - ordered[lower]) * (position - lower))


def percentile_rank(values: Sequence[float], value: float) -> float:
    """Share of values below, ties counted as half."""
    if not values:
        return 0.0
    below = sum(1 for v in values if v < value)
    equal = sum(1 for v in values if v == value)
    return round((below + 0.5 * equal) / len(values) * 100, 2)


def moving_average(values: Sequence[float], window: int = 3) -> List[float]:
    if len(values) < window:
        return []
    return [
        round(sum(values[i - window + 1:i + 1]) / window, 2)
        for i in range(window - 1, len(values))
    ]


def population_std(values: Sequence[float]) -> float:
    if len(values) < 2:
        return 0.0
    return statistics.pstdev(values)


def sample_variance(values: Sequence[float]) -> float:
    if len(values) < 2:
        return 0.0
    return statistics.variance(values)


def coefficient_of_variation(values: Sequence[float]) -> Optional[float]:
    """Population CV in percent, None when the mean is zero."""
    if not values:
        return None
    mean = statistics.mean(values)
    if mean == 0:
        return None
    return abs(population_std(values) / mean * 100)
