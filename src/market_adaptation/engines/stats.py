"""
Statistics primitives for pattern classification.

Pure functions over plain float sequences so they can be composed by the
classifier and tested in isolation.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Sequence


@dataclass(frozen=True)
class LinearFit:
    slope: float
    intercept: float
    r_squared: float


def clamp(value: float, lo: float = 0.0, hi: float = 1.0) -> float:
    return max(lo, min(hi, value))


def mean(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return sum(values) / len(values)


def stdev(values: Sequence[float]) -> float:
    """Population standard deviation; 0.0 for fewer than two values."""
    n = len(values)
    if n < 2:
        return 0.0
    mu = mean(values)
    return math.sqrt(sum((v - mu) ** 2 for v in values) / n)


def linear_fit(values: Sequence[float]) -> LinearFit:
    """
    Least-squares fit of values against their index.

    R² is 0.0 when the series has no variance (nothing to explain).
    """
    n = len(values)
    if n < 2:
        return LinearFit(slope=0.0, intercept=values[0] if values else 0.0, r_squared=0.0)

    x_mean = (n - 1) / 2.0
    y_mean = mean(values)
    sxx = sum((i - x_mean) ** 2 for i in range(n))
    sxy = sum((i - x_mean) * (y - y_mean) for i, y in enumerate(values))
    slope = sxy / sxx
    intercept = y_mean - slope * x_mean

    ss_tot = sum((y - y_mean) ** 2 for y in values)
    if ss_tot == 0:
        return LinearFit(slope=slope, intercept=intercept, r_squared=0.0)
    ss_res = sum((y - (intercept + slope * i)) ** 2 for i, y in enumerate(values))
    r_squared = clamp(1.0 - ss_res / ss_tot)
    return LinearFit(slope=slope, intercept=intercept, r_squared=r_squared)


def pct_returns(prices: Sequence[float]) -> List[float]:
    """Period-over-period fractional returns; a zero previous price yields 0.0."""
    out: List[float] = []
    for prev, cur in zip(prices, prices[1:]):
        out.append((cur - prev) / prev if prev != 0 else 0.0)
    return out


def rolling_mean(values: Sequence[float], window: int) -> List[float]:
    """Trailing mean; the first window-1 points average what is available."""
    out: List[float] = []
    running = 0.0
    for i, v in enumerate(values):
        running += v
        if i >= window:
            running -= values[i - window]
        out.append(running / min(i + 1, window))
    return out


def count_crossings(values: Sequence[float], reference: Sequence[float]) -> int:
    """Number of sign changes of (value - reference), ignoring exact touches."""
    crossings = 0
    prev_sign = 0
    for v, ref in zip(values, reference):
        diff = v - ref
        sign = (diff > 0) - (diff < 0)
        if sign == 0:
            continue
        if prev_sign and sign != prev_sign:
            crossings += 1
        prev_sign = sign
    return crossings


def ratio(recent: Sequence[float], earlier: Sequence[float]) -> float:
    """mean(recent) / mean(earlier), 1.0 when undefined."""
    base = mean(earlier)
    if not recent or base <= 0:
        return 1.0
    return mean(recent) / base


def is_strictly_monotonic(values: Sequence[float]) -> bool:
    """True when every step rises, or every step falls."""
    steps = [b - a for a, b in zip(values, values[1:])]
    if not steps:
        return False
    return all(s > 0 for s in steps) or all(s < 0 for s in steps)
