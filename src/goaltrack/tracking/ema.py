"""Exponentially weighted moving average for weight tracking.

Each new measurement pulls the trend toward itself by an amount that
depends on how long it has been since the previous measurement:

    T_n = T_{n-1} + α(t) × (W_n - T_{n-1})
    α(t) = 1 - 2^(-t / HALF_LIFE_DAYS)

where t is days since the previous entry. With a 7-day half-life, a
measurement taken a week after the last one moves the trend halfway
toward it; daily measurements move it about 9.4%. Only dates that carry
an entry take part, so gaps in logging never enter as zero-weight days.

The first entry seeds the trend, so a single entry is its own trend.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional, Sequence

HALF_LIFE_DAYS = 7

# Entries on the same date still move the trend, just barely
MIN_DAY_GAP = 0.01


@dataclass(frozen=True)
class TrendPoint:
    """A raw measurement paired with its smoothed trend value."""

    date: date
    weight_kg: float
    trend_kg: float


def compute_effective_alpha(day_gap: float) -> float:
    """
    Smoothing factor for a measurement ``day_gap`` days after the last one.

    Example:
        >>> compute_effective_alpha(7)
        0.5
        >>> compute_effective_alpha(14)
        0.75
    """
    if day_gap <= 0:
        return 0.0
    return 1 - 2 ** (-day_gap / HALF_LIFE_DAYS)


def update_trend(prev_trend: float, weight_kg: float, day_gap: float = 1) -> float:
    """
    Calculate a new trend value from the previous trend and a new weight.

    Args:
        prev_trend: Previous trend value (T_{n-1})
        weight_kg: New scale weight (W_n)
        day_gap: Days since the previous measurement; clamped to MIN_DAY_GAP

    Returns:
        New trend value (T_n)
    """
    alpha = compute_effective_alpha(max(day_gap, MIN_DAY_GAP))
    return prev_trend + alpha * (weight_kg - prev_trend)


def compute_trend_series(entries: Iterable[tuple[date, float]]) -> list[TrendPoint]:
    """
    Calculate trend values for a weight history.

    Args:
        entries: (date, weight_kg) pairs; sorted by date before smoothing

    Returns:
        One TrendPoint per entry in date order; empty for empty input
    """
    ordered = sorted(entries, key=lambda e: e[0])
    if not ordered:
        return []

    first_date, first_weight = ordered[0]
    series = [TrendPoint(first_date, first_weight, first_weight)]

    for curr_date, weight in ordered[1:]:
        prev = series[-1]
        day_gap = (curr_date - prev.date).days
        series.append(
            TrendPoint(curr_date, weight, update_trend(prev.trend_kg, weight, day_gap))
        )

    return series


def calculate_trend_weight(
    entries: Iterable[tuple[date, float]],
    at_date: Optional[date] = None,
) -> Optional[float]:
    """
    Smoothed weight as of ``at_date`` (default: the latest entry).

    Returns None when no entry exists on or before ``at_date``.
    """
    series = compute_trend_series(entries)
    if at_date is not None:
        series = [p for p in series if p.date <= at_date]
    if not series:
        return None
    return series[-1].trend_kg


def recompute_trend_from_date(
    entries: Sequence[tuple[int, date, float, Optional[float]]],
    changed_date: date,
) -> list[tuple[int, float]]:
    """
    Recompute stored trends for entries on or after ``changed_date``.

    Entries before the changed date keep their stored trend; the last of
    them seeds the chain. If it has no stored trend, the chain restarts at
    the first recomputed entry.

    Args:
        entries: (entry_id, date, weight_kg, stored_trend_kg) in any order
        changed_date: Earliest date whose weight was inserted, edited or removed

    Returns:
        (entry_id, trend_kg) for every entry that needs its trend rewritten
    """
    ordered = sorted(entries, key=lambda e: e[1])
    before = [e for e in ordered if e[1] < changed_date]
    after = [e for e in ordered if e[1] >= changed_date]
    if not after:
        return []

    prev_date: Optional[date] = None
    prev_trend: Optional[float] = None
    if before and before[-1][3] is not None:
        prev_date, prev_trend = before[-1][1], before[-1][3]

    updates = []
    for entry_id, entry_date, weight, _ in after:
        if prev_trend is None or prev_date is None:
            trend = weight
        else:
            trend = update_trend(prev_trend, weight, (entry_date - prev_date).days)
        updates.append((entry_id, trend))
        prev_date, prev_trend = entry_date, trend

    return updates


def estimate_weekly_change(trend_start: float, trend_end: float, days: int = 7) -> float:
    """
    Estimate weekly weight change from trend values.

    Args:
        trend_start: Trend value at start of period
        trend_end: Trend value at end of period
        days: Number of days in period (default 7)

    Returns:
        Estimated weekly change in kg (negative = losing)
    """
    if days <= 0:
        days = 1
    daily_change = (trend_end - trend_start) / days
    return daily_change * 7
