"""Goal timeline planning with safety-capped weekly rates.

Rates are expressed two ways: absolute kg per week, and percent of body
weight per week (what the calorie calculator consumes). The safety caps
are absolute, so converting them to a percent depends on current weight.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional, Union

from goaltrack.profiles.body_calc import GoalType

MAX_WEEKLY_LOSS_KG = 1.0
MAX_WEEKLY_GAIN_KG = 0.5

# Floor on weeks remaining so near or past target dates cannot blow up the rate
MIN_WEEKS = 1.0

WEEKS_PER_MONTH = 4.33


@dataclass(frozen=True)
class TimelineRate:
    """Weekly rate implied by a target weight and date."""

    weekly_rate_kg: float
    total_weeks: float


def calculate_timeline_rate(
    current_weight_kg: float,
    target_weight_kg: float,
    target_date: Union[date, str],
    today: Optional[date] = None,
) -> TimelineRate:
    """Derive the absolute weekly rate needed to hit a target by a date.

    Args:
        current_weight_kg: Current body weight
        target_weight_kg: Desired body weight
        target_date: Date (or ISO string) to reach the target by
        today: Reference date (default: today)

    Returns:
        TimelineRate with the uncapped kg/week rate and weeks remaining
    """
    if isinstance(target_date, str):
        target_date = date.fromisoformat(target_date)
    today = today or date.today()

    total_weeks = max((target_date - today).days / 7, MIN_WEEKS)
    weekly_rate_kg = abs(current_weight_kg - target_weight_kg) / total_weeks
    return TimelineRate(weekly_rate_kg=weekly_rate_kg, total_weeks=total_weeks)


def get_max_weekly_kg(goal_type: Union[GoalType, str]) -> float:
    """Absolute kg/week safety cap for a goal type."""
    goal = GoalType(goal_type) if isinstance(goal_type, str) else goal_type
    return MAX_WEEKLY_LOSS_KG if goal == GoalType.LOSE else MAX_WEEKLY_GAIN_KG


def get_safe_rate(goal_type: Union[GoalType, str], current_weight_kg: float) -> float:
    """Safety cap expressed as % of body weight per week."""
    return (get_max_weekly_kg(goal_type) / current_weight_kg) * 100


def cap_timeline_rate(
    goal_type: Union[GoalType, str],
    current_weight_kg: float,
    weekly_rate_kg: float,
) -> float:
    """Cap a kg/week rate at the safety maximum and convert it to a percent."""
    capped_kg = min(weekly_rate_kg, get_max_weekly_kg(goal_type))
    return (capped_kg / current_weight_kg) * 100


def get_suggested_date(
    current_weight_kg: float,
    target_weight_kg: float,
    goal_type: Union[GoalType, str],
    today: Optional[date] = None,
) -> date:
    """Earliest date the target can be reached at the safe maximum rate.

    Days are rounded up so the suggestion is never sooner than is safe.
    """
    today = today or date.today()
    total_change = abs(current_weight_kg - target_weight_kg)
    weeks_needed = total_change / get_max_weekly_kg(goal_type)
    return today + timedelta(days=math.ceil(weeks_needed * 7))


def calculate_estimated_completion(
    current_weight_kg: float,
    target_weight_kg: Optional[float],
    rate_percent: float,
    today: Optional[date] = None,
) -> Optional[date]:
    """Project the completion date for a chosen rate.

    Returns None when there is no target weight or the rate is zero, since
    the horizon is undefined rather than erroneous.
    """
    if not target_weight_kg or rate_percent == 0:
        return None
    weekly_kg_change = (rate_percent / 100) * current_weight_kg
    if weekly_kg_change == 0:
        return None

    today = today or date.today()
    weeks_needed = abs(current_weight_kg - target_weight_kg) / weekly_kg_change
    return today + timedelta(days=round(weeks_needed * 7))


def calculate_time_to_goal(
    current_weight_kg: float,
    target_weight_kg: Optional[float],
    rate_percent: float,
) -> Optional[tuple[int, int]]:
    """Whole weeks (rounded up) and approximate months to reach the target."""
    if not target_weight_kg or rate_percent == 0:
        return None
    weekly_kg_change = (rate_percent / 100) * current_weight_kg
    weeks = math.ceil(abs(target_weight_kg - current_weight_kg) / weekly_kg_change)
    return weeks, round(weeks / WEEKS_PER_MONTH)
