"""Data models for goals, weight tracking and weekly reflections."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Optional

from goaltrack.profiles.body_calc import (
    ActivityLevel,
    GoalType,
    MacroTargets,
    PlanningMode,
    Sex,
    calculate_age,
)
from goaltrack.profiles.macros import EatingStyle, ProteinPriority


class Sentiment(Enum):
    """How the user felt about the past week."""
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


@dataclass
class Profile:
    """Biometric profile. Fields stay None until the user fills them in."""

    profile_id: Optional[int]
    sex: Optional[Sex] = None
    date_of_birth: Optional[date] = None
    height_cm: Optional[float] = None
    activity_level: Optional[ActivityLevel] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def missing_biometrics(self) -> list[str]:
        """Names of the fields metabolic math needs but are unset."""
        missing = []
        if self.sex is None:
            missing.append("sex")
        if not self.height_cm:
            missing.append("height_cm")
        if self.date_of_birth is None:
            missing.append("date_of_birth")
        return missing

    def age_on(self, today: date) -> Optional[int]:
        """Age in whole years on ``today``, or None without a birth date."""
        if self.date_of_birth is None:
            return None
        return calculate_age(self.date_of_birth, today)


@dataclass(frozen=True)
class TargetSnapshot:
    """Point-in-time copy of daily calorie and macro targets."""

    calories: int
    protein_g: int
    carbs_g: int
    fat_g: int

    @classmethod
    def from_macros(cls, calories: int, macros: MacroTargets) -> "TargetSnapshot":
        return cls(
            calories=calories,
            protein_g=macros.protein_g,
            carbs_g=macros.carbs_g,
            fat_g=macros.fat_g,
        )

    @property
    def macros(self) -> MacroTargets:
        return MacroTargets(
            protein_g=self.protein_g, carbs_g=self.carbs_g, fat_g=self.fat_g
        )


@dataclass
class Goal:
    """A weight goal with its initial baseline and current targets.

    Only the ``current_*`` fields change after creation.
    """

    goal_id: Optional[int]
    goal_type: GoalType
    target_rate_percent: float
    start_date: date
    start_weight_kg: float
    initial_tdee: int
    initial_target_calories: int
    initial_protein_g: int
    initial_carbs_g: int
    initial_fat_g: int
    current_tdee: int
    current_target_calories: int
    current_protein_g: int
    current_carbs_g: int
    current_fat_g: int
    target_weight_kg: Optional[float] = None
    planning_mode: PlanningMode = PlanningMode.RATE
    target_date: Optional[date] = None
    eating_style: EatingStyle = EatingStyle.FLEXIBLE
    protein_priority: ProteinPriority = ProteinPriority.ACTIVE
    is_active: bool = True
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def current_targets(self) -> TargetSnapshot:
        return TargetSnapshot(
            calories=self.current_target_calories,
            protein_g=self.current_protein_g,
            carbs_g=self.current_carbs_g,
            fat_g=self.current_fat_g,
        )

    @property
    def initial_targets(self) -> TargetSnapshot:
        return TargetSnapshot(
            calories=self.initial_target_calories,
            protein_g=self.initial_protein_g,
            carbs_g=self.initial_carbs_g,
            fat_g=self.initial_fat_g,
        )


@dataclass
class WeightEntry:
    """A single weight log entry with its stored EWMA trend."""

    entry_id: Optional[int]
    date: date
    weight_kg: float
    trend_kg: Optional[float] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class Reflection:
    """Immutable record of one weekly reflection."""

    reflection_id: Optional[int]
    reflected_at: datetime
    weight_kg: float
    weight_trend_kg: Optional[float]
    sentiment: Optional[Sentiment]
    previous: TargetSnapshot
    new: TargetSnapshot
    weight_change_kg: Optional[float] = None
    created_at: Optional[datetime] = None

    @property
    def targets_changed(self) -> bool:
        return self.new != self.previous


@dataclass(frozen=True)
class ReflectionResult:
    """Outcome of a committed reflection, handed to each dependent view.

    ``applied`` equals ``previous`` when the smoothing threshold suppressed
    a change.
    """

    reflection: Reflection
    previous: TargetSnapshot
    applied: TargetSnapshot
    changed: bool
    weight_kg: float
    trend_weight_kg: Optional[float]
    weight_change_kg: Optional[float]
    tdee: int


@dataclass
class BannerState:
    """Persisted-derived state of the weekly reflection banner."""

    last_reflection_date: Optional[datetime] = None
    days_since_last_reflection: Optional[int] = None
    should_show_banner: bool = False
    banner_dismiss_count: int = 0
