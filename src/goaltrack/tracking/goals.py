"""Goal lifecycle: create, retarget and complete the single active goal.

A goal moves none -> active -> completed. There is no paused state; a new
plan means completing the current goal and creating another. The active
goal's ``current_*`` targets are what the rest of the app reads, and they
are the only goal fields that change after creation.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Callable, Optional, Union

from goaltrack.db.connection import DatabaseConnection
from goaltrack.errors import MissingBiometricsError
from goaltrack.profiles.body_calc import (
    ActivityLevel,
    GoalType,
    MacroTargets,
    PlanningMode,
    Sex,
    calculate_bmr,
    calculate_macros,
    calculate_target_calories,
    calculate_tdee,
    clamp_macros,
)
from goaltrack.profiles.macros import (
    EatingStyle,
    ProteinPriority,
    calculate_styled_macros,
    validate_macros,
)
from goaltrack.tracking.models import Goal, Profile, TargetSnapshot, WeightEntry
from goaltrack.tracking.queries import GoalQueries, ProfileQueries, WeightQueries
from goaltrack.tracking.timeline import (
    calculate_estimated_completion,
    calculate_time_to_goal,
    calculate_timeline_rate,
    cap_timeline_rate,
)

logger = logging.getLogger(__name__)


def default_macros(target_calories: float, weight_kg: float) -> MacroTargets:
    """Fixed-ratio macro split with negative carbs clamped to zero."""
    macros = calculate_macros(target_calories, weight_kg)
    if macros.carbs_g < 0:
        logger.warning(
            "Protein and fat exceed %d kcal; clamping carbs from %dg to 0g",
            target_calories,
            macros.carbs_g,
        )
        macros = clamp_macros(macros)
    return macros


class GoalStatus(Enum):
    NONE = "none"
    ACTIVE = "active"
    COMPLETED = "completed"


@dataclass
class GoalParams:
    """Inputs for a new goal.

    Biometrics are Optional so callers can pass a partially filled profile
    through; ``GoalManager.create_goal`` rejects anything missing.
    """

    goal_type: Union[GoalType, str]
    current_weight_kg: Optional[float]
    sex: Optional[Union[Sex, str]]
    height_cm: Optional[float]
    age_years: Optional[int]
    activity_level: Optional[Union[ActivityLevel, str]]
    target_rate_percent: float = 0.0
    target_weight_kg: Optional[float] = None
    planning_mode: Union[PlanningMode, str] = PlanningMode.RATE
    target_date: Optional[date] = None
    eating_style: Optional[Union[EatingStyle, str]] = None
    protein_priority: Optional[Union[ProteinPriority, str]] = None

    @classmethod
    def from_profile(
        cls,
        profile: Profile,
        goal_type: Union[GoalType, str],
        current_weight_kg: Optional[float],
        today: date,
        **kwargs,
    ) -> "GoalParams":
        return cls(
            goal_type=goal_type,
            current_weight_kg=current_weight_kg,
            sex=profile.sex,
            height_cm=profile.height_cm,
            age_years=profile.age_on(today),
            activity_level=profile.activity_level,
            **kwargs,
        )

    def missing_fields(self) -> list[str]:
        missing = []
        for name in ("sex", "height_cm", "age_years", "activity_level", "current_weight_kg"):
            if not getattr(self, name):
                missing.append(name)
        return missing


class GoalManager:
    """Owns the active goal and the profile it was computed from.

    The in-memory ``active_goal`` mirrors the database; call
    ``load_active_goal`` after writes made elsewhere.
    """

    def __init__(
        self,
        db: DatabaseConnection,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.db = db
        self.clock = clock
        self.active_goal: Optional[Goal] = None
        self.profile: Optional[Profile] = None
        self.current_weight_kg: Optional[float] = None
        self.current_weight_date: Optional[date] = None
        self._last_completed: Optional[Goal] = None
        self._completion_listeners: list[Callable[[Goal], None]] = []

    # --- active goal contract ---

    def get_active(self) -> Optional[Goal]:
        return self.active_goal

    def set_active(self, goal: Optional[Goal]) -> None:
        if goal is not None and not goal.is_active:
            raise ValueError(f"Goal {goal.goal_id} is not active")
        self.active_goal = goal

    def load_active_goal(self) -> Optional[Goal]:
        with self.db.get_connection() as conn:
            self.active_goal = GoalQueries.get_active(conn)
        return self.active_goal

    def load_profile(self) -> Profile:
        with self.db.get_connection() as conn:
            self.profile = ProfileQueries.get_or_create(conn)
        return self.profile

    def update_profile(self, **fields) -> Profile:
        """Set profile fields by name and persist them.

        Raises:
            AttributeError: For a field the profile does not have
        """
        profile = self.load_profile()
        for name, value in fields.items():
            if not hasattr(profile, name) or name in ("profile_id", "created_at", "updated_at"):
                raise AttributeError(f"Unknown profile field: {name}")
            setattr(profile, name, value)
        with self.db.get_connection() as conn:
            ProfileQueries.update_profile(conn, profile, now=self.clock())
        return self.load_profile()

    # --- current weight ---

    def load_current_weight(self) -> Optional[float]:
        """Read the most recent weight logged on or before today."""
        with self.db.get_connection() as conn:
            entry = WeightQueries.get_latest(conn, on_or_before=self.clock().date())
        self.current_weight_kg = entry.weight_kg if entry else None
        self.current_weight_date = entry.date if entry else None
        return self.current_weight_kg

    def update_current_weight(self, weight_kg: float) -> WeightEntry:
        """Log today's weight and make it the current weight.

        Raises:
            ValueError: If the weight is not a positive, finite number
        """
        if not math.isfinite(weight_kg) or weight_kg <= 0:
            raise ValueError(f"Weight must be positive, got {weight_kg}")
        now = self.clock()
        with self.db.transaction() as conn:
            entry = WeightQueries.upsert_weight(conn, now.date(), weight_kg, now=now)
        self.current_weight_kg = entry.weight_kg
        self.current_weight_date = entry.date
        logger.info("Current weight updated to %.1f kg", weight_kg)
        return entry

    @property
    def status(self) -> GoalStatus:
        if self.active_goal is not None:
            return GoalStatus.ACTIVE
        if self._last_completed is not None:
            return GoalStatus.COMPLETED
        return GoalStatus.NONE

    # --- derived read-only targets ---

    @property
    def calorie_goal(self) -> Optional[int]:
        return self.active_goal.current_target_calories if self.active_goal else None

    @property
    def protein_goal(self) -> Optional[int]:
        return self.active_goal.current_protein_g if self.active_goal else None

    @property
    def carb_goal(self) -> Optional[int]:
        return self.active_goal.current_carbs_g if self.active_goal else None

    @property
    def fat_goal(self) -> Optional[int]:
        return self.active_goal.current_fat_g if self.active_goal else None

    @property
    def target_weight(self) -> Optional[float]:
        return self.active_goal.target_weight_kg if self.active_goal else None

    @property
    def weekly_goal(self) -> Optional[float]:
        """Target rate as % of body weight per week."""
        return self.active_goal.target_rate_percent if self.active_goal else None

    # --- lifecycle ---

    def create_goal(self, params: GoalParams) -> Goal:
        """
        Compute targets for a new goal and persist it as the active goal.

        In timeline mode the weekly rate comes from the target weight and
        date, capped at the safety maximum before it reaches the calorie
        calculator. Any previously active goal is deactivated.

        Raises:
            MissingBiometricsError: If sex, height, age, activity level or
                current weight is missing
            ValueError: For timeline mode without a target weight and date
        """
        missing = params.missing_fields()
        if missing:
            raise MissingBiometricsError(missing)

        goal_type = GoalType(params.goal_type) if isinstance(params.goal_type, str) else params.goal_type
        planning_mode = (
            PlanningMode(params.planning_mode)
            if isinstance(params.planning_mode, str)
            else params.planning_mode
        )
        weight = params.current_weight_kg
        today = self.clock().date()

        bmr = calculate_bmr(weight, params.height_cm, params.age_years, params.sex)
        tdee = calculate_tdee(bmr, params.activity_level)

        rate_percent = params.target_rate_percent
        if planning_mode == PlanningMode.TIMELINE:
            if params.target_weight_kg is None or params.target_date is None:
                raise ValueError("Timeline planning needs a target weight and target date")
            timeline = calculate_timeline_rate(
                weight, params.target_weight_kg, params.target_date, today=today
            )
            rate_percent = cap_timeline_rate(goal_type, weight, timeline.weekly_rate_kg)
            logger.debug(
                "Timeline %.2f kg/week over %.1f weeks -> %.3f%%/week",
                timeline.weekly_rate_kg,
                timeline.total_weeks,
                rate_percent,
            )

        target_calories = round(
            calculate_target_calories(tdee, goal_type, rate_percent, params.sex, weight)
        )

        eating_style = params.eating_style
        protein_priority = params.protein_priority
        if eating_style is None and protein_priority is None:
            macros = default_macros(target_calories, weight)
            eating_style, protein_priority = EatingStyle.FLEXIBLE, ProteinPriority.ACTIVE
        else:
            eating_style = EatingStyle(eating_style or EatingStyle.FLEXIBLE)
            protein_priority = ProteinPriority(protein_priority or ProteinPriority.ACTIVE)
            macros = calculate_styled_macros(
                weight, target_calories, eating_style, protein_priority
            )

        for warning in validate_macros(macros, target_calories):
            logger.warning("New goal macros: %s", warning)

        goal = Goal(
            goal_id=None,
            goal_type=goal_type,
            target_weight_kg=params.target_weight_kg,
            target_rate_percent=rate_percent,
            planning_mode=planning_mode,
            target_date=params.target_date,
            start_date=today,
            start_weight_kg=weight,
            initial_tdee=round(tdee),
            initial_target_calories=target_calories,
            initial_protein_g=macros.protein_g,
            initial_carbs_g=macros.carbs_g,
            initial_fat_g=macros.fat_g,
            current_tdee=round(tdee),
            current_target_calories=target_calories,
            current_protein_g=macros.protein_g,
            current_carbs_g=macros.carbs_g,
            current_fat_g=macros.fat_g,
            eating_style=eating_style,
            protein_priority=protein_priority,
        )

        with self.db.transaction() as conn:
            goal_id = GoalQueries.create_goal(conn, goal, now=self.clock())
            created = GoalQueries.get_goal(conn, goal_id)

        logger.info(
            "Created %s goal %s: %d kcal/day", goal_type.value, goal_id, target_calories
        )
        self.active_goal = created
        return created

    def update_goal_targets(
        self,
        new_tdee: float,
        new_calories: float,
        new_macros: MacroTargets,
    ) -> Optional[Goal]:
        """
        Overwrite the active goal's current targets.

        Initial targets are left as the historical baseline. Without an
        active goal this does nothing and returns None.
        """
        goal = self.active_goal
        if goal is None or goal.goal_id is None:
            logger.debug("No active goal; skipping target update")
            return None

        targets = TargetSnapshot.from_macros(round(new_calories), new_macros)
        with self.db.transaction() as conn:
            GoalQueries.update_current_targets(
                conn, goal.goal_id, round(new_tdee), targets, now=self.clock()
            )
        return self.load_active_goal()

    def complete_goal(self) -> Optional[Goal]:
        """
        Mark the active goal completed and notify completion listeners.

        History is kept; the goal row is only deactivated. Returns the
        completed goal, or None when nothing was active.
        """
        goal = self.active_goal
        if goal is None or goal.goal_id is None:
            return None

        with self.db.transaction() as conn:
            GoalQueries.complete_goal(conn, goal.goal_id, now=self.clock())
            completed = GoalQueries.get_goal(conn, goal.goal_id)

        self.active_goal = None
        self._last_completed = completed
        logger.info("Completed goal %s", goal.goal_id)

        for listener in self._completion_listeners:
            listener(completed)
        return completed

    def add_completion_listener(self, listener: Callable[[Goal], None]) -> None:
        """Register a callback run after a goal is completed."""
        self._completion_listeners.append(listener)

    # --- projections ---

    def estimated_completion(
        self, current_weight_kg: Optional[float] = None
    ) -> Optional[date]:
        """Projected date the active goal's target weight is reached."""
        goal = self.active_goal
        if goal is None:
            return None
        weight = current_weight_kg or self.current_weight_kg or goal.start_weight_kg
        return calculate_estimated_completion(
            weight, goal.target_weight_kg, goal.target_rate_percent, today=self.clock().date()
        )

    def time_to_goal(
        self, current_weight_kg: Optional[float] = None
    ) -> Optional[tuple[int, int]]:
        """(weeks, months) left at the active goal's rate."""
        goal = self.active_goal
        if goal is None:
            return None
        weight = current_weight_kg or self.current_weight_kg or goal.start_weight_kg
        return calculate_time_to_goal(weight, goal.target_weight_kg, goal.target_rate_percent)
