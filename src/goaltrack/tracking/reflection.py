"""Weekly reflection workflow.

Every few days the user is invited to log a weight and say how the week
went. The workflow previews revised targets as the weight is typed in,
then on submit records the weight, recomputes targets from the trend
weight and writes the goal, the reflection record and the banner counter
in one transaction.

Targets only move when the recomputed calories differ from the current
ones by more than the smoothing threshold, so scale noise cannot make them
oscillate. The preview applies that rule to the raw weight typed in; the
submit applies it again to the trend weight. Near the threshold the two
can disagree.

Phases::

    IDLE -> ELIGIBLE -> IN_PROGRESS -> SUBMITTING -> IDLE
                 |                          |
                 v                          v
             DISMISSED                 IN_PROGRESS (on failure)
"""

from __future__ import annotations

import logging
import math
import sqlite3
from datetime import date, datetime
from enum import Enum
from typing import Callable, Optional

from goaltrack.db.connection import DatabaseConnection
from goaltrack.errors import (
    INVALID_WEIGHT_MESSAGE,
    SUBMIT_ERROR_MESSAGE,
    NoActiveGoalError,
    ReflectionSubmitError,
)
from goaltrack.profiles.body_calc import (
    ActivityLevel,
    calculate_bmr,
    calculate_target_calories,
    calculate_tdee,
    round_to_nearest,
)
from goaltrack.tracking.ema import calculate_trend_weight
from goaltrack.tracking.goals import GoalManager, default_macros
from goaltrack.tracking.models import (
    BannerState,
    Goal,
    Profile,
    Reflection,
    ReflectionResult,
    Sentiment,
    TargetSnapshot,
)
from goaltrack.tracking.queries import (
    GoalQueries,
    ReflectionQueries,
    SettingsQueries,
    WeightQueries,
)
from goaltrack.tracking.user_settings import UserSettings
from goaltrack.tracking.weights import WeightLog

logger = logging.getLogger(__name__)

SMOOTHING_THRESHOLD = 25  # kcal
REFLECTION_CADENCE_DAYS = 6
CALORIE_ROUNDING = 10

# Used when the profile has no activity level yet
DEFAULT_ACTIVITY_LEVEL = ActivityLevel.MODERATELY_ACTIVE


def is_valid_weight(weight_kg: Optional[float]) -> bool:
    """True for a positive, finite body weight."""
    return weight_kg is not None and math.isfinite(weight_kg) and weight_kg > 0


class ReflectionPhase(Enum):
    IDLE = "idle"
    ELIGIBLE = "eligible"
    IN_PROGRESS = "in_progress"
    SUBMITTING = "submitting"
    DISMISSED = "dismissed"


def apply_hysteresis(
    previous: TargetSnapshot,
    computed: TargetSnapshot,
    threshold: float = SMOOTHING_THRESHOLD,
) -> tuple[TargetSnapshot, bool]:
    """
    Decide which targets to apply.

    Returns:
        (applied, changed): ``computed`` when its calories differ from
        ``previous`` by more than ``threshold``, otherwise ``previous``
        unchanged

    Example:
        >>> prev = TargetSnapshot(2000, 150, 200, 60)
        >>> apply_hysteresis(prev, TargetSnapshot(2020, 150, 205, 60))[1]
        False
        >>> apply_hysteresis(prev, TargetSnapshot(2030, 150, 207, 62))[1]
        True
    """
    changed = abs(computed.calories - previous.calories) > threshold
    return (computed if changed else previous), changed


def compute_targets(
    profile: Profile,
    goal: Goal,
    weight_kg: float,
    today: date,
) -> tuple[float, TargetSnapshot]:
    """
    Recompute (tdee, targets) for a goal at a given body weight.

    Calories are rounded to the nearest 10 before macros are split.

    Raises:
        ValueError: If the profile is missing sex, height or date of birth
    """
    missing = profile.missing_biometrics()
    if missing:
        raise ValueError(f"Profile is missing {', '.join(missing)}")

    age = profile.age_on(today)
    activity = profile.activity_level or DEFAULT_ACTIVITY_LEVEL
    bmr = calculate_bmr(weight_kg, profile.height_cm, age, profile.sex)
    tdee = calculate_tdee(bmr, activity)
    raw_calories = calculate_target_calories(
        tdee, goal.goal_type, goal.target_rate_percent, profile.sex, weight_kg
    )
    calories = round_to_nearest(raw_calories, CALORIE_ROUNDING)
    macros = default_macros(calories, weight_kg)
    return tdee, TargetSnapshot.from_macros(calories, macros)


class ReflectionWorkflow:
    """Stateful weekly reflection: banner gating, preview and atomic submit.

    Collaborators are injected; after a successful submit each one reloads
    its own view, and daily-goal settings adopt the applied targets only
    when they changed.
    """

    def __init__(
        self,
        db: DatabaseConnection,
        goals: GoalManager,
        weights: WeightLog,
        settings: UserSettings,
        clock: Callable[[], datetime] = datetime.now,
        cadence_days: int = REFLECTION_CADENCE_DAYS,
        smoothing_threshold: float = SMOOTHING_THRESHOLD,
    ):
        self.db = db
        self.goals = goals
        self.weights = weights
        self.settings = settings
        self.clock = clock
        self.cadence_days = cadence_days
        self.smoothing_threshold = smoothing_threshold

        self.banner = BannerState()
        self.is_initialized = False
        self._dismissed = False

        self.is_reflecting = False
        self.input_weight_kg: Optional[float] = None
        self.selected_sentiment: Optional[Sentiment] = None
        self.preview: Optional[TargetSnapshot] = None
        self.has_changes = False
        self.is_submitting = False
        self.submit_error: Optional[str] = None
        self.last_result: Optional[ReflectionResult] = None

        goals.add_completion_listener(self._on_goal_completed)

    @property
    def phase(self) -> ReflectionPhase:
        if self.is_submitting:
            return ReflectionPhase.SUBMITTING
        if self.is_reflecting:
            return ReflectionPhase.IN_PROGRESS
        if self._dismissed:
            return ReflectionPhase.DISMISSED
        if self.banner.should_show_banner:
            return ReflectionPhase.ELIGIBLE
        return ReflectionPhase.IDLE

    # --- banner ---

    def initialize(self) -> BannerState:
        """Re-derive banner eligibility from persisted state.

        Eligible needs an active goal, at least one weight entry, and either
        no previous reflection or one at least ``cadence_days`` ago. Storage
        errors leave the banner hidden.
        """
        self._dismissed = False
        try:
            goal = self.goals.load_active_goal()
            latest = self.weights.load_latest()
            with self.db.get_connection() as conn:
                last_date = ReflectionQueries.get_last_reflection_date(conn)
                dismiss_count = SettingsQueries.get_dismiss_count(conn)
        except (sqlite3.Error, ValueError):
            logger.warning("Failed to initialize reflection state", exc_info=True)
            self.banner = BannerState()
            self.is_initialized = True
            return self.banner

        days_since = None
        if last_date is not None:
            days_since = (self.clock() - last_date).days

        should_show = (
            goal is not None
            and goal.is_active
            and latest is not None
            and (days_since is None or days_since >= self.cadence_days)
        )

        self.banner = BannerState(
            last_reflection_date=last_date,
            days_since_last_reflection=days_since,
            should_show_banner=should_show,
            banner_dismiss_count=dismiss_count,
        )
        self.is_initialized = True
        return self.banner

    def dismiss_banner(self) -> None:
        """Hide the banner until the next ``initialize`` and count the dismissal."""
        new_count = self.banner.banner_dismiss_count + 1
        self.banner.should_show_banner = False
        self._dismissed = True
        try:
            self.settings.set_dismiss_count(new_count)
        except sqlite3.Error:
            logger.warning("Failed to persist banner dismiss", exc_info=True)
            return
        self.banner.banner_dismiss_count = new_count

    # --- in-progress reflection ---

    def start_reflection(self) -> None:
        """Open a reflection pre-filled with the latest logged weight."""
        if self.weights.latest_entry is None:
            self.weights.load_latest()
        prefill = self.weights.latest_weight

        self._reset_in_progress()
        self.is_reflecting = True
        self.input_weight_kg = prefill
        if prefill:
            self.set_input_weight(prefill)

    def set_input_weight(self, weight_kg: float) -> None:
        """Record a candidate weight and preview the targets it would give.

        The preview shows unchanged current targets unless the smoothing
        threshold is exceeded. An invalid weight or missing goal or profile
        data leaves no preview rather than raising.
        """
        self.input_weight_kg = weight_kg
        self.preview = None
        self.has_changes = False
        if not is_valid_weight(weight_kg):
            return

        goal = self.goals.get_active()
        if goal is None:
            return
        try:
            profile = self.goals.profile or self.goals.load_profile()
            if profile.missing_biometrics():
                return
            _, computed = compute_targets(profile, goal, weight_kg, self.clock().date())
        except (ValueError, sqlite3.Error):
            logger.warning("Reflection preview unavailable", exc_info=True)
            return

        self.preview, self.has_changes = apply_hysteresis(
            goal.current_targets, computed, self.smoothing_threshold
        )

    def set_sentiment(self, sentiment: Optional[Sentiment]) -> None:
        self.selected_sentiment = Sentiment(sentiment) if sentiment else None

    def cancel_reflection(self) -> None:
        """Discard the in-progress reflection. Nothing persisted changes."""
        self._reset_in_progress()

    def _reset_in_progress(self) -> None:
        self.is_reflecting = False
        self.input_weight_kg = None
        self.selected_sentiment = None
        self.preview = None
        self.has_changes = False
        self.is_submitting = False
        self.submit_error = None

    # --- submit ---

    def submit_reflection(self) -> Optional[ReflectionResult]:
        """
        Commit the in-progress reflection.

        The weight entry, any goal target change, the reflection record and
        the dismiss-counter reset are written in one transaction. On failure
        none of them is visible, ``submit_error`` carries a generic message
        and the reflection stays open for a retry.

        Returns:
            The ReflectionResult, or None if nothing was submitted (no input
            weight, a submit already in flight, an invalid weight, or failure)
        """
        if self.is_submitting:
            logger.warning("Reflection submit already in progress; ignoring")
            return None
        weight_kg = self.input_weight_kg
        if weight_kg is None:
            return None
        if not is_valid_weight(weight_kg):
            logger.warning("Rejected reflection weight %r", weight_kg)
            self.submit_error = INVALID_WEIGHT_MESSAGE
            return None

        self.is_submitting = True
        self.submit_error = None
        try:
            result = self._commit(weight_kg, self.selected_sentiment)
        except Exception:
            logger.exception("Failed to submit reflection")
            self.is_submitting = False
            self.submit_error = SUBMIT_ERROR_MESSAGE
            return None

        self._refresh_after_commit(result)

        self.banner = BannerState(
            last_reflection_date=result.reflection.reflected_at,
            days_since_last_reflection=0,
            should_show_banner=False,
            banner_dismiss_count=0,
        )
        self._dismissed = False
        self._reset_in_progress()
        self.last_result = result
        return result

    def _commit(
        self, weight_kg: float, sentiment: Optional[Sentiment]
    ) -> ReflectionResult:
        goal = self.goals.get_active() or self.goals.load_active_goal()
        profile = self.goals.load_profile()
        if goal is None or goal.goal_id is None:
            raise NoActiveGoalError("No active goal")
        missing = profile.missing_biometrics()
        if missing:
            raise ReflectionSubmitError(f"Profile is missing {', '.join(missing)}")

        now = self.clock()
        previous = goal.current_targets

        with self.db.get_connection() as conn:
            last_reflection = ReflectionQueries.get_latest(conn)
        weight_change_kg = (
            weight_kg - last_reflection.weight_kg if last_reflection else None
        )

        def write(conn: sqlite3.Connection) -> ReflectionResult:
            WeightQueries.upsert_weight(conn, now.date(), weight_kg, now=now)
            trend_kg = calculate_trend_weight(
                WeightQueries.get_all_for_trend(conn), at_date=now.date()
            )

            # Trend weight is authoritative here, unlike the preview
            calc_weight = trend_kg if trend_kg is not None else weight_kg
            tdee, computed = compute_targets(profile, goal, calc_weight, now.date())
            applied, changed = apply_hysteresis(
                previous, computed, self.smoothing_threshold
            )
            if changed:
                GoalQueries.update_current_targets(
                    conn, goal.goal_id, round(tdee), applied, now=now
                )

            reflection = Reflection(
                reflection_id=None,
                reflected_at=now,
                weight_kg=weight_kg,
                weight_trend_kg=trend_kg,
                sentiment=sentiment,
                previous=previous,
                new=applied,
                weight_change_kg=weight_change_kg,
            )
            reflection.reflection_id = ReflectionQueries.create_reflection(conn, reflection)
            SettingsQueries.set_dismiss_count(conn, 0, now=now)

            return ReflectionResult(
                reflection=reflection,
                previous=previous,
                applied=applied,
                changed=changed,
                weight_kg=weight_kg,
                trend_weight_kg=trend_kg,
                weight_change_kg=weight_change_kg,
                tdee=round(tdee),
            )

        result = self.db.with_transaction(write)
        logger.info(
            "Reflection %s saved: %d -> %d kcal%s",
            result.reflection.reflection_id,
            previous.calories,
            result.applied.calories,
            "" if result.changed else " (unchanged)",
        )
        return result

    def _refresh_after_commit(self, result: ReflectionResult) -> None:
        # The transaction is already committed; a failed reload only leaves
        # a stale view until the next load.
        try:
            self.goals.load_active_goal()
            self.weights.reload()
            if self.settings.apply_reflection(result):
                logger.info("Daily goals updated to %d kcal", result.applied.calories)
        except sqlite3.Error:
            logger.exception("Reflection saved but reloading views failed")

    # --- history ---

    def get_history(self, limit: Optional[int] = None) -> list[Reflection]:
        """Past reflections, newest first. Empty on storage errors."""
        try:
            with self.db.get_connection() as conn:
                return ReflectionQueries.get_all(conn, limit)
        except sqlite3.Error:
            logger.warning("Failed to load reflection history", exc_info=True)
            return []

    def _on_goal_completed(self, goal: Goal) -> None:
        logger.debug("Goal %s completed; clearing reflection state", goal.goal_id)
        self._reset_in_progress()
        self.banner.should_show_banner = False
