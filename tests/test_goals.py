"""Tests for the goal lifecycle manager."""

from __future__ import annotations

from datetime import timedelta

import pytest

from goaltrack.errors import MissingBiometricsError
from goaltrack.profiles import (
    CALORIE_FLOORS,
    ActivityLevel,
    EatingStyle,
    GoalType,
    MacroTargets,
    PlanningMode,
    ProteinPriority,
    Sex,
)
from goaltrack.tracking.goals import GoalManager, GoalParams, GoalStatus
from goaltrack.tracking.models import TargetSnapshot
from goaltrack.tracking.timeline import MAX_WEEKLY_LOSS_KG


def params_for(profile, clock, **kwargs) -> GoalParams:
    defaults = dict(goal_type=GoalType.LOSE, current_weight_kg=90.0, target_rate_percent=0.5)
    defaults.update(kwargs)
    goal_type = defaults.pop("goal_type")
    weight = defaults.pop("current_weight_kg")
    return GoalParams.from_profile(profile, goal_type, weight, clock.today(), **defaults)


class TestCreateGoal:
    """Tests for GoalManager.create_goal."""

    def test_initial_equals_current(self, active_goal) -> None:
        assert active_goal.initial_targets == active_goal.current_targets
        assert active_goal.initial_tdee == active_goal.current_tdee

    def test_targets(self, active_goal) -> None:
        """BMR 1860, TDEE 2883, less 495 kcal/day for 0.45 kg/week."""
        assert active_goal.current_tdee == 2883
        assert active_goal.current_target_calories == 2388
        assert active_goal.current_protein_g == 162
        assert active_goal.is_active
        assert active_goal.eating_style == EatingStyle.FLEXIBLE
        assert active_goal.protein_priority == ProteinPriority.ACTIVE

    def test_start_date_from_clock(self, active_goal, clock) -> None:
        assert active_goal.start_date == clock.today()
        assert active_goal.start_weight_kg == 90.0

    def test_status_active(self, goals, active_goal) -> None:
        assert goals.status == GoalStatus.ACTIVE
        assert goals.get_active().goal_id == active_goal.goal_id

    def test_missing_biometrics_raises(self, goals, clock) -> None:
        profile = goals.load_profile()
        with pytest.raises(MissingBiometricsError) as exc_info:
            goals.create_goal(params_for(profile, clock))
        assert set(exc_info.value.missing) == {"sex", "height_cm", "age_years", "activity_level"}
        assert goals.load_active_goal() is None

    def test_missing_weight_raises(self, goals, profile, clock) -> None:
        with pytest.raises(MissingBiometricsError) as exc_info:
            goals.create_goal(params_for(profile, clock, current_weight_kg=None))
        assert exc_info.value.missing == ["current_weight_kg"]

    def test_missing_biometrics_is_value_error(self) -> None:
        assert issubclass(MissingBiometricsError, ValueError)

    def test_floor_applies(self, goals, clock) -> None:
        goals.update_profile(
            sex=Sex.FEMALE,
            date_of_birth=clock.today() - timedelta(days=int(60 * 365.25)),
            height_cm=150.0,
            activity_level=ActivityLevel.SEDENTARY,
        )
        goal = goals.create_goal(
            params_for(goals.profile, clock, current_weight_kg=50.0, target_rate_percent=1.0)
        )
        assert goal.current_target_calories == CALORIE_FLOORS[Sex.FEMALE]
        assert goal.current_carbs_g >= 0

    def test_styled_macros(self, goals, profile, clock) -> None:
        goal = goals.create_goal(
            params_for(
                profile,
                clock,
                eating_style="very_low_carb",
                protein_priority=ProteinPriority.ATHLETIC,
            )
        )
        assert goal.eating_style == EatingStyle.VERY_LOW_CARB
        assert goal.protein_priority == ProteinPriority.ATHLETIC
        assert goal.current_protein_g == round(90 * 1.98)
        assert goal.current_carbs_g <= 50

    def test_second_goal_replaces_first(self, goals, active_goal, profile, clock, temp_db) -> None:
        second = goals.create_goal(params_for(profile, clock, goal_type=GoalType.MAINTAIN))
        assert goals.get_active().goal_id == second.goal_id
        with temp_db.get_connection() as conn:
            active = conn.execute("SELECT COUNT(*) FROM goals WHERE is_active = 1").fetchone()[0]
        assert active == 1


class TestTimelineGoal:
    """Timeline planning derives and caps the rate."""

    def test_unsafe_timeline_is_capped(self, goals, profile, clock) -> None:
        """100 → 90 kg in 5 weeks implies 2 kg/week; capped at 1 kg/week."""
        goal = goals.create_goal(
            params_for(
                profile,
                clock,
                current_weight_kg=100.0,
                target_weight_kg=90.0,
                planning_mode=PlanningMode.TIMELINE,
                target_date=clock.today() + timedelta(weeks=5),
            )
        )
        assert goal.planning_mode == PlanningMode.TIMELINE
        assert goal.target_rate_percent == pytest.approx(1.0)
        assert goal.target_rate_percent / 100 * 100.0 <= MAX_WEEKLY_LOSS_KG + 1e-9

    def test_safe_timeline_kept(self, goals, profile, clock) -> None:
        goal = goals.create_goal(
            params_for(
                profile,
                clock,
                current_weight_kg=100.0,
                target_weight_kg=95.0,
                planning_mode="timeline",
                target_date=clock.today() + timedelta(weeks=10),
            )
        )
        assert goal.target_rate_percent == pytest.approx(0.5)

    def test_timeline_ignores_requested_rate(self, goals, profile, clock) -> None:
        goal = goals.create_goal(
            params_for(
                profile,
                clock,
                target_rate_percent=3.0,
                current_weight_kg=100.0,
                target_weight_kg=95.0,
                planning_mode=PlanningMode.TIMELINE,
                target_date=clock.today() + timedelta(weeks=10),
            )
        )
        assert goal.target_rate_percent == pytest.approx(0.5)

    def test_timeline_needs_target(self, goals, profile, clock) -> None:
        with pytest.raises(ValueError):
            goals.create_goal(params_for(profile, clock, planning_mode=PlanningMode.TIMELINE))


class TestUpdateGoalTargets:
    """Tests for GoalManager.update_goal_targets."""

    def test_updates_current_only(self, goals, active_goal) -> None:
        updated = goals.update_goal_targets(2700.4, 2205, MacroTargets(160, 240, 67))
        assert updated.current_targets == TargetSnapshot(2205, 160, 240, 67)
        assert updated.current_tdee == 2700
        assert updated.initial_targets == active_goal.initial_targets
        assert updated.initial_tdee == active_goal.initial_tdee

    def test_derived_fields_follow_current(self, goals, active_goal) -> None:
        goals.update_goal_targets(2700, 2205, MacroTargets(160, 240, 67))
        assert goals.calorie_goal == 2205
        assert goals.protein_goal == 160
        assert goals.carb_goal == 240
        assert goals.fat_goal == 67
        assert goals.target_weight == 80.0
        assert goals.weekly_goal == pytest.approx(0.5)

    def test_no_active_goal_is_noop(self, goals) -> None:
        assert goals.update_goal_targets(2500, 2000, MacroTargets(150, 200, 60)) is None
        assert goals.calorie_goal is None


class TestCompleteGoal:
    """Tests for GoalManager.complete_goal."""

    def test_complete(self, goals, active_goal, temp_db) -> None:
        completed = goals.complete_goal()
        assert completed.goal_id == active_goal.goal_id
        assert not completed.is_active
        assert completed.completed_at is not None
        assert goals.get_active() is None
        assert goals.status == GoalStatus.COMPLETED
        # History is kept
        assert temp_db.get_table_count("goals") == 1

    def test_complete_without_goal(self, goals) -> None:
        assert goals.complete_goal() is None
        assert goals.status == GoalStatus.NONE

    def test_listeners_notified(self, goals, active_goal) -> None:
        seen = []
        goals.add_completion_listener(seen.append)
        goals.complete_goal()
        assert [g.goal_id for g in seen] == [active_goal.goal_id]

    def test_new_goal_after_completion(self, goals, active_goal, profile, clock) -> None:
        goals.complete_goal()
        goal = goals.create_goal(params_for(profile, clock))
        assert goals.status == GoalStatus.ACTIVE
        assert goal.goal_id != active_goal.goal_id


class TestActiveGoalContract:
    """Tests for get_active / set_active / load_active_goal."""

    def test_fresh_manager_loads_persisted_goal(self, temp_db, active_goal, clock) -> None:
        manager = GoalManager(temp_db, clock=clock)
        assert manager.get_active() is None
        assert manager.load_active_goal().goal_id == active_goal.goal_id

    def test_set_active_rejects_inactive(self, goals, active_goal) -> None:
        completed = goals.complete_goal()
        with pytest.raises(ValueError):
            goals.set_active(completed)

    def test_estimated_completion(self, goals, active_goal, clock) -> None:
        """10 kg at 0.45 kg/week is about 155.6 days."""
        assert goals.estimated_completion() == clock.today() + timedelta(days=156)
        assert goals.time_to_goal() == (23, 5)


class TestCurrentWeight:
    """Tests for the manager's current weight."""

    def test_load_without_entries(self, goals) -> None:
        assert goals.load_current_weight() is None
        assert goals.current_weight_date is None

    def test_load_ignores_future_entries(self, goals, weights, active_goal, clock) -> None:
        weights.add_entry(clock.today() + timedelta(days=1), 100.0)
        assert goals.load_current_weight() == 90.0
        assert goals.current_weight_date == clock.today()

    def test_update_logs_todays_weight(self, temp_db, goals, weights, active_goal, clock) -> None:
        entry = goals.update_current_weight(88.0)
        assert entry.date == clock.today()
        assert goals.current_weight_kg == 88.0
        assert goals.current_weight_date == clock.today()
        assert temp_db.get_table_count("weight_entries") == 1
        weights.reload()
        assert weights.latest_weight == 88.0

    def test_projection_uses_current_weight(self, goals, active_goal, clock) -> None:
        """8 kg left instead of 10 brings the estimate forward."""
        goals.update_current_weight(88.0)
        assert goals.estimated_completion() < clock.today() + timedelta(days=156)
        assert goals.time_to_goal()[0] < 23

    @pytest.mark.parametrize("weight", [0.0, -3.0, float("nan"), float("inf")])
    def test_update_rejects_invalid(self, temp_db, goals, weight) -> None:
        with pytest.raises(ValueError):
            goals.update_current_weight(weight)
        assert temp_db.get_table_count("weight_entries") == 0
        assert goals.current_weight_kg is None


class TestProfile:
    """Tests for profile editing through the manager."""

    def test_update_profile(self, goals, profile) -> None:
        assert profile.sex == Sex.MALE
        assert profile.missing_biometrics() == []

    def test_unknown_field(self, goals) -> None:
        with pytest.raises(AttributeError):
            goals.update_profile(shoe_size=44)
