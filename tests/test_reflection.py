"""Tests for the weekly reflection workflow."""

from __future__ import annotations

from datetime import timedelta

import pytest

from goaltrack.errors import INVALID_WEIGHT_MESSAGE, SUBMIT_ERROR_MESSAGE
from goaltrack.tracking.goals import GoalManager, GoalParams
from goaltrack.tracking.models import Sentiment, TargetSnapshot
from goaltrack.tracking.queries import ReflectionQueries, SettingsQueries
from goaltrack.tracking.reflection import (
    ReflectionPhase,
    ReflectionWorkflow,
    apply_hysteresis,
)
from goaltrack.tracking.user_settings import UserSettings
from goaltrack.tracking.weights import WeightLog


def snapshot_tables(db) -> dict:
    """Every row of the tables a submit writes to."""
    with db.get_connection() as conn:
        return {
            table: [tuple(row) for row in conn.execute(f"SELECT * FROM {table}").fetchall()]
            for table in ("weight_entries", "goals", "reflections", "user_settings")
        }


def submit(workflow, weight: float, sentiment=None):
    workflow.initialize()
    workflow.start_reflection()
    workflow.set_input_weight(weight)
    workflow.set_sentiment(sentiment)
    return workflow.submit_reflection()


class TestApplyHysteresis:
    """Targets only move for calorie changes above the threshold."""

    previous = TargetSnapshot(2000, 150, 200, 60)

    def test_small_change_suppressed(self) -> None:
        applied, changed = apply_hysteresis(self.previous, TargetSnapshot(2020, 152, 204, 61))
        assert not changed
        assert applied == self.previous

    def test_large_change_applied(self) -> None:
        computed = TargetSnapshot(2030, 152, 206, 62)
        applied, changed = apply_hysteresis(self.previous, computed)
        assert changed
        assert applied == computed

    def test_boundary_is_exclusive(self) -> None:
        _, changed = apply_hysteresis(self.previous, TargetSnapshot(2025, 150, 206, 60))
        assert not changed

    def test_decrease(self) -> None:
        _, changed = apply_hysteresis(self.previous, TargetSnapshot(1970, 150, 193, 60))
        assert changed

    def test_custom_threshold(self) -> None:
        _, changed = apply_hysteresis(self.previous, TargetSnapshot(2030, 150, 207, 60), threshold=50)
        assert not changed


class TestInitialize:
    """Banner eligibility is derived from persisted state."""

    def test_no_goal(self, workflow, weights, clock) -> None:
        weights.add_entry(clock.today(), 90.0)
        assert not workflow.initialize().should_show_banner
        assert workflow.phase == ReflectionPhase.IDLE

    def test_no_weights(self, workflow, goals, profile, clock) -> None:
        """Without any weight entry the banner stays hidden."""
        goals.create_goal(
            GoalParams.from_profile(profile, "lose", 90.0, clock.today(), target_rate_percent=0.5)
        )
        clock.advance(30)
        banner = workflow.initialize()
        assert not banner.should_show_banner
        assert workflow.weights.trend_weight is None

    def test_first_reflection_eligible(self, workflow, active_goal) -> None:
        banner = workflow.initialize()
        assert banner.should_show_banner
        assert banner.last_reflection_date is None
        assert banner.days_since_last_reflection is None

    def test_corrupt_dismiss_count_hides_banner(self, temp_db, workflow, active_goal) -> None:
        with temp_db.get_connection() as conn:
            conn.execute(
                "INSERT INTO user_settings (key, value) VALUES (?, ?)",
                ("reflection_banner_dismiss_count", "not json"),
            )
        banner = workflow.initialize()
        assert not banner.should_show_banner
        assert workflow.is_initialized
        assert workflow.phase == ReflectionPhase.ELIGIBLE
        assert workflow.is_initialized

    def test_cadence(self, workflow, active_goal, clock) -> None:
        submit(workflow, 90.0)
        clock.advance(5)
        banner = workflow.initialize()
        assert banner.days_since_last_reflection == 5
        assert not banner.should_show_banner
        clock.advance(1)
        assert workflow.initialize().should_show_banner

    def test_fresh_process_agrees(self, temp_db, workflow, active_goal, clock) -> None:
        """A new workflow over the same database derives the same state."""
        submit(workflow, 90.0)
        clock.advance(7)
        fresh = ReflectionWorkflow(
            temp_db,
            GoalManager(temp_db, clock=clock),
            WeightLog(temp_db, clock=clock),
            UserSettings(temp_db),
            clock=clock,
        )
        banner = fresh.initialize()
        assert banner.should_show_banner
        assert banner.days_since_last_reflection == 7


class TestDismissBanner:
    """Dismissal hides the banner and is counted."""

    def test_dismiss(self, workflow, active_goal) -> None:
        workflow.initialize()
        workflow.dismiss_banner()
        assert not workflow.banner.should_show_banner
        assert workflow.banner.banner_dismiss_count == 1
        assert workflow.phase == ReflectionPhase.DISMISSED

    def test_count_persists(self, temp_db, workflow, active_goal, clock) -> None:
        workflow.initialize()
        workflow.dismiss_banner()
        workflow.dismiss_banner()
        fresh = ReflectionWorkflow(
            temp_db,
            GoalManager(temp_db, clock=clock),
            WeightLog(temp_db, clock=clock),
            UserSettings(temp_db),
            clock=clock,
        )
        assert fresh.initialize().banner_dismiss_count == 2

    def test_dismiss_does_not_move_eligibility(self, workflow, active_goal) -> None:
        workflow.initialize()
        workflow.dismiss_banner()
        assert workflow.initialize().should_show_banner

    def test_submit_resets_count(self, temp_db, workflow, active_goal) -> None:
        workflow.initialize()
        workflow.dismiss_banner()
        submit(workflow, 90.0)
        assert workflow.banner.banner_dismiss_count == 0
        with temp_db.get_connection() as conn:
            assert SettingsQueries.get_dismiss_count(conn) == 0


class TestPreview:
    """Live preview from the raw input weight."""

    def test_prefill_from_latest_weight(self, workflow, active_goal) -> None:
        workflow.initialize()
        workflow.start_reflection()
        assert workflow.input_weight_kg == 90.0
        assert workflow.phase == ReflectionPhase.IN_PROGRESS

    def test_small_change_previews_current(self, workflow, active_goal) -> None:
        workflow.start_reflection()
        workflow.set_input_weight(90.2)
        assert not workflow.has_changes
        assert workflow.preview == active_goal.current_targets

    def test_large_change_previews_new_targets(self, workflow, active_goal) -> None:
        workflow.start_reflection()
        workflow.set_input_weight(95.0)
        assert workflow.has_changes
        assert workflow.preview.calories == 2440
        assert workflow.preview.protein_g == 171

    def test_no_goal_no_preview(self, workflow, profile) -> None:
        workflow.start_reflection()
        workflow.set_input_weight(90.0)
        assert workflow.preview is None
        assert not workflow.has_changes

    def test_incomplete_profile_no_preview(self, workflow, goals, active_goal) -> None:
        goals.update_profile(height_cm=None)
        workflow.start_reflection()
        workflow.set_input_weight(95.0)
        assert workflow.preview is None
        assert workflow.input_weight_kg == 95.0

    def test_cancel_keeps_database(self, temp_db, workflow, active_goal) -> None:
        before = snapshot_tables(temp_db)
        workflow.start_reflection()
        workflow.set_input_weight(95.0)
        workflow.set_sentiment(Sentiment.POSITIVE)
        workflow.cancel_reflection()
        assert workflow.input_weight_kg is None
        assert workflow.preview is None
        assert workflow.selected_sentiment is None
        assert snapshot_tables(temp_db) == before


class TestInputValidation:
    """Weights that are not positive and finite never reach the database."""

    @pytest.mark.parametrize("weight", [-5.0, 0.0, float("nan"), float("inf")])
    def test_invalid_weight_rejected(self, temp_db, workflow, active_goal, weight) -> None:
        workflow.initialize()
        workflow.start_reflection()
        before = snapshot_tables(temp_db)

        workflow.set_input_weight(weight)
        assert workflow.preview is None
        assert not workflow.has_changes

        assert workflow.submit_reflection() is None
        assert workflow.submit_error == INVALID_WEIGHT_MESSAGE
        assert not workflow.is_submitting
        assert workflow.phase == ReflectionPhase.IN_PROGRESS
        assert snapshot_tables(temp_db) == before
        assert temp_db.get_table_count("reflections") == 0

    def test_valid_weight_after_rejection(self, workflow, active_goal) -> None:
        workflow.start_reflection()
        workflow.set_input_weight(-1.0)
        assert workflow.submit_reflection() is None

        workflow.set_input_weight(90.0)
        result = workflow.submit_reflection()
        assert result is not None
        assert workflow.submit_error is None


class TestSubmit:
    """Atomic submit and post-commit refresh."""

    def test_first_reflection(self, temp_db, workflow, active_goal) -> None:
        result = submit(workflow, 90.0, Sentiment.POSITIVE)
        assert result is not None
        assert result.weight_change_kg is None
        assert result.trend_weight_kg == pytest.approx(90.0)
        assert result.reflection.sentiment == Sentiment.POSITIVE
        assert result.reflection.reflection_id is not None
        assert temp_db.get_table_count("reflections") == 1
        assert workflow.phase == ReflectionPhase.IDLE

    def test_unchanged_targets_recorded_as_previous(self, workflow, active_goal) -> None:
        """2390 vs 2388 is within the threshold, so nothing changes."""
        result = submit(workflow, 90.0)
        assert not result.changed
        assert result.reflection.new == result.reflection.previous
        assert workflow.goals.get_active().current_targets == active_goal.current_targets

    def test_changed_targets_applied(self, workflow, active_goal) -> None:
        result = submit(workflow, 95.0)
        assert result.changed
        assert result.previous == active_goal.current_targets
        assert result.applied == TargetSnapshot(2440, 171, 271, 75)

        goal = workflow.goals.get_active()
        assert goal.current_targets == result.applied
        assert goal.initial_targets == active_goal.initial_targets
        assert goal.current_tdee == result.tdee

    def test_upserts_todays_weight(self, temp_db, workflow, active_goal) -> None:
        submit(workflow, 91.0)
        assert temp_db.get_table_count("weight_entries") == 1
        assert workflow.weights.latest_weight == 91.0
        assert workflow.weights.trend_weight == pytest.approx(91.0)

    def test_settings_follow_changed_targets(self, workflow, user_settings, active_goal) -> None:
        result = submit(workflow, 95.0)
        assert user_settings.daily_goals == result.applied
        assert user_settings.load_settings() == result.applied

    def test_settings_untouched_without_change(self, workflow, user_settings, active_goal) -> None:
        submit(workflow, 90.0)
        assert user_settings.load_settings() is None

    def test_two_reflections_two_days_apart(self, workflow, active_goal, clock) -> None:
        """+0.3 kg barely moves the trend; the second keeps previous targets."""
        first = submit(workflow, 90.0)
        clock.advance(2)
        second = submit(workflow, 90.3)

        assert second.weight_change_kg == pytest.approx(0.3)
        assert 90.0 < second.trend_weight_kg < 90.3
        assert abs(second.reflection.new.calories - first.reflection.new.calories) <= 25
        assert second.reflection.new == second.reflection.previous
        assert workflow.banner.days_since_last_reflection == 0
        assert workflow.initialize().days_since_last_reflection == 0

    def test_preview_and_submit_can_disagree(self, workflow, weights, active_goal, clock) -> None:
        """The preview uses the raw weight; the submit uses the smoothed trend."""
        weights.add_entry(clock.today() - timedelta(days=1), 90.0)
        workflow.start_reflection()
        workflow.set_input_weight(95.0)
        assert workflow.has_changes

        result = workflow.submit_reflection()
        assert result.trend_weight_kg < 91.0
        assert not result.changed

    def test_future_entry_ignored_by_trend(self, workflow, weights, active_goal, clock) -> None:
        """A weight logged for tomorrow does not pull today's trend."""
        weights.add_entry(clock.today() + timedelta(days=1), 100.0)
        result = submit(workflow, 90.0)
        assert result.trend_weight_kg == pytest.approx(90.0)
        assert not result.changed
        assert workflow.weights.latest_weight == 90.0
        assert workflow.weights.trend_weight == pytest.approx(90.0)

    def test_history_newest_first(self, workflow, active_goal, clock) -> None:
        submit(workflow, 90.0)
        clock.advance(7)
        submit(workflow, 89.5)
        history = workflow.get_history()
        assert [r.weight_kg for r in history] == [89.5, 90.0]
        assert len(workflow.get_history(limit=1)) == 1

    def test_nothing_to_submit(self, temp_db, workflow, active_goal) -> None:
        assert workflow.submit_reflection() is None
        assert temp_db.get_table_count("reflections") == 0

    def test_reentrancy_guard(self, temp_db, workflow, active_goal) -> None:
        """A second submit while one is in flight is refused."""
        workflow.start_reflection()
        workflow.set_input_weight(95.0)
        workflow.is_submitting = True
        before = snapshot_tables(temp_db)

        assert workflow.submit_reflection() is None
        assert snapshot_tables(temp_db) == before
        assert workflow.phase == ReflectionPhase.SUBMITTING


class TestSubmitFailure:
    """A failed submit leaves persisted state exactly as it was."""

    def test_rollback(self, temp_db, workflow, active_goal, monkeypatch) -> None:
        workflow.initialize()
        workflow.dismiss_banner()
        workflow.dismiss_banner()
        before = snapshot_tables(temp_db)

        def fail(conn, reflection):
            raise RuntimeError("disk I/O error")

        monkeypatch.setattr(ReflectionQueries, "create_reflection", staticmethod(fail))
        workflow.start_reflection()
        # Large enough to change targets, so the goal is written before the failure
        workflow.set_input_weight(95.0)
        assert workflow.submit_reflection() is None

        assert snapshot_tables(temp_db) == before
        assert workflow.submit_error == SUBMIT_ERROR_MESSAGE
        assert "disk" not in workflow.submit_error
        assert not workflow.is_submitting
        assert workflow.phase == ReflectionPhase.IN_PROGRESS
        assert workflow.input_weight_kg == 95.0

    def test_retry_after_failure(self, temp_db, workflow, active_goal, monkeypatch) -> None:
        original = ReflectionQueries.create_reflection

        def fail(conn, reflection):
            raise RuntimeError("locked")

        monkeypatch.setattr(ReflectionQueries, "create_reflection", staticmethod(fail))
        workflow.start_reflection()
        workflow.set_input_weight(95.0)
        assert workflow.submit_reflection() is None

        monkeypatch.setattr(ReflectionQueries, "create_reflection", staticmethod(original))
        result = workflow.submit_reflection()
        assert result is not None
        assert result.changed
        assert workflow.submit_error is None
        assert temp_db.get_table_count("reflections") == 1

    def test_missing_profile_fails_cleanly(self, temp_db, workflow, goals, active_goal) -> None:
        goals.update_profile(sex=None)
        before = snapshot_tables(temp_db)
        workflow.start_reflection()
        workflow.set_input_weight(92.0)
        assert workflow.submit_reflection() is None
        assert workflow.submit_error == SUBMIT_ERROR_MESSAGE
        assert snapshot_tables(temp_db) == before


class TestGoalCompletion:
    """Completing a goal clears pending reflection state."""

    def test_completion_clears_reflection(self, workflow, goals, active_goal) -> None:
        workflow.initialize()
        workflow.start_reflection()
        workflow.set_input_weight(95.0)

        goals.complete_goal()
        assert not workflow.is_reflecting
        assert workflow.preview is None
        assert not workflow.banner.should_show_banner
        assert not workflow.initialize().should_show_banner
