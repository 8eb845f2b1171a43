"""Pytest fixtures for goaltrack tests."""

from __future__ import annotations

import tempfile
from datetime import date, datetime, timedelta
from pathlib import Path

import pytest

from goaltrack.db.connection import DatabaseConnection
from goaltrack.profiles import ActivityLevel, GoalType, Sex
from goaltrack.tracking.goals import GoalManager, GoalParams
from goaltrack.tracking.reflection import ReflectionWorkflow
from goaltrack.tracking.user_settings import UserSettings
from goaltrack.tracking.weights import WeightLog

# 34 years old on FIXED_NOW
DATE_OF_BIRTH = date(1991, 6, 15)
FIXED_NOW = datetime(2026, 3, 2, 8, 0)


class FakeClock:
    """Callable clock that tests can move forward."""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def today(self) -> date:
        return self.now.date()

    def advance(self, days: float) -> None:
        self.now += timedelta(days=days)


@pytest.fixture
def temp_db():
    """Create a temporary database with schema."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = Path(f.name)

    db = DatabaseConnection(db_path)
    db.initialize_schema()

    yield db

    # Cleanup
    db_path.unlink(missing_ok=True)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def goals(temp_db, clock) -> GoalManager:
    return GoalManager(temp_db, clock=clock)


@pytest.fixture
def weights(temp_db, clock) -> WeightLog:
    return WeightLog(temp_db, clock=clock)


@pytest.fixture
def user_settings(temp_db) -> UserSettings:
    return UserSettings(temp_db)


@pytest.fixture
def workflow(temp_db, goals, weights, user_settings, clock) -> ReflectionWorkflow:
    return ReflectionWorkflow(temp_db, goals, weights, user_settings, clock=clock)


@pytest.fixture
def profile(goals):
    """Male, 180 cm, 34 y, moderately active."""
    return goals.update_profile(
        sex=Sex.MALE,
        date_of_birth=DATE_OF_BIRTH,
        height_cm=180.0,
        activity_level=ActivityLevel.MODERATELY_ACTIVE,
    )


@pytest.fixture
def active_goal(goals, weights, profile, clock):
    """Lose 0.5%/week from 90 kg, with 90 kg logged today."""
    weights.add_entry(clock.today(), 90.0)
    params = GoalParams.from_profile(
        profile,
        goal_type=GoalType.LOSE,
        current_weight_kg=90.0,
        today=clock.today(),
        target_rate_percent=0.5,
        target_weight_kg=80.0,
    )
    return goals.create_goal(params)
