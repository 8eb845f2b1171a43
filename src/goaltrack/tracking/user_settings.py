"""Persisted user settings: daily goals and reflection banner counters."""

from __future__ import annotations

import logging
import sqlite3
from typing import Any, Optional

from goaltrack.db.connection import DatabaseConnection
from goaltrack.tracking.models import ReflectionResult, TargetSnapshot
from goaltrack.tracking.queries import SettingsQueries

logger = logging.getLogger(__name__)


class UserSettings:
    """Cached view of the daily-goal settings other features read."""

    def __init__(self, db: DatabaseConnection):
        self.db = db
        self.daily_goals: Optional[TargetSnapshot] = None

    def load_settings(self) -> Optional[TargetSnapshot]:
        try:
            with self.db.get_connection() as conn:
                self.daily_goals = SettingsQueries.get_daily_goals(conn)
        except sqlite3.Error:
            logger.warning("Failed to load daily goal settings", exc_info=True)
            self.daily_goals = None
        return self.daily_goals

    def get(self, key: str, default: Any = None) -> Any:
        with self.db.get_connection() as conn:
            return SettingsQueries.get(conn, key, default)

    def set(self, key: str, value: Any) -> None:
        with self.db.get_connection() as conn:
            SettingsQueries.set(conn, key, value)

    def set_daily_goals(self, targets: TargetSnapshot) -> None:
        """Persist new daily goals and reload the cached copy."""
        with self.db.transaction() as conn:
            SettingsQueries.set_daily_goals(conn, targets)
        self.load_settings()

    def apply_reflection(self, result: ReflectionResult) -> bool:
        """Adopt the targets a reflection applied.

        Returns:
            True if the daily goals were rewritten, False when the reflection
            left targets unchanged
        """
        if not result.changed:
            return False
        self.set_daily_goals(result.applied)
        return True

    def get_dismiss_count(self) -> int:
        with self.db.get_connection() as conn:
            return SettingsQueries.get_dismiss_count(conn)

    def set_dismiss_count(self, count: int) -> None:
        with self.db.get_connection() as conn:
            SettingsQueries.set_dismiss_count(conn, count)
