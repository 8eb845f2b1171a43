"""Database queries for profiles, goals, weights, reflections and settings.

Every method takes a live connection and leaves committing to whoever owns
it, so several calls can share one ``DatabaseConnection.transaction()``.
"""

from __future__ import annotations

import json
import sqlite3
from datetime import date, datetime
from typing import Any, Optional

from goaltrack.profiles.body_calc import ActivityLevel, GoalType, PlanningMode, Sex
from goaltrack.profiles.macros import EatingStyle, ProteinPriority
from goaltrack.tracking.ema import recompute_trend_from_date
from goaltrack.tracking.models import (
    Goal,
    Profile,
    Reflection,
    Sentiment,
    TargetSnapshot,
    WeightEntry,
)

DISMISS_COUNT_KEY = "reflection_banner_dismiss_count"

DAILY_GOAL_KEYS = {
    "calories": "daily_calorie_goal",
    "protein_g": "daily_protein_goal",
    "carbs_g": "daily_carbs_goal",
    "fat_g": "daily_fat_goal",
}


def _parse_date(value: Optional[str]) -> Optional[date]:
    return date.fromisoformat(value) if value else None


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _now_iso(now: Optional[datetime]) -> str:
    return (now or datetime.now()).isoformat(timespec="seconds")


class ProfileQueries:
    """Database queries for the single biometric profile."""

    @staticmethod
    def get_profile(conn: sqlite3.Connection) -> Optional[Profile]:
        """Get the profile row, if one has been created."""
        row = conn.execute(
            """
            SELECT profile_id, sex, date_of_birth, height_cm, activity_level,
                   created_at, updated_at
            FROM user_profile ORDER BY profile_id LIMIT 1
            """
        ).fetchone()

        if row is None:
            return None

        return Profile(
            profile_id=row["profile_id"],
            sex=Sex(row["sex"]) if row["sex"] else None,
            date_of_birth=_parse_date(row["date_of_birth"]),
            height_cm=row["height_cm"],
            activity_level=(
                ActivityLevel(row["activity_level"]) if row["activity_level"] else None
            ),
            created_at=_parse_datetime(row["created_at"]),
            updated_at=_parse_datetime(row["updated_at"]),
        )

    @staticmethod
    def get_or_create(conn: sqlite3.Connection) -> Profile:
        """Get the profile, inserting an empty one on first use."""
        profile = ProfileQueries.get_profile(conn)
        if profile is not None:
            return profile

        conn.execute("INSERT INTO user_profile DEFAULT VALUES")
        profile = ProfileQueries.get_profile(conn)
        assert profile is not None
        return profile

    @staticmethod
    def update_profile(
        conn: sqlite3.Connection,
        profile: Profile,
        now: Optional[datetime] = None,
    ) -> None:
        """Write every biometric field of an existing profile."""
        if profile.profile_id is None:
            raise ValueError("Cannot update profile without profile_id")

        conn.execute(
            """
            UPDATE user_profile
            SET sex = ?, date_of_birth = ?, height_cm = ?, activity_level = ?,
                updated_at = ?
            WHERE profile_id = ?
            """,
            (
                profile.sex.value if profile.sex else None,
                profile.date_of_birth.isoformat() if profile.date_of_birth else None,
                profile.height_cm,
                profile.activity_level.value if profile.activity_level else None,
                _now_iso(now),
                profile.profile_id,
            ),
        )


class GoalQueries:
    """Database queries for goals."""

    _COLUMNS = """
        goal_id, goal_type, target_weight_kg, target_rate_percent, planning_mode,
        target_date, start_date, start_weight_kg,
        initial_tdee, initial_target_calories, initial_protein_g,
        initial_carbs_g, initial_fat_g,
        current_tdee, current_target_calories, current_protein_g,
        current_carbs_g, current_fat_g,
        eating_style, protein_priority, is_active, completed_at,
        created_at, updated_at
    """

    @staticmethod
    def _row_to_goal(row: sqlite3.Row) -> Goal:
        return Goal(
            goal_id=row["goal_id"],
            goal_type=GoalType(row["goal_type"]),
            target_weight_kg=row["target_weight_kg"],
            target_rate_percent=row["target_rate_percent"],
            planning_mode=PlanningMode(row["planning_mode"]),
            target_date=_parse_date(row["target_date"]),
            start_date=date.fromisoformat(row["start_date"]),
            start_weight_kg=row["start_weight_kg"],
            initial_tdee=row["initial_tdee"],
            initial_target_calories=row["initial_target_calories"],
            initial_protein_g=row["initial_protein_g"],
            initial_carbs_g=row["initial_carbs_g"],
            initial_fat_g=row["initial_fat_g"],
            current_tdee=row["current_tdee"],
            current_target_calories=row["current_target_calories"],
            current_protein_g=row["current_protein_g"],
            current_carbs_g=row["current_carbs_g"],
            current_fat_g=row["current_fat_g"],
            eating_style=EatingStyle(row["eating_style"]),
            protein_priority=ProteinPriority(row["protein_priority"]),
            is_active=bool(row["is_active"]),
            completed_at=_parse_datetime(row["completed_at"]),
            created_at=_parse_datetime(row["created_at"]),
            updated_at=_parse_datetime(row["updated_at"]),
        )

    @staticmethod
    def create_goal(
        conn: sqlite3.Connection,
        goal: Goal,
        now: Optional[datetime] = None,
    ) -> int:
        """
        Insert a new active goal and return its goal_id.

        Any previously active goal is deactivated first, on the same
        connection, so the single-active-goal index is never violated.
        """
        stamp = _now_iso(now)
        conn.execute(
            "UPDATE goals SET is_active = 0, updated_at = ? WHERE is_active = 1",
            (stamp,),
        )
        cursor = conn.execute(
            """
            INSERT INTO goals (
                goal_type, target_weight_kg, target_rate_percent, planning_mode,
                target_date, start_date, start_weight_kg,
                initial_tdee, initial_target_calories, initial_protein_g,
                initial_carbs_g, initial_fat_g,
                current_tdee, current_target_calories, current_protein_g,
                current_carbs_g, current_fat_g,
                eating_style, protein_priority, is_active, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 1, ?, ?)
            """,
            (
                goal.goal_type.value,
                goal.target_weight_kg,
                goal.target_rate_percent,
                goal.planning_mode.value,
                goal.target_date.isoformat() if goal.target_date else None,
                goal.start_date.isoformat(),
                goal.start_weight_kg,
                goal.initial_tdee,
                goal.initial_target_calories,
                goal.initial_protein_g,
                goal.initial_carbs_g,
                goal.initial_fat_g,
                goal.current_tdee,
                goal.current_target_calories,
                goal.current_protein_g,
                goal.current_carbs_g,
                goal.current_fat_g,
                goal.eating_style.value,
                goal.protein_priority.value,
                stamp,
                stamp,
            ),
        )
        return cursor.lastrowid or 0

    @staticmethod
    def get_goal(conn: sqlite3.Connection, goal_id: int) -> Optional[Goal]:
        """Get a goal by ID, active or not."""
        row = conn.execute(
            f"SELECT {GoalQueries._COLUMNS} FROM goals WHERE goal_id = ?",
            (goal_id,),
        ).fetchone()
        return GoalQueries._row_to_goal(row) if row else None

    @staticmethod
    def get_active(conn: sqlite3.Connection) -> Optional[Goal]:
        """Get the active goal, if any."""
        row = conn.execute(
            f"SELECT {GoalQueries._COLUMNS} FROM goals WHERE is_active = 1 LIMIT 1"
        ).fetchone()
        return GoalQueries._row_to_goal(row) if row else None

    @staticmethod
    def get_all(conn: sqlite3.Connection) -> list[Goal]:
        """All goals, newest first."""
        rows = conn.execute(
            f"SELECT {GoalQueries._COLUMNS} FROM goals ORDER BY goal_id DESC"
        ).fetchall()
        return [GoalQueries._row_to_goal(row) for row in rows]

    @staticmethod
    def update_current_targets(
        conn: sqlite3.Connection,
        goal_id: int,
        tdee: int,
        targets: TargetSnapshot,
        now: Optional[datetime] = None,
    ) -> None:
        """Overwrite the current_* fields of a goal; initial_* stay untouched."""
        conn.execute(
            """
            UPDATE goals SET
                current_tdee = ?,
                current_target_calories = ?,
                current_protein_g = ?,
                current_carbs_g = ?,
                current_fat_g = ?,
                updated_at = ?
            WHERE goal_id = ?
            """,
            (
                tdee,
                targets.calories,
                targets.protein_g,
                targets.carbs_g,
                targets.fat_g,
                _now_iso(now),
                goal_id,
            ),
        )

    @staticmethod
    def complete_goal(
        conn: sqlite3.Connection,
        goal_id: int,
        now: Optional[datetime] = None,
    ) -> None:
        """Deactivate a goal and stamp its completion time."""
        stamp = _now_iso(now)
        conn.execute(
            """
            UPDATE goals SET is_active = 0, completed_at = ?, updated_at = ?
            WHERE goal_id = ?
            """,
            (stamp, stamp, goal_id),
        )


class WeightQueries:
    """Database queries for weight entries and their stored trend."""

    @staticmethod
    def _row_to_entry(row: sqlite3.Row) -> WeightEntry:
        return WeightEntry(
            entry_id=row["entry_id"],
            date=date.fromisoformat(row["date"]),
            weight_kg=row["weight_kg"],
            trend_kg=row["trend_kg"],
            notes=row["notes"],
            created_at=_parse_datetime(row["created_at"]),
            updated_at=_parse_datetime(row["updated_at"]),
        )

    @staticmethod
    def upsert_weight(
        conn: sqlite3.Connection,
        entry_date: date,
        weight_kg: float,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> WeightEntry:
        """
        Record the weight for a date, updating in place if the date exists.

        Stored trends are recomputed from ``entry_date`` forward, so
        back-dated entries correct everything after them.
        """
        stamp = _now_iso(now)
        conn.execute(
            """
            INSERT INTO weight_entries (date, weight_kg, notes, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(date) DO UPDATE SET
                weight_kg = excluded.weight_kg,
                notes = COALESCE(excluded.notes, weight_entries.notes),
                updated_at = excluded.updated_at
            """,
            (entry_date.isoformat(), weight_kg, notes, stamp, stamp),
        )
        WeightQueries.recompute_trends(conn, entry_date)

        entry = WeightQueries.get_by_date(conn, entry_date)
        assert entry is not None
        return entry

    @staticmethod
    def recompute_trends(conn: sqlite3.Connection, changed_date: date) -> int:
        """Rewrite stored trends on or after ``changed_date``. Returns rows touched."""
        rows = conn.execute(
            "SELECT entry_id, date, weight_kg, trend_kg FROM weight_entries"
        ).fetchall()
        entries = [
            (row["entry_id"], date.fromisoformat(row["date"]), row["weight_kg"], row["trend_kg"])
            for row in rows
        ]
        updates = recompute_trend_from_date(entries, changed_date)
        conn.executemany(
            "UPDATE weight_entries SET trend_kg = ? WHERE entry_id = ?",
            [(trend, entry_id) for entry_id, trend in updates],
        )
        return len(updates)

    @staticmethod
    def get_by_date(conn: sqlite3.Connection, entry_date: date) -> Optional[WeightEntry]:
        """Get the entry recorded for a calendar date."""
        row = conn.execute(
            """
            SELECT entry_id, date, weight_kg, trend_kg, notes, created_at, updated_at
            FROM weight_entries WHERE date = ?
            """,
            (entry_date.isoformat(),),
        ).fetchone()
        return WeightQueries._row_to_entry(row) if row else None

    @staticmethod
    def get_latest(
        conn: sqlite3.Connection, on_or_before: Optional[date] = None
    ) -> Optional[WeightEntry]:
        """Get the most recent weight entry, ignoring any dated after ``on_or_before``."""
        query = """
            SELECT entry_id, date, weight_kg, trend_kg, notes, created_at, updated_at
            FROM weight_entries
        """
        params: list[Any] = []
        if on_or_before:
            query += " WHERE date <= ?"
            params.append(on_or_before.isoformat())
        query += " ORDER BY date DESC LIMIT 1"
        row = conn.execute(query, params).fetchone()
        return WeightQueries._row_to_entry(row) if row else None

    @staticmethod
    def get_history(
        conn: sqlite3.Connection,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        limit: Optional[int] = None,
    ) -> list[WeightEntry]:
        """Entries in a date range, newest first."""
        query = """
            SELECT entry_id, date, weight_kg, trend_kg, notes, created_at, updated_at
            FROM weight_entries WHERE 1 = 1
        """
        params: list[Any] = []
        if start_date:
            query += " AND date >= ?"
            params.append(start_date.isoformat())
        if end_date:
            query += " AND date <= ?"
            params.append(end_date.isoformat())
        query += " ORDER BY date DESC"
        if limit:
            query += " LIMIT ?"
            params.append(limit)

        rows = conn.execute(query, params).fetchall()
        return [WeightQueries._row_to_entry(row) for row in rows]

    @staticmethod
    def get_all_for_trend(conn: sqlite3.Connection) -> list[tuple[date, float]]:
        """(date, weight_kg) pairs in date order, ready for the EWMA."""
        rows = conn.execute(
            "SELECT date, weight_kg FROM weight_entries ORDER BY date"
        ).fetchall()
        return [(date.fromisoformat(row["date"]), row["weight_kg"]) for row in rows]

    @staticmethod
    def delete_by_date(conn: sqlite3.Connection, entry_date: date) -> bool:
        """Delete the entry for a date and repair later trends."""
        cursor = conn.execute(
            "DELETE FROM weight_entries WHERE date = ?", (entry_date.isoformat(),)
        )
        if cursor.rowcount == 0:
            return False
        WeightQueries.recompute_trends(conn, entry_date)
        return True


class ReflectionQueries:
    """Database queries for the append-only reflection history."""

    @staticmethod
    def _row_to_reflection(row: sqlite3.Row) -> Reflection:
        return Reflection(
            reflection_id=row["reflection_id"],
            reflected_at=datetime.fromisoformat(row["reflected_at"]),
            weight_kg=row["weight_kg"],
            weight_trend_kg=row["weight_trend_kg"],
            sentiment=Sentiment(row["sentiment"]) if row["sentiment"] else None,
            previous=TargetSnapshot(
                calories=row["previous_calories"],
                protein_g=row["previous_protein_g"],
                carbs_g=row["previous_carbs_g"],
                fat_g=row["previous_fat_g"],
            ),
            new=TargetSnapshot(
                calories=row["new_calories"],
                protein_g=row["new_protein_g"],
                carbs_g=row["new_carbs_g"],
                fat_g=row["new_fat_g"],
            ),
            weight_change_kg=row["weight_change_kg"],
            created_at=_parse_datetime(row["created_at"]),
        )

    @staticmethod
    def create_reflection(conn: sqlite3.Connection, reflection: Reflection) -> int:
        """Insert a reflection record and return its reflection_id."""
        cursor = conn.execute(
            """
            INSERT INTO reflections (
                reflected_at, weight_kg, weight_trend_kg, sentiment,
                previous_calories, previous_protein_g, previous_carbs_g, previous_fat_g,
                new_calories, new_protein_g, new_carbs_g, new_fat_g,
                weight_change_kg
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                reflection.reflected_at.isoformat(),
                reflection.weight_kg,
                reflection.weight_trend_kg,
                reflection.sentiment.value if reflection.sentiment else None,
                reflection.previous.calories,
                reflection.previous.protein_g,
                reflection.previous.carbs_g,
                reflection.previous.fat_g,
                reflection.new.calories,
                reflection.new.protein_g,
                reflection.new.carbs_g,
                reflection.new.fat_g,
                reflection.weight_change_kg,
            ),
        )
        return cursor.lastrowid or 0

    @staticmethod
    def get_latest(conn: sqlite3.Connection) -> Optional[Reflection]:
        """Get the most recent reflection."""
        row = conn.execute(
            """
            SELECT * FROM reflections
            ORDER BY reflected_at DESC, reflection_id DESC LIMIT 1
            """
        ).fetchone()
        return ReflectionQueries._row_to_reflection(row) if row else None

    @staticmethod
    def get_last_reflection_date(conn: sqlite3.Connection) -> Optional[datetime]:
        """Timestamp of the most recent reflection."""
        row = conn.execute("SELECT MAX(reflected_at) FROM reflections").fetchone()
        return _parse_datetime(row[0]) if row else None

    @staticmethod
    def get_all(conn: sqlite3.Connection, limit: Optional[int] = None) -> list[Reflection]:
        """Reflection history, newest first."""
        query = "SELECT * FROM reflections ORDER BY reflected_at DESC, reflection_id DESC"
        params: list[Any] = []
        if limit:
            query += " LIMIT ?"
            params.append(limit)
        rows = conn.execute(query, params).fetchall()
        return [ReflectionQueries._row_to_reflection(row) for row in rows]


class SettingsQueries:
    """Key/value user settings. Values are stored as JSON text."""

    @staticmethod
    def get(conn: sqlite3.Connection, key: str, default: Any = None) -> Any:
        """Get a setting value, or ``default`` when unset."""
        row = conn.execute(
            "SELECT value FROM user_settings WHERE key = ?", (key,)
        ).fetchone()
        if row is None:
            return default
        return json.loads(row["value"])

    @staticmethod
    def set(
        conn: sqlite3.Connection,
        key: str,
        value: Any,
        now: Optional[datetime] = None,
    ) -> None:
        """Insert or overwrite a setting."""
        conn.execute(
            """
            INSERT INTO user_settings (key, value, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                updated_at = excluded.updated_at
            """,
            (key, json.dumps(value), _now_iso(now)),
        )

    @staticmethod
    def get_daily_goals(conn: sqlite3.Connection) -> Optional[TargetSnapshot]:
        """Daily calorie and macro goals, or None until all four are set."""
        values = {
            field: SettingsQueries.get(conn, key)
            for field, key in DAILY_GOAL_KEYS.items()
        }
        if any(v is None for v in values.values()):
            return None
        return TargetSnapshot(**values)

    @staticmethod
    def set_daily_goals(
        conn: sqlite3.Connection,
        targets: TargetSnapshot,
        now: Optional[datetime] = None,
    ) -> None:
        """Write all four daily goals."""
        for field, key in DAILY_GOAL_KEYS.items():
            SettingsQueries.set(conn, key, getattr(targets, field), now)

    @staticmethod
    def get_dismiss_count(conn: sqlite3.Connection) -> int:
        """How many times the reflection banner has been dismissed."""
        return int(SettingsQueries.get(conn, DISMISS_COUNT_KEY, 0))

    @staticmethod
    def set_dismiss_count(
        conn: sqlite3.Connection,
        count: int,
        now: Optional[datetime] = None,
    ) -> None:
        SettingsQueries.set(conn, DISMISS_COUNT_KEY, count, now)
