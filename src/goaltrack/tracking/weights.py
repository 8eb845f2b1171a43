"""In-memory view over the weight log: latest entry and trend weight."""

from __future__ import annotations

import logging
import math
import sqlite3
from datetime import date, datetime, timedelta
from typing import Callable, Optional

from goaltrack.db.connection import DatabaseConnection
from goaltrack.tracking.ema import calculate_trend_weight, estimate_weekly_change
from goaltrack.tracking.models import WeightEntry
from goaltrack.tracking.queries import WeightQueries

logger = logging.getLogger(__name__)


class WeightLog:
    """Latest weight and trend weight as of today, reloaded on demand.

    Entries dated after today are kept but ignored by both views. Loads
    degrade to None on storage errors; writes propagate them.
    """

    def __init__(
        self,
        db: DatabaseConnection,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.db = db
        self.clock = clock
        self.latest_entry: Optional[WeightEntry] = None
        self.trend_weight: Optional[float] = None

    @property
    def latest_weight(self) -> Optional[float]:
        return self.latest_entry.weight_kg if self.latest_entry else None

    def load_latest(self) -> Optional[WeightEntry]:
        try:
            with self.db.get_connection() as conn:
                self.latest_entry = WeightQueries.get_latest(
                    conn, on_or_before=self.clock().date()
                )
        except (sqlite3.Error, ValueError):
            logger.warning("Failed to load latest weight", exc_info=True)
            self.latest_entry = None
        return self.latest_entry

    def load_trend_weight(self) -> Optional[float]:
        try:
            with self.db.get_connection() as conn:
                entries = WeightQueries.get_all_for_trend(conn)
            self.trend_weight = calculate_trend_weight(entries, at_date=self.clock().date())
        except (sqlite3.Error, ValueError):
            logger.warning("Failed to load trend weight", exc_info=True)
            self.trend_weight = None
        return self.trend_weight

    def reload(self) -> None:
        """Refresh both views."""
        self.load_latest()
        self.load_trend_weight()

    def weekly_change(self, days: int = 14) -> Optional[float]:
        """Trend change per week over the last ``days`` days.

        None when there is no entry on or before the start of the window.
        """
        today = self.clock().date()
        with self.db.get_connection() as conn:
            entries = WeightQueries.get_all_for_trend(conn)
        start = calculate_trend_weight(entries, at_date=today - timedelta(days=days))
        end = calculate_trend_weight(entries, at_date=today)
        if start is None or end is None:
            return None
        return estimate_weekly_change(start, end, days)

    def add_entry(
        self,
        entry_date: date,
        weight_kg: float,
        notes: Optional[str] = None,
    ) -> WeightEntry:
        """Upsert a weight for a date and refresh the views."""
        if not math.isfinite(weight_kg) or weight_kg <= 0:
            raise ValueError(f"Weight must be positive, got {weight_kg}")

        with self.db.transaction() as conn:
            entry = WeightQueries.upsert_weight(conn, entry_date, weight_kg, notes)
        logger.info("Recorded %.1f kg for %s", weight_kg, entry_date.isoformat())
        self.reload()
        return entry

    def delete_entry(self, entry_date: date) -> bool:
        """Delete the entry for a date; later trends are recomputed."""
        with self.db.transaction() as conn:
            deleted = WeightQueries.delete_by_date(conn, entry_date)
        if deleted:
            self.reload()
        return deleted

    def history(self, limit: Optional[int] = None) -> list[WeightEntry]:
        with self.db.get_connection() as conn:
            return WeightQueries.get_history(conn, limit=limit)
