"""Database connection management using raw sqlite3."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Generator, Optional, TypeVar

from goaltrack.db.schema import get_schema_sql

T = TypeVar("T")


class DatabaseConnection:
    """Manages SQLite database connections."""

    def __init__(self, db_path: Path):
        """Initialize database connection manager.

        Args:
            db_path: Path to the SQLite database file
        """
        self.db_path = db_path
        self._ensure_directory()

    def _ensure_directory(self) -> None:
        """Create parent directories if they don't exist."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Context manager for database connections.

        Everything issued through the yielded connection is committed when
        the block exits normally and rolled back if it raises.

        Yields:
            sqlite3.Connection with Row factory enabled

        Example:
            with db.get_connection() as conn:
                row = conn.execute("SELECT * FROM goals").fetchone()
        """
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row  # Enable dict-like access
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Generator[sqlite3.Connection, None, None]:
        """Run a block of writes as one atomic unit.

        Opens the transaction eagerly with ``BEGIN IMMEDIATE`` so reads made
        inside the block see a stable snapshot and no other writer can slip
        in between them and the writes.

        Example:
            with db.transaction() as conn:
                WeightQueries.upsert_weight(conn, today, 82.4)
                ReflectionQueries.create_reflection(conn, reflection)
        """
        with self.get_connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            yield conn

    def with_transaction(self, fn: Callable[[sqlite3.Connection], T]) -> T:
        """Call ``fn`` with a transactional handle and return its result.

        Any exception raised by ``fn`` rolls back every write it issued and
        propagates to the caller; normal return commits them all.
        """
        with self.transaction() as conn:
            return fn(conn)

    def initialize_schema(self) -> None:
        """Create all tables if they don't exist."""
        with self.get_connection() as conn:
            conn.executescript(get_schema_sql())

    def table_exists(self, table_name: str) -> bool:
        """Check if a table exists in the database.

        Args:
            table_name: Name of the table to check

        Returns:
            True if table exists
        """
        query = """
            SELECT name FROM sqlite_master
            WHERE type='table' AND name=?
        """
        with self.get_connection() as conn:
            cursor = conn.execute(query, (table_name,))
            return cursor.fetchone() is not None

    def get_table_count(self, table_name: str) -> int:
        """Get the number of rows in a table.

        Args:
            table_name: Name of the table

        Returns:
            Row count
        """
        # Note: table_name is validated by checking it exists first
        if not self.table_exists(table_name):
            return 0
        with self.get_connection() as conn:
            cursor = conn.execute(f"SELECT COUNT(*) FROM {table_name}")
            result = cursor.fetchone()
            return result[0] if result else 0


# Global database instance (lazy loaded)
_db: Optional[DatabaseConnection] = None


def get_db() -> DatabaseConnection:
    """Get the global database instance.

    Lazily initializes the database connection using settings.

    Returns:
        DatabaseConnection instance
    """
    global _db
    if _db is None:
        from goaltrack.config import get_settings

        settings = get_settings()
        _db = DatabaseConnection(settings.database.path)
    return _db


def set_db(db: Optional[DatabaseConnection]) -> None:
    """Set the global database instance.

    Useful for testing with a custom database.

    Args:
        db: DatabaseConnection instance to use
    """
    global _db
    _db = db
