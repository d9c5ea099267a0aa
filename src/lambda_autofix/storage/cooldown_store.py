"""
SQLite-based persistence of cooldown state and attempt history.

The orchestrator owns the in-memory ``CooldownTable`` during a cycle; this
store carries it between process invocations, so a scheduled ``run`` keeps
honouring cooldowns and open circuits from earlier runs.
"""
import logging
import sqlite3
import json
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path
from typing import Iterable, List, Optional

from ..models import AttemptRecord, CooldownEntry
from ..remediation.cooldown import CooldownTable
from ..utils import utc_now

logger = logging.getLogger(__name__)


class CooldownStore:
    """
    SQLite storage for cooldown entries and attempt records.

    Example:
        >>> store = CooldownStore("autofix-state.db")
        >>> table = store.load()
        >>> summary = await orchestrator.run_cycle(config)
        >>> store.save(table)
        >>> store.record_attempts(summary.attempts)
    """

    def __init__(self, db_path: str | Path = "lambda_autofix.db"):
        """
        Initialize cooldown store.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path).expanduser()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_database()

    def _init_database(self) -> None:
        """Initialize database schema."""
        with self._get_connection() as conn:
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS cooldown_entries (
                    resource_id TEXT PRIMARY KEY,
                    last_attempt_at TEXT NOT NULL,
                    consecutive_failures INTEGER NOT NULL,
                    attempts INTEGER NOT NULL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS attempts (
                    attempt_id TEXT PRIMARY KEY,
                    resource_id TEXT NOT NULL,
                    outcome TEXT NOT NULL,
                    failure_kind TEXT,
                    started_timestamp REAL NOT NULL,
                    record TEXT NOT NULL
                )
            """)

            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_attempts_resource
                ON attempts(resource_id, started_timestamp)
            """)

            conn.commit()

        logger.debug(f"Initialized cooldown store at {self.db_path}")

    @contextmanager
    def _get_connection(self):
        """Context manager for database connections."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def load(self) -> CooldownTable:
        """Load the persisted cooldown table (empty when nothing is stored)."""
        with self._get_connection() as conn:
            rows = conn.execute("SELECT * FROM cooldown_entries").fetchall()

        entries = {
            row['resource_id']: CooldownEntry(
                resource_id=row['resource_id'],
                last_attempt_at=datetime.fromisoformat(row['last_attempt_at']),
                consecutive_failures=row['consecutive_failures'],
                attempts=row['attempts'],
            )
            for row in rows
        }
        logger.debug(f"Loaded {len(entries)} cooldown entries")
        return CooldownTable(entries)

    def save(self, table: CooldownTable) -> bool:
        """
        Replace the persisted cooldown entries with ``table``.

        Returns:
            True if stored successfully
        """
        try:
            with self._get_connection() as conn:
                cursor = conn.cursor()
                cursor.execute("DELETE FROM cooldown_entries")
                cursor.executemany("""
                    INSERT INTO cooldown_entries (
                        resource_id, last_attempt_at, consecutive_failures, attempts
                    ) VALUES (?, ?, ?, ?)
                """, [
                    (
                        entry.resource_id,
                        entry.last_attempt_at.isoformat(),
                        entry.consecutive_failures,
                        entry.attempts,
                    )
                    for entry in table
                ])
                conn.commit()
                logger.debug(f"Saved {len(table)} cooldown entries")
                return True

        except sqlite3.Error as e:
            logger.error(f"Error saving cooldown entries: {e}")
            return False

    def record_attempts(self, records: Iterable[AttemptRecord]) -> bool:
        """
        Append attempt records to the history.

        Returns:
            True if stored successfully
        """
        try:
            with self._get_connection() as conn:
                cursor = conn.cursor()
                cursor.executemany("""
                    INSERT OR REPLACE INTO attempts (
                        attempt_id, resource_id, outcome, failure_kind,
                        started_timestamp, record
                    ) VALUES (?, ?, ?, ?, ?, ?)
                """, [
                    (
                        record.attempt_id,
                        record.resource_id,
                        record.outcome.value,
                        record.failure_kind.value if record.failure_kind else None,
                        record.started_at.timestamp(),
                        record.model_dump_json(),
                    )
                    for record in records
                ])
                conn.commit()
                return True

        except sqlite3.Error as e:
            logger.error(f"Error storing attempt records: {e}")
            return False

    def get_attempts(
        self,
        resource_id: Optional[str] = None,
        limit: int = 50
    ) -> List[AttemptRecord]:
        """
        Most recent attempt records, newest first.

        Args:
            resource_id: Restrict to one resource
            limit: Maximum number of records
        """
        query = "SELECT record FROM attempts"
        params: list = []
        if resource_id:
            query += " WHERE resource_id = ?"
            params.append(resource_id)
        query += " ORDER BY started_timestamp DESC LIMIT ?"
        params.append(limit)

        with self._get_connection() as conn:
            rows = conn.execute(query, params).fetchall()

        return [AttemptRecord.model_validate(json.loads(row['record'])) for row in rows]

    def cleanup_old_attempts(self, days: int = 90) -> int:
        """
        Remove attempt records older than specified days.

        Returns:
            Number of records removed
        """
        cutoff = (utc_now() - timedelta(days=days)).timestamp()

        with self._get_connection() as conn:
            cursor = conn.execute(
                "DELETE FROM attempts WHERE started_timestamp < ?", (cutoff,)
            )
            conn.commit()
            removed = cursor.rowcount

        logger.info(f"Removed {removed} attempt records older than {days} days")
        return removed
