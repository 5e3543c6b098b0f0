"""SQLite-backed persistence: key-value records and activity sessions."""
from __future__ import annotations

import json
import logging
import shutil
import sqlite3
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from .models import TrackingResult

LOGGER = logging.getLogger(__name__)

SESSION_TYPES = ("focus", "break", "idle")


class _SqliteBase:
    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    @contextmanager
    def _get_conn(self) -> Iterable[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path)
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            LOGGER.exception("Database operation failed")
            raise
        finally:
            conn.close()

    def _init_db(self) -> None:  # pragma: no cover - overridden
        raise NotImplementedError

    def backup(self) -> Path:
        timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
        target = self.db_path.with_name(f"{self.db_path.stem}-backup-{timestamp}{self.db_path.suffix}")
        shutil.copy2(self.db_path, target)
        LOGGER.info("Database backed up to %s", target)
        return target


class KeyValueStore(_SqliteBase):
    """JSON documents keyed by string, one row per key."""

    def _init_db(self) -> None:
        with self._get_conn() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )

    def write(self, key: str, payload: Dict[str, Any]) -> None:
        value = json.dumps(payload)
        with self._get_conn() as conn:
            conn.execute(
                """
                INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                """,
                (key, value, datetime.now().isoformat(timespec="seconds")),
            )

    def read(self, key: str) -> Optional[Dict[str, Any]]:
        with self._get_conn() as conn:
            row = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
        if row is None:
            return None
        try:
            payload = json.loads(row[0])
        except json.JSONDecodeError:
            LOGGER.warning("Stored value for %s is not valid JSON", key)
            return None
        return payload if isinstance(payload, dict) else None

    def delete(self, key: str) -> None:
        with self._get_conn() as conn:
            conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))


@dataclass
class ActivitySession:
    """A tracked focus or break interval."""

    id: str
    user_id: str
    start_time: datetime
    end_time: Optional[datetime]
    type: str
    task_id: Optional[str] = None
    project_id: Optional[str] = None

    @property
    def duration_minutes(self) -> float:
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds() / 60.0

    @classmethod
    def from_row(cls, row: tuple) -> "ActivitySession":
        return cls(
            id=row[0],
            user_id=row[1],
            start_time=datetime.fromisoformat(row[2]),
            end_time=datetime.fromisoformat(row[3]) if row[3] else None,
            type=row[4],
            task_id=row[5],
            project_id=row[6] if len(row) > 6 else None,
        )


class ActivityStore(_SqliteBase):
    """Local Activity Tracking Service recording session intervals per user."""

    def __init__(self, db_path: Path, user_id: str = "guest") -> None:
        self.user_id = user_id
        super().__init__(db_path)

    def _init_db(self) -> None:
        with self._get_conn() as conn:
            cur = conn.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS activity_sessions (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    start_time TEXT NOT NULL,
                    end_time TEXT,
                    type TEXT NOT NULL CHECK(type IN ('focus', 'break', 'idle')),
                    task_id TEXT,
                    project_id TEXT
                )
                """
            )
            cur.execute(
                "CREATE INDEX IF NOT EXISTS idx_sessions_user_time ON activity_sessions(user_id, start_time)"
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS task_completions (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    task_id TEXT NOT NULL,
                    completed_at TEXT NOT NULL,
                    duration INTEGER
                )
                """
            )

    def start_session(
        self, session_type: str, task_id: Optional[str] = None, project_id: Optional[str] = None
    ) -> TrackingResult:
        if session_type not in SESSION_TYPES:
            return TrackingResult(ok=False, error=f"Unknown session type {session_type}")
        session_id = uuid.uuid4().hex
        with self._get_conn() as conn:
            conn.execute(
                """
                INSERT INTO activity_sessions (id, user_id, start_time, end_time, type, task_id, project_id)
                VALUES (?, ?, ?, NULL, ?, ?, ?)
                """,
                (session_id, self.user_id, datetime.now().isoformat(), session_type, task_id, project_id),
            )
        LOGGER.debug("Started %s session %s", session_type, session_id)
        return TrackingResult(ok=True, session_id=session_id)

    def end_session(self, session_id: str) -> TrackingResult:
        with self._get_conn() as conn:
            cur = conn.execute(
                "UPDATE activity_sessions SET end_time = ? WHERE id = ? AND user_id = ? AND end_time IS NULL",
                (datetime.now().isoformat(), session_id, self.user_id),
            )
            updated = cur.rowcount
        if not updated:
            return TrackingResult(ok=False, error=f"No open session {session_id}")
        LOGGER.debug("Ended session %s", session_id)
        return TrackingResult(ok=True, session_id=session_id)

    def get_session(self, session_id: str) -> Optional[ActivitySession]:
        with self._get_conn() as conn:
            row = conn.execute(
                """
                SELECT id, user_id, start_time, end_time, type, task_id, project_id
                FROM activity_sessions WHERE id = ?
                """,
                (session_id,),
            ).fetchone()
        return ActivitySession.from_row(row) if row else None

    def get_summary(self, start_date: date, end_date: date) -> List[ActivitySession]:
        """Sessions that started between ``start_date`` and ``end_date`` inclusive."""
        upper = end_date + timedelta(days=1)
        with self._get_conn() as conn:
            rows = conn.execute(
                """
                SELECT id, user_id, start_time, end_time, type, task_id, project_id
                FROM activity_sessions
                WHERE user_id = ? AND start_time >= ? AND start_time < ?
                ORDER BY start_time ASC
                """,
                (self.user_id, start_date.isoformat(), upper.isoformat()),
            ).fetchall()
        return [ActivitySession.from_row(row) for row in rows]

    def clear_sessions(self, after: Optional[date] = None) -> int:
        """Delete this user's sessions, or only those started on/after ``after``."""
        sql = "DELETE FROM activity_sessions WHERE user_id = ?"
        params: List[object] = [self.user_id]
        if after is not None:
            sql += " AND start_time >= ?"
            params.append(after.isoformat())
        with self._get_conn() as conn:
            removed = conn.execute(sql, params).rowcount
        LOGGER.info("Cleared %s activity sessions", removed)
        return removed

    def record_task_completion(self, task_id: str, duration: Optional[int] = None) -> TrackingResult:
        completion_id = uuid.uuid4().hex
        with self._get_conn() as conn:
            conn.execute(
                "INSERT INTO task_completions (id, user_id, task_id, completed_at, duration) VALUES (?, ?, ?, ?, ?)",
                (completion_id, self.user_id, task_id, datetime.now().isoformat(), duration),
            )
        LOGGER.info("Recorded completion of task %s", task_id)
        return TrackingResult(ok=True, session_id=completion_id)

    def count_task_completions(self, task_id: Optional[str] = None) -> int:
        sql = "SELECT COUNT(*) FROM task_completions WHERE user_id = ?"
        params: List[object] = [self.user_id]
        if task_id is not None:
            sql += " AND task_id = ?"
            params.append(task_id)
        with self._get_conn() as conn:
            return conn.execute(sql, params).fetchone()[0]
