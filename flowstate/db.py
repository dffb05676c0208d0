from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
import json
import logging
import os
from pathlib import Path
import sqlite3
from typing import Any, Iterator

from .config import default_db_path
from .errors import UpstreamError

logger = logging.getLogger(__name__)

_TS_FORMAT = "%Y-%m-%dT%H:%M:%S.%f"


def _to_utc_text(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime(_TS_FORMAT)


def _from_utc_text(text: str | None) -> datetime | None:
    if not text:
        return None
    return datetime.strptime(text, _TS_FORMAT).replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class FlowSession:
    id: int
    user_id: str
    task_context: str
    started_at: datetime
    ended_at: datetime | None
    duration_minutes: int | None
    quality_score: int | None
    triggers: list[str]
    breakers: list[dict[str, Any]]
    interruptions: int
    time_of_day: str
    day_of_week: int

    @property
    def is_active(self) -> bool:
        return self.ended_at is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "task_context": self.task_context,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "duration_minutes": self.duration_minutes,
            "quality_score": self.quality_score,
            "triggers": list(self.triggers),
            "breakers": [dict(item) for item in self.breakers],
            "interruptions": self.interruptions,
            "time_of_day": self.time_of_day,
            "day_of_week": self.day_of_week,
        }


@dataclass(frozen=True)
class FlowPattern:
    user_id: str
    payload: dict[str, Any] = field(default_factory=dict)
    sample_count: int = 0
    confidence: float = 0.0
    last_updated: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "payload": self.payload,
            "sample_count": self.sample_count,
            "confidence": self.confidence,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
        }


_SESSION_COLUMNS = (
    "id, user_id, task_context, started_at, ended_at, duration_minutes, quality_score, "
    "triggers, breakers, interruptions, time_of_day, day_of_week"
)


class FlowDB:
    def __init__(self, db_path: Path | None = None, journal_mode: str | None = None) -> None:
        self.db_path = Path(db_path or default_db_path())
        raw_mode = (journal_mode or os.getenv("FLOWSTATE_JOURNAL_MODE") or "MEMORY").strip()
        self.journal_mode = raw_mode.upper() if raw_mode else "MEMORY"
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.init_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        self._apply_journal_mode(conn)
        conn.execute("PRAGMA synchronous=NORMAL")
        return conn

    def _apply_journal_mode(self, conn: sqlite3.Connection) -> None:
        try:
            conn.execute(f"PRAGMA journal_mode={self.journal_mode}")
        except sqlite3.OperationalError:
            conn.execute("PRAGMA journal_mode=MEMORY")

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = self._connect()
        except sqlite3.Error as exc:
            logger.error("cannot open %s: %s", self.db_path, exc)
            raise UpstreamError(f"storage unavailable: {exc}") from exc
        try:
            with conn:
                yield conn
        except sqlite3.Error as exc:
            logger.error("storage operation failed: %s", exc)
            raise UpstreamError(f"storage operation failed: {exc}") from exc
        finally:
            conn.close()

    def init_schema(self) -> None:
        with self._transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS flow_sessions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    task_context TEXT NOT NULL DEFAULT '',
                    started_at TEXT NOT NULL,
                    ended_at TEXT,
                    duration_minutes INTEGER CHECK (duration_minutes IS NULL OR duration_minutes >= 0),
                    quality_score INTEGER CHECK (quality_score IS NULL OR quality_score BETWEEN 0 AND 100),
                    triggers TEXT NOT NULL DEFAULT '[]',
                    breakers TEXT NOT NULL DEFAULT '[]',
                    interruptions INTEGER NOT NULL DEFAULT 0,
                    time_of_day TEXT NOT NULL CHECK (time_of_day IN ('night', 'morning', 'afternoon', 'evening')),
                    day_of_week INTEGER NOT NULL CHECK (day_of_week BETWEEN 0 AND 6),
                    CHECK (ended_at IS NULL OR ended_at >= started_at)
                )
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_flow_sessions_user_started
                ON flow_sessions(user_id, started_at)
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS flow_patterns (
                    user_id TEXT PRIMARY KEY,
                    payload TEXT NOT NULL DEFAULT '{}',
                    sample_count INTEGER NOT NULL DEFAULT 0,
                    confidence REAL NOT NULL DEFAULT 0 CHECK (confidence BETWEEN 0 AND 1),
                    last_updated TEXT NOT NULL
                )
                """
            )

    def insert_session(
        self,
        user_id: str,
        task_context: str,
        started_at: datetime,
        time_of_day: str,
        day_of_week: int,
    ) -> FlowSession:
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO flow_sessions (user_id, task_context, started_at, time_of_day, day_of_week)
                VALUES (?, ?, ?, ?, ?)
                """,
                (user_id, task_context.strip(), _to_utc_text(started_at), time_of_day, int(day_of_week)),
            )
            session_id = int(cursor.lastrowid)
            row = self._select_session(conn, session_id)
            if row is None:
                raise UpstreamError(f"flow session {session_id} missing after insert")
        return row

    def get_session(self, session_id: int) -> FlowSession | None:
        with self._transaction() as conn:
            return self._select_session(conn, session_id)

    def append_breaker(self, session_id: int, breaker: dict[str, Any]) -> FlowSession | None:
        """Append one breaker and bump the counter; no-op unless the session is active."""
        with self._transaction() as conn:
            current = self._select_session(conn, session_id)
            if current is None or not current.is_active:
                return None
            breakers = [*current.breakers, breaker]
            conn.execute(
                """
                UPDATE flow_sessions
                SET breakers = ?, interruptions = interruptions + 1
                WHERE id = ? AND ended_at IS NULL
                """,
                (json.dumps(breakers, ensure_ascii=False), session_id),
            )
            return self._select_session(conn, session_id)

    def finalize_session(
        self,
        session_id: int,
        ended_at: datetime,
        duration_minutes: int,
        quality_score: int,
        triggers: list[str],
        breakers: list[dict[str, Any]],
        last_session: dict[str, Any] | None = None,
    ) -> FlowSession | None:
        """Close an active session.

        When `last_session` is given it is merged into the owner's pattern row in the
        same transaction, so a failed merge leaves the session active.
        """
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE flow_sessions
                SET ended_at = ?, duration_minutes = ?, quality_score = ?, triggers = ?, breakers = ?
                WHERE id = ? AND ended_at IS NULL
                """,
                (
                    _to_utc_text(ended_at),
                    int(max(0, duration_minutes)),
                    int(quality_score),
                    json.dumps(triggers, ensure_ascii=False),
                    json.dumps(breakers, ensure_ascii=False),
                    session_id,
                ),
            )
            if cursor.rowcount != 1:
                return None
            finalized = self._select_session(conn, session_id)
            if finalized is None:
                raise UpstreamError(f"flow session {session_id} missing after update")
            if last_session is not None:
                self._merge_last_session(conn, finalized.user_id, last_session, ended_at)
            return finalized
            return finalized

    def list_sessions(self, user_id: str, limit: int = 20) -> list[FlowSession]:
        safe_limit = max(1, min(2000, int(limit)))
        query = (
            f"SELECT {_SESSION_COLUMNS} FROM flow_sessions "
            "WHERE user_id = ? "
            "ORDER BY started_at DESC, id DESC "
            "LIMIT ?"
        )
        return self._read_sessions(query, [user_id, safe_limit])

    def list_finished_sessions(self, user_id: str, since: datetime) -> list[FlowSession]:
        query = (
            f"SELECT {_SESSION_COLUMNS} FROM flow_sessions "
            "WHERE user_id = ? AND started_at > ? AND ended_at IS NOT NULL "
            "ORDER BY started_at DESC, id DESC"
        )
        return self._read_sessions(query, [user_id, _to_utc_text(since)])

    def get_pattern(self, user_id: str) -> FlowPattern | None:
        with self._transaction() as conn:
            return self._select_pattern(conn, user_id)

    def upsert_pattern(
        self,
        user_id: str,
        payload: dict[str, Any],
        sample_count: int,
        confidence: float,
        updated_at: datetime,
    ) -> FlowPattern:
        with self._transaction() as conn:
            self._write_pattern(conn, user_id, payload, sample_count, confidence, updated_at)
            return self._reread_pattern(conn, user_id)

    def merge_last_session(self, user_id: str, snippet: dict[str, Any], updated_at: datetime) -> FlowPattern:
        """Store the latest session summary without touching the aggregate fields."""
        with self._transaction() as conn:
            return self._merge_last_session(conn, user_id, snippet, updated_at)

    def _merge_last_session(
        self,
        conn: sqlite3.Connection,
        user_id: str,
        snippet: dict[str, Any],
        updated_at: datetime,
    ) -> FlowPattern:
        current = self._select_pattern(conn, user_id) or FlowPattern(user_id=user_id)
        payload = dict(current.payload)
        payload["last_session"] = snippet
        self._write_pattern(conn, user_id, payload, current.sample_count, current.confidence, updated_at)
        return self._reread_pattern(conn, user_id)

    def _write_pattern(
        self,
        conn: sqlite3.Connection,
        user_id: str,
        payload: dict[str, Any],
        sample_count: int,
        confidence: float,
        updated_at: datetime,
    ) -> None:
        conn.execute(
            """
            INSERT INTO flow_patterns (user_id, payload, sample_count, confidence, last_updated)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(user_id) DO UPDATE SET
                payload = excluded.payload,
                sample_count = excluded.sample_count,
                confidence = excluded.confidence,
                last_updated = excluded.last_updated
            """,
            (
                user_id,
                json.dumps(payload, ensure_ascii=False),
                int(max(0, sample_count)),
                float(min(1.0, max(0.0, confidence))),
                _to_utc_text(updated_at),
            ),
        )

    def _select_session(self, conn: sqlite3.Connection, session_id: int) -> FlowSession | None:
        row = conn.execute(
            f"SELECT {_SESSION_COLUMNS} FROM flow_sessions WHERE id = ?",
            (session_id,),
        ).fetchone()
        return _row_to_session(row) if row is not None else None

    def _select_pattern(self, conn: sqlite3.Connection, user_id: str) -> FlowPattern | None:
        row = conn.execute(
            "SELECT user_id, payload, sample_count, confidence, last_updated FROM flow_patterns WHERE user_id = ?",
            (user_id,),
        ).fetchone()
        if row is None:
            return None
        return FlowPattern(
            user_id=row["user_id"],
            payload=json.loads(row["payload"] or "{}"),
            sample_count=int(row["sample_count"]),
            confidence=float(row["confidence"]),
            last_updated=_from_utc_text(row["last_updated"]),
        )

    def _reread_pattern(self, conn: sqlite3.Connection, user_id: str) -> FlowPattern:
        pattern = self._select_pattern(conn, user_id)
        if pattern is None:
            raise UpstreamError(f"flow pattern for {user_id} missing after write")
        return pattern

    def _read_sessions(self, query: str, params: list[object]) -> list[FlowSession]:
        with self._transaction() as conn:
            rows = conn.execute(query, params).fetchall()
        return [_row_to_session(row) for row in rows]


def _row_to_session(row: sqlite3.Row) -> FlowSession:
    return FlowSession(
        id=int(row["id"]),
        user_id=row["user_id"],
        task_context=row["task_context"] or "",
        started_at=datetime.strptime(row["started_at"], _TS_FORMAT).replace(tzinfo=timezone.utc),
        ended_at=_from_utc_text(row["ended_at"]),
        duration_minutes=None if row["duration_minutes"] is None else int(row["duration_minutes"]),
        quality_score=None if row["quality_score"] is None else int(row["quality_score"]),
        triggers=list(json.loads(row["triggers"] or "[]")),
        breakers=list(json.loads(row["breakers"] or "[]")),
        interruptions=int(row["interruptions"]),
        time_of_day=row["time_of_day"],
        day_of_week=int(row["day_of_week"]),
    )
