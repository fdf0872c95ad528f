"""SQLite-backed repositories for commitments and trust events.

Timestamps are stored as ISO-8601 text. Transitions are conditional
``UPDATE ... WHERE status = ?`` statements, so the row count decides which of
two racing writers wins.
"""

from __future__ import annotations

import logging
import sqlite3
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any

from pledge.domain.models import (
    Commitment,
    CommitmentStatus,
    TrustEvent,
    TrustEventFilter,
    TrustEventType,
)
from pledge.repos.base import StorageError

logger = logging.getLogger(__name__)

_COMMITMENT_COLUMNS = (
    "id",
    "owner_id",
    "who",
    "what",
    "deadline",
    "status",
    "snooze_count",
    "last_snoozed_at",
    "completed_at",
    "rescheduled_at",
    "rescheduled_to",
    "rescheduled_reason",
    "rescheduled_from",
    "created_at",
    "updated_at",
)

_DATETIME_COLUMNS = {
    "deadline",
    "last_snoozed_at",
    "completed_at",
    "rescheduled_at",
    "rescheduled_to",
    "created_at",
    "updated_at",
    "event_date",
}


def _to_db(column: str, value: Any) -> Any:
    if value is None:
        return None
    if column in _DATETIME_COLUMNS:
        return value.isoformat()
    if column == "status" or column == "event_type":
        return str(value)
    return value


def _from_db(row: sqlite3.Row) -> dict[str, Any]:
    data = dict(row)
    for column in _DATETIME_COLUMNS & data.keys():
        if data[column] is not None:
            data[column] = datetime.fromisoformat(data[column])
    return data


class _SQLiteStore(ABC):
    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        # A single shared connection keeps ":memory:" databases alive.
        self._conn = sqlite3.connect(db_path, check_same_thread=False, isolation_level=None)
        self._conn.row_factory = sqlite3.Row
        self._init_db()

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        try:
            return self._conn.execute(sql, params)
        except sqlite3.Error as exc:
            logger.error("SQLite error on %s: %s", self._db_path, exc)
            raise StorageError(str(exc)) from exc

    @abstractmethod
    def _init_db(self) -> None:
        """Create this store's tables and indexes if they are missing."""


class SQLiteCommitmentRepository(_SQLiteStore):
    """Commitments table with conditional status transitions."""

    def _init_db(self) -> None:
        self._execute("""
            CREATE TABLE IF NOT EXISTS commitments (
                id                 TEXT    PRIMARY KEY,
                owner_id           TEXT    NOT NULL,
                who                TEXT    NOT NULL,
                what               TEXT    NOT NULL,
                deadline           TEXT    NOT NULL,
                status             TEXT    NOT NULL DEFAULT 'pending',
                snooze_count       INTEGER NOT NULL DEFAULT 0,
                last_snoozed_at    TEXT,
                completed_at       TEXT,
                rescheduled_at     TEXT,
                rescheduled_to     TEXT,
                rescheduled_reason TEXT,
                rescheduled_from   TEXT,
                created_at         TEXT    NOT NULL,
                updated_at         TEXT    NOT NULL
            )
        """)
        self._execute(
            "CREATE INDEX IF NOT EXISTS idx_commitments_owner ON commitments (owner_id, status)"
        )
        logger.debug("Commitments table initialized at %s", self._db_path)

    def insert(self, commitment: Commitment) -> None:
        data = commitment.model_dump()
        placeholders = ", ".join("?" for _ in _COMMITMENT_COLUMNS)
        self._execute(
            f"INSERT INTO commitments ({', '.join(_COMMITMENT_COLUMNS)}) VALUES ({placeholders})",
            tuple(_to_db(col, data[col]) for col in _COMMITMENT_COLUMNS),
        )

    def get(self, commitment_id: str, owner_id: str) -> Commitment | None:
        row = self._execute(
            "SELECT * FROM commitments WHERE id = ? AND owner_id = ?",
            (commitment_id, owner_id),
        ).fetchone()
        return Commitment(**_from_db(row)) if row else None

    def list_by_owner(self, owner_id: str) -> list[Commitment]:
        rows = self._execute(
            "SELECT * FROM commitments WHERE owner_id = ?", (owner_id,)
        ).fetchall()
        return [Commitment(**_from_db(row)) for row in rows]

    def delete(self, commitment_id: str) -> None:
        self._execute("DELETE FROM commitments WHERE id = ?", (commitment_id,))

    def conditional_update(
        self,
        commitment_id: str,
        expected_status: CommitmentStatus,
        patch: dict[str, Any],
        expected_snooze_count: int | None = None,
    ) -> Commitment | None:
        unknown = set(patch) - set(_COMMITMENT_COLUMNS)
        if unknown:
            raise ValueError(f"Unknown commitment columns: {sorted(unknown)}")

        assignments = ", ".join(f"{col} = ?" for col in patch)
        params: list[Any] = [_to_db(col, value) for col, value in patch.items()]
        sql = f"UPDATE commitments SET {assignments} WHERE id = ? AND status = ?"
        params += [commitment_id, str(expected_status)]
        if expected_snooze_count is not None:
            sql += " AND snooze_count = ?"
            params.append(expected_snooze_count)

        cursor = self._execute(sql, tuple(params))
        if cursor.rowcount != 1:
            return None
        row = self._execute("SELECT * FROM commitments WHERE id = ?", (commitment_id,)).fetchone()
        return Commitment(**_from_db(row))


class SQLiteTrustEventRepository(_SQLiteStore):
    """Append-only trust_events table."""

    def _init_db(self) -> None:
        self._execute("""
            CREATE TABLE IF NOT EXISTS trust_events (
                id            TEXT PRIMARY KEY,
                owner_id      TEXT NOT NULL,
                event_type    TEXT NOT NULL,
                commitment_id TEXT,
                event_date    TEXT NOT NULL,
                details       TEXT
            )
        """)
        logger.debug("Trust events table initialized at %s", self._db_path)

    def append(self, event: TrustEvent) -> None:
        data = event.model_dump()
        columns = ("id", "owner_id", "event_type", "commitment_id", "event_date", "details")
        self._execute(
            f"INSERT INTO trust_events ({', '.join(columns)}) VALUES (?, ?, ?, ?, ?, ?)",
            tuple(_to_db(col, data[col]) for col in columns),
        )

    def query(self, event_filter: TrustEventFilter) -> list[TrustEvent]:
        sql = "SELECT * FROM trust_events WHERE owner_id = ?"
        params: list[Any] = [event_filter.owner_id]
        if event_filter.event_type is not None:
            sql += " AND event_type = ?"
            params.append(str(event_filter.event_type))
        if event_filter.commitment_id is not None:
            sql += " AND commitment_id = ?"
            params.append(event_filter.commitment_id)

        events = [TrustEvent(**_from_db(row)) for row in self._execute(sql, tuple(params))]
        if event_filter.since is not None:
            events = [e for e in events if e.event_date >= event_filter.since]
        return sorted(events, key=lambda e: e.event_date)

    def latest(self, owner_id: str, event_type: TrustEventType) -> TrustEvent | None:
        events = self.query(TrustEventFilter(owner_id=owner_id, event_type=event_type))
        return events[-1] if events else None
