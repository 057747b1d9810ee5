"""Persistence layer for the ledger event log."""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, List, Optional, Protocol

from .schemas import EventLogRecord

SCHEMA_VERSION = 1


class StorageAdapter(Protocol):
    """Interface describing event log backends (SQLite, Postgres, ...)."""

    def record_event_log(self, event: EventLogRecord) -> None:
        ...

    def list_event_logs(
        self,
        limit: int = 200,
        event_type: Optional[str] = None,
        correlation_id: Optional[str] = None,
    ) -> List[EventLogRecord]:
        ...


CREATE_EVENT_LOG_TABLE = """
CREATE TABLE IF NOT EXISTS event_logs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp TEXT NOT NULL,
    event_type TEXT NOT NULL,
    severity TEXT NOT NULL,
    payload TEXT NOT NULL,
    source TEXT,
    correlation_id TEXT
);
"""

CREATE_EVENT_LOG_TYPE_INDEX = """
CREATE INDEX IF NOT EXISTS idx_event_logs_type ON event_logs (event_type);
"""

CREATE_SCHEMA_VERSION_TABLE = """
CREATE TABLE IF NOT EXISTS schema_migrations (
    version INTEGER NOT NULL
);
"""


def _encode_payload(payload: dict) -> str:
    # Amounts can exceed 64 bits; json keeps Python ints exact.
    return json.dumps(payload, separators=(",", ":"), default=str)


class SQLiteStorage:
    """Append-only SQLite store for committed ledger events."""

    def __init__(self, database_path: Path) -> None:
        self._database_path = Path(database_path).expanduser().resolve()
        self._initialize()

    @property
    def database_path(self) -> Path:
        return self._database_path

    def _initialize(self) -> None:
        self._database_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as con:
            con.execute(CREATE_SCHEMA_VERSION_TABLE)
            con.execute(CREATE_EVENT_LOG_TABLE)
            con.execute(CREATE_EVENT_LOG_TYPE_INDEX)
            if self._get_schema_version(con) != SCHEMA_VERSION:
                self._set_schema_version(con, SCHEMA_VERSION)
            con.commit()

    def _get_schema_version(self, con: sqlite3.Connection) -> int:
        cur = con.execute("SELECT version FROM schema_migrations ORDER BY ROWID DESC LIMIT 1")
        row = cur.fetchone()
        if row is None:
            return 0
        try:
            return int(row[0])
        except (TypeError, ValueError):  # pragma: no cover - defensive
            return 0

    def _set_schema_version(self, con: sqlite3.Connection, version: int) -> None:
        con.execute("DELETE FROM schema_migrations")
        con.execute("INSERT INTO schema_migrations (version) VALUES (?)", (version,))

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        con = sqlite3.connect(self._database_path)
        try:
            yield con
        finally:
            con.close()

    def record_event_log(self, event: EventLogRecord) -> None:
        with self._connect() as con:
            cur = con.execute(
                """
                INSERT INTO event_logs (
                    timestamp,
                    event_type,
                    severity,
                    payload,
                    source,
                    correlation_id
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    event.timestamp.isoformat(),
                    event.event_type,
                    event.severity,
                    _encode_payload(event.payload),
                    event.source,
                    event.correlation_id,
                ),
            )
            con.commit()
            event.id = cur.lastrowid

    def list_event_logs(
        self,
        limit: int = 200,
        event_type: Optional[str] = None,
        correlation_id: Optional[str] = None,
    ) -> List[EventLogRecord]:
        """Return the most recent events first."""

        query = (
            "SELECT id, timestamp, event_type, severity, payload, source, correlation_id FROM event_logs"
        )
        clauses: List[str] = []
        params: List[object] = []
        if event_type:
            clauses.append("event_type = ?")
            params.append(event_type)
        if correlation_id:
            clauses.append("correlation_id = ?")
            params.append(correlation_id)
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY id DESC LIMIT ?"
        params.append(limit)
        with self._connect() as con:
            rows = con.execute(query, params).fetchall()
        return [
            EventLogRecord(
                id=row[0],
                timestamp=datetime.fromisoformat(row[1]),
                event_type=row[2],
                severity=row[3],
                payload=json.loads(row[4]) if row[4] else {},
                source=row[5],
                correlation_id=row[6],
            )
            for row in rows
        ]


__all__ = ["SQLiteStorage", "StorageAdapter", "SCHEMA_VERSION"]
