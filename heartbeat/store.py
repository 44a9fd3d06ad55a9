"""Result sinks — append-only storage of probe results.

SQLite is the default; a ``mongodb://`` store URL writes to the
``heartbeats`` collection instead.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Sequence
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Protocol

import pymongo

from .probes.results import ProbeResult, utc_now

logger = logging.getLogger(__name__)


class ResultStore(Protocol):
    def insert(self, records: Sequence[ProbeResult]) -> None: ...

    def close(self) -> None: ...


# ── SQLite ───────────────────────────────────────────────────────────────────


class SQLiteResultStore:
    """SQLite-backed append-only log of probe results."""

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn: sqlite3.Connection | None = None
        self._init_db()

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
        return self._conn

    def _init_db(self) -> None:
        conn = self._get_conn()
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS heartbeats (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                check_type TEXT NOT NULL,
                kind TEXT NOT NULL,
                target TEXT NOT NULL,
                success INTEGER NOT NULL,
                response_time_ms REAL,
                status_code INTEGER,
                message TEXT,
                record TEXT NOT NULL,
                recorded_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_heartbeats_target
                ON heartbeats (target, recorded_at DESC);
        """)
        conn.commit()

    def insert(self, records: Sequence[ProbeResult]) -> None:
        """Append a batch in one transaction."""
        now = utc_now()
        rows = []
        for r in records:
            record = r.to_record()
            rows.append((
                r.check_type, r.kind.value, r.target, int(r.success),
                record.get("response_time_ms"), record.get("status_code"),
                r.message or None, json.dumps(record, default=str), now,
            ))

        conn = self._get_conn()
        with conn:
            conn.executemany(
                "INSERT INTO heartbeats "
                "(check_type, kind, target, success, response_time_ms, status_code, message, record, recorded_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                rows,
            )
        logger.debug("Stored %d results", len(rows))

    def get_history(self, target: str, limit: int = 100) -> list[dict[str, Any]]:
        """Most recent results for a target, newest first."""
        rows = self._get_conn().execute(
            "SELECT * FROM heartbeats WHERE target = ? ORDER BY recorded_at DESC, id DESC LIMIT ?",
            (target, limit),
        ).fetchall()
        return [dict(r) for r in rows]

    def cleanup_old(self, days: int = 30) -> int:
        """Remove results older than N days."""
        cutoff = (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()
        conn = self._get_conn()
        with conn:
            cursor = conn.execute("DELETE FROM heartbeats WHERE recorded_at < ?", (cutoff,))
        return cursor.rowcount

    def close(self) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None


# ── MongoDB ──────────────────────────────────────────────────────────────────


class MongoResultStore:
    """Writes results to the ``heartbeats`` collection."""

    def __init__(self, url: str, collection: str = "heartbeats") -> None:
        self._client: pymongo.MongoClient = pymongo.MongoClient(url)
        self._collection = self._client.get_default_database("heartbeat")[collection]

    def insert(self, records: Sequence[ProbeResult]) -> None:
        if not records:
            return
        now = datetime.now(timezone.utc)
        self._collection.insert_many([{**r.to_record(), "recorded_at": now} for r in records])
        logger.debug("Stored %d results", len(records))

    def cleanup_old(self, days: int = 30) -> int:
        cutoff = datetime.now(timezone.utc) - timedelta(days=days)
        return self._collection.delete_many({"recorded_at": {"$lt": cutoff}}).deleted_count

    def close(self) -> None:
        self._client.close()


def open_store(url: str) -> SQLiteResultStore | MongoResultStore:
    """Pick a store by URL scheme; anything that is not mongodb is a SQLite path."""
    if url.startswith(("mongodb://", "mongodb+srv://")):
        return MongoResultStore(url)
    return SQLiteResultStore(url)
