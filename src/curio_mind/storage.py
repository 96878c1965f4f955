"""SQLite storage. One file = one mind."""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
import time
from pathlib import Path

from curio_mind.models import Trace

logger = logging.getLogger(__name__)


class Storage:
    """SQLite backend. Zero config. Portable.

    Each subsystem is stored as one opaque JSON snapshot row. ``":memory:"``
    gives an in-process store.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = path if path == ":memory:" else Path(path)
        self.conn = sqlite3.connect(str(self.path), check_same_thread=False)
        self._lock = threading.Lock()
        if path != ":memory:":
            self.conn.execute("PRAGMA journal_mode=WAL")
        self._init_schema()

    def _init_schema(self) -> None:
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS snapshots (
                subsystem TEXT PRIMARY KEY,
                version INTEGER NOT NULL,
                data TEXT NOT NULL,
                saved_at REAL NOT NULL
            );

            CREATE TABLE IF NOT EXISTS traces (
                id TEXT PRIMARY KEY,
                operation TEXT NOT NULL,
                input_text TEXT NOT NULL DEFAULT '',
                output_text TEXT NOT NULL DEFAULT '',
                duration_ms REAL,
                metadata TEXT NOT NULL DEFAULT '{}',
                created_at REAL NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_traces_operation
                ON traces(operation);
            CREATE INDEX IF NOT EXISTS idx_traces_created
                ON traces(created_at DESC);
        """)
        self.conn.commit()

    # ── Snapshots ──────────────────────────────────────────────────────

    def save_snapshot(self, subsystem: str, data: dict) -> None:
        with self._lock:
            self.conn.execute(
                """INSERT OR REPLACE INTO snapshots
                   (subsystem, version, data, saved_at)
                   VALUES (?, ?, ?, ?)""",
                (subsystem, int(data.get("version", 0)),
                 json.dumps(data), time.time()),
            )
            self.conn.commit()

    def load_snapshot(self, subsystem: str) -> dict | None:
        """Stored snapshot, or None if missing or unreadable."""
        with self._lock:
            row = self.conn.execute(
                "SELECT data FROM snapshots WHERE subsystem = ?", (subsystem,)
            ).fetchone()
        if row is None:
            return None
        try:
            data = json.loads(row[0])
        except json.JSONDecodeError as exc:
            logger.warning("Failed to load %s snapshot: %s", subsystem, exc)
            return None
        if not isinstance(data, dict):
            logger.warning("Failed to load %s snapshot: not an object", subsystem)
            return None
        return data

    def delete_snapshot(self, subsystem: str) -> bool:
        with self._lock:
            cursor = self.conn.execute(
                "DELETE FROM snapshots WHERE subsystem = ?", (subsystem,)
            )
            self.conn.commit()
        return cursor.rowcount > 0

    def subsystems(self) -> list[str]:
        with self._lock:
            rows = self.conn.execute(
                "SELECT subsystem FROM snapshots ORDER BY subsystem"
            ).fetchall()
        return [r[0] for r in rows]

    # ── Traces ─────────────────────────────────────────────────────────

    def save_trace(self, trace: Trace) -> None:
        with self._lock:
            self.conn.execute(
                """INSERT INTO traces
                   (id, operation, input_text, output_text,
                    duration_ms, metadata, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (
                    trace.id, trace.operation, trace.input_text,
                    trace.output_text, trace.duration_ms,
                    json.dumps(trace.metadata), trace.created_at,
                ),
            )
            self.conn.commit()

    def load_traces(self, operation: str | None = None,
                    limit: int = 100) -> list[Trace]:
        query = "SELECT * FROM traces WHERE 1=1"
        params: list = []
        if operation is not None:
            query += " AND operation = ?"
            params.append(operation)
        query += " ORDER BY created_at DESC LIMIT ?"
        params.append(limit)
        with self._lock:
            rows = self.conn.execute(query, params).fetchall()
        return [self._row_to_trace(r) for r in rows]

    # ── Close ──────────────────────────────────────────────────────────

    def close(self) -> None:
        self.conn.close()

    # ── Row mappers ────────────────────────────────────────────────────

    @staticmethod
    def _row_to_trace(row: tuple) -> Trace:
        return Trace(
            id=row[0],
            operation=row[1],
            input_text=row[2],
            output_text=row[3],
            duration_ms=row[4],
            metadata=json.loads(row[5]),
            created_at=row[6],
        )
