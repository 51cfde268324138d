"""SQLite connection adapter.

Wraps a raw :class:`sqlite3.Connection` to satisfy the
:class:`~apitrack.core.protocols.Connection` protocol.

Trigger timers fire on their own threads, so the adapter is opened with
``check_same_thread=False`` and every statement runs under one re-entrant
lock with its own cursor. ``fetchone`` / ``fetchall`` at connection level
read from the most recent cursor, for callers that prefer that style.

Usage::

    from apitrack.core.connection import SqliteConnection

    conn = SqliteConnection(":memory:")
    conn.execute("CREATE TABLE t (id INTEGER)")
    conn.execute("INSERT INTO t VALUES (?)", (1,))
    row = conn.execute("SELECT * FROM t").fetchone()
    conn.commit()
    conn.close()
"""

from __future__ import annotations

import sqlite3
import threading
from pathlib import Path
from typing import Any


class SqliteConnection:
    """Adapter: ``sqlite3.Connection`` → ``Connection`` protocol."""

    def __init__(self, path: str | Path = ":memory:", *, row_factory: Any = sqlite3.Row) -> None:
        if str(path) != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(path), check_same_thread=False)
        self._conn.row_factory = row_factory
        self._conn.execute("PRAGMA foreign_keys = ON")
        self._lock = threading.RLock()
        self._cursor: sqlite3.Cursor | None = None

    # -- Connection protocol -----------------------------------------------

    def execute(self, sql: str, params: tuple | list = ()) -> Any:
        with self._lock:
            self._cursor = self._conn.execute(sql, params)
            return self._cursor

    def executemany(self, sql: str, params: list[tuple]) -> Any:
        with self._lock:
            self._cursor = self._conn.executemany(sql, params)
            return self._cursor

    def fetchone(self) -> Any:
        with self._lock:
            return self._cursor.fetchone() if self._cursor else None

    def fetchall(self) -> list:
        with self._lock:
            return self._cursor.fetchall() if self._cursor else []

    def commit(self) -> None:
        with self._lock:
            self._conn.commit()

    def rollback(self) -> None:
        with self._lock:
            self._conn.rollback()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # -- convenience -------------------------------------------------------

    @property
    def raw(self) -> sqlite3.Connection:
        """Access the underlying ``sqlite3.Connection`` (e.g. for pragmas)."""
        return self._conn

    def __repr__(self) -> str:
        return f"SqliteConnection({self._conn!r})"
