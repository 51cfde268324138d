"""
Structural protocols shared across apitrack.

Repositories depend on the ``Connection`` shape, not on ``sqlite3``, so the
same code runs on the bundled :class:`~apitrack.core.connection.SqliteConnection`
adapter, a bare ``sqlite3.Connection`` (tests) or any DB-API style adapter.

Architecture:
    ::

        Connection Protocol:
        ┌────────────────────────────────────────────────────────┐
        │ execute(sql, params)   → cursor                        │
        │ executemany(sql, list) → cursor                        │
        │ commit()               → Commit transaction            │
        │ rollback()             → Rollback transaction          │
        └────────────────────────────────────────────────────────┘

Tags:
    protocol, connection, database, contracts
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Connection(Protocol):
    """
    Minimal synchronous connection interface used by the repositories.

    Examples:
        >>> cursor = conn.execute("SELECT id FROM schedules WHERE id = ?", ("s1",))
        >>> row = cursor.fetchone()
    """

    def execute(self, sql: str, params: tuple = ()) -> Any:
        """Execute SQL statement with optional parameters; returns a cursor."""
        ...

    def executemany(self, sql: str, params: list[tuple]) -> Any:
        """Execute SQL statement for each parameter tuple."""
        ...

    def commit(self) -> None:
        """Commit the current transaction."""
        ...

    def rollback(self) -> None:
        """Roll back the current transaction."""
        ...
