"""Schedule repository - CRUD for the ``schedules`` table.

Manifesto:
    Schedule persistence is a pure data concern. The registry and the
    dispatcher only ever see ``Schedule`` objects; the flat recurrence
    columns and their ISO timestamps stay in here.

Tags:
    scheduling, repository, CRUD, sqlite

Doc-Types:
    api-reference


┌──────────────────────────────────────────────────────────────────────────────┐
│  SCHEDULE REPOSITORY                                                          │
│                                                                               │
│   CRUD Operations:                                                            │
│   ├── create(draft) → Schedule                                                │
│   ├── get(id) → Schedule | None                                               │
│   ├── get_by_name(owner_id, name) → Schedule | None                           │
│   ├── update(id, updates) → Schedule | None     (bumps version)              │
│   ├── delete(id) → bool                                                       │
│   ├── list_active() / list_for_owner(owner_id) / list_all()                  │
│   └── list_for_collection(collection_id) → list[Schedule]                     │
│                                                                               │
│   Dispatch Operations:                                                        │
│   ├── set_last_run(id, at) → None               (version unchanged)          │
│   ├── set_last_attempt(id, at) → None           (version unchanged)          │
│   └── active_versions() → {id: version}                                       │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from apitrack.core.models.recurrence import RecurrenceRule
from apitrack.core.models.schedule import NotifySettings, Schedule
from apitrack.core.protocols import Connection

_COLUMNS = [
    "id",
    "name",
    "owner_id",
    "collection_id",
    "kind",
    "minute_interval",
    "hour_interval",
    "time_of_day",
    "weekday",
    "active",
    "last_run",
    "last_attempt",
    "notify_enabled",
    "notify_recipient",
    "created_at",
    "updated_at",
    "version",
]
_SELECT = f"SELECT {', '.join(_COLUMNS)} FROM schedules"


# ---------------------------------------------------------------------------
# Create/Update DTOs
# ---------------------------------------------------------------------------


@dataclass
class ScheduleCreate:
    """DTO for creating a new schedule."""

    name: str
    owner_id: str
    collection_id: str
    recurrence: RecurrenceRule
    notify: NotifySettings = NotifySettings()


@dataclass
class ScheduleUpdate:
    """DTO for updating a schedule. None means unchanged."""

    name: str | None = None
    collection_id: str | None = None
    recurrence: RecurrenceRule | None = None
    notify: NotifySettings | None = None
    active: bool | None = None


# ---------------------------------------------------------------------------
# Repository Implementation
# ---------------------------------------------------------------------------


class ScheduleRepository:
    """Repository for schedule CRUD.

    Example:
        >>> repo = ScheduleRepository(conn)
        >>> schedule = repo.create(ScheduleCreate(
        ...     name="nightly-smoke",
        ...     owner_id="u1",
        ...     collection_id="c1",
        ...     recurrence=RecurrenceRule.daily("02:00"),
        ... ))
        >>> [s.name for s in repo.list_active()]
        ['nightly-smoke']
    """

    def __init__(self, conn: Connection) -> None:
        self.conn = conn

    # === CRUD Operations ===

    def create(self, draft: ScheduleCreate) -> Schedule:
        """Create a new schedule.

        The ``active`` flag and ``last_run`` come from ``draft.recurrence``.

        Args:
            draft: Schedule to create

        Returns:
            Created Schedule with generated ID
        """
        schedule_id = str(uuid4())
        now = datetime.now(UTC).isoformat()
        rule = draft.recurrence.to_dict()

        self.conn.execute(
            """
            INSERT INTO schedules (
                id, name, owner_id, collection_id,
                kind, minute_interval, hour_interval, time_of_day, weekday,
                active, last_run, notify_enabled, notify_recipient,
                created_at, updated_at, version
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 1)
            """,
            (
                schedule_id,
                draft.name,
                draft.owner_id,
                draft.collection_id,
                rule["kind"],
                rule["minute_interval"],
                rule["hour_interval"],
                rule["time_of_day"],
                rule["weekday"],
                1 if rule["active"] else 0,
                rule["last_run"],
                1 if draft.notify.enabled else 0,
                draft.notify.recipient,
                now,
                now,
            ),
        )
        self.conn.commit()

        return self.get(schedule_id)  # type: ignore

    def get(self, schedule_id: str) -> Schedule | None:
        """Get schedule by ID."""
        cursor = self.conn.execute(f"{_SELECT} WHERE id = ?", (schedule_id,))
        row = cursor.fetchone()
        if not row:
            return None
        return self._row_to_schedule(row)

    def get_by_name(self, owner_id: str, name: str) -> Schedule | None:
        """Get an owner's schedule by name."""
        cursor = self.conn.execute(
            f"{_SELECT} WHERE owner_id = ? AND name = ?", (owner_id, name)
        )
        row = cursor.fetchone()
        if not row:
            return None
        return self._row_to_schedule(row)

    def update(self, schedule_id: str, updates: ScheduleUpdate) -> Schedule | None:
        """Update a schedule and bump its version.

        Replacing the recurrence replaces every recurrence column, so a
        switch from ``minute`` to ``week`` clears the old interval. The
        stored ``last_run`` is kept.

        Args:
            schedule_id: Schedule ID
            updates: Fields to update

        Returns:
            Updated Schedule if found, None otherwise
        """
        set_parts = []
        params: list[Any] = []

        if updates.name is not None:
            set_parts.append("name = ?")
            params.append(updates.name)
        if updates.collection_id is not None:
            set_parts.append("collection_id = ?")
            params.append(updates.collection_id)
        if updates.recurrence is not None:
            rule = updates.recurrence.to_dict()
            for column in ("kind", "minute_interval", "hour_interval", "time_of_day", "weekday"):
                set_parts.append(f"{column} = ?")
                params.append(rule[column])
            if updates.active is None:
                set_parts.append("active = ?")
                params.append(1 if rule["active"] else 0)
        if updates.active is not None:
            set_parts.append("active = ?")
            params.append(1 if updates.active else 0)
        if updates.notify is not None:
            set_parts.append("notify_enabled = ?")
            params.append(1 if updates.notify.enabled else 0)
            set_parts.append("notify_recipient = ?")
            params.append(updates.notify.recipient)

        if not set_parts:
            return self.get(schedule_id)

        set_parts.append("updated_at = ?")
        params.append(datetime.now(UTC).isoformat())
        set_parts.append("version = version + 1")

        params.append(schedule_id)

        self.conn.execute(
            f"UPDATE schedules SET {', '.join(set_parts)} WHERE id = ?",
            tuple(params),
        )
        self.conn.commit()

        return self.get(schedule_id)

    def delete(self, schedule_id: str) -> bool:
        """Delete a schedule.

        Returns:
            True if deleted, False if not found
        """
        cursor = self.conn.execute("DELETE FROM schedules WHERE id = ?", (schedule_id,))
        self.conn.commit()
        return cursor.rowcount > 0

    def list_active(self) -> list[Schedule]:
        """List all active schedules across owners."""
        cursor = self.conn.execute(f"{_SELECT} WHERE active = 1 ORDER BY created_at, id")
        return [self._row_to_schedule(row) for row in cursor.fetchall()]

    def list_for_owner(self, owner_id: str, *, active_only: bool = False) -> list[Schedule]:
        """List one owner's schedules, newest first."""
        sql = f"{_SELECT} WHERE owner_id = ?"
        if active_only:
            sql += " AND active = 1"
        cursor = self.conn.execute(sql + " ORDER BY created_at DESC, id", (owner_id,))
        return [self._row_to_schedule(row) for row in cursor.fetchall()]

    def list_all(self) -> list[Schedule]:
        """List all schedules (active and inactive)."""
        cursor = self.conn.execute(f"{_SELECT} ORDER BY name")
        return [self._row_to_schedule(row) for row in cursor.fetchall()]

    def list_for_collection(self, collection_id: str) -> list[Schedule]:
        """List the schedules that run one collection."""
        cursor = self.conn.execute(
            f"{_SELECT} WHERE collection_id = ? ORDER BY created_at, id", (collection_id,)
        )
        return [self._row_to_schedule(row) for row in cursor.fetchall()]

    def count_active(self) -> int:
        """Count active schedules."""
        cursor = self.conn.execute("SELECT COUNT(*) FROM schedules WHERE active = 1")
        return cursor.fetchone()[0]

    # === Dispatch Operations ===

    def set_last_run(self, schedule_id: str, at: datetime) -> None:
        """Record a dispatch instant. Does not bump ``version``."""
        self.conn.execute(
            "UPDATE schedules SET last_run = ? WHERE id = ?",
            (at.isoformat(), schedule_id),
        )
        self.conn.commit()

    def set_last_attempt(self, schedule_id: str, at: datetime) -> None:
        """Record that a dispatch was attempted, whatever its outcome."""
        self.conn.execute(
            "UPDATE schedules SET last_attempt = ? WHERE id = ?",
            (at.isoformat(), schedule_id),
        )
        self.conn.commit()

    def active_versions(self) -> dict[str, int]:
        """Map of active schedule id to version, for reconciliation."""
        cursor = self.conn.execute("SELECT id, version FROM schedules WHERE active = 1")
        return {row[0]: row[1] for row in cursor.fetchall()}

    # === Private Helpers ===

    def _row_to_schedule(self, row: tuple) -> Schedule:
        """Convert database row to Schedule model."""
        data = dict(zip(_COLUMNS, row, strict=False))
        recurrence = RecurrenceRule.from_dict(data)
        return Schedule(
            id=data["id"],
            name=data["name"],
            owner_id=data["owner_id"],
            collection_id=data["collection_id"],
            recurrence=recurrence,
            notify=NotifySettings(
                enabled=bool(data["notify_enabled"]),
                recipient=data["notify_recipient"],
            ),
            created_at=data["created_at"],
            updated_at=data["updated_at"],
            version=data["version"],
            last_attempt=(
                datetime.fromisoformat(data["last_attempt"]) if data["last_attempt"] else None
            ),
        )
