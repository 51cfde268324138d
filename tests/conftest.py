"""
Shared pytest fixtures for apitrack tests.

This module provides:
- An in-memory SQLite connection with the apitrack schema
- Repositories over that connection
- A collection factory with tests pointing at a mocked HTTP server
- A manual trigger backend that fires only when a test asks it to
- A frozen clock
- Operation contexts bound to the caller "alice"

Usage:
    Fixtures are auto-discovered by pytest. Request them as arguments:

    def test_something(schedules, make_collection):
        ...
"""

from __future__ import annotations

from collections.abc import Callable, Generator
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx
import pytest

from apitrack.core.connection import SqliteConnection
from apitrack.core.models import Collection, RecurrenceRule, Schedule
from apitrack.core.repositories import (
    CollectionRepository,
    RunRepository,
    ScheduleCreate,
    ScheduleRepository,
    TestCreate,
)
from apitrack.core.schema import create_tables
from apitrack.core.scheduling.protocol import FireCallback, TriggerHandle
from apitrack.core.settings import Settings
from apitrack.execution.runner import CollectionRunner
from apitrack.ops.context import OperationContext

OWNER = "alice"

# Monday 2026-01-05 12:00 UTC
FIXED_NOW = datetime(2026, 1, 5, 12, 0, tzinfo=UTC)


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Mark every test without an explicit marker as a unit test."""
    for item in items:
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration", "slow"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Storage Fixtures
# =============================================================================


@pytest.fixture
def conn() -> Generator[SqliteConnection, None, None]:
    """In-memory SQLite connection with all tables created."""
    connection = SqliteConnection(":memory:")
    create_tables(connection)
    yield connection
    connection.close()


@pytest.fixture
def schedules(conn: SqliteConnection) -> ScheduleRepository:
    return ScheduleRepository(conn)


@pytest.fixture
def collections(conn: SqliteConnection) -> CollectionRepository:
    return CollectionRepository(conn)


@pytest.fixture
def runs(conn: SqliteConnection) -> RunRepository:
    return RunRepository(conn)


@pytest.fixture
def settings() -> Settings:
    """Settings that ignore the environment and any ``.env`` file."""
    return Settings(_env_file=None, max_concurrency=4, request_timeout_seconds=5)


# =============================================================================
# Factories
# =============================================================================


@pytest.fixture
def make_collection(collections: CollectionRepository) -> Callable[..., Collection]:
    """Create a collection with one GET test per path under ``https://api.test``."""

    def _make(name: str = "smoke", paths: tuple[str, ...] = ("/ok",), owner_id: str = OWNER) -> Collection:
        collection = collections.create(name, owner_id)
        for path in paths:
            collections.add_test(
                collection.id,
                TestCreate(name=f"GET {path}", method="GET", url=f"https://api.test{path}"),
            )
        return collections.get(collection.id)  # type: ignore[return-value]

    return _make


@pytest.fixture
def make_schedule(
    schedules: ScheduleRepository, make_collection: Callable[..., Collection]
) -> Callable[..., Schedule]:
    """Create a schedule (and, unless given, a collection for it)."""

    def _make(
        rule: RecurrenceRule | None = None,
        *,
        name: str = "every-15",
        collection_id: str | None = None,
        owner_id: str = OWNER,
        **kwargs: Any,
    ) -> Schedule:
        if collection_id is None:
            collection_id = make_collection(f"{name}-collection", owner_id=owner_id).id
        return schedules.create(
            ScheduleCreate(
                name=name,
                owner_id=owner_id,
                collection_id=collection_id,
                recurrence=rule or RecurrenceRule.every_minutes(15),
                **kwargs,
            )
        )

    return _make


# =============================================================================
# HTTP
# =============================================================================


def status_by_path(request: httpx.Request) -> httpx.Response:
    """Mock handler: ``/ok`` → 200, ``/missing`` → 404, ``/boom`` → 500,
    ``/down`` → connection refused, ``/echo`` → request body back."""
    path = request.url.path
    if path == "/down":
        raise httpx.ConnectError("connection refused", request=request)
    if path == "/missing":
        return httpx.Response(404, text="not found")
    if path == "/boom":
        return httpx.Response(500, text="server error")
    if path == "/echo":
        return httpx.Response(200, content=request.content)
    return httpx.Response(200, json={"status": "ok"})


@pytest.fixture
def transport() -> httpx.MockTransport:
    return httpx.MockTransport(status_by_path)


# =============================================================================
# Scheduling
# =============================================================================


class ManualTriggerBackend:
    """Trigger backend that records arms and fires only on request."""

    name = "manual"

    def __init__(self) -> None:
        self.pending: dict[int, tuple[TriggerHandle, FireCallback]] = {}
        self.armed_log: list[TriggerHandle] = []
        self.cancelled_log: list[TriggerHandle] = []
        self.shut_down = False

    def arm(self, key: str, run_at: datetime, callback: FireCallback) -> TriggerHandle:
        handle = TriggerHandle(key=key, run_at=run_at)
        self.pending[id(handle)] = (handle, callback)
        self.armed_log.append(handle)
        return handle

    def cancel(self, handle: TriggerHandle) -> None:
        if handle.fired or handle.cancelled:
            return
        handle.cancelled = True
        self.pending.pop(id(handle), None)
        self.cancelled_log.append(handle)

    def shutdown(self) -> None:
        for handle, _ in list(self.pending.values()):
            self.cancel(handle)
        self.shut_down = True

    def health(self) -> dict[str, Any]:
        return {"healthy": True, "backend": self.name, "pending_triggers": len(self.pending)}

    def pending_for(self, key: str) -> list[TriggerHandle]:
        return [h for h, _ in self.pending.values() if h.key == key]

    def take(self, key: str) -> FireCallback:
        """Mark the single pending trigger for ``key`` as fired and return its callback."""
        (handle,) = self.pending_for(key)
        _, callback = self.pending.pop(id(handle))
        handle.fired = True
        return callback

    async def fire(self, key: str) -> Any:
        return await self.take(key)()


@pytest.fixture
def trigger_backend() -> ManualTriggerBackend:
    return ManualTriggerBackend()


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = FIXED_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


# =============================================================================
# Operations
# =============================================================================


@pytest.fixture
def runner(runs: RunRepository, settings: Settings, transport: httpx.MockTransport) -> CollectionRunner:
    """Collection runner whose HTTP calls go to the mock transport."""
    return CollectionRunner(runs, settings, transport=transport)


@pytest.fixture
def make_ctx(conn: SqliteConnection, settings: Settings, runner: CollectionRunner) -> Callable[..., OperationContext]:
    def _make(user: str | None = OWNER, **kwargs: Any) -> OperationContext:
        return OperationContext(conn=conn, user=user, settings=settings, runner=runner, **kwargs)

    return _make


@pytest.fixture
def ctx(make_ctx: Callable[..., OperationContext]) -> OperationContext:
    return make_ctx()
