"""
Request-scoped context for operations.

Every operation function receives an :class:`OperationContext` as its first
argument. The context carries the database connection, the calling owner,
the dry-run flag and, when the caller runs a scheduler in-process, the
registry that schedule edits must be reflected in.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from apitrack.core.protocols import Connection
from apitrack.core.settings import Settings

if TYPE_CHECKING:
    from apitrack.core.scheduling.dispatcher import ScheduleDispatcher
    from apitrack.core.scheduling.registry import ScheduleRegistry
    from apitrack.execution.runner import CollectionRunner


@dataclass
class OperationContext:
    """Context passed to every operation function.

    Attributes:
        conn: Database connection satisfying :class:`apitrack.core.protocols.Connection`.
        user: Owner on whose behalf the operation runs.
        request_id: Unique ID for this operation invocation (auto-generated).
        caller: Origin of the request: ``"cli"``, ``"sdk"`` or ``"scheduler"``.
        dry_run: When ``True``, operations return a preview without side effects.
        settings: Runtime settings; defaults to the environment.
        registry: In-process schedule registry to (re)install triggers on edit.
            When None, a separate worker picks edits up on its next reconcile.
        runner: Collection runner for run operations; built from ``settings``
            when None.
        dispatcher: Schedule dispatcher for run-now; built on demand when None.
        metadata: Arbitrary key/value pairs forwarded to logging.
    """

    conn: Connection
    user: str | None = None
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    caller: str = "sdk"
    dry_run: bool = False
    settings: Settings = field(default_factory=Settings)
    registry: ScheduleRegistry | None = None
    runner: CollectionRunner | None = None
    dispatcher: ScheduleDispatcher | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
