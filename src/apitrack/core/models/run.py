"""Run history models (``runs`` / ``results`` tables).

Manifesto:
    A Run is the record of one execution of a collection. It is inserted
    as ``running`` before any request leaves the process and completed in
    one step, so a reader never sees partial counts on a completed run.

Tags:
    models, runs, results, dataclasses

Doc-Types:
    api-reference, data-model
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class RunStatus(str, Enum):
    """Lifecycle of a run."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"  # abandoned; only set by the stale-run sweep


@dataclass(frozen=True)
class RunTrigger:
    """Who asked for a run and, for scheduled runs, which schedule."""

    owner_id: str
    schedule_id: str | None = None


@dataclass
class Run:
    """One execution of a collection (``runs`` row)."""

    id: str
    collection_id: str
    owner_id: str
    status: RunStatus
    started_at: str
    schedule_id: str | None = None
    completed_at: str | None = None
    total_tests: int = 0
    success_count: int = 0
    failure_count: int = 0
    total_duration_ms: float = 0.0

    @property
    def is_complete(self) -> bool:
        return self.status is RunStatus.COMPLETED

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "collection_id": self.collection_id,
            "owner_id": self.owner_id,
            "schedule_id": self.schedule_id,
            "status": self.status.value,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "total_tests": self.total_tests,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "total_duration_ms": round(self.total_duration_ms, 2),
        }


@dataclass
class Result:
    """Outcome of one test within a run (``results`` row).

    ``status_code`` is 0 and ``error`` is set when the request never
    completed; otherwise ``error`` is None whatever the status.
    """

    id: str
    run_id: str
    test_id: str
    test_name: str
    status_code: int
    duration_ms: float
    error: str | None = None
    response_body: str | None = None
    success: bool = False
    created_at: str = ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "run_id": self.run_id,
            "test_id": self.test_id,
            "test_name": self.test_name,
            "status_code": self.status_code,
            "duration_ms": round(self.duration_ms, 2),
            "error": self.error,
            "success": self.success,
        }
