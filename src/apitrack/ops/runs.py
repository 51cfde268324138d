"""
Run history operations.

Read-only access to runs and their per-test results. Runs are scoped to
the calling owner; another owner's run reads as not found.
"""

from __future__ import annotations

from apitrack.core.errors import ApiTrackError, ConfigurationError, NotFoundError
from apitrack.core.logging import get_logger
from apitrack.core.models.run import Result, Run, RunStatus
from apitrack.core.repositories import RunRepository
from apitrack.ops.context import OperationContext
from apitrack.ops.requests import GetRunRequest, ListRunsRequest
from apitrack.ops.responses import ResultSummary, RunDetail, RunSummary
from apitrack.ops.result import OperationResult, PagedResult, start_timer

logger = get_logger(__name__)


def to_run_summary(run: Run) -> RunSummary:
    return RunSummary(
        run_id=run.id,
        collection_id=run.collection_id,
        schedule_id=run.schedule_id,
        status=run.status.value,
        started_at=run.started_at,
        completed_at=run.completed_at,
        total_tests=run.total_tests,
        success_count=run.success_count,
        failure_count=run.failure_count,
        total_duration_ms=round(run.total_duration_ms, 2),
    )


def to_run_detail(run: Run, results: list[Result]) -> RunDetail:
    return RunDetail(
        run=to_run_summary(run),
        results=[
            ResultSummary(
                test_id=r.test_id,
                test_name=r.test_name,
                status_code=r.status_code,
                duration_ms=round(r.duration_ms, 2),
                success=r.success,
                error=r.error,
            )
            for r in results
        ],
    )


def list_runs(
    ctx: OperationContext,
    request: ListRunsRequest,
) -> PagedResult[RunSummary]:
    """List the caller's runs, newest first."""
    timer = start_timer()

    if request.limit <= 0:
        return PagedResult.fail(
            "VALIDATION_FAILED", "limit must be positive", elapsed_ms=timer.elapsed_ms
        )

    try:
        if not ctx.user:
            return PagedResult.fail(
                "FORBIDDEN", "No user set for this operation", elapsed_ms=timer.elapsed_ms
            )
        status = None
        if request.status:
            try:
                status = RunStatus(request.status)
            except ValueError as exc:
                raise ConfigurationError(
                    f"unknown run status: {request.status}", field="status", value=request.status
                ) from exc

        runs, total = RunRepository(ctx.conn).list_runs(
            ctx.user,
            collection_id=request.collection_id,
            schedule_id=request.schedule_id,
            status=status,
            limit=request.limit,
            offset=request.offset,
        )
        return PagedResult.from_items(
            [to_run_summary(r) for r in runs],
            total=total,
            limit=request.limit,
            offset=request.offset,
            elapsed_ms=timer.elapsed_ms,
        )
    except ApiTrackError as exc:
        return PagedResult.from_error(exc, elapsed_ms=timer.elapsed_ms)
    except Exception as exc:
        logger.exception("op_failed", op="list_runs", error=str(exc))
        return PagedResult.fail(
            "INTERNAL", f"Failed to list runs: {exc}", elapsed_ms=timer.elapsed_ms
        )


def get_run(
    ctx: OperationContext,
    request: GetRunRequest,
) -> OperationResult[RunDetail]:
    """Get a run with its results in test order."""
    timer = start_timer()

    if not request.run_id:
        return OperationResult.fail(
            "VALIDATION_FAILED", "run_id is required", elapsed_ms=timer.elapsed_ms
        )

    try:
        repo = RunRepository(ctx.conn)
        run = repo.get(request.run_id)
        if run is None or run.owner_id != ctx.user:
            raise NotFoundError("Run", request.run_id)
        results = repo.list_results(run.id, failed_only=request.failed_only)
        return OperationResult.ok(to_run_detail(run, results), elapsed_ms=timer.elapsed_ms)
    except ApiTrackError as exc:
        return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)
    except Exception as exc:
        logger.exception("op_failed", op="get_run", error=str(exc))
        return OperationResult.fail(
            "INTERNAL", f"Failed to get run: {exc}", elapsed_ms=timer.elapsed_ms
        )
