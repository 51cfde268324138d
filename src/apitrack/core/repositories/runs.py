"""Run repository - run history and per-test results.

A run is inserted as ``running`` with zero counts. ``complete`` inserts
every result and flips the run to ``completed`` with its counts in a single
UPDATE, then commits once, so no reader observes a completed run with
partial counts or a completed run missing results.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from uuid import uuid4

from apitrack.core.models.run import Result, Run, RunStatus
from apitrack.core.protocols import Connection

_RUN_COLUMNS = [
    "id",
    "collection_id",
    "owner_id",
    "schedule_id",
    "status",
    "started_at",
    "completed_at",
    "total_tests",
    "success_count",
    "failure_count",
    "total_duration_ms",
]
_RESULT_COLUMNS = [
    "id",
    "run_id",
    "test_id",
    "test_name",
    "status_code",
    "duration_ms",
    "error",
    "response_body",
    "success",
    "created_at",
]
_SELECT_RUN = f"SELECT {', '.join(_RUN_COLUMNS)} FROM runs"


class RunRepository:
    """Repository for runs and their results."""

    def __init__(self, conn: Connection) -> None:
        self.conn = conn

    # === Run lifecycle ===

    def create(
        self,
        collection_id: str,
        owner_id: str,
        total_tests: int,
        schedule_id: str | None = None,
    ) -> Run:
        """Insert a ``running`` run and commit it."""
        run_id = str(uuid4())
        started_at = datetime.now(UTC).isoformat()
        self.conn.execute(
            """
            INSERT INTO runs (
                id, collection_id, owner_id, schedule_id, status, started_at,
                total_tests, success_count, failure_count, total_duration_ms
            ) VALUES (?, ?, ?, ?, ?, ?, ?, 0, 0, 0)
            """,
            (
                run_id,
                collection_id,
                owner_id,
                schedule_id,
                RunStatus.RUNNING.value,
                started_at,
                total_tests,
            ),
        )
        self.conn.commit()
        return self.get(run_id)  # type: ignore

    def complete(self, run_id: str, results: list[Result]) -> Run:
        """Persist results and mark the run completed in one transaction.

        Args:
            run_id: Run being completed
            results: Every result of the run

        Returns:
            The completed Run
        """
        success_count = sum(1 for r in results if r.success)
        failure_count = len(results) - success_count
        total_duration = sum(r.duration_ms for r in results)
        now = datetime.now(UTC).isoformat()

        try:
            self.conn.executemany(
                f"""
                INSERT INTO results ({', '.join(_RESULT_COLUMNS)})
                VALUES ({', '.join('?' * len(_RESULT_COLUMNS))})
                """,
                [
                    (
                        r.id,
                        run_id,
                        r.test_id,
                        r.test_name,
                        r.status_code,
                        r.duration_ms,
                        r.error,
                        r.response_body,
                        1 if r.success else 0,
                        r.created_at or now,
                    )
                    for r in results
                ],
            )
            self.conn.execute(
                """
                UPDATE runs
                SET status = ?, completed_at = ?, total_tests = ?,
                    success_count = ?, failure_count = ?, total_duration_ms = ?
                WHERE id = ?
                """,
                (
                    RunStatus.COMPLETED.value,
                    now,
                    len(results),
                    success_count,
                    failure_count,
                    total_duration,
                    run_id,
                ),
            )
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise

        return self.get(run_id)  # type: ignore

    def mark_stale(self, older_than: timedelta, now: datetime | None = None) -> int:
        """Mark runs stuck in ``running`` past ``older_than`` as failed.

        Returns:
            Number of runs marked
        """
        now = now or datetime.now(UTC)
        cutoff = (now - older_than).isoformat()
        cursor = self.conn.execute(
            "UPDATE runs SET status = ?, completed_at = ? WHERE status = ? AND started_at < ?",
            (RunStatus.FAILED.value, now.isoformat(), RunStatus.RUNNING.value, cutoff),
        )
        self.conn.commit()
        return cursor.rowcount

    # === Queries ===

    def get(self, run_id: str) -> Run | None:
        cursor = self.conn.execute(f"{_SELECT_RUN} WHERE id = ?", (run_id,))
        row = cursor.fetchone()
        return self._row_to_run(row) if row else None

    def list_runs(
        self,
        owner_id: str,
        *,
        collection_id: str | None = None,
        schedule_id: str | None = None,
        status: RunStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Run], int]:
        """List an owner's runs, newest first.

        Returns:
            (runs on this page, total matching runs)
        """
        where = ["owner_id = ?"]
        params: list = [owner_id]
        if collection_id:
            where.append("collection_id = ?")
            params.append(collection_id)
        if schedule_id:
            where.append("schedule_id = ?")
            params.append(schedule_id)
        if status:
            where.append("status = ?")
            params.append(status.value)
        where_sql = " AND ".join(where)

        total = self.conn.execute(
            f"SELECT COUNT(*) FROM runs WHERE {where_sql}", tuple(params)
        ).fetchone()[0]
        cursor = self.conn.execute(
            f"{_SELECT_RUN} WHERE {where_sql} ORDER BY started_at DESC, id LIMIT ? OFFSET ?",
            (*params, limit, offset),
        )
        return [self._row_to_run(row) for row in cursor.fetchall()], total

    def list_results(self, run_id: str, *, failed_only: bool = False) -> list[Result]:
        sql = f"SELECT {', '.join(_RESULT_COLUMNS)} FROM results WHERE run_id = ?"
        if failed_only:
            sql += " AND success = 0"
        cursor = self.conn.execute(sql + " ORDER BY rowid", (run_id,))
        return [self._row_to_result(row) for row in cursor.fetchall()]

    # === Private Helpers ===

    def _row_to_run(self, row: tuple) -> Run:
        data = dict(zip(_RUN_COLUMNS, row, strict=False))
        data["status"] = RunStatus(data["status"])
        return Run(**data)

    def _row_to_result(self, row: tuple) -> Result:
        data = dict(zip(_RESULT_COLUMNS, row, strict=False))
        data["success"] = bool(data["success"])
        return Result(**data)
