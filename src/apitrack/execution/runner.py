"""Collection runner - fan a collection out over the executor and record a Run.

WHY
───
A run must always end with one Result per test, whatever the individual
tests do. Tests are sent concurrently (``asyncio.gather`` behind a
semaphore) and each one is isolated: an exception from one test becomes a
failed Result for that test and never aborts its siblings.

ARCHITECTURE
────────────
::

    CollectionRunner.run(collection, trigger)
      │
      ├── EmptyCollectionError if no tests          (no Run created)
      ├── RunRepository.create(...)                 → Run(status=running)
      ├── TestExecutor.execute(test) × N            gather + Semaphore(max_concurrency)
      ├── SuccessPolicy.is_success(test, outcome)   → Result.success
      └── RunRepository.complete(run_id, results)   → Run(status=completed)

Related modules:
    executor.py   — one HTTP request → ExecutionOutcome
    policy.py     — pass/fail classification
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from uuid import uuid4

import httpx

from apitrack.core.errors import EmptyCollectionError
from apitrack.core.logging import get_logger
from apitrack.core.models.collection import Collection, TestDefinition
from apitrack.core.models.run import Result, Run, RunTrigger
from apitrack.core.repositories.runs import RunRepository
from apitrack.core.settings import Settings
from apitrack.execution.executor import ExecutionOutcome, TestExecutor
from apitrack.execution.policy import SuccessPolicy, get_policy

logger = get_logger(__name__)


class CollectionRunner:
    """Runs every test of a collection and persists the Run and its Results.

    Parameters
    ----------
    runs : RunRepository
        Store for runs and results.
    settings : Settings | None
        Timeout, concurrency, body size and success policy.
    policy : SuccessPolicy | None
        Overrides ``settings.success_policy``.
    transport : httpx.AsyncBaseTransport | None
        Transport for the HTTP client (``httpx.MockTransport`` in tests).
    """

    def __init__(
        self,
        runs: RunRepository,
        settings: Settings | None = None,
        *,
        policy: SuccessPolicy | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.runs = runs
        self.settings = settings or Settings()
        self.policy = policy or get_policy(self.settings.success_policy)
        self._transport = transport

    def _executor(self) -> TestExecutor:
        return TestExecutor(
            timeout=self.settings.request_timeout_seconds,
            max_response_chars=self.settings.max_response_chars,
            transport=self._transport,
        )

    # ── Execution ────────────────────────────────────────────────────

    async def run(self, collection: Collection, trigger: RunTrigger) -> Run:
        """Execute all tests of a collection.

        Args:
            collection: Collection with its tests loaded
            trigger: Owner and, for scheduled runs, the schedule id

        Returns:
            The completed Run

        Raises:
            EmptyCollectionError: The collection has no tests
        """
        if collection.is_empty:
            raise EmptyCollectionError(collection.id)
        return await self._run_tests(collection.id, collection.tests, trigger)

    async def run_test(self, test: TestDefinition, trigger: RunTrigger) -> Run:
        """Execute a single test as its own run."""
        return await self._run_tests(test.collection_id, [test], trigger)

    async def _run_tests(
        self, collection_id: str, tests: list[TestDefinition], trigger: RunTrigger
    ) -> Run:
        run = self.runs.create(
            collection_id=collection_id,
            owner_id=trigger.owner_id,
            total_tests=len(tests),
            schedule_id=trigger.schedule_id,
        )
        logger.info(
            "run.started",
            run_id=run.id,
            collection_id=collection_id,
            schedule_id=trigger.schedule_id,
            tests=len(tests),
            max_concurrency=self.settings.max_concurrency,
        )

        sem = asyncio.Semaphore(self.settings.max_concurrency)

        async with self._executor() as executor:

            async def _run_one(test: TestDefinition) -> ExecutionOutcome:
                async with sem:
                    try:
                        return await executor.execute(test)
                    except Exception as e:
                        logger.warning(
                            "run.test_failed",
                            run_id=run.id,
                            test_id=test.id,
                            error=str(e),
                        )
                        return ExecutionOutcome.transport_failure(test, e)

            outcomes = await asyncio.gather(*[_run_one(test) for test in tests])

        results = [self._to_result(run.id, test, outcome) for test, outcome in zip(tests, outcomes, strict=True)]
        completed = self.runs.complete(run.id, results)

        logger.info(
            "run.completed",
            run_id=completed.id,
            collection_id=collection_id,
            success_count=completed.success_count,
            failure_count=completed.failure_count,
            total_duration_ms=round(completed.total_duration_ms, 2),
        )
        return completed

    def _to_result(self, run_id: str, test: TestDefinition, outcome: ExecutionOutcome) -> Result:
        return Result(
            id=str(uuid4()),
            run_id=run_id,
            test_id=test.id,
            test_name=test.name,
            status_code=outcome.status_code,
            duration_ms=outcome.duration_ms,
            error=outcome.error,
            response_body=outcome.response_body,
            success=self.policy.is_success(test, outcome),
            created_at=datetime.now(UTC).isoformat(),
        )
