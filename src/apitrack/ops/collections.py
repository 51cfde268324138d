"""
Collection operations.

Create, edit and delete collections and their tests, and run them on
demand. Deleting a collection deletes the schedules that run it. Manual
runs go through the same :class:`~apitrack.execution.runner.CollectionRunner` the
scheduler uses, so their history looks the same apart from a null
``schedule_id``.
"""

from __future__ import annotations

from dataclasses import replace

from apitrack.core.errors import (
    ApiTrackError,
    AuthorizationError,
    ConfigurationError,
    DuplicateNameError,
    NotFoundError,
)
from apitrack.core.logging import get_logger
from apitrack.core.models.collection import SUPPORTED_METHODS, Collection, TestDefinition
from apitrack.core.models.run import RunTrigger
from apitrack.core.repositories import (
    CollectionRepository,
    RunRepository,
    ScheduleRepository,
    TestCreate,
    TestUpdate,
)
from apitrack.execution.runner import CollectionRunner
from apitrack.ops.context import OperationContext
from apitrack.ops.requests import (
    AddTestRequest,
    CreateCollectionRequest,
    DeleteCollectionRequest,
    DeleteTestRequest,
    GetCollectionRequest,
    RunCollectionRequest,
    RunTestRequest,
    UpdateCollectionRequest,
    UpdateTestRequest,
)
from apitrack.ops.responses import (
    CollectionDeleted,
    CollectionDetail,
    CollectionSummary,
    RunDetail,
    TestDeleted,
    TestSummary,
)
from apitrack.ops.result import OperationResult, PagedResult, start_timer
from apitrack.ops.runs import to_run_detail

logger = get_logger(__name__)


# ------------------------------------------------------------------ #
# Ownership helpers (shared with schedule operations)
# ------------------------------------------------------------------ #


def require_owner(ctx: OperationContext) -> str:
    """Return the calling owner or raise when the context has none."""
    if not ctx.user:
        raise AuthorizationError("No user set for this operation")
    return ctx.user


def load_owned_collection(
    ctx: OperationContext, collection_id: str, *, with_tests: bool = True
) -> Collection:
    """Load a collection the caller owns.

    Raises:
        NotFoundError: No such collection
        AuthorizationError: The collection belongs to another owner
    """
    owner_id = require_owner(ctx)
    collection = CollectionRepository(ctx.conn).get(collection_id, with_tests=with_tests)
    if collection is None:
        raise NotFoundError("Collection", collection_id)
    if collection.owner_id != owner_id:
        raise AuthorizationError(
            f"Collection {collection_id} belongs to another user"
        ).with_context(collection_id=collection_id, owner_id=owner_id)
    return collection


def _runner(ctx: OperationContext) -> CollectionRunner:
    return ctx.runner or CollectionRunner(RunRepository(ctx.conn), ctx.settings)


def _to_test_summary(test: TestDefinition) -> TestSummary:
    return TestSummary(
        test_id=test.id,
        name=test.name,
        method=test.method,
        url=test.url,
        expected_status=test.expected_status,
        position=test.position,
    )


def _to_detail(collection: Collection) -> CollectionDetail:
    return CollectionDetail(
        collection_id=collection.id,
        name=collection.name,
        description=collection.description,
        tests=[_to_test_summary(t) for t in collection.tests],
    )


# ------------------------------------------------------------------ #
# Operations
# ------------------------------------------------------------------ #


def create_collection(
    ctx: OperationContext,
    request: CreateCollectionRequest,
) -> OperationResult[CollectionDetail]:
    """Create an empty collection."""
    timer = start_timer()

    if not request.name:
        return OperationResult.fail(
            "VALIDATION_FAILED", "name is required", elapsed_ms=timer.elapsed_ms
        )

    try:
        owner_id = require_owner(ctx)
        repo = CollectionRepository(ctx.conn)
        if repo.get_by_name(owner_id, request.name) is not None:
            raise DuplicateNameError("collection", request.name)
        if ctx.dry_run:
            return OperationResult.ok(
                CollectionDetail(collection_id="", name=request.name, description=request.description),
                elapsed_ms=timer.elapsed_ms,
            )

        collection = repo.create(request.name, owner_id, request.description)
        logger.info("collection.created", collection_id=collection.id, name=collection.name)
        return OperationResult.ok(_to_detail(collection), elapsed_ms=timer.elapsed_ms)
    except ApiTrackError as exc:
        return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)
    except Exception as exc:
        logger.exception("op_failed", op="create_collection", error=str(exc))
        return OperationResult.fail(
            "INTERNAL", f"Failed to create collection: {exc}", elapsed_ms=timer.elapsed_ms
        )


def get_collection(
    ctx: OperationContext,
    request: GetCollectionRequest,
) -> OperationResult[CollectionDetail]:
    """Get a collection with its tests."""
    timer = start_timer()

    if not request.collection_id:
        return OperationResult.fail(
            "VALIDATION_FAILED", "collection_id is required", elapsed_ms=timer.elapsed_ms
        )

    try:
        collection = load_owned_collection(ctx, request.collection_id)
        return OperationResult.ok(_to_detail(collection), elapsed_ms=timer.elapsed_ms)
    except ApiTrackError as exc:
        return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)
    except Exception as exc:
        logger.exception("op_failed", op="get_collection", error=str(exc))
        return OperationResult.fail(
            "INTERNAL", f"Failed to get collection: {exc}", elapsed_ms=timer.elapsed_ms
        )


def list_collections(ctx: OperationContext) -> PagedResult[CollectionSummary]:
    """List the caller's collections with their test counts."""
    timer = start_timer()

    try:
        owner_id = require_owner(ctx)
        repo = CollectionRepository(ctx.conn)
        summaries = [
            CollectionSummary(
                collection_id=c.id,
                name=c.name,
                description=c.description,
                test_count=repo.count_tests(c.id),
            )
            for c in repo.list_for_owner(owner_id)
        ]
        return PagedResult.from_items(
            summaries,
            total=len(summaries),
            limit=max(len(summaries), 1),
            elapsed_ms=timer.elapsed_ms,
        )
    except ApiTrackError as exc:
        return PagedResult.from_error(exc, elapsed_ms=timer.elapsed_ms)
    except Exception as exc:
        logger.exception("op_failed", op="list_collections", error=str(exc))
        return PagedResult.fail(
            "INTERNAL", f"Failed to list collections: {exc}", elapsed_ms=timer.elapsed_ms
        )


def update_collection(
    ctx: OperationContext,
    request: UpdateCollectionRequest,
) -> OperationResult[CollectionDetail]:
    """Rename a collection or change its description."""
    timer = start_timer()

    if not request.collection_id:
        return OperationResult.fail(
            "VALIDATION_FAILED", "collection_id is required", elapsed_ms=timer.elapsed_ms
        )
    if request.name == "":
        return OperationResult.fail(
            "VALIDATION_FAILED", "name cannot be empty", elapsed_ms=timer.elapsed_ms
        )

    try:
        collection = load_owned_collection(ctx, request.collection_id)
        repo = CollectionRepository(ctx.conn)
        if request.name is not None and request.name != collection.name:
            if repo.get_by_name(collection.owner_id, request.name) is not None:
                raise DuplicateNameError("collection", request.name)
        if ctx.dry_run:
            return OperationResult.ok(
                _to_detail(
                    replace(
                        collection,
                        name=request.name if request.name is not None else collection.name,
                        description=(
                            request.description
                            if request.description is not None
                            else collection.description
                        ),
                    )
                ),
                elapsed_ms=timer.elapsed_ms,
            )

        updated = repo.update(collection.id, name=request.name, description=request.description)
        logger.info("collection.updated", collection_id=collection.id, request_id=ctx.request_id)
        return OperationResult.ok(_to_detail(updated), elapsed_ms=timer.elapsed_ms)
    except ApiTrackError as exc:
        return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)
    except Exception as exc:
        logger.exception("op_failed", op="update_collection", error=str(exc))
        return OperationResult.fail(
            "INTERNAL", f"Failed to update collection: {exc}", elapsed_ms=timer.elapsed_ms
        )


def delete_collection(
    ctx: OperationContext,
    request: DeleteCollectionRequest,
) -> OperationResult[CollectionDeleted]:
    """Delete a collection, its tests and the schedules that run it.

    Triggers of the deleted schedules are cancelled. Past runs are kept.
    """
    timer = start_timer()

    if not request.collection_id:
        return OperationResult.fail(
            "VALIDATION_FAILED", "collection_id is required", elapsed_ms=timer.elapsed_ms
        )

    try:
        collection = load_owned_collection(ctx, request.collection_id, with_tests=False)
        schedules = ScheduleRepository(ctx.conn)
        schedule_ids = [s.id for s in schedules.list_for_collection(collection.id)]
        if ctx.dry_run:
            return OperationResult.ok(
                CollectionDeleted(
                    collection_id=collection.id,
                    deleted=False,
                    dry_run=True,
                    schedule_ids=schedule_ids,
                ),
                elapsed_ms=timer.elapsed_ms,
            )

        for schedule_id in schedule_ids:
            schedules.delete(schedule_id)
            if ctx.registry is not None:
                ctx.registry.uninstall(schedule_id)
        CollectionRepository(ctx.conn).delete(collection.id)
        logger.info(
            "collection.deleted",
            collection_id=collection.id,
            schedules_deleted=len(schedule_ids),
            request_id=ctx.request_id,
        )
        return OperationResult.ok(
            CollectionDeleted(collection_id=collection.id, schedule_ids=schedule_ids),
            elapsed_ms=timer.elapsed_ms,
        )
    except ApiTrackError as exc:
        return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)
    except Exception as exc:
        logger.exception("op_failed", op="delete_collection", error=str(exc))
        return OperationResult.fail(
            "INTERNAL", f"Failed to delete collection: {exc}", elapsed_ms=timer.elapsed_ms
        )


def add_test(
    ctx: OperationContext,
    request: AddTestRequest,
) -> OperationResult[TestSummary]:
    """Append a test to a collection."""
    timer = start_timer()

    if not request.collection_id:
        return OperationResult.fail(
            "VALIDATION_FAILED", "collection_id is required", elapsed_ms=timer.elapsed_ms
        )
    if not request.name:
        return OperationResult.fail(
            "VALIDATION_FAILED", "name is required", elapsed_ms=timer.elapsed_ms
        )
    if not request.url:
        return OperationResult.fail(
            "VALIDATION_FAILED", "url is required", elapsed_ms=timer.elapsed_ms
        )

    try:
        method = request.method.upper()
        if method not in SUPPORTED_METHODS:
            raise ConfigurationError(
                f"unsupported HTTP method: {request.method}", field="method", value=request.method
            )
        collection = load_owned_collection(ctx, request.collection_id)
        if any(t.name == request.name for t in collection.tests):
            raise DuplicateNameError("test", request.name)
        if ctx.dry_run:
            return OperationResult.ok(
                TestSummary(test_id="", name=request.name, method=method, url=request.url),
                elapsed_ms=timer.elapsed_ms,
            )

        test = CollectionRepository(ctx.conn).add_test(
            collection.id,
            TestCreate(
                name=request.name,
                method=method,
                url=request.url,
                headers=dict(request.headers),
                body=request.body,
                expected_status=request.expected_status,
            ),
        )
        logger.info("collection.test_added", collection_id=collection.id, test_id=test.id)
        return OperationResult.ok(_to_test_summary(test), elapsed_ms=timer.elapsed_ms)
    except ApiTrackError as exc:
        return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)
    except Exception as exc:
        logger.exception("op_failed", op="add_test", error=str(exc))
        return OperationResult.fail(
            "INTERNAL", f"Failed to add test: {exc}", elapsed_ms=timer.elapsed_ms
        )


def _load_owned_test(ctx: OperationContext, test_id: str) -> tuple[TestDefinition, Collection]:
    test = CollectionRepository(ctx.conn).get_test(test_id)
    if test is None:
        raise NotFoundError("Test", test_id)
    return test, load_owned_collection(ctx, test.collection_id)


def update_test(
    ctx: OperationContext,
    request: UpdateTestRequest,
) -> OperationResult[TestSummary]:
    """Edit a test. Its position in the collection is kept."""
    timer = start_timer()

    if not request.test_id:
        return OperationResult.fail(
            "VALIDATION_FAILED", "test_id is required", elapsed_ms=timer.elapsed_ms
        )
    if request.name == "" or request.url == "":
        return OperationResult.fail(
            "VALIDATION_FAILED", "name and url cannot be empty", elapsed_ms=timer.elapsed_ms
        )

    try:
        method = request.method.upper() if request.method is not None else None
        if method is not None and method not in SUPPORTED_METHODS:
            raise ConfigurationError(
                f"unsupported HTTP method: {request.method}", field="method", value=request.method
            )
        test, collection = _load_owned_test(ctx, request.test_id)
        if request.name is not None and request.name != test.name:
            if any(t.name == request.name for t in collection.tests):
                raise DuplicateNameError("test", request.name)

        updates = TestUpdate(
            name=request.name,
            method=method,
            url=request.url,
            headers=dict(request.headers) if request.headers is not None else None,
            body=request.body,
            expected_status=request.expected_status,
            clear_body=request.clear_body,
            clear_expected_status=request.clear_expected_status,
        )
        if ctx.dry_run:
            preview = replace(
                test,
                name=updates.name if updates.name is not None else test.name,
                method=updates.method or test.method,
                url=updates.url or test.url,
                expected_status=(
                    None
                    if updates.clear_expected_status
                    else updates.expected_status
                    if updates.expected_status is not None
                    else test.expected_status
                ),
            )
            return OperationResult.ok(_to_test_summary(preview), elapsed_ms=timer.elapsed_ms)

        updated = CollectionRepository(ctx.conn).update_test(test.id, updates)
        logger.info("collection.test_updated", collection_id=collection.id, test_id=test.id)
        return OperationResult.ok(_to_test_summary(updated), elapsed_ms=timer.elapsed_ms)
    except ApiTrackError as exc:
        return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)
    except Exception as exc:
        logger.exception("op_failed", op="update_test", error=str(exc))
        return OperationResult.fail(
            "INTERNAL", f"Failed to update test: {exc}", elapsed_ms=timer.elapsed_ms
        )


def delete_test(
    ctx: OperationContext,
    request: DeleteTestRequest,
) -> OperationResult[TestDeleted]:
    """Remove a test from its collection."""
    timer = start_timer()

    if not request.test_id:
        return OperationResult.fail(
            "VALIDATION_FAILED", "test_id is required", elapsed_ms=timer.elapsed_ms
        )

    try:
        test, collection = _load_owned_test(ctx, request.test_id)
        if ctx.dry_run:
            return OperationResult.ok(
                TestDeleted(test_id=test.id, deleted=False, dry_run=True),
                elapsed_ms=timer.elapsed_ms,
            )

        CollectionRepository(ctx.conn).delete_test(test.id)
        logger.info("collection.test_deleted", collection_id=collection.id, test_id=test.id)
        return OperationResult.ok(TestDeleted(test_id=test.id), elapsed_ms=timer.elapsed_ms)
    except ApiTrackError as exc:
        return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)
    except Exception as exc:
        logger.exception("op_failed", op="delete_test", error=str(exc))
        return OperationResult.fail(
            "INTERNAL", f"Failed to delete test: {exc}", elapsed_ms=timer.elapsed_ms
        )


async def run_collection(
    ctx: OperationContext,
    request: RunCollectionRequest,
) -> OperationResult[RunDetail]:
    """Run every test of a collection now and return the recorded run."""
    timer = start_timer()

    if not request.collection_id:
        return OperationResult.fail(
            "VALIDATION_FAILED", "collection_id is required", elapsed_ms=timer.elapsed_ms
        )

    try:
        collection = load_owned_collection(ctx, request.collection_id)
        runner = _runner(ctx)
        run = await runner.run(collection, RunTrigger(owner_id=collection.owner_id))
        results = runner.runs.list_results(run.id)
        return OperationResult.ok(to_run_detail(run, results), elapsed_ms=timer.elapsed_ms)
    except ApiTrackError as exc:
        return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)
    except Exception as exc:
        logger.exception("op_failed", op="run_collection", error=str(exc))
        return OperationResult.fail(
            "INTERNAL", f"Failed to run collection: {exc}", elapsed_ms=timer.elapsed_ms
        )


async def run_test(
    ctx: OperationContext,
    request: RunTestRequest,
) -> OperationResult[RunDetail]:
    """Run a single test as its own run."""
    timer = start_timer()

    if not request.test_id:
        return OperationResult.fail(
            "VALIDATION_FAILED", "test_id is required", elapsed_ms=timer.elapsed_ms
        )

    try:
        test = CollectionRepository(ctx.conn).get_test(request.test_id)
        if test is None:
            raise NotFoundError("Test", request.test_id)
        collection = load_owned_collection(ctx, test.collection_id, with_tests=False)
        runner = _runner(ctx)
        run = await runner.run_test(test, RunTrigger(owner_id=collection.owner_id))
        results = runner.runs.list_results(run.id)
        return OperationResult.ok(to_run_detail(run, results), elapsed_ms=timer.elapsed_ms)
    except ApiTrackError as exc:
        return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)
    except Exception as exc:
        logger.exception("op_failed", op="run_test", error=str(exc))
        return OperationResult.fail(
            "INTERNAL", f"Failed to run test: {exc}", elapsed_ms=timer.elapsed_ms
        )
