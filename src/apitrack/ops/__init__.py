"""
Operations layer — pure business logic for apitrack.

The ops package provides typed request/response functions over the
repositories, the runner and the scheduler with consistent patterns:

- All functions accept ``OperationContext`` as first argument
- All functions return ``OperationResult[T]`` (never raise for expected errors)
- All functions are transport-agnostic (no CLI knowledge)
- Commands support ``dry_run`` mode for safe previews
- Run operations are coroutines; everything else is synchronous

Usage::

    from apitrack.ops import OperationContext
    from apitrack.ops.collections import create_collection
    from apitrack.ops.requests import CreateCollectionRequest

    ctx = OperationContext(conn=my_connection, user="alice")
    result = create_collection(ctx, CreateCollectionRequest(name="smoke"))
    assert result.success
"""

from apitrack.ops.context import OperationContext
from apitrack.ops.result import OperationError, OperationResult, PagedResult

__all__ = [
    "OperationContext",
    "OperationError",
    "OperationResult",
    "PagedResult",
]
