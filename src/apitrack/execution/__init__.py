"""Collection execution: HTTP executor, success policies and the runner."""

from apitrack.execution.executor import ExecutionOutcome, TestExecutor
from apitrack.execution.policy import (
    ExpectedStatusPolicy,
    StatusRangePolicy,
    SuccessPolicy,
    get_policy,
)
from apitrack.execution.runner import CollectionRunner

__all__ = [
    "CollectionRunner",
    "ExecutionOutcome",
    "ExpectedStatusPolicy",
    "StatusRangePolicy",
    "SuccessPolicy",
    "TestExecutor",
    "get_policy",
]
