"""Success policies - how a raw execution outcome is classified.

The executor reports what happened on the wire; a policy decides whether
that counts as a pass. Two policies exist:

``status_range`` (default)
    Pass when the request completed with a status in [200, 400).

``expected_status`` (opt-in)
    Pass when the status equals the test's ``expected_status``; tests
    without one fall back to the status range.

Transport failures fail under both policies.
"""

from __future__ import annotations

from typing import Protocol

from apitrack.core.models.collection import TestDefinition
from apitrack.execution.executor import ExecutionOutcome


class SuccessPolicy(Protocol):
    """Classifies one execution outcome."""

    name: str

    def is_success(self, test: TestDefinition, outcome: ExecutionOutcome) -> bool: ...


class StatusRangePolicy:
    name = "status_range"

    def is_success(self, test: TestDefinition, outcome: ExecutionOutcome) -> bool:
        return outcome.error is None and 200 <= outcome.status_code < 400


class ExpectedStatusPolicy:
    name = "expected_status"

    def __init__(self) -> None:
        self._fallback = StatusRangePolicy()

    def is_success(self, test: TestDefinition, outcome: ExecutionOutcome) -> bool:
        if outcome.error is not None:
            return False
        if test.expected_status is None:
            return self._fallback.is_success(test, outcome)
        return outcome.status_code == test.expected_status


_POLICIES: dict[str, type] = {
    StatusRangePolicy.name: StatusRangePolicy,
    ExpectedStatusPolicy.name: ExpectedStatusPolicy,
}


def get_policy(name: str) -> SuccessPolicy:
    """Look up a policy by its settings name."""
    try:
        return _POLICIES[name]()
    except KeyError:
        raise ValueError(
            f"Unknown success policy: {name!r}. Available: {', '.join(sorted(_POLICIES))}"
        ) from None
