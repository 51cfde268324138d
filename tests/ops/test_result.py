"""Tests for the operation result envelope."""

from __future__ import annotations

import pytest

from apitrack.core.errors import (
    AuthorizationError,
    ConfigurationError,
    DispatchError,
    DuplicateNameError,
    EmptyCollectionError,
    NotFoundError,
)
from apitrack.ops.result import OperationResult, PagedResult


@pytest.mark.parametrize(
    ("error", "code"),
    [
        (DuplicateNameError("schedule", "nightly"), "CONFLICT"),
        (EmptyCollectionError("c1"), "EMPTY_COLLECTION"),
        (ConfigurationError("bad", field="kind"), "VALIDATION_FAILED"),
        (NotFoundError("Schedule", "s1"), "NOT_FOUND"),
        (AuthorizationError("not yours"), "FORBIDDEN"),
        (DispatchError("boom"), "INTERNAL"),
    ],
)
def test_from_error_codes(error, code):
    result = OperationResult.from_error(error)
    assert result.success is False
    assert result.error.code == code
    assert result.error.category is error.category


def test_from_error_carries_field_and_context():
    error = ConfigurationError("bad time", field="time_of_day").with_context(schedule_id="s1")
    result = OperationResult.from_error(error)
    assert result.error.details == {"schedule_id": "s1", "field": "time_of_day"}


def test_to_dict():
    ok = OperationResult.ok({"a": 1}, warnings=["careful"]).to_dict()
    assert ok == {"success": True, "data": {"a": 1}, "warnings": ["careful"]}

    failed = OperationResult.fail("NOT_FOUND", "missing", details={"id": "x"}).to_dict()
    assert failed["error"] == {
        "code": "NOT_FOUND",
        "message": "missing",
        "retryable": False,
        "details": {"id": "x"},
    }


def test_paged_has_more():
    page = PagedResult.from_items([1, 2], total=5, limit=2, offset=2)
    assert page.has_more is True
    assert PagedResult.from_items([5], total=5, limit=2, offset=4).has_more is False
    assert page.to_dict()["total"] == 5
