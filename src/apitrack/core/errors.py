"""
Structured error types for apitrack.

Every error raised by the scheduling and execution subsystem is an
``ApiTrackError`` carrying a category, a retry flag, structured context and
an optional chained cause. Callers at the edges (ops layer, CLI, dispatcher)
map these to result codes or log lines instead of inspecting messages.

Manifesto:
    - **Typed Error Hierarchy:** One subclass per failure the system reports
    - **Fail at construction:** Invalid recurrence or notify settings never
      reach the registry
    - **Captured, not raised:** Transport failures become Results
    - **Error Chaining:** Preserve original exceptions while adding context

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                      ApiTrackError                               │
        │  (category, retryable, retry_after, context, cause)             │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  ValidationError       TransientError      OrchestrationError    │
        │  (VALIDATION)          (retryable=True)    (ORCHESTRATION)       │
        │       │                     │                    │               │
        │  ConfigurationError    TransportError      DispatchError         │
        │  EmptyCollectionError  NotificationError                         │
        │  DuplicateNameError                                              │
        │                                                                  │
        │  NotFoundError         AuthorizationError                        │
        │  (NOT_FOUND)           (AUTH)                                    │
        └─────────────────────────────────────────────────────────────────┘

Tags:
    error-handling, exception-hierarchy, error-context, scheduling

Doc-Types:
    - API Reference
    - Error Handling Guide

Usage:
    from apitrack.core.errors import ConfigurationError

    if rule.minute_interval is None:
        raise ConfigurationError("minute recurrence requires minute_interval",
                                 field="minute_interval")
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """
    Standard error categories for classification and routing.

    Attributes:
        NETWORK: Connection, timeout, DNS errors while calling a test target
        DATABASE: Store read/write failures
        VALIDATION: Invalid input from a user action
        CONFIG: Invalid recurrence or notification settings
        AUTH: Ownership violations
        NOT_FOUND: Referenced entity does not exist
        ORCHESTRATION: Scheduler and dispatch failures
        NOTIFICATION: Report delivery failures
        INTERNAL: Bugs, unexpected state
    """

    NETWORK = "NETWORK"
    DATABASE = "DATABASE"
    VALIDATION = "VALIDATION"
    CONFIG = "CONFIG"
    AUTH = "AUTH"
    NOT_FOUND = "NOT_FOUND"
    ORCHESTRATION = "ORCHESTRATION"
    NOTIFICATION = "NOTIFICATION"
    INTERNAL = "INTERNAL"


@dataclass
class ErrorContext:
    """
    Structured metadata context for errors.

    Typed fields cover the identifiers this subsystem deals with; anything
    else goes into ``metadata``.

    Attributes:
        schedule_id: Schedule being dispatched or edited
        collection_id: Collection being run
        run_id: Run identifier
        test_id: Test definition identifier
        owner_id: Owner of the entity
        url: URL that was being requested
        metadata: Additional key-value pairs
    """

    schedule_id: str | None = None
    collection_id: str | None = None
    run_id: str | None = None
    test_id: str | None = None
    owner_id: str | None = None
    url: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["schedule_id", "collection_id", "run_id", "test_id",
                    "owner_id", "url"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class ApiTrackError(Exception):
    """
    Base exception for all apitrack errors.

    Subclasses set ``default_category`` and ``default_retryable`` so call
    sites only pass a message and, where useful, a cause.

    Examples:
        >>> error = ApiTrackError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.with_context(schedule_id="sch_1").context.schedule_id
        'sch_1'
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        retry_after: int | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.retry_after = retry_after
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> ApiTrackError:
        """
        Add context to this error (fluent API).

        Usage:
            raise NotFoundError("Schedule not found").with_context(
                schedule_id="sch_42"
            )
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        if self.retry_after is not None:
            result["retry_after"] = self.retry_after
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# VALIDATION ERRORS
# =============================================================================


class ValidationError(ApiTrackError):
    """
    Invalid input from a user action.

    Never retryable - the input must be fixed.
    """

    default_category = ErrorCategory.VALIDATION
    default_retryable = False

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.field = field
        self.value = value

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.field is not None:
            result["field"] = self.field
        if self.value is not None:
            result["value"] = repr(self.value)
        return result


class ConfigurationError(ValidationError):
    """
    Invalid recurrence rule or notification settings.

    Raised when the value object is built, so a schedule that would never
    fire (or fire on the wrong cadence) is rejected before it is persisted.
    """

    default_category = ErrorCategory.CONFIG


class EmptyCollectionError(ValidationError):
    """A run was requested for a collection with zero tests."""

    def __init__(self, collection_id: str, message: str | None = None):
        super().__init__(
            message or f"No tests found in collection {collection_id}",
            context=ErrorContext(collection_id=collection_id),
        )
        self.collection_id = collection_id


class DuplicateNameError(ValidationError):
    """Name already used by another entity of the same owner."""

    def __init__(self, kind: str, name: str):
        super().__init__(f"A {kind} named '{name}' already exists",
                         field="name", value=name)
        self.kind = kind
        self.name = name


# =============================================================================
# TRANSIENT ERRORS
# =============================================================================


class TransientError(ApiTrackError):
    """Temporary failure that may succeed on retry."""

    default_category = ErrorCategory.NETWORK
    default_retryable = True


class TransportError(TransientError):
    """
    A test request could not be completed.

    Covers DNS failures, refused connections, TLS errors and timeouts. The
    runner records it on the Result (status 0) and never lets it escape.
    """

    pass


class NotificationError(TransientError):
    """A run report could not be delivered to its recipient."""

    default_category = ErrorCategory.NOTIFICATION


# =============================================================================
# LOOKUP / OWNERSHIP ERRORS
# =============================================================================


class NotFoundError(ApiTrackError):
    """Referenced schedule, collection, test or run does not exist."""

    default_category = ErrorCategory.NOT_FOUND
    default_retryable = False

    def __init__(self, kind: str, entity_id: str):
        super().__init__(f"{kind} not found: {entity_id}")
        self.kind = kind
        self.entity_id = entity_id


class AuthorizationError(ApiTrackError):
    """Caller does not own the referenced entity."""

    default_category = ErrorCategory.AUTH
    default_retryable = False


# =============================================================================
# ORCHESTRATION ERRORS
# =============================================================================


class OrchestrationError(ApiTrackError):
    """Scheduler, registry or dispatcher failure."""

    default_category = ErrorCategory.ORCHESTRATION
    default_retryable = False


class DispatchError(OrchestrationError):
    """Unexpected failure while dispatching a scheduled run."""

    pass


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: Exception) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, ApiTrackError):
        return error.retryable
    return isinstance(error, (ConnectionError, TimeoutError))


def categorize_error(error: Exception) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, ApiTrackError):
        return error.category
    if isinstance(error, (ConnectionError, TimeoutError)):
        return ErrorCategory.NETWORK
    if isinstance(error, ValueError):
        return ErrorCategory.VALIDATION
    return ErrorCategory.INTERNAL


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "ApiTrackError",
    "ValidationError",
    "ConfigurationError",
    "EmptyCollectionError",
    "DuplicateNameError",
    "TransientError",
    "TransportError",
    "NotificationError",
    "NotFoundError",
    "AuthorizationError",
    "OrchestrationError",
    "DispatchError",
    "is_retryable",
    "categorize_error",
]
