"""
Notification sink protocol and data classes.

A sink delivers a ``RunReport`` (run summary plus failed results) for a
scheduled run to one recipient. Concrete sinks live next to this module.

Design Principles:
- Protocol over Inheritance: any object with ``name`` and ``send`` works
- Delivery problems are returned as a failed DeliveryResult, not raised
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol, runtime_checkable

from apitrack.core.models.run import Result, Run

# Failed-test response bodies are cut to this many characters in reports.
REPORT_BODY_CHARS = 300


@dataclass
class RunReport:
    """Everything a recipient is told about one scheduled run."""

    schedule_name: str
    run: Run
    failed_results: list[Result] = field(default_factory=list)
    body_chars: int = REPORT_BODY_CHARS

    @property
    def subject(self) -> str:
        return f"API Test Report - {self.schedule_name}"

    @property
    def passed(self) -> bool:
        return self.run.failure_count == 0

    def body_excerpt(self, result: Result) -> str:
        """Start of a failed result's response body, marked when cut."""
        body = (result.response_body or "").strip()
        if len(body) <= self.body_chars:
            return body
        return body[: self.body_chars] + "... [truncated]"

    def to_text(self) -> str:
        """Plain-text rendering of the report."""
        run = self.run
        lines = [
            self.subject,
            "",
            f"Run time: {run.started_at}",
            f"Status: {run.status.value}",
            f"Total tests: {run.total_tests}",
            f"Passed: {run.success_count}",
            f"Failed: {run.failure_count}",
            f"Total duration: {run.total_duration_ms:.0f} ms",
        ]
        if self.failed_results:
            lines += ["", "Failed tests:"]
            for result in self.failed_results:
                detail = result.error or f"HTTP {result.status_code}"
                lines.append(f"  - {result.test_name}: {detail}")
                excerpt = self.body_excerpt(result)
                if excerpt:
                    lines.append("    Response: " + " ".join(excerpt.split()))
        return "\n".join(lines) + "\n"

    def to_dict(self) -> dict[str, Any]:
        return {
            "schedule_name": self.schedule_name,
            "run": self.run.to_dict(),
            "failed_results": [r.to_dict() for r in self.failed_results],
        }


@dataclass
class DeliveryResult:
    """Result of a report delivery attempt."""

    sink_name: str
    success: bool
    message: str | None = None
    error: Exception | None = None
    delivered_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def ok(cls, sink_name: str, message: str | None = None) -> DeliveryResult:
        return cls(sink_name=sink_name, success=True, message=message)

    @classmethod
    def fail(cls, sink_name: str, error: Exception) -> DeliveryResult:
        return cls(sink_name=sink_name, success=False, error=error, message=str(error))


@runtime_checkable
class NotificationSink(Protocol):
    """
    Protocol for report sinks.

    Implementations must provide:
    - name: Sink identifier for logs
    - send(): Deliver a report to a recipient
    """

    @property
    def name(self) -> str:
        """Sink name."""
        ...

    def send(self, recipient: str, report: RunReport) -> DeliveryResult:
        """Deliver ``report`` to ``recipient``."""
        ...


__all__ = [
    "REPORT_BODY_CHARS",
    "DeliveryResult",
    "NotificationSink",
    "RunReport",
]
