"""Console notification sink for development and testing."""

from __future__ import annotations

from apitrack.core.logging import get_logger
from apitrack.notifications.protocol import DeliveryResult, RunReport

logger = get_logger(__name__)


class ConsoleNotificationSink:
    """
    Sink that logs reports instead of delivering them.

    Every report is also kept in ``sent`` as ``(recipient, report)``.
    """

    def __init__(self, name: str = "console"):
        self._name = name
        self.sent: list[tuple[str, RunReport]] = []

    @property
    def name(self) -> str:
        return self._name

    def send(self, recipient: str, report: RunReport) -> DeliveryResult:
        """Log the report summary."""
        self.sent.append((recipient, report))
        logger.info(
            "notification.report",
            recipient=recipient,
            subject=report.subject,
            run_id=report.run.id,
            passed=report.run.success_count,
            failed=report.run.failure_count,
            failed_tests=[r.test_name for r in report.failed_results],
        )
        return DeliveryResult.ok(self._name)
