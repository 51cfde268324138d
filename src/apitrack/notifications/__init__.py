"""Run report delivery."""

from apitrack.core.settings import Settings
from apitrack.notifications.console import ConsoleNotificationSink
from apitrack.notifications.email import EmailNotificationSink
from apitrack.notifications.protocol import DeliveryResult, NotificationSink, RunReport


def create_sink(kind: str, settings: Settings) -> NotificationSink:
    """Build a sink by name (``email`` or ``console``)."""
    if kind == "email":
        return EmailNotificationSink.from_settings(settings)
    if kind == "console":
        return ConsoleNotificationSink()
    raise ValueError(f"Unknown notification sink: {kind!r}. Available: console, email")


__all__ = [
    "ConsoleNotificationSink",
    "DeliveryResult",
    "EmailNotificationSink",
    "NotificationSink",
    "RunReport",
    "create_sink",
]
