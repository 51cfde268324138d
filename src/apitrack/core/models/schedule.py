"""Schedule aggregate (``schedules`` table)."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime

from apitrack.core.errors import ConfigurationError
from apitrack.core.models.recurrence import RecurrenceRule


@dataclass(frozen=True)
class NotifySettings:
    """Where to send a run report after a scheduled run."""

    enabled: bool = False
    recipient: str | None = None

    def __post_init__(self) -> None:
        if self.enabled and not (self.recipient and self.recipient.strip()):
            raise ConfigurationError(
                "a recipient is required when notifications are enabled",
                field="notify_recipient",
            )


@dataclass
class Schedule:
    """A named recurring instruction to run one collection."""

    id: str
    name: str
    owner_id: str
    collection_id: str
    recurrence: RecurrenceRule
    notify: NotifySettings = NotifySettings()
    created_at: str = ""
    updated_at: str = ""
    version: int = 1
    last_attempt: datetime | None = None

    @property
    def active(self) -> bool:
        return self.recurrence.active

    @property
    def last_run(self) -> datetime | None:
        return self.recurrence.last_run

    @property
    def due_anchor(self) -> datetime | None:
        """Latest of ``last_run`` and ``last_attempt``.

        Poll mode measures due-ness from here, so a dispatch that failed or
        found an empty collection waits for the next occurrence.
        """
        if self.last_attempt is None:
            return self.last_run
        if self.last_run is None:
            return self.last_attempt
        return max(self.last_run, self.last_attempt)

    def with_last_run(self, last_run: datetime | None) -> Schedule:
        return replace(self, recurrence=self.recurrence.with_last_run(last_run))
