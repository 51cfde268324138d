"""Runtime settings for apitrack.

All tunables of the scheduler and the collection runner live here and are
read from ``APITRACK_*`` environment variables or a ``.env`` file.

Manifesto:
    Configuration should be explicit, validated, and environment-driven.

    - **Pydantic validation:** Type-checked at startup, not at first fire
    - **Environment-driven:** Reads from env vars and .env files
    - **Sensible defaults:** Works out of the box for development

Examples:
    >>> settings = Settings(max_concurrency=4)
    >>> settings.success_policy
    'status_range'

Tags:
    settings, configuration, pydantic, environment

Doc-Types:
    - API Reference
    - Configuration Guide
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings shared by the scheduler, the runner and the CLI.

    Fields
    ──────
    database                : SQLite file holding schedules, collections and runs
    log_level               : Structlog log level
    json_logs               : Force JSON (True) or console (False); None = auto
    timezone                : Reference timezone for daily/weekly rules
    scheduler_mode          : "push" (one-shot triggers) or "poll" (due sweep)
    tick_seconds            : Reconcile / poll interval
    due_tolerance_seconds   : Window around a daily/weekly time that counts as due
    request_timeout_seconds : Per-request timeout for test HTTP calls
    max_concurrency         : Upper bound on concurrent requests in one run
    max_response_chars      : Response bodies are truncated to this length
    success_policy          : "status_range" or "expected_status"
    stale_run_minutes       : Running runs older than this are marked failed
    smtp_*                  : Outbound mail for run reports
    """

    model_config = SettingsConfigDict(
        env_prefix="APITRACK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Storage ──────────────────────────────────────────────────
    database: Path = Field(
        default_factory=lambda: Path.home() / ".apitrack" / "apitrack.db",
        description="SQLite database path",
    )

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    json_logs: bool | None = None

    # ── Scheduling ───────────────────────────────────────────────
    timezone: str = "UTC"
    scheduler_mode: Literal["push", "poll"] = "push"
    tick_seconds: float = Field(default=30.0, gt=0)
    due_tolerance_seconds: int = Field(default=60, ge=0)
    stale_run_minutes: int = Field(default=60, gt=0)

    # ── Execution ────────────────────────────────────────────────
    request_timeout_seconds: float = Field(default=30.0, gt=0)
    max_concurrency: int = Field(default=10, ge=1)
    max_response_chars: int = Field(default=65_536, ge=0)
    success_policy: Literal["status_range", "expected_status"] = "status_range"

    # ── Notifications ────────────────────────────────────────────
    smtp_host: str = "localhost"
    smtp_port: int = 587
    smtp_user: str | None = None
    smtp_password: str | None = None
    smtp_use_tls: bool = True
    smtp_from: str = "apitrack@localhost"

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"unknown timezone: {value}") from exc
        return value

    @property
    def tzinfo(self) -> ZoneInfo:
        """Reference timezone as a tzinfo."""
        return ZoneInfo(self.timezone)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Process-wide settings, read once from the environment."""
    return Settings()
