"""Email (SMTP) notification sink."""

from __future__ import annotations

import html
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from apitrack.core.errors import NotificationError
from apitrack.core.settings import Settings
from apitrack.notifications.protocol import DeliveryResult, RunReport


class EmailNotificationSink:
    """
    Sink that mails run reports over SMTP.

    Sends a multipart message with a plain-text and an HTML rendering.
    """

    def __init__(
        self,
        smtp_host: str,
        from_address: str,
        *,
        smtp_port: int = 587,
        smtp_user: str | None = None,
        smtp_password: str | None = None,
        use_tls: bool = True,
        timeout: float = 30.0,
        name: str = "email",
    ):
        self._name = name
        self._smtp_host = smtp_host
        self._smtp_port = smtp_port
        self._smtp_user = smtp_user
        self._smtp_password = smtp_password
        self._from_address = from_address
        self._use_tls = use_tls
        self._timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> EmailNotificationSink:
        return cls(
            settings.smtp_host,
            settings.smtp_from,
            smtp_port=settings.smtp_port,
            smtp_user=settings.smtp_user,
            smtp_password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
        )

    @property
    def name(self) -> str:
        return self._name

    def _build_html(self, report: RunReport) -> str:
        run = report.run
        color = "#2e7d32" if report.passed else "#c62828"
        rows = "".join(
            f"<tr><td>{html.escape(r.test_name)}</td>"
            f"<td>{r.status_code}</td>"
            f"<td>{html.escape(r.error or '')}</td>"
            f"<td><pre>{html.escape(report.body_excerpt(r))}</pre></td></tr>"
            for r in report.failed_results
        )
        failed_table = (
            "<h3>Failed tests</h3>"
            "<table border='1' cellpadding='4' cellspacing='0'>"
            "<tr><th>Test</th><th>Status</th><th>Error</th><th>Response</th></tr>"
            f"{rows}</table>"
            if report.failed_results
            else ""
        )
        return f"""
<html><body>
<h2>{html.escape(report.subject)}</h2>
<p>Run time: {html.escape(run.started_at)}</p>
<p>Status: <strong style="color:{color}">{run.status.value}</strong></p>
<ul>
  <li>Total tests: {run.total_tests}</li>
  <li>Passed: {run.success_count}</li>
  <li>Failed: {run.failure_count}</li>
  <li>Total duration: {run.total_duration_ms:.0f} ms</li>
</ul>
{failed_table}
</body></html>
"""

    def _build_message(self, recipient: str, report: RunReport) -> str:
        """Build email message."""
        msg = MIMEMultipart("alternative")
        msg["Subject"] = report.subject
        msg["From"] = self._from_address
        msg["To"] = recipient

        msg.attach(MIMEText(report.to_text(), "plain"))
        msg.attach(MIMEText(self._build_html(report), "html"))

        return msg.as_string()

    def send(self, recipient: str, report: RunReport) -> DeliveryResult:
        """Send a report via email."""
        try:
            server = smtplib.SMTP(self._smtp_host, self._smtp_port, timeout=self._timeout)
            try:
                if self._use_tls:
                    server.starttls()
                if self._smtp_user and self._smtp_password:
                    server.login(self._smtp_user, self._smtp_password)
                server.sendmail(self._from_address, [recipient], self._build_message(recipient, report))
            finally:
                server.quit()

            return DeliveryResult.ok(self._name, f"sent to {recipient}")

        except (smtplib.SMTPException, OSError) as e:
            return DeliveryResult.fail(self._name, NotificationError(str(e), cause=e))
