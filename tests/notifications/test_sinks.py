"""Tests for run reports and notification sinks."""

from __future__ import annotations

import smtplib
from unittest.mock import patch

import pytest

from apitrack.core.models import Result, Run, RunStatus
from apitrack.notifications import (
    ConsoleNotificationSink,
    EmailNotificationSink,
    NotificationSink,
    RunReport,
    create_sink,
)


@pytest.fixture
def report() -> RunReport:
    run = Run(
        id="run-1",
        collection_id="c1",
        owner_id="alice",
        status=RunStatus.COMPLETED,
        started_at="2026-01-05T12:00:00+00:00",
        schedule_id="s1",
        completed_at="2026-01-05T12:00:01+00:00",
        total_tests=3,
        success_count=1,
        failure_count=2,
        total_duration_ms=321.4,
    )
    failed = [
        Result(
            id="r2",
            run_id="run-1",
            test_id="t2",
            test_name="GET /missing",
            status_code=404,
            duration_ms=10.0,
            response_body='{"detail":\n  "no <such> item"}',
        ),
        Result(
            id="r3",
            run_id="run-1",
            test_id="t3",
            test_name="GET /down",
            status_code=0,
            duration_ms=2.0,
            error="connection refused",
        ),
    ]
    return RunReport(schedule_name="nightly <prod>", run=run, failed_results=failed)


class TestRunReport:
    def test_text(self, report):
        text = report.to_text()
        assert text.startswith("API Test Report - nightly <prod>\n")
        assert "Total tests: 3" in text
        assert "Passed: 1" in text
        assert "Failed: 2" in text
        assert "Total duration: 321 ms" in text
        assert "  - GET /missing: HTTP 404" in text
        assert "  - GET /down: connection refused" in text
        assert '    Response: {"detail": "no <such> item"}' in text

    def test_passed(self, report):
        assert report.passed is False
        report.run.failure_count = 0
        assert report.passed is True

    def test_long_body_is_truncated(self, report):
        report.failed_results[0].response_body = "x" * 1000
        report.body_chars = 20

        assert report.body_excerpt(report.failed_results[0]) == "x" * 20 + "... [truncated]"
        assert "    Response: " + "x" * 20 + "... [truncated]" in report.to_text()

    def test_no_body_no_response_line(self, report):
        lines = report.to_text().splitlines()
        down = lines.index("  - GET /down: connection refused")
        assert down == len(lines) - 1

    def test_to_dict(self, report):
        data = report.to_dict()
        assert data["run"]["id"] == "run-1"
        assert [r["test_name"] for r in data["failed_results"]] == ["GET /missing", "GET /down"]


class TestConsoleSink:
    def test_records_report(self, report):
        sink = ConsoleNotificationSink()
        result = sink.send("ops@example.com", report)

        assert result.success is True
        assert result.sink_name == "console"
        assert sink.sent == [("ops@example.com", report)]
        assert isinstance(sink, NotificationSink)


class TestEmailSink:
    def _sink(self, **kwargs) -> EmailNotificationSink:
        return EmailNotificationSink("smtp.test", "apitrack@test", **kwargs)

    def test_sends_multipart_message(self, report):
        with patch("smtplib.SMTP") as smtp:
            result = self._sink(smtp_user="u", smtp_password="p").send("ops@example.com", report)

        assert result.success is True
        server = smtp.return_value
        smtp.assert_called_once_with("smtp.test", 587, timeout=30.0)
        server.starttls.assert_called_once()
        server.login.assert_called_once_with("u", "p")
        sender, recipients, message = server.sendmail.call_args.args
        assert sender == "apitrack@test"
        assert recipients == ["ops@example.com"]
        assert "Subject: API Test Report - nightly <prod>" in message
        assert "multipart/alternative" in message
        server.quit.assert_called_once()

    def test_html_escapes_names(self, report):
        html = self._sink()._build_html(report)
        assert "nightly &lt;prod&gt;" in html
        assert "GET /down" in html
        assert "connection refused" in html
        assert "<th>Response</th>" in html
        assert "no &lt;such&gt; item" in html

    def test_no_tls_no_login(self, report):
        with patch("smtplib.SMTP") as smtp:
            self._sink(use_tls=False).send("ops@example.com", report)

        smtp.return_value.starttls.assert_not_called()
        smtp.return_value.login.assert_not_called()

    def test_smtp_failure_is_returned(self, report):
        with patch("smtplib.SMTP") as smtp:
            smtp.return_value.sendmail.side_effect = smtplib.SMTPRecipientsRefused({})
            result = self._sink().send("ops@example.com", report)

        assert result.success is False
        assert result.error is not None
        smtp.return_value.quit.assert_called_once()

    def test_connection_failure_is_returned(self, report):
        with patch("smtplib.SMTP", side_effect=ConnectionRefusedError("refused")):
            result = self._sink().send("ops@example.com", report)

        assert result.success is False
        assert result.message == "refused"

    def test_from_settings(self, settings):
        sink = EmailNotificationSink.from_settings(settings)
        assert sink.name == "email"


class TestCreateSink:
    def test_known(self, settings):
        assert isinstance(create_sink("console", settings), ConsoleNotificationSink)
        assert isinstance(create_sink("email", settings), EmailNotificationSink)

    def test_unknown(self, settings):
        with pytest.raises(ValueError, match="Unknown notification sink"):
            create_sink("pager", settings)
