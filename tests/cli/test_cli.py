"""Tests for the apitrack CLI (typer CliRunner against a temporary database)."""

from __future__ import annotations

import json
import logging

import pytest
import structlog
from typer.testing import CliRunner

from apitrack import __version__
from apitrack.cli import app


@pytest.fixture(autouse=True)
def _restore_logging():
    """Undo the logging setup each CLI invocation applies."""
    root_level = logging.getLogger().level
    yield
    structlog.contextvars.clear_contextvars()
    structlog.reset_defaults()
    logging.getLogger().setLevel(root_level)


@pytest.fixture
def cli(tmp_path, monkeypatch):
    """Invoke the CLI with ``--database`` pointing at a fresh file."""
    monkeypatch.delenv("APITRACK_USER", raising=False)
    runner = CliRunner()
    database = str(tmp_path / "apitrack.db")

    def _invoke(*args: str):
        group, command, *rest = args
        return runner.invoke(app, [group, command, *rest, "--database", database])

    return _invoke


def _json(result) -> dict:
    assert result.exit_code == 0, result.output
    return json.loads(result.stdout)


@pytest.fixture
def collection_id(cli) -> str:
    created = _json(cli("collection", "create", "smoke", "--description", "health checks", "--json"))
    return created["collection_id"]


def test_version():
    result = CliRunner().invoke(app, ["--version"])
    assert result.exit_code == 0
    assert f"apitrack {__version__}" in result.output


def test_no_args_shows_help():
    result = CliRunner().invoke(app, [])
    assert "collection" in result.output
    assert "schedule" in result.output


def test_commands_log_as_cli_caller(cli):
    cli("collection", "list")
    assert structlog.contextvars.get_contextvars()["caller"] == "cli"


class TestCollectionCommands:
    def test_create_and_list(self, cli, collection_id):
        listed = _json(cli("collection", "list", "--json"))
        assert listed["total"] == 1
        assert listed["items"][0]["collection_id"] == collection_id
        assert listed["items"][0]["test_count"] == 0

    def test_add_test_and_show(self, cli, collection_id):
        added = _json(
            cli(
                "collection", "add-test", collection_id, "login", "https://api.test/login",
                "-X", "POST", "-H", "X-Trace: 1", "--json-body", '{"user": "demo"}', "--expect", "200", "--json",
            )
        )
        assert added["method"] == "POST"
        assert added["expected_status"] == 200

        shown = _json(cli("collection", "show", collection_id, "--json"))
        assert [t["name"] for t in shown["tests"]] == ["login"]

        table = cli("collection", "show", collection_id)
        assert table.exit_code == 0
        assert "login" in table.output

    def test_invalid_json_body(self, cli, collection_id):
        result = cli("collection", "add-test", collection_id, "bad", "https://x", "--json-body", "{nope")
        assert result.exit_code == 2

    def test_invalid_header(self, cli, collection_id):
        result = cli("collection", "add-test", collection_id, "bad", "https://x", "-H", "no-colon")
        assert result.exit_code == 2

    def test_duplicate_collection(self, cli, collection_id):
        result = cli("collection", "create", "smoke")
        assert result.exit_code == 1

    def test_run_empty_collection_fails(self, cli, collection_id):
        result = cli("collection", "run", collection_id)
        assert result.exit_code == 1

    def test_dry_run(self, cli):
        result = cli("collection", "create", "preview", "--dry-run", "--json")
        assert _json(result)["collection_id"] == ""
        assert _json(cli("collection", "list", "--json"))["total"] == 0

    def test_update_and_delete_collection(self, cli, collection_id):
        updated = _json(cli("collection", "update", collection_id, "--name", "core", "--json"))
        assert updated["name"] == "core"
        assert updated["description"] == "health checks"

        schedule_id = _json(
            cli("schedule", "create", "hourly", "-c", collection_id, "--every-hours", "1", "--json")
        )["schedule_id"]
        deleted = _json(cli("collection", "delete", collection_id, "--json"))
        assert deleted["schedule_ids"] == [schedule_id]
        assert cli("collection", "show", collection_id).exit_code == 1
        assert cli("schedule", "show", schedule_id).exit_code == 1

    def test_update_and_delete_test(self, cli, collection_id):
        test_id = _json(
            cli("collection", "add-test", collection_id, "health", "https://api.test/ok", "--expect", "200", "--json")
        )["test_id"]

        updated = _json(cli("collection", "update-test", test_id, "-X", "head", "--no-expect", "--json"))
        assert updated["method"] == "HEAD"
        assert updated["expected_status"] is None

        assert cli("collection", "update-test", test_id, "--expect", "200", "--no-expect").exit_code == 2

        deleted = _json(cli("collection", "delete-test", test_id, "--json"))
        assert deleted["deleted"] is True
        assert _json(cli("collection", "show", collection_id, "--json"))["tests"] == []


class TestScheduleCommands:
    def test_create_every_minutes(self, cli, collection_id):
        created = _json(cli("schedule", "create", "every-15", "-c", collection_id, "--every-minutes", "15", "--json"))
        assert created["kind"] == "minute"
        assert created["minute_interval"] == 15
        assert created["description"] == "Run every 15 minutes"

        listed = _json(cli("schedule", "list", "--json"))
        assert [s["name"] for s in listed["items"]] == ["every-15"]

    def test_create_weekly(self, cli, collection_id):
        created = _json(
            cli("schedule", "create", "standup", "-c", collection_id, "--weekly", "weekday", "--at", "09:00", "--json")
        )
        assert created["weekday"] == "weekday"
        assert created["time_of_day"] == "09:00"

    def test_create_requires_one_cadence(self, cli, collection_id):
        none = cli("schedule", "create", "x", "-c", collection_id)
        both = cli("schedule", "create", "x", "-c", collection_id, "--every-minutes", "5", "--daily", "09:00")
        assert none.exit_code == 2
        assert both.exit_code == 2

    def test_invalid_cadence_fails_validation(self, cli, collection_id):
        result = cli("schedule", "create", "x", "-c", collection_id, "--weekly", "monday")
        assert result.exit_code == 1
        assert _json(cli("schedule", "list", "--json"))["total"] == 0

    def test_update_pause_resume_delete(self, cli, collection_id):
        schedule_id = _json(
            cli("schedule", "create", "nightly", "-c", collection_id, "--daily", "02:00", "--json")
        )["schedule_id"]

        updated = _json(cli("schedule", "update", schedule_id, "--at", "03:30", "--json"))
        assert updated["time_of_day"] == "03:30"
        assert updated["version"] == 2

        paused = _json(cli("schedule", "pause", schedule_id, "--json"))
        assert paused["active"] is False
        assert paused["next_run"] is None
        assert _json(cli("schedule", "list", "--active", "--json"))["total"] == 0

        resumed = _json(cli("schedule", "resume", schedule_id, "--json"))
        assert resumed["active"] is True

        deleted = _json(cli("schedule", "delete", schedule_id, "--json"))
        assert deleted["deleted"] is True
        assert cli("schedule", "show", schedule_id).exit_code == 1

    def test_other_user_cannot_see_schedule(self, cli, collection_id):
        schedule_id = _json(
            cli("schedule", "create", "mine", "-c", collection_id, "--every-hours", "1", "--json")
        )["schedule_id"]
        result = cli("schedule", "show", schedule_id, "--user", "mallory")
        assert result.exit_code == 1

    def test_run_empty_schedule_fails(self, cli, collection_id):
        schedule_id = _json(
            cli("schedule", "create", "empty", "-c", collection_id, "--every-hours", "1", "--json")
        )["schedule_id"]
        assert cli("schedule", "run", schedule_id).exit_code == 1


class TestRunsAndWorker:
    def test_runs_list_empty(self, cli):
        listed = _json(cli("runs", "list", "--json"))
        assert listed["items"] == []
        assert listed["total"] == 0

    def test_unknown_run(self, cli):
        assert cli("runs", "show", "nope").exit_code == 1

    def test_worker_once_with_nothing_due(self, cli, monkeypatch):
        monkeypatch.setattr("apitrack.core.logging.configure_logging", lambda *args, **kwargs: None)
        result = cli("worker", "once", "--sink", "none")
        assert result.exit_code == 0
        assert "No schedules due" in result.output
