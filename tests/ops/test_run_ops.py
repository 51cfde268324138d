"""Tests for run history operations."""

from __future__ import annotations

import pytest
import pytest_asyncio

from apitrack.ops.collections import run_collection
from apitrack.ops.requests import GetRunRequest, ListRunsRequest, RunCollectionRequest
from apitrack.ops.runs import get_run, list_runs


@pytest_asyncio.fixture
async def finished_run(ctx, make_collection):
    collection = make_collection(paths=("/ok", "/boom", "/down"))
    result = await run_collection(ctx, RunCollectionRequest(collection_id=collection.id))
    return result.data.run


class TestGetRun:
    @pytest.mark.asyncio
    async def test_get(self, ctx, finished_run):
        result = get_run(ctx, GetRunRequest(run_id=finished_run.run_id))
        assert result.success
        assert result.data.run.run_id == finished_run.run_id
        assert len(result.data.results) == 3

    @pytest.mark.asyncio
    async def test_failed_only(self, ctx, finished_run):
        result = get_run(ctx, GetRunRequest(run_id=finished_run.run_id, failed_only=True))
        assert [r.test_name for r in result.data.results] == ["GET /boom", "GET /down"]

    @pytest.mark.asyncio
    async def test_other_owner_reads_as_missing(self, make_ctx, finished_run):
        result = get_run(make_ctx(user="bob"), GetRunRequest(run_id=finished_run.run_id))
        assert result.error.code == "NOT_FOUND"

    def test_validation(self, ctx):
        assert get_run(ctx, GetRunRequest()).error.code == "VALIDATION_FAILED"
        assert get_run(ctx, GetRunRequest(run_id="nope")).error.code == "NOT_FOUND"


class TestListRuns:
    def test_filters_and_pages(self, ctx, runs):
        for _ in range(3):
            runs.create("c1", "alice", total_tests=1)
        runs.create("c2", "alice", total_tests=1, schedule_id="s1")
        runs.create("c1", "bob", total_tests=1)

        page = list_runs(ctx, ListRunsRequest(limit=2))
        assert page.total == 4
        assert len(page.data) == 2
        assert page.has_more is True

        scheduled = list_runs(ctx, ListRunsRequest(schedule_id="s1"))
        assert [r.collection_id for r in scheduled.data] == ["c2"]
        assert list_runs(ctx, ListRunsRequest(collection_id="c1")).total == 3
        assert list_runs(ctx, ListRunsRequest(status="running")).total == 4
        assert list_runs(ctx, ListRunsRequest(status="completed")).total == 0

    def test_errors(self, ctx, make_ctx):
        assert list_runs(ctx, ListRunsRequest(limit=0)).error.code == "VALIDATION_FAILED"
        assert list_runs(ctx, ListRunsRequest(status="exploded")).error.code == "VALIDATION_FAILED"
        assert list_runs(make_ctx(user=None), ListRunsRequest()).error.code == "FORBIDDEN"
