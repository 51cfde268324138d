"""Tests for the threading trigger and tick backends (real timers, short delays)."""

from __future__ import annotations

import threading
import time
from datetime import UTC, datetime, timedelta

import pytest

from apitrack.core.scheduling.protocol import SchedulerBackend, TriggerBackend
from apitrack.core.scheduling.thread_backend import ThreadSchedulerBackend, ThreadTriggerBackend

pytestmark = pytest.mark.slow


def _soon(seconds: float) -> datetime:
    return datetime.now(UTC) + timedelta(seconds=seconds)


class TestThreadTriggerBackend:
    def test_satisfies_protocol(self):
        assert isinstance(ThreadTriggerBackend(), TriggerBackend)

    def test_fires_callback(self):
        backend = ThreadTriggerBackend()
        done = threading.Event()

        async def callback() -> None:
            done.set()

        handle = backend.arm("s1", _soon(0.05), callback)

        assert done.wait(2.0)
        assert handle.fired is True
        assert backend.pending_count == 0
        assert backend.health()["fired"] == 1

    def test_past_instant_fires_immediately(self):
        backend = ThreadTriggerBackend()
        done = threading.Event()

        async def callback() -> None:
            done.set()

        backend.arm("s1", datetime.now(UTC) - timedelta(minutes=5), callback)
        assert done.wait(2.0)

    def test_cancel_before_fire(self):
        backend = ThreadTriggerBackend()
        done = threading.Event()

        async def callback() -> None:
            done.set()

        handle = backend.arm("s1", _soon(0.3), callback)
        backend.cancel(handle)

        assert not done.wait(0.6)
        assert handle.cancelled is True
        assert backend.pending_count == 0

    def test_cancel_after_fire_is_noop(self):
        backend = ThreadTriggerBackend()
        done = threading.Event()

        async def callback() -> None:
            done.set()

        handle = backend.arm("s1", _soon(0.01), callback)
        assert done.wait(2.0)
        backend.cancel(handle)
        assert handle.cancelled is False

    def test_failing_callback_does_not_kill_backend(self):
        backend = ThreadTriggerBackend()
        done = threading.Event()

        async def broken() -> None:
            raise RuntimeError("boom")

        async def healthy() -> None:
            done.set()

        backend.arm("bad", _soon(0.01), broken)
        backend.arm("good", _soon(0.05), healthy)
        assert done.wait(2.0)

    def test_shutdown_cancels_pending(self):
        backend = ThreadTriggerBackend()

        async def callback() -> None:
            pass

        handles = [backend.arm(f"s{i}", _soon(60), callback) for i in range(3)]
        backend.shutdown()

        assert all(h.cancelled for h in handles)
        assert backend.health()["pending_triggers"] == 0


class TestThreadSchedulerBackend:
    def test_satisfies_protocol(self):
        assert isinstance(ThreadSchedulerBackend(), SchedulerBackend)

    def test_ticks_until_stopped(self):
        backend = ThreadSchedulerBackend()
        ticks: list[int] = []
        enough = threading.Event()

        async def tick() -> None:
            ticks.append(1)
            if len(ticks) >= 2:
                enough.set()

        backend.start(tick, interval_seconds=0.02)
        try:
            assert enough.wait(2.0)
            assert backend.is_running
        finally:
            backend.stop()

        assert not backend.is_running
        count = backend.tick_count
        time.sleep(0.1)
        assert backend.tick_count == count

    def test_health(self):
        backend = ThreadSchedulerBackend()
        assert backend.health()["healthy"] is False

        async def tick() -> None:
            pass

        backend.start(tick, interval_seconds=0.05)
        try:
            health = backend.health()
            assert health["healthy"] is True
            assert health["backend"] == "thread"
            assert health["interval_seconds"] == 0.05
        finally:
            backend.stop()

    def test_failing_tick_keeps_loop_alive(self):
        backend = ThreadSchedulerBackend()
        calls: list[int] = []
        enough = threading.Event()

        async def tick() -> None:
            calls.append(1)
            if len(calls) >= 2:
                enough.set()
            raise RuntimeError("tick failed")

        backend.start(tick, interval_seconds=0.02)
        try:
            assert enough.wait(2.0)
        finally:
            backend.stop()
