"""Unit tests for DebouncedTask."""

import asyncio

import pytest

from app.sync.debounce import DebouncedTask


class Collector:
    def __init__(self, fail: bool = False):
        self.calls = []
        self.fail = fail

    async def __call__(self, payload):
        self.calls.append(payload)
        if self.fail:
            raise RuntimeError("push rejected")


class TestDebouncedTask:
    """Test cases for DebouncedTask."""

    @pytest.mark.slow
    @pytest.mark.asyncio
    async def test_burst_runs_once_with_latest_payload(self):
        """Test several schedules inside the window collapse into one run."""
        collector = Collector()
        task = DebouncedTask(collector, delay=0.05)

        task.schedule([1])
        task.schedule([1, 2])
        task.schedule([1, 2, 3])
        await asyncio.sleep(0.15)
        await task.wait()

        assert collector.calls == [[1, 2, 3]]
        assert task.is_pending is False

    @pytest.mark.slow
    @pytest.mark.asyncio
    async def test_each_schedule_restarts_timer(self):
        collector = Collector()
        task = DebouncedTask(collector, delay=0.1)

        task.schedule("a")
        await asyncio.sleep(0.06)
        task.schedule("b")
        await asyncio.sleep(0.06)

        assert collector.calls == []
        assert task.pending == "b"

        await asyncio.sleep(0.1)
        await task.wait()
        assert collector.calls == ["b"]

    @pytest.mark.asyncio
    async def test_cancel_drops_payload(self):
        collector = Collector()
        task = DebouncedTask(collector, delay=0.02)

        task.schedule("a")
        task.cancel()
        await asyncio.sleep(0.06)

        assert collector.calls == []
        assert task.pending is None

    @pytest.mark.asyncio
    async def test_flush_runs_immediately(self):
        """Test flush runs the pending payload without waiting for the timer."""
        collector = Collector()
        task = DebouncedTask(collector, delay=60)

        task.schedule("now")
        await task.flush()

        assert collector.calls == ["now"]
        assert task.is_pending is False

    @pytest.mark.asyncio
    async def test_flush_without_pending_is_noop(self):
        collector = Collector()
        task = DebouncedTask(collector, delay=60)

        await task.flush()

        assert collector.calls == []

    @pytest.mark.asyncio
    async def test_replace_keeps_timer(self):
        collector = Collector()
        task = DebouncedTask(collector, delay=60)

        task.replace("ignored")
        assert task.is_pending is False

        task.schedule("old")
        task.replace("new")
        await task.flush()

        assert collector.calls == ["new"]

    @pytest.mark.asyncio
    async def test_callback_errors_are_logged(self, caplog):
        """Test a failing callback never raises out of the debouncer."""
        task = DebouncedTask(Collector(fail=True), delay=60, name="chat push")

        task.schedule("x")
        await task.flush()

        assert "chat push callback failed: push rejected" in caplog.text
