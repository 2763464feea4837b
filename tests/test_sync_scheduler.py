"""Tests for jobsync.sync.scheduler -- coalesced background sync."""

import asyncio
import logging

from jobsync.sync.scheduler import AutoSyncTrigger


class _Runner:
    def __init__(self, gate: asyncio.Event | None = None, error: Exception | None = None):
        self.calls = 0
        self.gate = gate
        self.error = error

    async def __call__(self):
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error


class TestAutoSyncTrigger:
    def test_no_running_loop(self):
        runner = _Runner()
        trigger = AutoSyncTrigger(runner)
        assert trigger.request() is False
        assert runner.calls == 0

    async def test_disabled(self):
        runner = _Runner()
        trigger = AutoSyncTrigger(runner, enabled=False)
        assert trigger.request() is False
        await trigger.wait_idle()
        assert runner.calls == 0

    async def test_single_request_runs_once(self):
        runner = _Runner()
        trigger = AutoSyncTrigger(runner)
        assert trigger.request() is True
        await trigger.wait_idle()
        assert runner.calls == 1
        assert not trigger.busy

    async def test_burst_coalesces_into_one_rerun(self):
        gate = asyncio.Event()
        runner = _Runner(gate)
        trigger = AutoSyncTrigger(runner)

        assert trigger.request() is True
        await asyncio.sleep(0)
        assert trigger.busy
        assert trigger.request() is False
        assert trigger.request() is False
        gate.set()
        await trigger.wait_idle()

        assert runner.calls == 2

    async def test_failure_logged_not_raised(self, caplog):
        runner = _Runner(error=RuntimeError("boom"))
        trigger = AutoSyncTrigger(runner)
        with caplog.at_level(logging.ERROR):
            trigger.request()
            await trigger.wait_idle()
        assert "Background sync failed" in caplog.text

    async def test_new_task_after_idle(self):
        runner = _Runner()
        trigger = AutoSyncTrigger(runner)
        trigger.request()
        await trigger.wait_idle()
        assert trigger.request() is True
        await trigger.wait_idle()
        assert runner.calls == 2
