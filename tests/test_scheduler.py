"""Tests for the pipeline scheduler (scheduler.py)."""

from __future__ import annotations

import asyncio
import time

import pytest

from agent_network.models import RunReport
from agent_network.scheduler import PipelineScheduler


def _report(run_id: str = "run-1", error: str | None = None) -> RunReport:
    return RunReport(
        run_id=run_id,
        state="failed" if error else "done",
        started_at=time.time(),
        published=error is None,
        error=error,
    )


class GatedRunner:
    """Runner that blocks until released, counting invocations."""

    def __init__(self) -> None:
        self.calls = 0
        self.release = asyncio.Event()

    async def __call__(self) -> RunReport:
        self.calls += 1
        await self.release.wait()
        return _report(f"run-{self.calls}")


class TestTrigger:

    @pytest.mark.asyncio
    async def test_trigger_runs_once_and_records_report(self):
        runner = GatedRunner()
        sched = PipelineScheduler(runner=runner, interval=60)
        assert sched.trigger() is True
        assert sched.is_running
        runner.release.set()
        report = await sched.wait()
        assert report.run_id == "run-1"
        assert sched.last_report is report
        assert not sched.is_running

    @pytest.mark.asyncio
    async def test_trigger_while_running_is_skipped(self):
        runner = GatedRunner()
        sched = PipelineScheduler(runner=runner, interval=60)
        assert sched.trigger() is True
        await asyncio.sleep(0)
        assert sched.trigger() is False
        runner.release.set()
        await sched.wait()
        assert runner.calls == 1
        # a new trigger is accepted once the run has finished
        assert sched.trigger() is True
        await sched.wait()
        assert runner.calls == 2

    @pytest.mark.asyncio
    async def test_failed_report_is_kept(self):
        async def runner():
            return _report(error="discovering: boom")

        sched = PipelineScheduler(runner=runner, interval=60)
        sched.trigger()
        report = await sched.wait()
        assert report.error == "discovering: boom"
        assert not report.published

    @pytest.mark.asyncio
    async def test_wait_without_run(self):
        sched = PipelineScheduler(runner=GatedRunner(), interval=60)
        assert await sched.wait() is None


class TestLoop:

    @pytest.mark.asyncio
    async def test_loop_runs_periodically(self):
        calls = []

        async def runner():
            calls.append(time.monotonic())
            return _report(f"run-{len(calls)}")

        sched = PipelineScheduler(runner=runner, interval=0.01)
        sched.start()
        for _ in range(100):
            if len(calls) >= 3:
                break
            await asyncio.sleep(0.01)
        await sched.stop()
        assert len(calls) >= 3
        assert sched.last_report is not None

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self):
        sched = PipelineScheduler(runner=GatedRunner(), interval=60)
        first = sched.start()
        assert sched.start() is first
        await sched.stop()
        assert first.cancelled()

    @pytest.mark.asyncio
    async def test_loop_survives_runner_exception(self):
        calls = []

        async def runner():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("unexpected")
            return _report()

        sched = PipelineScheduler(runner=runner, interval=0.01)
        sched.start()
        for _ in range(100):
            if sched.last_report is not None:
                break
            await asyncio.sleep(0.01)
        await sched.stop()
        assert len(calls) >= 2
        assert sched.last_report is not None

    @pytest.mark.asyncio
    async def test_stop_cancels_in_flight_run(self):
        runner = GatedRunner()
        sched = PipelineScheduler(runner=runner, interval=60)
        sched.start()
        await asyncio.sleep(0.01)
        assert sched.is_running
        await sched.stop()
        assert not sched.is_running
        assert sched.last_report is None
