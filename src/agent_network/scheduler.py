"""
Periodic and on-demand pipeline runs.

``PipelineScheduler`` keeps a background loop that starts a run every
``PIPELINE_INTERVAL_SECONDS`` and exposes ``trigger()`` for "run now".
At most one run is in flight: a tick or trigger that arrives while a run
is active is skipped, not queued.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from config import PIPELINE_INTERVAL_SECONDS
from .models import RunReport
from .pipeline import run_pipeline

logger = logging.getLogger(__name__)

Runner = Callable[[], Awaitable[RunReport]]


class PipelineScheduler:
    def __init__(
        self,
        runner: Runner = run_pipeline,
        interval: float = PIPELINE_INTERVAL_SECONDS,
    ) -> None:
        self._runner = runner
        self._interval = interval
        self._loop_task: Optional[asyncio.Task] = None
        self._run_task: Optional[asyncio.Task] = None
        self._last_report: Optional[RunReport] = None

    @property
    def last_report(self) -> Optional[RunReport]:
        return self._last_report

    @property
    def is_running(self) -> bool:
        """True while a pipeline run is in flight."""
        return self._run_task is not None and not self._run_task.done()

    def start(self) -> asyncio.Task:
        """Launch the periodic loop.  Returns the Task handle."""
        if self._loop_task is not None and not self._loop_task.done():
            return self._loop_task
        self._loop_task = asyncio.create_task(self._loop(), name="pipeline_scheduler")
        return self._loop_task

    def trigger(self) -> bool:
        """Start a run now.  Returns False when one is already in flight."""
        if self.is_running:
            logger.info("Trigger ignored – a pipeline run is already in flight")
            return False
        self._run_task = asyncio.create_task(self._run_once(), name="pipeline_run")
        return True

    async def stop(self) -> None:
        """Cancel the loop and any in-flight run (called at shutdown)."""
        for task in (self._loop_task, self._run_task):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._loop_task = None
        self._run_task = None

    async def wait(self) -> Optional[RunReport]:
        """Wait for the in-flight run, if any, and return the last report."""
        if self._run_task is not None:
            await asyncio.shield(self._run_task)
        return self._last_report

    async def _run_once(self) -> None:
        report = await self._runner()
        self._last_report = report
        if report.error:
            logger.warning("Pipeline run %s failed: %s", report.run_id, report.error)
        else:
            logger.info(
                "Pipeline run %s done: %d agents, %d swaps",
                report.run_id,
                report.agents,
                report.swaps,
            )

    async def _loop(self) -> None:
        logger.info("Pipeline scheduler started (interval=%ss)", self._interval)
        while True:
            try:
                if self.trigger():
                    await self.wait()
                else:
                    logger.info("Scheduled run skipped – previous run still in flight")
            except asyncio.CancelledError:
                logger.info("Pipeline scheduler cancelled")
                raise
            except Exception:
                logger.warning("Scheduled pipeline run failed", exc_info=True)

            await asyncio.sleep(self._interval)
