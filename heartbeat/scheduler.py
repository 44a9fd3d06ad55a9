"""Heartbeat scheduler — runs every job in order, waits, repeats.

One cycle runs the jobs strictly in config order. A failing job is logged
and the next job still runs. After the last job the scheduler sleeps for
the configured interval and starts over. Cycles never overlap.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from .config import HeartbeatConfig
from .job import Job
from .notifications import NotificationDispatcher
from .store import ResultStore

logger = logging.getLogger(__name__)


class Heartbeat:
    """Builds the jobs from config and drives the heartbeat cycle."""

    def __init__(
        self,
        config: HeartbeatConfig | Mapping[str, Any] | None,
        sink: ResultStore,
        transports: Mapping[str, Any] | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.config = HeartbeatConfig.parse(config)
        self.sink = sink
        self.dispatcher = NotificationDispatcher.from_config(self.config.notify, transports)
        self.jobs = [
            Job.from_config(probe_type, options_list, sink, self.dispatcher)
            for probe_type, options_list in self.config.monitor.items()
        ]
        self.interval_ms = self.config.interval
        self.cycles = 0
        self._sleep = sleep
        self._task: asyncio.Task[None] | None = None

    async def run_cycle(self) -> None:
        """Run every job once, in order."""
        for job in self.jobs:
            try:
                await job.run()
            except Exception:
                logger.exception("Heartbeat job %s failed", job.name)
        self.cycles += 1

    async def run_forever(self, max_cycles: int | None = None) -> None:
        """Cycle, sleep for the interval, repeat.

        ``max_cycles`` stops the loop after that many cycles (no trailing
        sleep); ``None`` runs until cancelled.
        """
        completed = 0
        while True:
            await self.run_cycle()
            completed += 1
            if max_cycles is not None and completed >= max_cycles:
                return

            logger.info("heartbeat interval over, restarting after %d msec.", self.interval_ms)
            await self._sleep(self.interval_ms / 1000)

    async def start(self) -> None:
        """Start the heartbeat in the background and return immediately."""
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.create_task(self.run_forever(), name="heartbeat")
        logger.info(
            "Heartbeat started: %d jobs, %d notify channels, interval=%dms",
            len(self.jobs), len(self.dispatcher.notifiers), self.interval_ms,
        )

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Heartbeat stopped")
