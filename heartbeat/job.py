"""Job — one probe group run concurrently, persisted, and reported."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from typing import Any

from .notifications import NotificationDispatcher
from .probes.registry import Probe, resolve_probe
from .probes.results import ProbeResult
from .store import ResultStore

logger = logging.getLogger(__name__)


class Job:
    """All probes of one type, sharing the result sink and the dispatcher.

    Holds no state between cycles; ``run()`` starts from scratch every time.
    """

    def __init__(
        self,
        name: str,
        probes: Sequence[Probe],
        sink: ResultStore,
        dispatcher: NotificationDispatcher,
    ) -> None:
        self.name = name
        self.probes = tuple(probes)
        self.sink = sink
        self.dispatcher = dispatcher

    @classmethod
    def from_config(
        cls,
        probe_type: str,
        options_list: Sequence[Mapping[str, Any]],
        sink: ResultStore,
        dispatcher: NotificationDispatcher,
    ) -> Job:
        probes = [resolve_probe(probe_type, options) for options in options_list]
        return cls(probe_type, probes, sink, dispatcher)

    async def run(self) -> list[ProbeResult]:
        """Probe, persist, notify. Any exception aborts the remaining steps."""
        loop = asyncio.get_running_loop()
        batches = await asyncio.gather(
            *(loop.run_in_executor(None, probe) for probe in self.probes)
        )
        results = [r for batch in batches for r in batch]

        await loop.run_in_executor(None, self.sink.insert, results)

        failures = tuple(r for r in results if not r.success)
        logger.info(
            "Job %s: %d results, %d failures", self.name, len(results), len(failures),
        )
        await self.dispatcher.dispatch(failures)
        return results
