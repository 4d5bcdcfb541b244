"""
Concurrent fan-out / fan-in over fetch units.

Every unit runs in its own task against one shared deadline. Outcomes are
handed back through a queue in the order they complete, so a caller can
print results while slower units are still in flight. A failing or timed-out
unit only ever affects its own Outcome.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import AsyncIterator, Sequence

from finfetch.data.base import FetchUnit
from finfetch.exceptions import ConfigurationError, classify_exception
from finfetch.logging import get_logger, log_context
from finfetch.types import Outcome, generate_id

logger = get_logger(__name__)


@dataclass
class RunStats:
    """Counters for one orchestration pass."""

    run_id: str
    total: int
    succeeded: int = 0
    failed: int = 0
    elapsed_seconds: float = 0.0
    failed_keys: list[str] = field(default_factory=list)

    def record(self, outcome: Outcome) -> None:
        if outcome.ok:
            self.succeeded += 1
        else:
            self.failed += 1
            self.failed_keys.append(outcome.key)


class Orchestrator:
    """Runs a fixed set of fetch units concurrently.

    Example:
        orchestrator = Orchestrator(units)
        async for outcome in orchestrator.stream(timeout=30):
            print(outcome.key, outcome.value)
    """

    def __init__(self, units: Sequence[FetchUnit]) -> None:
        """Initialize the orchestrator.

        Raises:
            ConfigurationError: If no units are given.
        """
        if not units:
            raise ConfigurationError("no fetch units configured")
        self.units = list(units)
        self.last_run: RunStats | None = None

    async def _run_unit(
        self,
        unit: FetchUnit,
        deadline: float | None,
        queue: asyncio.Queue[Outcome | None],
    ) -> None:
        try:
            outcome = await unit.fetch(deadline)
        except Exception as e:
            # fetch() reports failures as outcomes; this covers broken subclasses
            logger.exception("Fetch unit raised", unit=unit.key(), error=str(e))
            outcome = Outcome.failure(unit.key(), classify_exception(e))
        queue.put_nowait(outcome)

    @staticmethod
    async def _signal_done(
        tasks: list[asyncio.Task[None]],
        queue: asyncio.Queue[Outcome | None],
    ) -> None:
        await asyncio.gather(*tasks, return_exceptions=True)
        queue.put_nowait(None)

    async def _close_units(self) -> None:
        results = await asyncio.gather(
            *(unit.close() for unit in self.units), return_exceptions=True
        )
        for unit, result in zip(self.units, results):
            if isinstance(result, Exception):
                logger.warning("Failed to close unit", unit=unit.key(), error=str(result))

    async def stream(self, timeout: float | None = None) -> AsyncIterator[Outcome]:
        """Run all units and yield each Outcome as soon as it is ready.

        Args:
            timeout: Seconds until the shared deadline. None means no deadline.

        Yields:
            Exactly one Outcome per unit, in completion order.
        """
        loop = asyncio.get_running_loop()
        started = loop.time()
        deadline = started + timeout if timeout is not None else None

        stats = RunStats(run_id=generate_id("run"), total=len(self.units))
        self.last_run = stats

        # One slot per unit plus the end marker, so producers never block
        queue: asyncio.Queue[Outcome | None] = asyncio.Queue(maxsize=len(self.units) + 1)

        with log_context(run_id=stats.run_id):
            logger.info("Starting fetch run", units=stats.total, timeout=timeout)
            tasks = [
                asyncio.create_task(
                    self._run_unit(unit, deadline, queue), name=f"fetch:{unit.key()}"
                )
                for unit in self.units
            ]
            coordinator = asyncio.create_task(self._signal_done(tasks, queue))

        try:
            while True:
                outcome = await queue.get()
                if outcome is None:
                    break
                stats.record(outcome)
                yield outcome
        finally:
            unfinished = sum(1 for t in tasks if not t.done())
            pending = [t for t in (*tasks, coordinator) if not t.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

            await self._close_units()
            stats.elapsed_seconds = loop.time() - started

            with log_context(run_id=stats.run_id):
                if unfinished:
                    logger.warning(
                        "Fetch run cancelled",
                        cancelled=unfinished,
                        received=stats.succeeded + stats.failed,
                    )
                logger.info(
                    "Fetch run finished",
                    total=stats.total,
                    succeeded=stats.succeeded,
                    failed=stats.failed,
                    elapsed=round(stats.elapsed_seconds, 3),
                )

    async def run(self, timeout: float | None = None) -> list[Outcome]:
        """Run all units and collect their outcomes.

        Returns:
            One Outcome per unit. Order is completion order, not input order.
        """
        return [outcome async for outcome in self.stream(timeout)]
