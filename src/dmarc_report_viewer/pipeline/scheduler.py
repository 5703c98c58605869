"""Interval-driven background update loop with cooperative shutdown."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from dmarc_report_viewer.state.store import StateCorruptedError

logger = logging.getLogger(__name__)


class Scheduler:
    """Runs update cycles back to back, separated by a fixed interval.

    Shutdown is only observed between cycles: a stop request made while a
    cycle runs takes effect once that cycle has finished.
    """

    def __init__(
        self,
        *,
        cycle: Callable[[], Awaitable[object]],
        interval_seconds: float,
    ) -> None:
        """Initialize the scheduler.

        Args:
            cycle: Coroutine factory running one update cycle.
            interval_seconds: Wait between the end of a cycle and the next start.
        """
        self._cycle = cycle
        self._interval = interval_seconds
        self._stop = asyncio.Event()
        self._cycles_run = 0

    def stop(self) -> None:
        """Request shutdown at the next inter-cycle wait."""
        self._stop.set()

    @property
    def stopping(self) -> bool:
        """Return True once shutdown has been requested."""
        return self._stop.is_set()

    async def run(self) -> None:
        """Run cycles until stopped.

        Raises:
            StateCorruptedError: If the shared state is poisoned.
        """
        logger.info("Started background task with check interval of %s secs", self._interval)
        while True:
            self._cycles_run += 1
            try:
                await self._cycle()
            except StateCorruptedError:
                logger.critical("Shared state is corrupted, stopping background task")
                raise
            except Exception as exc:
                logger.error("Failed update cycle #%d: %s", self._cycles_run, exc, exc_info=exc)
            else:
                logger.info("Finished update cycle #%d without errors", self._cycles_run)

            if await self._wait_for_stop():
                break
        logger.info("Background task stopped after %d cycles", self._cycles_run)

    async def _wait_for_stop(self) -> bool:
        """Wait for the interval or a stop request, whichever comes first.

        Returns:
            True if shutdown was requested.
        """
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=self._interval)
        except TimeoutError:
            return False
        return True
