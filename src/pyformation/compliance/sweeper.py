"""
ComplianceSweeper - periodic monitor loop over every stored calendar.

Design: long-running worker with event-driven shutdown
The loop waits on either the sweep interval or the shutdown event,
whichever comes first, so shutdown() never waits a full interval.

Each sweep:
1. Extends calendars whose horizon ends within ``extend_within_days``
2. Runs a monitor pass per calendar

A failure on one calendar is logged and the sweep continues with the
next one.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from datetime import UTC, date, datetime

from pyformation.compliance.calendar import CalendarGenerator
from pyformation.compliance.monitor import ComplianceMonitor
from pyformation.models import ComplianceReport
from pyformation.storage.base import FormationStore

logger = logging.getLogger(__name__)


class ComplianceSweeper:
    """Periodically monitors all calendars in a store.

    Usage:
        sweeper = ComplianceSweeper(store, monitor, generator, interval=3600)
        handle = await sweeper.start()
        ...
        await handle.shutdown()
    """

    def __init__(
        self,
        store: FormationStore,
        monitor: ComplianceMonitor,
        generator: CalendarGenerator,
        *,
        interval: float = 3600.0,
        extend_within_days: int = 90,
        clock: Callable[[], datetime] | None = None,
    ):
        self._store = store
        self._monitor = monitor
        self._generator = generator
        self._interval = interval
        self._extend_within_days = extend_within_days
        self._clock = clock or (lambda: datetime.now(UTC))
        self._shutdown_event = asyncio.Event()
        self._running = False
        self.sweeps_completed = 0

    async def sweep_once(self, now: datetime | None = None) -> list[ComplianceReport]:
        """Run one sweep over every calendar; returns the reports produced."""
        now = now or self._clock()
        today = now.date()
        reports = []
        for calendar_id in await self._store.list_calendar_ids():
            try:
                await self._extend_if_due(calendar_id, today)
                reports.append(await self._monitor.monitor(calendar_id, now))
            except Exception as e:
                logger.error(f"Sweep of calendar {calendar_id} failed: {e}", exc_info=True)
        self.sweeps_completed += 1
        logger.debug(f"Sweep {self.sweeps_completed} finished: {len(reports)} calendars")
        return reports

    async def _extend_if_due(self, calendar_id: str, today: date) -> None:
        calendar = await self._store.get_calendar(calendar_id)
        if calendar is None:
            return
        horizon_end = date(calendar.end_year, 12, 31)
        if (horizon_end - today).days <= self._extend_within_days:
            await self._generator.extend_calendar(calendar_id, 1, today=today)

    async def start(self) -> SweeperHandle:
        """Start the sweep loop; returns immediately with a handle."""
        self._running = True
        self._shutdown_event.clear()
        task = asyncio.create_task(self._run())
        return SweeperHandle(self, task)

    async def _run(self) -> None:
        logger.info(f"Compliance sweeper started (interval={self._interval}s)")
        try:
            while self._running and not self._shutdown_event.is_set():
                try:
                    await self.sweep_once()
                except Exception as e:
                    logger.error(f"Compliance sweep failed: {e}", exc_info=True)
                with contextlib.suppress(TimeoutError):
                    await asyncio.wait_for(self._shutdown_event.wait(), timeout=self._interval)
        finally:
            self._running = False
            logger.info("Compliance sweeper stopped")

    async def shutdown(self) -> None:
        """Signal the loop to stop after the current sweep."""
        self._running = False
        self._shutdown_event.set()


class SweeperHandle:
    """Handle for controlling a running sweeper.

    Usage:
        handle = await sweeper.start()
        await handle.shutdown()
    """

    def __init__(self, sweeper: ComplianceSweeper, task: asyncio.Task):
        self._sweeper = sweeper
        self._task = task

    def is_running(self) -> bool:
        return not self._task.done()

    async def shutdown(self) -> None:
        """Stop the sweeper and wait for the loop to exit."""
        await self._sweeper.shutdown()
        await self._task

    def abort(self) -> None:
        self._task.cancel()
