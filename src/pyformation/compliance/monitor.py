"""
Compliance monitoring.

A monitor pass classifies every event of a calendar relative to "now",
marks scheduled events whose due date has passed as overdue-unactioned,
and dispatches the actionable ones to the automation executor.

Actioning follows reserve → act → commit:
1. Under the calendar lock: classify, reserve actionable events
2. Without the lock: run automations
3. Under the calendar lock: reload, move ``scheduled → actioned`` for
   successes (only if still scheduled), record failures, save with a
   version check
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, date, datetime, time
from decimal import Decimal

from pyformation.compliance.automation import AutomationExecutor
from pyformation.errors import NotFound
from pyformation.executor.locks import KeyedLocks, ReservationSet
from pyformation.models import (
    ActionResult,
    ComplianceCalendar,
    ComplianceReport,
    ComplianceStatus,
    EventBucket,
    EventStatus,
    EventView,
    RevenueOpportunity,
)
from pyformation.storage.base import FormationStore, VersionConflict

logger = logging.getLogger(__name__)

UPCOMING_DAYS = 30


def classify(
    due_date: date,
    automation_trigger_days: int,
    now: date | datetime,
    status: EventStatus,
    upcoming_days: int = UPCOMING_DAYS,
    *,
    automatable: bool = True,
) -> frozenset[EventBucket]:
    """Buckets of one event; a pure function of its arguments.

    - overdue: past due and not actioned
    - upcoming: due within ``upcoming_days`` (today included)
    - actionable: automatable, still scheduled, due today or later and
      inside its trigger window
    """
    today = now.date() if isinstance(now, datetime) else now
    days = (due_date - today).days
    buckets = set()
    if days < 0 and status is not EventStatus.ACTIONED:
        buckets.add(EventBucket.OVERDUE)
    if 0 <= days <= upcoming_days:
        buckets.add(EventBucket.UPCOMING)
    if automatable and status is EventStatus.SCHEDULED and 0 <= days <= automation_trigger_days:
        buckets.add(EventBucket.ACTIONABLE)
    return frozenset(buckets)


def overall_status(views: list[EventView]) -> ComplianceStatus:
    if any(EventBucket.OVERDUE in v.buckets for v in views):
        return ComplianceStatus.NON_COMPLIANT
    if any(EventBucket.UPCOMING in v.buckets for v in views):
        return ComplianceStatus.ACTION_REQUIRED
    return ComplianceStatus.COMPLIANT


def rank_revenue(views: list[EventView]) -> list[RevenueOpportunity]:
    """Upcoming and overdue events, overdue first, then by revenue descending."""
    candidates = [
        v for v in views if v.buckets & {EventBucket.OVERDUE, EventBucket.UPCOMING}
    ]
    candidates.sort(
        key=lambda v: (
            EventBucket.OVERDUE not in v.buckets,
            -v.event.revenue_opportunity,
            v.event.due_date,
        )
    )
    return [
        RevenueOpportunity(
            event_id=v.event.id,
            event_type=v.event.type,
            title=v.event.title,
            due_date=v.event.due_date,
            revenue_opportunity=v.event.revenue_opportunity,
            urgency=v.urgency,
        )
        for v in candidates
    ]


class ComplianceMonitor:
    """Runs monitor passes over stored calendars.

    Usage:
        monitor = ComplianceMonitor(store, AutomationExecutor(documents))
        report = await monitor.monitor(calendar.id)
    """

    def __init__(
        self,
        store: FormationStore,
        executor: AutomationExecutor,
        *,
        upcoming_days: int = UPCOMING_DAYS,
        locks: KeyedLocks | None = None,
        clock: Callable[[], datetime] | None = None,
        commit_attempts: int = 3,
    ):
        self._store = store
        self._executor = executor
        self._upcoming_days = upcoming_days
        self._locks = locks or KeyedLocks()
        self._reservations = ReservationSet()
        self._clock = clock or (lambda: datetime.now(UTC))
        self._commit_attempts = commit_attempts

    def _views(self, calendar: ComplianceCalendar, today: date) -> list[EventView]:
        return [
            EventView(
                event=event,
                days_until_due=event.days_until_due(today),
                buckets=classify(
                    event.due_date,
                    event.automation_trigger_days,
                    today,
                    event.status,
                    self._upcoming_days,
                    automatable=event.automatable,
                ),
            )
            for event in calendar.events
        ]

    async def monitor(
        self, calendar_id: str, now: date | datetime | None = None
    ) -> ComplianceReport:
        """Classify, mark overdue, and automate the actionable events of a calendar.

        A bare ``date`` for ``now`` means the start of that day (UTC).

        Raises:
            NotFound: Unknown calendar id
        """
        now = now or self._clock()
        if not isinstance(now, datetime):
            now = datetime.combine(now, time.min, tzinfo=UTC)
        today = now.date()

        # Phase 1: classify and reserve under the calendar lock
        async with self._locks.lock(calendar_id):
            calendar = await self._store.get_calendar(calendar_id)
            if calendar is None:
                raise NotFound("calendar", calendar_id)

            views = self._views(calendar, today)
            newly_overdue = []
            for view in views:
                if EventBucket.OVERDUE in view.buckets and view.event.status is EventStatus.SCHEDULED:
                    view.event.status = EventStatus.OVERDUE_UNACTIONED
                    newly_overdue.append(view.event.id)
                    logger.warning(
                        f"Event {view.event.id} ({view.event.title}) passed its due date "
                        f"{view.event.due_date} unactioned"
                    )
            if newly_overdue:
                await self._store.save_calendar(calendar)

            reserved = [
                view.event
                for view in views
                if EventBucket.ACTIONABLE in view.buckets
                and self._reservations.reserve(calendar_id, view.event.id)
            ]
            logger.debug(f"Calendar {calendar_id}: reserved {len(reserved)} actionable events")

        # Phase 2: automations run without the lock
        results: list[ActionResult] = []
        try:
            if reserved:
                context = {
                    "calendar_id": calendar.id,
                    "entity_ref": calendar.entity_ref,
                    "entity_name": calendar.entity_name or calendar.entity_ref,
                    "jurisdiction": calendar.jurisdiction,
                }
                results = list(
                    await asyncio.gather(
                        *(self._executor.execute(event, context) for event in reserved)
                    )
                )
                # Phase 3: commit under the lock
                async with self._locks.lock(calendar_id):
                    await self._commit(calendar_id, results, now)
        finally:
            async with self._locks.lock(calendar_id):
                for event in reserved:
                    self._reservations.release(calendar_id, event.id)

        report = ComplianceReport(
            calendar_id=calendar.id,
            entity_ref=calendar.entity_ref,
            jurisdiction=calendar.jurisdiction,
            as_of=now,
            status=overall_status(views),
            upcoming=[v for v in views if EventBucket.UPCOMING in v.buckets],
            overdue=[v for v in views if EventBucket.OVERDUE in v.buckets],
            actionable=[v for v in views if EventBucket.ACTIONABLE in v.buckets],
            revenue_ranking=rank_revenue(views),
            automation_results=results,
            newly_overdue_unactioned=newly_overdue,
        )
        report.revenue_opportunity = sum(
            (r.revenue_opportunity for r in report.revenue_ranking), Decimal("0")
        )
        logger.info(
            f"Monitored calendar {calendar_id}: {report.status}, "
            f"{len(report.overdue)} overdue, {len(report.upcoming)} upcoming, "
            f"{sum(1 for r in results if r.success)}/{len(results)} automations succeeded"
        )
        return report

    async def _commit(self, calendar_id: str, results: list[ActionResult], now: datetime) -> None:
        for attempt in range(1, self._commit_attempts + 1):
            calendar = await self._store.get_calendar(calendar_id)
            if calendar is None:
                raise NotFound("calendar", calendar_id)
            for result in results:
                event = calendar.event(result.event_id)
                if event is None:
                    continue
                event.automation_attempts += 1
                if not result.success:
                    event.last_error = result.error
                    continue
                if event.status is not EventStatus.SCHEDULED:
                    logger.debug(f"Event {event.id} already {event.status}; result not applied")
                    continue
                event.status = EventStatus.ACTIONED
                event.actioned_at = result.executed_at or now
                event.artifacts.extend(result.artifacts)
                event.last_error = None
                logger.info(f"Event {event.id} actioned ({result.action})")
            try:
                await self._store.save_calendar(calendar)
                return
            except VersionConflict:
                if attempt == self._commit_attempts:
                    raise
                logger.debug(f"Calendar {calendar_id} changed during commit, retrying ({attempt})")
