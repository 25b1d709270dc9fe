"""Tests for monitor classification, reporting and automated preparation."""

import asyncio
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal

import pytest
from conftest import external_failure

from pyformation.compliance import AutomationExecutor, ComplianceMonitor, classify
from pyformation.errors import NotFound
from pyformation.models import (
    ComplianceCalendar,
    ComplianceEvent,
    ComplianceStatus,
    EventBucket,
    EventStatus,
    ObligationType,
)

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)
TODAY = NOW.date()


def make_event(
    event_id: str,
    days_from_today: int,
    *,
    trigger: int = 15,
    status: EventStatus = EventStatus.SCHEDULED,
    type: ObligationType = ObligationType.ANNUAL_REPORT,
    revenue: str = "149",
    automatable: bool = True,
) -> ComplianceEvent:
    return ComplianceEvent(
        id=event_id,
        type=type,
        rule_key="test",
        title=f"Event {event_id}",
        due_date=TODAY + timedelta(days=days_from_today),
        year=TODAY.year,
        period="",
        cost=Decimal("50"),
        penalty=Decimal("100"),
        critical=True,
        automatable=automatable,
        automation_trigger_days=trigger,
        revenue_opportunity=Decimal(revenue),
        status=status,
    )


async def store_calendar(store, *events: ComplianceEvent) -> ComplianceCalendar:
    calendar = ComplianceCalendar(
        id="cal-test",
        entity_ref="entity-1",
        jurisdiction="WY",
        formation_date=date(2024, 1, 1),
        start_year=2024,
        horizon_years=3,
        created_at=NOW,
        events=list(events),
        entity_name="Acme Ventures LLC",
    )
    await store.insert_calendar(calendar)
    return calendar


@pytest.fixture
def monitor(in_memory_store, documents):
    return ComplianceMonitor(in_memory_store, AutomationExecutor(documents))


# ==============================================================================
# classify
# ==============================================================================


def test_classify_actionable_and_upcoming():
    buckets = classify(TODAY + timedelta(days=10), 15, NOW, EventStatus.SCHEDULED)

    assert buckets == {EventBucket.UPCOMING, EventBucket.ACTIONABLE}


def test_classify_overdue():
    assert classify(TODAY - timedelta(days=5), 15, NOW, EventStatus.SCHEDULED) == {
        EventBucket.OVERDUE
    }
    assert classify(TODAY - timedelta(days=5), 15, NOW, EventStatus.OVERDUE_UNACTIONED) == {
        EventBucket.OVERDUE
    }
    assert classify(TODAY - timedelta(days=5), 15, NOW, EventStatus.ACTIONED) == frozenset()


@pytest.mark.parametrize(
    "days, trigger, status, automatable, expected",
    [
        (0, 0, EventStatus.SCHEDULED, True, {EventBucket.UPCOMING, EventBucket.ACTIONABLE}),
        (30, 45, EventStatus.SCHEDULED, True, {EventBucket.UPCOMING, EventBucket.ACTIONABLE}),
        (31, 45, EventStatus.SCHEDULED, True, {EventBucket.ACTIONABLE}),
        (31, 15, EventStatus.SCHEDULED, True, set()),
        (10, 15, EventStatus.ACTIONED, True, {EventBucket.UPCOMING}),
        (10, 15, EventStatus.SCHEDULED, False, {EventBucket.UPCOMING}),
        (-1, 15, EventStatus.SCHEDULED, True, {EventBucket.OVERDUE}),
    ],
)
def test_classify_boundaries(days, trigger, status, automatable, expected):
    buckets = classify(TODAY + timedelta(days=days), trigger, TODAY, status, automatable=automatable)

    assert buckets == expected


def test_classify_ignores_time_of_day():
    due = TODAY + timedelta(days=1)
    morning = datetime(2024, 6, 1, 0, 0, tzinfo=UTC)
    night = datetime(2024, 6, 1, 23, 59, tzinfo=UTC)

    assert classify(due, 1, morning, EventStatus.SCHEDULED) == classify(
        due, 1, night, EventStatus.SCHEDULED
    )


# ==============================================================================
# monitor
# ==============================================================================


@pytest.mark.asyncio
async def test_actionable_event_is_actioned_once(in_memory_store, monitor, documents):
    """due=today+10, trigger=15, scheduled: actioned, and never re-dispatched."""
    await store_calendar(in_memory_store, make_event("evt-a", 10, trigger=15))

    report = await monitor.monitor("cal-test", NOW)

    assert [v.event.id for v in report.actionable] == ["evt-a"]
    assert len(report.automation_results) == 1
    assert report.automation_results[0].success
    assert report.revenue_generated == Decimal("149")
    stored = await in_memory_store.get_calendar("cal-test")
    event = stored.event("evt-a")
    assert event.status is EventStatus.ACTIONED
    assert event.actioned_at is not None
    assert event.artifacts == [report.automation_results[0].artifacts[0]]

    second = await monitor.monitor("cal-test", NOW + timedelta(days=1))

    assert second.actionable == []
    assert second.automation_results == []
    assert len(documents.calls) == 1


@pytest.mark.asyncio
async def test_overdue_event_becomes_overdue_unactioned(in_memory_store, monitor, documents):
    """due=today-5, scheduled, window passed: overdue, then overdue-unactioned."""
    await store_calendar(in_memory_store, make_event("evt-late", -5, trigger=15))

    report = await monitor.monitor("cal-test", NOW)

    assert [v.event.id for v in report.overdue] == ["evt-late"]
    assert report.status is ComplianceStatus.NON_COMPLIANT
    assert report.newly_overdue_unactioned == ["evt-late"]
    assert documents.calls == []
    stored = await in_memory_store.get_calendar("cal-test")
    assert stored.event("evt-late").status is EventStatus.OVERDUE_UNACTIONED

    again = await monitor.monitor("cal-test", NOW)
    assert [v.event.id for v in again.overdue] == ["evt-late"]
    assert again.newly_overdue_unactioned == []


@pytest.mark.asyncio
async def test_failed_automation_stays_scheduled_and_retries(in_memory_store, monitor, documents):
    await store_calendar(in_memory_store, make_event("evt-a", 10))
    documents.fail_with = external_failure("documents")

    report = await monitor.monitor("cal-test", NOW)

    result = report.automation_results[0]
    assert not result.success
    assert "upstream unavailable" in result.error
    assert result.event_id == "evt-a"
    stored = await in_memory_store.get_calendar("cal-test")
    event = stored.event("evt-a")
    assert event.status is EventStatus.SCHEDULED
    assert event.automation_attempts == 1
    assert event.last_error == result.error

    documents.fail_with = None
    retry = await monitor.monitor("cal-test", NOW + timedelta(days=1))

    assert retry.automation_results[0].success
    stored = await in_memory_store.get_calendar("cal-test")
    assert stored.event("evt-a").status is EventStatus.ACTIONED
    assert stored.event("evt-a").automation_attempts == 2
    assert stored.event("evt-a").last_error is None


@pytest.mark.asyncio
async def test_report_status_levels(in_memory_store, monitor):
    await store_calendar(in_memory_store, make_event("evt-far", 200))
    report = await monitor.monitor("cal-test", NOW)
    assert report.status is ComplianceStatus.COMPLIANT

    report = await monitor.monitor("cal-test", NOW + timedelta(days=175))
    assert report.status is ComplianceStatus.ACTION_REQUIRED


@pytest.mark.asyncio
async def test_revenue_ranking_overdue_first_then_revenue(in_memory_store, monitor):
    await store_calendar(
        in_memory_store,
        make_event("evt-small", 20, trigger=0, revenue="75"),
        make_event("evt-big", 25, trigger=0, revenue="299"),
        make_event("evt-late", -3, revenue="50"),
        make_event("evt-far", 90, revenue="500"),
    )

    report = await monitor.monitor("cal-test", NOW)

    assert [r.event_id for r in report.revenue_ranking] == ["evt-late", "evt-big", "evt-small"]
    assert [r.urgency for r in report.revenue_ranking] == ["critical", "medium", "medium"]
    assert report.revenue_opportunity == Decimal("424")


@pytest.mark.asyncio
async def test_urgency_high_within_a_week(in_memory_store, monitor):
    await store_calendar(in_memory_store, make_event("evt-soon", 7, trigger=0))

    report = await monitor.monitor("cal-test", NOW)

    assert report.revenue_ranking[0].urgency == "high"


@pytest.mark.asyncio
async def test_monitor_unknown_calendar(monitor):
    with pytest.raises(NotFound):
        await monitor.monitor("cal-missing", NOW)


@pytest.mark.concurrency
@pytest.mark.asyncio
async def test_concurrent_passes_action_event_once(in_memory_store, monitor, documents):
    """Overlapping monitor passes on one calendar dispatch each event once."""
    await store_calendar(
        in_memory_store,
        make_event("evt-a", 5, type=ObligationType.TAX_FILING, revenue="299"),
        make_event("evt-b", 8, type=ObligationType.LICENSE_RENEWAL),
    )
    documents.delay = 0.05

    reports = await asyncio.gather(*(monitor.monitor("cal-test", NOW) for _ in range(3)))

    dispatched = [r.event_id for report in reports for r in report.automation_results]
    assert sorted(dispatched) == ["evt-a", "evt-b"]
    assert len(documents.calls) == 2
    stored = await in_memory_store.get_calendar("cal-test")
    assert all(e.status is EventStatus.ACTIONED for e in stored.events)
    assert all(e.automation_attempts == 1 for e in stored.events)


@pytest.mark.asyncio
async def test_commit_does_not_override_actioned_elsewhere(in_memory_store, documents):
    """A result committed after another writer actioned the event is not applied twice."""
    await store_calendar(in_memory_store, make_event("evt-a", 5))

    class ActionElsewhere(AutomationExecutor):
        async def execute(self, event, context):
            result = await super().execute(event, context)
            calendar = await in_memory_store.get_calendar("cal-test")
            calendar.event("evt-a").status = EventStatus.ACTIONED
            calendar.event("evt-a").artifacts.append("doc-elsewhere")
            await in_memory_store.save_calendar(calendar)
            return result

    monitor = ComplianceMonitor(in_memory_store, ActionElsewhere(documents))

    await monitor.monitor("cal-test", NOW)

    stored = await in_memory_store.get_calendar("cal-test")
    assert stored.event("evt-a").artifacts == ["doc-elsewhere"]


@pytest.mark.asyncio
async def test_monitor_accepts_a_date(in_memory_store, monitor):
    await store_calendar(in_memory_store, make_event("evt-a", 10), make_event("evt-late", -2))

    report = await monitor.monitor("cal-test", TODAY)

    assert report.as_of == datetime(2024, 6, 1, tzinfo=UTC)
    assert [v.event.id for v in report.actionable] == ["evt-a"]
    assert [v.event.id for v in report.overdue] == ["evt-late"]
