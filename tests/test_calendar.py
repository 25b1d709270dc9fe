"""Tests for compliance calendar generation and extension."""

from datetime import date
from decimal import Decimal

import pytest

from pyformation.compliance import CalendarGenerator, build_events, occurrences
from pyformation.errors import NotFound, ValidationError
from pyformation.ids import calendar_id
from pyformation.jurisdictions import get_rules
from pyformation.models import (
    AnniversaryRule,
    EventStatus,
    FixedDateRule,
    Frequency,
    ObligationTerms,
    ObligationType,
    PeriodicRule,
)

TODAY = date(2024, 3, 10)


def _terms(key="annual_report", type=ObligationType.ANNUAL_REPORT, trigger=45):
    return ObligationTerms(
        key=key,
        type=type,
        title="Annual Report",
        cost=Decimal("75"),
        penalty=Decimal("100"),
        critical=True,
        automatable=True,
        automation_trigger_days=trigger,
        revenue_opportunity=Decimal("149"),
    )


def test_anniversary_rule_example():
    """Anniversary month day 15, formed 2024-03-10, horizon 3: one event per year."""
    rule = AnniversaryRule(_terms(), day=15)

    events = build_events("entity-1", [rule], date(2024, 3, 10), range(2024, 2027), TODAY)

    assert [e.due_date for e in events] == [
        date(2024, 3, 15),
        date(2025, 3, 15),
        date(2026, 3, 15),
    ]
    assert len({e.id for e in events}) == 3
    assert all(e.type is ObligationType.ANNUAL_REPORT for e in events)


@pytest.mark.asyncio
async def test_generate_calendar_illinois_annual_reports(in_memory_store, clock):
    generator = CalendarGenerator(in_memory_store, clock=clock)

    calendar = await generator.generate_calendar("entity-1", "IL", date(2024, 3, 10), 3, today=TODAY)

    reports = [e for e in calendar.events if e.type is ObligationType.ANNUAL_REPORT]
    assert [e.due_date for e in reports] == [
        date(2024, 3, 15),
        date(2025, 3, 15),
        date(2026, 3, 15),
    ]
    assert calendar.id == calendar_id("entity-1", "IL")
    assert calendar.start_year == 2024
    assert calendar.end_year == 2026
    assert calendar.version == 1


@pytest.mark.asyncio
async def test_events_sorted_and_carry_rule_terms(in_memory_store, clock):
    generator = CalendarGenerator(in_memory_store, clock=clock)

    calendar = await generator.generate_calendar("entity-1", "FL", date(2024, 3, 10), today=TODAY)

    due_dates = [e.due_date for e in calendar.events]
    assert due_dates == sorted(due_dates)
    first_report = next(e for e in calendar.events if e.type is ObligationType.ANNUAL_REPORT)
    assert first_report.due_date == date(2024, 5, 1)
    assert first_report.cost == Decimal("138.75")
    assert first_report.penalty == Decimal("400")
    assert first_report.revenue_opportunity == Decimal("149")
    assert first_report.status is EventStatus.SCHEDULED
    assert all(e.due_date >= date(2024, 3, 10) for e in calendar.events)


def test_periodic_rule_due_dates():
    monthly = PeriodicRule(_terms(type=ObligationType.TAX_FILING), Frequency.MONTHLY, 20, 1)
    quarterly = PeriodicRule(_terms(type=ObligationType.TAX_FILING), Frequency.QUARTERLY, 15, 1)
    annual = PeriodicRule(_terms(type=ObligationType.TAX_FILING), Frequency.ANNUAL, 15, 3)

    monthly_dates = occurrences(monthly, 2024, TODAY)
    assert monthly_dates[0] == ("M01", date(2024, 2, 20))
    assert monthly_dates[-1] == ("M12", date(2025, 1, 20))
    assert [d for _, d in occurrences(quarterly, 2024, TODAY)] == [
        date(2024, 4, 15),
        date(2024, 7, 15),
        date(2024, 10, 15),
        date(2025, 1, 15),
    ]
    assert occurrences(annual, 2024, TODAY) == [("", date(2025, 3, 15))]


def test_day_is_clamped_to_month_length():
    wyoming_style = AnniversaryRule(_terms(), day=31)
    fixed = FixedDateRule(_terms(), month=2, day=30)

    assert occurrences(wyoming_style, 2025, date(2024, 4, 2)) == [("", date(2025, 4, 30))]
    assert occurrences(fixed, 2024, TODAY) == [("", date(2024, 2, 29))]
    assert occurrences(fixed, 2025, TODAY) == [("", date(2025, 2, 28))]


def test_trigger_days_clamped_to_generation_window():
    rule = AnniversaryRule(_terms(trigger=45), day=15)

    events = build_events("entity-1", [rule], date(2024, 3, 10), range(2024, 2026), TODAY)

    assert events[0].automation_trigger_days == 5
    assert events[1].automation_trigger_days == 45


@pytest.mark.asyncio
async def test_regeneration_is_a_union(in_memory_store, clock):
    generator = CalendarGenerator(in_memory_store, clock=clock)
    first = await generator.generate_calendar("entity-1", "WY", date(2024, 3, 10), today=TODAY)
    stored = await in_memory_store.get_calendar(first.id)
    stored.events[0].status = EventStatus.ACTIONED
    await in_memory_store.save_calendar(stored)

    second = await generator.generate_calendar("entity-1", "WY", date(2024, 3, 10), today=TODAY)

    assert [e.id for e in second.events] == [e.id for e in first.events]
    assert second.events[0].status is EventStatus.ACTIONED
    assert await in_memory_store.list_calendar_ids() == [first.id]


@pytest.mark.asyncio
async def test_regeneration_in_later_year_extends_horizon(in_memory_store, clock):
    generator = CalendarGenerator(in_memory_store, clock=clock)
    first = await generator.generate_calendar("entity-1", "WY", date(2024, 3, 10), today=TODAY)

    later = await generator.generate_calendar(
        "entity-1", "WY", date(2024, 3, 10), today=date(2025, 6, 1)
    )

    assert later.end_year == 2027
    assert len(later.events) > len(first.events)
    assert {e.id for e in first.events} <= {e.id for e in later.events}


@pytest.mark.asyncio
async def test_extend_calendar_appends_next_year(in_memory_store, clock):
    generator = CalendarGenerator(in_memory_store, clock=clock)
    calendar = await generator.generate_calendar("entity-1", "IL", date(2024, 3, 10), 3, today=TODAY)
    original_ids = {e.id for e in calendar.events}

    extended = await generator.extend_calendar(calendar.id, 1, today=date(2026, 11, 1))

    assert extended.horizon_years == 4
    assert extended.end_year == 2027
    assert extended.extended_at == clock.now
    assert original_ids < {e.id for e in extended.events}
    reports = [e for e in extended.events if e.type is ObligationType.ANNUAL_REPORT]
    assert reports[-1].due_date == date(2027, 3, 15)
    stored = await in_memory_store.get_calendar(calendar.id)
    assert len(stored.events) == len(extended.events)


@pytest.mark.asyncio
async def test_extend_unknown_calendar(in_memory_store):
    generator = CalendarGenerator(in_memory_store)

    with pytest.raises(NotFound):
        await generator.extend_calendar("cal-missing")


@pytest.mark.asyncio
async def test_generate_rejects_bad_input(in_memory_store):
    generator = CalendarGenerator(in_memory_store)

    with pytest.raises(ValidationError):
        await generator.generate_calendar("entity-1", "ZZ", date(2024, 3, 10))
    with pytest.raises(ValidationError):
        await generator.generate_calendar("entity-1", "WY", date(2024, 3, 10), 0)
    with pytest.raises(ValidationError):
        await generator.generate_calendar("", "WY", date(2024, 3, 10))


@pytest.mark.asyncio
async def test_calendar_summaries(in_memory_store, clock):
    generator = CalendarGenerator(in_memory_store, clock=clock)
    calendar = await generator.generate_calendar("entity-1", "IL", date(2024, 3, 10), today=TODAY)

    projection = calendar.revenue_projection()
    assert projection["projected_capture"] == projection["total_opportunity"] * Decimal("0.35")
    assert projection["average_monthly"] == projection["projected_capture"] / 36
    assert projection["high_value_services"] == sum(
        1 for e in calendar.events if e.revenue_opportunity > 200
    )
    assert calendar.annual_compliance_cost() > 0
    upcoming = calendar.next_due(TODAY)
    assert len(upcoming) == 5
    assert all(e.due_date > TODAY for e in upcoming)


def test_every_jurisdiction_generates_each_obligation_type():
    for code in ("FL", "IL"):
        rules = get_rules(code)
        events = build_events("e", rules.obligations, date(2024, 1, 1), range(2024, 2025), TODAY)
        assert {e.type for e in events} == set(ObligationType)
