"""
Compliance calendar generation.

Expands a jurisdiction's obligation rules into dated ComplianceEvents
over a multi-year horizon. Event ids are a deterministic function of
``(entity, rule, year, period)``, so regenerating or extending a
calendar is a union by id: existing events and their statuses are never
duplicated or replaced.
"""

from __future__ import annotations

import calendar as _cal
import logging
from collections.abc import Callable, Iterable
from datetime import UTC, date, datetime
from typing import assert_never

from pyformation.errors import NotFound, ValidationError
from pyformation.executor.locks import KeyedLocks
from pyformation.ids import calendar_id as make_calendar_id
from pyformation.ids import event_id as make_event_id
from pyformation.jurisdictions import get_rules
from pyformation.models import (
    AnniversaryRule,
    ComplianceCalendar,
    ComplianceEvent,
    FixedDateRule,
    ObligationRule,
    ObligationTerms,
    PeriodicRule,
)
from pyformation.storage.base import FormationStore

logger = logging.getLogger(__name__)


def _clamped_date(year: int, month: int, day: int) -> date:
    """``date(year, month, day)`` with ``day`` clamped to the month length."""
    return date(year, month, min(day, _cal.monthrange(year, month)[1]))


def _add_months(year: int, month: int, months: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + months
    return index // 12, index % 12 + 1


def occurrences(rule: ObligationRule, year: int, formation_date: date) -> list[tuple[str, date]]:
    """``(period, due_date)`` pairs a rule produces for one calendar year."""
    match rule:
        case FixedDateRule(month=month, day=day):
            return [("", _clamped_date(year, month, day))]
        case AnniversaryRule(day=day):
            return [("", _clamped_date(year, formation_date.month, day or formation_date.day))]
        case PeriodicRule(frequency=frequency, due_day=due_day, lag_months=lag):
            result = []
            for index in range(1, frequency.periods_per_year + 1):
                period_end_month = index * frequency.months_per_period
                due_year, due_month = _add_months(year, period_end_month, lag)
                result.append(
                    (frequency.period_label(index), _clamped_date(due_year, due_month, due_day))
                )
            return result
        case _:
            assert_never(rule)


def _make_event(
    entity_ref: str,
    terms: ObligationTerms,
    year: int,
    period: str,
    due_date: date,
    generated_on: date,
) -> ComplianceEvent:
    title = terms.title
    if period:
        title = f"{title} ({year} {period})"
    # The preparation window can never open before the event was generated.
    trigger_days = min(terms.automation_trigger_days, max(0, (due_date - generated_on).days))
    return ComplianceEvent(
        id=make_event_id(entity_ref, terms.key, year, period),
        type=terms.type,
        rule_key=terms.key,
        title=title,
        due_date=due_date,
        year=year,
        period=period,
        cost=terms.cost,
        penalty=terms.penalty,
        critical=terms.critical,
        automatable=terms.automatable,
        automation_trigger_days=trigger_days,
        revenue_opportunity=terms.revenue_opportunity,
        details=dict(terms.details),
    )


def build_events(
    entity_ref: str,
    rules: Iterable[ObligationRule],
    formation_date: date,
    years: Iterable[int],
    generated_on: date,
) -> list[ComplianceEvent]:
    """Generate the events of ``rules`` for ``years``, sorted by due date.

    Pure: identical arguments always produce an identical list. Events
    due before the formation date are not generated.
    """
    rules = tuple(rules)
    events = []
    for year in years:
        for rule in rules:
            for period, due_date in occurrences(rule, year, formation_date):
                if due_date < formation_date:
                    continue
                events.append(
                    _make_event(entity_ref, rule.terms, year, period, due_date, generated_on)
                )
    events.sort(key=lambda e: (e.due_date, e.id))
    return events


class CalendarGenerator:
    """Creates and extends per-entity compliance calendars in the store.

    Usage:
        generator = CalendarGenerator(store)
        calendar = await generator.generate_calendar("wf-...", "IL", date(2024, 3, 10))
    """

    def __init__(
        self,
        store: FormationStore,
        *,
        horizon_years: int = 3,
        locks: KeyedLocks | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self._store = store
        self._horizon_years = horizon_years
        self._locks = locks or KeyedLocks()
        self._clock = clock or (lambda: datetime.now(UTC))

    @property
    def locks(self) -> KeyedLocks:
        return self._locks

    async def generate_calendar(
        self,
        entity_ref: str,
        jurisdiction: str,
        formation_date: date,
        horizon_years: int | None = None,
        *,
        today: date | None = None,
        entity_name: str | None = None,
    ) -> ComplianceCalendar:
        """Generate (or union into) the calendar of ``entity_ref``.

        Covers calendar years ``today.year`` .. ``today.year + horizon - 1``.

        Raises:
            ValidationError: Unsupported jurisdiction, empty entity ref,
                or a horizon below one year
        """
        if not entity_ref:
            raise ValidationError("entity_ref must not be empty")
        horizon = self._horizon_years if horizon_years is None else horizon_years
        if horizon < 1:
            raise ValidationError(f"horizon_years must be at least 1, got {horizon}")
        rules = get_rules(jurisdiction)
        now = self._clock()
        today = today or now.date()
        years = range(today.year, today.year + horizon)
        cal_id = make_calendar_id(entity_ref, rules.code)

        async with self._locks.lock(cal_id):
            calendar = await self._store.get_calendar(cal_id)
            if calendar is None:
                calendar = ComplianceCalendar(
                    id=cal_id,
                    entity_ref=entity_ref,
                    jurisdiction=rules.code,
                    formation_date=formation_date,
                    start_year=today.year,
                    horizon_years=horizon,
                    created_at=now,
                    entity_name=entity_name,
                )
                calendar.merge(
                    build_events(entity_ref, rules.obligations, formation_date, years, today)
                )
                await self._store.insert_calendar(calendar)
                logger.info(
                    f"Generated calendar {cal_id} for {entity_ref} ({rules.code}): "
                    f"{len(calendar.events)} events, {calendar.start_year}-{calendar.end_year}"
                )
                return calendar

            # Due dates already generated are immutable; keep the original formation date.
            if formation_date != calendar.formation_date:
                logger.debug(
                    f"Calendar {cal_id} keeps formation date {calendar.formation_date} "
                    f"(requested {formation_date})"
                )
            added = calendar.merge(
                build_events(entity_ref, rules.obligations, calendar.formation_date, years, today)
            )
            end_year = max(calendar.end_year, years[-1])
            horizon_changed = end_year != calendar.end_year
            calendar.horizon_years = end_year - calendar.start_year + 1
            if added or horizon_changed:
                await self._store.save_calendar(calendar)
            logger.info(f"Regenerated calendar {cal_id}: {added} new events")
            return calendar

    async def extend_calendar(
        self, calendar_id: str, years: int = 1, *, today: date | None = None
    ) -> ComplianceCalendar:
        """Append the ``years`` calendar years following the current horizon.

        Raises:
            NotFound: Unknown calendar id
            ValidationError: ``years`` below one
        """
        if years < 1:
            raise ValidationError(f"years must be at least 1, got {years}")
        now = self._clock()
        today = today or now.date()

        async with self._locks.lock(calendar_id):
            calendar = await self._store.get_calendar(calendar_id)
            if calendar is None:
                raise NotFound("calendar", calendar_id)
            rules = get_rules(calendar.jurisdiction)
            new_years = range(calendar.end_year + 1, calendar.end_year + 1 + years)
            added = calendar.merge(
                build_events(
                    calendar.entity_ref,
                    rules.obligations,
                    calendar.formation_date,
                    new_years,
                    today,
                )
            )
            calendar.horizon_years += years
            calendar.extended_at = now
            await self._store.save_calendar(calendar)

        logger.info(
            f"Extended calendar {calendar_id} through {calendar.end_year}: {added} new events"
        )
        return calendar
