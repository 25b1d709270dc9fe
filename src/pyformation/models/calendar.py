"""
Compliance calendar data model.

Obligation rules are a closed tagged union (FixedDateRule,
AnniversaryRule, PeriodicRule) sharing one ObligationTerms payload.
Generated ComplianceEvents are value objects whose ``due_date`` never
changes; only their status and action metadata are updated.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pyformation.models.status import EventStatus


class ObligationType(Enum):
    """Closed set of recurring obligation types handled by automation."""

    ANNUAL_REPORT = "annual-report"
    TAX_FILING = "tax-filing"
    LICENSE_RENEWAL = "license-renewal"
    REGISTERED_AGENT_RENEWAL = "registered-agent-renewal"

    def __str__(self) -> str:
        return self.value


class Frequency(Enum):
    """Recurrence of a periodic duty within a calendar year."""

    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUAL = "annual"

    @property
    def periods_per_year(self) -> int:
        return {Frequency.MONTHLY: 12, Frequency.QUARTERLY: 4, Frequency.ANNUAL: 1}[self]

    @property
    def months_per_period(self) -> int:
        return 12 // self.periods_per_year

    def period_label(self, index: int) -> str:
        """Label of the 1-based period ``index`` (``M03``, ``Q2``, or ``""``)."""
        if self is Frequency.MONTHLY:
            return f"M{index:02d}"
        if self is Frequency.QUARTERLY:
            return f"Q{index}"
        return ""


@dataclass(frozen=True)
class ObligationTerms:
    """Jurisdiction-defined terms every generated event carries."""

    key: str
    """Stable rule key, part of the event identity (e.g. ``fl_sales_tax``)."""

    type: ObligationType
    title: str
    cost: Decimal
    penalty: Decimal
    critical: bool
    automatable: bool
    automation_trigger_days: int
    revenue_opportunity: Decimal
    details: tuple[tuple[str, str], ...] = ()


@dataclass(frozen=True)
class FixedDateRule:
    """One event per year at ``(year, month, day)``."""

    terms: ObligationTerms
    month: int
    day: int


@dataclass(frozen=True)
class AnniversaryRule:
    """One event per year in the formation month.

    ``day`` None means the formation day itself; days past the end of
    the month are clamped to its last day.
    """

    terms: ObligationTerms
    day: int | None = None


@dataclass(frozen=True)
class PeriodicRule:
    """N events per year, due ``lag_months`` after each period's last month."""

    terms: ObligationTerms
    frequency: Frequency
    due_day: int
    lag_months: int = 1


ObligationRule = FixedDateRule | AnniversaryRule | PeriodicRule


@dataclass
class ComplianceEvent:
    """One dated regulatory obligation for an entity."""

    id: str
    type: ObligationType
    rule_key: str
    title: str
    due_date: date
    year: int
    period: str
    cost: Decimal
    penalty: Decimal
    critical: bool
    automatable: bool
    automation_trigger_days: int
    revenue_opportunity: Decimal
    details: dict[str, str] = field(default_factory=dict)
    status: EventStatus = EventStatus.SCHEDULED
    actioned_at: datetime | None = None
    artifacts: list[str] = field(default_factory=list)
    last_error: str | None = None
    automation_attempts: int = 0

    def days_until_due(self, today: date) -> int:
        return (self.due_date - today).days


@dataclass
class ComplianceCalendar:
    """Multi-year obligation stream for one entity in one jurisdiction.

    Events are appended, never deleted; only their status is updated.
    """

    id: str
    entity_ref: str
    jurisdiction: str
    formation_date: date
    start_year: int
    horizon_years: int
    created_at: datetime
    events: list[ComplianceEvent] = field(default_factory=list)
    entity_name: str | None = None
    extended_at: datetime | None = None
    version: int = 0
    """Store revision; compared on every save."""

    @property
    def end_year(self) -> int:
        """Last calendar year covered by the horizon (inclusive)."""
        return self.start_year + self.horizon_years - 1

    def event(self, event_id: str) -> ComplianceEvent | None:
        for event in self.events:
            if event.id == event_id:
                return event
        return None

    def merge(self, events: list[ComplianceEvent]) -> int:
        """Union ``events`` into the calendar by id; returns how many were new.

        Existing events keep their status; the list stays sorted by due date.
        """
        known = {event.id for event in self.events}
        added = [event for event in events if event.id not in known]
        self.events.extend(added)
        self.events.sort(key=lambda e: (e.due_date, e.id))
        return len(added)

    def annual_compliance_cost(self) -> Decimal:
        """Sum of positive event costs across the horizon."""
        return sum((e.cost for e in self.events if e.cost > 0), Decimal("0"))

    def revenue_projection(self, capture_rate: Decimal = Decimal("0.35")) -> dict[str, Any]:
        total = sum((e.revenue_opportunity for e in self.events), Decimal("0"))
        projected = total * capture_rate
        months = Decimal(self.horizon_years * 12)
        return {
            "total_opportunity": total,
            "projected_capture": projected,
            "average_monthly": (projected / months) if months else Decimal("0"),
            "high_value_services": sum(1 for e in self.events if e.revenue_opportunity > 200),
        }

    def next_due(self, today: date, limit: int = 5) -> list[ComplianceEvent]:
        return [e for e in self.events if e.due_date > today][:limit]
