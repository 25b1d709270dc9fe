"""Monitoring and automation result types."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal

from pyformation.models.calendar import ComplianceEvent, ObligationType
from pyformation.models.status import ComplianceStatus, EventBucket


@dataclass
class ActionResult:
    """Outcome of preparing one obligation.

    ``success`` means "prepared, pending approval", never "filed".
    """

    event_id: str
    event_type: ObligationType
    success: bool
    revenue: Decimal = Decimal("0")
    artifacts: list[str] = field(default_factory=list)
    action: str = "none"
    next_steps: list[str] = field(default_factory=list)
    error: str | None = None
    executed_at: datetime | None = None


@dataclass(frozen=True)
class EventView:
    """An event as seen by one monitor pass."""

    event: ComplianceEvent
    days_until_due: int
    buckets: frozenset[EventBucket]

    @property
    def urgency(self) -> str:
        if EventBucket.OVERDUE in self.buckets:
            return "critical"
        if self.days_until_due <= 7:
            return "high"
        return "medium"


@dataclass(frozen=True)
class RevenueOpportunity:
    event_id: str
    event_type: ObligationType
    title: str
    due_date: date
    revenue_opportunity: Decimal
    urgency: str


@dataclass
class ComplianceReport:
    """Result of ``monitor(calendar_id, now)``."""

    calendar_id: str
    entity_ref: str
    jurisdiction: str
    as_of: datetime
    status: ComplianceStatus
    upcoming: list[EventView] = field(default_factory=list)
    overdue: list[EventView] = field(default_factory=list)
    actionable: list[EventView] = field(default_factory=list)
    revenue_opportunity: Decimal = Decimal("0")
    revenue_ranking: list[RevenueOpportunity] = field(default_factory=list)
    automation_results: list[ActionResult] = field(default_factory=list)
    newly_overdue_unactioned: list[str] = field(default_factory=list)

    @property
    def revenue_generated(self) -> Decimal:
        return sum((r.revenue for r in self.automation_results if r.success), Decimal("0"))
