"""
Formation workflow data model.

A WorkflowDefinition is the immutable per-jurisdiction template; a
WorkflowInstance is one concrete run of it for one business entity.

Design principles:
- Templates are frozen dataclasses (shared, never mutated)
- Instance state is a plain dataclass owned by the orchestrator
- Transitions go through StepState methods so illegal moves raise early
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any

from pyformation.models.status import StepStatus, WorkflowStatus


class StepKind(Enum):
    """Closed set of formation step types.

    Each member is routed to exactly one handler; adding a member without
    a handler is caught by the exhaustive match in the step dispatcher.
    """

    NAME_CHECK = "name_check"
    NAME_RESERVATION = "name_reservation"
    REGISTERED_AGENT = "registered_agent"
    ARTICLES_PREP = "articles_prep"
    ARTICLES_FILING = "articles_filing"
    EIN_APPLICATION = "ein_application"
    OPERATING_AGREEMENT = "operating_agreement"
    BUSINESS_LICENSES = "business_licenses"
    COMPLIANCE_SETUP = "compliance_setup"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class StepSpec:
    """One step of a formation template."""

    id: StepKind
    name: str
    dependency_ids: tuple[StepKind, ...] = ()
    nominal_duration: int = 1
    """Nominal duration in business days."""

    nominal_cost: float = 0.0
    automatable: bool = False
    critical: bool = True
    """Critical steps gate workflow completion; non-critical ones never block it."""

    method: str = "manual"
    """How the step is carried out (api_call, document_generation, ...)."""


@dataclass(frozen=True)
class WorkflowDefinition:
    """Immutable, per-jurisdiction ordered template of formation steps."""

    jurisdiction: str
    name: str
    steps: tuple[StepSpec, ...]
    filing_fee: float
    advantages: tuple[str, ...] = ()

    @property
    def total_days(self) -> int:
        return sum(spec.nominal_duration for spec in self.steps)

    @property
    def total_cost(self) -> float:
        return self.filing_fee + sum(
            spec.nominal_cost for spec in self.steps if spec.id is not StepKind.ARTICLES_FILING
        )

    def spec(self, step_id: StepKind) -> StepSpec:
        for spec in self.steps:
            if spec.id is step_id:
                return spec
        raise KeyError(step_id)


@dataclass(frozen=True)
class EntityInfo:
    """Formation request for one business entity."""

    business_name: str
    jurisdiction: str
    members: tuple[str, ...] = ()
    business_purpose: str | None = None
    registered_agent: str | None = None
    principal_address: str | None = None
    expedited: bool = False

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> EntityInfo:
        """Build from a loosely-typed request record (camelCase or snake_case keys)."""

        def pick(*keys: str, default: Any = None) -> Any:
            for key in keys:
                if key in data and data[key] is not None:
                    return data[key]
            return default

        members = pick("members", default=())
        if isinstance(members, str):
            members = (members,)
        return cls(
            business_name=str(pick("business_name", "businessName", "entityName", default="")),
            jurisdiction=str(pick("jurisdiction", "state", default="")).upper(),
            members=tuple(str(m) for m in members),
            business_purpose=pick("business_purpose", "businessPurpose", "purpose"),
            registered_agent=pick("registered_agent", "registeredAgent", "agentName"),
            principal_address=pick("principal_address", "principalAddress", "address"),
            expedited=bool(pick("expedited", default=False)),
        )


@dataclass
class StepState:
    """Mutable execution state of one step inside a workflow instance.

    Invariant: transitions only pending→in_progress→{completed,failed}
    and failed→in_progress.
    """

    id: StepKind
    name: str
    dependency_ids: tuple[StepKind, ...]
    critical: bool = True
    automatable: bool = False
    status: StepStatus = StepStatus.PENDING
    started_at: datetime | None = None
    completed_at: datetime | None = None
    result: dict[str, Any] | None = None
    error: str | None = None
    attempts: int = 0

    @classmethod
    def from_spec(cls, spec: StepSpec) -> StepState:
        return cls(
            id=spec.id,
            name=spec.name,
            dependency_ids=spec.dependency_ids,
            critical=spec.critical,
            automatable=spec.automatable,
        )

    def _move(self, target: StepStatus) -> None:
        if not self.status.can_transition_to(target):
            raise ValueError(f"Illegal step transition {self.status} → {target} for {self.id}")
        self.status = target

    def begin(self, now: datetime) -> None:
        self._move(StepStatus.IN_PROGRESS)
        self.started_at = now
        self.completed_at = None
        self.error = None
        self.attempts += 1

    def complete(self, now: datetime, result: dict[str, Any]) -> None:
        self._move(StepStatus.COMPLETED)
        self.completed_at = now
        self.result = result
        self.error = None

    def fail(self, error: str, result: dict[str, Any] | None = None) -> None:
        self._move(StepStatus.FAILED)
        self.error = error
        self.result = result


@dataclass
class WorkflowInstance:
    """One concrete run of the formation process for one entity.

    Exclusively owned and mutated by the orchestrator.
    """

    id: str
    entity_name: str
    jurisdiction: str
    created_at: datetime
    steps: list[StepState]
    entity: EntityInfo
    progress: float = 0.0
    status: WorkflowStatus = WorkflowStatus.CREATED
    completed_at: datetime | None = None
    calendar_id: str | None = None
    version: int = 0
    """Store revision; compared on every save."""

    def step(self, step_id: StepKind) -> StepState | None:
        for state in self.steps:
            if state.id is step_id:
                return state
        return None

    def missing_dependencies(self, step: StepState) -> list[StepKind]:
        completed = {s.id for s in self.steps if s.status is StepStatus.COMPLETED}
        return [dep for dep in step.dependency_ids if dep not in completed]

    def actionable_step_ids(self) -> list[StepKind]:
        """Pending steps whose dependencies are all completed, in template order."""
        return [
            s.id
            for s in self.steps
            if s.status is StepStatus.PENDING and not self.missing_dependencies(s)
        ]

    def recompute_progress(self) -> float:
        """Recompute ``completed / total * 100``.

        Completed steps never leave COMPLETED, so the value is non-decreasing.
        """
        if not self.steps:
            self.progress = 100.0
            return self.progress
        completed = sum(1 for s in self.steps if s.status is StepStatus.COMPLETED)
        self.progress = completed / len(self.steps) * 100
        return self.progress

    @property
    def critical_steps_completed(self) -> bool:
        return all(s.status is StepStatus.COMPLETED for s in self.steps if s.critical)

    def formation_date(self, default: date) -> date:
        """Effective date of the filed articles, or ``default`` if not filed yet."""
        filing = self.step(StepKind.ARTICLES_FILING)
        if filing is not None and filing.result:
            effective = filing.result.get("effective_date")
            if isinstance(effective, date):
                return effective
            if isinstance(effective, str):
                return date.fromisoformat(effective[:10])
        return default


@dataclass
class StepResult:
    """Outcome of one ``execute_step`` call after its commit."""

    instance_id: str
    step_id: StepKind
    status: StepStatus
    result: dict[str, Any] | None = None
    error: str | None = None
    progress: float = 0.0
    workflow_status: WorkflowStatus = WorkflowStatus.IN_PROGRESS
    next_actionable: list[StepKind] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.status is StepStatus.COMPLETED
