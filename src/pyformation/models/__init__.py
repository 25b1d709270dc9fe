"""Core data models for formation workflows and compliance calendars.

Design: Dependency-Free Models
These types have no dependencies on executor, compliance or storage
modules to prevent circular imports and enable clean layering.
"""

from pyformation.models.calendar import (
    AnniversaryRule,
    ComplianceCalendar,
    ComplianceEvent,
    FixedDateRule,
    Frequency,
    ObligationRule,
    ObligationTerms,
    ObligationType,
    PeriodicRule,
)
from pyformation.models.report import (
    ActionResult,
    ComplianceReport,
    EventView,
    RevenueOpportunity,
)
from pyformation.models.status import (
    ComplianceStatus,
    EventBucket,
    EventStatus,
    StepStatus,
    WorkflowStatus,
)
from pyformation.models.workflow import (
    EntityInfo,
    StepKind,
    StepResult,
    StepSpec,
    StepState,
    WorkflowDefinition,
    WorkflowInstance,
)

__all__ = [
    "ActionResult",
    "AnniversaryRule",
    "ComplianceCalendar",
    "ComplianceEvent",
    "ComplianceReport",
    "ComplianceStatus",
    "EntityInfo",
    "EventBucket",
    "EventStatus",
    "EventView",
    "FixedDateRule",
    "Frequency",
    "ObligationRule",
    "ObligationTerms",
    "ObligationType",
    "PeriodicRule",
    "RevenueOpportunity",
    "StepKind",
    "StepResult",
    "StepSpec",
    "StepState",
    "StepStatus",
    "WorkflowDefinition",
    "WorkflowInstance",
    "WorkflowStatus",
]
