"""Status enumerations for formation workflows and compliance events.

Defines the lifecycle states of formation steps, whole workflow
instances, dated compliance obligations, and compliance reports.
"""

from enum import Enum


class StepStatus(Enum):
    """Status of a single formation step.

    Lifecycle:
        PENDING → IN_PROGRESS → COMPLETED/FAILED
        FAILED → IN_PROGRESS (retry)

    COMPLETED is final; rollback of a completed step is not supported.
    """

    PENDING = "pending"
    """Step has not been attempted yet."""

    IN_PROGRESS = "in_progress"
    """Step is reserved; its external work is in flight."""

    COMPLETED = "completed"
    """Step finished successfully."""

    FAILED = "failed"
    """Last attempt failed; the step may be retried."""

    @property
    def is_claimable(self) -> bool:
        """Check if a step in this status may be reserved for execution."""
        return self in (StepStatus.PENDING, StepStatus.FAILED)

    def can_transition_to(self, target: "StepStatus") -> bool:
        """Check whether ``self → target`` is a legal transition."""
        return target in _STEP_TRANSITIONS[self]

    def __str__(self) -> str:
        return self.value


_STEP_TRANSITIONS: dict[StepStatus, frozenset[StepStatus]] = {
    StepStatus.PENDING: frozenset({StepStatus.IN_PROGRESS}),
    StepStatus.IN_PROGRESS: frozenset({StepStatus.COMPLETED, StepStatus.FAILED}),
    StepStatus.FAILED: frozenset({StepStatus.IN_PROGRESS}),
    StepStatus.COMPLETED: frozenset(),
}


class WorkflowStatus(Enum):
    """Status of a formation workflow instance.

    Lifecycle:
        CREATED → IN_PROGRESS → COMPLETED

    A workflow is COMPLETED (archived) once every critical step is
    completed, even if non-critical steps are still pending.
    """

    CREATED = "created"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"

    def __str__(self) -> str:
        return self.value


class EventStatus(Enum):
    """Status of a dated compliance obligation.

    Lifecycle:
        SCHEDULED → ACTIONED
        SCHEDULED → OVERDUE_UNACTIONED (due date passed without preparation)
    """

    SCHEDULED = "scheduled"
    """Generated and waiting; eligible for automated preparation."""

    ACTIONED = "actioned"
    """Preparation completed (pending approval); never re-triggered."""

    OVERDUE_UNACTIONED = "overdue-unactioned"
    """Due date passed unprepared; surfaced for manual handling."""

    def __str__(self) -> str:
        return self.value


class ComplianceStatus(Enum):
    """Overall status of a compliance report."""

    COMPLIANT = "compliant"
    ACTION_REQUIRED = "action_required"
    NON_COMPLIANT = "non_compliant"

    def __str__(self) -> str:
        return self.value


class EventBucket(Enum):
    """Classification buckets for a compliance event relative to "now".

    Buckets overlap: an upcoming event may also be actionable.
    """

    OVERDUE = "overdue"
    UPCOMING = "upcoming"
    ACTIONABLE = "actionable"

    def __str__(self) -> str:
        return self.value
