"""
Error kinds raised by the formation core.

Each error carries a stable ``kind`` string (what the service façade
reports to callers) and answers ``is_retryable()`` the same way the
retryable-error protocol does: True means "try again later", False means
the request itself must change.

- ValidationError, NotFound: terminal, surfaced verbatim
- DependencyNotSatisfied, AlreadyInProgress, AlreadyCompleted: non-fatal
  signals; the caller should poll or wait
- ExternalServiceError: retryable; state stays in its pre-call shape
"""

from __future__ import annotations

from collections.abc import Iterable


class FormationError(Exception):
    """Base class for all formation-core errors."""

    kind = "formation_error"

    def is_retryable(self) -> bool:
        return False


class ValidationError(FormationError):
    """Malformed entity info, unsupported jurisdiction, or missing approval."""

    kind = "validation_error"


class NotFound(FormationError):
    """Unknown workflow instance, step, calendar or event id."""

    kind = "not_found"

    def __init__(self, what: str, identifier: object):
        super().__init__(f"{what} not found: {identifier}")
        self.what = what
        self.identifier = identifier


class DependencyNotSatisfied(FormationError):
    """A step was requested before all of its dependencies completed."""

    kind = "dependency_not_satisfied"

    def __init__(self, step_id: object, missing: Iterable[object]):
        self.step_id = step_id
        self.missing = [str(m) for m in missing]
        super().__init__(f"Dependencies not completed for {step_id}: {', '.join(self.missing)}")

    def is_retryable(self) -> bool:
        return True


class AlreadyInProgress(FormationError):
    """Another execution of the same step is in flight."""

    kind = "already_in_progress"

    def __init__(self, instance_id: str, step_id: object):
        super().__init__(f"Step {step_id} of {instance_id} is already in progress")
        self.instance_id = instance_id
        self.step_id = step_id

    def is_retryable(self) -> bool:
        return True


class AlreadyCompleted(FormationError):
    """The step has already completed; no side effect was performed."""

    kind = "already_completed"

    def __init__(self, instance_id: str, step_id: object):
        super().__init__(f"Step {step_id} of {instance_id} is already completed")
        self.instance_id = instance_id
        self.step_id = step_id


class ExternalServiceError(FormationError):
    """A collaborator (registration, tax, agent, documents) failed or timed out."""

    kind = "external_service_error"

    def __init__(self, service: str, message: str):
        super().__init__(f"{service}: {message}")
        self.service = service

    def is_retryable(self) -> bool:
        return True
