"""
pyformation: Business formation workflows and compliance calendars.

Design Pattern: Façade Pattern
This module re-exports the pieces an application needs: the service
façade, the storage adapters, the domain models and the error kinds.

Example:
    ```python
    import asyncio
    from pyformation import FormationService, InMemoryFormationStore

    async def main(collaborators):
        service = FormationService(InMemoryFormationStore(), collaborators)
        created = await service.create_workflow(
            {"businessName": "Acme Ventures LLC", "state": "WY"}
        )
        instance = created.data
        for step_id in (await service.next_actionable_steps(instance.id)).data:
            await service.execute_step(instance.id, step_id)
    ```
"""

from pyformation.collaborators import (
    AgentService,
    Artifact,
    Collaborators,
    DocumentGenerator,
    DocumentKind,
    FilingReceipt,
    LicenseRequirement,
    NameAvailability,
    RegistrationService,
    TaxService,
)
from pyformation.compliance import (
    AutomationExecutor,
    CalendarGenerator,
    ComplianceMonitor,
    ComplianceSweeper,
    classify,
)
from pyformation.config import Settings, configure_logging, open_store
from pyformation.errors import (
    AlreadyCompleted,
    AlreadyInProgress,
    DependencyNotSatisfied,
    ExternalServiceError,
    FormationError,
    NotFound,
    ValidationError,
)
from pyformation.executor import StepEngine, WorkflowOrchestrator
from pyformation.jurisdictions import get_rules, supported_jurisdictions
from pyformation.models import (
    ActionResult,
    ComplianceCalendar,
    ComplianceEvent,
    ComplianceReport,
    ComplianceStatus,
    EntityInfo,
    EventBucket,
    EventStatus,
    ObligationType,
    StepKind,
    StepResult,
    StepStatus,
    WorkflowInstance,
    WorkflowStatus,
)
from pyformation.service import FormationService, Response
from pyformation.storage import (
    FormationStore,
    InMemoryFormationStore,
    StorageError,
    VersionConflict,
)

__version__ = "0.1.0"

__all__ = [
    # Façade
    "FormationService",
    "Response",
    "Settings",
    "configure_logging",
    "open_store",
    # Components
    "AutomationExecutor",
    "CalendarGenerator",
    "ComplianceMonitor",
    "ComplianceSweeper",
    "StepEngine",
    "WorkflowOrchestrator",
    "classify",
    "get_rules",
    "supported_jurisdictions",
    # Collaborators
    "AgentService",
    "Artifact",
    "Collaborators",
    "DocumentGenerator",
    "DocumentKind",
    "FilingReceipt",
    "LicenseRequirement",
    "NameAvailability",
    "RegistrationService",
    "TaxService",
    # Models
    "ActionResult",
    "ComplianceCalendar",
    "ComplianceEvent",
    "ComplianceReport",
    "ComplianceStatus",
    "EntityInfo",
    "EventBucket",
    "EventStatus",
    "ObligationType",
    "StepKind",
    "StepResult",
    "StepStatus",
    "WorkflowInstance",
    "WorkflowStatus",
    # Storage
    "FormationStore",
    "InMemoryFormationStore",
    "StorageError",
    "VersionConflict",
    # Errors
    "AlreadyCompleted",
    "AlreadyInProgress",
    "DependencyNotSatisfied",
    "ExternalServiceError",
    "FormationError",
    "NotFound",
    "ValidationError",
    "__version__",
]
