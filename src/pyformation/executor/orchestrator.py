"""
WorkflowOrchestrator - owns formation workflow instances.

Creates instances from the jurisdiction templates, validates entity
information, and answers progress/actionability queries. Step execution
is delegated to the StepEngine, which shares the orchestrator's store.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any

from pyformation.errors import NotFound, ValidationError
from pyformation.executor.engine import StepEngine
from pyformation.ids import new_workflow_id
from pyformation.jurisdictions import get_rules
from pyformation.models import (
    EntityInfo,
    StepKind,
    StepResult,
    StepState,
    StepStatus,
    WorkflowInstance,
)
from pyformation.storage.base import FormationStore

logger = logging.getLogger(__name__)


def validate_entity(entity: EntityInfo) -> None:
    """Check an entity against its jurisdiction's requirements.

    Raises:
        ValidationError: Missing name, unsupported jurisdiction, or a
            jurisdiction requirement not met
    """
    if not entity.business_name.strip():
        raise ValidationError("business_name is required")
    rules = get_rules(entity.jurisdiction)
    problems = []
    if rules.requirements.members and not entity.members:
        problems.append(f"{rules.code} requires at least one member")
    if rules.requirements.purpose and not (entity.business_purpose or "").strip():
        problems.append(f"{rules.code} requires a business purpose")
    if problems:
        raise ValidationError("; ".join(problems))


class WorkflowOrchestrator:
    """Façade over workflow creation, execution and queries.

    Usage:
        orchestrator = WorkflowOrchestrator(store, engine)
        instance = await orchestrator.create_workflow({"businessName": "Acme LLC", "state": "WY"})
        for step_id in await orchestrator.next_actionable_steps(instance.id):
            await orchestrator.execute_step(instance.id, step_id)
    """

    def __init__(
        self,
        store: FormationStore,
        engine: StepEngine,
        *,
        clock: Callable[[], datetime] | None = None,
    ):
        self._store = store
        self._engine = engine
        self._clock = clock or (lambda: datetime.now(UTC))

    async def create_workflow(self, entity: EntityInfo | Mapping[str, Any]) -> WorkflowInstance:
        """Create a new instance with every step pending.

        Raises:
            ValidationError: Malformed entity info or unsupported jurisdiction
        """
        if not isinstance(entity, EntityInfo):
            entity = EntityInfo.from_mapping(dict(entity))
        validate_entity(entity)
        rules = get_rules(entity.jurisdiction)

        instance = WorkflowInstance(
            id=new_workflow_id(),
            entity_name=entity.business_name,
            jurisdiction=rules.code,
            created_at=self._clock(),
            steps=[StepState.from_spec(spec) for spec in rules.workflow.steps],
            entity=entity,
        )
        await self._store.insert_workflow(instance)
        logger.info(
            f"Created workflow {instance.id} for {entity.business_name!r} in {rules.code} "
            f"({len(instance.steps)} steps)"
        )
        return instance

    async def get_workflow(self, instance_id: str) -> WorkflowInstance:
        """Raises NotFound for an unknown id."""
        instance = await self._store.get_workflow(instance_id)
        if instance is None:
            raise NotFound("workflow", instance_id)
        return instance

    async def execute_step(
        self,
        instance_id: str,
        step_id: StepKind | str,
        input: Mapping[str, Any] | None = None,
    ) -> StepResult:
        return await self._engine.execute_step(instance_id, step_id, input)

    async def next_actionable_steps(self, instance_id: str) -> list[StepKind]:
        """Every pending step whose dependencies are all completed."""
        instance = await self.get_workflow(instance_id)
        return instance.actionable_step_ids()

    async def progress(self, instance_id: str) -> float:
        """Percentage of completed steps."""
        instance = await self.get_workflow(instance_id)
        return instance.progress

    async def available_automations(self, instance_id: str) -> list[StepKind]:
        """Pending or failed automatable steps, in template order."""
        instance = await self.get_workflow(instance_id)
        return [
            s.id
            for s in instance.steps
            if s.automatable and s.status in (StepStatus.PENDING, StepStatus.FAILED)
        ]
