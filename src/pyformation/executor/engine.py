"""
StepEngine - runs one step of one workflow instance.

Execution follows reserve → act → commit:

1. Reserve (instance lock held): load the instance, check preconditions
   and dependencies, move the step ``{pending, failed} → in_progress``
   (or reclaim an in_progress step whose lease expired)
   and save with a version check. Any precondition failure raises
   before the instance is touched.
2. Act (no lock): run the step handler; every collaborator call carries
   the idempotency key derived from ``(instance_id, step_id)``.
3. Commit (instance lock held): reload, check the attempt still owns the
   reservation, move the step to ``completed`` or
   ``failed``, recompute progress and workflow status, save. A cancelled
   act phase still commits ``failed``.

The version check on save turns the reservation into a compare-and-swap
that also holds across processes sharing one store: the loser of a race
gets AlreadyInProgress and performs no side effect.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from pyformation.collaborators import Collaborators
from pyformation.errors import (
    AlreadyCompleted,
    AlreadyInProgress,
    DependencyNotSatisfied,
    NotFound,
)
from pyformation.executor.locks import KeyedLocks
from pyformation.executor.steps import StepContext, StepOutcome, run_step, validate_input
from pyformation.ids import step_idempotency_key
from pyformation.models import (
    StepKind,
    StepResult,
    StepState,
    StepStatus,
    WorkflowInstance,
    WorkflowStatus,
)
from pyformation.storage.base import FormationStore, VersionConflict

if TYPE_CHECKING:
    from pyformation.compliance.calendar import CalendarGenerator

logger = logging.getLogger(__name__)


def parse_step_id(step_id: StepKind | str) -> StepKind:
    """Coerce a step id given as text.

    Raises:
        NotFound: Unknown step id
    """
    if isinstance(step_id, StepKind):
        return step_id
    try:
        return StepKind(step_id)
    except ValueError:
        raise NotFound("step", step_id) from None


class StepEngine:
    """Executes formation steps with at-most-one execution in flight per step.

    A reservation older than ``reservation_lease`` seconds belongs to an
    execution that died before its commit; the next ``execute_step`` on
    that step reclaims it. Each commit is fenced by the attempt number it
    reserved, so a superseded execution never overwrites a newer one.

    Usage:
        engine = StepEngine(store, collaborators, CalendarGenerator(store))
        result = await engine.execute_step(instance.id, "name_check")
    """

    def __init__(
        self,
        store: FormationStore,
        collaborators: Collaborators,
        calendars: CalendarGenerator,
        *,
        external_timeout: float = 30.0,
        reservation_lease: float | None = None,
        locks: KeyedLocks | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self._store = store
        self._collaborators = collaborators
        self._calendars = calendars
        self._external_timeout = external_timeout
        # A handler makes at most two collaborator calls.
        self._reservation_lease = (
            reservation_lease if reservation_lease is not None else 3 * external_timeout
        )
        self._locks = locks or KeyedLocks()
        self._clock = clock or (lambda: datetime.now(UTC))

    @property
    def locks(self) -> KeyedLocks:
        return self._locks

    async def _load(self, instance_id: str) -> WorkflowInstance:
        instance = await self._store.get_workflow(instance_id)
        if instance is None:
            raise NotFound("workflow", instance_id)
        return instance

    def _is_stale(self, step: StepState, now: datetime) -> bool:
        if step.status is not StepStatus.IN_PROGRESS or step.started_at is None:
            return False
        return (now - step.started_at).total_seconds() > self._reservation_lease

    async def execute_step(
        self,
        instance_id: str,
        step_id: StepKind | str,
        input: Mapping[str, Any] | None = None,
    ) -> StepResult:
        """Execute one step.

        Returns:
            StepResult with status COMPLETED, or FAILED for a business
            rejection reported by the handler

        Raises:
            NotFound: Unknown instance or step
            AlreadyCompleted: Step already completed (no side effect)
            AlreadyInProgress: Another execution holds a live reservation
            DependencyNotSatisfied: A dependency is not completed (no mutation)
            ValidationError: Input may not start the step (no mutation)
            ExternalServiceError: A collaborator failed or timed out; the
                attempt is committed as failed and may be retried
        """
        kind = parse_step_id(step_id)
        input = dict(input or {})

        snapshot = await self._reserve(instance_id, kind, input)
        attempt = snapshot.step(kind).attempts

        ctx = StepContext(
            instance=snapshot,
            step_id=kind,
            input=input,
            collaborators=self._collaborators,
            calendars=self._calendars,
            idempotency_key=step_idempotency_key(instance_id, kind),
            now=self._clock(),
            timeout=self._external_timeout,
        )
        try:
            outcome = await run_step(ctx)
        except Exception as e:
            logger.warning(f"Step {kind} of {instance_id} failed: {e}")
            await self._commit(
                instance_id, kind, attempt, StepOutcome(success=False, error=str(e))
            )
            raise
        except BaseException:
            # Cancelled mid-flight: the attempt still resolves to failed.
            logger.warning(f"Step {kind} of {instance_id} cancelled")
            await asyncio.shield(
                self._commit(
                    instance_id, kind, attempt, StepOutcome(success=False, error="cancelled")
                )
            )
            raise

        return await self._commit(instance_id, kind, attempt, outcome)

    async def _reserve(
        self, instance_id: str, kind: StepKind, input: Mapping[str, Any]
    ) -> WorkflowInstance:
        async with self._locks.lock(instance_id):
            instance = await self._load(instance_id)
            step = instance.step(kind)
            if step is None:
                raise NotFound("step", kind)
            now = self._clock()

            if step.status is StepStatus.COMPLETED:
                raise AlreadyCompleted(instance_id, kind)
            if step.status is StepStatus.IN_PROGRESS and not self._is_stale(step, now):
                raise AlreadyInProgress(instance_id, kind)

            missing = instance.missing_dependencies(step)
            if missing:
                raise DependencyNotSatisfied(kind, missing)

            validate_input(kind, input)

            if step.status is StepStatus.IN_PROGRESS:
                logger.warning(
                    f"Reclaiming stale reservation of step {kind} of {instance_id} "
                    f"(attempt {step.attempts}, started {step.started_at})"
                )
                step.fail(f"reservation expired after {self._reservation_lease}s")
            step.begin(now)
            if instance.status is WorkflowStatus.CREATED:
                instance.status = WorkflowStatus.IN_PROGRESS
            try:
                await self._store.save_workflow(instance)
            except VersionConflict as e:
                raise AlreadyInProgress(instance_id, kind) from e

            logger.debug(f"Reserved step {kind} of {instance_id} (attempt {step.attempts})")
            return instance

    async def _commit(
        self, instance_id: str, kind: StepKind, attempt: int, outcome: StepOutcome
    ) -> StepResult:
        async with self._locks.lock(instance_id):
            instance = await self._load(instance_id)
            step = instance.step(kind)
            now = self._clock()

            if step.attempts != attempt or step.status is not StepStatus.IN_PROGRESS:
                logger.warning(
                    f"Attempt {attempt} of step {kind} of {instance_id} was superseded "
                    f"(now attempt {step.attempts}, {step.status}); outcome discarded"
                )
                return self._result(instance, step)

            if outcome.success:
                step.complete(now, outcome.result)
                if kind is StepKind.COMPLIANCE_SETUP:
                    instance.calendar_id = outcome.result.get("calendar_id")
                logger.info(f"Step {kind} of {instance_id} completed")
            else:
                step.fail(outcome.error or "step failed", outcome.result or None)
                logger.info(f"Step {kind} of {instance_id} failed: {step.error}")

            instance.recompute_progress()
            if instance.status is not WorkflowStatus.COMPLETED and instance.critical_steps_completed:
                instance.status = WorkflowStatus.COMPLETED
                instance.completed_at = now
                logger.info(f"Workflow {instance_id} completed ({instance.progress:.0f}%)")

            await self._store.save_workflow(instance)
            return self._result(instance, step)

    @staticmethod
    def _result(instance: WorkflowInstance, step: StepState) -> StepResult:
        return StepResult(
            instance_id=instance.id,
            step_id=step.id,
            status=step.status,
            result=step.result,
            error=step.error,
            progress=instance.progress,
            workflow_status=instance.status,
            next_actionable=instance.actionable_step_ids(),
        )

    async def recover_stale_reservations(self) -> int:
        """Fail every step whose reservation outlived the lease.

        Maintenance pass for workflows nobody is retrying; the steps become
        retryable again. Returns the number of steps recovered.
        """
        recovered = 0
        for instance_id in await self._store.list_workflow_ids():
            async with self._locks.lock(instance_id):
                instance = await self._store.get_workflow(instance_id)
                if instance is None:
                    continue
                now = self._clock()
                stale = [s for s in instance.steps if self._is_stale(s, now)]
                if not stale:
                    continue
                for step in stale:
                    step.fail(f"reservation expired after {self._reservation_lease}s")
                    logger.warning(f"Recovered stale step {step.id} of {instance_id}")
                try:
                    await self._store.save_workflow(instance)
                except VersionConflict:
                    logger.debug(f"Workflow {instance_id} changed during recovery; skipped")
                    continue
                recovered += len(stale)
        if recovered:
            logger.info(f"Recovered {recovered} stale step reservations")
        return recovered
