"""
FormationService - named operations with a uniform response envelope.

Design Pattern: Façade
Wires the store, orchestrator, engine, calendar generator, monitor and
automation executor together and exposes the operations a transport
layer calls. Every operation returns ``Response(success, data, error)``:
core exceptions are converted here and nowhere else.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pyformation.collaborators import Collaborators
from pyformation.compliance import (
    AutomationExecutor,
    CalendarGenerator,
    ComplianceMonitor,
    ComplianceSweeper,
)
from pyformation.config import Settings, open_store
from pyformation.errors import FormationError, ValidationError
from pyformation.executor import KeyedLocks, StepEngine, WorkflowOrchestrator
from pyformation.models import StepKind
from pyformation.storage.base import FormationStore, StorageError

logger = logging.getLogger(__name__)


def to_plain(value: Any) -> Any:
    """Convert result objects into JSON-compatible structures."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_plain(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Mapping):
        return {str(to_plain(k)): to_plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_plain(v) for v in value]
    return value


@dataclass(frozen=True)
class ErrorInfo:
    kind: str
    message: str
    retryable: bool = False


@dataclass(frozen=True)
class Response:
    success: bool
    data: Any = None
    error: ErrorInfo | None = None

    def to_dict(self) -> dict[str, Any]:
        if self.success:
            return {"success": True, "data": to_plain(self.data)}
        return {"success": False, "error": to_plain(self.error)}


class FormationService:
    """Formation and compliance operations behind one envelope.

    Usage:
        service = FormationService(InMemoryFormationStore(), collaborators)
        response = await service.create_workflow({"businessName": "Acme LLC", "state": "WY"})
        if response.success:
            instance = response.data
    """

    def __init__(
        self,
        store: FormationStore,
        collaborators: Collaborators,
        settings: Settings | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
    ):
        self.settings = settings or Settings()
        self.store = store
        clock = clock or (lambda: datetime.now(UTC))
        self._clock = clock

        # Workflows and calendars have distinct ids, so one registry serves both.
        locks = KeyedLocks()
        self.calendars = CalendarGenerator(
            store, horizon_years=self.settings.horizon_years, locks=locks, clock=clock
        )
        self.engine = StepEngine(
            store,
            collaborators,
            self.calendars,
            external_timeout=self.settings.external_timeout,
            locks=locks,
            clock=clock,
        )
        self.orchestrator = WorkflowOrchestrator(store, self.engine, clock=clock)
        self.automation = AutomationExecutor(
            collaborators.documents, timeout=self.settings.external_timeout, clock=clock
        )
        self.compliance_monitor = ComplianceMonitor(
            store,
            self.automation,
            upcoming_days=self.settings.upcoming_days,
            locks=locks,
            clock=clock,
        )

    @classmethod
    async def from_settings(
        cls, collaborators: Collaborators, settings: Settings | None = None
    ) -> FormationService:
        """Open the configured store and build a service on it."""
        settings = settings or Settings.from_env()
        store = await open_store(settings)
        return cls(store, collaborators, settings)

    def sweeper(self) -> ComplianceSweeper:
        return ComplianceSweeper(
            self.store,
            self.compliance_monitor,
            self.calendars,
            interval=self.settings.sweep_interval,
            extend_within_days=self.settings.extend_within_days,
            clock=self._clock,
        )

    async def close(self) -> None:
        await self.store.close()

    async def _respond(self, operation: str, call: Awaitable[Any]) -> Response:
        try:
            return Response(success=True, data=await call)
        except FormationError as e:
            logger.debug(f"{operation} rejected: {e.kind}: {e}")
            return Response(
                success=False, error=ErrorInfo(e.kind, str(e), e.is_retryable())
            )
        except StorageError as e:
            logger.warning(f"{operation} storage failure: {e}")
            return Response(success=False, error=ErrorInfo("storage_error", str(e), True))
        except Exception as e:
            logger.exception(f"{operation} failed unexpectedly")
            return Response(success=False, error=ErrorInfo("internal_error", str(e)))

    # ========================================================================
    # Formation workflow
    # ========================================================================

    async def create_workflow(self, entity_info: Mapping[str, Any]) -> Response:
        return await self._respond("create_workflow", self.orchestrator.create_workflow(entity_info))

    async def execute_step(
        self, instance_id: str, step_id: StepKind | str, input: Mapping[str, Any] | None = None
    ) -> Response:
        return await self._respond(
            "execute_step", self.orchestrator.execute_step(instance_id, step_id, input)
        )

    async def next_actionable_steps(self, instance_id: str) -> Response:
        return await self._respond(
            "next_actionable_steps", self.orchestrator.next_actionable_steps(instance_id)
        )

    async def progress(self, instance_id: str) -> Response:
        return await self._respond("progress", self.orchestrator.progress(instance_id))

    async def get_workflow(self, instance_id: str) -> Response:
        return await self._respond("get_workflow", self.orchestrator.get_workflow(instance_id))

    async def available_automations(self, instance_id: str) -> Response:
        return await self._respond(
            "available_automations", self.orchestrator.available_automations(instance_id)
        )

    async def recover_stale_reservations(self) -> Response:
        return await self._respond(
            "recover_stale_reservations", self.engine.recover_stale_reservations()
        )

    # ========================================================================
    # Compliance
    # ========================================================================

    async def generate_calendar(
        self,
        entity_ref: str,
        jurisdiction: str,
        formation_date: date | str,
        horizon_years: int | None = None,
    ) -> Response:
        async def call():
            if isinstance(formation_date, str):
                try:
                    parsed = date.fromisoformat(formation_date)
                except ValueError:
                    raise ValidationError(f"Invalid formation_date: {formation_date!r}") from None
            else:
                parsed = formation_date
            return await self.calendars.generate_calendar(
                entity_ref, jurisdiction, parsed, horizon_years
            )

        return await self._respond("generate_calendar", call())

    async def extend_calendar(self, calendar_id: str, years: int = 1) -> Response:
        return await self._respond(
            "extend_calendar", self.calendars.extend_calendar(calendar_id, years)
        )

    async def monitor(self, calendar_id: str, now: date | datetime | None = None) -> Response:
        return await self._respond("monitor", self.compliance_monitor.monitor(calendar_id, now))
