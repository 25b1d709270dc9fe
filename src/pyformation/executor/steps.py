"""
Step handlers for the formation workflow.

Each StepKind is routed to exactly one handler by an exhaustive match.
Handlers perform the step's side effect through the external
collaborators, always passing the step's idempotency key, and return a
StepOutcome. They never touch the stored instance: the engine commits
the outcome.

A handler either:
- returns StepOutcome(success=True, result=...)
- returns StepOutcome(success=False, ...) for a business rejection
  (the attempt commits ``failed`` with its result)
- raises ExternalServiceError when a collaborator fails or times out
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import TYPE_CHECKING, Any, TypeVar, assert_never

from pyformation.collaborators import Artifact, Collaborators, DocumentKind
from pyformation.errors import ExternalServiceError, FormationError, ValidationError
from pyformation.models import StepKind, WorkflowInstance

if TYPE_CHECKING:
    from pyformation.compliance.calendar import CalendarGenerator

T = TypeVar("T")

LLC_DESIGNATORS = ("llc", "l.l.c.", "limited liability company")


@dataclass
class StepContext:
    """Everything a handler may read; ``instance`` is a private snapshot."""

    instance: WorkflowInstance
    step_id: StepKind
    input: Mapping[str, Any]
    collaborators: Collaborators
    calendars: CalendarGenerator
    idempotency_key: str
    now: datetime
    timeout: float = 30.0

    @property
    def entity(self):
        return self.instance.entity

    def result_of(self, step_id: StepKind) -> dict[str, Any]:
        step = self.instance.step(step_id)
        return dict(step.result or {}) if step is not None else {}


@dataclass
class StepOutcome:
    success: bool
    result: dict[str, Any] = field(default_factory=dict)
    error: str | None = None


async def call_external(service: str, awaitable: Awaitable[T], timeout: float) -> T:
    """Await a collaborator call bounded by ``timeout``.

    Raises:
        ExternalServiceError: On timeout or any collaborator failure
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except TimeoutError as e:
        raise ExternalServiceError(service, f"timed out after {timeout}s") from e
    except FormationError:
        raise
    except Exception as e:
        raise ExternalServiceError(service, str(e) or type(e).__name__) from e


def validate_input(step_id: StepKind, input: Mapping[str, Any]) -> None:
    """Reject input that may not start a step; called before any mutation.

    Raises:
        ValidationError: Regulated submission without approval
    """
    if step_id is StepKind.ARTICLES_FILING and not input.get("approved_by"):
        raise ValidationError("articles_filing requires explicit approval (approved_by)")


def has_llc_designator(name: str) -> bool:
    lowered = name.lower()
    return any(designator in lowered for designator in LLC_DESIGNATORS)


def _artifact_result(artifact: Artifact) -> dict[str, Any]:
    return {
        "document_id": artifact.document_id,
        "document_kind": artifact.kind.value,
        "location": artifact.location,
    }


def _entity_record(ctx: StepContext) -> dict[str, Any]:
    entity = ctx.entity
    agent = ctx.result_of(StepKind.REGISTERED_AGENT)
    return {
        "business_name": entity.business_name,
        "jurisdiction": entity.jurisdiction,
        "members": list(entity.members),
        "business_purpose": entity.business_purpose,
        "principal_address": entity.principal_address,
        "registered_agent": agent.get("agent_name", entity.registered_agent),
        "registered_agent_address": agent.get("agent_address"),
        **ctx.input,
    }


async def _render(ctx: StepContext, kind: DocumentKind, record: dict[str, Any]) -> Artifact:
    return await call_external(
        "documents",
        ctx.collaborators.documents.render(
            kind, record, ctx.instance.jurisdiction, idempotency_key=ctx.idempotency_key
        ),
        ctx.timeout,
    )


async def _name_check(ctx: StepContext) -> StepOutcome:
    name = ctx.entity.business_name
    if not has_llc_designator(name):
        return StepOutcome(
            success=False,
            result={
                "validation_passed": False,
                "suggestions": [f"{name} LLC", f"{name} Limited Liability Company"],
            },
            error='Business name must include "LLC" or "Limited Liability Company"',
        )
    availability = await call_external(
        "registration",
        ctx.collaborators.registration.check_name_availability(name, ctx.instance.jurisdiction),
        ctx.timeout,
    )
    result = {
        "validation_passed": True,
        "available": availability.available,
        "business_name": name,
        "checked_at": ctx.now.isoformat(),
    }
    if not availability.available:
        result["alternatives"] = list(availability.alternatives)
        return StepOutcome(False, result, f"Name {name!r} is not available")
    return StepOutcome(True, result)


async def _name_reservation(ctx: StepContext) -> StepOutcome:
    receipt = await call_external(
        "registration",
        ctx.collaborators.registration.reserve_name(
            ctx.entity.business_name,
            ctx.instance.jurisdiction,
            idempotency_key=ctx.idempotency_key,
        ),
        ctx.timeout,
    )
    return StepOutcome(True, {"reserved": True, **receipt})


async def _registered_agent(ctx: StepContext) -> StepOutcome:
    supplied = ctx.input.get("agent_name") or ctx.entity.registered_agent
    if supplied:
        return StepOutcome(
            True,
            {
                "agent_secured": True,
                "agent_name": supplied,
                "agent_address": ctx.input.get("agent_address"),
                "provided_by_client": True,
            },
        )
    assignment = await call_external(
        "agents",
        ctx.collaborators.agents.secure_agent(
            ctx.entity.business_name,
            ctx.instance.jurisdiction,
            idempotency_key=ctx.idempotency_key,
        ),
        ctx.timeout,
    )
    return StepOutcome(True, {"agent_secured": True, "provided_by_client": False, **assignment})


async def _articles_prep(ctx: StepContext) -> StepOutcome:
    artifact = await _render(ctx, DocumentKind.ARTICLES_OF_ORGANIZATION, _entity_record(ctx))
    return StepOutcome(True, {**_artifact_result(artifact), "prepared_at": ctx.now.isoformat()})


async def _articles_filing(ctx: StepContext) -> StepOutcome:
    prepared = ctx.result_of(StepKind.ARTICLES_PREP)
    articles = Artifact(
        document_id=prepared.get("document_id", ""),
        kind=DocumentKind.ARTICLES_OF_ORGANIZATION,
        location=prepared.get("location", ""),
    )
    approved_by = str(ctx.input["approved_by"])
    receipt = await call_external(
        "registration",
        ctx.collaborators.registration.file_articles(
            articles,
            ctx.instance.jurisdiction,
            approved_by=approved_by,
            idempotency_key=ctx.idempotency_key,
        ),
        ctx.timeout,
    )
    return StepOutcome(
        True,
        {
            "filed": True,
            "filing_number": receipt.filing_number,
            "filed_on": receipt.filed_on,
            "effective_date": receipt.effective_date,
            "fee_paid": receipt.fee_paid,
            "approved_by": approved_by,
        },
    )


async def _ein_application(ctx: StepContext) -> StepOutcome:
    filing = ctx.result_of(StepKind.ARTICLES_FILING)
    record = {**_entity_record(ctx), "filing_number": filing.get("filing_number")}
    artifact = await _render(ctx, DocumentKind.EIN_APPLICATION, record)
    result = {**_artifact_result(artifact), "submitted": False}
    approved_by = ctx.input.get("approved_by")
    if approved_by:
        ein = await call_external(
            "tax",
            ctx.collaborators.tax.apply_for_ein(
                ctx.entity.business_name,
                artifact,
                approved_by=str(approved_by),
                idempotency_key=ctx.idempotency_key,
            ),
            ctx.timeout,
        )
        result.update(submitted=True, ein=ein, approved_by=str(approved_by))
    else:
        result["next_step"] = "Approve the prepared SS-4 to submit the EIN application"
    return StepOutcome(True, result)


async def _operating_agreement(ctx: StepContext) -> StepOutcome:
    artifact = await _render(ctx, DocumentKind.OPERATING_AGREEMENT, _entity_record(ctx))
    return StepOutcome(True, _artifact_result(artifact))


async def _business_licenses(ctx: StepContext) -> StepOutcome:
    licenses = await call_external(
        "registration",
        ctx.collaborators.registration.identify_licenses(
            ctx.entity.business_purpose, ctx.instance.jurisdiction
        ),
        ctx.timeout,
    )
    return StepOutcome(
        True,
        {
            "licenses": [
                {
                    "name": lic.name,
                    "level": lic.level,
                    "authority": lic.authority,
                    "required": lic.required,
                    "estimated_cost": lic.estimated_cost,
                }
                for lic in licenses
            ],
            "total_licenses": len(licenses),
            "estimated_cost": sum(lic.estimated_cost for lic in licenses),
        },
    )


async def _compliance_setup(ctx: StepContext) -> StepOutcome:
    today = ctx.now.date()
    formation_date: date = ctx.instance.formation_date(default=today)
    calendar = await ctx.calendars.generate_calendar(
        ctx.instance.id,
        ctx.instance.jurisdiction,
        formation_date,
        today=today,
        entity_name=ctx.instance.entity_name,
    )
    upcoming = calendar.next_due(today, limit=1)
    return StepOutcome(
        True,
        {
            "calendar_id": calendar.id,
            "formation_date": formation_date,
            "total_events": len(calendar.events),
            "next_due_date": upcoming[0].due_date if upcoming else None,
        },
    )


async def run_step(ctx: StepContext) -> StepOutcome:
    """Dispatch to the handler for ``ctx.step_id``."""
    match ctx.step_id:
        case StepKind.NAME_CHECK:
            return await _name_check(ctx)
        case StepKind.NAME_RESERVATION:
            return await _name_reservation(ctx)
        case StepKind.REGISTERED_AGENT:
            return await _registered_agent(ctx)
        case StepKind.ARTICLES_PREP:
            return await _articles_prep(ctx)
        case StepKind.ARTICLES_FILING:
            return await _articles_filing(ctx)
        case StepKind.EIN_APPLICATION:
            return await _ein_application(ctx)
        case StepKind.OPERATING_AGREEMENT:
            return await _operating_agreement(ctx)
        case StepKind.BUSINESS_LICENSES:
            return await _business_licenses(ctx)
        case StepKind.COMPLIANCE_SETUP:
            return await _compliance_setup(ctx)
        case _:
            assert_never(ctx.step_id)
