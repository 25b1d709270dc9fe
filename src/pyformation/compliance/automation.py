"""
Automated preparation of compliance obligations.

Each obligation type prepares its artifact through the document
generator and earns a fixed service fee. Preparation never submits
anything to a regulator: the outcome is always "prepared, pending
approval", and the final filing needs an explicit approval step outside
this module.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any, assert_never

from pyformation.collaborators import DocumentGenerator, DocumentKind
from pyformation.ids import automation_idempotency_key
from pyformation.jurisdictions import SERVICE_FEES
from pyformation.models import ActionResult, ComplianceEvent, ObligationType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Preparation:
    document: DocumentKind
    action: str
    next_steps: tuple[str, ...]


def _preparation_for(event: ComplianceEvent) -> _Preparation:
    match event.type:
        case ObligationType.ANNUAL_REPORT:
            return _Preparation(
                DocumentKind.ANNUAL_REPORT,
                "annual_report_prepared",
                (
                    "Review the prepared annual report",
                    "Approve submission to the Secretary of State",
                ),
            )
        case ObligationType.TAX_FILING:
            return _Preparation(
                DocumentKind.TAX_WORKPAPER,
                "tax_filing_prepared",
                (
                    "Provide period financial data",
                    f"Review {event.details.get('tax_type', 'tax')} workpaper",
                    "Approve filing and payment",
                ),
            )
        case ObligationType.LICENSE_RENEWAL:
            return _Preparation(
                DocumentKind.LICENSE_RENEWAL,
                "license_renewal_prepared",
                (
                    "Confirm the business activity is unchanged",
                    "Approve renewal application and fee",
                ),
            )
        case ObligationType.REGISTERED_AGENT_RENEWAL:
            return _Preparation(
                DocumentKind.AGENT_RENEWAL,
                "registered_agent_renewal_prepared",
                ("Confirm the registered office address", "Approve renewal invoice"),
            )
        case _:
            assert_never(event.type)


class AutomationExecutor:
    """Prepares one actionable event.

    ``execute`` never raises for collaborator failures: they are caught,
    logged with the event id, and returned as an unsuccessful ActionResult
    so the caller leaves the event scheduled for the next pass.
    """

    def __init__(
        self,
        documents: DocumentGenerator,
        *,
        timeout: float = 30.0,
        fees: Mapping[ObligationType, Decimal] | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self._documents = documents
        self._timeout = timeout
        self._fees = dict(SERVICE_FEES if fees is None else fees)
        self._clock = clock or (lambda: datetime.now(UTC))

    async def execute(self, event: ComplianceEvent, context: Mapping[str, Any]) -> ActionResult:
        """Prepare ``event`` for the entity described by ``context``.

        ``context`` carries ``calendar_id``, ``entity_ref``, ``entity_name``
        and ``jurisdiction``.
        """
        preparation = _preparation_for(event)
        record = {
            "event_id": event.id,
            "title": event.title,
            "due_date": event.due_date.isoformat(),
            "year": event.year,
            "period": event.period,
            "cost": str(event.cost),
            **event.details,
            **context,
        }
        key = automation_idempotency_key(context.get("calendar_id", ""), event.id)

        try:
            artifact = await asyncio.wait_for(
                self._documents.render(
                    preparation.document,
                    record,
                    context.get("jurisdiction", ""),
                    idempotency_key=key,
                ),
                timeout=self._timeout,
            )
        except TimeoutError:
            logger.warning(f"Automation for event {event.id} timed out after {self._timeout}s")
            return ActionResult(
                event_id=event.id,
                event_type=event.type,
                success=False,
                error=f"document generation timed out after {self._timeout}s",
                executed_at=self._clock(),
            )
        except Exception as e:
            logger.warning(f"Automation for event {event.id} failed: {e}")
            return ActionResult(
                event_id=event.id,
                event_type=event.type,
                success=False,
                error=str(e),
                executed_at=self._clock(),
            )

        logger.info(f"Prepared {event.type} for event {event.id}, pending approval")
        return ActionResult(
            event_id=event.id,
            event_type=event.type,
            success=True,
            revenue=self._fees.get(event.type, Decimal("0")),
            artifacts=[artifact.document_id],
            action=preparation.action,
            next_steps=list(preparation.next_steps),
            executed_at=self._clock(),
        )
