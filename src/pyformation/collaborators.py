"""
External collaborators consumed by the formation core.

Design: Protocol-based (PEP 544) for structural typing
The core never imports a concrete document renderer or government API
client. Anything with matching async methods can be plugged in, which
keeps the engine testable with in-process fakes.

Every side-effecting method takes an ``idempotency_key``. A retried step
or automation passes the same key, so an implementation that received
the first request must return the original outcome instead of repeating
the action.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Protocol, runtime_checkable


class DocumentKind(Enum):
    """Typed artifacts the document generator can render."""

    ARTICLES_OF_ORGANIZATION = "articles_of_organization"
    EIN_APPLICATION = "ein_application"
    OPERATING_AGREEMENT = "operating_agreement"
    ANNUAL_REPORT = "annual_report"
    TAX_WORKPAPER = "tax_workpaper"
    LICENSE_RENEWAL = "license_renewal"
    AGENT_RENEWAL = "agent_renewal"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Artifact:
    """A rendered document, referenced by id and location."""

    document_id: str
    kind: DocumentKind
    location: str
    metadata: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class NameAvailability:
    available: bool
    alternatives: tuple[str, ...] = ()


@dataclass(frozen=True)
class FilingReceipt:
    filing_number: str
    filed_on: date
    effective_date: date
    fee_paid: float = 0.0


@dataclass(frozen=True)
class LicenseRequirement:
    name: str
    level: str
    authority: str
    required: bool = True
    estimated_cost: float = 0.0


@runtime_checkable
class DocumentGenerator(Protocol):
    """Renders a filing artifact from a typed data record plus jurisdiction."""

    async def render(
        self,
        kind: DocumentKind,
        record: Mapping[str, Any],
        jurisdiction: str,
        *,
        idempotency_key: str,
    ) -> Artifact: ...


@runtime_checkable
class RegistrationService(Protocol):
    """Jurisdiction registration office (name search, reservations, filings)."""

    async def check_name_availability(self, name: str, jurisdiction: str) -> NameAvailability: ...

    async def reserve_name(
        self, name: str, jurisdiction: str, *, idempotency_key: str
    ) -> Mapping[str, Any]: ...

    async def file_articles(
        self,
        articles: Artifact,
        jurisdiction: str,
        *,
        approved_by: str,
        idempotency_key: str,
    ) -> FilingReceipt: ...

    async def identify_licenses(
        self, business_purpose: str | None, jurisdiction: str
    ) -> list[LicenseRequirement]: ...


@runtime_checkable
class TaxService(Protocol):
    """National tax authority (EIN issuance)."""

    async def apply_for_ein(
        self,
        entity_name: str,
        application: Artifact,
        *,
        approved_by: str,
        idempotency_key: str,
    ) -> str: ...


@runtime_checkable
class AgentService(Protocol):
    """Registered-agent provider."""

    async def secure_agent(
        self, entity_name: str, jurisdiction: str, *, idempotency_key: str
    ) -> Mapping[str, Any]: ...


@dataclass
class Collaborators:
    """Bundle of external services handed to the engine and automation executor."""

    documents: DocumentGenerator
    registration: RegistrationService
    tax: TaxService
    agents: AgentService
