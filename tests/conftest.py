"""
Pytest configuration and fixtures for pyformation tests.

Provides in-process fakes for the external collaborators, a controllable
clock, storage backends, and hypothesis strategies.
"""

import asyncio
import shutil
import tempfile
from collections.abc import AsyncGenerator
from datetime import UTC, date, datetime, timedelta
from pathlib import Path

import pytest
from hypothesis import strategies as st

from pyformation.collaborators import (
    Artifact,
    Collaborators,
    DocumentKind,
    FilingReceipt,
    LicenseRequirement,
    NameAvailability,
)
from pyformation.errors import ExternalServiceError
from pyformation.models import StepKind
from pyformation.service import FormationService
from pyformation.storage import InMemoryFormationStore, SqliteFormationStore


class FixedClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


# ==============================================================================
# Fake collaborators
# ==============================================================================


class FakeDocuments:
    """Document generator that remembers what it rendered per idempotency key."""

    def __init__(self):
        self.calls: list[tuple[DocumentKind, str]] = []
        self.rendered: dict[tuple[DocumentKind, str], Artifact] = {}
        self.fail_with: Exception | None = None
        self.delay = 0.0

    async def render(self, kind, record, jurisdiction, *, idempotency_key):
        self.calls.append((kind, idempotency_key))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with
        key = (kind, idempotency_key)
        if key not in self.rendered:
            self.rendered[key] = Artifact(
                document_id=f"doc-{kind.value}-{len(self.rendered) + 1}",
                kind=kind,
                location=f"memory://{jurisdiction}/{kind.value}/{idempotency_key[:8]}",
                metadata=dict(record),
            )
        return self.rendered[key]


class FakeRegistration:
    def __init__(self, effective_date: date = date(2024, 3, 10)):
        self.effective_date = effective_date
        self.taken_names: set[str] = set()
        self.name_checks = 0
        self.filings: dict[str, FilingReceipt] = {}
        self.filing_calls = 0
        self.fail_filing: Exception | None = None
        self.delay = 0.0

    async def check_name_availability(self, name, jurisdiction):
        self.name_checks += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if name in self.taken_names:
            return NameAvailability(False, (f"{name} Holdings",))
        return NameAvailability(True)

    async def reserve_name(self, name, jurisdiction, *, idempotency_key):
        return {"reservation_id": f"NR-{jurisdiction}-{idempotency_key[:6]}", "cost": 25}

    async def file_articles(self, articles, jurisdiction, *, approved_by, idempotency_key):
        self.filing_calls += 1
        if self.fail_filing is not None:
            raise self.fail_filing
        if idempotency_key not in self.filings:
            self.filings[idempotency_key] = FilingReceipt(
                filing_number=f"{jurisdiction}-LLC-{len(self.filings) + 1:04d}",
                filed_on=self.effective_date,
                effective_date=self.effective_date,
                fee_paid=100.0,
            )
        return self.filings[idempotency_key]

    async def identify_licenses(self, business_purpose, jurisdiction):
        return [
            LicenseRequirement("General Business License", "local", "City", True, 50.0),
            LicenseRequirement("State Business Registration", "state", jurisdiction, True, 25.0),
        ]


class FakeTax:
    def __init__(self):
        self.applications: dict[str, str] = {}

    async def apply_for_ein(self, entity_name, application, *, approved_by, idempotency_key):
        return self.applications.setdefault(idempotency_key, "12-3456789")


class FakeAgents:
    def __init__(self):
        self.calls = 0
        self.delay = 0.0
        self.fail_with: Exception | None = None

    async def secure_agent(self, entity_name, jurisdiction, *, idempotency_key):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with
        return {
            "agent_name": "CloudEsq Registered Agent Services",
            "agent_address": f"123 Main St, {jurisdiction}",
        }


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2024, 3, 10, 9, 0, tzinfo=UTC))


@pytest.fixture
def documents() -> FakeDocuments:
    return FakeDocuments()


@pytest.fixture
def registration() -> FakeRegistration:
    return FakeRegistration()


@pytest.fixture
def agents() -> FakeAgents:
    return FakeAgents()


@pytest.fixture
def collaborators(documents, registration, agents) -> Collaborators:
    return Collaborators(
        documents=documents, registration=registration, tax=FakeTax(), agents=agents
    )


# ==============================================================================
# Storage
# ==============================================================================


@pytest.fixture
async def in_memory_store() -> AsyncGenerator[InMemoryFormationStore, None]:
    """In-memory store with automatic cleanup."""
    store = InMemoryFormationStore()
    yield store
    await store.reset()


@pytest.fixture
async def sqlite_memory_store() -> AsyncGenerator[SqliteFormationStore, None]:
    store = SqliteFormationStore(":memory:")
    await store.connect()
    yield store
    await store.close()


@pytest.fixture
def temp_db_path():
    """Temporary database file path with automatic cleanup."""
    tmpdir = Path(tempfile.mkdtemp())
    db_path = tmpdir / "formation.db"
    yield db_path
    shutil.rmtree(tmpdir, ignore_errors=True)


@pytest.fixture(params=["memory", "sqlite"])
async def any_store(request):
    """Runs a test once per local backend."""
    if request.param == "memory":
        store = InMemoryFormationStore()
    else:
        store = SqliteFormationStore(":memory:")
        await store.connect()
    yield store
    await store.close()


@pytest.fixture
def service(in_memory_store, collaborators, clock) -> FormationService:
    return FormationService(in_memory_store, collaborators, clock=clock)


WYOMING_ENTITY = {
    "businessName": "Acme Ventures LLC",
    "state": "WY",
    "members": ["Ada Lovelace"],
}

ILLINOIS_ENTITY = {
    "businessName": "Prairie Tools LLC",
    "state": "IL",
    "members": ["Grace Hopper"],
    "businessPurpose": "Hardware retail",
}


def external_failure(service: str = "registration") -> ExternalServiceError:
    return ExternalServiceError(service, "upstream unavailable")


# ==============================================================================
# Hypothesis strategies
# ==============================================================================

STEP_KINDS = list(StepKind)


@st.composite
def step_dag_strategy(draw):
    """Random dependency DAG over the step kinds.

    Returns ``{step: (dependencies...)}``; edges only point to earlier
    steps of a random ordering, so the graph is acyclic.
    """
    order = draw(st.permutations(STEP_KINDS))
    dag = {}
    for index, kind in enumerate(order):
        earlier = order[:index]
        deps = draw(st.lists(st.sampled_from(earlier), unique=True, max_size=3)) if earlier else []
        dag[kind] = tuple(deps)
    return dag


pytest.step_dag_strategy = step_dag_strategy
