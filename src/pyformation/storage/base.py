"""
FormationStore - Abstract repository interface for durable state.

Design Pattern: Adapter Pattern
FormationStore defines the target interface that all storage adapters
implement. Different backends (SQLite, Redis, Memory) adapt to it.

Design Principle: Dependency Inversion
The orchestrator, engine and monitor depend on this abstraction, not on
concrete stores, so tests run against InMemoryFormationStore and a
deployment swaps in SqliteFormationStore or RedisFormationStore.

There is one durable record per WorkflowInstance and one per
ComplianceCalendar, keyed by id. Records carry a ``version``; every save
is a compare-and-swap on it, which makes reservations and commits safe
even when several processes share one store.
"""

from __future__ import annotations

import pickle
from abc import ABC, abstractmethod
from typing import Any

from pyformation.models import ComplianceCalendar, WorkflowInstance


class StorageError(Exception):
    """Storage operation failed."""

    pass


class VersionConflict(StorageError):
    """A save lost the compare-and-swap race on the record version."""

    def __init__(self, record_id: str, expected: int, actual: int | None):
        super().__init__(
            f"Version conflict on {record_id}: expected {expected}, found {actual}"
        )
        self.record_id = record_id
        self.expected = expected
        self.actual = actual


def dump_record(record: Any) -> bytes:
    """Serialize a full record for storage."""
    return pickle.dumps(record)


def load_record(data: bytes) -> Any:
    return pickle.loads(data)


class FormationStore(ABC):
    """
    Abstract storage interface for workflow instances and calendars.

    Contract shared by all adapters:
    - ``get_*`` returns an independent copy, or None when the id is unknown
    - ``insert_*`` stores a new record at version 1 (StorageError if it exists)
    - ``save_*`` succeeds only if the stored version equals ``record.version``,
      then bumps it on both the stored record and the passed-in object;
      otherwise raises VersionConflict
    """

    # ========================================================================
    # Workflow instances
    # ========================================================================

    @abstractmethod
    async def insert_workflow(self, instance: WorkflowInstance) -> None:
        """Store a newly created workflow instance.

        Raises:
            StorageError: If a record with the same id exists
        """
        pass

    @abstractmethod
    async def get_workflow(self, instance_id: str) -> WorkflowInstance | None:
        pass

    @abstractmethod
    async def save_workflow(self, instance: WorkflowInstance) -> None:
        """Compare-and-swap the stored instance.

        Raises:
            VersionConflict: If the stored version moved on
        """
        pass

    @abstractmethod
    async def list_workflow_ids(self) -> list[str]:
        pass

    # ========================================================================
    # Compliance calendars
    # ========================================================================

    @abstractmethod
    async def insert_calendar(self, calendar: ComplianceCalendar) -> None:
        pass

    @abstractmethod
    async def get_calendar(self, calendar_id: str) -> ComplianceCalendar | None:
        pass

    @abstractmethod
    async def save_calendar(self, calendar: ComplianceCalendar) -> None:
        pass

    @abstractmethod
    async def list_calendar_ids(self) -> list[str]:
        pass

    async def find_calendar(self, entity_ref: str, jurisdiction: str) -> ComplianceCalendar | None:
        """Find the calendar of an entity in a jurisdiction.

        Default implementation scans all calendars; backends with an index
        should override.
        """
        for calendar_id in await self.list_calendar_ids():
            calendar = await self.get_calendar(calendar_id)
            if (
                calendar is not None
                and calendar.entity_ref == entity_ref
                and calendar.jurisdiction == jurisdiction
            ):
                return calendar
        return None

    # ========================================================================
    # Utility
    # ========================================================================

    @abstractmethod
    async def reset(self) -> None:
        """Clear all data (testing/demos only)."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close connections and release resources."""
        pass
