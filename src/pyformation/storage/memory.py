"""In-memory storage implementation for pyformation.

Design Pattern: Adapter Pattern
InMemoryFormationStore adapts in-memory dictionaries to FormationStore.

Records are kept pickled, so every read hands out an independent copy
and callers can never mutate stored state behind the store's back.
Instance is immediately usable after __init__.
"""

from __future__ import annotations

import asyncio

from pyformation.models import ComplianceCalendar, WorkflowInstance
from pyformation.storage.base import (
    FormationStore,
    StorageError,
    VersionConflict,
    dump_record,
    load_record,
)


class InMemoryFormationStore(FormationStore):
    """In-memory storage for tests and single-process use.

    Can be substituted for SqliteFormationStore without changing client code.

    Usage:
        store = InMemoryFormationStore()
        await store.insert_workflow(instance)
    """

    def __init__(self):
        # Storage: {record_id: (version, pickled record)}
        self._workflows: dict[str, tuple[int, bytes]] = {}
        self._calendars: dict[str, tuple[int, bytes]] = {}

        # Index: {(entity_ref, jurisdiction): calendar_id}
        self._calendar_index: dict[tuple[str, str], str] = {}

        self._lock = asyncio.Lock()

    def __repr__(self) -> str:
        return "InMemoryFormationStore"

    @staticmethod
    def _insert(table: dict[str, tuple[int, bytes]], record) -> None:
        if record.id in table:
            raise StorageError(f"Record already exists: {record.id}")
        record.version = 1
        table[record.id] = (1, dump_record(record))

    @staticmethod
    def _save(table: dict[str, tuple[int, bytes]], record) -> None:
        current = table.get(record.id)
        actual = current[0] if current else None
        if actual != record.version:
            raise VersionConflict(record.id, record.version, actual)
        record.version += 1
        table[record.id] = (record.version, dump_record(record))

    async def insert_workflow(self, instance: WorkflowInstance) -> None:
        async with self._lock:
            self._insert(self._workflows, instance)

    async def get_workflow(self, instance_id: str) -> WorkflowInstance | None:
        async with self._lock:
            entry = self._workflows.get(instance_id)
            return load_record(entry[1]) if entry else None

    async def save_workflow(self, instance: WorkflowInstance) -> None:
        async with self._lock:
            self._save(self._workflows, instance)

    async def list_workflow_ids(self) -> list[str]:
        async with self._lock:
            return list(self._workflows)

    async def insert_calendar(self, calendar: ComplianceCalendar) -> None:
        async with self._lock:
            self._insert(self._calendars, calendar)
            self._calendar_index[(calendar.entity_ref, calendar.jurisdiction)] = calendar.id

    async def get_calendar(self, calendar_id: str) -> ComplianceCalendar | None:
        async with self._lock:
            entry = self._calendars.get(calendar_id)
            return load_record(entry[1]) if entry else None

    async def save_calendar(self, calendar: ComplianceCalendar) -> None:
        async with self._lock:
            self._save(self._calendars, calendar)

    async def list_calendar_ids(self) -> list[str]:
        async with self._lock:
            return list(self._calendars)

    async def find_calendar(self, entity_ref: str, jurisdiction: str) -> ComplianceCalendar | None:
        async with self._lock:
            calendar_id = self._calendar_index.get((entity_ref, jurisdiction))
            entry = self._calendars.get(calendar_id) if calendar_id else None
            return load_record(entry[1]) if entry else None

    async def reset(self) -> None:
        async with self._lock:
            self._workflows.clear()
            self._calendars.clear()
            self._calendar_index.clear()

    async def close(self) -> None:
        pass
