"""SQLite-backed storage implementation for pyformation.

Design Pattern: Adapter Pattern
SqliteFormationStore adapts a SQLite database to the FormationStore interface.

Implementation details:
- aiosqlite for async operations
- WAL mode for concurrent reads
- Optimistic concurrency: ``UPDATE ... WHERE id = ? AND version = ?``,
  a zero rowcount means another writer won
- Index on (entity_ref, jurisdiction) for calendar lookup
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from pathlib import Path

import aiosqlite

from pyformation.models import ComplianceCalendar, WorkflowInstance
from pyformation.storage.base import (
    FormationStore,
    StorageError,
    VersionConflict,
    dump_record,
    load_record,
)


class SqliteFormationStore(FormationStore):
    """SQLite-backed durable storage.

    After __init__, the instance is not yet usable. Call connect() first.

    Usage:
        store = SqliteFormationStore("formation.db")
        await store.connect()
        try:
            await store.insert_workflow(instance)
        finally:
            await store.close()
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._connection: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()  # Serialize access to shared connection

    @classmethod
    async def in_memory(cls) -> SqliteFormationStore:
        """Create a connected in-memory store for testing."""
        instance = cls(":memory:")
        await instance.connect()
        return instance

    def __repr__(self) -> str:
        if self.db_path == ":memory:":
            return "SqliteFormationStore(in-memory)"
        return f"SqliteFormationStore({self.db_path})"

    async def connect(self) -> None:
        """Open database connection and initialize schema."""
        if self._connection is not None:
            return

        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self._connection = await aiosqlite.connect(
            self.db_path,
            timeout=5.0,
            isolation_level=None,  # Autocommit mode
        )

        # In-memory databases return "memory" and don't support WAL
        cursor = await self._connection.execute("PRAGMA journal_mode=WAL")
        result = await cursor.fetchone()
        await cursor.close()
        if result:
            mode = result[0].upper()
            if mode not in ("WAL", "MEMORY"):
                raise StorageError(f"Failed to enable WAL mode, got: {result[0]}")

        await self._connection.execute("PRAGMA synchronous=NORMAL")
        await self._connection.execute("PRAGMA busy_timeout=5000")

        await self._create_schema()
        await self._connection.commit()

    async def _create_schema(self) -> None:
        await self._connection.execute("""
            CREATE TABLE IF NOT EXISTS workflows (
                id TEXT PRIMARY KEY,
                jurisdiction TEXT NOT NULL,
                status TEXT NOT NULL,
                version INTEGER NOT NULL,
                data BLOB NOT NULL,
                updated_at INTEGER NOT NULL
            )
        """)

        await self._connection.execute("""
            CREATE TABLE IF NOT EXISTS calendars (
                id TEXT PRIMARY KEY,
                entity_ref TEXT NOT NULL,
                jurisdiction TEXT NOT NULL,
                version INTEGER NOT NULL,
                data BLOB NOT NULL,
                updated_at INTEGER NOT NULL
            )
        """)

        await self._connection.execute("""
            CREATE INDEX IF NOT EXISTS idx_calendars_entity
            ON calendars(entity_ref, jurisdiction)
        """)

    async def close(self) -> None:
        if self._connection:
            await self._connection.close()
            self._connection = None

    def _check_connected(self) -> None:
        if self._connection is None:
            raise StorageError("Not connected. Call connect() first.")

    @staticmethod
    def _now_millis() -> int:
        return int(datetime.now(UTC).timestamp() * 1000)

    async def _current_version(self, table: str, record_id: str) -> int | None:
        cursor = await self._connection.execute(
            f"SELECT version FROM {table} WHERE id = ?", (record_id,)
        )
        row = await cursor.fetchone()
        await cursor.close()
        return row[0] if row else None

    async def _fetch(self, table: str, record_id: str):
        self._check_connected()
        async with self._lock:
            cursor = await self._connection.execute(
                f"SELECT data FROM {table} WHERE id = ?", (record_id,)
            )
            row = await cursor.fetchone()
            await cursor.close()
        return load_record(row[0]) if row else None

    async def _list_ids(self, table: str) -> list[str]:
        self._check_connected()
        async with self._lock:
            cursor = await self._connection.execute(f"SELECT id FROM {table} ORDER BY id")
            rows = await cursor.fetchall()
            await cursor.close()
        return [row[0] for row in rows]

    # ========================================================================
    # Workflow instances
    # ========================================================================

    async def insert_workflow(self, instance: WorkflowInstance) -> None:
        self._check_connected()
        instance.version = 1
        async with self._lock:
            try:
                await self._connection.execute(
                    """
                    INSERT INTO workflows (id, jurisdiction, status, version, data, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        instance.id,
                        instance.jurisdiction,
                        instance.status.value,
                        instance.version,
                        dump_record(instance),
                        self._now_millis(),
                    ),
                )
            except aiosqlite.IntegrityError as e:
                instance.version = 0
                raise StorageError(f"Record already exists: {instance.id}") from e

    async def get_workflow(self, instance_id: str) -> WorkflowInstance | None:
        return await self._fetch("workflows", instance_id)

    async def save_workflow(self, instance: WorkflowInstance) -> None:
        self._check_connected()
        expected = instance.version
        instance.version = expected + 1
        async with self._lock:
            cursor = await self._connection.execute(
                """
                UPDATE workflows
                SET status = ?, version = ?, data = ?, updated_at = ?
                WHERE id = ? AND version = ?
                """,
                (
                    instance.status.value,
                    instance.version,
                    dump_record(instance),
                    self._now_millis(),
                    instance.id,
                    expected,
                ),
            )
            updated = cursor.rowcount
            await cursor.close()
            if updated == 0:
                instance.version = expected
                actual = await self._current_version("workflows", instance.id)
                raise VersionConflict(instance.id, expected, actual)

    async def list_workflow_ids(self) -> list[str]:
        return await self._list_ids("workflows")

    # ========================================================================
    # Compliance calendars
    # ========================================================================

    async def insert_calendar(self, calendar: ComplianceCalendar) -> None:
        self._check_connected()
        calendar.version = 1
        async with self._lock:
            try:
                await self._connection.execute(
                    """
                    INSERT INTO calendars (id, entity_ref, jurisdiction, version, data, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        calendar.id,
                        calendar.entity_ref,
                        calendar.jurisdiction,
                        calendar.version,
                        dump_record(calendar),
                        self._now_millis(),
                    ),
                )
            except aiosqlite.IntegrityError as e:
                calendar.version = 0
                raise StorageError(f"Record already exists: {calendar.id}") from e

    async def get_calendar(self, calendar_id: str) -> ComplianceCalendar | None:
        return await self._fetch("calendars", calendar_id)

    async def save_calendar(self, calendar: ComplianceCalendar) -> None:
        self._check_connected()
        expected = calendar.version
        calendar.version = expected + 1
        async with self._lock:
            cursor = await self._connection.execute(
                """
                UPDATE calendars
                SET version = ?, data = ?, updated_at = ?
                WHERE id = ? AND version = ?
                """,
                (
                    calendar.version,
                    dump_record(calendar),
                    self._now_millis(),
                    calendar.id,
                    expected,
                ),
            )
            updated = cursor.rowcount
            await cursor.close()
            if updated == 0:
                calendar.version = expected
                actual = await self._current_version("calendars", calendar.id)
                raise VersionConflict(calendar.id, expected, actual)

    async def list_calendar_ids(self) -> list[str]:
        return await self._list_ids("calendars")

    async def find_calendar(self, entity_ref: str, jurisdiction: str) -> ComplianceCalendar | None:
        self._check_connected()
        async with self._lock:
            cursor = await self._connection.execute(
                "SELECT data FROM calendars WHERE entity_ref = ? AND jurisdiction = ?",
                (entity_ref, jurisdiction),
            )
            row = await cursor.fetchone()
            await cursor.close()
        return load_record(row[0]) if row else None

    async def reset(self) -> None:
        self._check_connected()
        async with self._lock:
            await self._connection.execute("DELETE FROM workflows")
            await self._connection.execute("DELETE FROM calendars")
