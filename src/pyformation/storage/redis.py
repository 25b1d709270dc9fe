"""Redis-based formation store.

Provides a Redis backend so several service processes (API nodes, the
compliance sweeper) can share workflow and calendar state across machines.

Data Structures:
- formation:workflow:{id} (HASH): version, status, pickled instance
- formation:workflows (SET): all workflow ids
- formation:calendar:{id} (HASH): version, entity_ref, jurisdiction, pickled calendar
- formation:calendars (SET): all calendar ids
- formation:calendar_index:{entity_ref}:{jurisdiction} (STRING): calendar id

Key Features:
- Optimistic concurrency: WATCH the record key, compare its version,
  then write inside MULTI/EXEC; a WatchError means another writer won
- Connection pooling: redis-py connection pool for concurrent access

Design: Adapter Pattern
Implements FormationStore for Redis.
"""

from __future__ import annotations

from datetime import UTC, datetime

import redis.asyncio as redis
from redis.exceptions import WatchError

from pyformation.models import ComplianceCalendar, WorkflowInstance
from pyformation.storage.base import (
    FormationStore,
    StorageError,
    VersionConflict,
    dump_record,
    load_record,
)


class RedisFormationStore(FormationStore):
    """Redis formation store using connection pooling.

    Usage:
        store = RedisFormationStore("redis://localhost:6379")
        await store.connect()
        await store.insert_workflow(instance)
    """

    def __init__(self, redis_url: str = "redis://localhost:6379", max_connections: int = 16):
        self._redis_url = redis_url
        self._max_connections = max_connections
        self._redis: redis.Redis | None = None

    def __repr__(self) -> str:
        return f"RedisFormationStore({self._redis_url})"

    async def connect(self) -> None:
        """Establish Redis connection pool."""
        self._redis = redis.from_url(
            self._redis_url,
            decode_responses=False,  # Records are binary pickles
            max_connections=self._max_connections,
        )

    async def close(self) -> None:
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    def _check_connected(self) -> None:
        if self._redis is None:
            raise StorageError("Not connected. Call connect() first.")

    @staticmethod
    def _workflow_key(instance_id: str) -> str:
        return f"formation:workflow:{instance_id}"

    @staticmethod
    def _calendar_key(calendar_id: str) -> str:
        return f"formation:calendar:{calendar_id}"

    @staticmethod
    def _index_key(entity_ref: str, jurisdiction: str) -> str:
        return f"formation:calendar_index:{entity_ref}:{jurisdiction}"

    async def _insert(self, key: str, set_key: str, record, fields: dict[str, str]) -> None:
        self._check_connected()
        now_ts = int(datetime.now(UTC).timestamp())
        async with self._redis.pipeline(transaction=True) as pipe:
            try:
                await pipe.watch(key)
                if await pipe.exists(key):
                    raise StorageError(f"Record already exists: {record.id}")
                record.version = 1
                pipe.multi()
                await pipe.hset(
                    key,
                    mapping={
                        "version": "1",
                        "data": dump_record(record),
                        "updated_at": now_ts,
                        **fields,
                    },
                )
                await pipe.sadd(set_key, record.id)
                await pipe.execute()
            except WatchError as e:
                record.version = 0
                raise StorageError(f"Record already exists: {record.id}") from e

    async def _save(self, key: str, record, fields: dict[str, str]) -> None:
        self._check_connected()
        expected = record.version
        now_ts = int(datetime.now(UTC).timestamp())
        async with self._redis.pipeline(transaction=True) as pipe:
            try:
                await pipe.watch(key)
                raw = await pipe.hget(key, "version")
                actual = int(raw) if raw is not None else None
                if actual != expected:
                    raise VersionConflict(record.id, expected, actual)
                record.version = expected + 1
                pipe.multi()
                await pipe.hset(
                    key,
                    mapping={
                        "version": str(record.version),
                        "data": dump_record(record),
                        "updated_at": now_ts,
                        **fields,
                    },
                )
                await pipe.execute()
            except WatchError as e:
                record.version = expected
                raise VersionConflict(record.id, expected, None) from e

    async def _load(self, key: str):
        self._check_connected()
        data = await self._redis.hget(key, "data")
        return load_record(data) if data is not None else None

    async def _members(self, set_key: str) -> list[str]:
        self._check_connected()
        members = await self._redis.smembers(set_key)
        return sorted(m.decode() for m in members)

    # ========================================================================
    # Workflow instances
    # ========================================================================

    async def insert_workflow(self, instance: WorkflowInstance) -> None:
        await self._insert(
            self._workflow_key(instance.id),
            "formation:workflows",
            instance,
            {"status": instance.status.value},
        )

    async def get_workflow(self, instance_id: str) -> WorkflowInstance | None:
        return await self._load(self._workflow_key(instance_id))

    async def save_workflow(self, instance: WorkflowInstance) -> None:
        await self._save(
            self._workflow_key(instance.id), instance, {"status": instance.status.value}
        )

    async def list_workflow_ids(self) -> list[str]:
        return await self._members("formation:workflows")

    # ========================================================================
    # Compliance calendars
    # ========================================================================

    async def insert_calendar(self, calendar: ComplianceCalendar) -> None:
        await self._insert(
            self._calendar_key(calendar.id),
            "formation:calendars",
            calendar,
            {"entity_ref": calendar.entity_ref, "jurisdiction": calendar.jurisdiction},
        )
        await self._redis.set(
            self._index_key(calendar.entity_ref, calendar.jurisdiction), calendar.id
        )

    async def get_calendar(self, calendar_id: str) -> ComplianceCalendar | None:
        return await self._load(self._calendar_key(calendar_id))

    async def save_calendar(self, calendar: ComplianceCalendar) -> None:
        await self._save(self._calendar_key(calendar.id), calendar, {})

    async def list_calendar_ids(self) -> list[str]:
        return await self._members("formation:calendars")

    async def find_calendar(self, entity_ref: str, jurisdiction: str) -> ComplianceCalendar | None:
        self._check_connected()
        calendar_id = await self._redis.get(self._index_key(entity_ref, jurisdiction))
        if calendar_id is None:
            return None
        return await self.get_calendar(calendar_id.decode())

    async def reset(self) -> None:
        """Delete all formation:* keys; other Redis data is untouched."""
        self._check_connected()

        keys = []
        async for key in self._redis.scan_iter(match="formation:*"):
            keys.append(key)

        if keys:
            await self._redis.delete(*keys)
