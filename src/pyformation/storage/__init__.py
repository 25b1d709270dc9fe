"""Storage backends for durable workflow and calendar state.

Provides multiple storage implementations behind a common interface:
    - FormationStore: Abstract interface
    - SqliteFormationStore: SQLite-backed storage
    - RedisFormationStore: Redis-backed distributed storage
    - InMemoryFormationStore: In-memory storage for testing

Design: Adapter Pattern + Dependency Inversion (SOLID)
    All storage implementations adapt to the FormationStore interface,
    so clients can swap backends without code changes.
"""

from pyformation.storage.base import FormationStore, StorageError, VersionConflict
from pyformation.storage.memory import InMemoryFormationStore

# Backends with optional network/disk drivers load on first access.


def __getattr__(name: str):
    """Lazy import of driver-backed storage implementations."""
    if name == "RedisFormationStore":
        from pyformation.storage.redis import RedisFormationStore

        return RedisFormationStore
    elif name == "SqliteFormationStore":
        from pyformation.storage.sqlite import SqliteFormationStore

        return SqliteFormationStore
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "FormationStore",
    "StorageError",
    "VersionConflict",
    "InMemoryFormationStore",
    "SqliteFormationStore",
    "RedisFormationStore",
]
