"""Deterministic identifiers and idempotency keys.

Identifiers that must survive regeneration (calendars, events,
idempotency keys) are xxh3-128 digests of their semantic key, so the
same inputs always yield the same id and distinct keys do not collide
in practice. Workflow ids only need to be unique and time ordered.
"""

from __future__ import annotations

import xxhash
from uuid_extensions import uuid7

_SEP = "\x1f"


def _digest(*parts: object) -> str:
    key = _SEP.join(str(part) for part in parts)
    return xxhash.xxh3_128(key.encode("utf-8")).hexdigest()


def new_workflow_id() -> str:
    return f"wf-{uuid7()}"


def calendar_id(entity_ref: str, jurisdiction: str) -> str:
    return f"cal-{_digest('calendar', entity_ref, jurisdiction)}"


def event_id(entity_ref: str, rule_key: str, year: int, period: str) -> str:
    """Id of one obligation occurrence: ``(entity, rule, year, period)``."""
    return f"evt-{year}{period}-{_digest('event', entity_ref, rule_key, year, period)}"


def step_idempotency_key(instance_id: str, step_id: object) -> str:
    """Key passed to collaborators so a retried step never duplicates its side effect."""
    return _digest("step", instance_id, step_id)


def automation_idempotency_key(calendar_id: str, event_id: str) -> str:
    return _digest("automation", calendar_id, event_id)
