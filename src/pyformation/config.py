"""
Environment-driven configuration.

Settings are read once at startup with ``Settings.from_env()``:

    $ export FORMATION_STORE_URL=sqlite:///var/lib/formation/state.db
    $ export FORMATION_HORIZON_YEARS=3
    settings = Settings.from_env()
    store = await open_store(settings)
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from urllib.parse import urlparse

from pyformation.errors import ValidationError
from pyformation.storage.base import FormationStore
from pyformation.storage.memory import InMemoryFormationStore

logger = logging.getLogger(__name__)

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _int(env: Mapping[str, str], name: str, default: int, minimum: int = 0) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise ValidationError(f"{name} must be >= {minimum}, got {value}")
    return value


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValidationError(f"{name} must be a number, got {raw!r}") from None
    if value <= 0:
        raise ValidationError(f"{name} must be positive, got {value}")
    return value


@dataclass(frozen=True)
class Settings:
    store_url: str = "memory://"
    horizon_years: int = 3
    upcoming_days: int = 30
    external_timeout: float = 30.0
    """Seconds allowed for one collaborator call."""

    sweep_interval: float = 3600.0
    extend_within_days: int = 90
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> Settings:
        """Read ``FORMATION_*`` variables (defaults for unset ones).

        Raises:
            ValidationError: A variable is set to an invalid value
        """
        env = os.environ if env is None else env
        log_level = env.get("FORMATION_LOG_LEVEL", "INFO").upper()
        if log_level not in _LOG_LEVELS:
            raise ValidationError(f"FORMATION_LOG_LEVEL must be one of {_LOG_LEVELS}")
        store_url = env.get("FORMATION_STORE_URL") or "memory://"
        if urlparse(store_url).scheme not in ("memory", "sqlite", "redis", "rediss"):
            raise ValidationError(f"Unsupported FORMATION_STORE_URL: {store_url!r}")
        return cls(
            store_url=store_url,
            horizon_years=_int(env, "FORMATION_HORIZON_YEARS", 3, minimum=1),
            upcoming_days=_int(env, "FORMATION_UPCOMING_DAYS", 30),
            external_timeout=_float(env, "FORMATION_EXTERNAL_TIMEOUT", 30.0),
            sweep_interval=_float(env, "FORMATION_SWEEP_INTERVAL", 3600.0),
            extend_within_days=_int(env, "FORMATION_EXTEND_WITHIN_DAYS", 90),
            log_level=log_level,
        )


async def open_store(settings: Settings) -> FormationStore:
    """Build and connect the store named by ``settings.store_url``.

    - ``memory://``
    - ``sqlite:///relative.db``, ``sqlite:////abs/path.db``, ``sqlite:///:memory:``
    - ``redis://host:port/db``
    """
    url = settings.store_url
    scheme = urlparse(url).scheme
    if scheme == "memory":
        store: FormationStore = InMemoryFormationStore()
    elif scheme == "sqlite":
        from pyformation.storage.sqlite import SqliteFormationStore

        path = url[len("sqlite:///"):] if url.startswith("sqlite:///") else ""
        if not path:
            raise ValidationError(f"sqlite URL needs a path: {url!r}")
        store = SqliteFormationStore(path)
        await store.connect()
    elif scheme in ("redis", "rediss"):
        from pyformation.storage.redis import RedisFormationStore

        store = RedisFormationStore(url)
        await store.connect()
    else:
        raise ValidationError(f"Unsupported store URL: {url!r}")
    logger.info(f"Opened store {store!r}")
    return store


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging for applications and examples."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
