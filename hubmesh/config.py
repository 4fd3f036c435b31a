"""Configuration for hubmesh nodes — loaded from ``HUBMESH_*`` environment variables."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields

logger = logging.getLogger(__name__)

HEARTBEAT_INTERVAL = 15.0
RECORD_TTL = 45.0
STALE_AFTER = 30.0
ERROR_BACKOFF = 5.0

# TTL must cover at least this many heartbeat intervals.
MIN_TTL_FACTOR = 2

DEFAULT_CORS_ORIGINS = [
    "http://localhost:8080",
    "http://localhost:8888",
    "http://localhost:3000",
]


def _env_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_list(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class Settings:
    """Node settings. Every field maps to ``HUBMESH_<FIELD_NAME_UPPER>``."""

    # Identity (empty = generate <hostname>-<suffix> at startup)
    node_id: str = ""
    advertise_address: str = ""  # empty = probe the outbound interface
    hub_path: str = "/chathub"

    # Store
    store: str = "redis"
    redis_url: str = "redis://localhost:6379/0"
    redis_timeout: float = 5.0
    namespace: str = "hubmesh:nodes"

    # Timing (seconds)
    heartbeat_interval: float = HEARTBEAT_INTERVAL
    record_ttl: float = RECORD_TTL
    stale_after: float = STALE_AFTER
    error_backoff: float = ERROR_BACKOFF

    # Discovery
    report_malformed: bool = False

    # HTTP
    host: str = "0.0.0.0"
    port: int = 5200
    cors_origins: list[str] = field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> Settings:
        """Build settings from *environ* (defaults to ``os.environ``) and validate them."""
        env = os.environ if environ is None else environ
        values: dict = {}
        for f in fields(cls):
            raw = env.get(f"HUBMESH_{f.name.upper()}")
            if raw is None:
                continue
            default = getattr(cls(), f.name)
            if isinstance(default, bool):
                values[f.name] = _env_bool(raw)
            elif isinstance(default, int):
                values[f.name] = int(raw)
            elif isinstance(default, float):
                values[f.name] = float(raw)
            elif isinstance(default, list):
                values[f.name] = _env_list(raw)
            else:
                values[f.name] = raw
        settings = cls(**values)
        settings.validate()
        return settings

    def validate(self) -> None:
        """Check the timing invariants.

        Raises:
            ValueError: if the TTL does not cover ``MIN_TTL_FACTOR`` heartbeats,
                the staleness threshold is not below the TTL, or any interval
                is not positive.
        """
        for name in ("heartbeat_interval", "record_ttl", "stale_after", "error_backoff"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        if self.record_ttl < MIN_TTL_FACTOR * self.heartbeat_interval:
            raise ValueError(
                f"record_ttl ({self.record_ttl}s) must be at least "
                f"{MIN_TTL_FACTOR}x heartbeat_interval ({self.heartbeat_interval}s)"
            )
        if self.stale_after >= self.record_ttl:
            raise ValueError(
                f"stale_after ({self.stale_after}s) must be below "
                f"record_ttl ({self.record_ttl}s)"
            )
        if self.stale_after <= self.heartbeat_interval:
            logger.warning(
                "stale_after (%ss) <= heartbeat_interval (%ss): healthy nodes "
                "will flicker out of discovery",
                self.stale_after, self.heartbeat_interval,
            )

    @property
    def key_prefix(self) -> str:
        """Prefix shared by every node key, including the trailing separator."""
        return f"{self.namespace}:"

    def node_key(self, node_id: str) -> str:
        return f"{self.key_prefix}{node_id}"
