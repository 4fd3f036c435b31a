"""hubmesh.registry — ephemeral node registry.

Exports:
    NodeRecord        — one node's advertised presence
    RegistryWriter    — per-process heartbeat task
    WriterState       — writer lifecycle states
    DiscoveryReader   — active-set reconstruction
    DiscoveryResult   — one discovery query's answer
    StoreUnavailable  — backend unreachable
    RecordMalformed   — unparseable stored record
"""

from __future__ import annotations

from hubmesh.registry.errors import RecordMalformed, RegistryError, StoreUnavailable
from hubmesh.registry.models import NodeRecord
from hubmesh.registry.reader import DiscoveryReader, DiscoveryResult
from hubmesh.registry.writer import RegistryWriter, WriterState

__all__ = [
    "NodeRecord",
    "RegistryWriter",
    "WriterState",
    "DiscoveryReader",
    "DiscoveryResult",
    "RegistryError",
    "StoreUnavailable",
    "RecordMalformed",
]
