"""Discovery reader — rebuilds the active node set from the registry.

Algorithm per query:
  1. enumerate every key under the node namespace
  2. read each key's fields (concurrently)
  3. parse; malformed records are logged and skipped
  4. keep records whose ``lastSeen`` is younger than the staleness threshold
  5. prepend the synthetic "balanced" entry when anything survived

Store failures propagate to the caller as ``StoreUnavailable``; there is
no internal retry.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

from hubmesh.config import Settings
from hubmesh.registry.errors import RecordMalformed
from hubmesh.registry.models import NodeRecord, balanced_entry, format_timestamp, utcnow
from hubmesh.stores.base import RegistryStore

logger = logging.getLogger(__name__)


@dataclass
class DiscoveryResult:
    available_nodes: list[dict[str, Any]]
    current_node: str
    active_count: int
    timestamp: datetime
    skipped: list[str] = field(default_factory=list)

    def to_dict(self, include_skipped: bool = False) -> dict[str, Any]:
        data: dict[str, Any] = {
            "available_nodes": self.available_nodes,
            "current_node": self.current_node,
            "active_count": self.active_count,
            "timestamp": format_timestamp(self.timestamp),
        }
        if include_skipped:
            data["skipped_records"] = self.skipped
        return data


class DiscoveryReader:
    """Read-only view over the node namespace.

    Args:
        store:        Shared registry store.
        settings:     Namespace, staleness threshold and hub path.
        current_node: Identity of the process answering queries.
        clock:        UTC ``datetime`` source.
    """

    def __init__(
        self,
        store: RegistryStore,
        settings: Settings,
        current_node: str,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.settings = settings
        self.current_node = current_node
        self._clock = clock

    async def scan(self) -> tuple[list[NodeRecord], list[str]]:
        """Return every parseable record still in the store, plus malformed keys.

        Stale records are included; filtering happens in :meth:`discover`.
        """
        keys = await self.store.scan_keys(self.settings.key_prefix)
        payloads = await asyncio.gather(
            *(self.store.read_fields(k) for k in keys), return_exceptions=True
        )

        records: list[NodeRecord] = []
        skipped: list[str] = []
        for key, data in zip(keys, payloads):
            if isinstance(data, RecordMalformed):
                logger.warning("Skipping malformed registry record %s", data)
                skipped.append(key)
                continue
            if isinstance(data, BaseException):
                raise data
            if not data:
                # Expired between SCAN and read.
                logger.debug("Key %s vanished before it could be read", key)
                continue
            try:
                records.append(NodeRecord.from_fields(key, data))
            except RecordMalformed as exc:
                logger.warning("Skipping malformed registry record %s", exc)
                skipped.append(key)
        return records, skipped

    async def discover(self) -> DiscoveryResult:
        """Build the active set for one discovery query."""
        records, skipped = await self.scan()
        now = self._clock()

        threshold = self.settings.stale_after
        active = [r for r in records if r.age(now) < threshold]
        dropped = len(records) - len(active)
        if dropped:
            logger.debug("Excluded %d stale node(s) older than %ss", dropped, threshold)

        entries = [r.to_entry() for r in active]
        if entries:
            entries.insert(0, balanced_entry(len(active), self.settings.hub_path, now))

        return DiscoveryResult(
            available_nodes=entries,
            current_node=self.current_node,
            active_count=len(active),
            timestamp=now,
            skipped=skipped,
        )
