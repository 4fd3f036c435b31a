"""Heartbeat writer — keeps this node's registry record alive.

States::

    REGISTERING → ACTIVE ⟲ (every heartbeat)
                    ↓ ↑
               RETRY_BACKOFF        (store error, retried forever)
                    ↓
    DEREGISTERING → TERMINATED      (stop() or task cancellation)

Each tick overwrites the full record and resets its TTL in one atomic
``upsert``. A crashed node is never deregistered explicitly; its record
simply expires once the TTL runs out.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from datetime import datetime
from typing import Callable

from hubmesh.config import Settings
from hubmesh.registry.identity import (
    AddressResolver,
    resolve_node_id,
    resolve_outbound_address,
    static_address,
)
from hubmesh.registry.models import NodeRecord, utcnow
from hubmesh.stores.base import RegistryStore

logger = logging.getLogger(__name__)


class WriterState(enum.Enum):
    REGISTERING = "registering"
    ACTIVE = "active"
    RETRY_BACKOFF = "retry_backoff"
    DEREGISTERING = "deregistering"
    TERMINATED = "terminated"


class RegistryWriter:
    """Background task owning exactly one registry record (this node's).

    Args:
        store:            Shared registry store.
        settings:         Timing, namespace and identity settings.
        node_id:          Explicit identity; overrides ``settings.node_id``.
        address_resolver: Returns the advertised address; defaults to
                          ``settings.advertise_address`` or an outbound probe.
        clock:            UTC ``datetime`` source used to stamp ``lastSeen``.
    """

    def __init__(
        self,
        store: RegistryStore,
        settings: Settings,
        node_id: str | None = None,
        address_resolver: AddressResolver | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.settings = settings
        self._clock = clock

        if address_resolver is None:
            if settings.advertise_address:
                address_resolver = static_address(settings.advertise_address)
            else:
                address_resolver = resolve_outbound_address

        self.node_id = resolve_node_id(node_id or settings.node_id)
        self.ip_address = address_resolver()
        self.key = settings.node_key(self.node_id)

        self.state = WriterState.REGISTERING
        self.last_success: datetime | None = None
        self.consecutive_failures = 0

        self._stopping = asyncio.Event()
        self._task: asyncio.Task | None = None
        self._deregistered = False

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    def record(self) -> NodeRecord:
        """The record as it would be written right now."""
        return NodeRecord(
            node_id=self.node_id,
            name=f"Node {self.node_id}",
            url=self.settings.hub_path,
            description=f"Chat hub node {self.node_id} running on {self.ip_address}",
            ip_address=self.ip_address,
            last_seen=self._clock(),
        )

    async def heartbeat(self) -> bool:
        """Run a single tick. Returns True if the record was written."""
        try:
            await self.store.upsert(
                self.key, self.record().to_fields(), self.settings.record_ttl
            )
        except Exception as exc:
            self.consecutive_failures += 1
            logger.error(
                "Error registering node %s (attempt %d): %s",
                self.node_id, self.consecutive_failures, exc,
            )
            self.state = WriterState.RETRY_BACKOFF
            return False

        if self.state is not WriterState.ACTIVE:
            logger.info("Node %s registered at %s", self.node_id, self.ip_address)
        else:
            logger.debug("Heartbeat written for %s", self.node_id)
        self.state = WriterState.ACTIVE
        self.last_success = self._clock()
        self.consecutive_failures = 0
        return True

    async def run(self) -> None:
        """Heartbeat until :meth:`stop` is called or the task is cancelled."""
        try:
            while not self._stopping.is_set():
                ok = await self.heartbeat()
                if ok:
                    await self._pause(self.settings.heartbeat_interval)
                else:
                    await self._pause(self.settings.error_backoff)
        finally:
            await self._deregister()

    async def start(self) -> None:
        """Start the heartbeat loop in a background task."""
        if self._task is not None and not self._task.done():
            logger.warning("Registry writer for %s is already running", self.node_id)
            return
        self._stopping.clear()
        self._deregistered = False
        self._task = asyncio.create_task(self.run())
        logger.info(
            "Registry writer started for %s (interval=%ss, ttl=%ss)",
            self.node_id, self.settings.heartbeat_interval, self.settings.record_ttl,
        )

    async def stop(self) -> None:
        """Interrupt the current pause, deregister, and wait for the loop to end."""
        self._stopping.set()
        if self._task is not None:
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Registry writer stopped for %s", self.node_id)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    async def _pause(self, seconds: float) -> None:
        """Sleep for *seconds*, returning early once a stop is requested."""
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def _deregister(self) -> None:
        """Single best-effort delete of this node's key."""
        if self._deregistered:
            return
        self._deregistered = True
        self.state = WriterState.DEREGISTERING
        try:
            await self.store.delete(self.key)
            logger.info("Node %s unregistered", self.node_id)
        except Exception as exc:
            # The TTL still removes the record.
            logger.error("Error unregistering node %s: %s", self.node_id, exc)
        finally:
            self.state = WriterState.TERMINATED
