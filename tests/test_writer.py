"""Tests for RegistryWriter — ticks, retry, shutdown and deregistration."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from hubmesh.config import Settings
from hubmesh.registry.errors import StoreUnavailable
from hubmesh.registry.identity import generate_node_id, resolve_node_id, resolve_outbound_address
from hubmesh.registry.models import NodeRecord
from hubmesh.registry.writer import RegistryWriter, WriterState
from hubmesh.stores.memory import MemoryRegistryStore

FAST = Settings(
    store="memory",
    heartbeat_interval=0.05,
    record_ttl=0.5,
    stale_after=0.2,
    error_backoff=0.01,
)


def _writer(store, settings=FAST, node_id="node-a", clock=None, **kwargs):
    if clock is not None:
        kwargs["clock"] = clock.now
    return RegistryWriter(
        store, settings, node_id=node_id, address_resolver=lambda: "10.0.0.9", **kwargs
    )


class _FlakyStore(MemoryRegistryStore):
    """Fails the first *failures* upserts, then behaves normally."""

    def __init__(self, failures: int) -> None:
        super().__init__()
        self.failures = failures
        self.upsert_calls = 0

    async def upsert(self, key, fields, ttl):
        self.upsert_calls += 1
        if self.upsert_calls <= self.failures:
            raise StoreUnavailable("redis down")
        await super().upsert(key, fields, ttl)


# ── Identity ──────────────────────────────────────────────────────


class TestIdentity:
    def test_generated_ids_are_unique_per_instance(self):
        a = generate_node_id("web")
        b = generate_node_id("web")
        assert a.startswith("web-")
        assert a != b

    def test_configured_id_wins(self):
        assert resolve_node_id("edge-7") == "edge-7"
        assert resolve_node_id("") != ""

    def test_outbound_address_falls_back_to_unknown(self):
        with patch("hubmesh.registry.identity.socket.socket", side_effect=OSError("no net")):
            assert resolve_outbound_address() == "unknown"

    def test_identity_resolved_once(self, store):
        resolver_calls = []

        def resolver():
            resolver_calls.append(1)
            return "10.1.1.1"

        writer = RegistryWriter(store, FAST, address_resolver=resolver)
        first = writer.record()
        second = writer.record()
        assert first.node_id == second.node_id
        assert len(resolver_calls) == 1

    def test_advertise_address_setting(self, store):
        settings = Settings(store="memory", advertise_address="192.168.5.5")
        writer = RegistryWriter(store, settings, node_id="n")
        assert writer.ip_address == "192.168.5.5"


# ── Single tick ───────────────────────────────────────────────────


class TestHeartbeat:
    async def test_first_tick_registers(self, store, clock):
        writer = _writer(store, Settings(store="memory"), clock=clock)
        assert writer.state is WriterState.REGISTERING
        assert await writer.heartbeat() is True
        assert writer.state is WriterState.ACTIVE

        data = await store.read_fields("hubmesh:nodes:node-a")
        record = NodeRecord.from_fields("hubmesh:nodes:node-a", data)
        assert record.node_id == "node-a"
        assert record.ip_address == "10.0.0.9"
        assert record.name == "Node node-a"
        assert record.url == "/chathub"
        assert record.last_seen == clock.now()
        assert store.ttl("hubmesh:nodes:node-a") == pytest.approx(45)

    async def test_repeated_ticks_keep_one_record(self, store, clock):
        writer = _writer(store, Settings(store="memory"), clock=clock)
        for _ in range(5):
            await writer.heartbeat()
            clock.advance(15)
        assert await store.scan_keys("hubmesh:nodes:") == ["hubmesh:nodes:node-a"]

    async def test_tick_refreshes_last_seen(self, store, clock):
        writer = _writer(store, Settings(store="memory"), clock=clock)
        await writer.heartbeat()
        clock.advance(15)
        await writer.heartbeat()
        data = await store.read_fields("hubmesh:nodes:node-a")
        assert NodeRecord.from_fields("k", data).last_seen == clock.now()

    async def test_failed_tick_enters_backoff(self, store):
        writer = _writer(store)
        with patch.object(store, "upsert", AsyncMock(side_effect=StoreUnavailable("down"))):
            assert await writer.heartbeat() is False
            assert await writer.heartbeat() is False
        assert writer.state is WriterState.RETRY_BACKOFF
        assert writer.consecutive_failures == 2
        assert writer.last_success is None

    async def test_unexpected_error_fails_tick(self, store):
        writer = _writer(store)
        with patch.object(store, "upsert", AsyncMock(side_effect=RuntimeError("boom"))):
            assert await writer.heartbeat() is False
        assert writer.state is WriterState.RETRY_BACKOFF

    async def test_recovery_resets_failures(self, store):
        writer = _writer(store)
        with patch.object(store, "upsert", AsyncMock(side_effect=StoreUnavailable("down"))):
            await writer.heartbeat()
        assert await writer.heartbeat() is True
        assert writer.state is WriterState.ACTIVE
        assert writer.consecutive_failures == 0


# ── Loop lifecycle ────────────────────────────────────────────────


class TestLifecycle:
    async def test_start_registers_and_stop_deregisters(self):
        store = MemoryRegistryStore()
        writer = _writer(store)
        await writer.start()
        await asyncio.sleep(0.02)
        assert writer.running
        assert await store.read_fields("hubmesh:nodes:node-a") != {}

        await writer.stop()
        assert not writer.running
        assert writer.state is WriterState.TERMINATED
        assert await store.read_fields("hubmesh:nodes:node-a") == {}

    async def test_start_twice_is_noop(self):
        writer = _writer(MemoryRegistryStore())
        await writer.start()
        task = writer._task
        await writer.start()
        assert writer._task is task
        await writer.stop()

    async def test_loop_keeps_refreshing(self):
        store = MemoryRegistryStore()
        writer = _writer(store)
        with patch.object(store, "upsert", wraps=store.upsert) as upsert:
            await writer.start()
            await asyncio.sleep(0.18)
            await writer.stop()
        assert upsert.await_count >= 3

    async def test_stop_interrupts_long_pause(self):
        settings = Settings(store="memory", heartbeat_interval=30, record_ttl=90, stale_after=60)
        writer = _writer(MemoryRegistryStore(), settings)
        await writer.start()
        await asyncio.sleep(0.01)
        loop = asyncio.get_running_loop()
        started = loop.time()
        await writer.stop()
        assert loop.time() - started < 1.0
        assert writer.state is WriterState.TERMINATED

    async def test_retries_until_store_recovers(self):
        store = _FlakyStore(failures=3)
        writer = _writer(store)
        await writer.start()
        await asyncio.sleep(0.1)
        assert store.upsert_calls > 3
        assert writer.state is WriterState.ACTIVE
        assert await store.read_fields("hubmesh:nodes:node-a") != {}
        await writer.stop()

    async def test_never_gives_up_during_outage(self):
        store = _FlakyStore(failures=10_000)
        writer = _writer(store)
        await writer.start()
        await asyncio.sleep(0.1)
        assert writer.running
        assert writer.state is WriterState.RETRY_BACKOFF
        await writer.stop()
        assert writer.state is WriterState.TERMINATED

    async def test_cleanup_failure_is_not_fatal(self):
        store = MemoryRegistryStore()
        writer = _writer(store)
        with patch.object(store, "delete", AsyncMock(side_effect=StoreUnavailable("down"))) as delete:
            await writer.start()
            await asyncio.sleep(0.01)
            await writer.stop()
        delete.assert_awaited_once_with("hubmesh:nodes:node-a")
        assert writer.state is WriterState.TERMINATED

    async def test_cancellation_deregisters_once(self):
        store = MemoryRegistryStore()
        writer = _writer(store)
        with patch.object(store, "delete", wraps=store.delete) as delete:
            task = asyncio.create_task(writer.run())
            await asyncio.sleep(0.01)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
        delete.assert_awaited_once_with("hubmesh:nodes:node-a")
        assert writer.state is WriterState.TERMINATED
        assert await store.read_fields("hubmesh:nodes:node-a") == {}

    async def test_only_own_key_is_touched(self):
        store = MemoryRegistryStore()
        await store.upsert("hubmesh:nodes:other", {"nodeId": "other", "lastSeen": "x"}, ttl=60)
        writer = _writer(store)
        await writer.start()
        await asyncio.sleep(0.01)
        await writer.stop()
        assert await store.read_fields("hubmesh:nodes:other") == {"nodeId": "other", "lastSeen": "x"}
