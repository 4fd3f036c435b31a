"""pytest configuration for hubmesh tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from hubmesh.config import Settings
from hubmesh.stores.memory import MemoryRegistryStore


# Configure asyncio mode for pytest-asyncio
def pytest_configure(config):
    config.addinivalue_line(
        "markers", "asyncio: mark test as async"
    )


class ManualClock:
    """Shared time source for the store (monotonic) and for writers/readers (UTC)."""

    def __init__(self, start: datetime | None = None) -> None:
        self.start = start or datetime(2026, 1, 1, tzinfo=timezone.utc)
        self.elapsed = 0.0

    def advance(self, seconds: float) -> None:
        self.elapsed += seconds

    def set(self, seconds: float) -> None:
        self.elapsed = seconds

    def monotonic(self) -> float:
        return self.elapsed

    def now(self) -> datetime:
        return self.start + timedelta(seconds=self.elapsed)


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def settings():
    return Settings(store="memory")


@pytest.fixture
def store(clock):
    return MemoryRegistryStore(clock=clock.monotonic)
