"""Shared fixtures for the memory engine tests."""

import pytest

from convomem.services.memory_management import MemoryManagementService
from convomem.utils.config import CacheConfig, MemoryConfig
from convomem.utils.record_store import InMemoryRecordStore


START = 1_750_000_000.0


class FakeClock:
    """Manually advanced epoch-seconds clock."""

    def __init__(self, start: float = START):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return InMemoryRecordStore(clock=clock)


@pytest.fixture
def memory_config():
    return MemoryConfig()


@pytest.fixture
def engine(store, clock, memory_config):
    return MemoryManagementService(store=store, memory_config=memory_config, cache_config=CacheConfig(), clock=clock)


class FailingStore:
    """Store whose every call raises, to exercise degraded paths."""

    def __init__(self):
        self.calls = 0

    def get(self, key):
        self.calls += 1
        raise ConnectionError('store unreachable')

    def put(self, key, value, ttl_seconds=None):
        self.calls += 1
        raise ConnectionError('store unreachable')

    def delete(self, key):
        self.calls += 1
        raise ConnectionError('store unreachable')


@pytest.fixture
def failing_store():
    return FailingStore()
