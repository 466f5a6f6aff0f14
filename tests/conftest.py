"""Shared pytest fixtures for collaboration tests."""

import asyncio
import itertools
import random
from typing import Generator

import pytest
from fastapi.testclient import TestClient

from app import create_app
from backend import MemoryBackend
from errors import StoreUnavailable
from repository import RoomRepository
from synchronizer import RoomSynchronizer


START_MILLIS = 1_700_000_000_000


class FakeClock:
    """Millisecond clock that only moves when a test says so."""

    def __init__(self, start: int = START_MILLIS):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, millis: int = 1) -> int:
        self.now += millis
        return self.now


class FailingStore(MemoryBackend):
    """Store whose every call fails, as if Redis were down."""

    async def get(self, namespace, key):
        raise StoreUnavailable("store is down")

    async def put(self, namespace, key, value):
        raise StoreUnavailable("store is down")

    async def delete(self, namespace, key):
        raise StoreUnavailable("store is down")


class BrokenStore(MemoryBackend):
    """Store adapter with a bug: raises something other than StoreUnavailable."""

    async def get(self, namespace, key):
        raise RuntimeError("adapter bug")


class SlowStore(MemoryBackend):
    """Store that never answers within a short timeout."""

    def __init__(self, delay: float = 1.0):
        super().__init__()
        self.delay = delay

    async def get(self, namespace, key):
        await asyncio.sleep(self.delay)
        return await super().get(namespace, key)

    async def put(self, namespace, key, value):
        await asyncio.sleep(self.delay)
        return await super().put(namespace, key, value)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def id_factory():
    """Deterministic operation ids: op_<timestamp>_0001, op_<timestamp>_0002, ..."""
    counter = itertools.count(1)

    def make(timestamp: int) -> str:
        return f"op_{timestamp}_{next(counter):04d}"

    return make


@pytest.fixture
def store() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture
def repository(store) -> RoomRepository:
    return RoomRepository(store, namespace="test", timeout=1.0)


@pytest.fixture
def synchronizer(repository, clock, id_factory) -> RoomSynchronizer:
    return RoomSynchronizer(repository, clock=clock, id_factory=id_factory, rng=random.Random(7))


@pytest.fixture
def shared_synchronizer(repository, clock, id_factory) -> RoomSynchronizer:
    return RoomSynchronizer(repository, clock=clock, id_factory=id_factory, join_policy="shared", rng=random.Random(7))


@pytest.fixture
def client(synchronizer) -> Generator[TestClient, None, None]:
    with TestClient(create_app(synchronizer)) as test_client:
        yield test_client
