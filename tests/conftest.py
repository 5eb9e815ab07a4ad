"""Shared fixtures for the Glynac client tests."""

from __future__ import annotations

import pytest

from glynac.services.client import ApiClient
from glynac.services.storage import MemorySessionStore

BASE_URL = "http://glynac.test/api"


class FakeSleep:
    """Records backoff delays instead of sleeping."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> MemorySessionStore:
    return MemorySessionStore()


@pytest.fixture
async def client(store, fake_sleep):
    api_client = ApiClient(
        base_url=BASE_URL,
        timeout=5.0,
        max_retries=3,
        retry_delay=1.0,
        stale_time=300.0,
        gc_time=600.0,
        cache_max_size=50,
        store=store,
        sleep=fake_sleep,
    )
    yield api_client
    await api_client.close()
