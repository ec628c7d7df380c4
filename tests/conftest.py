"""
Pytest configuration and shared fixtures.

Time is driven by FakeClock so expiry can be tested without sleeping, and
ScriptedCodes lets a test decide which session ids and room codes come out of
the generator.
"""

import fakeredis
import pytest
from fastapi.testclient import TestClient

from app import create_app
from backend import RedisRoomStore, RedisSessionRegistry
from chat_service import ChatService
from codegen import CodeGenerator
from constants import SESSION_TIMEOUT_NS
from sessions import MemorySessionRegistry
from store import MemoryRoomStore

START_NS = 1_700_000_000_000_000_000
SECOND_NS = 1_000_000_000
MINUTE_NS = 60 * SECOND_NS


class FakeClock:
    """Callable clock returning nanoseconds; only moves when told to."""

    def __init__(self, now: int = START_NS):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, minutes: int = 0, seconds: int = 0, ns: int = 0):
        self.now += minutes * MINUTE_NS + seconds * SECOND_NS + ns


class ScriptedCodes:
    """Hands out queued codes in order, then random ones."""

    def __init__(self, *codes: str):
        self.queue = list(codes)
        self.fallback = CodeGenerator()

    def push(self, *codes: str):
        self.queue.extend(codes)

    def generate(self, length: int) -> str:
        if self.queue:
            return self.queue.pop(0)
        return self.fallback.generate(length)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def codes():
    return ScriptedCodes()


@pytest.fixture
def fake_redis():
    client = fakeredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)
    yield client
    client.flushall()


@pytest.fixture
def service(clock, codes):
    """Chat service on the in-memory backend."""
    return ChatService(MemoryRoomStore(SESSION_TIMEOUT_NS), MemorySessionRegistry(), codes, clock=clock)


@pytest.fixture
def redis_service(clock, codes, fake_redis):
    """Chat service on the Redis backend, backed by fakeredis."""
    return ChatService(
        RedisRoomStore(fake_redis, SESSION_TIMEOUT_NS),
        RedisSessionRegistry(fake_redis, SESSION_TIMEOUT_NS),
        codes,
        clock=clock,
    )


@pytest.fixture(params=["memory", "redis"])
def any_service(request, service, redis_service):
    """The same chat service scenarios on both backends."""
    return service if request.param == "memory" else redis_service


@pytest.fixture
def client(service):
    """Test client over a fresh in-memory service, background sweeper off."""
    with TestClient(create_app(service, sweep_interval=0)) as test_client:
        yield test_client
