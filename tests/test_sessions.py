"""
Tests for session registries (in-memory and Redis).
"""

import threading

import pytest

from backend import RedisSessionRegistry
from conftest import MINUTE_NS, START_NS
from constants import SESSION_TIMEOUT_NS
from sessions import MemorySessionRegistry, SessionRegistry


@pytest.fixture(params=["memory", "redis"])
def registry(request, fake_redis):
    if request.param == "memory":
        return MemorySessionRegistry()
    return RedisSessionRegistry(fake_redis, SESSION_TIMEOUT_NS)


class TestResolve:

    def test_backends_share_the_registry_interface(self, registry):
        assert isinstance(registry, SessionRegistry)
        assert registry.name in ("memory", "redis")

    def test_new_sessions_get_sequential_names(self, registry):
        first = registry.resolve("S1", "10.0.0.1", START_NS)
        second = registry.resolve("S2", "10.0.0.2", START_NS)
        assert first.display_name == "User 1"
        assert second.display_name == "User 2"

    def test_record_fields(self, registry):
        participant = registry.resolve("S1", "10.0.0.1", START_NS)
        assert participant.session_id == "S1"
        assert participant.caller_identity == "10.0.0.1"
        assert participant.joined_at == START_NS

    def test_known_session_returned_unchanged(self, registry):
        first = registry.resolve("S1", "10.0.0.1", START_NS)
        again = registry.resolve("S1", "192.168.1.9", START_NS + MINUTE_NS)
        assert again == first
        assert again.caller_identity == "10.0.0.1"

    def test_same_caller_new_session_is_new_participant(self, registry):
        """Identities are bound by session id, never merged by caller."""
        first = registry.resolve("S1", "10.0.0.1", START_NS)
        second = registry.resolve("S2", "10.0.0.1", START_NS)
        assert first.display_name != second.display_name


class TestExpiry:

    def test_expires_only_sessions_past_ttl(self, registry):
        registry.resolve("OLD", "a", START_NS)
        registry.resolve("NEW", "b", START_NS + 10 * MINUTE_NS)
        removed = registry.expire_older_than(SESSION_TIMEOUT_NS, START_NS + 21 * MINUTE_NS)
        assert removed == 1
        assert registry.get("OLD") is None
        assert registry.get("NEW") is not None

    def test_exactly_at_ttl_is_kept(self, registry):
        registry.resolve("S1", "a", START_NS)
        assert registry.expire_older_than(SESSION_TIMEOUT_NS, START_NS + SESSION_TIMEOUT_NS) == 0
        assert registry.get("S1") is not None

    def test_display_numbers_not_reused_after_expiry(self, registry):
        registry.resolve("S1", "a", START_NS)
        registry.expire_older_than(SESSION_TIMEOUT_NS, START_NS + 30 * MINUTE_NS)
        again = registry.resolve("S1", "a", START_NS + 30 * MINUTE_NS)
        assert again.display_name == "User 2"


class TestConcurrency:

    def test_parallel_new_sessions_get_distinct_names(self):
        registry = MemorySessionRegistry()
        names = []
        lock = threading.Lock()

        def worker(i):
            participant = registry.resolve(f"S{i}", "x", START_NS)
            with lock:
                names.append(participant.display_name)

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(50)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(set(names)) == 50
        assert len(registry) == 50

    def test_parallel_resolve_of_one_id_binds_once(self):
        registry = MemorySessionRegistry()
        results = []
        lock = threading.Lock()

        def worker(i):
            participant = registry.resolve("SHARED", f"caller-{i}", START_NS)
            with lock:
                results.append(participant)

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(set(results)) == 1
        assert results[0].display_name == "User 1"
