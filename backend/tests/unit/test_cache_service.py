# backend/tests/unit/test_cache_service.py
"""
Tests for CacheService.

Redis is replaced by small stubs: a dict-backed client for the happy path and
a client that always raises to exercise the best-effort contract and the
circuit breaker.
"""

from datetime import date
import fnmatch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from clinic_booking.services.cache_service import (
    CacheKeyBuilder,
    CacheService,
    CircuitBreaker,
    CircuitState,
)
from tests._utils.rate_limit_doubles import StubRedis


class DictRedis:
    def __init__(self):
        self.store = {}
        self.ttls = {}

    def get(self, key):
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self.store[key] = value
        self.ttls[key] = ttl
        return True

    def delete(self, key):
        return 1 if self.store.pop(key, None) is not None else 0

    def scan_iter(self, match=None):
        return [k for k in list(self.store) if match is None or fnmatch.fnmatch(k, match)]



class DownRedis:
    def __init__(self):
        self.calls = 0

    def _fail(self, *args, **kwargs):
        self.calls += 1
        raise RedisConnectionError("connection refused")

    get = setex = delete = _fail

    def pipeline(self, transaction=True):
        return self

    def incr(self, key):
        return self

    def pexpire(self, key, ms, nx=False):
        return self

    def execute(self, raise_on_error=True):
        self._fail()

    def scan_iter(self, match=None):
        raise RedisConnectionError("connection refused")


class TestCacheKeyBuilder:
    def test_availability_key(self):
        key = CacheKeyBuilder.availability("p1", date(2025, 6, 16), None, "Asia/Tokyo")
        assert key == "avail:p1:2025-06-16:all:Asia/Tokyo"

        scoped = CacheKeyBuilder.availability("p1", date(2025, 6, 16), "s1", "UTC")
        assert scoped == "avail:p1:2025-06-16:s1:UTC"

    def test_patterns_cover_keys(self):
        key = CacheKeyBuilder.availability("p1", date(2025, 6, 16), None, "Asia/Tokyo")
        assert fnmatch.fnmatch(key, CacheKeyBuilder.availability_pattern("p1", date(2025, 6, 16)))
        assert fnmatch.fnmatch(key, CacheKeyBuilder.availability_pattern("p1"))
        assert not fnmatch.fnmatch(key, CacheKeyBuilder.availability_pattern("p2"))

    def test_booking_keys(self):
        assert CacheKeyBuilder.booking("b1") == "book:b1"
        assert CacheKeyBuilder.booking_list("patient", "u1", "abc") == "bookings:patient:u1:abc"
        assert CacheKeyBuilder.booking_list("all", "staff") == "bookings:all:staff"

    def test_hash_is_order_independent(self):
        assert CacheKeyBuilder.hash_complex_key({"a": 1, "b": 2}) == CacheKeyBuilder.hash_complex_key(
            {"b": 2, "a": 1}
        )


class TestMemoryBackend:
    def test_set_get_delete(self):
        cache = CacheService(connect=False)

        assert cache.get("book:1") is None
        assert cache.set("book:1", {"id": "1", "total": "5000.00"}) is True
        assert cache.get("book:1") == {"id": "1", "total": "5000.00"}
        assert cache.delete("book:1") is True
        assert cache.get("book:1") is None

        stats = cache.get_stats()
        assert stats["backend"] == "memory"
        assert stats["hits"] == 1
        assert stats["misses"] == 2

    def test_delete_pattern(self):
        cache = CacheService(connect=False)
        cache.set("avail:p1:2025-06-16:all:UTC", [])
        cache.set("avail:p1:2025-06-17:all:UTC", [])
        cache.set("avail:p2:2025-06-16:all:UTC", [])

        assert cache.delete_pattern("avail:p1:*") == 2
        assert cache.get("avail:p2:2025-06-16:all:UTC") == []

    def test_expired_entries_are_misses(self):
        cache = CacheService(connect=False)
        cache.set("book:1", {"id": "1"}, ttl=-1)
        assert cache.get("book:1") is None

    def test_counters_need_redis(self):
        cache = CacheService(connect=False)
        assert cache.incr("rl:x", expire_ms=60_000) is None


class TestRedisBackend:
    def test_round_trip_through_json(self):
        client = DictRedis()
        cache = CacheService(redis_client=client)

        cache.set("book:1", {"id": "1"}, tier="warm")
        assert client.ttls["book:1"] == CacheService.TTL_TIERS["warm"]
        assert cache.get("book:1") == {"id": "1"}

        cache.set("bookings:patient:u1:h", [])
        cache.set("bookings:patient:u1:h2", [])
        assert cache.delete_pattern("bookings:patient:u1:*") == 2

    def test_counter_sets_expiry_once(self):
        client = StubRedis()
        cache = CacheService(redis_client=client)

        assert cache.incr("rl:x", expire_ms=60_000) == 1
        assert cache.incr("rl:x", expire_ms=60_000) == 2
        assert client.expirations == [("rl:x", 60_000)]

    def test_counter_without_expiry(self):
        client = StubRedis()
        cache = CacheService(redis_client=client)

        assert cache.incr("hits") == 1
        assert client.expirations == []

    def test_refused_expiry_keeps_the_count(self):
        client = StubRedis(fail_expire=True)
        cache = CacheService(redis_client=client)

        assert cache.incr("rl:x", expire_ms=60_000) == 1
        assert client.counters["rl:x"] == 1
        assert cache.get_stats()["errors"] == 1


class TestBestEffort:
    def test_errors_are_misses_not_exceptions(self):
        cache = CacheService(redis_client=DownRedis())

        assert cache.get("book:1") is None
        assert cache.set("book:1", {"id": "1"}) is False
        assert cache.delete("book:1") is False
        assert cache.delete_pattern("avail:*") == 0
        assert cache.incr("rl:x") is None
        assert cache.get_stats()["errors"] >= 5

    def test_circuit_opens_after_repeated_failures(self):
        client = DownRedis()
        cache = CacheService(redis_client=client)

        for _ in range(5):
            assert cache.get("book:1") is None
        assert cache.circuit_breaker.state == CircuitState.OPEN

        calls_before = client.calls
        assert cache.get("book:1") is None
        assert client.calls == calls_before


class TestCircuitBreaker:
    def test_reraises_below_threshold(self):
        breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=60)

        def boom():
            raise RedisConnectionError("down")

        with pytest.raises(RedisConnectionError):
            breaker.call(boom)
        assert breaker.call(boom) is None
        assert breaker.state == CircuitState.OPEN

    def test_half_open_recovers(self):
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=0)

        def boom():
            raise RedisConnectionError("down")

        breaker.call(boom)
        assert breaker.state == CircuitState.HALF_OPEN
        assert breaker.call(lambda: "ok") == "ok"
        assert breaker.state == CircuitState.CLOSED
