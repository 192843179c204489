# backend/clinic_booking/services/cache_service.py
"""
Dedicated Cache Service for the clinic booking core.

Centralizes caching with key management, TTL tiers, a circuit breaker and an
in-memory fallback. Every public method is best-effort: a cache failure is
logged and reported as a miss, never raised to the caller.
"""

from datetime import date, datetime, timedelta
from enum import Enum
import fnmatch
import hashlib
import json
import logging
import threading
from typing import Any, Callable, Dict, Optional, TypeVar, Union

import redis
from redis import Redis
from redis.exceptions import RedisError

from ..core.config import settings
from ..monitoring.prometheus_metrics import prometheus_metrics
from .base import BaseService

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing, reject calls
    HALF_OPEN = "half_open"  # Testing if service recovered


class CircuitBreaker:
    """
    Circuit breaker for cache resilience.

    After ``failure_threshold`` consecutive failures calls are skipped until
    ``recovery_timeout`` seconds have passed, then one trial call is allowed.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: int = 60,
        expected_exception: type[BaseException] = RedisError,
    ) -> None:
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.expected_exception = expected_exception

        self._failure_count: int = 0
        self._last_failure_time: Optional[datetime] = None
        self._state: CircuitState = CircuitState.CLOSED
        self._lock = threading.Lock()

    @property
    def state(self) -> CircuitState:
        with self._lock:
            if self._state == CircuitState.OPEN and self._last_failure_time:
                elapsed = (datetime.now() - self._last_failure_time).total_seconds()
                if elapsed >= self.recovery_timeout:
                    self._state = CircuitState.HALF_OPEN
            return self._state

    def call(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> Optional[T]:
        """
        Execute ``func`` with circuit breaker protection.

        Returns None when the circuit is open. Below the threshold the
        original error is re-raised so the caller can log it.
        """
        if self.state == CircuitState.OPEN:
            logger.warning(f"Circuit breaker is OPEN, skipping {getattr(func, '__name__', func)}")
            return None

        try:
            result = func(*args, **kwargs)
            self._on_success()
            return result
        except self.expected_exception:
            self._on_failure()
            if self.state == CircuitState.CLOSED:
                raise
            return None

    def _on_success(self) -> None:
        with self._lock:
            self._failure_count = 0
            if self._state == CircuitState.HALF_OPEN:
                self._state = CircuitState.CLOSED
                logger.info("Circuit breaker recovered, closing circuit")

    def _on_failure(self) -> None:
        with self._lock:
            self._failure_count += 1
            self._last_failure_time = datetime.now()
            if self._failure_count >= self.failure_threshold:
                self._state = CircuitState.OPEN
                logger.warning(f"Circuit breaker opened after {self._failure_count} failures")


class CacheKeyBuilder:
    """Standardized cache key generation."""

    PREFIXES = {
        "availability": "avail",
        "booking": "book",
        "bookings": "bookings",
    }

    @staticmethod
    def build(*parts: Union[str, int, date, None]) -> str:
        """
        Build a cache key from parts.

        Examples:
            build('availability', 'p1', date(2025, 6, 16), 'all') -> 'avail:p1:2025-06-16:all'
        """
        formatted = [part.isoformat() if isinstance(part, date) else str(part) for part in parts]
        if parts and isinstance(parts[0], str) and parts[0] in CacheKeyBuilder.PREFIXES:
            formatted[0] = CacheKeyBuilder.PREFIXES[parts[0]]
        return ":".join(formatted)

    @staticmethod
    def availability(
        provider_id: str, target_date: date, service_type_id: Optional[str], tz_name: str
    ) -> str:
        return CacheKeyBuilder.build(
            "availability", provider_id, target_date, service_type_id or "all", tz_name
        )

    @staticmethod
    def availability_pattern(provider_id: str, target_date: Optional[date] = None) -> str:
        if target_date is None:
            return f"avail:{provider_id}:*"
        return f"avail:{provider_id}:{target_date.isoformat()}:*"

    @staticmethod
    def booking(booking_id: str) -> str:
        return CacheKeyBuilder.build("booking", booking_id)

    @staticmethod
    def booking_list(scope: str, subject_id: str, filters_hash: Optional[str] = None) -> str:
        if filters_hash is None:
            return CacheKeyBuilder.build("bookings", scope, subject_id)
        return CacheKeyBuilder.build("bookings", scope, subject_id, filters_hash)

    @staticmethod
    def hash_complex_key(data: Dict[str, Any]) -> str:
        """Generate a hash for complex cache keys."""
        sorted_data = json.dumps(data, sort_keys=True, default=str)
        return hashlib.md5(sorted_data.encode()).hexdigest()[:12]


class CacheService(BaseService):
    """
    Centralized caching service.

    Features:
    - JSON serialization
    - TTL management with tiers
    - Invalidation by key and by pattern
    - Circuit breaker around Redis
    - In-memory fallback when Redis is unreachable at start-up
    """

    # TTL Tiers (in seconds)
    TTL_TIERS = {
        "hot": 300,  # 5 minutes - availability and booking payloads
        "warm": 3600,
        "cold": 86400,
    }

    def __init__(self, redis_client: Optional[Redis] = None, *, connect: bool = True):
        super().__init__(db=None)  # type: ignore[arg-type]
        self.logger = logging.getLogger(__name__)

        self.circuit_breaker = CircuitBreaker(
            failure_threshold=5, recovery_timeout=60, expected_exception=RedisError
        )

        # In-memory fallbacks
        self._memory_cache: Dict[str, Any] = {}
        self._memory_expiry: Dict[str, datetime] = {}

        self.redis: Optional[Redis] = redis_client
        if self.redis is None and connect:
            self._setup_redis_connection()

        self._stats: Dict[str, int] = self._initialize_stats()

    def _setup_redis_connection(self) -> None:
        """Setup Redis connection with fallback to in-memory cache."""
        try:
            client = redis.from_url(
                settings.redis_url,
                decode_responses=True,
                socket_connect_timeout=2,
                socket_timeout=2,
                retry_on_timeout=True,
                health_check_interval=30,
            )
            client.ping()
            self.redis = client
            logger.info("Connected to Redis")
        except (RedisError, ConnectionError, OSError) as e:
            logger.warning(f"Redis not available: {e}. Using in-memory fallback.")
            self.redis = None

    def _initialize_stats(self) -> Dict[str, int]:
        return {"hits": 0, "misses": 0, "sets": 0, "deletes": 0, "errors": 0}

    @staticmethod
    def _namespace(key: str) -> str:
        return key.split(":", 1)[0]

    # Core Cache Operations

    def get(self, key: str) -> Optional[Any]:
        """Get value from cache. Errors count as misses."""
        redis_client = self.redis

        def _get_from_redis() -> Optional[Any]:
            assert redis_client is not None
            value = redis_client.get(key)
            if value is not None:
                return json.loads(value)
            return None

        try:
            if redis_client is not None:
                value = self.circuit_breaker.call(_get_from_redis)
            else:
                value = self._memory_get(key)
        except Exception as e:
            logger.error(f"Cache get error for key {key}: {e}")
            self._stats["errors"] += 1
            prometheus_metrics.record_cache_lookup(self._namespace(key), "error")
            return None

        if value is None:
            self._stats["misses"] += 1
            prometheus_metrics.record_cache_lookup(self._namespace(key), "miss")
            return None
        self._stats["hits"] += 1
        prometheus_metrics.record_cache_lookup(self._namespace(key), "hit")
        return value

    def set(self, key: str, value: Any, ttl: Optional[int] = None, tier: str = "hot") -> bool:
        """Set value in cache. Returns False instead of raising on failure."""
        redis_client = self.redis
        if ttl is None:
            ttl = self.TTL_TIERS.get(tier, self.TTL_TIERS["hot"])

        try:
            serialized = json.dumps(value, default=str)
            if redis_client is not None:
                result = self.circuit_breaker.call(redis_client.setex, key, ttl, serialized)
                ok = bool(result)
            else:
                self._memory_cache[key] = json.loads(serialized)
                self._memory_expiry[key] = datetime.now() + timedelta(seconds=ttl)
                ok = True
        except Exception as e:
            logger.error(f"Cache set error for key {key}: {e}")
            self._stats["errors"] += 1
            return False

        if ok:
            self._stats["sets"] += 1
        return ok

    def delete(self, key: str) -> bool:
        redis_client = self.redis
        try:
            if redis_client is not None:
                removed = bool(self.circuit_breaker.call(redis_client.delete, key))
            else:
                removed = self._memory_cache.pop(key, None) is not None
                self._memory_expiry.pop(key, None)
        except Exception as e:
            logger.error(f"Cache delete error for key {key}: {e}")
            self._stats["errors"] += 1
            return False

        if removed:
            self._stats["deletes"] += 1
        return removed

    def delete_pattern(self, pattern: str) -> int:
        """Delete all keys matching a glob pattern (SCAN on Redis)."""
        try:
            if self.redis is not None:
                count = 0
                for key in self.redis.scan_iter(match=pattern):
                    if self.redis.delete(key):
                        count += 1
            else:
                matched = [k for k in self._memory_cache if fnmatch.fnmatch(k, pattern)]
                for key in matched:
                    self._memory_cache.pop(key, None)
                    self._memory_expiry.pop(key, None)
                count = len(matched)
        except Exception as e:
            logger.error(f"Cache delete pattern error: {e}")
            self._stats["errors"] += 1
            return 0

        self._stats["deletes"] += count
        logger.debug(f"Deleted {count} keys matching pattern: {pattern}")
        return count

    def incr(self, key: str, expire_ms: Optional[int] = None) -> Optional[int]:
        """
        Atomically increment a counter. None when the cache is unavailable.

        With ``expire_ms`` the increment and the expiry go out in one
        MULTI/EXEC block. The expiry uses NX, so the first one set for the key
        stands and a key that lost its expiry gets one back.
        """
        redis_client = self.redis
        if redis_client is None:
            return None

        def _incr_in_redis() -> Any:
            pipe = redis_client.pipeline(transaction=True)
            pipe.incr(key)
            if expire_ms is not None:
                pipe.pexpire(key, expire_ms, nx=True)
            return pipe.execute(raise_on_error=False)

        try:
            results = self.circuit_breaker.call(_incr_in_redis)
        except Exception as e:
            logger.error(f"Cache incr error for key {key}: {e}")
            self._stats["errors"] += 1
            return None
        if not results or isinstance(results[0], Exception):
            if results:
                logger.error(f"Cache incr error for key {key}: {results[0]}")
                self._stats["errors"] += 1
            return None

        if expire_ms is not None and isinstance(results[1], Exception):
            # The increment happened; only the expiry was refused
            logger.warning(f"Cache expiry not set for key {key}: {results[1]}")
            self._stats["errors"] += 1
        return int(results[0])

    def get_stats(self) -> Dict[str, Any]:
        total = self._stats["hits"] + self._stats["misses"]
        return {
            **self._stats,
            "hit_rate": (self._stats["hits"] / total) if total else 0.0,
            "backend": "redis" if self.redis is not None else "memory",
            "circuit_state": self.circuit_breaker.state.value,
        }

    def _memory_get(self, key: str) -> Optional[Any]:
        if key not in self._memory_cache:
            return None
        expires_at = self._memory_expiry.get(key)
        if expires_at is not None and datetime.now() >= expires_at:
            self._memory_cache.pop(key, None)
            self._memory_expiry.pop(key, None)
            return None
        return self._memory_cache[key]
