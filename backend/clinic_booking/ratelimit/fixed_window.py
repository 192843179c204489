"""
Fixed window request counter with a durable fallback.

Time is cut into non-overlapping windows of ``window_ms``; each
(identity, endpoint, window) gets its own counter. Redis holds the hot
counter. When Redis cannot be reached the same key is counted in the
``rate_limit_counters`` table. When neither store answers the request is
allowed: availability wins over strict enforcement here.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
import logging
import math
import time
from typing import Callable, Dict, Optional

import redis
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..repositories.factory import RepositoryFactory
from ..services.cache_service import CacheService
from . import config
from .config import EndpointPolicy, get_effective_policy
from .metrics import rl_backend_errors, rl_decisions, rl_retry_after

logger = logging.getLogger(__name__)


@dataclass
class Decision:
    allowed: bool
    retry_after_s: int
    remaining: int
    limit: int
    reset_epoch_s: float


class RateLimiter:
    """
    Per-identity, per-endpoint admission control.

    Args:
        redis_client: Counter store, wrapped in a CacheService; ``None`` skips
            straight to the database
        cache: Ready-made CacheService to count in instead of ``redis_client``
        session_factory: Zero-argument callable returning a new Session for
            the durable fallback; ``None`` disables the fallback
        clock: Epoch seconds, injectable for tests
        policies: Endpoint table; defaults to the configured one
    """

    def __init__(
        self,
        redis_client: Optional[redis.Redis] = None,
        session_factory: Optional[Callable[[], Session]] = None,
        clock: Callable[[], float] = time.time,
        policies: Optional[Dict[str, EndpointPolicy]] = None,
        namespace: Optional[str] = None,
        cache: Optional[CacheService] = None,
    ):
        if cache is None and redis_client is not None:
            cache = CacheService(redis_client=redis_client)
        self.cache = cache
        self.session_factory = session_factory
        self.clock = clock
        self.policies = policies
        self.namespace = namespace or config.settings.namespace

    def build_key(self, identity: str, endpoint_key: str, window_start_ms: int) -> str:
        return f"{self.namespace}:rl:{identity}:{endpoint_key}:{window_start_ms}"

    def check_rate_limit(self, endpoint_key: str, identity: str) -> Decision:
        policy = get_effective_policy(endpoint_key, self.policies)
        now_ms = int(self.clock() * 1000)
        window_start = (now_ms // policy.window_ms) * policy.window_ms
        window_end = window_start + policy.window_ms
        key = self.build_key(identity, endpoint_key, window_start)

        count = self._increment_cache(key, policy.window_ms)
        if count is None:
            count = self._increment_durable(key, window_start, window_end)

        if count is None:
            logger.error(
                f"Rate limit counters unavailable for {endpoint_key}; allowing request",
                extra={"identity": identity, "endpoint": endpoint_key},
            )
            rl_decisions.labels(endpoint=endpoint_key, action="allow").inc()
            return Decision(
                allowed=True,
                retry_after_s=0,
                remaining=policy.max_requests,
                limit=policy.max_requests,
                reset_epoch_s=window_end / 1000,
            )

        if count > policy.max_requests:
            retry_after = math.ceil((window_end - now_ms) / 1000)
            logger.warning(
                "Rate limit exceeded",
                extra={
                    "identity": identity,
                    "endpoint": endpoint_key,
                    "count": count,
                    "limit": policy.max_requests,
                },
            )
            rl_decisions.labels(endpoint=endpoint_key, action="block").inc()
            rl_retry_after.labels(endpoint=endpoint_key).observe(retry_after)
            return Decision(
                allowed=False,
                retry_after_s=retry_after,
                remaining=0,
                limit=policy.max_requests,
                reset_epoch_s=window_end / 1000,
            )

        rl_decisions.labels(endpoint=endpoint_key, action="allow").inc()
        return Decision(
            allowed=True,
            retry_after_s=0,
            remaining=policy.max_requests - count,
            limit=policy.max_requests,
            reset_epoch_s=window_end / 1000,
        )

    def _increment_cache(self, key: str, window_ms: int) -> Optional[int]:
        if self.cache is None:
            return None
        count = self.cache.incr(key, expire_ms=window_ms)
        if count is None:
            logger.warning(f"Cache rate limit counter unavailable for {key}")
            rl_backend_errors.labels(backend="redis").inc()
        return count

    def _increment_durable(self, key: str, window_start: int, window_end: int) -> Optional[int]:
        if self.session_factory is None:
            return None
        expires_at = datetime.fromtimestamp(window_end / 1000, tz=timezone.utc)
        session = self.session_factory()
        try:
            repository = RepositoryFactory.create_rate_limit_repository(session)
            count = repository.increment_and_get(key, window_start, expires_at)
            session.commit()
            return count
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Durable rate limit check failed: {e}")
            rl_backend_errors.labels(backend="database").inc()
            return None
        finally:
            session.close()
