from __future__ import annotations

from typing import Callable, Optional

from fastapi import HTTPException, Request, Response

from . import config
from .config import endpoint_key as build_endpoint_key
from .fixed_window import RateLimiter
from .headers import rate_headers, set_rate_headers
from .identity import resolve_identity
from .redis_backend import get_redis

_default_limiter: Optional[RateLimiter] = None


def get_rate_limiter() -> RateLimiter:
    """Process-wide limiter over the shared Redis client and the session factory."""
    global _default_limiter
    if _default_limiter is None:
        from ..database import init_session_factory

        _default_limiter = RateLimiter(
            redis_client=get_redis(),
            session_factory=init_session_factory(),
        )
    return _default_limiter


def rate_limit(
    endpoint_key: Optional[str] = None, limiter: Optional[RateLimiter] = None
) -> Callable[[Request, Response], None]:
    # FastAPI dependency to attach on routes; the key defaults to "METHOD /path"
    def dep(request: Request, response: Response) -> None:
        if not config.settings.enabled:
            return

        key = endpoint_key or build_endpoint_key(request.method, request.url.path)
        identity = resolve_identity(request)
        decision = (limiter or get_rate_limiter()).check_rate_limit(key, identity)

        if decision.allowed:
            set_rate_headers(
                response, decision.remaining, decision.limit, decision.reset_epoch_s, None
            )
            return

        raise HTTPException(
            status_code=429,
            detail={
                "message": config.settings.message,
                "code": "RATE_LIMITED",
                "retry_after": decision.retry_after_s,
            },
            headers=rate_headers(
                decision.remaining, decision.limit, decision.reset_epoch_s, decision.retry_after_s
            ),
        )

    return dep
