"""Rate limiting: shared fixed window counter with a durable fallback, plus an in-process token bucket."""

from .dependency import rate_limit
from .fixed_window import Decision, RateLimiter
from .token_bucket import TokenBucket

__all__ = [
    "Decision",
    "RateLimiter",
    "TokenBucket",
    "rate_limit",
]
