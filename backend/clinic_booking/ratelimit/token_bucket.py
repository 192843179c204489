import math
import threading
import time
from typing import Callable


class TokenBucket:
    """
    In-process token bucket for burst-tolerant limiting.

    State lives in this object only, so it limits a single process and is
    no substitute for the shared fixed window counter. Refill is computed
    from the elapsed time on every call.
    """

    def __init__(
        self,
        capacity: float,
        refill_rate: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        if refill_rate < 0:
            raise ValueError("refill_rate cannot be negative")
        self.capacity = float(capacity)
        self.refill_rate = float(refill_rate)  # tokens per second
        self._clock = clock
        self._tokens = float(capacity)
        self._last_refill = clock()
        self._lock = threading.Lock()

    def consume(self, tokens: float = 1) -> bool:
        """Take ``tokens`` if available. Returns False without consuming otherwise."""
        if tokens < 0:
            raise ValueError("tokens cannot be negative")
        with self._lock:
            self._refill()
            if self._tokens >= tokens:
                self._tokens -= tokens
                return True
            return False

    def get_available_tokens(self) -> int:
        with self._lock:
            self._refill()
            return math.floor(self._tokens)

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._last_refill)
        self._tokens = min(self.capacity, self._tokens + elapsed * self.refill_rate)
        self._last_refill = now
