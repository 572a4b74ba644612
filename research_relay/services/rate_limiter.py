"""Per-source token bucket rate limiting."""
from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable

DEFAULT_RATE = 2.0
DEFAULT_BURST = 5


@dataclass(slots=True)
class RateBucket:
    tokens: float
    last_refill: float


class RateLimiter:
    """Non-blocking token bucket keyed by source name.

    Buckets start full, refill continuously at ``rate`` tokens per second up to
    ``burst`` and are shared by every caller holding this instance. ``allow``
    never waits: a denied call is the caller's cue to try another source.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._buckets: dict[str, RateBucket] = {}
        self._lock = threading.Lock()

    def allow(
        self,
        source_name: str,
        rate_per_second: float = DEFAULT_RATE,
        burst_capacity: float = DEFAULT_BURST,
    ) -> bool:
        burst = max(float(burst_capacity), 1.0)
        rate = max(float(rate_per_second), 0.0)
        with self._lock:
            now = self._clock()
            bucket = self._buckets.get(source_name)
            if bucket is None:
                bucket = RateBucket(tokens=burst, last_refill=now)
                self._buckets[source_name] = bucket
            elapsed = max(now - bucket.last_refill, 0.0)
            bucket.tokens = min(burst, bucket.tokens + elapsed * rate)
            bucket.last_refill = now
            if bucket.tokens >= 1.0:
                bucket.tokens -= 1.0
                return True
            return False


_default_limiter: RateLimiter | None = None


def get_rate_limiter() -> RateLimiter:
    """Process-wide limiter shared across research runs."""
    global _default_limiter
    if _default_limiter is None:
        _default_limiter = RateLimiter()
    return _default_limiter
