"""Blockbrief Backend - Fixed-window request rate limiter"""

import math
import time
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from config import RATE_LIMIT, RATE_WINDOW

logger = logging.getLogger("blockbrief.ratelimit")


@dataclass
class RateLimitDecision:
    allowed: bool
    retry_after_seconds: Optional[int] = None


class FixedWindowRateLimiter:
    """Counts requests per key in fixed windows.

    A window opens on the first request for a key and is reset lazily on the
    first request after it ends.
    """

    def __init__(
        self,
        max_requests: int = RATE_LIMIT,
        window_seconds: float = RATE_WINDOW,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._buckets: dict[str, list[float]] = {}  # key -> [count, reset_at]

    def check(self, key: str) -> RateLimitDecision:
        now = self._clock()
        bucket = self._buckets.get(key)

        if bucket is None or now > bucket[1]:
            self._buckets[key] = [1, now + self.window_seconds]
            return RateLimitDecision(allowed=True)

        if bucket[0] >= self.max_requests:
            retry_after = max(1, math.ceil(bucket[1] - now))
            logger.info(f"Rate limit exceeded for {key} (retry in {retry_after}s)")
            return RateLimitDecision(allowed=False, retry_after_seconds=retry_after)

        bucket[0] += 1
        return RateLimitDecision(allowed=True)

    def reset(self):
        self._buckets.clear()


def client_key(forwarded_for: Optional[str], purpose: str = "brief") -> str:
    """Build a limiter key from the first X-Forwarded-For address."""
    client = (forwarded_for or "").split(",")[0].strip()
    return f"{purpose}:{client or 'unknown-client'}"
