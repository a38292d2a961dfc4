"""Token-bucket rate limiter for outbound scraping calls.

Replaces fixed ``sleep`` calls between channel fetches: ``burst`` calls
may run back to back, after which calls are spaced ``period_seconds``
apart on average.
"""

import threading
import time
from collections.abc import Callable

from deal_dedup.config.logging_config import get_logger

logger = get_logger(__name__)


class TokenBucket:
    """Thread-safe token bucket.

    Args:
        period_seconds: Seconds needed to refill one token (0 disables limiting)
        burst: Bucket capacity
        clock: Monotonic clock, injectable for tests
        sleep: Sleep function, injectable for tests

    Example:
        >>> bucket = TokenBucket(period_seconds=5.0, burst=1)
        >>> for channel in channels:
        ...     bucket.acquire()
        ...     fetch(channel)
    """

    def __init__(
        self,
        period_seconds: float,
        burst: int = 1,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if period_seconds < 0:
            raise ValueError("period_seconds must be >= 0")
        if burst < 1:
            raise ValueError("burst must be >= 1")

        self._period = period_seconds
        self._capacity = float(burst)
        self._tokens = float(burst)
        self._clock = clock
        self._sleep = sleep
        self._updated_at = clock()
        self._lock = threading.Lock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(now - self._updated_at, 0.0)
        self._updated_at = now
        if self._period == 0:
            self._tokens = self._capacity
        else:
            self._tokens = min(self._capacity, self._tokens + elapsed / self._period)

    def try_acquire(self) -> bool:
        """Take a token if one is available, without waiting."""
        with self._lock:
            self._refill()
            if self._tokens >= 1.0:
                self._tokens -= 1.0
                return True
            return False

    def acquire(self) -> float:
        """Take a token, sleeping until one is available.

        Returns:
            Seconds spent waiting
        """
        waited = 0.0
        while True:
            with self._lock:
                self._refill()
                if self._tokens >= 1.0:
                    self._tokens -= 1.0
                    return waited
                wait_seconds = (1.0 - self._tokens) * self._period

            logger.debug("rate_limiter_wait", wait_seconds=round(wait_seconds, 3))
            self._sleep(wait_seconds)
            waited += wait_seconds
