"""Async token bucket rate limiter for provider calls.

Every externally visible provider call acquires one token first. A rate of 0
disables waiting entirely.
"""

import asyncio
import time


class RateLimiter:
    """Token bucket rate limiter.

    Example:
        limiter = RateLimiter(rate_per_second=2.0, burst=4)
        await limiter.acquire()  # Waits until a token is available
    """

    def __init__(self, rate_per_second: float, burst: int = 1):
        if rate_per_second < 0:
            raise ValueError("rate_per_second must be >= 0")
        if burst < 1:
            raise ValueError("burst must be >= 1")
        self.rate_per_second = rate_per_second
        self.burst = burst
        self.tokens = float(burst)
        self.last_update = time.monotonic()
        self._lock = asyncio.Lock()

    @classmethod
    def unlimited(cls) -> "RateLimiter":
        return cls(rate_per_second=0, burst=1)

    async def acquire(self, tokens: int = 1) -> None:
        """Wait until the requested tokens are available, then take them."""
        if self.rate_per_second == 0:
            return

        async with self._lock:
            while True:
                now = time.monotonic()
                elapsed = now - self.last_update
                self.tokens = min(float(self.burst), self.tokens + elapsed * self.rate_per_second)
                self.last_update = now

                if self.tokens >= tokens:
                    self.tokens -= tokens
                    return

                await asyncio.sleep((tokens - self.tokens) / self.rate_per_second)
