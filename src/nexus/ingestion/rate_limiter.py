"""
Rate limiting for registry API calls.

Sliding window over recorded request timestamps. Callers that find the window
full are suspended until the oldest request leaves it; nobody is ever rejected.
"""

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


@dataclass
class RateLimitConfig:
    """Configuration for rate limiting."""

    requests_per_window: int = 600
    window_seconds: float = 300.0
    safety_buffer_seconds: float = 1.0


class RateLimiter:
    """
    Sliding window rate limiter for registry requests.

    One instance is shared by every call made through a registry adapter.
    The read-decide-append sequence runs inside a lock so two callers can
    never both claim the last free slot.
    """

    def __init__(
        self,
        config: Optional[RateLimitConfig] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ):
        """
        Initialize the rate limiter.

        Args:
            config: Rate limit configuration
            clock: Monotonic time source in seconds
            sleep: Coroutine used to suspend async callers (asyncio.sleep)
        """
        self.config = config or RateLimitConfig()
        self._clock = clock
        self._sleep = sleep or asyncio.sleep
        self._timestamps: deque[float] = deque()
        self._lock = asyncio.Lock()

    def _prune(self, now: float) -> None:
        window_start = now - self.config.window_seconds
        while self._timestamps and self._timestamps[0] <= window_start:
            self._timestamps.popleft()

    def _wait_time(self, now: float) -> float:
        """Seconds until a slot frees up, 0 if one is free now."""
        self._prune(now)
        if len(self._timestamps) < self.config.requests_per_window:
            return 0.0
        oldest = self._timestamps[0]
        return oldest + self.config.window_seconds - now + self.config.safety_buffer_seconds

    async def acquire_async(self) -> bool:
        """
        Asynchronously acquire permission to make a request.

        Suspends while the window is full and re-checks after every wait.
        Cancelling a waiting caller records nothing.

        Returns:
            True once the request has been recorded
        """
        async with self._lock:
            while True:
                now = self._clock()
                wait_time = self._wait_time(now)
                if wait_time <= 0:
                    self._timestamps.append(now)
                    return True
                logger.warning(f"Registry rate limit reached, waiting {wait_time:.2f}s")
                await self._sleep(wait_time)

    @property
    def current_usage(self) -> int:
        """Get current number of requests in the window."""
        window_start = self._clock() - self.config.window_seconds
        return sum(1 for ts in self._timestamps if ts > window_start)

    @property
    def available(self) -> int:
        """Get number of requests available in current window."""
        return max(0, self.config.requests_per_window - self.current_usage)

    def status(self) -> dict[str, Any]:
        """Snapshot for health and status endpoints."""
        return {
            "remaining": self.available,
            "limit": self.config.requests_per_window,
            "window_seconds": self.config.window_seconds,
        }


class RateLimitedClient:
    """
    HTTP client wrapper with built-in rate limiting.

    Wraps httpx.AsyncClient so every request first acquires a limiter slot.
    Responses are returned as-is; retry policy belongs to the caller.
    """

    def __init__(self, client, rate_limiter: Optional[RateLimiter] = None):
        """
        Initialize rate-limited client.

        Args:
            client: httpx.AsyncClient instance
            rate_limiter: RateLimiter instance
        """
        self._client = client
        self._limiter = rate_limiter or RateLimiter()

    @property
    def limiter(self) -> RateLimiter:
        return self._limiter

    async def get(self, url: str, **kwargs):
        """Rate-limited GET request."""
        await self._limiter.acquire_async()
        return await self._client.get(url, **kwargs)

    async def aclose(self):
        """Close the underlying client."""
        await self._client.aclose()
