"""Client-side request rate limiting for provider calls."""

import asyncio
import time

from limits import parse
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter

from airchat.utils.logging import get_logger

logger = get_logger(__name__)


class RequestRateLimiter:
    """Moving-window request limiter shared by the provider adapters."""

    def __init__(self, requests_per_minute: int = 60):
        """Initialize rate limiter.

        Args:
            requests_per_minute: Maximum requests per minute per identifier
        """
        self.storage = MemoryStorage()
        self.limiter = MovingWindowRateLimiter(self.storage)
        self.request_limit = parse(f"{requests_per_minute}/minute")

    async def acquire(self, identifier: str) -> None:
        """Wait until a request for ``identifier`` fits in the window."""
        while not self.limiter.hit(self.request_limit, identifier):
            window_stats = self.limiter.get_window_stats(self.request_limit, identifier)
            wait_time = max(0.1, window_stats.reset_time - time.time())
            logger.warning(f"Request rate limit exceeded for {identifier}, waiting {wait_time:.2f}s")
            await asyncio.sleep(wait_time)


_rate_limiter: RequestRateLimiter | None = None


def get_rate_limiter() -> RequestRateLimiter:
    """Get or create the shared rate limiter instance."""
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = RequestRateLimiter()
    return _rate_limiter
