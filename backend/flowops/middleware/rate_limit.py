"""Per-client request rate limiting.

Fixed-window counters kept in process memory and keyed by client IP. Used
as FastAPI dependencies: a general limiter on the whole API router and
stricter ones on the authentication and password-reset endpoints.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass

import structlog
from starlette.requests import Request

from flowops.config import Settings, get_settings
from flowops.exceptions import RateLimited

logger = structlog.get_logger()


@dataclass
class _Window:
    started_at: float
    count: int


class RateLimiter:
    """Callable dependency that rejects a client after ``limit`` hits per window."""

    def __init__(
        self,
        name: str,
        limit: Callable[[Settings], int],
        window: Callable[[Settings], int],
        message: str,
    ):
        self.name = name
        self._limit = limit
        self._window = window
        self.message = message
        self._hits: dict[str, _Window] = {}
        self._last_sweep = 0.0

    def reset(self) -> None:
        self._hits.clear()
        self._last_sweep = 0.0

    def _sweep(self, now: float, window: int) -> None:
        """Forget clients whose window has run out; at most once per window."""
        if now - self._last_sweep < window:
            return
        self._last_sweep = now
        expired = [ip for ip, bucket in self._hits.items() if now - bucket.started_at >= window]
        for ip in expired:
            del self._hits[ip]

    async def __call__(self, request: Request) -> None:
        settings = get_settings()
        if not settings.rate_limit_enabled:
            return

        limit = self._limit(settings)
        window = self._window(settings)
        client = request.client.host if request.client else "unknown"
        now = time.monotonic()
        self._sweep(now, window)

        bucket = self._hits.get(client)
        if bucket is None or now - bucket.started_at >= window:
            bucket = _Window(started_at=now, count=0)
            self._hits[client] = bucket

        bucket.count += 1
        if bucket.count > limit:
            retry_after = int(window - (now - bucket.started_at)) + 1
            logger.warning("rate_limited", limiter=self.name, client_ip=client)
            raise RateLimited(self.message, retry_after=retry_after)


auth_limiter = RateLimiter(
    "auth",
    limit=lambda s: s.rate_limit_auth_requests_development if s.is_development else s.rate_limit_auth_requests,
    window=lambda s: s.rate_limit_auth_window,
    message="Too many login attempts. Please try again after 15 minutes.",
)

password_reset_limiter = RateLimiter(
    "password_reset",
    limit=lambda s: s.rate_limit_password_reset_requests,
    window=lambda s: s.rate_limit_password_reset_window,
    message="Too many password reset attempts. Please try again after an hour.",
)

api_limiter = RateLimiter(
    "api",
    limit=lambda s: s.rate_limit_api_requests,
    window=lambda s: s.rate_limit_api_window,
    message="Too many requests. Please slow down.",
)

ALL_LIMITERS = (auth_limiter, password_reset_limiter, api_limiter)
