"""Middleware package."""

from flowops.middleware.logging import LoggingMiddleware
from flowops.middleware.rate_limit import RateLimiter
from flowops.middleware.request_id import RequestIDMiddleware

__all__ = ["LoggingMiddleware", "RateLimiter", "RequestIDMiddleware"]
