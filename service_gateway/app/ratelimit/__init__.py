"""
Rate limiting package for the Gateway.

Holds the in-memory fixed-window limiter that caps requests per client IP
(or per app) within a time window.
"""

from .fixed_window import FixedWindowRateLimiter, RateLimitEntry, RateLimitResult, RateLimitStore

__all__ = [
    "FixedWindowRateLimiter",
    "RateLimitEntry",
    "RateLimitResult",
    "RateLimitStore",
]
