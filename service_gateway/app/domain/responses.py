"""
Response assembly for the Gateway proxy route.

Every response leaving the proxy route is built here so the CORS and
rate-limit headers stay consistent between fresh, cached and error paths.
"""

from typing import Dict, Optional

from fastapi import Response
from fastapi.responses import JSONResponse

from shared.errors import GatewayError, RateLimitError
from ..ratelimit import RateLimitResult

ALLOWED_METHODS = "GET, POST, OPTIONS"
ALLOWED_HEADERS = "Content-Type"


def _rate_limit_headers(limit: int, remaining: int, reset_at: int) -> Dict[str, str]:
    return {
        "X-RateLimit-Limit": str(limit),
        "X-RateLimit-Remaining": str(remaining),
        "X-RateLimit-Reset": str(reset_at),
    }


def error_response(exc: GatewayError, origin: Optional[str] = None) -> JSONResponse:
    """JSON error body with the status the error maps to."""
    headers = {"Access-Control-Allow-Origin": origin or "*"}

    if isinstance(exc, RateLimitError):
        headers["Retry-After"] = str(exc.retry_after)
        headers.update(_rate_limit_headers(exc.limit, 0, exc.reset_at))

    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_response().to_payload(),
        headers=headers,
    )


def success_response(
    *,
    status_code: int,
    body: bytes,
    content_type: str,
    app_name: str,
    api_name: str,
    cache_ttl: int,
    rate_limit: RateLimitResult,
    cache_status: str,
    origin: Optional[str],
) -> Response:
    """Wrap an upstream or cached body with gateway headers."""
    # Passed as a header so Starlette does not append a charset.
    headers = {
        "Content-Type": content_type,
        "Cache-Control": f"public, max-age={cache_ttl}" if cache_ttl > 0 else "no-cache",
        "X-StatEnv-App": app_name,
        "X-StatEnv-API": api_name,
        "X-Cache": cache_status,
        "Access-Control-Allow-Origin": origin or "*",
        "Access-Control-Allow-Methods": ALLOWED_METHODS,
    }
    headers.update(_rate_limit_headers(rate_limit.limit, rate_limit.remaining, rate_limit.reset_at))

    return Response(content=body, status_code=status_code, headers=headers)


def preflight_response(origin: Optional[str], max_age: int = 86400) -> Response:
    """CORS preflight answer; no registry or origin checks apply."""
    return Response(
        status_code=204,
        headers={
            "Access-Control-Allow-Origin": origin or "*",
            "Access-Control-Allow-Methods": ALLOWED_METHODS,
            "Access-Control-Allow-Headers": ALLOWED_HEADERS,
            "Access-Control-Max-Age": str(max_age),
        },
    )
