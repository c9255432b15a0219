"""
Shared error handling for the StatEnv gateway.

Every failure the request pipeline can produce is a ``GatewayError``
subclass carrying the HTTP status it maps to. The wire shape is always
``{"error": ..., "message": ..., <details>}``.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel, ConfigDict


class ErrorResponse(BaseModel):
    """Standard error response format."""

    model_config = ConfigDict(extra="allow")

    error: str
    message: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        """Serialize, dropping an absent message."""
        return self.model_dump(exclude_none=True)


class GatewayError(Exception):
    """Base exception for gateway failures."""

    status_code: int = 500

    def __init__(self, code: str, error: str, message: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None, status_code: Optional[int] = None):
        self.code = code
        self.error = error
        self.message = message
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message or error)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(error=self.error, message=self.message, **self.details)


class InvalidRouteError(GatewayError):
    """Path does not contain an app and an API segment."""

    status_code = 404

    def __init__(self, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            "INVALID_ROUTE",
            "Invalid route. Use /{appName}/{apiName}",
            details=details or {"example": "/myblog/weather?q=London"},
        )


class UnknownAppError(GatewayError):
    """App is not in the registry."""

    status_code = 404

    def __init__(self, available_apps: list):
        super().__init__("UNKNOWN_APP", "Unknown app", details={"availableApps": available_apps})


class UnknownApiError(GatewayError):
    """API is not registered for the app."""

    status_code = 404

    def __init__(self, available_apis: list):
        super().__init__("UNKNOWN_API", "Unknown API endpoint", details={"availableApis": available_apis})


class ForbiddenOriginError(GatewayError):
    """Origin/Referer not whitelisted for the app."""

    status_code = 403

    def __init__(self):
        super().__init__("FORBIDDEN", "Forbidden")


class RateLimitError(GatewayError):
    """Rate limiting errors."""

    status_code = 429

    def __init__(self, retry_after: int, limit: int, reset_at: int):
        self.retry_after = retry_after
        self.limit = limit
        self.reset_at = reset_at
        super().__init__(
            "RATE_LIMITED",
            "Too Many Requests",
            message=f"Rate limit exceeded. Try again in {retry_after} seconds.",
            details={"retryAfter": retry_after},
        )


class ConfigurationError(GatewayError):
    """A secret referenced by the registry is not available."""

    status_code = 500

    def __init__(self, secret_name: str):
        self.secret_name = secret_name
        super().__init__("CONFIGURATION_ERROR", "Configuration error")


class GatewayTimeoutError(GatewayError):
    """Upstream did not answer within the hard timeout."""

    status_code = 504

    def __init__(self, message: str = "External API took too long to respond"):
        super().__init__("GATEWAY_TIMEOUT", "Gateway Timeout", message=message)


class BadGatewayError(GatewayError):
    """Upstream call failed at the transport level."""

    status_code = 502

    def __init__(self, message: str = "Failed to reach external API"):
        super().__init__("BAD_GATEWAY", "Bad Gateway", message=message)


class InternalGatewayError(GatewayError):
    """Any unanticipated failure."""

    status_code = 500

    def __init__(self, message: Optional[str] = None):
        super().__init__("INTERNAL_ERROR", "Internal server error", message=message)
