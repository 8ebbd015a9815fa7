"""Domain-specific exceptions for relay operations.

These exceptions are safe to import from API layers and clients without pulling
in database or SDK modules.
"""

from __future__ import annotations


class RelayError(Exception):
    status_code: int = 500
    default_detail: str = "Relay error"
    error_type: str = "relay_error"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.default_detail)
        self.detail = detail or self.default_detail


class GatewayNotConfiguredError(RelayError):
    status_code = 500
    default_detail = "LLM_API_KEY is not configured"
    error_type = "configuration"


class RateLimitedError(RelayError):
    status_code = 429
    default_detail = "Rate limit exceeded. Please try again later."
    error_type = "rate_limited"


class QuotaExhaustedError(RelayError):
    status_code = 402
    default_detail = "AI credits exhausted. Please contact support."
    error_type = "quota_exhausted"


class GatewayError(RelayError):
    status_code = 500
    default_detail = "Failed to get AI response"
    error_type = "gateway_error"


class InvalidModelOutputError(RelayError):
    status_code = 502
    default_detail = "AI response could not be interpreted."
    error_type = "invalid_model_output"


class DatabaseOperationError(RelayError):
    status_code = 503
    default_detail = "Database operation failed."
    error_type = "database_error"


def error_for_status(status_code: int) -> RelayError:
    """Translate a non-2xx gateway status into the matching relay error."""

    if status_code == 429:
        return RateLimitedError()
    if status_code == 402:
        return QuotaExhaustedError()
    return GatewayError()
