"""Domain errors raised by the subscription services.

Every error carries the HTTP status the API edge should answer with, a stable
machine-readable ``code`` and optional ``details`` merged into the JSON body.
"""

from typing import Any


class SubscriptionError(Exception):
    """Base class for all subscription lifecycle errors."""

    status_code = 400
    code = "subscription_error"

    def __init__(self, message: str, code: str | None = None, **details: Any):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {"success": False, "code": self.code, "message": self.message, **self.details}


class InvalidInput(SubscriptionError):
    """Malformed or unsupported input (e.g. unknown plan type)."""

    status_code = 400
    code = "invalid_input"


class ValidationError(SubscriptionError):
    """Request or stored data failed a consistency check."""

    status_code = 422
    code = "validation_error"


class Conflict(SubscriptionError):
    """The operation clashes with the current subscription state."""

    status_code = 409
    code = "conflict"


class NotFound(SubscriptionError):
    status_code = 404
    code = "not_found"


class Forbidden(SubscriptionError):
    status_code = 403
    code = "forbidden"


class Unauthorized(SubscriptionError):
    """Signature verification failed. Never carries comparison details."""

    status_code = 401
    code = "unauthorized"


class GatewayUnavailable(SubscriptionError):
    """The payment gateway is unconfigured, unreachable or timed out. Safe to retry."""

    status_code = 503
    code = "gateway_unavailable"
