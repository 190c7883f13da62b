# Overview: Typed commerce errors shared by services, routes, and the CLI.

from __future__ import annotations


class CommerceError(Exception):
    """
    Base class for every business-rule failure raised by the service layer.

    DESIGN: Services raise; the HTTP boundary converts to the
    {"success": false, "error": {code, message, details}} envelope.
    """
    http_status = 400
    default_code = "COMMERCE_ERROR"

    def __init__(self, message: str, *, code: str | None = None, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(CommerceError):
    """Malformed input: bad amounts, quantities over a limit, unknown coupon."""
    http_status = 400
    default_code = "VALIDATION_ERROR"


class NotFoundError(CommerceError):
    http_status = 404
    default_code = "NOT_FOUND"


class InsufficientInventoryError(CommerceError):
    """Total inventory or per-organization quota cannot cover the request."""
    http_status = 409
    default_code = "INSUFFICIENT_INVENTORY"


class InvalidStateTransitionError(CommerceError):
    http_status = 409
    default_code = "INVALID_STATE_TRANSITION"


class AuthorizationError(CommerceError):
    http_status = 403
    default_code = "FORBIDDEN"


class ExternalServiceError(CommerceError):
    """Payment processor (or another collaborator) failed; nothing was written."""
    http_status = 502
    default_code = "EXTERNAL_SERVICE_ERROR"
