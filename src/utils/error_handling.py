"""Custom exceptions and helpers for consistent error responses.

Domain denials (expired, used up, cancelled...) are *not* errors: they come
back as a ``ValidationResult``. Everything here is a failure to reach a
decision at all, and each category maps to its own status code so venue staff
never see "ticket invalid" when the real cause was bad input or storage.
"""

import json
from typing import Any, Dict, Optional


class AppError(Exception):
    """Base class for application errors."""

    error_type = "app_error"
    retryable = False

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(AppError):
    """Raised when a requested resource is missing."""

    error_type = "not_found"

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message, status_code=404)


class ValidationError(AppError):
    """Raised when input validation fails."""

    error_type = "invalid_input"

    def __init__(self, message: str = "Invalid input"):
        super().__init__(message, status_code=422)


class TicketFormatError(ValidationError):
    """The scanned code does not have the PREFIX-YYYY-NNN shape."""

    error_type = "invalid_ticket_code"

    def __init__(self, code: Any):
        super().__init__(f"Malformed ticket code: {code!r}")
        self.code = code


class MalformedPayloadError(ValidationError):
    """A scanned admission payload could not be decoded."""

    error_type = "malformed_payload"

    def __init__(self, message: str = "Malformed admission payload"):
        super().__init__(message)


class TicketNotFoundError(NotFoundError):
    """No ticket is registered under the given code."""

    error_type = "unknown_ticket"

    def __init__(self, code: str):
        super().__init__(f"Unknown ticket: {code}")
        self.code = code


class ConflictError(AppError):
    """Raised when a write contradicts the stored state."""

    error_type = "conflict"

    def __init__(self, message: str = "Conflict"):
        super().__init__(message, status_code=409)


class DuplicateTicketError(ConflictError):
    """A ticket with the same code was already issued."""

    error_type = "duplicate_ticket"

    def __init__(self, code: str):
        super().__init__(f"Ticket already issued: {code}")
        self.code = code


class InvalidStatusTransitionError(ConflictError):
    """Cancelled and invalidated tickets never return to ACTIVE."""

    error_type = "invalid_status_transition"

    def __init__(self, code: str, current: str, requested: str):
        super().__init__(
            f"Ticket {code} cannot move from {current} to {requested}"
        )
        self.code = code


class LedgerUnavailableError(AppError):
    """Storage timed out or the per-ticket lock could not be acquired.

    Callers should retry; this must never be shown as a ticket denial.
    """

    error_type = "ledger_unavailable"
    retryable = True

    def __init__(self, message: str = "Scan ledger unavailable, retry the scan"):
        super().__init__(message, status_code=503)


class ConfigurationError(AppError):
    """Policy or service configuration is invalid."""

    error_type = "configuration_error"

    def __init__(self, message: str = "Invalid configuration"):
        super().__init__(message, status_code=500)


def to_response(error: AppError, correlation_id: Optional[str] = None) -> Dict[str, Any]:
    """Convert an AppError into a Lambda proxy integration response."""
    body: Dict[str, Any] = {
        "message": str(error),
        "status": "error",
        "error_type": error.error_type,
        "retryable": error.retryable,
    }
    if correlation_id:
        body["correlation_id"] = correlation_id
    return {
        "statusCode": error.status_code,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(body),
    }
