"""
Domain error taxonomy.

Services raise these; the exception handler in ``app.main`` renders every one
of them as ``{"success": false, "error": {"kind": ..., "message": ...}}`` with
the status code carried by the class.
"""
from typing import Optional, Dict, Any


class AppError(Exception):
    """Base class for every error the API reports to callers."""

    kind = "error"
    status_code = 400
    retryable = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        payload = {"kind": self.kind, "message": self.message}
        if self.details:
            payload["details"] = self.details
        if self.retryable:
            payload["retryable"] = True
        return payload


class ValidationError(AppError):
    """Malformed input or illegal date ordering."""
    kind = "validation_error"
    status_code = 400


class NotFoundError(AppError):
    """Unknown booking, room, hotel, payment or notification."""
    kind = "not_found"
    status_code = 404


class ConflictError(AppError):
    """The current state does not allow the requested transition."""
    kind = "conflict"
    status_code = 409


class RoomBusyError(ConflictError):
    """Another request holds the room lock; safe to retry."""
    kind = "room_busy"
    retryable = True


class InsufficientBalanceError(AppError):
    kind = "insufficient_balance"
    status_code = 402


class PermissionDeniedError(AppError):
    kind = "forbidden"
    status_code = 403


class StorageUnavailableError(AppError):
    """Storage timed out or is unreachable."""
    kind = "storage_unavailable"
    status_code = 503
    retryable = True
