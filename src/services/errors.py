"""Ledger error hierarchy.

Every error carries a stable `code`, the HTTP status the API reports it with,
and whether the caller may retry the whole operation unchanged.
"""

from fastapi import status


class LedgerError(Exception):
    """Base ledger error."""

    def __init__(
        self,
        message: str,
        code: str,
        http_status: int = status.HTTP_400_BAD_REQUEST,
        retryable: bool = False,
    ):
        """Initialize error."""
        self.message = message
        self.code = code
        self.http_status = http_status
        self.retryable = retryable
        super().__init__(message)

    def to_response(self) -> dict:
        """Create a standardized error response body."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "retryable": self.retryable,
            }
        }


class ValidationError(LedgerError):
    """Bad input shape or range. Fix the input; no retry needed."""

    def __init__(self, message: str):
        super().__init__(message, "validation_error", status.HTTP_400_BAD_REQUEST)


class NotFoundError(LedgerError):
    """Unknown payer, period, obligation or payment."""

    def __init__(self, message: str):
        super().__init__(message, "not_found", status.HTTP_404_NOT_FOUND)


class ConflictError(LedgerError):
    """Request contradicts current ledger state. Re-fetch before retrying."""

    def __init__(self, message: str):
        super().__init__(message, "conflict", status.HTTP_409_CONFLICT)


class TransientStoreError(LedgerError):
    """Lock timeout or lost connection. Safe to retry the whole operation."""

    def __init__(self, message: str = "The ledger is busy, please retry"):
        super().__init__(
            message,
            "transient_store_error",
            status.HTTP_503_SERVICE_UNAVAILABLE,
            retryable=True,
        )


class InternalLedgerError(LedgerError):
    """Invariant breach or unexpected failure. Details stay in the server log."""

    def __init__(self, message: str = "Internal ledger error"):
        super().__init__(message, "internal_error", status.HTTP_500_INTERNAL_SERVER_ERROR)


__all__ = [
    "LedgerError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "TransientStoreError",
    "InternalLedgerError",
]
