"""
Billing error taxonomy.

Every error carries an HTTP status, a stable ``error_code`` and whether the
caller may retry the same request unchanged. ``app.main`` renders them as JSON.
"""

from typing import Any, Optional


class BillingError(Exception):
    """Base class for errors raised by the settlement engine."""

    status_code: int = 500
    error_code: str = "BILLING_ERROR"
    retryable: bool = False

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "error_code": self.error_code,
            "retryable": self.retryable,
            "details": self.details,
        }


class InvoiceValidationError(BillingError):
    """Missing or out-of-range input. ``details`` lists the offending fields."""

    status_code = 400
    error_code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: Optional[str] = None, details: Optional[Any] = None):
        if details is None and field is not None:
            details = [{"field": field, "message": message}]
        super().__init__(message, details)
        self.field = field


class NotFoundError(BillingError):
    """Referenced invoice or product does not exist."""

    status_code = 404
    error_code = "NOT_FOUND"


class ConflictError(BillingError):
    """A concurrent writer won the race; the request can be retried."""

    status_code = 409
    error_code = "CONFLICT"
    retryable = True


class InvoiceStateError(BillingError):
    """Operation not allowed in the invoice's current state."""

    status_code = 409
    error_code = "INVALID_STATE"


class PartialSyncFailure(BillingError):
    """Some invoice items could not be applied to inventory."""

    status_code = 409
    error_code = "PARTIAL_SYNC_FAILURE"
    retryable = True

    def __init__(self, message: str, result: Any):
        super().__init__(message, details=result.to_dict())
        self.result = result


class PersistenceError(BillingError):
    """Transaction or commit failure."""

    status_code = 500
    error_code = "PERSISTENCE_ERROR"


class PersistenceTimeoutError(PersistenceError):
    """Database did not answer within the configured timeout."""

    status_code = 503
    error_code = "PERSISTENCE_TIMEOUT"
    retryable = True


def persistence_error(exc: Exception, action: str) -> PersistenceError:
    """Map a SQLAlchemy failure onto the persistence error taxonomy."""
    from sqlalchemy.exc import OperationalError, TimeoutError as PoolTimeoutError

    text = str(exc).lower()
    if isinstance(exc, PoolTimeoutError) or (
        isinstance(exc, OperationalError) and ("timeout" in text or "locked" in text)
    ):
        return PersistenceTimeoutError(f"Timed out while trying to {action}")
    return PersistenceError(f"Database error while trying to {action}")
