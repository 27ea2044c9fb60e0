import pytest
from sqlalchemy.exc import IntegrityError, OperationalError, TimeoutError as PoolTimeoutError

from app.core.exceptions import (
    PersistenceError,
    PersistenceTimeoutError,
    persistence_error,
)


def operational(message: str) -> OperationalError:
    return OperationalError("UPDATE products", {}, Exception(message))


@pytest.mark.parametrize("exc", [
    operational("canceling statement due to statement timeout"),
    operational("database is locked"),
    PoolTimeoutError("QueuePool limit of size 5 overflow 10 reached, connection timed out"),
])
def test_timeouts_are_retryable(exc):
    error = persistence_error(exc, "apply inventory")

    assert isinstance(error, PersistenceTimeoutError)
    assert error.status_code == 503
    assert error.retryable is True
    assert error.message == "Timed out while trying to apply inventory"


@pytest.mark.parametrize("exc", [
    operational("disk I/O error"),
    IntegrityError("INSERT", {}, Exception("NOT NULL constraint failed")),
])
def test_other_failures_are_fatal(exc):
    error = persistence_error(exc, "save the invoice")

    assert type(error) is PersistenceError
    assert error.status_code == 500
    assert error.retryable is False
    assert error.to_dict()["error_code"] == "PERSISTENCE_ERROR"
