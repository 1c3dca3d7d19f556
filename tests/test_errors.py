"""Tests for transient connection error classification."""

from __future__ import annotations

import errno

import pytest

from dbview.errors import (
    ConnectorError,
    ReadonlyViolationError,
    TransactionNotFoundError,
    UnknownDatabaseError,
    is_transient_connection_error,
)


@pytest.mark.parametrize(
    "exc",
    [
        ConnectionResetError("reset by peer"),
        ConnectionRefusedError(),
        BrokenPipeError(),
        TimeoutError(),
        OSError(errno.ECONNRESET, "reset"),
        OSError(errno.EHOSTUNREACH, "no route"),
        RuntimeError("connection terminated unexpectedly"),
        RuntimeError("server closed the connection unexpectedly"),
        RuntimeError("Connection was closed in the middle of operation"),
        RuntimeError("read ECONNRESET"),
    ],
)
def test_transient_errors(exc: BaseException) -> None:
    assert is_transient_connection_error(exc) is True


@pytest.mark.parametrize(
    "exc",
    [
        ValueError('column "x" does not exist'),
        RuntimeError("syntax error at or near SELECT"),
        OSError(errno.ENOENT, "missing"),
        ReadonlyViolationError("Statement 'DROP' is not allowed in read-only mode", "DROP"),
    ],
)
def test_non_transient_errors(exc: BaseException) -> None:
    assert is_transient_connection_error(exc) is False


def test_wrapped_driver_error_is_transient() -> None:
    try:
        try:
            raise ConnectionRefusedError(errno.ECONNREFUSED, "refused")
        except ConnectionRefusedError as exc:
            raise ConnectorError("Failed to connect to database 'main'") from exc
    except ConnectorError as wrapped:
        assert is_transient_connection_error(wrapped) is True


def test_error_codes_and_messages() -> None:
    unknown = UnknownDatabaseError("analytics")
    missing = TransactionNotFoundError("tx-1")

    assert str(unknown) == "Unknown database: analytics"
    assert unknown.code == "UNKNOWN_DATABASE"
    assert isinstance(unknown, LookupError)
    assert str(missing) == "Transaction not found: tx-1"
    assert missing.code == "TX_NOT_FOUND"
