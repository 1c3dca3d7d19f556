"""Error taxonomy shared by the connectors, manager and lease store."""

from __future__ import annotations

import errno
import re

import asyncpg
from clickhouse_driver import errors as clickhouse_errors


class DbViewError(RuntimeError):
    """Base class for every error raised by dbview."""

    code = "DBVIEW_ERROR"


class ConfigError(DbViewError):
    """Raised when configuration cannot be read or validated."""

    code = "CONFIG_ERROR"


class UnknownDatabaseError(DbViewError, LookupError):
    """Raised when a database id is not part of the configuration."""

    code = "UNKNOWN_DATABASE"

    def __init__(self, database_id: str) -> None:
        super().__init__(f"Unknown database: {database_id}")
        self.database_id = database_id


class ConnectorError(DbViewError):
    """Raised when a backend cannot be reached or refuses the connection."""

    code = "CONNECTOR_ERROR"


class CapabilityNotSupportedError(DbViewError):
    """Raised when a backend lacks an operation (e.g. ClickHouse transactions)."""

    code = "CAPABILITY_NOT_SUPPORTED"


class ReadonlyViolationError(DbViewError):
    """Raised when a statement is rejected on a read-only path."""

    code = "READONLY_VIOLATION"

    def __init__(self, reason: str, keyword: str | None = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.keyword = keyword


class TransactionNotFoundError(DbViewError, LookupError):
    """Raised for unknown, committed, rolled back or expired transaction ids."""

    code = "TX_NOT_FOUND"

    def __init__(self, transaction_id: str) -> None:
        super().__init__(f"Transaction not found: {transaction_id}")
        self.transaction_id = transaction_id


class TransactionClosedError(DbViewError):
    """Raised when a transaction handle is used after commit or rollback."""

    code = "TX_CLOSED"


_TRANSIENT_TYPES: tuple[type[BaseException], ...] = (
    ConnectionError,
    TimeoutError,
    asyncpg.exceptions.PostgresConnectionError,
    asyncpg.exceptions.CannotConnectNowError,
    clickhouse_errors.NetworkError,
    clickhouse_errors.SocketTimeoutError,
)

_TRANSIENT_ERRNOS = frozenset(
    {
        errno.ECONNREFUSED,
        errno.ECONNRESET,
        errno.ECONNABORTED,
        errno.EPIPE,
        errno.ETIMEDOUT,
        errno.EHOSTUNREACH,
        errno.ENETUNREACH,
    }
)

_TRANSIENT_MESSAGE = re.compile(
    r"connection (?:terminated|refused|reset|is closed|was closed|lost)"
    r"|broken pipe"
    r"|timed out|timeout expired|connect(?:ion)? timeout"
    r"|server closed the connection"
    r"|ECONNRESET|ECONNREFUSED|EPIPE|ETIMEDOUT",
    re.IGNORECASE,
)


def is_transient_connection_error(exc: BaseException) -> bool:
    """Return True when reconnecting is likely to make ``exc`` go away.

    The exception chain (``__cause__`` then ``__context__``) is inspected so a
    driver error wrapped in :class:`ConnectorError` is still recognised.
    """

    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, _TRANSIENT_TYPES):
            return True
        if isinstance(current, OSError) and current.errno in _TRANSIENT_ERRNOS:
            return True
        if _TRANSIENT_MESSAGE.search(str(current)):
            return True
        current = current.__cause__ or current.__context__
    return False


__all__ = [
    "CapabilityNotSupportedError",
    "ConfigError",
    "ConnectorError",
    "DbViewError",
    "ReadonlyViolationError",
    "TransactionClosedError",
    "TransactionNotFoundError",
    "UnknownDatabaseError",
    "is_transient_connection_error",
]
