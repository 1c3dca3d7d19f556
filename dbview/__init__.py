"""Connection lifecycle and transaction safety for multi-database gateways."""

from __future__ import annotations

__version__ = "0.1.0"

from .config import AppConfig, DatabaseConfig, Defaults, load_config, resolve_database
from .errors import (
    CapabilityNotSupportedError,
    ConfigError,
    ConnectorError,
    DbViewError,
    ReadonlyViolationError,
    TransactionClosedError,
    TransactionNotFoundError,
    UnknownDatabaseError,
    is_transient_connection_error,
)
from .gateway import DatabaseGateway, DatabaseSummary
from .guard import SqlGuard, validate_readonly_sql
from .manager import ConnectorManager, ReconcileResult
from .models import ColumnInfo, ExplainResult, GuardVerdict, PerformanceSample, QueryResult, TableInfo
from .performance import PerformanceTracker
from .transactions import TransactionLease, TransactionStore

__all__ = [
    "AppConfig",
    "CapabilityNotSupportedError",
    "ColumnInfo",
    "ConfigError",
    "ConnectorError",
    "ConnectorManager",
    "DatabaseConfig",
    "DatabaseGateway",
    "DatabaseSummary",
    "DbViewError",
    "Defaults",
    "ExplainResult",
    "GuardVerdict",
    "PerformanceSample",
    "PerformanceTracker",
    "QueryResult",
    "ReadonlyViolationError",
    "ReconcileResult",
    "SqlGuard",
    "TableInfo",
    "TransactionClosedError",
    "TransactionLease",
    "TransactionNotFoundError",
    "TransactionStore",
    "UnknownDatabaseError",
    "__version__",
    "is_transient_connection_error",
    "load_config",
    "resolve_database",
    "validate_readonly_sql",
]
