"""Database connectors and the kind-keyed factory registry."""

from __future__ import annotations

from .base import Connector, Params, TransactionHandle, bounded_query
from .clickhouse import ClickHouseConnector
from .instrumented import InstrumentedConnector
from .postgres import PostgresConnector, PostgresTransaction
from .registry import ConnectorFactory, ConnectorRegistry, default_registry

__all__ = [
    "ClickHouseConnector",
    "Connector",
    "ConnectorFactory",
    "ConnectorRegistry",
    "InstrumentedConnector",
    "Params",
    "PostgresConnector",
    "PostgresTransaction",
    "TransactionHandle",
    "bounded_query",
    "default_registry",
]
