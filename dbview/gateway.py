"""Gateway facade wiring the manager, lease store, tracker and guard together.

Each gateway owns its own instances, so independent gateways (for example in
tests) never share transactions or performance samples. The protocol layer
calls these coroutines and maps :class:`~dbview.errors.DbViewError` codes to
its own error responses.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Iterable, Sequence

from .config import AppConfig, DatabaseConfig
from .connectors import ConnectorRegistry, Params
from .errors import ReadonlyViolationError, UnknownDatabaseError
from .guard import SqlGuard
from .manager import ConnectorManager, ReconcileResult
from .models import ColumnInfo, ExplainResult, PerformanceSample, QueryResult, TableInfo
from .performance import PerformanceTracker
from .transactions import DEFAULT_TTL, Clock, TransactionStore

LOG = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DatabaseSummary:
    id: str
    kind: str
    description: str | None
    connected: bool


class DatabaseGateway:
    """Uniform async operations over every configured database."""

    def __init__(
        self,
        databases: Iterable[DatabaseConfig],
        *,
        registry: ConnectorRegistry | None = None,
        tracker: PerformanceTracker | None = None,
        transaction_ttl: float = DEFAULT_TTL,
        clock: Clock = time.monotonic,
        guard: SqlGuard | None = None,
    ) -> None:
        self._tracker = tracker or PerformanceTracker()
        self._manager = ConnectorManager(databases, tracker=self._tracker, registry=registry)
        self._transactions = TransactionStore(transaction_ttl, clock=clock)
        self._guard = guard or SqlGuard()

    @classmethod
    def from_config(cls, config: AppConfig, **kwargs: Any) -> DatabaseGateway:
        return cls(config.resolved_databases(), **kwargs)

    @property
    def manager(self) -> ConnectorManager:
        return self._manager

    @property
    def transactions(self) -> TransactionStore:
        return self._transactions

    @property
    def tracker(self) -> PerformanceTracker:
        return self._tracker

    async def start(self) -> None:
        """Start the lease reaper and connect every non-lazy database."""

        self._transactions.start()
        await self._manager.connect_eager()

    async def shutdown(self) -> None:
        """Roll back open transactions, then disconnect every connector."""

        await self._transactions.cleanup_all()
        await self._transactions.close()
        await self._manager.disconnect_all()

    def list_databases(self) -> list[DatabaseSummary]:
        return [
            DatabaseSummary(
                id=config.id,
                kind=config.kind,
                description=config.description,
                connected=self._manager.is_connected(config.id),
            )
            for config in self._manager.configs()
        ]

    async def query(self, database_id: str, sql: str, max_rows: int | None = None) -> QueryResult:
        self._check_readonly(sql)
        return await self._manager.with_connector(
            database_id, lambda connector: connector.query(sql, None, max_rows)
        )

    async def explain(self, database_id: str, sql: str, analyze: bool = False) -> ExplainResult:
        self._check_readonly(sql)
        return await self._manager.with_connector(
            database_id, lambda connector: connector.explain(sql, analyze)
        )

    async def list_tables(self, database_id: str, schema: str | None = None) -> list[TableInfo]:
        return await self._manager.with_connector(database_id, lambda connector: connector.list_tables(schema))

    async def describe_table(self, database_id: str, table: str, schema: str | None = None) -> list[ColumnInfo]:
        return await self._manager.with_connector(
            database_id, lambda connector: connector.describe_table(table, schema)
        )

    async def get_schema(self, database_id: str, schema: str | None = None) -> str:
        return await self._manager.with_connector(database_id, lambda connector: connector.get_schema(schema))

    async def execute(self, database_id: str, statement: str, params: Params | None = None) -> QueryResult:
        """Run a write statement; it skips the read-only guard and is never retried."""

        connector = await self._manager.get_connector(database_id)
        return await connector.execute(statement, params)

    async def begin_transaction(self, database_id: str) -> str:
        handle = await self._manager.with_connector(database_id, lambda connector: connector.begin_transaction())
        lease = self._transactions.add(handle, database_id)
        LOG.debug("Transaction %s started on '%s'", lease.transaction_id, database_id)
        return lease.transaction_id

    async def execute_in_transaction(
        self, transaction_id: str, statement: str, params: Params | None = None
    ) -> QueryResult:
        return await self._transactions.execute(transaction_id, statement, params)

    async def commit(self, transaction_id: str) -> None:
        await self._transactions.commit(transaction_id)

    async def rollback(self, transaction_id: str) -> None:
        await self._transactions.rollback(transaction_id)

    def slow_queries(self, database_id: str | None = None, limit: int = 20) -> list[PerformanceSample]:
        if database_id is not None:
            self._require_database(database_id)
        return self._tracker.get_slow_queries(database_id, limit)

    def performance_metrics(self) -> dict[str, Any]:
        return {
            "slow_query_threshold_ms": self._tracker.get_threshold(),
            "slow_query_count": len(self._tracker),
            "databases": self._manager.database_ids(),
            "connected_databases": [
                database_id for database_id in self._manager.database_ids() if self._manager.is_connected(database_id)
            ],
            "open_transactions": len(self._transactions),
        }

    def set_slow_query_threshold(self, threshold_ms: float) -> None:
        self._tracker.set_threshold(threshold_ms)

    def reset_performance(self) -> None:
        self._tracker.reset()

    async def reload(self, databases: Sequence[DatabaseConfig]) -> ReconcileResult:
        return await self._manager.update_databases(databases)

    def _check_readonly(self, sql: str) -> None:
        verdict = self._guard.validate(sql)
        if not verdict.valid:
            raise ReadonlyViolationError(verdict.reason or "Statement rejected", verdict.violating_keyword)

    def _require_database(self, database_id: str) -> None:
        if self._manager.get_config(database_id) is None:
            raise UnknownDatabaseError(database_id)


__all__ = ["DatabaseGateway", "DatabaseSummary"]
