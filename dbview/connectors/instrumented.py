"""Connector decorator that reports query timings to the performance tracker."""

from __future__ import annotations

import time

from ..models import ColumnInfo, ExplainResult, QueryResult, TableInfo
from ..performance import PerformanceTracker
from .base import Connector, Params, TransactionHandle


class InstrumentedConnector:
    """Wraps a connector 1:1 and times every ``query``/``execute`` call."""

    def __init__(self, inner: Connector, tracker: PerformanceTracker, database_id: str) -> None:
        self._inner = inner
        self._tracker = tracker
        self._database_id = database_id
        self.kind = inner.kind

    @property
    def inner(self) -> Connector:
        return self._inner

    @property
    def database_id(self) -> str:
        return self._database_id

    async def connect(self) -> None:
        await self._inner.connect()

    async def disconnect(self) -> None:
        await self._inner.disconnect()

    async def query(self, sql: str, params: Params | None = None, max_rows: int | None = None) -> QueryResult:
        started = time.perf_counter()
        try:
            return await self._inner.query(sql, params, max_rows)
        finally:
            self._record(sql, started)

    async def execute(self, sql: str, params: Params | None = None) -> QueryResult:
        started = time.perf_counter()
        try:
            return await self._inner.execute(sql, params)
        finally:
            self._record(sql, started)

    async def list_tables(self, schema: str | None = None) -> list[TableInfo]:
        return await self._inner.list_tables(schema)

    async def describe_table(self, table: str, schema: str | None = None) -> list[ColumnInfo]:
        return await self._inner.describe_table(table, schema)

    async def get_schema(self, schema: str | None = None) -> str:
        return await self._inner.get_schema(schema)

    async def explain(self, sql: str, analyze: bool = False) -> ExplainResult:
        return await self._inner.explain(sql, analyze)

    async def begin_transaction(self) -> TransactionHandle:
        return await self._inner.begin_transaction()

    def _record(self, sql: str, started: float) -> None:
        duration_ms = (time.perf_counter() - started) * 1000
        self._tracker.record_query(sql, duration_ms, self._database_id)


__all__ = ["InstrumentedConnector"]
