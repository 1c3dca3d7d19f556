"""ClickHouse connector built on the native ``clickhouse_driver.Client``."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, TypeVar

from clickhouse_driver import Client

from ..config import ClickHouseSettings, DatabaseConfig
from ..errors import CapabilityNotSupportedError, ConnectorError
from ..models import ColumnInfo, ExplainResult, QueryResult, TableInfo
from .base import Params, TransactionHandle, bounded_query

LOG = logging.getLogger(__name__)

T = TypeVar("T")


class ClickHouseConnector:
    """Connector for ClickHouse.

    ``clickhouse_driver`` is blocking and a ``Client`` is not safe for
    concurrent use, so every call runs in a worker thread while holding a
    per-connector lock.
    """

    kind = "clickhouse"

    _LIST_TABLES_QUERY = (
        "SELECT name, engine FROM system.tables WHERE database = currentDatabase() ORDER BY name"
    )
    _DESCRIBE_TABLE_QUERY = (
        "SELECT name, type, default_expression, is_in_primary_key "
        "FROM system.columns "
        "WHERE database = currentDatabase() AND table = %(table)s "
        "ORDER BY position"
    )
    _SCHEMA_QUERY = (
        "SELECT name, create_table_query FROM system.tables "
        "WHERE database = currentDatabase() ORDER BY name"
    )

    def __init__(self, config: DatabaseConfig, *, connect_timeout: float = 10.0) -> None:
        if not isinstance(config.connection, ClickHouseSettings):
            raise TypeError(f"Database '{config.id}' is not a ClickHouse database")
        self._config = config
        self._settings: ClickHouseSettings = config.connection
        self._connect_timeout = connect_timeout
        self._client: Client | None = None
        self._lock = asyncio.Lock()

    @property
    def connected(self) -> bool:
        return self._client is not None

    async def connect(self) -> None:
        settings = self._settings
        client = Client(
            host=settings.host,
            port=settings.port,
            user=settings.user,
            password=settings.password,
            database=settings.database,
            secure=settings.secure,
            verify=settings.verify,
            ca_certs=settings.ca_certs,
            connect_timeout=self._connect_timeout,
            send_receive_timeout=self._config.query_timeout,
        )
        try:
            async with self._lock:
                await asyncio.to_thread(client.execute, "SELECT 1")
        except Exception as exc:
            raise ConnectorError(f"Failed to connect to database '{self._config.id}': {exc}") from exc
        self._client = client
        LOG.debug("Connected to ClickHouse database '%s'", self._config.id)

    async def disconnect(self) -> None:
        client, self._client = self._client, None
        if client is not None:
            async with self._lock:
                await asyncio.to_thread(client.disconnect)

    async def query(self, sql: str, params: Params | None = None, max_rows: int | None = None) -> QueryResult:
        _reject_positional(params)
        limit = max_rows if max_rows is not None else self._config.max_rows
        rows = await self._fetch(bounded_query(sql, limit))
        return QueryResult(rows=rows, row_count=len(rows))

    async def execute(self, sql: str, params: Params | None = None) -> QueryResult:
        _reject_positional(params)
        rows = await self._fetch(sql)
        return QueryResult(rows=rows, row_count=len(rows))

    async def list_tables(self, schema: str | None = None) -> list[TableInfo]:
        rows = await self._fetch(self._LIST_TABLES_QUERY)
        return [
            TableInfo(
                schema=self._settings.database,
                name=str(row["name"]),
                type="view" if "View" in str(row["engine"]) else "table",
            )
            for row in rows
        ]

    async def describe_table(self, table: str, schema: str | None = None) -> list[ColumnInfo]:
        rows = await self._fetch(self._DESCRIBE_TABLE_QUERY, {"table": table})
        return [
            ColumnInfo(
                name=str(row["name"]),
                type=str(row["type"]),
                nullable=str(row["type"]).startswith("Nullable"),
                default=row["default_expression"] or None,
                is_primary_key=bool(row["is_in_primary_key"]),
            )
            for row in rows
        ]

    async def get_schema(self, schema: str | None = None) -> str:
        rows = await self._fetch(self._SCHEMA_QUERY)
        return ";\n\n".join(str(row["create_table_query"]) for row in rows)

    async def explain(self, sql: str, analyze: bool = False) -> ExplainResult:
        if analyze:
            raise CapabilityNotSupportedError("EXPLAIN ANALYZE is not supported in ClickHouse")
        rows = await self._fetch(f"EXPLAIN {sql}")
        return ExplainResult(plan="\n".join(str(row["explain"]) for row in rows))

    async def begin_transaction(self) -> TransactionHandle:
        raise CapabilityNotSupportedError("Transactions are not supported in ClickHouse")

    async def _fetch(self, sql: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        client = self._get_client()
        data, columns = await self._call(client.execute, sql, params, with_column_types=True)
        names = [name for name, _type in columns]
        return [dict(zip(names, row)) for row in data]

    async def _call(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        async with self._lock:
            return await asyncio.to_thread(func, *args, **kwargs)

    def _get_client(self) -> Client:
        if self._client is None:
            raise ConnectorError(f"Database '{self._config.id}' is not connected")
        return self._client


def _reject_positional(params: Params | None) -> None:
    if params:
        raise CapabilityNotSupportedError("Positional query parameters are not supported in ClickHouse")


__all__ = ["ClickHouseConnector"]
