"""PostgreSQL connector backed by an asyncpg pool."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Iterable

import asyncpg

from ..config import DatabaseConfig, PostgresSettings
from ..errors import ConnectorError, TransactionClosedError
from ..models import ColumnInfo, ExplainResult, QueryResult, TableInfo
from .base import Params, bounded_query

LOG = logging.getLogger(__name__)

DEFAULT_SCHEMA = "public"


class PostgresTransaction:
    """Transaction bound to one connection acquired from the pool."""

    def __init__(self, pool: asyncpg.Pool, connection: asyncpg.Connection, transaction: Any) -> None:
        self.transaction_id = str(uuid.uuid4())
        self._pool = pool
        self._connection = connection
        self._transaction = transaction
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def execute(self, sql: str, params: Params | None = None) -> QueryResult:
        if self._closed:
            raise TransactionClosedError(f"Transaction {self.transaction_id} is already closed")
        return await _run_statement(self._connection, sql, params)

    async def commit(self) -> None:
        await self._finish(self._transaction.commit)

    async def rollback(self) -> None:
        await self._finish(self._transaction.rollback)

    async def _finish(self, terminate: Any) -> None:
        if self._closed:
            raise TransactionClosedError(f"Transaction {self.transaction_id} is already closed")
        self._closed = True
        try:
            await terminate()
        finally:
            await self._pool.release(self._connection)


class PostgresConnector:
    """Connector that talks to PostgreSQL via asyncpg."""

    kind = "postgresql"

    _LIST_TABLES_QUERY = """
        SELECT table_schema, table_name, table_type
        FROM information_schema.tables
        WHERE table_schema = $1
        ORDER BY table_name
    """

    _DESCRIBE_TABLE_QUERY = """
        SELECT
            c.column_name,
            c.data_type,
            c.is_nullable,
            c.column_default,
            pk.column_name IS NOT NULL AS is_primary_key
        FROM information_schema.columns c
        LEFT JOIN (
            SELECT ku.column_name
            FROM information_schema.table_constraints tc
            JOIN information_schema.key_column_usage ku
              ON tc.constraint_name = ku.constraint_name
             AND tc.table_schema = ku.table_schema
            WHERE tc.constraint_type = 'PRIMARY KEY'
              AND tc.table_name = $1
              AND tc.table_schema = $2
        ) pk ON c.column_name = pk.column_name
        WHERE c.table_name = $1 AND c.table_schema = $2
        ORDER BY c.ordinal_position
    """

    _SCHEMA_QUERY = """
        SELECT table_name, column_name, data_type, is_nullable, column_default
        FROM information_schema.columns
        WHERE table_schema = $1
        ORDER BY table_name, ordinal_position
    """

    def __init__(self, config: DatabaseConfig, *, connect_timeout: float = 10.0, max_pool_size: int = 10) -> None:
        if not isinstance(config.connection, PostgresSettings):
            raise TypeError(f"Database '{config.id}' is not a PostgreSQL database")
        self._config = config
        self._settings: PostgresSettings = config.connection
        self._connect_timeout = connect_timeout
        self._max_pool_size = max_pool_size
        self._pool: asyncpg.Pool | None = None

    @property
    def connected(self) -> bool:
        return self._pool is not None

    async def connect(self) -> None:
        try:
            self._pool = await asyncpg.create_pool(**self._connect_kwargs())
        except Exception as exc:
            raise ConnectorError(f"Failed to connect to database '{self._config.id}': {exc}") from exc
        LOG.debug("Connected to PostgreSQL database '%s'", self._config.id)

    async def disconnect(self) -> None:
        pool, self._pool = self._pool, None
        if pool is not None:
            await pool.close()

    async def query(self, sql: str, params: Params | None = None, max_rows: int | None = None) -> QueryResult:
        limit = max_rows if max_rows is not None else self._config.max_rows
        records = await self._get_pool().fetch(bounded_query(sql, limit), *(params or ()))
        rows = _records_to_rows(records)
        return QueryResult(rows=rows, row_count=len(rows))

    async def execute(self, sql: str, params: Params | None = None) -> QueryResult:
        async with self._get_pool().acquire() as connection:
            return await _run_statement(connection, sql, params)

    async def list_tables(self, schema: str | None = None) -> list[TableInfo]:
        records = await self._get_pool().fetch(self._LIST_TABLES_QUERY, schema or DEFAULT_SCHEMA)
        return [
            TableInfo(
                schema=str(row["table_schema"]),
                name=str(row["table_name"]),
                type="table" if row["table_type"] == "BASE TABLE" else "view",
            )
            for row in records
        ]

    async def describe_table(self, table: str, schema: str | None = None) -> list[ColumnInfo]:
        records = await self._get_pool().fetch(self._DESCRIBE_TABLE_QUERY, table, schema or DEFAULT_SCHEMA)
        return [
            ColumnInfo(
                name=str(row["column_name"]),
                type=str(row["data_type"]),
                nullable=row["is_nullable"] == "YES",
                default=row["column_default"],
                is_primary_key=bool(row["is_primary_key"]),
            )
            for row in records
        ]

    async def get_schema(self, schema: str | None = None) -> str:
        records = await self._get_pool().fetch(self._SCHEMA_QUERY, schema or DEFAULT_SCHEMA)
        tables: dict[str, list[str]] = {}
        for row in records:
            nullable = " NULL" if row["is_nullable"] == "YES" else " NOT NULL"
            default = f" DEFAULT {row['column_default']}" if row["column_default"] else ""
            tables.setdefault(str(row["table_name"]), []).append(
                f"  {row['column_name']} {row['data_type']}{nullable}{default}"
            )
        statements = [
            f"CREATE TABLE {table} (\n" + ",\n".join(columns) + "\n);"
            for table, columns in tables.items()
        ]
        return "\n\n".join(statements)

    async def explain(self, sql: str, analyze: bool = False) -> ExplainResult:
        prefix = "EXPLAIN ANALYZE" if analyze else "EXPLAIN"
        records = await self._get_pool().fetch(f"{prefix} {sql}")
        return ExplainResult(plan="\n".join(str(row["QUERY PLAN"]) for row in records))

    async def begin_transaction(self) -> PostgresTransaction:
        pool = self._get_pool()
        connection = await pool.acquire()
        transaction = connection.transaction()
        try:
            await transaction.start()
        except BaseException:
            await pool.release(connection)
            raise
        return PostgresTransaction(pool, connection, transaction)

    def _get_pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise ConnectorError(f"Database '{self._config.id}' is not connected")
        return self._pool

    def _connect_kwargs(self) -> dict[str, object]:
        settings = self._settings
        kwargs: dict[str, object] = {}
        if settings.dsn:
            kwargs["dsn"] = settings.dsn
        else:
            kwargs["host"] = settings.host
            kwargs["port"] = settings.port
            kwargs["user"] = settings.user
            kwargs["database"] = settings.database
        if settings.password:
            kwargs["password"] = settings.password
        if settings.ssl:
            kwargs["ssl"] = True
        kwargs["min_size"] = 1
        kwargs["max_size"] = self._max_pool_size
        kwargs["timeout"] = self._connect_timeout
        kwargs["command_timeout"] = self._config.query_timeout
        return kwargs


async def _run_statement(connection: Any, sql: str, params: Params | None) -> QueryResult:
    statement = await connection.prepare(sql)
    records = await statement.fetch(*(params or ()))
    rows = _records_to_rows(records)
    return QueryResult(rows=rows, row_count=_affected_rows(statement.get_statusmsg(), len(rows)))


def _affected_rows(status: str | None, fallback: int) -> int:
    # e.g. "INSERT 0 3", "UPDATE 2", "CREATE TABLE"
    token = (status or "").rsplit(" ", 1)[-1]
    return int(token) if token.isdigit() else fallback


def _records_to_rows(records: Iterable[Any]) -> list[dict[str, Any]]:
    return [dict(record.items()) if hasattr(record, "items") else dict(record) for record in records]


__all__ = ["PostgresConnector", "PostgresTransaction"]
