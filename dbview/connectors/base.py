"""Capability contract implemented by every database backend."""

from __future__ import annotations

import re
from typing import Protocol, Sequence, runtime_checkable

from ..models import ColumnInfo, ExplainResult, QueryResult, TableInfo

Params = Sequence[object]

_TRAILING_TERMINATORS = re.compile(r"[\s;]+$")


@runtime_checkable
class TransactionHandle(Protocol):
    """An open transaction that owns one backend connection slot."""

    transaction_id: str

    async def execute(self, sql: str, params: Params | None = None) -> QueryResult:
        """Run a statement inside the transaction."""

    async def commit(self) -> None:
        """Commit and release the connection slot."""

    async def rollback(self) -> None:
        """Roll back and release the connection slot."""


@runtime_checkable
class Connector(Protocol):
    """Protocol implemented by database connectors."""

    kind: str

    async def connect(self) -> None:
        """Open the connection (or pool) and verify the backend is reachable."""

    async def disconnect(self) -> None:
        """Close the connection; safe to call when not connected."""

    async def query(self, sql: str, params: Params | None = None, max_rows: int | None = None) -> QueryResult:
        """Run a read query capped at ``max_rows`` (the configured cap by default)."""

    async def execute(self, sql: str, params: Params | None = None) -> QueryResult:
        """Run a write statement."""

    async def list_tables(self, schema: str | None = None) -> list[TableInfo]:
        """List tables and views."""

    async def describe_table(self, table: str, schema: str | None = None) -> list[ColumnInfo]:
        """Describe the columns of ``table``."""

    async def get_schema(self, schema: str | None = None) -> str:
        """Return DDL text for the tables of a schema."""

    async def explain(self, sql: str, analyze: bool = False) -> ExplainResult:
        """Return the query plan for ``sql``."""

    async def begin_transaction(self) -> TransactionHandle:
        """Open a transaction on a dedicated connection."""


def bounded_query(sql: str, limit: int) -> str:
    """Wrap ``sql`` in an outer projection so the row cap holds regardless of its own LIMIT."""

    if limit <= 0:
        raise ValueError("max_rows must be positive")
    inner = _TRAILING_TERMINATORS.sub("", sql.strip())
    return f"SELECT * FROM (\n{inner}\n) AS _q LIMIT {int(limit)}"


__all__ = ["Connector", "Params", "TransactionHandle", "bounded_query"]
