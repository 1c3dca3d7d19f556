"""Shared fakes for manager, lease store and gateway tests."""

from __future__ import annotations

import asyncio
import itertools
from typing import Any

import pytest

from dbview.config import ClickHouseSettings, DatabaseConfig, Defaults, PostgresSettings, resolve_database
from dbview.connectors import ConnectorRegistry
from dbview.errors import CapabilityNotSupportedError
from dbview.models import QueryResult

_ids = itertools.count(1)


class FakeTransaction:
    def __init__(self, events: list[str] | None = None, *, rollback_error: Exception | None = None) -> None:
        self.transaction_id = f"tx-{next(_ids)}"
        self.events = events if events is not None else []
        self.rollback_error = rollback_error
        self.executed: list[str] = []
        self.commits = 0
        self.rollbacks = 0

    async def execute(self, sql: str, params=None) -> QueryResult:  # type: ignore[no-untyped-def]
        self.executed.append(sql)
        return QueryResult(rows=[], row_count=1)

    async def commit(self) -> None:
        self.commits += 1
        self.events.append(f"commit:{self.transaction_id}")

    async def rollback(self) -> None:
        self.rollbacks += 1
        self.events.append(f"rollback:{self.transaction_id}")
        if self.rollback_error is not None:
            raise self.rollback_error


class FakeConnector:
    """In-memory connector; ``query`` pops scripted failures before succeeding."""

    def __init__(self, config: DatabaseConfig, backend: FakeBackend) -> None:
        self.kind = config.kind
        self.config = config
        self.backend = backend
        self.connects = 0
        self.disconnects = 0
        self.queries: list[tuple[str, Any, Any]] = []

    async def connect(self) -> None:
        self.connects += 1
        self.backend.connect_calls += 1
        await asyncio.sleep(self.backend.connect_delay)
        error = self.backend.connect_errors.pop(self.config.id, None)
        if error is not None:
            raise error

    async def disconnect(self) -> None:
        self.disconnects += 1
        if self.backend.disconnect_gate is not None:
            await self.backend.disconnect_gate.wait()
        self.backend.events.append(f"disconnect:{self.config.id}")
        if self.backend.disconnect_error is not None:
            raise self.backend.disconnect_error

    async def query(self, sql: str, params=None, max_rows=None) -> QueryResult:  # type: ignore[no-untyped-def]
        self.queries.append((sql, params, max_rows))
        if self.backend.query_failures:
            raise self.backend.query_failures.pop(0)
        rows = [{"db": self.config.id, "n": 1}]
        return QueryResult(rows=rows, row_count=len(rows))

    async def execute(self, sql: str, params=None) -> QueryResult:  # type: ignore[no-untyped-def]
        self.queries.append((sql, params, None))
        return QueryResult(rows=[], row_count=1)

    async def list_tables(self, schema=None):  # type: ignore[no-untyped-def]
        return []

    async def describe_table(self, table, schema=None):  # type: ignore[no-untyped-def]
        return []

    async def get_schema(self, schema=None) -> str:  # type: ignore[no-untyped-def]
        return ""

    async def explain(self, sql, analyze=False):  # type: ignore[no-untyped-def]
        raise CapabilityNotSupportedError("fake")

    async def begin_transaction(self) -> FakeTransaction:
        transaction = FakeTransaction(self.backend.events)
        self.backend.transactions.append(transaction)
        return transaction


class FakeBackend:
    """Registry stand-in that records every connector it builds."""

    def __init__(self) -> None:
        self.created: list[FakeConnector] = []
        self.transactions: list[FakeTransaction] = []
        self.events: list[str] = []
        self.connect_calls = 0
        self.connect_delay = 0.01
        self.connect_errors: dict[str, Exception] = {}
        self.query_failures: list[Exception] = []
        self.disconnect_error: Exception | None = None
        self.disconnect_gate: asyncio.Event | None = None
        self.registry = ConnectorRegistry()
        for kind in ("postgresql", "clickhouse"):
            self.registry.register(kind, self._create)

    def _create(self, config: DatabaseConfig) -> FakeConnector:
        connector = FakeConnector(config, self)
        self.created.append(connector)
        return connector

    def connectors_for(self, database_id: str) -> list[FakeConnector]:
        return [connector for connector in self.created if connector.config.id == database_id]


def build_config(database_id: str, **overrides: Any) -> DatabaseConfig:
    kind = overrides.pop("kind", "postgresql")
    if kind == "clickhouse":
        settings = ClickHouseSettings(id=database_id, **overrides)
    else:
        params = {"host": "localhost", "database": "app", "user": "app"}
        params.update(overrides)
        settings = PostgresSettings(id=database_id, **params)
    return resolve_database(settings, Defaults())


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_config():  # type: ignore[no-untyped-def]
    return build_config


@pytest.fixture
def make_transaction():  # type: ignore[no-untyped-def]
    return FakeTransaction
