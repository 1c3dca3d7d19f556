"""Connector manager: lazy/eager connection, one-shot retry and config reconciliation."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Iterable, Sequence, TypeVar

from .config import DatabaseConfig
from .connectors import Connector, ConnectorRegistry, InstrumentedConnector, default_registry
from .errors import UnknownDatabaseError, is_transient_connection_error
from .performance import PerformanceTracker

LOG = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class ReconcileResult:
    """Database ids touched by :meth:`ConnectorManager.update_databases`."""

    added: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    changed: list[str] = field(default_factory=list)


class ConnectorManager:
    """Owns resolved configs and the live (instrumented) connector per database id.

    ``_lock`` guards the connector maps and is only ever held for bookkeeping;
    connects, disconnects and queries run outside it. Concurrent first use of
    the same id shares a single pending connect task.
    """

    def __init__(
        self,
        databases: Iterable[DatabaseConfig],
        *,
        tracker: PerformanceTracker | None = None,
        registry: ConnectorRegistry | None = None,
    ) -> None:
        self._configs: dict[str, DatabaseConfig] = _index(databases)
        self._connectors: dict[str, InstrumentedConnector] = {}
        self._pending: dict[str, asyncio.Task[InstrumentedConnector]] = {}
        self._closing: set[asyncio.Task[None]] = set()
        self._tracker = tracker or PerformanceTracker()
        self._registry = registry or default_registry()
        self._lock = asyncio.Lock()

    @property
    def tracker(self) -> PerformanceTracker:
        return self._tracker

    def database_ids(self) -> list[str]:
        """Configured database ids in configuration order."""

        return list(self._configs)

    def get_config(self, database_id: str) -> DatabaseConfig | None:
        return self._configs.get(database_id)

    def configs(self) -> list[DatabaseConfig]:
        return list(self._configs.values())

    def is_connected(self, database_id: str) -> bool:
        return database_id in self._connectors

    async def get_connector(self, database_id: str) -> Connector:
        """Return the live connector for ``database_id``, connecting on first use."""

        async with self._lock:
            connector = self._connectors.get(database_id)
            if connector is not None:
                return connector
            pending = self._pending.get(database_id)
            if pending is None:
                config = self._configs.get(database_id)
                if config is None:
                    raise UnknownDatabaseError(database_id)
                pending = asyncio.ensure_future(self._establish(config))
                self._pending[database_id] = pending
        return await asyncio.shield(pending)

    async def with_connector(self, database_id: str, operation: Callable[[Connector], Awaitable[T]]) -> T:
        """Run ``operation`` against the connector, reconnecting once on a transient failure."""

        connector = await self.get_connector(database_id)
        try:
            return await operation(connector)
        except Exception as exc:
            if not is_transient_connection_error(exc):
                raise
            LOG.warning("Transient connection error on '%s', reconnecting: %s", database_id, exc)
        await self.invalidate_connector(database_id, expected=connector)
        connector = await self.get_connector(database_id)
        return await operation(connector)

    async def invalidate_connector(self, database_id: str, *, expected: Connector | None = None) -> None:
        """Drop the cached connector and disconnect it in the background.

        With ``expected`` set, nothing happens unless that exact connector is
        still the cached one (a concurrent caller may already have replaced it).
        The disconnect may wait for open transactions on the old connector, so
        callers do not wait for it; :meth:`wait_closed` does.
        """

        async with self._lock:
            connector = self._connectors.get(database_id)
            if connector is None or (expected is not None and connector is not expected):
                return
            del self._connectors[database_id]
        self._discard_later(database_id, connector)

    async def connect_eager(self) -> None:
        """Connect every non-lazy database concurrently; raises the first failure."""

        eager = [config.id for config in self._configs.values() if not config.lazy_connection]
        results = await asyncio.gather(*(self.get_connector(database_id) for database_id in eager), return_exceptions=True)
        failures: list[BaseException] = []
        for database_id, result in zip(eager, results):
            if isinstance(result, BaseException):
                LOG.error("Eager connection to '%s' failed: %s", database_id, result)
                failures.append(result)
        if failures:
            raise failures[0]

    async def update_databases(self, databases: Sequence[DatabaseConfig]) -> ReconcileResult:
        """Reconcile the live state against a new configuration set.

        Unchanged databases keep their config instance and live connector.
        Changed databases lose their connector and reconnect lazily with the
        new parameters; removed databases are forgotten. Stale connectors are
        disconnected in the background (see :meth:`wait_closed`).
        """

        incoming = _index(databases)
        result = ReconcileResult()
        stale: list[tuple[str, InstrumentedConnector]] = []
        async with self._lock:
            for database_id in self._configs:
                if database_id not in incoming:
                    result.removed.append(database_id)
                    connector = self._connectors.pop(database_id, None)
                    if connector is not None:
                        stale.append((database_id, connector))
            configs: dict[str, DatabaseConfig] = {}
            for database_id, config in incoming.items():
                previous = self._configs.get(database_id)
                if previous is None:
                    result.added.append(database_id)
                elif previous == config:
                    config = previous
                else:
                    result.changed.append(database_id)
                    connector = self._connectors.pop(database_id, None)
                    if connector is not None:
                        stale.append((database_id, connector))
                configs[database_id] = config
            self._configs = configs
        for database_id, connector in stale:
            self._discard_later(database_id, connector)
        if result.added or result.removed or result.changed:
            LOG.info(
                "Database configuration reloaded (added=%s, removed=%s, changed=%s)",
                result.added,
                result.removed,
                result.changed,
            )
        return result

    async def disconnect_all(self) -> None:
        """Disconnect every live connector concurrently and clear the live state.

        Also waits for background disconnects started by invalidation or reload.
        """

        async with self._lock:
            pending = list(self._pending.values())
        if pending:
            # Let in-flight connects land so they are torn down below.
            await asyncio.gather(*pending, return_exceptions=True)
        async with self._lock:
            connectors = list(self._connectors.items())
            self._connectors.clear()
        results = await asyncio.gather(
            *(connector.disconnect() for _, connector in connectors), return_exceptions=True
        )
        failures: list[BaseException] = []
        for (database_id, _), result in zip(connectors, results):
            if isinstance(result, BaseException):
                LOG.error("Failed to disconnect '%s': %s", database_id, result)
                failures.append(result)
        await self.wait_closed()
        if failures:
            raise failures[0]

    async def wait_closed(self) -> None:
        """Wait until every background disconnect has finished."""

        while self._closing:
            await asyncio.gather(*self._closing)

    async def _establish(self, config: DatabaseConfig) -> InstrumentedConnector:
        database_id = config.id
        try:
            raw = self._registry.create(config)
            await raw.connect()
        except BaseException:
            async with self._lock:
                self._release_pending(database_id)
            raise
        connector = InstrumentedConnector(raw, self._tracker, database_id)
        async with self._lock:
            self._release_pending(database_id)
            current = self._configs.get(database_id)
            if current is config:
                self._connectors[database_id] = connector
                LOG.debug("Connector for '%s' established", database_id)
                return connector
        # The configuration changed or disappeared while connecting.
        await self._discard(database_id, connector)
        if current is None:
            raise UnknownDatabaseError(database_id)
        return await self.get_connector(database_id)

    def _release_pending(self, database_id: str) -> None:
        if self._pending.get(database_id) is asyncio.current_task():
            del self._pending[database_id]

    def _discard_later(self, database_id: str, connector: Connector) -> None:
        task = asyncio.ensure_future(self._discard(database_id, connector))
        self._closing.add(task)
        task.add_done_callback(self._closing.discard)

    @staticmethod
    async def _discard(database_id: str, connector: Connector) -> None:
        try:
            await connector.disconnect()
        except Exception as exc:
            LOG.debug("Ignoring disconnect failure for '%s': %s", database_id, exc)


def _index(databases: Iterable[DatabaseConfig]) -> dict[str, DatabaseConfig]:
    indexed: dict[str, DatabaseConfig] = {}
    for config in databases:
        if config.id in indexed:
            raise ValueError(f"Duplicate database id '{config.id}'")
        indexed[config.id] = config
    return indexed


__all__ = ["ConnectorManager", "ReconcileResult"]
