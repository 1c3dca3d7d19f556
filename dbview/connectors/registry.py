"""Registry mapping database kinds to connector factories."""

from __future__ import annotations

from typing import Callable, Iterable

from ..config import DatabaseConfig
from ..errors import CapabilityNotSupportedError
from .base import Connector
from .clickhouse import ClickHouseConnector
from .postgres import PostgresConnector

ConnectorFactory = Callable[[DatabaseConfig], Connector]


class ConnectorRegistry:
    """Collects connector factories keyed by database kind."""

    def __init__(self) -> None:
        self._factories: dict[str, ConnectorFactory] = {}

    def register(self, kind: str, factory: ConnectorFactory) -> None:
        """Register (or replace) the factory for ``kind``."""

        if not kind:
            raise ValueError("Connector kind must not be empty")
        self._factories[kind] = factory

    def register_many(self, factories: Iterable[tuple[str, ConnectorFactory]]) -> None:
        for kind, factory in factories:
            self.register(kind, factory)

    def kinds(self) -> list[str]:
        """Return the registered kinds."""

        return list(self._factories)

    def create(self, config: DatabaseConfig) -> Connector:
        """Build an unconnected connector for ``config``."""

        factory = self._factories.get(config.kind)
        if factory is None:
            raise CapabilityNotSupportedError(f"Unsupported database kind: {config.kind}")
        return factory(config)


def default_registry() -> ConnectorRegistry:
    """Registry with the built-in PostgreSQL and ClickHouse connectors."""

    registry = ConnectorRegistry()
    registry.register_many(
        (
            (PostgresConnector.kind, PostgresConnector),
            (ClickHouseConnector.kind, ClickHouseConnector),
        )
    )
    return registry


__all__ = ["ConnectorFactory", "ConnectorRegistry", "default_registry"]
