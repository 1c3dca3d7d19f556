"""Shared dataclasses used across connector, tracker and guard modules."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

Row = dict[str, Any]


@dataclass(frozen=True, slots=True)
class QueryResult:
    """Rows returned by a query or write statement."""

    rows: list[Row] = field(default_factory=list)
    row_count: int = 0


@dataclass(frozen=True, slots=True)
class TableInfo:
    schema: str
    name: str
    type: str  # "table" or "view"


@dataclass(frozen=True, slots=True)
class ColumnInfo:
    name: str
    type: str
    nullable: bool
    default: str | None = None
    is_primary_key: bool = False


@dataclass(frozen=True, slots=True)
class ExplainResult:
    plan: str


@dataclass(frozen=True, slots=True)
class PerformanceSample:
    """A query whose duration reached the slow-query threshold."""

    sql: str
    duration_ms: float
    timestamp: datetime
    database_id: str


@dataclass(frozen=True, slots=True)
class GuardVerdict:
    """Outcome of the read-only guard."""

    valid: bool
    violating_keyword: str | None = None
    reason: str | None = None


__all__ = [
    "ColumnInfo",
    "ExplainResult",
    "GuardVerdict",
    "PerformanceSample",
    "QueryResult",
    "Row",
    "TableInfo",
]
