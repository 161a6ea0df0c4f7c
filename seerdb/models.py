"""Shared dataclasses used across the database, persistence and state modules."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping

from .config import PoolOptions

DataRow = Mapping[str, Any]


class DBType(str, Enum):
    """The closed set of supported SQL dialects."""

    POSTGRESQL = "postgresql"
    MYSQL = "mysql"
    SQLITE = "sqlite"

    @classmethod
    def parse(cls, value: object) -> DBType | None:
        """Return the member for ``value`` or ``None`` when unsupported."""

        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return None


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"
    OFF = "off"


class TableType(str, Enum):
    TABLE = "table"
    VIEW = "view"
    MATERIALIZED_VIEW = "materialized-view"


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string with millisecond precision."""

    return datetime.now(tz=timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True, slots=True)
class ConnectionProfile:
    """A saved connection; ``connection_string`` holds the real password in memory."""

    id: str
    name: str
    type: DBType
    connection_string: str
    created_at: str
    updated_at: str


@dataclass(frozen=True, slots=True)
class QueryHistoryItem:
    """One executed statement, successful or not."""

    id: str
    connection_id: str
    query: str
    executed_at: str
    duration_ms: int
    row_count: int
    error: str | None = None


@dataclass(frozen=True, slots=True)
class TableInfo:
    name: str
    schema: str | None = None
    type: TableType = TableType.TABLE

    @property
    def cache_key(self) -> str:
        """Key used for refresh throttling and stale-result tracking."""

        return f"{self.schema}|{self.name}" if self.schema else self.name


@dataclass(frozen=True, slots=True)
class ColumnInfo:
    """Driver-neutral column metadata."""

    name: str
    data_type: str
    nullable: bool
    default_value: str | None = None
    is_primary_key: bool = False
    is_foreign_key: bool = False
    foreign_table: str | None = None
    foreign_column: str | None = None


@dataclass(frozen=True, slots=True)
class SortConfig:
    column: str | None = None
    direction: SortDirection = SortDirection.OFF

    @property
    def active(self) -> bool:
        return bool(self.column) and self.direction is not SortDirection.OFF


@dataclass(frozen=True, slots=True)
class QueryResult:
    """Normalized driver output."""

    rows: tuple[dict[str, Any], ...] = ()
    row_count: int = 0
    fields: tuple[str, ...] | None = None


@dataclass(frozen=True, slots=True)
class DatabaseConfig:
    """What a caller hands the connection factory."""

    type: DBType
    connection_string: str
    pool: PoolOptions | None = None


__all__ = [
    "ColumnInfo",
    "ConnectionProfile",
    "DBType",
    "DataRow",
    "DatabaseConfig",
    "QueryHistoryItem",
    "QueryResult",
    "SortConfig",
    "SortDirection",
    "TableInfo",
    "TableType",
    "utc_now_iso",
]
