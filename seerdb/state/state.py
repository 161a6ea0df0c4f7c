"""The application state tree."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

from ..models import (
    ColumnInfo,
    ConnectionProfile,
    DataRow,
    DBType,
    QueryHistoryItem,
    SortConfig,
    TableInfo,
)


class ViewState(str, Enum):
    DB_TYPE = "DB_TYPE"
    CONNECTION = "CONNECTION"
    SAVED_CONNECTIONS = "SAVED_CONNECTIONS"
    TABLES = "TABLES"
    COLUMNS = "COLUMNS"
    DATA_PREVIEW = "DATA_PREVIEW"
    QUERY = "QUERY"
    QUERY_HISTORY = "QUERY_HISTORY"
    ROW_DETAIL = "ROW_DETAIL"
    RELATIONSHIPS = "RELATIONSHIPS"
    INDEXES = "INDEXES"
    SEARCH = "SEARCH"
    CONTEXT = "CONTEXT"


class NotificationLevel(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class ColumnVisibilityMode(str, Enum):
    SMART = "smart"
    ALL = "all"
    MINIMAL = "minimal"


@dataclass(frozen=True, slots=True)
class Notification:
    id: str
    message: str
    level: NotificationLevel
    created_at: float


@dataclass(frozen=True, slots=True)
class ViewHistoryEntry:
    """One step in the navigation trail."""

    id: str
    view: ViewState
    timestamp: float
    summary: str
    data: Mapping[str, Any] | None = None


@dataclass(frozen=True, slots=True)
class BreadcrumbSegment:
    label: str
    view: ViewState


@dataclass(frozen=True, slots=True)
class AppState:
    """Immutable snapshot; only the reducer produces new ones."""

    current_view: ViewState = ViewState.DB_TYPE
    db_type: DBType | None = None
    active_connection: ConnectionProfile | None = None
    saved_connections: tuple[ConnectionProfile, ...] = ()
    tables: tuple[TableInfo, ...] = ()
    columns: tuple[ColumnInfo, ...] = ()
    selected_table: TableInfo | None = None
    data_rows: tuple[DataRow, ...] = ()
    has_more_rows: bool = False
    current_offset: int = 0
    selected_row_index: int | None = None
    expanded_row: DataRow | None = None
    column_visibility_mode: ColumnVisibilityMode = ColumnVisibilityMode.SMART
    refreshing_table_key: str | None = None
    refresh_timestamps: Mapping[str, float] = field(default_factory=dict)
    notifications: tuple[Notification, ...] = ()
    query_history: tuple[QueryHistoryItem, ...] = ()
    loading: bool = False
    error_message: str | None = None
    info_message: str | None = None
    show_command_hints: bool = False
    sort_config: SortConfig = SortConfig()
    sort_picker_mode: bool = False
    sort_picker_column_index: int = 0
    filter_value: str = ""
    search_term: str = ""
    search_results: tuple[DataRow, ...] = ()
    search_total_count: int = 0
    search_offset: int = 0
    search_has_more: bool = False
    search_selected_index: int | None = None
    view_history: tuple[ViewHistoryEntry, ...] = ()
    breadcrumbs: tuple[BreadcrumbSegment, ...] = ()


INITIAL_STATE = AppState()


def table_cache_key(table: TableInfo | None) -> str | None:
    return table.cache_key if table is not None else None


__all__ = [
    "AppState",
    "BreadcrumbSegment",
    "ColumnVisibilityMode",
    "INITIAL_STATE",
    "Notification",
    "NotificationLevel",
    "ViewHistoryEntry",
    "ViewState",
    "table_cache_key",
]
