"""Actions understood by the reducer; one frozen dataclass per transition."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, Sequence, Union

from ..database.errors import DatabaseError
from ..models import (
    ColumnInfo,
    ConnectionProfile,
    DataRow,
    DBType,
    QueryHistoryItem,
    SortConfig,
    TableInfo,
)
from .state import BreadcrumbSegment, ColumnVisibilityMode, Notification, ViewHistoryEntry, ViewState


@dataclass(frozen=True, slots=True)
class SetView:
    view: ViewState


@dataclass(frozen=True, slots=True)
class SelectDBType:
    db_type: DBType


@dataclass(frozen=True, slots=True)
class SetDBType:
    db_type: DBType


@dataclass(frozen=True, slots=True)
class StartLoading:
    pass


@dataclass(frozen=True, slots=True)
class StopLoading:
    pass


@dataclass(frozen=True, slots=True)
class SetError:
    error: str | DatabaseError


@dataclass(frozen=True, slots=True)
class ClearError:
    pass


@dataclass(frozen=True, slots=True)
class SetInfo:
    message: str


@dataclass(frozen=True, slots=True)
class ClearInfo:
    pass


@dataclass(frozen=True, slots=True)
class SetActiveConnection:
    connection: ConnectionProfile


@dataclass(frozen=True, slots=True)
class ClearActiveConnection:
    pass


@dataclass(frozen=True, slots=True)
class SetSavedConnections:
    connections: Sequence[ConnectionProfile]


@dataclass(frozen=True, slots=True)
class AddSavedConnection:
    connection: ConnectionProfile


@dataclass(frozen=True, slots=True)
class UpdateSavedConnection:
    connection: ConnectionProfile


@dataclass(frozen=True, slots=True)
class RemoveSavedConnection:
    connection_id: str


@dataclass(frozen=True, slots=True)
class SetTables:
    tables: Sequence[TableInfo]


@dataclass(frozen=True, slots=True)
class SetColumns:
    columns: Sequence[ColumnInfo]


@dataclass(frozen=True, slots=True)
class SetSelectedTable:
    table: TableInfo


@dataclass(frozen=True, slots=True)
class ClearSelectedTable:
    pass


@dataclass(frozen=True, slots=True)
class UpdateDataRowValue:
    """Patch one cell; ``row_index=None`` targets the selected row."""

    column_name: str
    value: Any
    row_index: int | None = None
    table: TableInfo | None = None


@dataclass(frozen=True, slots=True)
class SetDataRows:
    rows: Sequence[DataRow]


@dataclass(frozen=True, slots=True)
class SetHasMoreRows:
    has_more: bool


@dataclass(frozen=True, slots=True)
class SetCurrentOffset:
    offset: int


@dataclass(frozen=True, slots=True)
class SetSelectedRowIndex:
    index: int | None


@dataclass(frozen=True, slots=True)
class SetExpandedRow:
    row: DataRow | None


@dataclass(frozen=True, slots=True)
class SetColumnVisibilityMode:
    mode: ColumnVisibilityMode


@dataclass(frozen=True, slots=True)
class SetRefreshingTable:
    key: str | None


@dataclass(frozen=True, slots=True)
class SetRefreshTimestamp:
    key: str
    timestamp: float


@dataclass(frozen=True, slots=True)
class AddNotification:
    notification: Notification


@dataclass(frozen=True, slots=True)
class RemoveNotification:
    id: str


@dataclass(frozen=True, slots=True)
class SetQueryHistory:
    history: Sequence[QueryHistoryItem]


@dataclass(frozen=True, slots=True)
class AddQueryHistoryItem:
    item: QueryHistoryItem


@dataclass(frozen=True, slots=True)
class SetSortConfig:
    sort_config: SortConfig


@dataclass(frozen=True, slots=True)
class EnterSortPickerMode:
    pass


@dataclass(frozen=True, slots=True)
class ExitSortPickerMode:
    pass


@dataclass(frozen=True, slots=True)
class SetSortPickerColumn:
    column_index: int


@dataclass(frozen=True, slots=True)
class SetFilterValue:
    filter_value: str


@dataclass(frozen=True, slots=True)
class ExportData:
    """Request for an export; handled by the export effect, not the reducer."""

    format: Literal["csv", "json", "toon"]
    include_headers: bool = True


@dataclass(frozen=True, slots=True)
class SetShowCommandHints:
    show: bool


@dataclass(frozen=True, slots=True)
class SetSearchTerm:
    term: str


@dataclass(frozen=True, slots=True)
class SetSearchResultsPage:
    rows: Sequence[DataRow]
    total_count: int
    offset: int
    has_more: bool


@dataclass(frozen=True, slots=True)
class SetSearchSelectedIndex:
    index: int | None


@dataclass(frozen=True, slots=True)
class ClearSearch:
    pass


@dataclass(frozen=True, slots=True)
class AddViewHistoryEntry:
    entry: ViewHistoryEntry


@dataclass(frozen=True, slots=True)
class SetBreadcrumbs:
    breadcrumbs: Sequence[BreadcrumbSegment]


@dataclass(frozen=True, slots=True)
class AddBreadcrumb:
    breadcrumb: BreadcrumbSegment


@dataclass(frozen=True, slots=True)
class ClearHistory:
    pass


Action = Union[
    SetView,
    SelectDBType,
    SetDBType,
    StartLoading,
    StopLoading,
    SetError,
    ClearError,
    SetInfo,
    ClearInfo,
    SetActiveConnection,
    ClearActiveConnection,
    SetSavedConnections,
    AddSavedConnection,
    UpdateSavedConnection,
    RemoveSavedConnection,
    SetTables,
    SetColumns,
    SetSelectedTable,
    ClearSelectedTable,
    UpdateDataRowValue,
    SetDataRows,
    SetHasMoreRows,
    SetCurrentOffset,
    SetSelectedRowIndex,
    SetExpandedRow,
    SetColumnVisibilityMode,
    SetRefreshingTable,
    SetRefreshTimestamp,
    AddNotification,
    RemoveNotification,
    SetQueryHistory,
    AddQueryHistoryItem,
    SetSortConfig,
    EnterSortPickerMode,
    ExitSortPickerMode,
    SetSortPickerColumn,
    SetFilterValue,
    ExportData,
    SetShowCommandHints,
    SetSearchTerm,
    SetSearchResultsPage,
    SetSearchSelectedIndex,
    ClearSearch,
    AddViewHistoryEntry,
    SetBreadcrumbs,
    AddBreadcrumb,
    ClearHistory,
]

__all__ = [
    "Action",
    "AddBreadcrumb",
    "AddNotification",
    "AddQueryHistoryItem",
    "AddSavedConnection",
    "AddViewHistoryEntry",
    "ClearActiveConnection",
    "ClearError",
    "ClearHistory",
    "ClearInfo",
    "ClearSearch",
    "ClearSelectedTable",
    "EnterSortPickerMode",
    "ExitSortPickerMode",
    "ExportData",
    "RemoveNotification",
    "RemoveSavedConnection",
    "SelectDBType",
    "SetActiveConnection",
    "SetBreadcrumbs",
    "SetColumnVisibilityMode",
    "SetColumns",
    "SetCurrentOffset",
    "SetDBType",
    "SetDataRows",
    "SetError",
    "SetExpandedRow",
    "SetFilterValue",
    "SetHasMoreRows",
    "SetInfo",
    "SetQueryHistory",
    "SetRefreshTimestamp",
    "SetRefreshingTable",
    "SetSavedConnections",
    "SetSearchResultsPage",
    "SetSearchSelectedIndex",
    "SetSearchTerm",
    "SetSelectedRowIndex",
    "SetSelectedTable",
    "SetShowCommandHints",
    "SetSortConfig",
    "SetSortPickerColumn",
    "SetTables",
    "SetView",
    "StartLoading",
    "StopLoading",
    "UpdateDataRowValue",
    "UpdateSavedConnection",
]
