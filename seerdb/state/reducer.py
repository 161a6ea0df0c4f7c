"""Pure ``(AppState, Action) -> AppState`` transition function."""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Callable, TypeVar

from . import actions as a
from .state import INITIAL_STATE, AppState, ViewState, table_cache_key

HISTORY_LIMIT = 100

_A = TypeVar("_A")
Handler = Callable[[AppState, Any], AppState]
_HANDLERS: dict[type, Handler] = {}


def _handles(action_type: type[_A]) -> Callable[[Callable[[AppState, _A], AppState]], Callable[[AppState, _A], AppState]]:
    def register(func: Callable[[AppState, _A], AppState]) -> Callable[[AppState, _A], AppState]:
        _HANDLERS[action_type] = func
        return func

    return register


def reduce(state: AppState | None, action: object) -> AppState:
    """Apply ``action``; an action without a handler returns ``state`` itself."""

    current = INITIAL_STATE if state is None else state
    handler = _HANDLERS.get(type(action))
    if handler is None:
        return current
    return handler(current, action)


_CLEARED_SEARCH: dict[str, Any] = {
    "search_term": "",
    "search_results": (),
    "search_total_count": 0,
    "search_offset": 0,
    "search_has_more": False,
    "search_selected_index": None,
}

_CLEARED_TABLE: dict[str, Any] = {
    "columns": (),
    "data_rows": (),
    "has_more_rows": False,
    "current_offset": 0,
}


@_handles(a.SetView)
def _set_view(state: AppState, action: a.SetView) -> AppState:
    return replace(state, current_view=action.view, info_message=None, error_message=None)


@_handles(a.SelectDBType)
def _select_db_type(state: AppState, action: a.SelectDBType) -> AppState:
    return replace(state, db_type=action.db_type, current_view=ViewState.CONNECTION)


@_handles(a.SetDBType)
def _set_db_type(state: AppState, action: a.SetDBType) -> AppState:
    return replace(state, db_type=action.db_type)


@_handles(a.StartLoading)
def _start_loading(state: AppState, action: a.StartLoading) -> AppState:
    return replace(state, loading=True)


@_handles(a.StopLoading)
def _stop_loading(state: AppState, action: a.StopLoading) -> AppState:
    return replace(state, loading=False)


@_handles(a.SetError)
def _set_error(state: AppState, action: a.SetError) -> AppState:
    message = action.error if isinstance(action.error, str) else action.error.message
    return replace(state, error_message=message, loading=False)


@_handles(a.ClearError)
def _clear_error(state: AppState, action: a.ClearError) -> AppState:
    return replace(state, error_message=None)


@_handles(a.SetInfo)
def _set_info(state: AppState, action: a.SetInfo) -> AppState:
    return replace(state, info_message=action.message)


@_handles(a.ClearInfo)
def _clear_info(state: AppState, action: a.ClearInfo) -> AppState:
    return replace(state, info_message=None)


@_handles(a.SetShowCommandHints)
def _set_show_command_hints(state: AppState, action: a.SetShowCommandHints) -> AppState:
    return replace(state, show_command_hints=action.show)


@_handles(a.SetActiveConnection)
def _set_active_connection(state: AppState, action: a.SetActiveConnection) -> AppState:
    return replace(state, active_connection=action.connection)


@_handles(a.ClearActiveConnection)
def _clear_active_connection(state: AppState, action: a.ClearActiveConnection) -> AppState:
    return replace(
        state,
        active_connection=None,
        tables=(),
        selected_table=None,
        refreshing_table_key=None,
        refresh_timestamps={},
        notifications=(),
        **_CLEARED_TABLE,
        **_CLEARED_SEARCH,
    )


@_handles(a.SetSavedConnections)
def _set_saved_connections(state: AppState, action: a.SetSavedConnections) -> AppState:
    return replace(state, saved_connections=tuple(action.connections))


@_handles(a.AddSavedConnection)
def _add_saved_connection(state: AppState, action: a.AddSavedConnection) -> AppState:
    return replace(state, saved_connections=state.saved_connections + (action.connection,))


@_handles(a.UpdateSavedConnection)
def _update_saved_connection(state: AppState, action: a.UpdateSavedConnection) -> AppState:
    if not any(conn.id == action.connection.id for conn in state.saved_connections):
        return state
    return replace(
        state,
        saved_connections=tuple(
            action.connection if conn.id == action.connection.id else conn for conn in state.saved_connections
        ),
    )


@_handles(a.RemoveSavedConnection)
def _remove_saved_connection(state: AppState, action: a.RemoveSavedConnection) -> AppState:
    return replace(
        state,
        saved_connections=tuple(conn for conn in state.saved_connections if conn.id != action.connection_id),
    )


@_handles(a.SetTables)
def _set_tables(state: AppState, action: a.SetTables) -> AppState:
    return replace(state, tables=tuple(action.tables))


@_handles(a.SetColumns)
def _set_columns(state: AppState, action: a.SetColumns) -> AppState:
    return replace(state, columns=tuple(action.columns))


@_handles(a.SetSelectedTable)
def _set_selected_table(state: AppState, action: a.SetSelectedTable) -> AppState:
    return replace(
        state,
        selected_table=action.table,
        refreshing_table_key=table_cache_key(action.table),
        **_CLEARED_TABLE,
        **_CLEARED_SEARCH,
    )


@_handles(a.ClearSelectedTable)
def _clear_selected_table(state: AppState, action: a.ClearSelectedTable) -> AppState:
    return replace(
        state,
        selected_table=None,
        refreshing_table_key=None,
        **_CLEARED_TABLE,
        **_CLEARED_SEARCH,
    )


@_handles(a.UpdateDataRowValue)
def _update_data_row_value(state: AppState, action: a.UpdateDataRowValue) -> AppState:
    index = action.row_index if action.row_index is not None else state.selected_row_index
    rows = state.data_rows
    if index is not None and 0 <= index < len(rows):
        patched = {**rows[index], action.column_name: action.value}
        rows = rows[:index] + (patched,) + rows[index + 1 :]
    expanded = state.expanded_row
    if expanded is not None:
        expanded = {**expanded, action.column_name: action.value}
    return replace(state, data_rows=rows, expanded_row=expanded)


@_handles(a.SetRefreshingTable)
def _set_refreshing_table(state: AppState, action: a.SetRefreshingTable) -> AppState:
    return replace(state, refreshing_table_key=action.key)


@_handles(a.SetRefreshTimestamp)
def _set_refresh_timestamp(state: AppState, action: a.SetRefreshTimestamp) -> AppState:
    return replace(state, refresh_timestamps={**state.refresh_timestamps, action.key: action.timestamp})


@_handles(a.SetDataRows)
def _set_data_rows(state: AppState, action: a.SetDataRows) -> AppState:
    return replace(state, data_rows=tuple(action.rows))


@_handles(a.SetHasMoreRows)
def _set_has_more_rows(state: AppState, action: a.SetHasMoreRows) -> AppState:
    return replace(state, has_more_rows=action.has_more)


@_handles(a.SetCurrentOffset)
def _set_current_offset(state: AppState, action: a.SetCurrentOffset) -> AppState:
    return replace(state, current_offset=action.offset, selected_row_index=None, expanded_row=None)


@_handles(a.SetSelectedRowIndex)
def _set_selected_row_index(state: AppState, action: a.SetSelectedRowIndex) -> AppState:
    return replace(state, selected_row_index=action.index, expanded_row=None)


@_handles(a.SetExpandedRow)
def _set_expanded_row(state: AppState, action: a.SetExpandedRow) -> AppState:
    return replace(state, expanded_row=action.row)


@_handles(a.SetColumnVisibilityMode)
def _set_column_visibility_mode(state: AppState, action: a.SetColumnVisibilityMode) -> AppState:
    return replace(state, column_visibility_mode=action.mode)


@_handles(a.AddNotification)
def _add_notification(state: AppState, action: a.AddNotification) -> AppState:
    return replace(state, notifications=state.notifications + (action.notification,))


@_handles(a.RemoveNotification)
def _remove_notification(state: AppState, action: a.RemoveNotification) -> AppState:
    return replace(state, notifications=tuple(note for note in state.notifications if note.id != action.id))


@_handles(a.SetQueryHistory)
def _set_query_history(state: AppState, action: a.SetQueryHistory) -> AppState:
    return replace(state, query_history=tuple(action.history or ()))


@_handles(a.AddQueryHistoryItem)
def _add_query_history_item(state: AppState, action: a.AddQueryHistoryItem) -> AppState:
    return replace(state, query_history=((action.item,) + state.query_history)[:HISTORY_LIMIT])


@_handles(a.SetSortConfig)
def _set_sort_config(state: AppState, action: a.SetSortConfig) -> AppState:
    return replace(state, sort_config=action.sort_config)


@_handles(a.EnterSortPickerMode)
def _enter_sort_picker_mode(state: AppState, action: a.EnterSortPickerMode) -> AppState:
    return replace(state, sort_picker_mode=True, sort_picker_column_index=0)


@_handles(a.ExitSortPickerMode)
def _exit_sort_picker_mode(state: AppState, action: a.ExitSortPickerMode) -> AppState:
    return replace(state, sort_picker_mode=False)


@_handles(a.SetSortPickerColumn)
def _set_sort_picker_column(state: AppState, action: a.SetSortPickerColumn) -> AppState:
    return replace(state, sort_picker_column_index=action.column_index)


@_handles(a.SetFilterValue)
def _set_filter_value(state: AppState, action: a.SetFilterValue) -> AppState:
    return replace(state, filter_value=action.filter_value)


@_handles(a.SetSearchTerm)
def _set_search_term(state: AppState, action: a.SetSearchTerm) -> AppState:
    return replace(state, search_term=action.term)


@_handles(a.SetSearchResultsPage)
def _set_search_results_page(state: AppState, action: a.SetSearchResultsPage) -> AppState:
    rows = tuple(action.rows)
    return replace(
        state,
        search_results=rows,
        search_total_count=action.total_count,
        search_offset=action.offset,
        search_has_more=action.has_more,
        search_selected_index=0 if rows else None,
    )


@_handles(a.SetSearchSelectedIndex)
def _set_search_selected_index(state: AppState, action: a.SetSearchSelectedIndex) -> AppState:
    return replace(state, search_selected_index=action.index)


@_handles(a.ClearSearch)
def _clear_search(state: AppState, action: a.ClearSearch) -> AppState:
    return replace(state, **_CLEARED_SEARCH)


@_handles(a.AddViewHistoryEntry)
def _add_view_history_entry(state: AppState, action: a.AddViewHistoryEntry) -> AppState:
    if state.view_history and state.view_history[-1].summary == action.entry.summary:
        return state
    return replace(state, view_history=state.view_history + (action.entry,))


@_handles(a.SetBreadcrumbs)
def _set_breadcrumbs(state: AppState, action: a.SetBreadcrumbs) -> AppState:
    return replace(state, breadcrumbs=tuple(action.breadcrumbs))


@_handles(a.AddBreadcrumb)
def _add_breadcrumb(state: AppState, action: a.AddBreadcrumb) -> AppState:
    last = state.breadcrumbs[-1] if state.breadcrumbs else None
    if last is not None and last.label == action.breadcrumb.label and last.view == action.breadcrumb.view:
        return state
    return replace(state, breadcrumbs=state.breadcrumbs + (action.breadcrumb,))


@_handles(a.ClearHistory)
def _clear_history(state: AppState, action: a.ClearHistory) -> AppState:
    return replace(state, view_history=(), breadcrumbs=())


__all__ = ["HISTORY_LIMIT", "reduce"]
