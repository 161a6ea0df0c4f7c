"""Builders for navigation-trail entries."""

from __future__ import annotations

import secrets
import time
from typing import Any

from .models import DBType
from .state.state import ViewHistoryEntry, ViewState


def _history_id() -> str:
    return f"history-{int(time.time() * 1000)}-{secrets.token_urlsafe(6)[:7]}"


def create_history_entry(view: ViewState, summary: str, data: dict[str, Any] | None = None) -> ViewHistoryEntry:
    return ViewHistoryEntry(
        id=_history_id(),
        view=view,
        timestamp=time.time(),
        summary=summary,
        data=data,
    )


def db_type_selected(db_type: DBType) -> ViewHistoryEntry:
    return create_history_entry(ViewState.DB_TYPE, f"Selected {db_type.value}", {"db_type": db_type})


def connection_established(connection_name: str, db_type: DBType) -> ViewHistoryEntry:
    return create_history_entry(
        ViewState.CONNECTION,
        f"Connected to {connection_name}",
        {"connection_name": connection_name, "db_type": db_type},
    )


def tables_loaded(count: int) -> ViewHistoryEntry:
    return create_history_entry(ViewState.TABLES, f"Loaded {count} tables")


def table_selected(table_name: str) -> ViewHistoryEntry:
    return create_history_entry(ViewState.TABLES, f"Selected table: {table_name}", {"table_name": table_name})


def columns_viewed(table_name: str, column_count: int) -> ViewHistoryEntry:
    return create_history_entry(
        ViewState.COLUMNS,
        f"Viewing {column_count} columns in {table_name}",
        {"table_name": table_name},
    )


def data_preview(table_name: str) -> ViewHistoryEntry:
    return create_history_entry(ViewState.DATA_PREVIEW, f"Preview data from {table_name}", {"table_name": table_name})


def query_executed(query: str) -> ViewHistoryEntry:
    return create_history_entry(ViewState.QUERY, "Executed query", {"query": query})


def search_performed(term: str) -> ViewHistoryEntry:
    return create_history_entry(ViewState.SEARCH, f"Searched for: {term}", {"query": term})


__all__ = [
    "columns_viewed",
    "connection_established",
    "create_history_entry",
    "data_preview",
    "db_type_selected",
    "query_executed",
    "search_performed",
    "table_selected",
    "tables_loaded",
]
