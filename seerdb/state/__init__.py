"""Application state: the state tree, actions, reducer and store."""

from .reducer import reduce
from .state import (
    INITIAL_STATE,
    AppState,
    BreadcrumbSegment,
    ColumnVisibilityMode,
    Notification,
    NotificationLevel,
    ViewHistoryEntry,
    ViewState,
)
from .store import StateStore, create_store

__all__ = [
    "AppState",
    "BreadcrumbSegment",
    "ColumnVisibilityMode",
    "INITIAL_STATE",
    "Notification",
    "NotificationLevel",
    "StateStore",
    "ViewHistoryEntry",
    "ViewState",
    "create_store",
    "reduce",
]
