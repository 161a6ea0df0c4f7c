"""Async operations that touch the database or disk and report through the store.

Every effect follows the same shape: signal loading, open a connection scoped
to the call, run the queries, dispatch the outcome, close the connection
(ignoring close failures) and stop loading.  Failures become a ``SetError``
action plus a failed :class:`EffectResult`; nothing raises past an effect.
"""

from __future__ import annotations

import asyncio
import json
import logging
import secrets
import time
from contextlib import asynccontextmanager, contextmanager
from dataclasses import dataclass, replace
from decimal import Decimal
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Generic, Iterator, Protocol, Sequence, TypeVar

from ..config import AppConfig
from ..database import (
    DatabaseConnection,
    DatabaseError,
    build_column_introspection_query,
    build_search_queries,
    build_search_where_clause,
    build_table_data_query,
    build_tables_query,
    build_update_statement,
    create_database_connection,
    extract_count,
    map_column_row,
    map_table_row,
    parameterize,
    select_search_order_column,
)
from ..database.factory import ConnectionFactory
from ..history import connection_established, tables_loaded
from ..models import (
    ColumnInfo,
    ConnectionProfile,
    DataRow,
    DatabaseConfig,
    DBType,
    QueryHistoryItem,
    QueryResult,
    SortConfig,
    SortDirection,
    TableInfo,
    utc_now_iso,
)
from ..naming import generate_unique_connection_id, generate_unique_connection_name, validate_connection_name_complete
from ..persistence import Persistence
from . import actions as a
from .state import AppState, BreadcrumbSegment, Notification, NotificationLevel, ViewState
from .store import StateStore

LOG = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class EffectResult(Generic[T]):
    """Outcome of an effect; ``stale`` marks a result discarded for a newer one."""

    ok: bool
    value: T | None = None
    error: str | None = None
    stale: bool = False


class Exporter(Protocol):
    """Writes rows somewhere and returns the path it wrote."""

    async def export(
        self,
        rows: Sequence[DataRow],
        columns: Sequence[ColumnInfo],
        *,
        format: str,
        include_headers: bool,
    ) -> str: ...


def interpret_edited_input(value: str, column: ColumnInfo | None = None) -> Any:
    """``NULL`` (any case, surrounding blanks ignored) means SQL NULL."""

    if value.strip().upper() == "NULL":
        return None
    return value


def values_are_equal(left: Any, right: Any) -> bool:
    if left is None and right is None:
        return True
    if left is None or right is None:
        return False
    if isinstance(left, (dict, list, tuple)) or isinstance(right, (dict, list, tuple)):
        try:
            return json.dumps(left, sort_keys=True, default=str) == json.dumps(right, sort_keys=True, default=str)
        except (TypeError, ValueError):
            return False
    return bool(left == right)


def _display(value: Any) -> str:
    return "" if value is None else str(value)


def _sort_key(value: Any) -> tuple[int, Any]:
    if isinstance(value, (int, float, Decimal)):
        return (0, value)
    return (1, str(value).lower())


def process_rows(
    rows: Sequence[DataRow],
    sort_config: SortConfig,
    filter_value: str,
    columns: Sequence[ColumnInfo],
) -> list[DataRow]:
    """Apply the in-memory filter and sort used by the data view and exports.

    Rows with a ``None`` sort value always go last.
    """

    result = list(rows)
    needle = filter_value.strip().lower()
    if needle:
        names = [column.name for column in columns]
        result = [row for row in result if any(needle in _display(row.get(name)).lower() for name in names)]
    if sort_config.active and sort_config.column:
        key = sort_config.column
        present = [row for row in result if row.get(key) is not None]
        missing = [row for row in result if row.get(key) is None]
        present.sort(key=lambda row: _sort_key(row[key]), reverse=sort_config.direction is SortDirection.DESC)
        result = present + missing
    return result


def _message(exc: BaseException, fallback: str) -> str:
    text = str(exc)
    return text or fallback


def _random_id() -> str:
    return secrets.token_urlsafe(16)[:21]


class Effects:
    """Runs effects against one :class:`StateStore`."""

    def __init__(
        self,
        store: StateStore,
        persistence: Persistence,
        *,
        config: AppConfig | None = None,
        connection_factory: ConnectionFactory = create_database_connection,
        exporter: Exporter | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.persistence = persistence
        self.config = config or AppConfig(data_dir=persistence.data_dir)
        self._connection_factory = connection_factory
        self._exporter = exporter
        self._clock = clock
        self._generations: dict[str, int] = {}

    @property
    def state(self) -> AppState:
        return self.store.state

    def dispatch(self, action: a.Action) -> None:
        self.store.dispatch(action)

    def active_config(self) -> DatabaseConfig | None:
        """Connection settings for the active connection, if any."""

        state = self.state
        if state.active_connection is None:
            return None
        return DatabaseConfig(
            type=state.db_type or state.active_connection.type,
            connection_string=state.active_connection.connection_string,
            pool=self.config.pool_options(),
        )

    # -- plumbing -----------------------------------------------------------

    @contextmanager
    def _loading(self) -> Iterator[None]:
        self.dispatch(a.StartLoading())
        try:
            yield
        finally:
            self.dispatch(a.StopLoading())

    @asynccontextmanager
    async def _connection(self, config: DatabaseConfig) -> AsyncIterator[DatabaseConnection]:
        connection = self._connection_factory(config)
        try:
            await connection.connect()
            yield connection
        finally:
            try:
                await connection.close()
            except Exception:
                LOG.warning("Ignoring connection close failure", exc_info=True, extra={"dialect": config.type.value})

    def _fail(self, error: BaseException | str, fallback: str = "") -> EffectResult[Any]:
        if isinstance(error, str):
            message = error
        else:
            message = _message(error, fallback)
            LOG.warning("Effect failed: %s", message, extra={"error_type": type(error).__name__})
        self.dispatch(a.SetError(message))
        return EffectResult(ok=False, error=message)

    def _notify(self, message: str, level: NotificationLevel) -> None:
        self.dispatch(
            a.AddNotification(
                Notification(id=_random_id(), message=message, level=level, created_at=self._clock())
            )
        )

    def _stamp(self, key: str) -> int:
        generation = self._generations.get(key, 0) + 1
        self._generations[key] = generation
        return generation

    def _is_current(self, key: str, generation: int) -> bool:
        if self._generations.get(key) == generation:
            return True
        LOG.info("Discarding stale result", extra={"key": key, "generation": generation})
        return False

    # -- startup / persistence ----------------------------------------------

    async def initialize_app(self) -> EffectResult[None]:
        """Load saved connections and history; re-save when cleanup happened."""

        with self._loading():
            try:
                loaded, history = await asyncio.gather(
                    self.persistence.connections.load(),
                    self.persistence.history.load(),
                )
                self.dispatch(a.SetSavedConnections(loaded.records))
                self.dispatch(a.SetQueryHistory(history))
                if loaded.normalized_count > 0:
                    noun = "connection" if loaded.normalized_count == 1 else "connections"
                    self._notify(f"Normalized {loaded.normalized_count} legacy {noun}.", NotificationLevel.INFO)
                if loaded.skipped_count > 0:
                    noun = "entry" if loaded.skipped_count == 1 else "entries"
                    self._notify(
                        f"Skipped {loaded.skipped_count} invalid connection {noun}.", NotificationLevel.WARNING
                    )
                if loaded.normalized_count > 0 or loaded.skipped_count > 0:
                    await self.persistence.connections.save(loaded.records)
            except Exception as exc:
                return self._fail(exc, "Initialization failed.")
        return EffectResult(ok=True)

    async def persist_connections(
        self, profiles: Sequence[ConnectionProfile], *, flush: bool = False
    ) -> EffectResult[None]:
        try:
            await self.persistence.connections.save(profiles, flush=flush)
        except Exception as exc:
            return self._fail(exc, "Failed to save connections.")
        return EffectResult(ok=True)

    # -- connections --------------------------------------------------------

    async def connect_to_database(self, config: DatabaseConfig) -> EffectResult[ConnectionProfile]:
        state = self.state
        self.dispatch(a.SetDBType(config.type))
        with self._loading():
            try:
                async with self._connection(config):
                    pass

                existing = next(
                    (
                        conn
                        for conn in state.saved_connections
                        if conn.connection_string == config.connection_string and conn.type == config.type
                    ),
                    None,
                )
                now = utc_now_iso()
                if existing is not None:
                    profile = replace(existing, updated_at=now)
                else:
                    profile = ConnectionProfile(
                        id=generate_unique_connection_id(state.saved_connections),
                        name=generate_unique_connection_name(
                            f"{config.type.value} connection", config.type, state.saved_connections
                        ),
                        type=config.type,
                        connection_string=config.connection_string,
                        created_at=now,
                        updated_at=now,
                    )

                self.dispatch(a.SetActiveConnection(profile))
                self.dispatch(a.SetInfo("Database connection established."))
                self.dispatch(a.AddViewHistoryEntry(connection_established(profile.name, profile.type)))
                self.dispatch(
                    a.SetBreadcrumbs(
                        (
                            BreadcrumbSegment(config.type.value.upper(), ViewState.DB_TYPE),
                            BreadcrumbSegment(profile.name, ViewState.CONNECTION),
                            BreadcrumbSegment("Tables", ViewState.TABLES),
                        )
                    )
                )
                self.dispatch(a.SetView(ViewState.TABLES))

                if existing is not None:
                    self.dispatch(a.UpdateSavedConnection(profile))
                else:
                    self.dispatch(a.AddSavedConnection(profile))
                await self.persist_connections(self.state.saved_connections)

                tables = await self.fetch_tables(config)
                if tables.ok and tables.value:
                    self.dispatch(a.AddViewHistoryEntry(tables_loaded(len(tables.value))))
            except DatabaseError as exc:
                return self._fail(exc, "Failed to connect to database.")
            except Exception:
                LOG.exception("Unexpected failure while connecting", extra={"dialect": config.type.value})
                return self._fail("Failed to connect to database.")
        LOG.info("Connected", extra={"connection": profile.id, "dialect": profile.type.value})
        return EffectResult(ok=True, value=profile)

    async def add_saved_connection(
        self, name: str, db_type: DBType, connection_string: str
    ) -> EffectResult[ConnectionProfile]:
        """Validate and save a connection without connecting to it."""

        state = self.state
        trimmed = connection_string.strip()
        if not trimmed:
            self._notify("Connection string cannot be empty.", NotificationLevel.WARNING)
            return EffectResult(ok=False, error="Connection string cannot be empty.")
        check = validate_connection_name_complete(name.strip(), state.saved_connections)
        if not check.is_valid:
            message = check.error or "Invalid connection name."
            if check.suggestion:
                message += f' Suggestion: "{check.suggestion}"'
            self._notify(message, NotificationLevel.WARNING)
            return EffectResult(ok=False, error=message)
        now = utc_now_iso()
        profile = ConnectionProfile(
            id=generate_unique_connection_id(state.saved_connections),
            name=name.strip(),
            type=db_type,
            connection_string=trimmed,
            created_at=now,
            updated_at=now,
        )
        self.dispatch(a.AddSavedConnection(profile))
        persisted = await self.persist_connections(self.state.saved_connections)
        if not persisted.ok:
            return EffectResult(ok=False, value=profile, error=persisted.error)
        self._notify("Saved connection added.", NotificationLevel.INFO)
        return EffectResult(ok=True, value=profile)

    async def remove_saved_connection(self, connection_id: str) -> EffectResult[None]:
        state = self.state
        if not any(conn.id == connection_id for conn in state.saved_connections):
            return EffectResult(ok=True)
        self.dispatch(a.RemoveSavedConnection(connection_id))
        if state.active_connection is not None and state.active_connection.id == connection_id:
            self.dispatch(a.ClearActiveConnection())
        persisted = await self.persist_connections(self.state.saved_connections)
        if not persisted.ok:
            return persisted
        self._notify("Removed saved connection.", NotificationLevel.INFO)
        return EffectResult(ok=True)

    async def update_saved_connection(
        self,
        connection_id: str,
        *,
        name: str | None = None,
        connection_string: str | None = None,
        db_type: DBType | str | None = None,
    ) -> EffectResult[ConnectionProfile]:
        """Rename or re-point a saved connection; reconnects when the active one changed."""

        state = self.state
        existing = next((conn for conn in state.saved_connections if conn.id == connection_id), None)
        if existing is None:
            return EffectResult(ok=False, error="Connection not found.")

        def warn(message: str, level: NotificationLevel = NotificationLevel.WARNING) -> EffectResult[ConnectionProfile]:
            self._notify(message, level)
            return EffectResult(ok=False, error=message)

        new_name = name.strip() if name is not None else None
        new_string = connection_string.strip() if connection_string is not None else None

        if new_name is not None:
            if not new_name:
                return warn("Connection name cannot be empty.")
            check = validate_connection_name_complete(new_name, state.saved_connections, connection_id)
            if not check.is_valid:
                message = check.error or "Invalid connection name."
                if check.suggestion:
                    message += f' Suggestion: "{check.suggestion}"'
                return warn(message)
        if new_string is not None and not new_string:
            return warn("Connection string cannot be empty.")

        new_type: DBType | None = None
        if db_type is not None:
            new_type = DBType.parse(db_type)
            if new_type is None:
                return warn("Unsupported database type.")
        type_changed = new_type is not None and new_type is not existing.type
        string_changed = new_string is not None and new_string != existing.connection_string
        name_changed = new_name is not None and new_name != existing.name

        if not (name_changed or string_changed or type_changed):
            return warn("No changes detected.", NotificationLevel.INFO)

        updated = replace(
            existing,
            name=new_name if new_name is not None else existing.name,
            connection_string=new_string if new_string is not None else existing.connection_string,
            type=new_type if type_changed and new_type is not None else existing.type,
            updated_at=utc_now_iso(),
        )
        self.dispatch(a.UpdateSavedConnection(updated))
        is_active = state.active_connection is not None and state.active_connection.id == connection_id
        if is_active:
            self.dispatch(a.SetActiveConnection(updated))
        persisted = await self.persist_connections(self.state.saved_connections)
        if not persisted.ok:
            return EffectResult(ok=False, value=updated, error=persisted.error)
        self._notify("Saved connection updated.", NotificationLevel.INFO)

        if is_active and (string_changed or type_changed):
            self._notify("Connection details changed; reconnecting...", NotificationLevel.INFO)
            reconnect = await self.connect_to_database(
                DatabaseConfig(
                    type=updated.type,
                    connection_string=updated.connection_string,
                    pool=self.config.pool_options(),
                )
            )
            if not reconnect.ok:
                return EffectResult(ok=False, value=updated, error=reconnect.error)
        return EffectResult(ok=True, value=updated)

    # -- metadata and rows --------------------------------------------------

    async def fetch_tables(self, config: DatabaseConfig) -> EffectResult[tuple[TableInfo, ...]]:
        generation = self._stamp("tables")
        with self._loading():
            try:
                async with self._connection(config) as connection:
                    result = await connection.query(build_tables_query(config.type))
            except Exception as exc:
                return self._fail(exc, "Failed to fetch tables.")
            tables = tuple(map_table_row(row) for row in result.rows)
            if not self._is_current("tables", generation):
                return EffectResult(ok=True, value=tables, stale=True)
            self.dispatch(a.SetTables(tables))
        return EffectResult(ok=True, value=tables)

    async def fetch_columns(self, config: DatabaseConfig, table: TableInfo) -> EffectResult[tuple[ColumnInfo, ...]]:
        key = f"columns:{table.cache_key}"
        generation = self._stamp(key)
        with self._loading():
            try:
                sql, params = build_column_introspection_query(config.type, table)
                async with self._connection(config) as connection:
                    result = await connection.query(sql, params)
            except Exception as exc:
                return self._fail(exc, "Failed to fetch columns.")
            columns = tuple(map_column_row(config.type, row) for row in result.rows)
            if not self._is_current(key, generation):
                return EffectResult(ok=True, value=columns, stale=True)
            self.dispatch(a.SetColumns(columns))
        return EffectResult(ok=True, value=columns)

    async def fetch_table_data(
        self,
        config: DatabaseConfig,
        table: TableInfo,
        *,
        offset: int = 0,
        limit: int | None = None,
    ) -> EffectResult[tuple[DataRow, ...]]:
        offset = max(offset, 0)
        limit = max(limit if limit is not None else self.config.page_size, 1)
        key = f"rows:{table.cache_key}"
        generation = self._stamp(key)
        with self._loading():
            try:
                sql = build_table_data_query(config.type, table, limit, offset, self.state.sort_config)
                async with self._connection(config) as connection:
                    result = await connection.query(sql)
            except Exception as exc:
                return self._fail(exc, "Failed to fetch rows.")
            if not self._is_current(key, generation):
                return EffectResult(ok=True, value=result.rows, stale=True)
            self.dispatch(a.SetDataRows(result.rows))
            self.dispatch(a.SetHasMoreRows(len(result.rows) == limit))
            self.dispatch(a.SetCurrentOffset(offset))
        return EffectResult(ok=True, value=result.rows)

    async def refresh_table_data(
        self, config: DatabaseConfig, table: TableInfo, *, force: bool = False
    ) -> EffectResult[tuple[DataRow, ...]]:
        """Re-fetch the current page unless the table was refreshed moments ago."""

        key = table.cache_key
        now = self._clock()
        last = self.state.refresh_timestamps.get(key)
        throttle = self.config.refresh_throttle_ms / 1000
        if not force and last is not None and now - last < throttle:
            LOG.debug("Refresh throttled", extra={"table": key})
            return EffectResult(ok=True)
        self.dispatch(a.SetRefreshTimestamp(key, now))
        self.dispatch(a.SetRefreshingTable(key))
        try:
            return await self.fetch_table_data(config, table, offset=self.state.current_offset)
        finally:
            if self.state.refreshing_table_key == key:
                self.dispatch(a.SetRefreshingTable(None))

    async def search_table_rows(
        self,
        config: DatabaseConfig,
        table: TableInfo,
        columns: Sequence[ColumnInfo],
        term: str,
        *,
        offset: int = 0,
        limit: int | None = None,
    ) -> EffectResult[tuple[DataRow, ...]]:
        normalized = term.strip()
        self.dispatch(a.SetSearchTerm(normalized))
        if not normalized:
            self.dispatch(a.ClearSearch())
            self.dispatch(a.SetInfo("Enter a search term to find matching rows."))
            return EffectResult(ok=True, value=())
        if not columns:
            return self._fail("Column metadata is required before searching.")

        page_size = self.config.search_page_size
        offset = max(offset, 0)
        limit = min(max(limit if limit is not None else page_size, 1), page_size)
        like_term = f"%{normalized}%"
        queries = build_search_queries(
            config.type,
            table,
            build_search_where_clause(config.type, columns),
            select_search_order_column(config.type, columns),
            limit,
            offset,
        )
        key = f"search:{table.cache_key}"
        generation = self._stamp(key)
        with self._loading():
            try:
                async with self._connection(config) as connection:
                    count_sql, count_params = parameterize(queries.count_query, config.type, [like_term])
                    count_result = await connection.query(count_sql, count_params)
                    total = extract_count(count_result.rows[0] if count_result.rows else None)
                    data_sql, data_params = parameterize(queries.data_query, config.type, [like_term])
                    data_result = await connection.query(data_sql, data_params)
            except Exception as exc:
                return self._fail(exc, "Search execution failed.")
            if not self._is_current(key, generation):
                return EffectResult(ok=True, value=data_result.rows, stale=True)
            self.dispatch(
                a.SetSearchResultsPage(
                    rows=data_result.rows,
                    total_count=total,
                    offset=offset,
                    has_more=offset + len(data_result.rows) < total,
                )
            )
        return EffectResult(ok=True, value=data_result.rows)

    async def update_table_field_value(
        self,
        table: TableInfo | None,
        column: ColumnInfo,
        row_index: int | None,
        row: DataRow,
        input_value: str,
    ) -> EffectResult[bool]:
        """Write one edited cell back; ``value`` is True only when an UPDATE ran."""

        state = self.state
        if table is None:
            return self._fail("No table selected for editing.")
        if state.active_connection is None or state.db_type is None:
            return self._fail("No active database connection.")
        primary_keys = [col for col in state.columns if col.is_primary_key]
        if not primary_keys:
            return self._fail("Editing requires a primary key to identify the row.")

        new_value = interpret_edited_input(input_value, column)
        if values_are_equal(row.get(column.name), new_value):
            self.dispatch(a.SetInfo(f"No changes made to {column.name}."))
            return EffectResult(ok=True, value=False)

        config = DatabaseConfig(
            type=state.db_type,
            connection_string=state.active_connection.connection_string,
            pool=self.config.pool_options(),
        )
        try:
            key_values: list[tuple[str, Any]] = []
            for key in primary_keys:
                if key.name not in row:
                    raise ValueError(f"Missing primary key value for column {key.name}. Unable to update row.")
                key_values.append((key.name, row[key.name]))
            sql, params = build_update_statement(state.db_type, table, column.name, new_value, key_values)
            async with self._connection(config) as connection:
                await connection.execute(sql, params)
        except Exception as exc:
            return self._fail(exc, "Failed to update value.")

        self.dispatch(a.UpdateDataRowValue(column.name, new_value, row_index, table))
        self.dispatch(a.SetInfo(f"Updated {column.name}."))
        return EffectResult(ok=True, value=True)

    # -- queries --------------------------------------------------------------

    async def execute_query(
        self, config: DatabaseConfig, sql: str, params: Sequence[Any] = ()
    ) -> EffectResult[QueryResult]:
        """Run ad-hoc SQL and record it in the query history, failed or not."""

        state = self.state
        if state.active_connection is None or state.db_type is None:
            return self._fail("No active connection.")

        outcome: EffectResult[QueryResult]
        with self._loading():
            started = time.perf_counter()
            try:
                final_sql, final_params = parameterize(sql, state.db_type, params)
                async with self._connection(config) as connection:
                    result = await connection.query(final_sql, final_params)
            except Exception as exc:
                outcome = self._fail(exc, "Query execution failed.")
                item = QueryHistoryItem(
                    id=_random_id(),
                    connection_id=state.active_connection.id,
                    query=sql,
                    executed_at=utc_now_iso(),
                    duration_ms=0,
                    row_count=0,
                    error=outcome.error,
                )
            else:
                outcome = EffectResult(ok=True, value=result)
                item = QueryHistoryItem(
                    id=_random_id(),
                    connection_id=state.active_connection.id,
                    query=sql,
                    executed_at=utc_now_iso(),
                    duration_ms=round((time.perf_counter() - started) * 1000),
                    row_count=result.row_count,
                )
            await self._record_history(item)
        return outcome

    async def _record_history(self, item: QueryHistoryItem) -> None:
        self.dispatch(a.AddQueryHistoryItem(item))
        history = self.state.query_history[: self.config.history_limit]
        try:
            await self.persistence.history.save(history)
        except Exception:
            LOG.exception("Failed to save query history")

    # -- export -------------------------------------------------------------

    async def export_table_data(self, format: str, include_headers: bool = True) -> EffectResult[str]:
        """Export the visible rows, with the current sort and filter applied."""

        state = self.state
        if not state.data_rows or not state.columns:
            return self._fail("No data available to export.")
        if self._exporter is None:
            return self._fail("No exporter configured.")
        with self._loading():
            try:
                rows = process_rows(state.data_rows, state.sort_config, state.filter_value, state.columns)
                path = await self._exporter.export(
                    rows, state.columns, format=format, include_headers=include_headers
                )
            except Exception as exc:
                return self._fail(exc, "Export failed.")
            summary = (
                f"Exported {len(rows)} rows, {len(state.columns)} columns to "
                f"{format.upper()}: {Path(path).name}"
            )
            self.dispatch(a.SetInfo(summary))
        return EffectResult(ok=True, value=path)


__all__ = [
    "EffectResult",
    "Effects",
    "Exporter",
    "interpret_edited_input",
    "process_rows",
    "values_are_equal",
]
