"""Dialect-specific SQL generation.

Every rule that differs between PostgreSQL, MySQL and SQLite (identifier quoting,
pagination, case-insensitive matching, placeholder syntax, catalog queries) lives
in one small :class:`Dialect` implementation per engine. The module-level
functions dispatch on :class:`~seerdb.models.DBType` so call sites never branch
on the dialect themselves.
"""

from __future__ import annotations

import math
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from ..models import ColumnInfo, DBType, SortConfig, SortDirection, TableInfo, TableType
from .errors import ConfigurationError

_PLACEHOLDER = re.compile(r"\$(\d+)")


@dataclass(frozen=True, slots=True)
class SearchQueries:
    """COUNT + paginated data query sharing one WHERE clause."""

    count_query: str
    data_query: str


class Dialect(ABC):
    """Base behaviour shared by the double-quoting dialects."""

    db_type: DBType
    quote_char = '"'
    native_placeholders = False
    system_schemas: tuple[str, ...] = ()

    def quote_identifier(self, identifier: str) -> str:
        q = self.quote_char
        return f"{q}{identifier.replace(q, q * 2)}{q}"

    def paginate(self, limit: int, offset: int) -> str:
        return f"LIMIT {int(limit)} OFFSET {int(offset)}"

    @abstractmethod
    def search_expression(self, column_ref: str) -> str:
        """Case-insensitive LIKE predicate for one quoted column."""

    def tables_query(self) -> str:
        schemas = ", ".join(f"'{name}'" for name in self.system_schemas)
        return (
            "SELECT table_schema, table_name, table_type "
            "FROM information_schema.tables "
            f"WHERE table_schema NOT IN ({schemas}) "
            "ORDER BY table_schema, table_name"
        )

    @abstractmethod
    def column_query(self, table: TableInfo) -> tuple[str, list[Any]]:
        """Column introspection SQL and its parameters for ``table``."""

    def map_column_row(self, row: Mapping[str, Any]) -> ColumnInfo:
        return ColumnInfo(
            name=str(row.get("column_name")),
            data_type=str(row.get("data_type") or ""),
            nullable=str(row.get("is_nullable") or "").upper() != "NO",
            default_value=_optional_str(row.get("column_default")),
            is_primary_key=self._is_primary_key(row),
        )

    def _is_primary_key(self, row: Mapping[str, Any]) -> bool:
        return False


class PostgresDialect(Dialect):
    db_type = DBType.POSTGRESQL
    native_placeholders = True
    system_schemas = ("pg_catalog", "information_schema")

    _COLUMN_QUERY = """
        SELECT
          cols.column_name,
          cols.data_type,
          cols.is_nullable,
          cols.column_default,
          cols.ordinal_position,
          EXISTS (
            SELECT 1
            FROM information_schema.table_constraints tc
            JOIN information_schema.key_column_usage kcu
              ON tc.constraint_name = kcu.constraint_name
             AND tc.table_schema = kcu.table_schema
             AND tc.table_name = kcu.table_name
            WHERE tc.constraint_type = 'PRIMARY KEY'
              AND kcu.table_schema = cols.table_schema
              AND kcu.table_name = cols.table_name
              AND kcu.column_name = cols.column_name
          ) AS is_primary_key
        FROM information_schema.columns cols
        WHERE cols.table_name = $1
          AND cols.table_schema = $2
        ORDER BY cols.ordinal_position
    """

    def search_expression(self, column_ref: str) -> str:
        return f"({column_ref})::TEXT ILIKE $1"

    def column_query(self, table: TableInfo) -> tuple[str, list[Any]]:
        return self._COLUMN_QUERY, [table.name, table.schema or "public"]

    def _is_primary_key(self, row: Mapping[str, Any]) -> bool:
        return bool(row.get("is_primary_key"))


class MySQLDialect(Dialect):
    db_type = DBType.MYSQL
    quote_char = "`"
    system_schemas = ("information_schema", "performance_schema", "mysql", "sys")

    _COLUMN_QUERY = """
        SELECT
          COLUMN_NAME AS column_name,
          DATA_TYPE AS data_type,
          IS_NULLABLE AS is_nullable,
          COLUMN_DEFAULT AS column_default,
          COLUMN_KEY AS column_key
        FROM information_schema.columns
        WHERE table_schema = {schema}
          AND table_name = ?
        ORDER BY ORDINAL_POSITION
    """

    def paginate(self, limit: int, offset: int) -> str:
        return f"LIMIT {int(offset)}, {int(limit)}"

    def search_expression(self, column_ref: str) -> str:
        return f"LOWER(CAST({column_ref} AS CHAR)) LIKE LOWER($1)"

    def column_query(self, table: TableInfo) -> tuple[str, list[Any]]:
        if table.schema:
            return self._COLUMN_QUERY.format(schema="?"), [table.schema, table.name]
        return self._COLUMN_QUERY.format(schema="DATABASE()"), [table.name]

    def _is_primary_key(self, row: Mapping[str, Any]) -> bool:
        return str(row.get("column_key") or "").upper() == "PRI"


class SQLiteDialect(Dialect):
    db_type = DBType.SQLITE

    def search_expression(self, column_ref: str) -> str:
        return f"LOWER(CAST({column_ref} AS TEXT)) LIKE LOWER($1)"

    def tables_query(self) -> str:
        return (
            "SELECT NULL AS table_schema, name AS table_name, type AS table_type "
            "FROM sqlite_master "
            "WHERE type IN ('table', 'view') AND name NOT LIKE 'sqlite_%' "
            "ORDER BY name"
        )

    def column_query(self, table: TableInfo) -> tuple[str, list[Any]]:
        return f"PRAGMA table_info({self.quote_identifier(table.name)});", []

    def map_column_row(self, row: Mapping[str, Any]) -> ColumnInfo:
        return ColumnInfo(
            name=str(row.get("name")),
            data_type=str(row.get("type") or "text"),
            nullable=not row.get("notnull"),
            default_value=_optional_str(row.get("dflt_value")),
            # pk is the 1-based position inside the key, 0 when not part of it
            is_primary_key=int(row.get("pk") or 0) > 0,
        )


_DIALECTS: dict[DBType, Dialect] = {
    DBType.POSTGRESQL: PostgresDialect(),
    DBType.MYSQL: MySQLDialect(),
    DBType.SQLITE: SQLiteDialect(),
}


def dialect_for(db_type: DBType | str) -> Dialect:
    """Return the dialect implementation or raise :class:`ConfigurationError`."""

    parsed = DBType.parse(db_type)
    if parsed is None:
        raise ConfigurationError(f"Unsupported database type: {db_type}")
    return _DIALECTS[parsed]


def quote_identifier(db_type: DBType, identifier: str) -> str:
    return dialect_for(db_type).quote_identifier(identifier)


def build_table_reference(db_type: DBType, table: TableInfo) -> str:
    """Quote the table name, schema-qualified when a schema is known."""

    dialect = dialect_for(db_type)
    name = dialect.quote_identifier(table.name)
    if table.schema:
        return f"{dialect.quote_identifier(table.schema)}.{name}"
    return name


def build_tables_query(db_type: DBType) -> str:
    return dialect_for(db_type).tables_query()


def map_table_row(row: Mapping[str, Any]) -> TableInfo:
    raw_type = str(row.get("table_type") or "").lower()
    if "view" in raw_type and "materialized" in raw_type:
        table_type = TableType.MATERIALIZED_VIEW
    elif "view" in raw_type:
        table_type = TableType.VIEW
    else:
        table_type = TableType.TABLE
    schema = row.get("table_schema")
    return TableInfo(
        name=str(row.get("table_name") or ""),
        schema=schema if isinstance(schema, str) and schema else None,
        type=table_type,
    )


def build_column_introspection_query(db_type: DBType, table: TableInfo) -> tuple[str, list[Any]]:
    """Return ``(sql, params)`` listing the columns of ``table``."""

    return dialect_for(db_type).column_query(table)


def map_column_row(db_type: DBType, row: Mapping[str, Any]) -> ColumnInfo:
    return dialect_for(db_type).map_column_row(row)


def build_table_data_query(
    db_type: DBType,
    table: TableInfo,
    limit: int,
    offset: int,
    sort_config: SortConfig | None = None,
) -> str:
    """Page through ``table``, optionally ordered by the active sort column."""

    dialect = dialect_for(db_type)
    order_by = ""
    if sort_config is not None and sort_config.active:
        direction = "ASC" if sort_config.direction is SortDirection.ASC else "DESC"
        order_by = f" ORDER BY {dialect.quote_identifier(sort_config.column or '')} {direction}"
    table_ref = build_table_reference(db_type, table)
    return f"SELECT * FROM {table_ref}{order_by} {dialect.paginate(limit, offset)}"


def build_search_expression(db_type: DBType, column_name: str) -> str:
    dialect = dialect_for(db_type)
    return dialect.search_expression(dialect.quote_identifier(column_name))


def build_search_where_clause(db_type: DBType, columns: Sequence[ColumnInfo]) -> str:
    """OR one case-insensitive match per column; no columns matches everything."""

    expressions = [build_search_expression(db_type, column.name) for column in columns]
    if not expressions:
        return "1=1"
    return " OR ".join(expressions)


def select_search_order_column(db_type: DBType, columns: Sequence[ColumnInfo]) -> str | None:
    if not columns:
        return None
    chosen = next((column for column in columns if column.is_primary_key), columns[0])
    return quote_identifier(db_type, chosen.name)


def build_search_queries(
    db_type: DBType,
    table: TableInfo,
    where_clause: str,
    order_column: str | None,
    limit: int,
    offset: int,
) -> SearchQueries:
    dialect = dialect_for(db_type)
    table_ref = build_table_reference(db_type, table)
    order_clause = f" ORDER BY {order_column}" if order_column else ""
    return SearchQueries(
        count_query=f"SELECT COUNT(*) AS total_count FROM {table_ref} WHERE {where_clause}",
        data_query=(
            f"SELECT * FROM {table_ref} WHERE {where_clause}{order_clause} "
            f"{dialect.paginate(limit, offset)}"
        ),
    )


def build_update_statement(
    db_type: DBType,
    table: TableInfo,
    column: str,
    value: Any,
    key_values: Sequence[tuple[str, Any]],
) -> tuple[str, list[Any]]:
    """UPDATE one column of the row identified by ``key_values``.

    The statement is written with ``$n`` placeholders and passed through
    :func:`parameterize`.
    """

    if not key_values:
        raise ValueError("At least one key column is required to target a row.")
    dialect = dialect_for(db_type)
    params: list[Any] = [value]
    predicates: list[str] = []
    for index, (key, key_value) in enumerate(key_values, start=2):
        predicates.append(f"{dialect.quote_identifier(key)} = ${index}")
        params.append(key_value)
    sql = (
        f"UPDATE {build_table_reference(db_type, table)} "
        f"SET {dialect.quote_identifier(column)} = $1 "
        f"WHERE {' AND '.join(predicates)}"
    )
    return parameterize(sql, db_type, params)


def parameterize(sql: str, db_type: DBType, params: Sequence[Any] = ()) -> tuple[str, list[Any]]:
    """Rewrite ``$n`` placeholders for dialects that only understand ``?``.

    PostgreSQL is returned untouched. For the others every ``$n`` outside quoted
    text becomes ``?`` and the parameter list is rebuilt in placeholder order, so
    a placeholder used twice receives its value twice.
    """

    dialect = dialect_for(db_type)
    if dialect.native_placeholders:
        return sql, list(params)
    ordered: list[Any] = []
    pieces: list[str] = []
    for chunk, quoted in split_quoted(sql):
        if quoted:
            pieces.append(chunk)
            continue

        def _swap(match: re.Match[str]) -> str:
            index = int(match.group(1)) - 1
            if index < 0 or index >= len(params):
                raise ValueError(f"Placeholder ${index + 1} has no matching parameter.")
            ordered.append(params[index])
            return "?"

        pieces.append(_PLACEHOLDER.sub(_swap, chunk))
    if not ordered:
        return sql, list(params)
    return "".join(pieces), ordered


def extract_count(row: Mapping[str, Any] | None) -> int:
    """Pull the total out of a ``COUNT(*)`` row regardless of driver casing."""

    if not row:
        return 0
    value: Any = None
    for key in ("total_count", "count", "COUNT"):
        if key in row:
            value = row[key]
            break
    else:
        value = next(iter(row.values()), None)
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            value = float(value)
        except ValueError:
            return 0
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else 0
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def split_quoted(sql: str) -> list[tuple[str, bool]]:
    """Split ``sql`` into (text, is_quoted) runs; doubled quotes stay inside a run."""

    parts: list[tuple[str, bool]] = []
    buffer: list[str] = []
    quote: str | None = None
    i = 0
    while i < len(sql):
        char = sql[i]
        if quote is None:
            if char in ("'", '"', "`"):
                if buffer:
                    parts.append(("".join(buffer), False))
                    buffer = []
                quote = char
            buffer.append(char)
        else:
            buffer.append(char)
            if char == quote:
                if i + 1 < len(sql) and sql[i + 1] == quote:
                    buffer.append(sql[i + 1])
                    i += 1
                else:
                    parts.append(("".join(buffer), True))
                    buffer = []
                    quote = None
        i += 1
    if buffer:
        parts.append(("".join(buffer), quote is not None))
    return parts


def _optional_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


__all__ = [
    "Dialect",
    "MySQLDialect",
    "PostgresDialect",
    "SQLiteDialect",
    "SearchQueries",
    "build_column_introspection_query",
    "build_search_expression",
    "build_search_queries",
    "build_search_where_clause",
    "build_table_data_query",
    "build_table_reference",
    "build_tables_query",
    "build_update_statement",
    "dialect_for",
    "extract_count",
    "map_column_row",
    "map_table_row",
    "parameterize",
    "quote_identifier",
    "select_search_order_column",
    "split_quoted",
]
