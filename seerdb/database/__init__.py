"""Dialect-abstracting connection and query layer."""

from .base import DatabaseConnection, PooledConnection
from .dialects import (
    SearchQueries,
    build_column_introspection_query,
    build_search_expression,
    build_search_queries,
    build_search_where_clause,
    build_table_data_query,
    build_table_reference,
    build_tables_query,
    build_update_statement,
    dialect_for,
    extract_count,
    map_column_row,
    map_table_row,
    parameterize,
    quote_identifier,
    select_search_order_column,
)
from .errors import ConfigurationError, DatabaseConnectionError, DatabaseError, QueryTimeoutError
from .factory import (
    clear_connection_factory_overrides,
    create_database_connection,
    set_connection_factory_overrides,
)

__all__ = [
    "ConfigurationError",
    "DatabaseConnection",
    "DatabaseConnectionError",
    "DatabaseError",
    "PooledConnection",
    "QueryTimeoutError",
    "SearchQueries",
    "build_column_introspection_query",
    "build_search_expression",
    "build_search_queries",
    "build_search_where_clause",
    "build_table_data_query",
    "build_table_reference",
    "build_tables_query",
    "build_update_statement",
    "clear_connection_factory_overrides",
    "create_database_connection",
    "dialect_for",
    "extract_count",
    "map_column_row",
    "map_table_row",
    "parameterize",
    "quote_identifier",
    "select_search_order_column",
    "set_connection_factory_overrides",
]
