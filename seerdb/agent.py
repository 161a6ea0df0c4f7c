"""Programmatic access for scripts and automated agents.

Unlike the effects layer, this API raises: every failure surfaces as
:class:`AgentError` with the underlying driver error chained.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Mapping, Sequence
from urllib.parse import quote

from pydantic import BaseModel

from .config import PoolOptions
from .database import (
    DatabaseConnection,
    build_tables_query,
    create_database_connection,
    dialect_for,
    map_table_row,
)
from .database.statements import inspect_statement
from .models import DatabaseConfig, DBType, TableInfo

LOG = logging.getLogger(__name__)

MAX_TABLE_ROWS = 1000
LARGE_RESULT_ROWS = 1000
_DEFAULT_PORTS = {DBType.POSTGRESQL: 5432, DBType.MYSQL: 3306}


class AgentError(RuntimeError):
    """Raised by :class:`DatabaseAgent` operations."""


class AgentConfig(BaseModel):
    """Either a full connection string or the pieces to build one."""

    type: DBType
    connection_string: str | None = None
    host: str | None = None
    port: int | None = None
    database: str | None = None
    user: str | None = None
    password: str | None = None


@dataclass(frozen=True, slots=True)
class AgentQueryResult:
    rows: tuple[dict[str, Any], ...]
    row_count: int
    columns: tuple[str, ...] | None
    duration_ms: int


@dataclass(frozen=True, slots=True)
class SchemaInfo:
    tables: tuple[TableInfo, ...]
    columns: Mapping[str, tuple[Any, ...]]


def build_connection_string(config: AgentConfig) -> str:
    """Assemble a connection string when the caller gave host/user/... instead."""

    if config.connection_string:
        return config.connection_string
    if config.type is DBType.SQLITE:
        return config.host or config.database or ""
    scheme = config.type.value
    port = config.port or _DEFAULT_PORTS[config.type]
    user = quote(config.user or "", safe="")
    credentials = f"{user}:{quote(config.password, safe='')}" if config.password and config.password.strip() else user
    return f"{scheme}://{credentials}@{config.host or 'localhost'}:{port}/{config.database or ''}"


class DatabaseAgent:
    """A single long-lived connection with guardrails around what it runs."""

    def __init__(self) -> None:
        self._connection: DatabaseConnection | None = None
        self._config: AgentConfig | None = None

    @property
    def config(self) -> AgentConfig | None:
        return self._config

    def is_connected(self) -> bool:
        return self._connection is not None

    async def connect(self, config: AgentConfig | Mapping[str, Any]) -> None:
        settings = config if isinstance(config, AgentConfig) else AgentConfig.model_validate(config)
        try:
            connection = create_database_connection(
                DatabaseConfig(
                    type=settings.type,
                    connection_string=build_connection_string(settings),
                    # one session so explicit transactions stay on the same connection
                    pool=PoolOptions(max=1),
                )
            )
            await connection.connect()
        except Exception as exc:
            raise AgentError(f"Failed to connect to database: {exc}") from exc
        self._connection = connection
        self._config = settings
        LOG.info("Agent connected", extra={"dialect": settings.type.value})

    async def disconnect(self) -> None:
        if self._connection is None:
            return
        connection, self._connection = self._connection, None
        self._config = None
        await connection.close()

    async def query(
        self,
        sql: str,
        params: Sequence[Any] = (),
        *,
        skip_limit_warning: bool = False,
    ) -> AgentQueryResult:
        connection, config = self._require_connection()
        warnings = inspect_statement(sql, config.type)
        if warnings.unbounded and not skip_limit_warning:
            LOG.warning("Query may return unlimited results; consider adding a LIMIT clause.", extra={"sql": sql})
        if warnings.destructive:
            LOG.warning("Query appears to be destructive; verify it before running.", extra={"sql": sql})

        started = time.perf_counter()
        try:
            result = await connection.query(sql, params)
        except Exception as exc:
            raise AgentError(f"Query failed: {exc}") from exc
        duration_ms = round((time.perf_counter() - started) * 1000)
        if result.row_count > LARGE_RESULT_ROWS:
            LOG.warning("Query returned %d rows; this may impact performance.", result.row_count)
        return AgentQueryResult(
            rows=result.rows,
            row_count=result.row_count,
            columns=result.fields,
            duration_ms=duration_ms,
        )

    async def get_schema(self) -> SchemaInfo:
        """List user tables and views; system schemas are excluded."""

        connection, config = self._require_connection()
        try:
            result = await connection.query(build_tables_query(config.type))
        except Exception as exc:
            raise AgentError(f"Failed to get schema: {exc}") from exc
        return SchemaInfo(tables=tuple(map_table_row(row) for row in result.rows), columns={})

    async def get_table_data(
        self,
        table_name: str,
        *,
        limit: int = 100,
        offset: int = 0,
        where: str | None = None,
        order_by: str | None = None,
    ) -> AgentQueryResult:
        """``where`` and ``order_by`` are inserted verbatim; the limit is capped."""

        _, config = self._require_connection()
        safe_limit = min(limit, MAX_TABLE_ROWS)
        if limit > MAX_TABLE_ROWS:
            LOG.warning("Requested limit of %d reduced to %d.", limit, safe_limit)
        sql = f"SELECT * FROM {table_name}"
        if where:
            sql += f" WHERE {where}"
        if order_by:
            sql += f" ORDER BY {order_by}"
        sql += f" {dialect_for(config.type).paginate(safe_limit, max(offset, 0))}"
        return await self.query(sql, skip_limit_warning=True)

    async def transaction(self, statements: Sequence[str]) -> list[AgentQueryResult]:
        """Run every statement or none of them."""

        connection, _ = self._require_connection()
        started = time.perf_counter()
        try:
            results = await connection.transaction(statements)
        except Exception as exc:
            raise AgentError(f"Transaction failed: {exc}") from exc
        duration_ms = round((time.perf_counter() - started) * 1000)
        return [
            AgentQueryResult(rows=result.rows, row_count=result.row_count, columns=result.fields, duration_ms=duration_ms)
            for result in results
        ]

    def _require_connection(self) -> tuple[DatabaseConnection, AgentConfig]:
        if self._connection is None or self._config is None:
            raise AgentError("Not connected to database")
        return self._connection, self._config


async def run_query(config: AgentConfig | Mapping[str, Any], sql: str) -> AgentQueryResult:
    """Connect, run one statement, disconnect."""

    agent = DatabaseAgent()
    try:
        await agent.connect(config)
        return await agent.query(sql)
    finally:
        await agent.disconnect()


__all__ = [
    "AgentConfig",
    "AgentError",
    "AgentQueryResult",
    "DatabaseAgent",
    "SchemaInfo",
    "build_connection_string",
    "run_query",
]
