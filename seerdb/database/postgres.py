"""PostgreSQL driver built on an asyncpg pool."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Sequence

import asyncpg

from ..models import DatabaseConfig, DBType, QueryResult
from .base import PooledConnection
from .errors import DatabaseConnectionError, DatabaseError, QueryTimeoutError
from .statements import returns_rows

# SQLSTATE classes 08 (connection exception) and 28 (invalid authorization)
_CONNECTION_STATE_PREFIXES = ("08", "28")
_QUERY_CANCELED = "57014"


class PostgresConnection(PooledConnection):
    """Runs SQL against PostgreSQL via asyncpg."""

    type = DBType.POSTGRESQL
    label = "PostgreSQL"

    def __init__(self, config: DatabaseConfig) -> None:
        super().__init__(config)
        self._pool: asyncpg.Pool | None = None

    async def _open(self) -> None:
        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.connection_string or None,
                min_size=0,
                max_size=self.pool_options.max,
                max_inactive_connection_lifetime=self.pool_options.idle_timeout_ms / 1000,
                command_timeout=self.query_timeout,
            )
            await self._pool.fetchval("SELECT 1")
        except Exception as exc:
            pool, self._pool = self._pool, None
            if pool is not None:
                pool.terminate()
            raise _translate(exc, connecting=True) from exc

    async def query(self, sql: str, params: Sequence[Any] = ()) -> QueryResult:
        await self.ensure_connected()
        assert self._pool is not None
        try:
            async with self._pool.acquire() as conn:
                return await self._query_on(conn, sql, params)
        except Exception as exc:
            raise _translate(exc, connecting=False) from exc

    async def transaction(self, statements: Sequence[str]) -> list[QueryResult]:
        """Run ``statements`` on one pooled connection inside a transaction."""

        await self.ensure_connected()
        assert self._pool is not None
        results: list[QueryResult] = []
        try:
            async with self._pool.acquire() as conn:
                async with conn.transaction():
                    for sql in statements:
                        results.append(await self._query_on(conn, sql, ()))
        except Exception as exc:
            raise _translate(exc, connecting=False) from exc
        return results

    async def _query_on(self, conn: Any, sql: str, params: Sequence[Any]) -> QueryResult:
        if not returns_rows(sql, self.type):
            status = await conn.execute(sql, *params)
            return QueryResult(rows=(), row_count=_affected_rows(status), fields=None)
        statement = await conn.prepare(sql)
        records = await statement.fetch(*params)
        fields = tuple(attribute.name for attribute in statement.get_attributes())
        rows = tuple(dict(record) for record in records)
        return QueryResult(rows=rows, row_count=len(rows), fields=fields)

    async def execute(self, sql: str, params: Sequence[Any] = ()) -> None:
        await self.ensure_connected()
        assert self._pool is not None
        try:
            await self._pool.execute(sql, *params)
        except Exception as exc:
            raise _translate(exc, connecting=False) from exc

    def _release(self) -> Awaitable[None] | None:
        pool, self._pool = self._pool, None
        if pool is None:
            return None
        return pool.close()


def _affected_rows(status: str | None) -> int:
    """Parse asyncpg's command tag (``UPDATE 3``, ``INSERT 0 1``)."""

    if not status:
        return 0
    tail = status.rsplit(" ", 1)[-1]
    return int(tail) if tail.isdigit() else 0


def _translate(exc: BaseException, *, connecting: bool) -> DatabaseError:
    if isinstance(exc, DatabaseError):
        return exc
    message = str(exc) or exc.__class__.__name__
    code = getattr(exc, "sqlstate", None)
    detail = getattr(exc, "detail", None)
    if code is None and isinstance(exc, OSError) and exc.errno is not None:
        code = str(exc.errno)
    if not connecting and (isinstance(exc, asyncio.TimeoutError) or code == _QUERY_CANCELED):
        return QueryTimeoutError(message, code, detail)
    if (
        connecting
        or isinstance(exc, (OSError, asyncpg.InterfaceError))
        or (code is not None and code.startswith(_CONNECTION_STATE_PREFIXES))
    ):
        return DatabaseConnectionError(message, code, detail)
    return DatabaseError(message, code, detail)


__all__ = ["PostgresConnection"]
