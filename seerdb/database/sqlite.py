"""SQLite driver built on aiosqlite."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Sequence

import aiosqlite

from ..models import DatabaseConfig, DBType, QueryResult
from .base import PooledConnection
from .errors import DatabaseConnectionError, DatabaseError, QueryTimeoutError

_PREFIXES = ("sqlite:///", "sqlite://", "sqlite:", "file:")


class SQLiteConnection(PooledConnection):
    """Runs SQL against a single SQLite file in autocommit mode."""

    type = DBType.SQLITE
    label = "SQLite"

    def __init__(self, config: DatabaseConfig) -> None:
        super().__init__(config)
        self.path = sqlite_path(config.connection_string)
        self._db: aiosqlite.Connection | None = None

    async def _open(self) -> None:
        try:
            self._db = await aiosqlite.connect(self.path, isolation_level=None)
            self._db.row_factory = aiosqlite.Row
            await self._db.execute("PRAGMA journal_mode = WAL")
        except Exception as exc:
            db, self._db = self._db, None
            if db is not None:
                await db.close()
            raise _translate(exc, connecting=True) from exc

    async def query(self, sql: str, params: Sequence[Any] = ()) -> QueryResult:
        await self.ensure_connected()
        assert self._db is not None
        try:
            async with self._db.execute(sql, tuple(params)) as cursor:
                if cursor.description is None:
                    return QueryResult(rows=(), row_count=max(cursor.rowcount, 0), fields=None)
                records = await self._run(cursor.fetchall())
                fields = tuple(column[0] for column in cursor.description)
        except Exception as exc:
            raise _translate(exc, connecting=False) from exc
        rows = tuple({key: record[key] for key in record.keys()} for record in records)
        return QueryResult(rows=rows, row_count=len(rows), fields=fields)

    async def execute(self, sql: str, params: Sequence[Any] = ()) -> None:
        await self.ensure_connected()
        assert self._db is not None
        try:
            await self._run(self._db.execute(sql, tuple(params)))
        except Exception as exc:
            raise _translate(exc, connecting=False) from exc

    async def transaction(self, statements: Sequence[str]) -> list[QueryResult]:
        """Run ``statements`` between BEGIN and COMMIT, rolling back on failure."""

        await self.execute("BEGIN")
        results: list[QueryResult] = []
        try:
            for sql in statements:
                results.append(await self.query(sql))
        except BaseException:
            await self.execute("ROLLBACK")
            raise
        await self.execute("COMMIT")
        return results

    async def _run(self, operation: Awaitable[Any]) -> Any:
        if self.query_timeout is None:
            return await operation
        return await asyncio.wait_for(operation, self.query_timeout)

    def _release(self) -> Awaitable[None] | None:
        db, self._db = self._db, None
        if db is None:
            return None
        return db.close()


def sqlite_path(connection_string: str) -> str:
    """Strip URL-ish prefixes so ``sqlite:////tmp/app.db`` opens ``/tmp/app.db``."""

    value = connection_string.strip()
    if value == ":memory:":
        return value
    for prefix in _PREFIXES:
        if value.startswith(prefix):
            return value[len(prefix):]
    return value


def _translate(exc: BaseException, *, connecting: bool) -> DatabaseError:
    if isinstance(exc, DatabaseError):
        return exc
    message = str(exc) or exc.__class__.__name__
    code = getattr(exc, "sqlite_errorname", None)
    if not connecting and (isinstance(exc, asyncio.TimeoutError) or code == "SQLITE_INTERRUPT"):
        return QueryTimeoutError(message, code, message)
    if connecting or code in ("SQLITE_CANTOPEN", "SQLITE_NOTADB", "SQLITE_AUTH"):
        return DatabaseConnectionError(message, code, message)
    return DatabaseError(message, code, message)


__all__ = ["SQLiteConnection", "sqlite_path"]
