"""Driver interface and the lifecycle plumbing every driver shares."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Protocol, Sequence, runtime_checkable

from ..config import PoolOptions
from ..models import DatabaseConfig, DBType, QueryResult

LOG = logging.getLogger(__name__)


@runtime_checkable
class DatabaseConnection(Protocol):
    """Protocol implemented by every dialect driver."""

    type: DBType

    async def connect(self) -> None:
        """Open the pool; calling it again is a no-op."""

    async def query(self, sql: str, params: Sequence[Any] = ()) -> QueryResult:
        """Run ``sql`` and return its rows."""

    async def execute(self, sql: str, params: Sequence[Any] = ()) -> None:
        """Run a statement whose rows are not needed."""

    async def transaction(self, statements: Sequence[str]) -> list[QueryResult]:
        """Run ``statements`` atomically on a single underlying connection."""

    async def close(self) -> None:
        """Release the pool; never blocks longer than the close grace period."""


class PooledConnection(ABC):
    """Shared connect/close bookkeeping for the concrete drivers."""

    type: DBType
    label = "database"

    def __init__(self, config: DatabaseConfig) -> None:
        self.config = config
        self.connection_string = config.connection_string
        self.pool_options = config.pool or PoolOptions()
        self.connected = False
        self._connect_lock: asyncio.Lock | None = None

    @property
    def close_timeout(self) -> float:
        return self.pool_options.close_timeout_ms / 1000

    @property
    def query_timeout(self) -> float | None:
        if self.pool_options.query_timeout_ms is None:
            return None
        return self.pool_options.query_timeout_ms / 1000

    async def connect(self) -> None:
        if self.connected:
            return
        if self._connect_lock is None:
            self._connect_lock = asyncio.Lock()
        async with self._connect_lock:
            if self.connected:
                return
            await self._open()
            self.connected = True

    async def ensure_connected(self) -> None:
        if not self.connected:
            await self.connect()

    async def close(self) -> None:
        self.connected = False
        closer = self._release()
        if closer is None:
            return
        await close_with_grace(closer, label=self.label, timeout=self.close_timeout)

    @abstractmethod
    async def _open(self) -> None:
        """Create the underlying pool or connection."""

    @abstractmethod
    def _release(self) -> Awaitable[None] | None:
        """Detach the underlying handle and return the coroutine that closes it."""


async def close_with_grace(closer: Awaitable[None], *, label: str, timeout: float) -> None:
    """Await ``closer`` for at most ``timeout`` seconds, logging instead of raising.

    A close that outlives the grace period keeps running in the background; its
    eventual failure is logged when it happens.
    """

    task = asyncio.ensure_future(closer)
    done, _ = await asyncio.wait({task}, timeout=timeout)
    if task in done:
        if not task.cancelled() and task.exception() is not None:
            LOG.warning("Failed to close %s pool cleanly: %s", label, task.exception(), extra={"pool": label})
        return
    LOG.warning("%s pool close timed out; continuing shutdown asynchronously.", label, extra={"pool": label})

    def _report(finished: asyncio.Future[None]) -> None:
        if finished.cancelled():
            return
        exc = finished.exception()
        if exc is not None:
            LOG.warning("%s pool close eventually failed: %s", label, exc, extra={"pool": label})

    task.add_done_callback(_report)


__all__ = ["DatabaseConnection", "PooledConnection", "close_with_grace"]
