"""Debounced, coalescing writer used by the persistence stores."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from enum import Enum
from typing import Any, Generic, TypeVar

LOG = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_DELAY = 0.5


class WriterState(str, Enum):
    """Lifecycle of a :class:`DebouncedWriter`."""

    IDLE = "idle"
    SCHEDULED = "scheduled"
    WRITING = "writing"
    WRITING_DIRTY = "writing+dirty"


class DebouncedWriter(Generic[T]):
    """Collapse bursts of ``write()`` calls into one call of ``write_fn`` per window.

    Transitions:

    * ``write`` while idle or scheduled (re)arms the timer -> ``SCHEDULED``.
    * timer expiry or ``flush`` starts the write -> ``WRITING``.
    * ``write`` during a write -> ``WRITING_DIRTY``; when the in-flight write
      finishes the timer is armed again, so the newer value is written next.
    * a finished write with nothing pending -> ``IDLE``.

    Values written between two flushes are coalesced; only the latest is kept.
    Anything still pending when the process exits without ``flush`` is lost.
    """

    def __init__(
        self,
        write_fn: Callable[[T], Awaitable[Any]],
        delay: float = DEFAULT_DELAY,
        *,
        name: str = "writer",
    ) -> None:
        self.delay = delay
        self.name = name
        self._write_fn = write_fn
        self._pending: T | None = None
        self._dirty = False
        self._timer: asyncio.Task[None] | None = None
        self._inflight: asyncio.Task[None] | None = None
        self.state = WriterState.IDLE

    @property
    def dirty(self) -> bool:
        return self._dirty

    @property
    def pending(self) -> T | None:
        return self._pending

    def write(self, value: T) -> None:
        """Replace the pending value and (re)schedule a flush. Needs a running loop."""

        self._pending = value
        self._dirty = True
        if self.state in (WriterState.WRITING, WriterState.WRITING_DIRTY):
            self.state = WriterState.WRITING_DIRTY
            return
        self._arm_timer()

    async def flush(self) -> None:
        """Write the latest value now; a no-op when nothing is pending."""

        self._cancel_timer()
        await self.wait_idle()
        # the completed write may have re-armed the timer for a newer value
        self._cancel_timer()
        if not self._dirty:
            if self.state is WriterState.SCHEDULED:
                self.state = WriterState.IDLE
            return
        self._start_write()
        if self._inflight is not None:
            await asyncio.shield(self._inflight)
        self._cancel_timer()
        if self._dirty:
            await self.flush()

    async def wait_idle(self) -> None:
        """Wait until no write is in flight; pending values stay pending."""

        while self._inflight is not None:
            await asyncio.shield(self._inflight)

    def cancel(self) -> None:
        """Drop the pending value and any armed timer; an in-flight write completes."""

        self._cancel_timer()
        self._pending = None
        self._dirty = False
        if self.state is WriterState.WRITING_DIRTY:
            self.state = WriterState.WRITING
        elif self.state is WriterState.SCHEDULED:
            self.state = WriterState.IDLE

    def _arm_timer(self) -> None:
        self._cancel_timer()
        loop = asyncio.get_running_loop()
        self._timer = loop.create_task(self._wait_then_write())
        self.state = WriterState.SCHEDULED

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def _wait_then_write(self) -> None:
        try:
            await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            return
        self._timer = None
        if self._inflight is None and self._dirty:
            self._start_write()

    def _start_write(self) -> None:
        value = self._pending
        self._dirty = False
        self.state = WriterState.WRITING
        self._inflight = asyncio.get_running_loop().create_task(self._run_write(value))

    async def _run_write(self, value: T | None) -> None:
        try:
            await self._write_fn(value)  # type: ignore[arg-type]
        except Exception:
            LOG.exception("Debounced write failed", extra={"writer": self.name})
        finally:
            self._inflight = None
            if self._dirty:
                self._arm_timer()
            else:
                self.state = WriterState.IDLE


async def flush_all(writers: Iterable[DebouncedWriter[Any]]) -> None:
    """Best-effort flush used at shutdown."""

    await asyncio.gather(*(writer.flush() for writer in writers))


__all__ = ["DEFAULT_DELAY", "DebouncedWriter", "WriterState", "flush_all"]
