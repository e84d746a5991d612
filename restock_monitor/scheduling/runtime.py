"""Run-scoped cancellation context.

A :class:`RunContext` is created once per monitor run and handed to every
component that suspends. It owns the shutdown flag, the registry of pending
delays (so a shutdown can wake tasks mid-sleep) and the registry of open
pages (so they can be closed when the run is torn down).
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any

logger = logging.getLogger(__name__)


class _PendingDelay:
    """One registered sleep; resolving it twice is a no-op."""

    __slots__ = ("future", "handle")

    def __init__(self, future: asyncio.Future[None]) -> None:
        self.future = future
        self.handle: asyncio.TimerHandle | None = None

    def finish(self) -> None:
        if self.handle is not None:
            self.handle.cancel()
            self.handle = None
        if not self.future.done():
            self.future.set_result(None)


class DelayRegistry:
    """Sleeps that can be resolved early, all at once."""

    def __init__(self) -> None:
        self._pending: set[_PendingDelay] = set()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def delay(self, ms: float) -> None:
        """Suspend for *ms* milliseconds or until :meth:`cancel_all`."""
        if ms <= 0:
            return

        loop = asyncio.get_running_loop()
        entry = _PendingDelay(loop.create_future())
        entry.handle = loop.call_later(ms / 1000.0, entry.finish)
        self._pending.add(entry)
        try:
            await entry.future
        finally:
            entry.finish()
            self._pending.discard(entry)

    async def random_delay(
        self,
        min_ms: int,
        max_ms: int,
        rng: random.Random | None = None,
    ) -> None:
        """Sleep for a uniformly random whole number of ms in ``[min_ms, max_ms]``."""
        source = rng or random
        await self.delay(source.randint(min_ms, max_ms))

    def cancel_all(self) -> None:
        """Resolve every pending delay immediately."""
        for entry in list(self._pending):
            entry.finish()
        self._pending.clear()


class PageRegistry:
    """Pages currently open across all sessions."""

    def __init__(self) -> None:
        self._pages: set[Any] = set()

    def __len__(self) -> int:
        return len(self._pages)

    def add(self, page: Any) -> None:
        self._pages.add(page)

    async def close(self, page: Any, *, quiet: bool = False) -> None:
        """Close *page* if still open; errors are logged unless *quiet*."""
        if page is None:
            return

        self._pages.discard(page)
        try:
            if page.is_closed():
                return
            await page.close(run_before_unload=False)
        except Exception:
            if not quiet:
                logger.warning("Error closing page", exc_info=True)

    async def close_all(self) -> None:
        pages = list(self._pages)
        await asyncio.gather(
            *(self.close(page, quiet=True) for page in pages)
        )


class RunContext:
    """Explicit cancellation token plus run-scoped resource registries."""

    def __init__(self) -> None:
        self.delays = DelayRegistry()
        self.pages = PageRegistry()
        self._shutting_down = False
        self._shutdown_event = asyncio.Event()

    @property
    def shutting_down(self) -> bool:
        return self._shutting_down

    def begin_shutdown(self) -> bool:
        """Flag shutdown and wake every sleeping task.

        Returns ``True`` only for the call that actually flipped the flag.
        """
        if self._shutting_down:
            return False

        self._shutting_down = True
        self._shutdown_event.set()
        self.delays.cancel_all()
        return True

    async def sleep(self, ms: float) -> None:
        """Cancellable delay that is skipped entirely once shutdown has begun."""
        if self._shutting_down:
            return
        await self.delays.delay(ms)

    async def sleep_between(
        self, min_ms: int, max_ms: int, rng: random.Random | None = None
    ) -> None:
        if self._shutting_down:
            return
        await self.delays.random_delay(min_ms, max_ms, rng)

    async def wait_shutdown(self) -> None:
        await self._shutdown_event.wait()
