"""Proxy session pool.

Manages a fixed set of :class:`ProxySession` objects, each pinned to one
proxy. Sessions are checked out at random rather than round-robin so the
rotation is not predictable from the outside. Sessions that fail for good
are evicted, so the pool only ever shrinks after initialization.

Lifecycle
---------
1. ``initialize()``: launch every session; drop the ones that fail.
2. ``acquire(avoid)``: get a random available session, or wait for one.
3. ``release(session)``: hand it to a waiter, return it, or evict it.
4. ``shutdown()``: reject waiters and close every session.

All bookkeeping runs between suspension points on a single event loop, so
no locks are needed.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Collection, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from restock_monitor.errors import PoolExhaustedError, PoolShutdownError
from restock_monitor.proxy.session import (
    DEFAULT_LAUNCH_MAX_ATTEMPTS,
    DEFAULT_LAUNCH_TIMEOUT_MS,
    ProxySession,
)

if TYPE_CHECKING:
    from restock_monitor.browser.engine import BrowserEngine
    from restock_monitor.proxy.types import ProxyConfig
    from restock_monitor.scheduling.runtime import RunContext

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class _Waiter:
    """A pending ``acquire`` call."""

    future: asyncio.Future[ProxySession]
    avoid: frozenset[ProxySession] = field(default_factory=frozenset)


class SessionPool:
    """Randomised checkout/return arbitration over proxy sessions."""

    def __init__(
        self,
        configs: Sequence["ProxyConfig"],
        *,
        engine: "BrowserEngine",
        context: "RunContext",
        rng: random.Random | None = None,
        launch_timeout_ms: int = DEFAULT_LAUNCH_TIMEOUT_MS,
        launch_max_attempts: int = DEFAULT_LAUNCH_MAX_ATTEMPTS,
    ) -> None:
        self._context = context
        self._rng = rng or random.Random()
        self._sessions: list[ProxySession] = [
            ProxySession(
                config,
                index,
                engine=engine,
                context=context,
                launch_timeout_ms=launch_timeout_ms,
                launch_max_attempts=launch_max_attempts,
            )
            for index, config in enumerate(configs)
        ]
        self._available: list[ProxySession] = []
        self._waiters: list[_Waiter] = []
        self._evicted_count = 0
        self._closed = False

    # ------------------------------------------------------------------
    # initialize
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Launch every session; keep only the ones that come up.

        Raises :class:`PoolExhaustedError` if no session survives. If the
        pool is shut down mid-launch, browsers that came up late are closed
        and the pool stays empty.
        """
        usable: list[ProxySession] = []

        for session in list(self._sessions):
            if self._closed or self._context.shutting_down:
                break
            try:
                await session.ensure_browser()
            except Exception as exc:
                if self._closed or self._context.shutting_down:
                    logger.debug("Launch of proxy %s abandoned: %s", session.label, exc)
                    continue
                logger.error(
                    "Failed to initialize proxy %s: %s",
                    session.label,
                    exc,
                    extra={"proxy": session.label},
                )
                await session.close()
                continue
            usable.append(session)

        if self._closed:
            for session in usable:
                await session.close()
            logger.info("Proxy pool closed during initialization")
            return

        dropped = len(self._sessions) - len(usable)
        self._sessions = usable
        self._available = list(usable)

        if self._context.shutting_down:
            # shutdown() has yet to run and will close what is left
            return

        if not self._sessions:
            raise PoolExhaustedError("Unable to initialize any proxy browsers.")

        if dropped:
            logger.warning(
                "Initialized %d of %d proxies after filtering failures",
                len(usable),
                len(usable) + dropped,
            )
        logger.info("Proxy pool initialized with %d browsers", len(usable))

    # ------------------------------------------------------------------
    # introspection
    # ------------------------------------------------------------------

    @property
    def size(self) -> int:
        """Number of live (non-evicted) sessions."""
        return len(self._sessions)

    @property
    def sessions(self) -> tuple[ProxySession, ...]:
        return tuple(self._sessions)

    @property
    def closed(self) -> bool:
        return self._closed

    def __contains__(self, session: object) -> bool:
        return session in self._sessions

    def get_stats(self) -> dict:
        """Return pool statistics."""
        return {
            "total": len(self._sessions),
            "available": len(self._available),
            "busy": sum(1 for s in self._sessions if s.busy),
            "evicted": self._evicted_count,
            "waiting": sum(1 for w in self._waiters if not w.future.done()),
        }

    # ------------------------------------------------------------------
    # acquire
    # ------------------------------------------------------------------

    async def acquire(self, avoid: Collection[ProxySession] = ()) -> ProxySession:
        """Check out a session chosen uniformly at random.

        Sessions in *avoid* are only handed out when every live session is
        in *avoid*. Waits when nothing suitable is available.

        Raises :class:`PoolShutdownError` once the pool is shut down and
        :class:`PoolExhaustedError` when no live sessions remain.
        """
        if self._closed:
            raise PoolShutdownError()
        if not self._sessions:
            raise PoolExhaustedError()

        avoided = frozenset(avoid)
        session = self._take_available(avoided)
        if session is not None:
            session.busy = True
            return session

        waiter = _Waiter(
            future=asyncio.get_running_loop().create_future(), avoid=avoided
        )
        self._waiters.append(waiter)
        try:
            return await waiter.future
        except asyncio.CancelledError:
            self._abandon(waiter)
            raise

    def _abandon(self, waiter: _Waiter) -> None:
        """Drop a cancelled waiter, returning any session it was handed."""
        if waiter in self._waiters:
            self._waiters.remove(waiter)
        future = waiter.future
        if future.done() and not future.cancelled() and future.exception() is None:
            self.release(future.result())

    # ------------------------------------------------------------------
    # release
    # ------------------------------------------------------------------

    def release(self, session: ProxySession | None) -> None:
        """Return *session* to the pool, hand it to a waiter, or evict it."""
        if session is None:
            return

        session.busy = False

        if session.failed:
            self._evict(session)
            self._dispatch_waiting()
            return

        if self._closed or session not in self._sessions:
            asyncio.ensure_future(session.close())
            return

        waiter = self._pick_waiter(session)
        if waiter is not None:
            session.busy = True
            waiter.future.set_result(session)
            return

        if session not in self._available:
            self._available.append(session)

    # ------------------------------------------------------------------
    # shutdown
    # ------------------------------------------------------------------

    async def shutdown(self) -> None:
        """Reject pending acquisitions and close every session."""
        if self._closed:
            return

        self._closed = True
        logger.info("Shutting down proxy pool...")

        self._reject_waiters(PoolShutdownError("Proxy pool shutting down."))

        sessions = list(self._sessions)
        results = await asyncio.gather(
            *(session.close() for session in sessions), return_exceptions=True
        )
        for session, result in zip(sessions, results):
            if isinstance(result, Exception) and not self._context.shutting_down:
                logger.warning(
                    "Error closing proxy session %s: %s", session.label, result
                )

        self._sessions.clear()
        self._available.clear()
        logger.info("Proxy pool shut down")

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _eligible(self, session: ProxySession, avoid: frozenset[ProxySession]) -> bool:
        if session not in avoid:
            return True
        # Every live session already avoided: any of them will do
        return all(live in avoid for live in self._sessions)

    def _take_available(self, avoid: frozenset[ProxySession]) -> ProxySession | None:
        """Remove and return a random eligible available session."""
        while True:
            candidates = [
                i for i, s in enumerate(self._available) if self._eligible(s, avoid)
            ]
            if not candidates:
                return None

            index = candidates[self._rng.randrange(len(candidates))]
            # swap-and-pop
            self._available[index], self._available[-1] = (
                self._available[-1],
                self._available[index],
            )
            session = self._available.pop()

            if session.failed:
                self._evict(session)
                continue

            return session

    def _pick_waiter(self, session: ProxySession) -> _Waiter | None:
        """Remove and return a random waiter that may take *session*."""
        self._waiters = [w for w in self._waiters if not w.future.done()]
        eligible = [w for w in self._waiters if self._eligible(session, w.avoid)]
        if not eligible:
            return None
        waiter = eligible[self._rng.randrange(len(eligible))]
        self._waiters.remove(waiter)
        return waiter

    def _dispatch_waiting(self) -> None:
        """Serve queued waiters (oldest first) from the available sessions."""
        for waiter in list(self._waiters):
            if waiter.future.done():
                self._waiters.remove(waiter)
                continue

            session = self._take_available(waiter.avoid)
            if session is None:
                continue

            self._waiters.remove(waiter)
            session.busy = True
            waiter.future.set_result(session)

    def _evict(self, session: ProxySession) -> None:
        if session not in self._sessions:
            return

        self._sessions.remove(session)
        if session in self._available:
            self._available.remove(session)
        self._evicted_count += 1

        if not self._context.shutting_down:
            logger.warning(
                "Removing proxy %s from pool after repeated failures (last error: %s)",
                session.label,
                session.last_error,
                extra={"proxy": session.label},
            )

        asyncio.ensure_future(session.close())

        if not self._sessions:
            self._reject_waiters(PoolExhaustedError())

    def _reject_waiters(self, error: Exception) -> None:
        waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            if not waiter.future.done():
                waiter.future.set_exception(error)
