"""A lazily-launched browser bound to one proxy.

Lifecycle
---------
``IDLE`` → ``LAUNCHING`` → ``READY``. A browser disconnect moves a ready
session to ``DETACHED``; the next :meth:`ProxySession.ensure_browser` call
relaunches it. Exhausting the launch attempts (or any non-timeout launch
error) moves the session to ``FAILED``, which is terminal: the pool evicts
failed sessions and never hands them out again.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import TYPE_CHECKING, Any

from restock_monitor.browser.engine import is_timeout_error
from restock_monitor.errors import SessionUnavailableError, ShutdownInProgressError

if TYPE_CHECKING:
    from restock_monitor.browser.engine import BrowserEngine
    from restock_monitor.proxy.types import ProxyConfig
    from restock_monitor.scheduling.runtime import RunContext

logger = logging.getLogger(__name__)

DEFAULT_LAUNCH_TIMEOUT_MS = 12_000
DEFAULT_LAUNCH_MAX_ATTEMPTS = 3


class SessionState(str, Enum):
    IDLE = "idle"
    LAUNCHING = "launching"
    READY = "ready"
    DETACHED = "detached"
    FAILED = "failed"


class ProxySession:
    """One browser handle pinned to one proxy, with its own failure state."""

    def __init__(
        self,
        config: "ProxyConfig",
        index: int,
        *,
        engine: "BrowserEngine",
        context: "RunContext",
        launch_timeout_ms: int = DEFAULT_LAUNCH_TIMEOUT_MS,
        launch_max_attempts: int = DEFAULT_LAUNCH_MAX_ATTEMPTS,
    ) -> None:
        self.config = config
        self.index = index
        self.busy = False
        self.last_error: BaseException | None = None
        self._engine = engine
        self._context = context
        self._launch_timeout_ms = launch_timeout_ms
        self._launch_max_attempts = launch_max_attempts
        self._browser: Any = None
        self._launching: asyncio.Task[Any] | None = None
        self._state = SessionState.IDLE

    def __repr__(self) -> str:
        return f"ProxySession({self.label!r}, state={self._state.value})"

    @property
    def label(self) -> str:
        return self.config.label

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def failed(self) -> bool:
        return self._state is SessionState.FAILED

    @property
    def browser(self) -> Any:
        return self._browser

    # ------------------------------------------------------------------
    # ensure_browser
    # ------------------------------------------------------------------

    async def ensure_browser(self) -> Any:
        """Return the live browser, launching it if necessary.

        Concurrent callers share a single in-flight launch.
        """
        if self.failed:
            raise SessionUnavailableError(
                f"Proxy {self.label} is unavailable due to repeated failures."
            ) from self.last_error

        if self._browser is not None:
            return self._browser

        if self._launching is None:
            self._launching = asyncio.ensure_future(self._launch())

        return await asyncio.shield(self._launching)

    # ------------------------------------------------------------------
    # launch
    # ------------------------------------------------------------------

    async def _launch(self) -> Any:
        try:
            return await self._launch_with_retries()
        finally:
            self._launching = None

    async def _launch_with_retries(self) -> Any:
        self._state = SessionState.LAUNCHING
        last_error: BaseException | None = None

        for attempt in range(1, self._launch_max_attempts + 1):
            if self._context.shutting_down:
                error = ShutdownInProgressError()
                self._retire(error)
                raise error

            try:
                browser = await self._engine.launch(
                    self.config, timeout_ms=self._launch_timeout_ms
                )
            except Exception as exc:
                last_error = exc
                if (
                    is_timeout_error(exc)
                    and attempt < self._launch_max_attempts
                    and not self._context.shutting_down
                ):
                    logger.warning(
                        "Proxy %s timed out after %dms (attempt %d/%d). Retrying...",
                        self.label,
                        self._launch_timeout_ms,
                        attempt,
                        self._launch_max_attempts,
                        extra={"proxy": self.label, "attempt": attempt},
                    )
                    continue

                self._retire(exc)
                raise

            browser.on("disconnected", lambda *_: self._on_disconnected(browser))
            self._browser = browser
            self.last_error = None
            self._state = SessionState.READY
            logger.debug("Proxy %s browser ready", self.label)
            return browser

        # Only reachable when max attempts is zero
        error = last_error or SessionUnavailableError(
            f"Proxy {self.label} could not be launched."
        )
        self._retire(error)
        raise error

    def _retire(self, error: BaseException) -> None:
        self.last_error = error
        self._state = SessionState.FAILED

    def _on_disconnected(self, browser: Any) -> None:
        # A stale handle disconnecting must not detach its replacement
        if self._browser is not browser:
            return

        self._browser = None
        if self._state is SessionState.READY:
            self._state = SessionState.DETACHED
        if not self._context.shutting_down:
            logger.warning(
                "Browser for proxy %s disconnected; it will be relaunched on next use",
                self.label,
                extra={"proxy": self.label},
            )

    # ------------------------------------------------------------------
    # close
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Best-effort close of the browser; the handle is always dropped."""
        browser = self._browser
        if browser is None:
            return

        try:
            await browser.close()
        except Exception:
            if not self._context.shutting_down:
                logger.warning(
                    "Error closing browser for proxy %s",
                    self.label,
                    exc_info=True,
                )
        finally:
            if self._browser is browser:
                self._browser = None
            if self._state in (SessionState.READY, SessionState.DETACHED):
                self._state = SessionState.IDLE
