"""Playwright browser engine adapter.

Launches one headless Chromium per proxy session, pinned to that session's
proxy (credentials included). The rest of the monitor only relies on the
small surface described by :class:`BrowserEngine`, so tests substitute an
in-memory fake.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Protocol

from playwright.async_api import TimeoutError as PlaywrightTimeoutError

if TYPE_CHECKING:
    from restock_monitor.proxy.types import ProxyConfig

logger = logging.getLogger(__name__)

# Chromium flags for headless operation behind a proxy
CHROMIUM_ARGS: list[str] = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-blink-features=AutomationControlled",
]


class BrowserEngine(Protocol):
    """What the session layer needs from a browser engine."""

    async def launch(self, proxy: "ProxyConfig", *, timeout_ms: int) -> Any:
        """Return a browser handle routed through *proxy*."""
        ...


def is_timeout_error(exc: BaseException) -> bool:
    """Classify *exc* as a timeout (retryable on the same session)."""
    if isinstance(exc, (PlaywrightTimeoutError, asyncio.TimeoutError)):
        return True
    message = str(exc).lower()
    return "timed out" in message or "timeout" in message


class PlaywrightEngine:
    """Launches Chromium browsers through a shared Playwright driver."""

    def __init__(self, *, headless: bool = True) -> None:
        self._headless = headless
        self._playwright: Any = None

    async def start(self) -> None:
        from playwright.async_api import async_playwright

        if self._playwright is None:
            self._playwright = await async_playwright().start()
            logger.debug("Playwright driver started")

    async def launch(self, proxy: "ProxyConfig", *, timeout_ms: int) -> Any:
        await self.start()
        browser = await self._playwright.chromium.launch(
            headless=self._headless,
            args=CHROMIUM_ARGS,
            proxy=proxy.to_playwright(),
            timeout=timeout_ms,
        )
        logger.debug("Launched browser for proxy %s", proxy.label)
        return browser

    async def stop(self) -> None:
        if self._playwright is None:
            return
        try:
            await self._playwright.stop()
        except Exception:
            logger.debug("Error stopping Playwright driver", exc_info=True)
        finally:
            self._playwright = None
