"""Browser engine adapter."""

from restock_monitor.browser.engine import (
    CHROMIUM_ARGS,
    BrowserEngine,
    PlaywrightEngine,
    is_timeout_error,
)

__all__ = [
    "CHROMIUM_ARGS",
    "BrowserEngine",
    "PlaywrightEngine",
    "is_timeout_error",
]
