"""Telegram notification delivery.

Sends plain-text messages through the Bot API ``sendMessage`` method.
Delivery is best-effort: failures are logged and never raised to the
caller, so a notification outage cannot stop the monitor.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

import httpx

if TYPE_CHECKING:
    from restock_monitor.scheduling.runtime import RunContext

logger = logging.getLogger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org"


class TelegramNotifier:
    """Delivers messages to one Telegram chat with bounded retries.

    Parameters
    ----------
    token:
        Bot token. Notifications are disabled when missing.
    chat_id:
        Target chat id. Notifications are disabled when missing.
    timeout_seconds:
        HTTP timeout per delivery attempt (default 10).
    max_retries:
        Maximum delivery attempts for connection errors and 5xx (default 2).
    backoff_base:
        Base backoff in seconds between attempts (default 1).
    context:
        Run context; when given, backoff sleeps end early on shutdown and
        no further attempts are made.
    """

    def __init__(
        self,
        token: str | None,
        chat_id: str | None,
        *,
        timeout_seconds: float = 10.0,
        max_retries: int = 2,
        backoff_base: float = 1.0,
        api_base: str = TELEGRAM_API_BASE,
        context: "RunContext | None" = None,
    ) -> None:
        self._token = (token or "").strip()
        self._chat_id = (chat_id or "").strip()
        self._timeout_seconds = timeout_seconds
        self._max_retries = max(1, max_retries)
        self._backoff_base = backoff_base
        self._api_base = api_base.rstrip("/")
        self._context = context
        self._disabled_warning_shown = False
        self.sent_count = 0

    @property
    def enabled(self) -> bool:
        return bool(self._token and self._chat_id)

    async def notify(self, text: str) -> bool:
        """Send *text*; return ``True`` on delivery. Never raises."""
        if not self.enabled:
            if not self._disabled_warning_shown:
                logger.warning(
                    "Telegram notifications are disabled. Provide TELEGRAM_BOT_TOKEN "
                    "and TELEGRAM_CHAT_ID (environment or .env)."
                )
                self._disabled_warning_shown = True
            return False

        try:
            return await self._deliver(text)
        except Exception:
            logger.exception("Failed to send Telegram message")
            return False

    async def _deliver(self, text: str) -> bool:
        url = f"{self._api_base}/bot{self._token}/sendMessage"
        payload = {"chat_id": self._chat_id, "text": text}
        last_error: object = None

        for attempt in range(self._max_retries):
            try:
                async with httpx.AsyncClient() as client:
                    response = await client.post(
                        url, json=payload, timeout=self._timeout_seconds
                    )
            except (httpx.ConnectError, httpx.TimeoutException) as exc:
                last_error = exc
            else:
                if response.status_code < 400:
                    self.sent_count += 1
                    logger.debug("Telegram message delivered (status %d)", response.status_code)
                    return True

                if response.status_code == 404:
                    logger.error(
                        "Telegram API returned 404. Double-check TELEGRAM_BOT_TOKEN (likely invalid)."
                    )
                elif response.status_code == 401:
                    logger.error(
                        "Telegram API returned 401. Verify TELEGRAM_CHAT_ID or bot permissions."
                    )

                if response.status_code < 500:
                    logger.error("Failed to send Telegram message: %s", response.text)
                    return False
                last_error = f"HTTP {response.status_code}"

            if attempt < self._max_retries - 1:
                backoff = self._backoff_base * (2**attempt)
                logger.warning(
                    "Telegram delivery failed (attempt %d/%d), retrying in %.0fs",
                    attempt + 1,
                    self._max_retries,
                    backoff,
                )
                await self._sleep(backoff)
                if self._context is not None and self._context.shutting_down:
                    logger.warning("Telegram delivery abandoned: shutting down")
                    return False

        logger.error(
            "Telegram delivery failed after %d attempts: %s",
            self._max_retries,
            last_error,
        )
        return False

    async def _sleep(self, seconds: float) -> None:
        if self._context is None:
            await asyncio.sleep(seconds)
        else:
            await self._context.sleep(seconds * 1000)
