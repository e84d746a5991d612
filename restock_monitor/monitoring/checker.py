"""Single product check on one proxy session.

Opens a page on the session's browser, listens for the product-details API
response while the page loads, and turns stock changes into restock
notifications. Navigation failures are classified and returned rather than
raised, so the retry coordinator can fail over to another session.
"""

from __future__ import annotations

import logging
import random
import unicodedata
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from restock_monitor.browser.engine import is_timeout_error
from restock_monitor.catalog.purchase import VariantKind, resolve_variant_kind
from restock_monitor.errors import FailureKind, SessionUnavailableError

if TYPE_CHECKING:
    from restock_monitor.catalog.products import Product
    from restock_monitor.catalog.purchase import PurchaseLinkBuilder
    from restock_monitor.config.site_profile import SiteProfile
    from restock_monitor.integration.telegram import TelegramNotifier
    from restock_monitor.monitoring.stock import StockTracker
    from restock_monitor.proxy.session import ProxySession
    from restock_monitor.scheduling.runtime import RunContext

logger = logging.getLogger(__name__)

# Only the first two variants (single box, full set) are announced
NOTIFIED_VARIANTS = 2

_STROKED_D = str.maketrans({"đ": "d", "Đ": "D"})


@dataclass(frozen=True)
class CheckResult:
    success: bool
    failure_kind: FailureKind | None = None
    reason: str | None = None

    @classmethod
    def ok(cls) -> "CheckResult":
        return cls(success=True)

    @classmethod
    def failed(cls, kind: FailureKind, reason: str) -> "CheckResult":
        return cls(success=False, failure_kind=kind, reason=reason)


def normalize_for_match(value: str | None) -> str:
    """Strip accents (NFD combining marks) and lowercase.

    ``đ`` has no decomposition, so it is folded to ``d`` explicitly.
    """
    if not value:
        return ""
    decomposed = unicodedata.normalize("NFD", str(value))
    stripped = "".join(c for c in decomposed if not unicodedata.combining(c))
    return stripped.translate(_STROKED_D).lower()


def is_block_page(html: str | None, patterns: list[str]) -> bool:
    normalized = normalize_for_match(html)
    if not normalized:
        return False
    return any(normalize_for_match(p) in normalized for p in patterns if p)


class ProductChecker:
    """Loads a product page through a proxy session and reacts to its stock."""

    def __init__(
        self,
        *,
        context: "RunContext",
        site: "SiteProfile",
        links: "PurchaseLinkBuilder",
        stock: "StockTracker",
        notifier: "TelegramNotifier",
        on_block: Callable[["Product"], Awaitable[None]],
        navigation_timeout_ms: int = 12000,
        per_product_delay_ms: tuple[int, int] = (1000, 2500),
        rng: random.Random | None = None,
    ) -> None:
        self._context = context
        self._site = site
        self._links = links
        self._stock = stock
        self._notifier = notifier
        self._on_block = on_block
        self._navigation_timeout_ms = navigation_timeout_ms
        self._per_product_delay_ms = per_product_delay_ms
        self._rng = rng or random.Random()

    async def check(self, product: "Product", session: "ProxySession") -> CheckResult:
        """Load *product* through *session*; never raises for page failures."""
        if self._context.shutting_down:
            return CheckResult.failed(FailureKind.SHUTDOWN, "Shutting down")

        page: Any = None
        handler = self.response_handler(product)

        try:
            browser = await session.ensure_browser()
            page = await browser.new_page(
                user_agent=self._site.user_agent,
                extra_http_headers={"Accept-Language": self._site.accept_language},
            )
            self._context.pages.add(page)
            page.on("response", handler)

            logger.info(
                "Loading %s via proxy %s",
                product.name,
                session.label,
                extra={"product_url": product.url, "proxy": session.label},
            )
            await page.goto(
                product.url,
                wait_until="networkidle",
                timeout=self._navigation_timeout_ms,
            )

            if self._context.shutting_down:
                return CheckResult.failed(FailureKind.SHUTDOWN, "Shutting down")

            html = await page.content()
            if is_block_page(html, self._site.block_patterns):
                await self._on_block(product)
                return CheckResult.failed(FailureKind.BLOCKED, "Block page detected")

            await self._context.sleep_between(*self._per_product_delay_ms, rng=self._rng)
            return CheckResult.ok()

        except Exception as exc:
            return self._classify(exc, product, session)

        finally:
            if page is not None:
                try:
                    page.remove_listener("response", handler)
                except Exception:
                    logger.debug("Could not detach response listener", exc_info=True)
            await self._context.pages.close(page, quiet=self._context.shutting_down)

    def _classify(
        self, exc: Exception, product: "Product", session: "ProxySession"
    ) -> CheckResult:
        if self._context.shutting_down:
            return CheckResult.failed(FailureKind.SHUTDOWN, "Shutting down")

        if isinstance(exc, SessionUnavailableError) or session.failed:
            logger.warning(
                "Proxy %s unavailable for %s: %s",
                session.label,
                product.name,
                exc,
                extra={"product_url": product.url, "proxy": session.label,
                       "failure_kind": FailureKind.SESSION_UNAVAILABLE.value},
            )
            return CheckResult.failed(FailureKind.SESSION_UNAVAILABLE, str(exc))

        if is_timeout_error(exc):
            logger.warning(
                "Skipping %s via proxy %s after %dms without response.",
                product.name,
                session.label,
                self._navigation_timeout_ms,
                extra={"product_url": product.url, "proxy": session.label,
                       "failure_kind": FailureKind.TIMEOUT.value},
            )
            return CheckResult.failed(
                FailureKind.TIMEOUT, f"Timeout after {self._navigation_timeout_ms}ms"
            )

        logger.error(
            "Failed to load %s via proxy %s: %s",
            product.url,
            session.label,
            exc,
            extra={"product_url": product.url, "proxy": session.label,
                   "failure_kind": FailureKind.NAVIGATION.value},
        )
        return CheckResult.failed(
            FailureKind.NAVIGATION, str(exc) or "Unknown navigation error"
        )

    # ------------------------------------------------------------------
    # Stock responses
    # ------------------------------------------------------------------

    def response_handler(self, product: "Product") -> Callable[[Any], Awaitable[None]]:
        """Build the ``page.on("response")`` callback for *product*."""

        async def on_response(response: Any) -> None:
            if self._context.shutting_down:
                return
            try:
                await self.handle_response(product, response)
            except Exception:
                # Non-JSON bodies or pages closing mid-download
                logger.debug("Ignoring unreadable response for %s", product.url, exc_info=True)

        return on_response

    async def handle_response(self, product: "Product", response: Any) -> int:
        """Process one network response; return the number of notifications sent."""
        url = response.url
        if self._site.product_details_marker not in url:
            return 0
        if product.spu_id and f"spuId={product.spu_id}" not in url:
            return 0

        payload = await response.json()
        data = payload.get("data") if isinstance(payload, dict) else None
        skus = data.get("skus") if isinstance(data, dict) else None
        if not isinstance(skus, list):
            return 0

        sent = 0
        for index, sku in enumerate(skus):
            stock_info = sku.get("stock") if isinstance(sku, dict) else None
            stock = stock_info.get("onlineStock") if isinstance(stock_info, dict) else None
            if not isinstance(stock, int) or isinstance(stock, bool):
                continue

            changed = self._stock.observe(product.url, index, stock)
            kind = resolve_variant_kind(product, index, sku)

            if changed and index < NOTIFIED_VARIANTS and kind is not VariantKind.OTHER:
                logger.info(
                    "Restock detected for %s variant %d (%s): %d online",
                    product.name,
                    index + 1,
                    kind.value,
                    stock,
                    extra={"product_url": product.url, "stock": stock},
                )
                await self._notifier.notify(
                    self._links.restock_message(product, index, stock, sku)
                )
                sent += 1

        return sent
