"""Monitor application wiring with startup and shutdown management.

Startup: load site profile, products and proxies, launch the proxy pool,
build the checker / retry coordinator / pass scheduler.
Shutdown: flag the run context (wakes every sleeping task), close open
pages, shut the pool down, stop the browser driver. Shutdown runs once;
concurrent requests await the same cleanup.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Callable
from datetime import datetime
from typing import Any

from restock_monitor.browser.engine import PlaywrightEngine
from restock_monitor.catalog.products import Product, load_products
from restock_monitor.catalog.purchase import PurchaseLinkBuilder, block_alert_message
from restock_monitor.config.settings import MonitorSettings
from restock_monitor.config.site_profile import SiteProfile, load_site_profile
from restock_monitor.integration.telegram import TelegramNotifier
from restock_monitor.monitoring.checker import ProductChecker
from restock_monitor.monitoring.retry import RetryCoordinator
from restock_monitor.monitoring.stock import StockTracker
from restock_monitor.proxy.parser import load_proxy_list
from restock_monitor.proxy.pool import SessionPool
from restock_monitor.scheduling.runtime import RunContext
from restock_monitor.scheduling.scheduler import (
    PassOutcome,
    PassScheduler,
    compute_target_concurrency,
)
from restock_monitor.scheduling.window import ActiveWindow

logger = logging.getLogger(__name__)


class Monitor:
    """One monitoring run: owns the run context and every component.

    Dependencies that touch the outside world (browser engine, notifier,
    random source, clock) can be injected for tests.
    """

    def __init__(
        self,
        settings: MonitorSettings,
        *,
        engine: Any = None,
        notifier: Any = None,
        site: SiteProfile | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] | None = None,
        on_pass_complete: Callable[[PassOutcome], None] | None = None,
    ) -> None:
        self.settings = settings
        self.context = RunContext()
        self.window = ActiveWindow(
            start_hour=settings.window_start_hour,
            end_hour=settings.window_end_hour,
            utc_offset_minutes=settings.utc_offset_minutes,
        )
        self.engine = engine or PlaywrightEngine(headless=settings.headless)
        self.notifier = notifier or TelegramNotifier(
            settings.telegram_bot_token, settings.telegram_chat_id, context=self.context
        )
        self.site = site
        self._rng = rng or random.Random()
        self._clock = clock
        self._on_pass_complete = on_pass_complete

        self.products: list[Product] = []
        self.pool: SessionPool | None = None
        self.scheduler: PassScheduler | None = None

        self.shutdown_requested = False
        self._cleanup_task: asyncio.Future[None] | None = None
        self._block_handled = False

    # ------------------------------------------------------------------
    # startup
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Load configuration and bring the proxy pool up."""
        settings = self.settings

        if self.site is None:
            self.site = load_site_profile(settings.site_profile_path)

        self.products = load_products(settings.products_path)
        proxies = load_proxy_list(settings.proxies_path)

        self.pool = SessionPool(
            proxies,
            engine=self.engine,
            context=self.context,
            rng=self._rng,
            launch_timeout_ms=settings.proxy_launch_timeout_ms,
            launch_max_attempts=settings.proxy_launch_max_attempts,
        )
        await self.pool.initialize()

        checker = ProductChecker(
            context=self.context,
            site=self.site,
            links=PurchaseLinkBuilder(
                self.site.order_confirmation_url,
                default_single_count=self.site.default_single_buy_count,
                default_set_count=self.site.default_set_buy_count,
            ),
            stock=StockTracker(),
            notifier=self.notifier,
            on_block=self.handle_block,
            navigation_timeout_ms=settings.navigation_timeout_ms,
            per_product_delay_ms=(
                settings.per_product_delay_min_ms,
                settings.per_product_delay_max_ms,
            ),
            rng=self._rng,
        )
        coordinator = RetryCoordinator(pool=self.pool, checker=checker, context=self.context)

        desired = settings.desired_concurrency
        target = compute_target_concurrency(desired, len(self.products), self.pool.size)
        if target < desired:
            constraints = []
            if len(self.products) < desired:
                constraints.append(f"products ({len(self.products)})")
            if self.pool.size < desired:
                constraints.append(f"proxies ({self.pool.size})")
            logger.warning(
                "Reducing concurrency from %d to %d to match available %s.",
                desired,
                target,
                " and ".join(constraints),
            )

        self.scheduler = PassScheduler(
            products=self.products,
            coordinator=coordinator,
            context=self.context,
            window=self.window,
            target_concurrency=target,
            initial_concurrency=settings.initial_concurrency,
            pass_delay_ms=(settings.pass_delay_min_ms, settings.pass_delay_max_ms),
            rng=self._rng,
            clock=self._clock,
            on_pass_complete=self._on_pass_complete,
        )

    # ------------------------------------------------------------------
    # run
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Start up and run passes until shutdown; always cleans up."""
        try:
            await self.start()
            assert self.scheduler is not None
            await self.scheduler.run()
        finally:
            await self._cleanup()

    # ------------------------------------------------------------------
    # shutdown
    # ------------------------------------------------------------------

    def trigger_shutdown(self) -> None:
        """Signal-handler entry point (sync)."""
        self._mark_shutdown()
        self._start_cleanup()

    async def request_shutdown(self) -> None:
        """Begin graceful shutdown; concurrent callers share one cleanup."""
        self._mark_shutdown()
        await self._cleanup()

    def _mark_shutdown(self) -> None:
        if self.shutdown_requested:
            return
        self.shutdown_requested = True
        logger.info("Shutdown requested. Cleaning up...")
        # Wake sleepers and stop new work before cleanup gets scheduled
        self.context.begin_shutdown()

    def _start_cleanup(self) -> asyncio.Future[None]:
        if self._cleanup_task is None:
            self._cleanup_task = asyncio.ensure_future(self._close_resources())
            self._cleanup_task.add_done_callback(_log_cleanup_failure)
        return self._cleanup_task

    def _cleanup(self) -> asyncio.Future[None]:
        return asyncio.shield(self._start_cleanup())

    async def _close_resources(self) -> None:
        self.context.begin_shutdown()
        await self.context.pages.close_all()
        if self.pool is not None:
            await self.pool.shutdown()
        stop = getattr(self.engine, "stop", None)
        if stop is not None:
            await stop()
        logger.info("Monitor shut down")

    # ------------------------------------------------------------------
    # block escalation
    # ------------------------------------------------------------------

    async def handle_block(self, product: Product) -> None:
        """Alert once and shut the whole run down; the site is blocking us."""
        if self._block_handled:
            return
        self._block_handled = True

        logger.error(
            "Detected block page while loading %s. Initiating shutdown.",
            product.name,
            extra={"product_url": product.url},
        )
        await self.notifier.notify(block_alert_message(product))
        self.trigger_shutdown()


def _log_cleanup_failure(task: asyncio.Future[None]) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Shutdown cleanup failed: %s", exc)
