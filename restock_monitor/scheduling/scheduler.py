"""Pass scheduler that sweeps the product list inside the active window.

Each pass checks every product in file order with at most
``min(current, target)`` checks in flight. After every pass that covered
the whole list with the window still open, the allowed concurrency grows
by one until it reaches the target, so a fresh run starts gently.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from restock_monitor.scheduling.window import format_duration

if TYPE_CHECKING:
    from restock_monitor.catalog.products import Product
    from restock_monitor.monitoring.retry import RetryCoordinator
    from restock_monitor.scheduling.runtime import RunContext
    from restock_monitor.scheduling.window import ActiveWindow

logger = logging.getLogger(__name__)

INTERRUPTED_BY_WINDOW = "window"
INTERRUPTED_BY_SHUTDOWN = "shutdown"


@dataclass(frozen=True)
class PassOutcome:
    """Summary of one sweep over the product list."""

    number: int
    limit: int
    attempted: int
    completed: bool
    interrupted_by: str | None = None
    duration_ms: float = 0.0


def compute_target_concurrency(desired: int, product_count: int, session_count: int) -> int:
    """Concurrency ceiling the products and live sessions can support."""
    return max(1, min(desired, product_count, session_count))


class PassScheduler:
    """Drives passes over the product list with a ramped concurrency cap.

    Parameters
    ----------
    products:
        Products in file order.
    coordinator:
        Runs one product check with session failover.
    context:
        Run-scoped cancellation context.
    window:
        Daily active window.
    target_concurrency:
        Ceiling for in-flight checks per pass.
    initial_concurrency:
        Cap for the first pass (clamped to the target).
    pass_delay_ms:
        ``(min, max)`` random pause between completed passes.
    clock:
        Returns the current time; injectable for tests.
    on_pass_complete:
        Optional callback invoked with each :class:`PassOutcome`.
    """

    def __init__(
        self,
        *,
        products: Sequence["Product"],
        coordinator: "RetryCoordinator",
        context: "RunContext",
        window: "ActiveWindow",
        target_concurrency: int,
        initial_concurrency: int = 3,
        pass_delay_ms: tuple[int, int] = (3000, 5000),
        rng: random.Random | None = None,
        clock: Callable[[], datetime] | None = None,
        on_pass_complete: Callable[[PassOutcome], None] | None = None,
    ) -> None:
        self._products = list(products)
        self._coordinator = coordinator
        self._context = context
        self._window = window
        self._target = max(1, target_concurrency)
        self._current = max(1, min(initial_concurrency, self._target))
        self._pass_delay_ms = pass_delay_ms
        self._rng = rng or random.Random()
        self._clock = clock or window.now
        self._on_pass_complete = on_pass_complete
        self._passes = 0
        self._completed_passes = 0
        self._last_outcome: PassOutcome | None = None

    @property
    def current_concurrency(self) -> int:
        return self._current

    @property
    def target_concurrency(self) -> int:
        return self._target

    def get_stats(self) -> dict:
        return {
            "current_concurrency": self._current,
            "target_concurrency": self._target,
            "passes": self._passes,
            "completed_passes": self._completed_passes,
            "last_pass_limit": self._last_outcome.limit if self._last_outcome else None,
        }

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Run passes until shutdown."""
        if self._current < self._target:
            logger.info(
                "Target concurrency %d. Warmup starting with %d concurrent check(s) "
                "and increasing by 1 after each full pass.",
                self._target,
                self._current,
            )
        else:
            logger.info("Using up to %d concurrent checks per pass.", self._target)

        while not self._context.shutting_down:
            await self.wait_for_window()
            if self._context.shutting_down:
                break

            outcome = await self.run_pass()
            if self._context.shutting_down:
                break
            if not outcome.completed:
                continue

            if not self._window.is_within_active_window(self._clock()):
                logger.info(
                    "Monitoring window closed after completing the product list. "
                    "Waiting for the next window."
                )
                continue

            self._advance_concurrency()
            await self._context.sleep_between(*self._pass_delay_ms, rng=self._rng)

    async def wait_for_window(self) -> None:
        """Suspend until the active window is open or shutdown begins."""
        while not self._context.shutting_down:
            wait_ms = self._window.ms_until_next_window(self._clock())
            if wait_ms <= 0:
                return
            logger.info(
                "Outside monitoring window (%s). Waiting %s before resuming.",
                self._window.describe(),
                format_duration(wait_ms),
            )
            await self._context.sleep(wait_ms)

    # ------------------------------------------------------------------
    # One pass
    # ------------------------------------------------------------------

    async def run_pass(self) -> PassOutcome:
        """Sweep the product list once at the current concurrency cap."""
        self._passes += 1
        number = self._passes
        limit = min(self._current, self._target)
        started = time.monotonic()
        running: set[asyncio.Task[None]] = set()
        tasks: list[asyncio.Task[None]] = []
        interrupted_by: str | None = None

        for product in self._products:
            interrupted_by = self._interruption()
            if interrupted_by:
                break

            while len(running) >= limit and not self._context.shutting_down:
                await self._wait_for_slot(running)

            interrupted_by = self._interruption(check_window=False)
            if interrupted_by:
                break

            task = asyncio.ensure_future(self._check(product))
            running.add(task)
            task.add_done_callback(running.discard)
            tasks.append(task)

        if tasks:
            await asyncio.gather(*tasks)

        outcome = PassOutcome(
            number=number,
            limit=limit,
            attempted=len(tasks),
            completed=interrupted_by is None and not self._context.shutting_down,
            interrupted_by=interrupted_by
            or (INTERRUPTED_BY_SHUTDOWN if self._context.shutting_down else None),
            duration_ms=(time.monotonic() - started) * 1000,
        )
        self._last_outcome = outcome

        if outcome.completed:
            self._completed_passes += 1
            logger.info(
                "Completed pass %d through the product list in %.0fms (limit %d).",
                number,
                outcome.duration_ms,
                limit,
                extra={"pass_number": number, "concurrency": limit},
            )

        if self._on_pass_complete:
            try:
                self._on_pass_complete(outcome)
            except Exception:
                logger.exception("on_pass_complete callback error")

        return outcome

    def _interruption(self, *, check_window: bool = True) -> str | None:
        if self._context.shutting_down:
            return INTERRUPTED_BY_SHUTDOWN
        if check_window and not self._window.is_within_active_window(self._clock()):
            logger.info(
                "Monitoring window closed (outside %s). Pausing until it reopens.",
                self._window.describe(),
            )
            return INTERRUPTED_BY_WINDOW
        return None

    async def _wait_for_slot(self, running: set[asyncio.Task[None]]) -> None:
        """Block until an in-flight check finishes or shutdown begins."""
        stop = asyncio.ensure_future(self._context.wait_shutdown())
        try:
            await asyncio.wait({*running, stop}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stop.cancel()
        running.difference_update({task for task in running if task.done()})

    async def _check(self, product: "Product") -> None:
        if self._context.shutting_down:
            return
        try:
            await self._coordinator.run(product)
        except Exception:
            if not self._context.shutting_down:
                logger.exception(
                    "Unexpected error while processing %s",
                    product.url,
                    extra={"product_url": product.url},
                )

    def _advance_concurrency(self) -> None:
        if self._current >= self._target:
            return
        self._current += 1
        logger.info(
            "Increasing allowed concurrency to %d.",
            min(self._current, self._target),
            extra={"concurrency": self._current},
        )
