"""Retry coordinator that fails a product check over to other proxy sessions.

Each attempt runs on a session that has not been tried yet for this
product. The loop ends on success, at shutdown, on a block page, or once
every live session has been tried. The pool may shrink while the loop runs
(evictions by other tasks), so exhaustion is always judged against the
pool's current size.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from restock_monitor.errors import FailureKind, MonitorError

if TYPE_CHECKING:
    from restock_monitor.catalog.products import Product
    from restock_monitor.monitoring.checker import ProductChecker
    from restock_monitor.proxy.pool import SessionPool
    from restock_monitor.proxy.session import ProxySession
    from restock_monitor.scheduling.runtime import RunContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryResult:
    success: bool
    attempts: int
    failure_kind: FailureKind | None = None
    reason: str | None = None


class RetryCoordinator:
    """Runs one product check with session failover."""

    def __init__(
        self,
        *,
        pool: "SessionPool",
        checker: "ProductChecker",
        context: "RunContext",
    ) -> None:
        self._pool = pool
        self._checker = checker
        self._context = context

    async def run(self, product: "Product") -> RetryResult:
        """Check *product*, retrying on different sessions until exhausted.

        Only the last failure reason is reported.
        """
        attempted: set["ProxySession"] = set()
        attempts = 0
        last_kind: FailureKind | None = None
        last_reason: str | None = None

        while not self._context.shutting_down:
            # Forget sessions that have since been evicted
            attempted = {s for s in attempted if s in self._pool}
            pool_size = self._pool.size

            if pool_size <= 0:
                last_kind = last_kind or FailureKind.POOL_EXHAUSTED
                last_reason = last_reason or "No proxies available in the pool"
                break

            if len(attempted) >= pool_size:
                break

            try:
                session = await self._pool.acquire(avoid=attempted)
            except MonitorError as exc:
                if not self._context.shutting_down:
                    logger.error("Failed to acquire proxy session: %s", exc)
                last_kind = FailureKind.POOL_EXHAUSTED
                last_reason = exc.message
                break

            if session in attempted and self._pool.size > 1:
                # Handed back a session already tried (the pool shrank while
                # waiting); the size check above decides whether to go on.
                self._pool.release(session)
                continue

            attempted.add(session)
            attempts += 1

            try:
                result = await self._checker.check(product, session)
            except Exception as exc:
                if not self._context.shutting_down:
                    logger.exception(
                        "Unexpected error while loading %s via proxy %s",
                        product.url,
                        session.label,
                    )
                last_kind, last_reason = FailureKind.NAVIGATION, str(exc) or repr(exc)
                result = None
            finally:
                self._pool.release(session)

            if result is not None and result.success:
                if attempts > 1 and not self._context.shutting_down:
                    logger.info(
                        "Loaded %s successfully after %d proxy attempts.",
                        product.name,
                        attempts,
                        extra={"product_url": product.url, "attempt": attempts},
                    )
                return RetryResult(success=True, attempts=attempts)

            if result is not None:
                last_kind = result.failure_kind or last_kind
                last_reason = result.reason or last_reason

            if last_kind is FailureKind.BLOCKED:
                break

            if not self._context.shutting_down and self._pool.size > len(
                {s for s in attempted if s in self._pool}
            ):
                logger.info(
                    "Retrying %s with a different proxy (attempt %d).",
                    product.name,
                    attempts + 1,
                    extra={"product_url": product.url, "attempt": attempts + 1},
                )

        if self._context.shutting_down:
            return RetryResult(
                success=False,
                attempts=attempts,
                failure_kind=FailureKind.SHUTDOWN,
                reason=last_reason or "Shutting down",
            )

        if attempts == 0:
            summary = f"No proxy attempts could be made for {product.name}."
        else:
            plural = "" if attempts == 1 else "s"
            summary = f"Exhausted {attempts} proxy attempt{plural} for {product.name}."
        reason_text = f" Last error: {last_reason}." if last_reason else ""
        logger.warning(
            "%s%s",
            summary,
            reason_text,
            extra={
                "product_url": product.url,
                "attempt": attempts,
                "failure_kind": last_kind.value if last_kind else None,
            },
        )
        return RetryResult(
            success=False, attempts=attempts, failure_kind=last_kind, reason=last_reason
        )
