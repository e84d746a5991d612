"""Scheduling components: active window, cancellation context and pass scheduler."""

from restock_monitor.scheduling.runtime import DelayRegistry, PageRegistry, RunContext
from restock_monitor.scheduling.scheduler import (
    PassOutcome,
    PassScheduler,
    compute_target_concurrency,
)
from restock_monitor.scheduling.window import ActiveWindow, format_duration

__all__ = [
    "ActiveWindow",
    "DelayRegistry",
    "PageRegistry",
    "PassOutcome",
    "PassScheduler",
    "RunContext",
    "compute_target_concurrency",
    "format_duration",
]
