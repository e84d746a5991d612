"""In-memory stock observations used to suppress duplicate notifications."""

from __future__ import annotations


class StockTracker:
    """Last seen online stock per ``(product_url, variant_index)``."""

    def __init__(self) -> None:
        self._last_seen: dict[tuple[str, int], int] = {}

    def __len__(self) -> int:
        return len(self._last_seen)

    def last(self, product_url: str, index: int) -> int | None:
        return self._last_seen.get((product_url, index))

    def observe(self, product_url: str, index: int, stock: int) -> bool:
        """Record *stock* and return ``True`` if it is a new positive value."""
        key = (product_url, index)
        previous = self._last_seen.get(key)
        self._last_seen[key] = stock
        return stock > 0 and stock != previous
