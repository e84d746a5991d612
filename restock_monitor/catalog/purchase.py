"""Variant resolution, buy-now links and notification texts."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from urllib.parse import urlencode

from restock_monitor.catalog.products import Product

logger = logging.getLogger(__name__)

DEFAULT_ORDER_CONFIRMATION_URL = "https://www.popmart.com/vn/order-confirmation"
DEFAULT_SINGLE_BUY_COUNT = 12
DEFAULT_SET_BUY_COUNT = 2

_SKU_ID_KEYS = ("skuId", "id", "sku_id", "skuid", "skuID", "sku")


class VariantKind(str, Enum):
    SINGLE = "single"
    SET = "set"
    OTHER = "other"


def extract_sku_id(sku_data: Any) -> str:
    """SKU id from a response's ``skus[i]`` entry, or ``""``."""
    if not isinstance(sku_data, dict):
        return ""

    raw = None
    for key in _SKU_ID_KEYS:
        if sku_data.get(key) is not None:
            raw = sku_data[key]
            break

    if isinstance(raw, bool):
        return ""
    if isinstance(raw, (int, float)):
        return str(raw)
    if isinstance(raw, str):
        return raw.strip()
    return ""


def resolve_variant_kind(product: Product, index: int, sku_data: Any = None) -> VariantKind:
    """Classify the variant at *index*.

    A SKU id in the response that matches a configured id wins; otherwise
    the position decides (first is the single box, second the full set).
    """
    sku_id = extract_sku_id(sku_data)

    if sku_id:
        if product.sku_single_id and sku_id == product.sku_single_id:
            return VariantKind.SINGLE
        if product.sku_set_id and sku_id == product.sku_set_id:
            return VariantKind.SET

    if not product.sku_single_id and product.sku_set_id:
        return VariantKind.SET

    if index == 0:
        return VariantKind.SINGLE if product.sku_single_id else VariantKind.SET

    if index == 1:
        return VariantKind.SET

    return VariantKind.OTHER


def resolve_sku_id(product: Product, index: int, sku_data: Any = None) -> str:
    kind = resolve_variant_kind(product, index, sku_data)

    if kind is VariantKind.SINGLE and product.sku_single_id:
        return product.sku_single_id
    if kind is VariantKind.SET and product.sku_set_id:
        return product.sku_set_id

    return extract_sku_id(sku_data)


class PurchaseLinkBuilder:
    """Builds order-confirmation links, warning once per missing id."""

    def __init__(
        self,
        order_confirmation_url: str = DEFAULT_ORDER_CONFIRMATION_URL,
        *,
        default_single_count: int = DEFAULT_SINGLE_BUY_COUNT,
        default_set_count: int = DEFAULT_SET_BUY_COUNT,
    ) -> None:
        self._base_url = order_confirmation_url
        self._default_single_count = default_single_count
        self._default_set_count = default_set_count
        self._warned: set[str] = set()

    def buy_count(self, product: Product, index: int, sku_data: Any = None) -> int:
        kind = resolve_variant_kind(product, index, sku_data)
        if kind is VariantKind.SINGLE:
            return product.limit_single or self._default_single_count
        if kind is VariantKind.SET:
            return product.limit_set or self._default_set_count
        return 1

    def build(self, product: Product, index: int, sku_data: Any = None) -> str | None:
        """Return the buy-now URL, or ``None`` when an id is missing."""
        if not product.spu_id:
            self._warn_once(
                product.url,
                "Unable to build buy-now link for %s - missing spuId.",
                product.name,
            )
            return None

        sku_id = resolve_sku_id(product, index, sku_data)
        if not sku_id:
            self._warn_once(
                f"{product.url}#{index}",
                "Unable to build buy-now link for %s SKU%d - missing skuId.",
                product.name,
                index + 1,
            )
            return None

        params = urlencode(
            {
                "spuId": product.spu_id,
                "skuId": sku_id,
                "count": str(self.buy_count(product, index, sku_data)),
                "spuTitle": product.purchase_title,
            }
        )
        return f"{self._base_url}?{params}"

    def _warn_once(self, key: str, message: str, *args: object) -> None:
        if key in self._warned:
            return
        self._warned.add(key)
        logger.warning(message, *args)

    def restock_message(
        self, product: Product, index: int, stock: int, sku_data: Any = None
    ) -> str:
        """Notification text for a restocked variant."""
        kind = resolve_variant_kind(product, index, sku_data)
        if kind is VariantKind.SINGLE:
            headline = f"Restock box le: {product.name}"
        elif kind is VariantKind.SET:
            headline = f"Restock full set: {product.name}"
        else:
            headline = f"Restock ship: {product.name}"

        link = self.build(product, index, sku_data)
        lines = [
            headline,
            f"So luong online: {stock}",
            f"Mua ngay: {link}" if link else product.url,
        ]
        return "\n".join(lines)


def block_alert_message(product: Product, when: datetime | None = None) -> str:
    """Alert text sent once when the site starts serving its block page."""
    timestamp = (when or datetime.now(timezone.utc)).isoformat()
    return "\n".join(
        [
            "[ALERT] Pop Mart da gioi han truy cap bot.",
            f"San pham: {product.name}",
            f"URL: {product.url}",
            f"Thoi gian: {timestamp}",
        ]
    )
