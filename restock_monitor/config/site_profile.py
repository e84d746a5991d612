"""Site profile model and YAML loader.

Holds the site-specific knobs of the monitor (block-page signatures, the
product-details API marker, request headers, buy-now defaults) in a typed
Pydantic model loaded from YAML.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

from restock_monitor.catalog.purchase import (
    DEFAULT_ORDER_CONFIRMATION_URL,
    DEFAULT_SET_BUY_COUNT,
    DEFAULT_SINGLE_BUY_COUNT,
)

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class SiteProfile(BaseModel):
    """Everything the monitor needs to know about the target shop."""

    order_confirmation_url: str = DEFAULT_ORDER_CONFIRMATION_URL
    product_details_marker: str = "productDetails?spuId="
    block_patterns: list[str] = Field(
        default_factory=lambda: [
            "ban dang truy cap qua thuong xuyen",
            "mot so tinh nang da bi han che",
        ]
    )
    accept_language: str = "vi-VN,vi;q=0.9,en-US;q=0.8,en;q=0.7"
    user_agent: str = DEFAULT_USER_AGENT
    default_single_buy_count: int = Field(default=DEFAULT_SINGLE_BUY_COUNT, ge=1)
    default_set_buy_count: int = Field(default=DEFAULT_SET_BUY_COUNT, ge=1)


def load_site_profile(yaml_path: str) -> SiteProfile:
    """Parse a site profile YAML file into a :class:`SiteProfile`.

    If the file is missing or invalid, returns the built-in defaults.
    """
    path = Path(yaml_path)

    if not path.exists():
        logger.warning("Site profile not found at %s; using built-in defaults", yaml_path)
        return SiteProfile()

    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        logger.error("Failed to parse site profile YAML at %s: %s", yaml_path, exc)
        return SiteProfile()

    if raw is None:
        return SiteProfile()

    if not isinstance(raw, dict):
        logger.warning("Site profile YAML at %s is not a mapping; using built-in defaults", yaml_path)
        return SiteProfile()

    try:
        return SiteProfile.model_validate(raw)
    except Exception as exc:
        logger.error("Invalid site profile at %s: %s; using built-in defaults", yaml_path, exc)
        return SiteProfile()
