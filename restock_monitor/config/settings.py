"""Pydantic Settings for the restock monitor.

Environment variables use the MONITOR_ prefix and may also come from a
``.env`` file in the working directory (real environment variables win).
Example: MONITOR_WINDOW_END_HOUR=21, MONITOR_LOG_FORMAT=json

The Telegram credentials and the concurrency also accept their historical
unprefixed names (TELEGRAM_BOT_TOKEN, TELEGRAM_CHAT_ID,
PRODUCT_CHECK_CONCURRENCY, CONCURRENT_PRODUCT_CHECKS,
PRODUCT_CHECK_BATCH_SIZE). The concurrency names are tried in that order,
after MONITOR_DESIRED_CONCURRENCY; an invalid value is skipped with a
warning and the next name is tried, falling back to 3.
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import AliasChoices, Field, ValidationInfo, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

DEFAULT_SITE_PROFILE_PATH = str(Path(__file__).with_name("site_profile.yaml"))
DEFAULT_CONCURRENT_CHECKS = 3

# First valid one wins
CONCURRENCY_ENV_ORDER = (
    "desired_concurrency",
    "product_check_concurrency",
    "concurrent_product_checks",
    "product_check_batch_size",
)


class MonitorSettings(BaseSettings):
    """Restock monitor configuration validated from environment variables."""

    # Inputs
    products_path: str = "Products.csv"
    proxies_path: str = "Proxy.txt"
    site_profile_path: str = DEFAULT_SITE_PROFILE_PATH

    # Notifications
    telegram_bot_token: str | None = Field(
        default=None,
        validation_alias=AliasChoices("MONITOR_TELEGRAM_BOT_TOKEN", "TELEGRAM_BOT_TOKEN"),
    )
    telegram_chat_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("MONITOR_TELEGRAM_CHAT_ID", "TELEGRAM_CHAT_ID"),
    )

    # Concurrency
    # Unset or invalid values fall through to the next name in
    # CONCURRENCY_ENV_ORDER; resolved to an int after validation.
    desired_concurrency: int | None = None
    product_check_concurrency: int | None = Field(
        default=None, validation_alias="PRODUCT_CHECK_CONCURRENCY", exclude=True, repr=False
    )
    concurrent_product_checks: int | None = Field(
        default=None, validation_alias="CONCURRENT_PRODUCT_CHECKS", exclude=True, repr=False
    )
    product_check_batch_size: int | None = Field(
        default=None, validation_alias="PRODUCT_CHECK_BATCH_SIZE", exclude=True, repr=False
    )
    initial_concurrency: int = Field(default=3, ge=1)

    # Active window
    utc_offset_minutes: int = Field(default=7 * 60, ge=-12 * 60, le=14 * 60)
    window_start_hour: int = Field(default=8, ge=0, le=23)
    window_end_hour: int = Field(default=19, ge=1, le=24)

    # Browser / proxies
    headless: bool = True
    navigation_timeout_ms: int = Field(default=12000, ge=1000)
    proxy_launch_timeout_ms: int = Field(default=12000, ge=1000)
    proxy_launch_max_attempts: int = Field(default=3, ge=1)

    # Pacing
    per_product_delay_min_ms: int = Field(default=1000, ge=0)
    per_product_delay_max_ms: int = Field(default=2500, ge=0)
    pass_delay_min_ms: int = Field(default=3000, ge=0)
    pass_delay_max_ms: int = Field(default=5000, ge=0)

    # Logging
    log_level: str = "INFO"
    log_format: str = Field(default="text", pattern="^(text|json)$")

    model_config = SettingsConfigDict(
        env_prefix="MONITOR_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("telegram_bot_token", "telegram_chat_id", mode="before")
    @classmethod
    def _strip_blank(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip() or None
        return value

    @field_validator(*CONCURRENCY_ENV_ORDER, mode="before")
    @classmethod
    def _lenient_concurrency(cls, value: object, info: ValidationInfo) -> object:
        if value is None:
            return None
        text = str(value).strip()
        if not text:
            return None
        try:
            parsed = int(text)
        except ValueError:
            parsed = 0
        if parsed <= 0:
            logger.warning("Ignoring invalid %s value: %r", info.field_name, value)
            return None
        return parsed

    @model_validator(mode="after")
    def _resolve_concurrency(self) -> "MonitorSettings":
        for name in CONCURRENCY_ENV_ORDER:
            value = getattr(self, name)
            if value is not None:
                self.desired_concurrency = value
                return self
        self.desired_concurrency = DEFAULT_CONCURRENT_CHECKS
        return self

    @model_validator(mode="after")
    def _check_ranges(self) -> "MonitorSettings":
        if self.window_start_hour >= self.window_end_hour:
            raise ValueError("window_start_hour must be earlier than window_end_hour")
        if self.per_product_delay_min_ms > self.per_product_delay_max_ms:
            raise ValueError("per_product_delay_min_ms must not exceed per_product_delay_max_ms")
        if self.pass_delay_min_ms > self.pass_delay_max_ms:
            raise ValueError("pass_delay_min_ms must not exceed pass_delay_max_ms")
        return self

    @property
    def telegram_enabled(self) -> bool:
        return bool(self.telegram_bot_token and self.telegram_chat_id)
