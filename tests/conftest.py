"""Shared fakes, fixtures and hypothesis strategies for the monitor test suite."""

from __future__ import annotations

import asyncio
import random
from collections.abc import Iterable
from typing import Any

import pytest
from hypothesis import strategies as st

from restock_monitor.catalog.products import Product
from restock_monitor.config.settings import MonitorSettings
from restock_monitor.config.site_profile import SiteProfile
from restock_monitor.proxy.types import ProxyConfig
from restock_monitor.scheduling.runtime import RunContext


# ---------------------------------------------------------------------------
# Keep the developer's environment / .env out of settings tests
# ---------------------------------------------------------------------------

_ENV_KEYS = (
    "TELEGRAM_BOT_TOKEN",
    "TELEGRAM_CHAT_ID",
    "PRODUCT_CHECK_CONCURRENCY",
    "CONCURRENT_PRODUCT_CHECKS",
    "PRODUCT_CHECK_BATCH_SIZE",
    "MONITOR_TELEGRAM_BOT_TOKEN",
    "MONITOR_TELEGRAM_CHAT_ID",
    "MONITOR_DESIRED_CONCURRENCY",
    "MONITOR_LOG_LEVEL",
    "MONITOR_LOG_FORMAT",
    "MONITOR_WINDOW_START_HOUR",
    "MONITOR_WINDOW_END_HOUR",
)


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    """Run every test from an empty directory with no monitor env vars."""
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)


# ---------------------------------------------------------------------------
# Browser engine fakes
# ---------------------------------------------------------------------------


class FakeResponse:
    """Stand-in for ``playwright.async_api.Response``."""

    def __init__(self, url: str, payload: Any = None, *, fail: bool = False) -> None:
        self.url = url
        self._payload = payload
        self._fail = fail

    async def json(self) -> Any:
        if self._fail:
            raise ValueError("not json")
        return self._payload


class FakePage:
    """Stand-in for ``playwright.async_api.Page``.

    ``goto`` replays the scripted responses to registered listeners, then
    raises ``error`` if one is set.
    """

    def __init__(
        self,
        *,
        html: str = "<html>ok</html>",
        responses: Iterable[FakeResponse] = (),
        error: BaseException | None = None,
        goto_delay: float = 0.0,
    ) -> None:
        self.html = html
        self.responses = list(responses)
        self.error = error
        self.goto_delay = goto_delay
        self.listeners: dict[str, list[Any]] = {}
        self.closed = False
        self.visited: list[str] = []
        self.new_page_kwargs: dict[str, Any] = {}

    def on(self, event: str, callback: Any) -> None:
        self.listeners.setdefault(event, []).append(callback)

    def remove_listener(self, event: str, callback: Any) -> None:
        self.listeners.get(event, []).remove(callback)

    async def goto(self, url: str, **kwargs: Any) -> None:
        self.visited.append(url)
        if self.goto_delay:
            await asyncio.sleep(self.goto_delay)
        for response in self.responses:
            for callback in list(self.listeners.get("response", [])):
                await callback(response)
        if self.error is not None:
            raise self.error

    async def content(self) -> str:
        return self.html

    def is_closed(self) -> bool:
        return self.closed

    async def close(self, **kwargs: Any) -> None:
        self.closed = True


class FakeBrowser:
    """Stand-in for ``playwright.async_api.Browser``."""

    def __init__(self, label: str, page_factory: Any = None) -> None:
        self.label = label
        self.closed = False
        self.listeners: dict[str, list[Any]] = {}
        self.pages: list[FakePage] = []
        self._page_factory = page_factory or (lambda: FakePage())

    def on(self, event: str, callback: Any) -> None:
        self.listeners.setdefault(event, []).append(callback)

    def disconnect(self) -> None:
        for callback in self.listeners.get("disconnected", []):
            callback(self)

    async def new_page(self, **kwargs: Any) -> FakePage:
        page = self._page_factory()
        page.new_page_kwargs = kwargs
        self.pages.append(page)
        return page

    async def close(self) -> None:
        self.closed = True
        self.disconnect()


class FakeEngine:
    """Scripted browser engine.

    ``script`` maps a proxy label to a list of outcomes consumed one per
    launch: an exception instance is raised, anything else launches a
    browser. Labels without a script always launch.
    """

    def __init__(
        self,
        script: dict[str, list[Any]] | None = None,
        *,
        page_factory: Any = None,
        launch_delay: float = 0.0,
    ) -> None:
        self.script = {k: list(v) for k, v in (script or {}).items()}
        self.page_factory = page_factory
        self.launch_delay = launch_delay
        self.launches: list[str] = []
        self.browsers: list[FakeBrowser] = []
        self.stopped = False
        self.stop_calls = 0

    async def launch(self, proxy: ProxyConfig, *, timeout_ms: int) -> FakeBrowser:
        self.launches.append(proxy.label)
        if self.launch_delay:
            await asyncio.sleep(self.launch_delay)
        outcomes = self.script.get(proxy.label)
        if outcomes:
            outcome = outcomes.pop(0)
            if isinstance(outcome, BaseException):
                raise outcome
        browser = FakeBrowser(proxy.label, self.page_factory)
        self.browsers.append(browser)
        return browser

    async def stop(self) -> None:
        self.stopped = True
        self.stop_calls += 1


class RecordingNotifier:
    """Collects notification texts instead of sending them."""

    def __init__(self) -> None:
        self.messages: list[str] = []

    async def notify(self, text: str) -> bool:
        self.messages.append(text)
        return True


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


def make_proxies(count: int) -> list[ProxyConfig]:
    return [ProxyConfig(host=f"10.0.0.{i + 1}", port=8000 + i) for i in range(count)]


def make_product(index: int = 1, **overrides: Any) -> Product:
    values: dict[str, Any] = {
        "name": f"Figure {index}",
        "url": f"https://www.popmart.com/vn/products/{1000 + index}/figure-{index}",
        "spu_id": str(1000 + index),
        "sku_single_id": f"{5000 + index}",
        "sku_set_id": f"{6000 + index}",
        "purchase_title": f"figure-{index}",
    }
    values.update(overrides)
    return Product(**values)


@pytest.fixture
def settings() -> MonitorSettings:
    """Test settings with pacing delays disabled."""
    return MonitorSettings(
        products_path="Products.csv",
        proxies_path="Proxy.txt",
        telegram_bot_token=None,
        telegram_chat_id=None,
        desired_concurrency=3,
        per_product_delay_min_ms=0,
        per_product_delay_max_ms=0,
        pass_delay_min_ms=0,
        pass_delay_max_ms=0,
    )


@pytest.fixture
def site() -> SiteProfile:
    return SiteProfile()


@pytest.fixture
def context() -> RunContext:
    return RunContext()


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def product() -> Product:
    return make_product()


# ---------------------------------------------------------------------------
# Hypothesis strategies (reusable across property tests)
# ---------------------------------------------------------------------------

ms_of_day = st.integers(min_value=0, max_value=24 * 3600 * 1000 - 1)
window_hours = st.tuples(
    st.integers(min_value=0, max_value=23), st.integers(min_value=1, max_value=24)
).filter(lambda pair: pair[0] < pair[1])
utc_offsets = st.integers(min_value=-12 * 60, max_value=14 * 60)

# Pool operations: ("acquire" | "release" | "fail", session index hint)
pool_operations = st.lists(
    st.tuples(st.sampled_from(["acquire", "release", "fail"]), st.integers(0, 9)),
    min_size=1,
    max_size=60,
)

stock_sequences = st.lists(st.integers(min_value=0, max_value=50), min_size=1, max_size=30)
