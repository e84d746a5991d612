"""Unit tests for monitor wiring, shutdown and the command-line entry point."""

import asyncio
import gc
import logging
import random
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import patch

import pytest

from restock_monitor.app import Monitor
from restock_monitor.errors import ConfigurationError, PoolExhaustedError
from restock_monitor.main import main, run_monitor
from tests.conftest import FakeEngine, FakePage, RecordingNotifier, make_proxies

INSIDE = datetime(2024, 6, 1, 3, 0, tzinfo=timezone.utc)
BLOCK_HTML = "<div>Bạn đang truy cập quá thường xuyên</div>"


def write_inputs(directory: Path, products: int = 3, proxies: int = 3) -> None:
    rows = ["sp,url,sku_single,skuid_set"]
    for i in range(products):
        rows.append(
            f"Figure {i},https://www.popmart.com/vn/products/{100 + i}/figure-{i},{500 + i},{600 + i}"
        )
    (directory / "Products.csv").write_text("\n".join(rows) + "\n", encoding="utf-8")
    (directory / "Proxy.txt").write_text(
        "\n".join(p.label for p in make_proxies(proxies)) + "\n", encoding="utf-8"
    )


def make_monitor(settings, engine=None, notifier=None, on_pass_complete=None) -> Monitor:
    return Monitor(
        settings,
        engine=engine or FakeEngine(),
        notifier=notifier or RecordingNotifier(),
        rng=random.Random(0),
        clock=lambda: INSIDE,
        on_pass_complete=on_pass_complete,
    )


class TestStartup:
    @pytest.mark.asyncio
    async def test_start_builds_components(self, settings, tmp_path):
        write_inputs(tmp_path, products=2, proxies=3)
        monitor = make_monitor(settings)

        await monitor.start()
        assert len(monitor.products) == 2
        assert monitor.pool.size == 3
        assert monitor.scheduler.target_concurrency == 2
        await monitor.request_shutdown()

    @pytest.mark.asyncio
    async def test_reduced_concurrency_is_logged(self, settings, tmp_path, caplog):
        write_inputs(tmp_path, products=5, proxies=2)
        monitor = make_monitor(settings)

        with caplog.at_level(logging.WARNING):
            await monitor.start()
        assert "Reducing concurrency from 3 to 2" in caplog.text
        assert "proxies (2)" in caplog.text
        await monitor.request_shutdown()

    @pytest.mark.asyncio
    async def test_missing_products_file(self, settings):
        monitor = make_monitor(settings)
        with pytest.raises(ConfigurationError):
            await monitor.run()

    @pytest.mark.asyncio
    async def test_no_proxy_launches(self, settings, tmp_path):
        write_inputs(tmp_path, proxies=2)
        engine = FakeEngine({p.label: [RuntimeError("refused")] for p in make_proxies(2)})
        monitor = make_monitor(settings, engine=engine)

        with pytest.raises(PoolExhaustedError):
            await monitor.run()
        assert engine.stopped is True


class TestShutdown:
    @pytest.mark.asyncio
    async def test_run_until_shutdown_then_clean_up(self, settings, tmp_path):
        write_inputs(tmp_path)
        engine = FakeEngine()
        outcomes = []

        def on_pass(outcome):
            outcomes.append(outcome)
            if len(outcomes) == 2:
                monitor.trigger_shutdown()

        monitor = make_monitor(settings, engine=engine, on_pass_complete=on_pass)
        await asyncio.wait_for(monitor.run(), timeout=5)

        assert [o.completed for o in outcomes] == [True, True]
        assert monitor.shutdown_requested is True
        assert monitor.pool.closed is True
        assert all(browser.closed for browser in engine.browsers)
        assert len(monitor.context.pages) == 0
        assert engine.stop_calls == 1

    @pytest.mark.asyncio
    async def test_concurrent_shutdown_requests_clean_up_once(self, settings, tmp_path):
        write_inputs(tmp_path)
        engine = FakeEngine()
        monitor = make_monitor(settings, engine=engine)
        await monitor.start()

        await asyncio.gather(
            monitor.request_shutdown(), monitor.request_shutdown(), monitor.request_shutdown()
        )
        monitor.trigger_shutdown()
        await monitor.request_shutdown()

        assert engine.stop_calls == 1
        assert monitor.context.shutting_down is True

    @pytest.mark.asyncio
    async def test_trigger_shutdown_wakes_sleepers_synchronously(self, settings, tmp_path):
        write_inputs(tmp_path)
        monitor = make_monitor(settings)
        await monitor.start()

        sleeper = asyncio.ensure_future(monitor.context.sleep(60_000))
        await asyncio.sleep(0)
        monitor.trigger_shutdown()
        assert monitor.context.shutting_down is True
        await asyncio.wait_for(sleeper, timeout=1)
        await monitor.request_shutdown()

    @pytest.mark.asyncio
    async def test_signal_cleanup_failure_is_logged_not_leaked(self, settings, caplog):
        class BrokenStopEngine(FakeEngine):
            async def stop(self) -> None:
                raise RuntimeError("playwright already gone")

        loop = asyncio.get_running_loop()
        unhandled = []
        previous_handler = loop.get_exception_handler()
        loop.set_exception_handler(lambda _loop, ctx: unhandled.append(ctx))
        try:
            monitor = make_monitor(settings, engine=BrokenStopEngine())
            with caplog.at_level(logging.ERROR, logger="restock_monitor.app"):
                monitor.trigger_shutdown()
                await asyncio.wait([monitor._cleanup_task], timeout=1)
                await asyncio.sleep(0)
            gc.collect()
            await asyncio.sleep(0)
        finally:
            loop.set_exception_handler(previous_handler)

        assert "Shutdown cleanup failed: playwright already gone" in caplog.text
        assert unhandled == []

    @pytest.mark.asyncio
    async def test_signal_during_startup_exits_cleanly(self, settings, tmp_path):
        write_inputs(tmp_path, proxies=3)
        engine = FakeEngine(launch_delay=0.05)
        monitor = make_monitor(settings, engine=engine)

        asyncio.get_running_loop().call_later(0.01, monitor.trigger_shutdown)
        with patch("restock_monitor.main.install_signal_handlers"):
            code = await asyncio.wait_for(run_monitor(monitor), timeout=5)

        assert code == 0
        assert len(engine.launches) == 1
        assert monitor.pool.size == 0
        assert all(browser.closed for browser in engine.browsers)


class TestBlockEscalation:
    @pytest.mark.asyncio
    async def test_block_page_alerts_once_and_shuts_down(self, settings, tmp_path):
        write_inputs(tmp_path, products=3, proxies=3)
        engine = FakeEngine(page_factory=lambda: FakePage(html=BLOCK_HTML))
        notifier = RecordingNotifier()
        monitor = make_monitor(settings, engine=engine, notifier=notifier)

        await asyncio.wait_for(monitor.run(), timeout=5)

        assert len(notifier.messages) == 1
        assert notifier.messages[0].startswith("[ALERT]")
        assert monitor.shutdown_requested is True
        assert engine.stop_calls == 1

    @pytest.mark.asyncio
    async def test_run_monitor_exits_zero_after_block(self, settings, tmp_path):
        write_inputs(tmp_path)
        engine = FakeEngine(page_factory=lambda: FakePage(html=BLOCK_HTML))
        monitor = make_monitor(settings, engine=engine)

        with patch("restock_monitor.main.install_signal_handlers"):
            code = await asyncio.wait_for(run_monitor(monitor), timeout=5)
        assert code == 0


class TestExitCodes:
    @pytest.mark.asyncio
    async def test_fatal_configuration_error(self, settings, caplog):
        monitor = make_monitor(settings)
        with patch("restock_monitor.main.install_signal_handlers"):
            with caplog.at_level(logging.CRITICAL):
                code = await run_monitor(monitor)
        assert code == 1
        assert "Fatal error" in caplog.text

    @pytest.mark.asyncio
    async def test_unexpected_error(self, settings, tmp_path):
        write_inputs(tmp_path)
        monitor = make_monitor(settings)

        async def explode():
            raise RuntimeError("boom")

        monitor.start = explode
        with patch("restock_monitor.main.install_signal_handlers"):
            assert await run_monitor(monitor) == 1

    def test_main_rejects_invalid_settings(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("MONITOR_LOG_FORMAT", "xml")
        root = logging.getLogger()
        handlers, level = list(root.handlers), root.level
        try:
            assert main() == 1
        finally:
            root.handlers[:] = handlers
            root.setLevel(level)
