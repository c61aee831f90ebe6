"""
tests/test_capture.py

Pytest unit tests for the capture layer.

No real browser is launched: the Playwright adapter runs against fake
session/context/page objects and the orchestrator against scripted
adapters.

Coverage
--------
- Hard timeout budget
- Resource blocking policy
- Failure classification
- Session pool bounds and shutdown
- Adapter success, HTTP errors, browser timeouts, cleanup on every path
- Orchestrator: concurrency, retries, hard timeout, adapter exceptions,
  session drain on close, structured log events
"""

from __future__ import annotations

import json
import logging
import threading
import time

import pytest
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from app.capture.base import CaptureAdapter
from app.capture.engine import CaptureOrchestrator
from app.capture.playwright_adapter import (
    FULL_PAGE_HEIGHT_SCRIPT,
    LCP_SCRIPT,
    PlaywrightCaptureAdapter,
    classify_capture_failure,
    classify_http_status,
)
from app.capture.resource_policy import should_block_resource
from app.capture.session_pool import BrowserSessionPool, SessionPoolClosedError
from app.capture.types import CaptureArtifact, CaptureError, CaptureOptions, CaptureResult, viewport_key_dicts

URL = "https://shop.example.com/products/linen-shirt"


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeResponse:
    def __init__(self, status: int) -> None:
        self.status = status


class FakePage:
    def __init__(self, status: int | None = 200, goto_error: Exception | None = None) -> None:
        self.status = status
        self.goto_error = goto_error
        self.routes: list[str] = []
        self.closed = False
        self.url = URL

    def set_default_timeout(self, timeout: int) -> None:
        self.default_timeout = timeout

    def route(self, pattern: str, handler) -> None:
        self.routes.append(pattern)

    def goto(self, url: str, wait_until: str, timeout: int):
        if self.goto_error is not None:
            raise self.goto_error
        return FakeResponse(self.status) if self.status is not None else None

    def wait_for_selector(self, selector: str, state: str, timeout: int) -> None:
        return None

    def wait_for_timeout(self, timeout: int) -> None:
        return None

    def evaluate(self, script: str):
        if script == FULL_PAGE_HEIGHT_SCRIPT:
            return 3200
        if script == LCP_SCRIPT:
            return 1834.6
        return None

    def screenshot(self, type: str, full_page: bool) -> bytes:
        return b"\x89PNG"

    def content(self) -> str:
        return "<html><body><h1>Linen shirt</h1></body></html>"

    def close(self) -> None:
        self.closed = True


class FakeContext:
    def __init__(self, page: FakePage, kwargs: dict) -> None:
        self.page = page
        self.kwargs = kwargs
        self.closed = False

    def new_page(self) -> FakePage:
        return self.page

    def close(self) -> None:
        self.closed = True


class FakeBrowser:
    def __init__(self, page: FakePage) -> None:
        self.page = page
        self.contexts: list[FakeContext] = []
        self.closed = False

    def new_context(self, **kwargs) -> FakeContext:
        context = FakeContext(self.page, kwargs)
        self.contexts.append(context)
        return context

    def close(self) -> None:
        self.closed = True


def _artifact(viewport: str) -> CaptureArtifact:
    return CaptureArtifact(viewport=viewport, markup="<html></html>", screenshot=b"png", load_duration_ms=10)


class ScriptedAdapter(CaptureAdapter):
    """Returns scripted results per viewport; the last one repeats."""

    def __init__(self, script: dict[str, list]) -> None:
        self.script = {viewport: list(items) for viewport, items in script.items()}
        self.calls: list[str] = []
        self.closed = False
        self._lock = threading.Lock()

    def capture(self, url: str, viewport: str, options: CaptureOptions) -> CaptureResult:
        with self._lock:
            self.calls.append(viewport)
            items = self.script[viewport]
            item = items.pop(0) if len(items) > 1 else items[0]
        if isinstance(item, Exception):
            raise item
        if item == "ok":
            return CaptureResult.success(url, viewport, _artifact(viewport))
        return CaptureResult.failure(url, viewport, item, f"{item} failure")

    def close(self) -> None:
        self.closed = True


class HangingAdapter(CaptureAdapter):
    def __init__(self) -> None:
        self.release = threading.Event()

    def capture(self, url: str, viewport: str, options: CaptureOptions) -> CaptureResult:
        if viewport == "desktop":
            self.release.wait(timeout=5)
        return CaptureResult.success(url, viewport, _artifact(viewport))


class PooledHangingAdapter(CaptureAdapter):
    """Holds a pooled session while the desktop capture hangs."""

    def __init__(self, pool: BrowserSessionPool) -> None:
        self.pool = pool
        self.release = threading.Event()

    def capture(self, url: str, viewport: str, options: CaptureOptions) -> CaptureResult:
        with self.pool.session():
            if viewport == "desktop":
                self.release.wait(timeout=5)
        return CaptureResult.success(url, viewport, _artifact(viewport))

    def close(self) -> None:
        self.pool.close()


# ---------------------------------------------------------------------------
# Options and policy
# ---------------------------------------------------------------------------


class TestCaptureOptions:
    def test_default_hard_timeout(self) -> None:
        options = CaptureOptions(timeout_ms=15000, selector_wait_ms=8000, scroll_settle_ms=250)
        assert options.resolved_hard_timeout_ms == 15000 + 8000 + 500 + 5000

    def test_explicit_hard_timeout(self) -> None:
        assert CaptureOptions(hard_timeout_ms=1234).resolved_hard_timeout_ms == 1234

    def test_viewport_key_dicts(self) -> None:
        assert viewport_key_dicts() == {
            "mobile": {"width": 390, "height": 844},
            "desktop": {"width": 1440, "height": 900},
        }


class TestResourcePolicy:
    @pytest.mark.parametrize(
        ("url", "resource_type"),
        [
            ("https://cdn.example.com/font.woff2", "font"),
            ("https://cdn.example.com/hero.mp4", "fetch"),
            ("https://www.googletagmanager.com/gtm.js?id=GTM-1", "script"),
            ("https://static.klaviyo.com/onsite.js", "script"),
            ("https://shop.example.com/px/track?e=view", "xhr"),
            ("https://media.giphy.com/a.gif", "image"),
            ("https://cdn.example.com/anything", "media"),
        ],
    )
    def test_blocked(self, url: str, resource_type: str) -> None:
        assert should_block_resource(url, resource_type) is True

    @pytest.mark.parametrize(
        ("url", "resource_type"),
        [
            ("https://shop.example.com/products/linen-shirt", "document"),
            ("https://cdn.shopify.com/s/files/theme.css", "stylesheet"),
            ("https://cdn.shopify.com/s/files/product.jpg", "image"),
        ],
    )
    def test_allowed(self, url: str, resource_type: str) -> None:
        assert should_block_resource(url, resource_type) is False


class TestFailureClassification:
    def test_timeout(self) -> None:
        error = classify_capture_failure("Timeout 15000ms exceeded.", 15000)
        assert error.type == "timeout"
        assert error.message == "Hard timeout after 15000ms"

    def test_network(self) -> None:
        assert classify_capture_failure("net::ERR_NAME_NOT_RESOLVED", 1).type == "network_error"

    def test_not_found(self) -> None:
        error = classify_capture_failure("page returned 404", 1)
        assert (error.type, error.code) == ("not_found", "404")

    def test_unknown(self) -> None:
        assert classify_capture_failure("", 1).type == "unknown"

    def test_error_type_outside_taxonomy_is_rejected(self) -> None:
        with pytest.raises(ValueError, match="driver_crash"):
            CaptureError("driver_crash", "boom")

    def test_http_status(self) -> None:
        assert classify_http_status(200) is None
        assert classify_http_status(301) is None
        assert classify_http_status(404).type == "not_found"
        assert classify_http_status(503).code == "503"
        assert classify_http_status(None).message == "No response received"


# ---------------------------------------------------------------------------
# Session pool
# ---------------------------------------------------------------------------


class TestBrowserSessionPool:
    def test_sessions_are_closed_on_release(self) -> None:
        browsers: list[FakeBrowser] = []

        def launcher() -> FakeBrowser:
            browser = FakeBrowser(FakePage())
            browsers.append(browser)
            return browser

        pool = BrowserSessionPool(2, launcher=launcher)
        with pool.session():
            assert pool.active_sessions == 1
        assert pool.active_sessions == 0
        assert browsers[0].closed is True

    def test_acquire_times_out_when_full(self) -> None:
        pool = BrowserSessionPool(1, launcher=lambda: FakeBrowser(FakePage()), acquire_timeout_seconds=0.05)
        with pool.session():
            with pytest.raises(TimeoutError):
                with pool.session():
                    pass

    def test_closed_pool_refuses(self) -> None:
        pool = BrowserSessionPool(1, launcher=lambda: FakeBrowser(FakePage()))
        pool.close()
        with pytest.raises(SessionPoolClosedError):
            with pool.session():
                pass

    def test_invalid_size(self) -> None:
        with pytest.raises(ValueError):
            BrowserSessionPool(0)

    @staticmethod
    def _hold_session(pool: BrowserSessionPool, entered: threading.Event, release: threading.Event) -> threading.Thread:
        def worker() -> None:
            with pool.session():
                entered.set()
                release.wait(5)

        thread = threading.Thread(target=worker, daemon=True)
        thread.start()
        assert entered.wait(5)
        return thread

    def test_close_waits_for_session_in_use(self) -> None:
        browser = FakeBrowser(FakePage())
        pool = BrowserSessionPool(1, launcher=lambda: browser)
        entered, release = threading.Event(), threading.Event()
        worker = self._hold_session(pool, entered, release)

        timer = threading.Timer(0.1, release.set)
        timer.start()
        started = time.monotonic()
        assert pool.close(timeout_seconds=5) is True

        assert time.monotonic() - started >= 0.05
        assert pool.active_sessions == 0
        assert browser.closed is True
        worker.join(5)
        timer.join(5)

    def test_close_gives_up_after_drain_timeout(self) -> None:
        pool = BrowserSessionPool(1, launcher=lambda: FakeBrowser(FakePage()), drain_timeout_seconds=0.05)
        entered, release = threading.Event(), threading.Event()
        worker = self._hold_session(pool, entered, release)
        try:
            assert pool.close() is False
            assert pool.active_sessions == 1
        finally:
            release.set()
            worker.join(5)
        assert pool.active_sessions == 0

    def test_close_without_sessions_returns_at_once(self) -> None:
        pool = BrowserSessionPool(1, launcher=lambda: FakeBrowser(FakePage()), drain_timeout_seconds=5)
        started = time.monotonic()
        assert pool.close() is True
        assert time.monotonic() - started < 1


# ---------------------------------------------------------------------------
# Playwright adapter
# ---------------------------------------------------------------------------


def _adapter(page: FakePage) -> tuple[PlaywrightCaptureAdapter, FakeBrowser]:
    browser = FakeBrowser(page)
    return PlaywrightCaptureAdapter(BrowserSessionPool(1, launcher=lambda: browser)), browser


class TestPlaywrightCaptureAdapter:
    def test_success(self) -> None:
        page = FakePage()
        adapter, browser = _adapter(page)
        result = adapter.capture(URL, "mobile", CaptureOptions())
        assert result.ok is True
        artifact = result.artifact
        assert artifact.screenshot == b"\x89PNG"
        assert artifact.full_page_height == 3200
        assert artifact.lcp_ms == 1835
        assert artifact.http_status == 200
        assert browser.contexts[0].kwargs["viewport"] == {"width": 390, "height": 844}
        assert browser.contexts[0].kwargs["is_mobile"] is True
        assert page.routes == ["**/*"]
        assert page.closed is True
        assert browser.contexts[0].closed is True

    def test_no_blocking_when_disabled(self) -> None:
        page = FakePage()
        adapter, _ = _adapter(page)
        adapter.capture(URL, "desktop", CaptureOptions(block_resources=False))
        assert page.routes == []

    def test_http_404(self) -> None:
        page = FakePage(status=404)
        adapter, browser = _adapter(page)
        result = adapter.capture(URL, "desktop", CaptureOptions())
        assert result.ok is False
        assert result.error.type == "not_found"
        assert page.closed is True
        assert browser.contexts[0].closed is True

    def test_browser_timeout(self) -> None:
        page = FakePage(goto_error=PlaywrightTimeoutError("Timeout 15000ms exceeded."))
        adapter, browser = _adapter(page)
        result = adapter.capture(URL, "mobile", CaptureOptions(timeout_ms=15000))
        assert result.error.type == "timeout"
        assert result.error.message == "Hard timeout after 15000ms"
        assert browser.contexts[0].closed is True
        assert browser.closed is True


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class TestCaptureOrchestrator:
    def test_both_viewports_succeed(self) -> None:
        adapter = ScriptedAdapter({"mobile": ["ok"], "desktop": ["ok"]})
        pair = CaptureOrchestrator(adapter).capture_both(URL, CaptureOptions())
        assert pair.mobile.ok and pair.desktop.ok
        assert sorted(adapter.calls) == ["desktop", "mobile"]
        assert pair.all_failed is False

    def test_partial_failure(self) -> None:
        adapter = ScriptedAdapter({"mobile": ["ok"], "desktop": ["timeout"]})
        pair = CaptureOrchestrator(adapter).capture_both(URL, CaptureOptions())
        assert pair.mobile.ok is True
        assert pair.desktop.error.type == "timeout"
        assert pair.artifact("desktop") is None
        assert pair.all_failed is False

    def test_retries_retryable_errors(self) -> None:
        delays: list[float] = []
        adapter = ScriptedAdapter({"mobile": ["network_error", "ok"], "desktop": ["ok"]})
        orchestrator = CaptureOrchestrator(
            adapter,
            max_retries=2,
            backoff_initial_seconds=0.1,
            sleep=delays.append,
        )
        pair = orchestrator.capture_both(URL, CaptureOptions())
        assert pair.mobile.ok is True
        assert pair.mobile.attempts == 2
        assert delays == [0.1]

    def test_does_not_retry_not_found(self) -> None:
        adapter = ScriptedAdapter({"mobile": ["not_found"], "desktop": ["not_found"]})
        pair = CaptureOrchestrator(adapter, max_retries=3, sleep=lambda _: None).capture_both(URL)
        assert pair.all_failed is True
        assert pair.mobile.attempts == 1
        assert len(adapter.calls) == 2

    def test_adapter_exception_becomes_unknown(self) -> None:
        adapter = ScriptedAdapter({"mobile": [RuntimeError("driver crashed")], "desktop": ["ok"]})
        pair = CaptureOrchestrator(adapter).capture_both(URL, CaptureOptions())
        assert pair.mobile.error.type == "unknown"
        assert "driver crashed" in pair.mobile.error.message
        assert pair.desktop.ok is True

    def test_hard_timeout(self) -> None:
        adapter = HangingAdapter()
        started = time.monotonic()
        try:
            pair = CaptureOrchestrator(adapter).capture_both(URL, CaptureOptions(hard_timeout_ms=100))
        finally:
            adapter.release.set()
        assert time.monotonic() - started < 3
        assert pair.mobile.ok is True
        assert pair.desktop.error.type == "timeout"
        assert pair.desktop.error.message == "Hard timeout after 100ms"

    def test_close_closes_adapter(self) -> None:
        adapter = ScriptedAdapter({"mobile": ["ok"], "desktop": ["ok"]})
        CaptureOrchestrator(adapter).close()
        assert adapter.closed is True

    def test_close_after_hard_timeout_waits_for_hung_session(self) -> None:
        pool = BrowserSessionPool(2, launcher=lambda: FakeBrowser(FakePage()), drain_timeout_seconds=5)
        adapter = PooledHangingAdapter(pool)
        orchestrator = CaptureOrchestrator(adapter)

        pair = orchestrator.capture_both(URL, CaptureOptions(hard_timeout_ms=100))
        assert pair.desktop.error.type == "timeout"
        assert pool.active_sessions == 1

        timer = threading.Timer(0.1, adapter.release.set)
        timer.start()
        orchestrator.close()
        timer.join(5)
        assert pool.active_sessions == 0

    def test_outcomes_are_logged_as_json_events(self, caplog) -> None:
        adapter = ScriptedAdapter({"mobile": ["ok"], "desktop": ["not_found"]})
        with caplog.at_level(logging.INFO, logger="app.capture.engine"):
            CaptureOrchestrator(adapter).capture_both(URL, CaptureOptions())

        events = [json.loads(record.getMessage()) for record in caplog.records if record.name == "app.capture.engine"]
        by_event = {event["event"]: event for event in events}
        assert by_event["capture_completed"]["viewport"] == "mobile"
        assert by_event["capture_failed"]["viewport"] == "desktop"
        assert by_event["capture_failed"]["error_type"] == "not_found"
