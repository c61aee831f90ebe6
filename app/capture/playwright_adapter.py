"""
Headless chromium capture via the Playwright sync API.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from app.capture.base import CaptureAdapter
from app.capture.resource_policy import should_block_resource
from app.capture.session_pool import BrowserSessionPool
from app.capture.types import (
    VIEWPORT_PROFILES,
    CaptureArtifact,
    CaptureError,
    CaptureOptions,
    CaptureResult,
)

logger = logging.getLogger(__name__)

READY_SELECTOR = (
    "main, h1, .shopify-section, [data-section-type], "
    "form[action*='/cart/add'], button[name='add']"
)

FULL_PAGE_HEIGHT_SCRIPT = """
() => Math.max(
    document.body ? document.body.scrollHeight : 0,
    document.documentElement ? document.documentElement.scrollHeight : 0
)
"""

LCP_SCRIPT = """
() => new Promise((resolve) => {
    let value = null;
    try {
        const observer = new PerformanceObserver((list) => {
            const entries = list.getEntries();
            const last = entries[entries.length - 1];
            if (last) { value = last.renderTime || last.loadTime || last.startTime; }
        });
        observer.observe({ type: 'largest-contentful-paint', buffered: true });
    } catch (e) {
        resolve(null);
        return;
    }
    setTimeout(() => resolve(value), 100);
})
"""


def classify_capture_failure(message: str, timeout_ms: int) -> CaptureError:
    """
    Map a browser failure message onto the capture error vocabulary.
    """

    text = message or ""
    if "Timeout" in text or "timeout" in text:
        return CaptureError("timeout", f"Hard timeout after {timeout_ms}ms")
    if "net::" in text:
        return CaptureError("network_error", text[:500])
    if "404" in text:
        return CaptureError("not_found", text[:500], "404")
    return CaptureError("unknown", text[:500] or "Unknown capture failure")


def classify_http_status(status: int | None) -> CaptureError | None:
    if status is None:
        return CaptureError("network_error", "No response received")
    if status == 404:
        return CaptureError("not_found", "HTTP 404", "404")
    if status >= 400:
        return CaptureError("network_error", f"HTTP {status}", str(status))
    return None


def _route_handler(route: Any) -> None:
    request = route.request
    if should_block_resource(request.url, request.resource_type):
        route.abort("blockedbyclient")
    else:
        route.continue_()


class PlaywrightCaptureAdapter(CaptureAdapter):
    """
    Opens a fresh browser context per capture inside a pooled session.

    The context and page are closed on every path, including failures.
    """

    def __init__(self, pool: BrowserSessionPool) -> None:
        self._pool = pool

    def close(self) -> None:
        self._pool.close()

    def capture(self, url: str, viewport: str, options: CaptureOptions) -> CaptureResult:
        profile = VIEWPORT_PROFILES[viewport]
        started = time.monotonic()
        try:
            with self._pool.session() as browser:
                context_kwargs: dict[str, Any] = {
                    "viewport": {"width": profile.width, "height": profile.height},
                    "device_scale_factor": profile.device_scale_factor,
                    "is_mobile": profile.is_mobile,
                    "has_touch": profile.has_touch,
                }
                if options.user_agent:
                    context_kwargs["user_agent"] = options.user_agent
                if options.extra_headers:
                    context_kwargs["extra_http_headers"] = dict(options.extra_headers)
                context = browser.new_context(**context_kwargs)
                page = None
                try:
                    page = context.new_page()
                    page.set_default_timeout(options.timeout_ms)
                    if options.block_resources:
                        page.route("**/*", _route_handler)

                    response = page.goto(url, wait_until="domcontentloaded", timeout=options.timeout_ms)
                    status = response.status if response is not None else None
                    status_error = classify_http_status(status)
                    if status_error is not None:
                        return CaptureResult(url=url, viewport=viewport, error=status_error)

                    self._wait_until_ready(page, options)
                    self._scroll_cycle(page, options)

                    screenshot = page.screenshot(type="png", full_page=False)
                    markup = page.content()
                    full_height = page.evaluate(FULL_PAGE_HEIGHT_SCRIPT)
                    lcp_ms = self._measure_lcp(page)
                    artifact = CaptureArtifact(
                        viewport=viewport,
                        markup=markup,
                        screenshot=screenshot,
                        load_duration_ms=int((time.monotonic() - started) * 1000),
                        full_page_height=int(full_height) if full_height else None,
                        lcp_ms=lcp_ms,
                        http_status=status,
                        final_url=page.url,
                    )
                    return CaptureResult.success(url, viewport, artifact)
                finally:
                    if page is not None:
                        try:
                            page.close()
                        except PlaywrightError as exc:
                            logger.debug("Page close failed: %s", exc)
                    context.close()
        except PlaywrightTimeoutError:
            error = CaptureError("timeout", f"Hard timeout after {options.timeout_ms}ms")
        except PlaywrightError as exc:
            error = classify_capture_failure(str(exc), options.timeout_ms)
        except TimeoutError as exc:
            error = CaptureError("timeout", str(exc))
        logger.warning("Capture failed url=%s viewport=%s type=%s", url, viewport, error.type)
        return CaptureResult(url=url, viewport=viewport, error=error)

    @staticmethod
    def _wait_until_ready(page: Any, options: CaptureOptions) -> None:
        if options.selector_wait_ms <= 0:
            return
        try:
            page.wait_for_selector(READY_SELECTOR, state="visible", timeout=options.selector_wait_ms)
        except PlaywrightTimeoutError:
            logger.debug("Ready selector not visible after %dms; continuing.", options.selector_wait_ms)

    @staticmethod
    def _scroll_cycle(page: Any, options: CaptureOptions) -> None:
        # Bottom then top so lazy sections render before the fold screenshot.
        page.evaluate("window.scrollTo(0, document.body ? document.body.scrollHeight : 0)")
        page.wait_for_timeout(options.scroll_settle_ms)
        page.evaluate("window.scrollTo(0, 0)")
        page.wait_for_timeout(options.scroll_settle_ms)

    @staticmethod
    def _measure_lcp(page: Any) -> int | None:
        try:
            value = page.evaluate(LCP_SCRIPT)
        except PlaywrightError:
            return None
        if value is None:
            return None
        try:
            return int(round(float(value)))
        except (TypeError, ValueError):
            return None
