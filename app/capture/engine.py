"""
Concurrent two-viewport capture with a hard timeout.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError

from app.capture.base import CaptureAdapter
from app.capture.types import VIEWPORTS, CaptureOptions, CapturePair, CaptureResult
from app.config import CaptureSettings, get_capture_settings
from app.logging_utils import log_event

logger = logging.getLogger(__name__)

RETRYABLE_CAPTURE_ERRORS = frozenset({"timeout", "network_error"})


class CaptureOrchestrator:
    """
    Fires the mobile and desktop captures together and joins both.

    Parameters
    ----------
    adapter:
        Capture backend. The browser session pool lives inside the adapter
        and is scoped to the run that built this orchestrator.
    max_retries:
        Extra attempts for ``timeout`` and ``network_error`` failures.
    """

    def __init__(
        self,
        adapter: CaptureAdapter,
        *,
        max_retries: int = 0,
        backoff_initial_seconds: float = 0.5,
        backoff_multiplier: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._adapter = adapter
        self._max_retries = max(0, max_retries)
        self._backoff_initial = backoff_initial_seconds
        self._backoff_multiplier = backoff_multiplier
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        adapter: CaptureAdapter,
        settings: CaptureSettings | None = None,
    ) -> "CaptureOrchestrator":
        resolved = settings or get_capture_settings()
        return cls(
            adapter,
            max_retries=resolved.max_retries,
            backoff_initial_seconds=resolved.backoff_initial_seconds,
            backoff_multiplier=resolved.backoff_multiplier,
        )

    def close(self) -> None:
        self._adapter.close()

    def _deadline_seconds(self, options: CaptureOptions) -> float:
        attempts = self._max_retries + 1
        backoff_total = sum(
            self._backoff_initial * (self._backoff_multiplier ** index)
            for index in range(self._max_retries)
        )
        return attempts * options.resolved_hard_timeout_ms / 1000.0 + backoff_total

    def _capture_with_retries(self, url: str, viewport: str, options: CaptureOptions) -> CaptureResult:
        delay = self._backoff_initial
        attempt = 0
        while True:
            attempt += 1
            try:
                result = self._adapter.capture(url, viewport, options)
            except Exception as exc:
                result = CaptureResult.failure(url, viewport, "unknown", str(exc) or type(exc).__name__)
            if result.ok or attempt > self._max_retries or result.error is None:
                break
            if result.error.type not in RETRYABLE_CAPTURE_ERRORS:
                break
            logger.info(
                "Retrying capture url=%s viewport=%s after %s (attempt %d)",
                url,
                viewport,
                result.error.type,
                attempt,
            )
            self._sleep(delay)
            delay *= self._backoff_multiplier
        return CaptureResult(
            url=result.url,
            viewport=result.viewport,
            artifact=result.artifact,
            error=result.error,
            attempts=attempt,
            timestamp=result.timestamp,
        )

    def capture_both(self, url: str, options: CaptureOptions | None = None) -> CapturePair:
        resolved = options or CaptureOptions.from_settings(get_capture_settings())
        deadline = time.monotonic() + self._deadline_seconds(resolved)
        executor = ThreadPoolExecutor(max_workers=len(VIEWPORTS), thread_name_prefix="capture")
        results: dict[str, CaptureResult] = {}
        try:
            futures: dict[str, Future[CaptureResult]] = {
                viewport: executor.submit(self._capture_with_retries, url, viewport, resolved)
                for viewport in VIEWPORTS
            }
            for viewport, future in futures.items():
                remaining = max(0.0, deadline - time.monotonic())
                try:
                    results[viewport] = future.result(timeout=remaining)
                except FutureTimeoutError:
                    future.cancel()
                    results[viewport] = CaptureResult.failure(
                        url,
                        viewport,
                        "timeout",
                        f"Hard timeout after {resolved.resolved_hard_timeout_ms}ms",
                    )
        finally:
            # A hung capture keeps its worker thread; closing the adapter waits for its session.
            executor.shutdown(wait=False, cancel_futures=True)

        for viewport in VIEWPORTS:
            result = results[viewport]
            if result.ok and result.artifact is not None:
                log_event(
                    logger,
                    logging.INFO,
                    "capture_completed",
                    url=url,
                    viewport=viewport,
                    attempts=result.attempts,
                    load_duration_ms=result.artifact.load_duration_ms,
                    http_status=result.artifact.http_status,
                )
            elif result.error is not None:
                log_event(
                    logger,
                    logging.WARNING,
                    "capture_failed",
                    url=url,
                    viewport=viewport,
                    attempts=result.attempts,
                    error_type=result.error.type,
                    error_code=result.error.code,
                    message=result.error.message,
                )
        return CapturePair(mobile=results["mobile"], desktop=results["desktop"])
