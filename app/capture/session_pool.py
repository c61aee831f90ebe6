"""
Bounded pool of headless browser sessions.

The Playwright sync API binds a browser to the thread that launched it, so
the pool bounds concurrency rather than sharing instances: every acquire
launches a session in the calling thread and every release closes it.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class BrowserSession(Protocol):
    def new_context(self, **kwargs: Any) -> Any:
        ...

    def close(self) -> None:
        ...


class SessionPoolClosedError(RuntimeError):
    """Raised when acquiring from a pool that has been shut down."""


class PlaywrightSession:
    """
    One chromium browser plus the Playwright driver that owns it.
    """

    def __init__(self, *, headless: bool = True) -> None:
        from playwright.sync_api import sync_playwright

        self._playwright = sync_playwright().start()
        try:
            self._browser = self._playwright.chromium.launch(
                headless=headless,
                args=["--disable-dev-shm-usage", "--no-sandbox"],
            )
        except Exception:
            self._playwright.stop()
            raise

    def new_context(self, **kwargs: Any) -> Any:
        return self._browser.new_context(**kwargs)

    def close(self) -> None:
        try:
            self._browser.close()
        finally:
            self._playwright.stop()


class BrowserSessionPool:
    """
    Caps concurrent browser sessions with a bounded semaphore.

    Parameters
    ----------
    max_sessions:
        Maximum number of live sessions across all threads.
    launcher:
        Factory for one session. Defaults to a headless chromium session.
    acquire_timeout_seconds:
        How long ``session()`` waits for a free slot before failing.
    drain_timeout_seconds:
        How long ``close()`` waits for sessions still in use to be released.
    """

    def __init__(
        self,
        max_sessions: int = 2,
        *,
        headless: bool = True,
        launcher: Callable[[], BrowserSession] | None = None,
        acquire_timeout_seconds: float | None = None,
        drain_timeout_seconds: float = 30.0,
    ) -> None:
        if max_sessions < 1:
            raise ValueError("max_sessions must be >= 1.")
        self.max_sessions = max_sessions
        self._launcher = launcher or (lambda: PlaywrightSession(headless=headless))
        self._acquire_timeout = acquire_timeout_seconds
        self._drain_timeout = max(0.0, drain_timeout_seconds)
        self._slots = threading.BoundedSemaphore(max_sessions)
        self._released = threading.Condition()
        self._live: set[int] = set()
        self._closed = False

    @property
    def active_sessions(self) -> int:
        with self._released:
            return len(self._live)

    @contextmanager
    def session(self) -> Iterator[BrowserSession]:
        if self._closed:
            raise SessionPoolClosedError("Browser session pool is closed.")
        acquired = self._slots.acquire(timeout=self._acquire_timeout) if self._acquire_timeout else self._slots.acquire()
        if not acquired:
            raise TimeoutError("Timed out waiting for a free browser session.")
        session: BrowserSession | None = None
        try:
            session = self._launcher()
            with self._released:
                self._live.add(id(session))
            yield session
        finally:
            if session is not None:
                try:
                    session.close()
                except Exception as exc:  # pragma: no cover - close failures are logged only
                    logger.warning("Browser session close failed: %s", exc)
                with self._released:
                    self._live.discard(id(session))
                    self._released.notify_all()
            self._slots.release()

    def close(self, timeout_seconds: float | None = None) -> bool:
        """
        Refuse new acquisitions and wait for sessions still in use to close.

        Parameters
        ----------
        timeout_seconds:
            Upper bound on the wait. Defaults to ``drain_timeout_seconds``.

        Returns
        -------
        bool
            ``True`` when every session was released within the bound.
        """

        self._closed = True
        timeout = self._drain_timeout if timeout_seconds is None else max(0.0, timeout_seconds)
        with self._released:
            if self._live:
                logger.info("Browser pool closing; waiting up to %.1fs for %d session(s).", timeout, len(self._live))
            drained = self._released.wait_for(lambda: not self._live, timeout=timeout)
            remaining = len(self._live)
        if not drained:
            logger.warning("Browser pool closed with %d session(s) still in use after %.1fs.", remaining, timeout)
        return drained
