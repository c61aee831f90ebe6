"""
Typed capture inputs and results.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from app.config import CaptureSettings
from app.failure_codes import CAPTURE_ERROR_TYPES


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class ViewportProfile:
    name: str
    width: int
    height: int
    device_scale_factor: float = 1
    is_mobile: bool = False
    has_touch: bool = False

    def key_dict(self) -> dict[str, int]:
        """Width and height only; the part that participates in cache keys."""

        return {"width": self.width, "height": self.height}


VIEWPORT_PROFILES: dict[str, ViewportProfile] = {
    "mobile": ViewportProfile("mobile", 390, 844, device_scale_factor=2, is_mobile=True, has_touch=True),
    "desktop": ViewportProfile("desktop", 1440, 900, device_scale_factor=1),
}
VIEWPORTS: tuple[str, ...] = ("mobile", "desktop")


def viewport_key_dicts() -> dict[str, dict[str, int]]:
    return {name: profile.key_dict() for name, profile in VIEWPORT_PROFILES.items()}


@dataclass(frozen=True)
class CaptureOptions:
    timeout_ms: int = 15000
    block_resources: bool = True
    selector_wait_ms: int = 8000
    scroll_settle_ms: int = 250
    hard_timeout_ms: int | None = None
    user_agent: str | None = None
    extra_headers: dict[str, str] | None = None

    @classmethod
    def from_settings(cls, settings: CaptureSettings) -> "CaptureOptions":
        return cls(
            timeout_ms=settings.timeout_ms,
            block_resources=settings.block_resources,
            selector_wait_ms=settings.selector_wait_ms,
            scroll_settle_ms=settings.scroll_settle_ms,
        )

    @property
    def resolved_hard_timeout_ms(self) -> int:
        """
        Wall-clock budget of one capture attempt: navigation, readiness wait,
        scroll cycle and a fixed grace period.
        """

        if self.hard_timeout_ms is not None:
            return self.hard_timeout_ms
        return self.timeout_ms + self.selector_wait_ms + 2 * self.scroll_settle_ms + 5000


@dataclass(frozen=True)
class CaptureArtifact:
    """
    Ephemeral output of one successful viewport capture.
    """

    viewport: str
    markup: str
    screenshot: bytes
    load_duration_ms: int
    full_page_height: int | None = None
    lcp_ms: int | None = None
    http_status: int | None = None
    final_url: str | None = None
    captured_at: str = field(default_factory=utc_now_iso)

    def metadata(self) -> dict[str, Any]:
        return {
            "viewport": self.viewport,
            "load_duration_ms": self.load_duration_ms,
            "full_page_height": self.full_page_height,
            "lcp_ms": self.lcp_ms,
            "http_status": self.http_status,
            "final_url": self.final_url,
            "captured_at": self.captured_at,
        }


@dataclass(frozen=True)
class CaptureError:
    """
    Classified capture failure: ``timeout | not_found | network_error | unknown``.
    """

    type: str
    message: str
    code: str | None = None

    def __post_init__(self) -> None:
        if self.type not in CAPTURE_ERROR_TYPES:
            raise ValueError(f"Unknown capture error type '{self.type}'.")


@dataclass(frozen=True)
class CaptureResult:
    url: str
    viewport: str
    artifact: CaptureArtifact | None = None
    error: CaptureError | None = None
    attempts: int = 1
    timestamp: str = field(default_factory=utc_now_iso)

    @property
    def ok(self) -> bool:
        return self.artifact is not None and self.error is None

    @classmethod
    def success(cls, url: str, viewport: str, artifact: CaptureArtifact) -> "CaptureResult":
        return cls(url=url, viewport=viewport, artifact=artifact)

    @classmethod
    def failure(
        cls,
        url: str,
        viewport: str,
        error_type: str,
        message: str,
        code: str | None = None,
    ) -> "CaptureResult":
        return cls(url=url, viewport=viewport, error=CaptureError(type=error_type, message=message, code=code))


@dataclass(frozen=True)
class CapturePair:
    mobile: CaptureResult
    desktop: CaptureResult

    def results(self) -> tuple[CaptureResult, CaptureResult]:
        return (self.mobile, self.desktop)

    @property
    def all_failed(self) -> bool:
        return not self.mobile.ok and not self.desktop.ok

    def artifact(self, viewport: str) -> CaptureArtifact | None:
        result = self.mobile if viewport == "mobile" else self.desktop
        return result.artifact if result.ok else None
