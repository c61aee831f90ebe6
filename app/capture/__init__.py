"""
Two-viewport page capture.

The Playwright adapter is imported from ``app.capture.playwright_adapter``
directly so the rest of the package stays importable without a browser.
"""

from app.capture.base import CaptureAdapter
from app.capture.engine import CaptureOrchestrator
from app.capture.resource_policy import should_block_resource
from app.capture.session_pool import BrowserSessionPool
from app.capture.types import (
    VIEWPORT_PROFILES,
    VIEWPORTS,
    CaptureArtifact,
    CaptureError,
    CaptureOptions,
    CapturePair,
    CaptureResult,
    ViewportProfile,
)

__all__ = [
    "BrowserSessionPool",
    "CaptureAdapter",
    "CaptureArtifact",
    "CaptureError",
    "CaptureOptions",
    "CaptureOrchestrator",
    "CapturePair",
    "CaptureResult",
    "VIEWPORTS",
    "VIEWPORT_PROFILES",
    "ViewportProfile",
    "should_block_resource",
]
