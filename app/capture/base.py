"""
Capture adapter contract.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from app.capture.types import CaptureOptions, CaptureResult


class CaptureAdapter(ABC):
    """
    Renders one URL for one viewport.

    ``capture`` reports failures through the returned result instead of
    raising, and releases every browser resource it acquired on every path.
    """

    @abstractmethod
    def capture(self, url: str, viewport: str, options: CaptureOptions) -> CaptureResult:
        """Capture ``url`` rendered for ``viewport``."""

    def close(self) -> None:
        """Release long-lived resources. Default: nothing to release."""
