"""
Blob storage abstractions for capture artifacts and exports.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

from app.failure_codes import UPLOAD_ERROR_TYPES

T = TypeVar("T")

ARTIFACT_KINDS: dict[str, tuple[str, str]] = {
    # kind -> (file extension, content type)
    "screenshot": ("png", "image/png"),
    "html": ("html", "text/html; charset=utf-8"),
    "csv": ("csv", "text/csv; charset=utf-8"),
}


class UploadError(Exception):
    """
    Typed upload failure: ``storage_error | network_error | auth_error | unknown``.
    """

    def __init__(self, type: str, message: str, code: str | None = None) -> None:
        if type not in UPLOAD_ERROR_TYPES:
            raise ValueError(f"Unknown upload error type '{type}'.")
        self.type = type
        self.message = message
        self.code = code
        super().__init__(f"[{type}] {message}" + (f" (code={code})" if code else ""))


@dataclass(frozen=True)
class UploadResult:
    path: str
    public_url: str
    size: int
    cached: bool = False


def object_name(namespace_key: str, viewport: str | None, kind: str) -> str:
    """
    ``{namespace_key}_{viewport}.png|.html`` or ``{namespace_key}.csv``.
    """

    if kind not in ARTIFACT_KINDS:
        raise UploadError("unknown", f"Unsupported artifact kind '{kind}'.")
    if not namespace_key or "/" in namespace_key or ".." in namespace_key:
        raise UploadError("storage_error", f"Invalid namespace key '{namespace_key}'.")
    extension = ARTIFACT_KINDS[kind][0]
    if viewport:
        return f"{namespace_key}_{viewport}.{extension}"
    return f"{namespace_key}.{extension}"


class BlobStorage(ABC):
    """
    Contract for artifact storage backends.

    ``upload`` returns ``cached=True`` without writing when ``check_existing``
    is set, ``overwrite`` is False and the object already exists.
    """

    @abstractmethod
    def upload(
        self,
        namespace_key: str,
        viewport: str | None,
        data: bytes,
        *,
        kind: str,
        overwrite: bool = False,
        check_existing: bool = True,
    ) -> UploadResult:
        ...


def with_retries(
    operation: Callable[[], T],
    *,
    max_retries: int = 0,
    backoff_initial_seconds: float = 0.5,
    backoff_multiplier: float = 2.0,
    retry_on: tuple[str, ...] = ("network_error",),
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Run ``operation`` retrying typed upload errors with exponential backoff.
    """

    delay = backoff_initial_seconds
    attempt = 0
    while True:
        try:
            return operation()
        except UploadError as exc:
            if exc.type not in retry_on or attempt >= max_retries:
                raise
            attempt += 1
            sleep(delay)
            delay *= backoff_multiplier
