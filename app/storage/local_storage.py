"""
Local filesystem blob storage backend.
"""

from __future__ import annotations

import logging
from pathlib import Path

from app.storage.base import BlobStorage, UploadError, UploadResult, object_name

logger = logging.getLogger(__name__)

_BUCKET_BY_KIND = {"screenshot": "screenshots", "html": "html-reports", "csv": "html-reports"}


class LocalBlobStorage(BlobStorage):
    """
    Writes artifacts under ``root_dir/<bucket>/`` with an atomic tmp-file replace.
    """

    def __init__(self, root_dir: str | Path = "data/artifacts") -> None:
        self._root_dir = Path(root_dir)

    def _target(self, namespace_key: str, viewport: str | None, kind: str) -> tuple[Path, str]:
        name = object_name(namespace_key, viewport, kind)
        relative = Path(_BUCKET_BY_KIND[kind]) / name
        return self._root_dir / relative, relative.as_posix()

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
        absolute_path, relative_path = self._target(namespace_key, viewport, kind)
        public_url = absolute_path.resolve().as_uri()

        if check_existing and not overwrite and absolute_path.exists():
            return UploadResult(
                path=relative_path,
                public_url=public_url,
                size=absolute_path.stat().st_size,
                cached=True,
            )

        tmp_path = absolute_path.with_suffix(f"{absolute_path.suffix}.tmp")
        try:
            absolute_path.parent.mkdir(parents=True, exist_ok=True)
            with tmp_path.open("wb") as handle:
                handle.write(data)
            tmp_path.replace(absolute_path)
        except OSError as exc:
            raise UploadError("storage_error", f"Failed to write {relative_path}: {exc}") from exc
        finally:
            if tmp_path.exists():
                try:
                    tmp_path.unlink()
                except OSError as exc:
                    logger.warning("Could not remove temporary file %s: %s", tmp_path, exc)

        return UploadResult(path=relative_path, public_url=public_url, size=len(data), cached=False)
