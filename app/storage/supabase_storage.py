"""
Supabase Storage backend over the REST API.
"""

from __future__ import annotations

import logging
from urllib.parse import quote

import requests

from app.config import StorageSettings
from app.storage.base import (
    ARTIFACT_KINDS,
    BlobStorage,
    UploadError,
    UploadResult,
    object_name,
    with_retries,
)

logger = logging.getLogger(__name__)

AUTH_STATUS_CODES = {401, 403}


def _error_for_status(response: requests.Response, action: str) -> UploadError:
    code = str(response.status_code)
    detail = response.text[:300] if response.text else response.reason
    if response.status_code in AUTH_STATUS_CODES:
        return UploadError("auth_error", f"{action} rejected: {detail}", code)
    return UploadError("storage_error", f"{action} failed: {detail}", code)


class SupabaseBlobStorage(BlobStorage):
    """
    Uploads artifacts to public Supabase buckets.

    Screenshots go to the screenshot bucket; markup snapshots and CSV
    exports go to the report bucket.
    """

    def __init__(
        self,
        *,
        settings: StorageSettings,
        session: requests.Session | None = None,
    ) -> None:
        if not settings.supabase_url or not settings.supabase_key:
            raise UploadError("auth_error", "SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY are required.")
        self._base_url = settings.supabase_url.rstrip("/")
        self._key = settings.supabase_key
        self._settings = settings
        self._session = session or requests.Session()

    def _bucket(self, kind: str) -> str:
        if kind == "screenshot":
            return self._settings.screenshot_bucket
        return self._settings.report_bucket

    def _headers(self, content_type: str | None = None) -> dict[str, str]:
        headers = {"Authorization": f"Bearer {self._key}", "apikey": self._key}
        if content_type:
            headers["Content-Type"] = content_type
        return headers

    def public_url(self, bucket: str, name: str) -> str:
        return f"{self._base_url}/storage/v1/object/public/{bucket}/{quote(name)}"

    def _exists(self, bucket: str, name: str) -> int | None:
        """
        Size of an existing object, or None when it does not exist.
        """

        url = f"{self._base_url}/storage/v1/object/{bucket}/{quote(name)}"
        try:
            response = self._session.head(url, headers=self._headers(), timeout=self._settings.timeout_seconds)
        except requests.RequestException as exc:
            raise UploadError("network_error", f"Existence check failed: {exc}") from exc
        if response.status_code in (400, 404):
            return None
        if response.status_code >= 400:
            raise _error_for_status(response, "Existence check")
        try:
            return int(response.headers.get("Content-Length", "0"))
        except ValueError:
            return 0

    def _put(self, bucket: str, name: str, data: bytes, content_type: str, overwrite: bool) -> None:
        url = f"{self._base_url}/storage/v1/object/{bucket}/{quote(name)}"
        headers = self._headers(content_type)
        headers["x-upsert"] = "true" if overwrite else "false"
        try:
            response = self._session.post(url, data=data, headers=headers, timeout=self._settings.timeout_seconds)
        except requests.RequestException as exc:
            raise UploadError("network_error", f"Upload failed: {exc}") from exc
        if response.status_code >= 400:
            raise _error_for_status(response, "Upload")

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
        name = object_name(namespace_key, viewport, kind)
        bucket = self._bucket(kind)
        content_type = ARTIFACT_KINDS[kind][1]
        path = f"{bucket}/{name}"

        def _run() -> UploadResult:
            if check_existing and not overwrite:
                existing_size = self._exists(bucket, name)
                if existing_size is not None:
                    logger.debug("Artifact already stored path=%s", path)
                    return UploadResult(
                        path=path,
                        public_url=self.public_url(bucket, name),
                        size=existing_size,
                        cached=True,
                    )
            self._put(bucket, name, data, content_type, overwrite)
            return UploadResult(path=path, public_url=self.public_url(bucket, name), size=len(data))

        return with_retries(
            _run,
            max_retries=self._settings.max_retries,
            backoff_initial_seconds=self._settings.backoff_initial_seconds,
            backoff_multiplier=self._settings.backoff_multiplier,
        )
