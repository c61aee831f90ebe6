"""
tests/test_storage.py

Pytest unit tests for the blob storage backends.

The local backend writes under pytest's tmp_path; the Supabase backend is
driven through a fake requests session.

Coverage
--------
- Deterministic object names and invalid namespaces
- Existence short-circuit and overwrite
- Typed upload errors: auth, storage, network
- Retry with backoff on network errors only
"""

from __future__ import annotations

from dataclasses import dataclass, field

import pytest
import requests

from app.config import StorageSettings
from app.storage import get_blob_storage
from app.storage.base import UploadError, object_name, with_retries
from app.storage.local_storage import LocalBlobStorage
from app.storage.supabase_storage import SupabaseBlobStorage

SNAPSHOT_KEY = "snap_0123456789abcdef"


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


@dataclass
class FakeResponse:
    status_code: int
    text: str = ""
    reason: str = ""
    headers: dict = field(default_factory=dict)


class FakeSession:
    """Scripted HEAD/POST responses; exceptions in the script are raised."""

    def __init__(self, head=None, post=None) -> None:
        self.head_script = list(head or [])
        self.post_script = list(post or [])
        self.posts: list[dict] = []

    @staticmethod
    def _next(script):
        item = script.pop(0) if len(script) > 1 else script[0]
        if isinstance(item, Exception):
            raise item
        return item

    def head(self, url, headers=None, timeout=None):
        return self._next(self.head_script)

    def post(self, url, data=None, headers=None, timeout=None):
        self.posts.append({"url": url, "headers": headers, "size": len(data or b"")})
        return self._next(self.post_script)


def _settings(**overrides) -> StorageSettings:
    params = {
        "backend": "supabase",
        "supabase_url": "https://project.supabase.co/",
        "supabase_key": "service-role",
        "backoff_initial_seconds": 0.0,
    }
    params.update(overrides)
    return StorageSettings(**params)


# ---------------------------------------------------------------------------
# Object names
# ---------------------------------------------------------------------------


class TestObjectName:
    def test_viewport_artifacts(self) -> None:
        assert object_name(SNAPSHOT_KEY, "mobile", "screenshot") == f"{SNAPSHOT_KEY}_mobile.png"
        assert object_name(SNAPSHOT_KEY, "desktop", "html") == f"{SNAPSHOT_KEY}_desktop.html"

    def test_export_without_viewport(self) -> None:
        assert object_name("render_0123456789abcdef", None, "csv") == "render_0123456789abcdef.csv"

    @pytest.mark.parametrize("key", ["", "../etc", "a/b"])
    def test_invalid_namespace(self, key: str) -> None:
        with pytest.raises(UploadError) as excinfo:
            object_name(key, "mobile", "html")
        assert excinfo.value.type == "storage_error"

    def test_unknown_kind(self) -> None:
        with pytest.raises(UploadError):
            object_name(SNAPSHOT_KEY, "mobile", "pdf")

    def test_error_type_outside_taxonomy_is_rejected(self) -> None:
        with pytest.raises(ValueError, match="disk_full"):
            UploadError("disk_full", "no space left")


# ---------------------------------------------------------------------------
# Local backend
# ---------------------------------------------------------------------------


class TestLocalBlobStorage:
    def test_writes_file(self, tmp_path) -> None:
        storage = LocalBlobStorage(tmp_path)
        result = storage.upload(SNAPSHOT_KEY, "mobile", b"png-bytes", kind="screenshot")
        assert result.path == f"screenshots/{SNAPSHOT_KEY}_mobile.png"
        assert result.size == len(b"png-bytes")
        assert result.cached is False
        assert (tmp_path / result.path).read_bytes() == b"png-bytes"
        assert result.public_url.startswith("file://")

    def test_existing_object_is_cached(self, tmp_path) -> None:
        storage = LocalBlobStorage(tmp_path)
        storage.upload(SNAPSHOT_KEY, "mobile", b"first", kind="html")
        again = storage.upload(SNAPSHOT_KEY, "mobile", b"second", kind="html")
        assert again.cached is True
        assert (tmp_path / again.path).read_bytes() == b"first"

    def test_overwrite_replaces(self, tmp_path) -> None:
        storage = LocalBlobStorage(tmp_path)
        storage.upload("render_0123456789abcdef", None, b"a,b\n", kind="csv")
        result = storage.upload("render_0123456789abcdef", None, b"c,d\n", kind="csv", overwrite=True)
        assert result.cached is False
        assert (tmp_path / result.path).read_bytes() == b"c,d\n"

    def test_unknown_kind_is_typed_error(self, tmp_path) -> None:
        with pytest.raises(UploadError) as excinfo:
            LocalBlobStorage(tmp_path).upload(SNAPSHOT_KEY, "mobile", b"%PDF", kind="pdf")
        assert excinfo.value.type == "unknown"
        assert not any(tmp_path.iterdir())

    def test_no_temporary_files_left(self, tmp_path) -> None:
        LocalBlobStorage(tmp_path).upload(SNAPSHOT_KEY, "desktop", b"x", kind="html")
        assert not list(tmp_path.rglob("*.tmp"))

    def test_factory_defaults_to_local(self, tmp_path) -> None:
        storage = get_blob_storage(StorageSettings(backend="local", root_dir=str(tmp_path)))
        assert isinstance(storage, LocalBlobStorage)


# ---------------------------------------------------------------------------
# Supabase backend
# ---------------------------------------------------------------------------


class TestSupabaseBlobStorage:
    def test_requires_credentials(self) -> None:
        with pytest.raises(UploadError) as excinfo:
            SupabaseBlobStorage(settings=StorageSettings(backend="supabase"))
        assert excinfo.value.type == "auth_error"

    def test_uploads_when_missing(self) -> None:
        session = FakeSession(head=[FakeResponse(404)], post=[FakeResponse(200)])
        storage = SupabaseBlobStorage(settings=_settings(), session=session)
        result = storage.upload(SNAPSHOT_KEY, "mobile", b"png", kind="screenshot")
        assert result.path == f"screenshots/{SNAPSHOT_KEY}_mobile.png"
        assert result.public_url == (
            f"https://project.supabase.co/storage/v1/object/public/screenshots/{SNAPSHOT_KEY}_mobile.png"
        )
        assert session.posts[0]["headers"]["x-upsert"] == "false"
        assert session.posts[0]["headers"]["Content-Type"] == "image/png"

    def test_existing_object_short_circuits(self) -> None:
        session = FakeSession(head=[FakeResponse(200, headers={"Content-Length": "42"})])
        storage = SupabaseBlobStorage(settings=_settings(), session=session)
        result = storage.upload(SNAPSHOT_KEY, "desktop", b"<html>", kind="html")
        assert result.cached is True
        assert result.size == 42
        assert session.posts == []

    def test_overwrite_skips_existence_check(self) -> None:
        session = FakeSession(post=[FakeResponse(200)])
        storage = SupabaseBlobStorage(settings=_settings(), session=session)
        result = storage.upload("render_0123456789abcdef", None, b"csv", kind="csv", overwrite=True)
        assert result.path == "html-reports/render_0123456789abcdef.csv"
        assert session.posts[0]["headers"]["x-upsert"] == "true"

    def test_auth_error(self) -> None:
        session = FakeSession(head=[FakeResponse(404)], post=[FakeResponse(403, text="forbidden")])
        storage = SupabaseBlobStorage(settings=_settings(), session=session)
        with pytest.raises(UploadError) as excinfo:
            storage.upload(SNAPSHOT_KEY, "mobile", b"png", kind="screenshot")
        assert excinfo.value.type == "auth_error"
        assert excinfo.value.code == "403"

    def test_network_error_is_retried(self) -> None:
        session = FakeSession(
            head=[FakeResponse(404)],
            post=[requests.ConnectionError("reset"), FakeResponse(200)],
        )
        storage = SupabaseBlobStorage(settings=_settings(max_retries=1), session=session)
        result = storage.upload(SNAPSHOT_KEY, "mobile", b"png", kind="screenshot")
        assert result.cached is False
        assert len(session.posts) == 2

    def test_network_error_without_retries(self) -> None:
        session = FakeSession(head=[requests.Timeout("slow")])
        storage = SupabaseBlobStorage(settings=_settings(), session=session)
        with pytest.raises(UploadError) as excinfo:
            storage.upload(SNAPSHOT_KEY, "mobile", b"png", kind="screenshot")
        assert excinfo.value.type == "network_error"


class TestWithRetries:
    def test_storage_errors_are_not_retried(self) -> None:
        calls = []

        def operation():
            calls.append(1)
            raise UploadError("storage_error", "disk full")

        with pytest.raises(UploadError):
            with_retries(operation, max_retries=3, sleep=lambda _: None)
        assert len(calls) == 1

    def test_backoff_grows(self) -> None:
        delays: list[float] = []

        def operation():
            raise UploadError("network_error", "reset")

        with pytest.raises(UploadError):
            with_retries(
                operation,
                max_retries=3,
                backoff_initial_seconds=0.5,
                backoff_multiplier=2.0,
                sleep=delays.append,
            )
        assert delays == [0.5, 1.0, 2.0]
