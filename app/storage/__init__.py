"""
Blob storage backends for capture artifacts and exports.
"""

from __future__ import annotations

from app.config import StorageSettings, get_storage_settings
from app.storage.base import BlobStorage, UploadError, UploadResult, object_name
from app.storage.local_storage import LocalBlobStorage
from app.storage.supabase_storage import SupabaseBlobStorage


def get_blob_storage(settings: StorageSettings | None = None) -> BlobStorage:
    resolved = settings or get_storage_settings()
    if resolved.backend == "supabase":
        return SupabaseBlobStorage(settings=resolved)
    return LocalBlobStorage(root_dir=resolved.root_dir)


__all__ = [
    "BlobStorage",
    "LocalBlobStorage",
    "SupabaseBlobStorage",
    "UploadError",
    "UploadResult",
    "get_blob_storage",
    "object_name",
]
