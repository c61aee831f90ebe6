"""
app/keys/canonical_json.py

Canonical JSON serialization and hashing for cache key derivation.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any


class KeyDerivationError(ValueError):
    """Raised when a semantic input cannot be canonicalized."""


def canonical_json(value: Any) -> str:
    """
    Serialize ``value`` with object keys sorted at every depth.

    Arrays keep their order. Separators are compact so the output is
    byte-stable across processes.
    """

    try:
        return json.dumps(
            value,
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
            allow_nan=False,
        )
    except (TypeError, ValueError) as exc:
        raise KeyDerivationError(f"Semantic input is not canonicalizable: {exc}") from exc


def sha256_hex(payload: str) -> str:
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()
