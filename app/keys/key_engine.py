"""
app/keys/key_engine.py

Deterministic cache key chain: product -> snapshot -> run -> audit -> render.

Each key is ``<prefix>_<16 hex>`` where the hash is the SHA-256 of the
canonical JSON of a tier's semantic input. Every tier embeds the key of
the tier above it, so a version bump upstream changes every key below.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import asdict, dataclass
from typing import Any

from app.keys.canonical_json import KeyDerivationError, canonical_json, sha256_hex
from app.keys.url_normalizer import normalize_url
from app.keys.versions import VERSIONS

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

KEY_PREFIXES: dict[str, str] = {
    "product": "prod",
    "snapshot": "snap",
    "run": "run",
    "audit": "audit",
    "render": "render",
}
HASH_LENGTH = 16

AUDIT_MODES = ("solo", "duo_ab", "duo_before_after")
URL_SOURCES = ("page_a", "page_b", "before", "after")

_PREFIX_TO_TIER = {prefix: tier for tier, prefix in KEY_PREFIXES.items()}
_HASH_PATTERN = re.compile(r"^[0-9a-f]{16}$")


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AuditKeys:
    """
    The five chained keys for one audit request.
    """

    product_key: str
    snapshot_key: str
    run_key: str
    audit_key: str
    render_key: str

    def as_dict(self) -> dict[str, str]:
        return asdict(self)


@dataclass(frozen=True)
class KeyAnalysis:
    """
    Diagnostic breakdown of a key string. Never used for trust decisions.
    """

    valid: bool
    prefix: str | None = None
    tier: str | None = None
    hash: str | None = None
    reason: str | None = None


# ---------------------------------------------------------------------------
# Derivation
# ---------------------------------------------------------------------------


def derive_key(tier: str, semantic_input: Mapping[str, Any]) -> str:
    """
    Hash one tier's semantic input into ``<prefix>_<16 hex>``.

    Raises KeyDerivationError for an unknown tier or a non-JSON input.
    """

    prefix = KEY_PREFIXES.get(tier)
    if prefix is None:
        raise KeyDerivationError(
            f"Unknown key tier '{tier}'. Allowed tiers: {sorted(KEY_PREFIXES)}."
        )
    digest = sha256_hex(canonical_json(dict(semantic_input)))
    return f"{prefix}_{digest[:HASH_LENGTH]}"


def product_key(
    *,
    mode: str,
    urls: Mapping[str, str],
    versions: Mapping[str, Any] = VERSIONS,
) -> str:
    # Locale is excluded on purpose: one product regardless of storefront language.
    if mode not in AUDIT_MODES:
        raise KeyDerivationError(f"Unsupported audit mode '{mode}'.")
    unknown_sources = sorted(set(urls) - set(URL_SOURCES))
    if unknown_sources:
        raise KeyDerivationError(f"Unsupported URL sources: {unknown_sources}.")

    return derive_key(
        "product",
        {
            "mode": mode,
            "normalized_urls": {source: normalize_url(url) for source, url in urls.items()},
            "normalize_version": versions["normalize_version"],
        },
    )


def snapshot_key(
    *,
    product_key: str,
    locale: str,
    viewports: Mapping[str, Any],
    versions: Mapping[str, Any] = VERSIONS,
) -> str:
    return derive_key(
        "snapshot",
        {
            "product_key": product_key,
            "locale": locale,
            "viewports": dict(viewports),
            "engine_version": versions["engine_version"],
        },
    )


def run_key(
    *,
    snapshot_key: str,
    mode: str,
    versions: Mapping[str, Any] = VERSIONS,
) -> str:
    return derive_key(
        "run",
        {
            "snapshot_key": snapshot_key,
            "detectors_version": versions["detectors_version"],
            "scoring_version": versions["scoring_version"],
            "mode": mode,
        },
    )


def audit_key(
    *,
    run_key: str,
    copy_ready: bool = False,
    white_label: bool = False,
    versions: Mapping[str, Any] = VERSIONS,
) -> str:
    return derive_key(
        "audit",
        {
            "run_key": run_key,
            "report_outline_version": versions["report_outline_version"],
            "copy_ready": bool(copy_ready),
            "white_label": bool(white_label),
        },
    )


def render_key(
    *,
    audit_key: str,
    versions: Mapping[str, Any] = VERSIONS,
) -> str:
    return derive_key(
        "render",
        {
            "audit_key": audit_key,
            "render_version": versions["render_version"],
            "csv_export_version": versions["csv_export_version"],
        },
    )


def derive_all_keys(
    *,
    mode: str,
    urls: Mapping[str, str],
    locale: str,
    viewports: Mapping[str, Any],
    copy_ready: bool = False,
    white_label: bool = False,
    versions: Mapping[str, Any] = VERSIONS,
) -> AuditKeys:
    """
    Derive the full key chain for one audit request.

    Parameters
    ----------
    mode:
        One of ``solo``, ``duo_ab`` or ``duo_before_after``.
    urls:
        Raw URLs keyed by source (``page_a``, ``page_b``, ``before``, ``after``).
        They are normalized before hashing.
    locale:
        Report locale; first enters the chain at the snapshot tier.
    viewports:
        Viewport dimensions keyed by name, e.g.
        ``{"mobile": {"width": 390, "height": 844}, ...}``.
    versions:
        Version stamps; defaults to the current release stamps.

    Returns
    -------
    AuditKeys
    """

    prod = product_key(mode=mode, urls=urls, versions=versions)
    snap = snapshot_key(product_key=prod, locale=locale, viewports=viewports, versions=versions)
    run = run_key(snapshot_key=snap, mode=mode, versions=versions)
    audit = audit_key(
        run_key=run,
        copy_ready=copy_ready,
        white_label=white_label,
        versions=versions,
    )
    render = render_key(audit_key=audit, versions=versions)
    return AuditKeys(
        product_key=prod,
        snapshot_key=snap,
        run_key=run,
        audit_key=audit,
        render_key=render,
    )


# ---------------------------------------------------------------------------
# Diagnostics
# ---------------------------------------------------------------------------


def analyze_key(key: str) -> KeyAnalysis:
    if not isinstance(key, str) or not key:
        return KeyAnalysis(valid=False, reason="empty key")

    parts = key.split("_")
    if len(parts) != 2:
        return KeyAnalysis(valid=False, reason="expected exactly one '_' separator")

    prefix, digest = parts
    tier = _PREFIX_TO_TIER.get(prefix)
    if tier is None:
        return KeyAnalysis(valid=False, prefix=prefix, hash=digest, reason="unknown prefix")
    if not _HASH_PATTERN.match(digest):
        return KeyAnalysis(
            valid=False,
            prefix=prefix,
            tier=tier,
            hash=digest,
            reason=f"hash must be {HASH_LENGTH} lowercase hex characters",
        )
    return KeyAnalysis(valid=True, prefix=prefix, tier=tier, hash=digest)
