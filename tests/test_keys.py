"""
tests/test_keys.py

Pytest unit tests for URL normalization and the cache key chain.

Coverage
--------
- URL normalization: case, query, fragment, ports, trailing slash
- Canonical JSON key ordering
- Determinism of the full key chain
- Convergence of equivalent URLs onto one product key
- Sensitivity of each tier to its own inputs and to version bumps
- Locale exclusion from the product key
- Key diagnostics
"""

from __future__ import annotations

import pytest

from app.keys.canonical_json import KeyDerivationError, canonical_json, sha256_hex
from app.keys.key_engine import (
    HASH_LENGTH,
    AuditKeys,
    analyze_key,
    derive_all_keys,
    derive_key,
    product_key,
)
from app.keys.url_normalizer import normalize_url
from app.keys.versions import VERSIONS

VIEWPORTS = {
    "mobile": {"width": 390, "height": 844},
    "desktop": {"width": 1440, "height": 900},
}


def _keys(**overrides) -> AuditKeys:
    params = {
        "mode": "solo",
        "urls": {"page_a": "https://shop.example.com/products/linen-shirt"},
        "locale": "fr",
        "viewports": VIEWPORTS,
    }
    params.update(overrides)
    return derive_all_keys(**params)


# ---------------------------------------------------------------------------
# URL normalization
# ---------------------------------------------------------------------------


class TestNormalizeUrl:
    def test_lowercases_and_drops_query_and_fragment(self) -> None:
        url = "HTTPS://Shop.Example.com/Products/Shirt?utm_source=ads#reviews"
        assert normalize_url(url) == "https://shop.example.com/products/shirt"

    def test_drops_default_port(self) -> None:
        assert normalize_url("https://example.com:443/a") == "https://example.com/a"
        assert normalize_url("http://example.com:80/a") == "http://example.com/a"

    def test_keeps_non_default_port(self) -> None:
        assert normalize_url("http://example.com:8080/a") == "http://example.com:8080/a"

    def test_removes_trailing_slash_except_root(self) -> None:
        assert normalize_url("https://example.com/products/") == "https://example.com/products"
        assert normalize_url("https://example.com/") == "https://example.com/"
        assert normalize_url("https://example.com") == "https://example.com/"

    def test_malformed_input_never_raises(self) -> None:
        assert normalize_url("  Not A URL ") == "not a url"
        assert normalize_url("") == ""

    def test_non_string_returns_empty(self) -> None:
        assert normalize_url(None) == ""  # type: ignore[arg-type]

    def test_is_idempotent(self) -> None:
        once = normalize_url("HTTPS://Example.com/A/B/?x=1")
        assert normalize_url(once) == once


# ---------------------------------------------------------------------------
# Canonical JSON
# ---------------------------------------------------------------------------


class TestCanonicalJson:
    def test_sorts_keys_at_every_depth(self) -> None:
        left = canonical_json({"b": 1, "a": {"d": 2, "c": 3}})
        right = canonical_json({"a": {"c": 3, "d": 2}, "b": 1})
        assert left == right == '{"a":{"c":3,"d":2},"b":1}'

    def test_keeps_array_order(self) -> None:
        assert canonical_json([3, 1, 2]) == "[3,1,2]"

    def test_rejects_non_serializable(self) -> None:
        with pytest.raises(KeyDerivationError):
            canonical_json({"value": object()})

    def test_rejects_nan(self) -> None:
        with pytest.raises(KeyDerivationError):
            canonical_json({"value": float("nan")})

    def test_sha256_hex_is_lowercase_hex(self) -> None:
        digest = sha256_hex("abc")
        assert len(digest) == 64
        assert digest == digest.lower()


# ---------------------------------------------------------------------------
# Key chain
# ---------------------------------------------------------------------------


class TestKeyChain:
    def test_is_deterministic(self) -> None:
        assert _keys() == _keys()

    def test_prefixes_and_hash_length(self) -> None:
        keys = _keys()
        expected = {
            "product_key": "prod",
            "snapshot_key": "snap",
            "run_key": "run",
            "audit_key": "audit",
            "render_key": "render",
        }
        for name, prefix in expected.items():
            value = keys.as_dict()[name]
            head, digest = value.split("_")
            assert head == prefix
            assert len(digest) == HASH_LENGTH

    def test_equivalent_urls_converge(self) -> None:
        plain = _keys(urls={"page_a": "https://shop.example.com/products/linen-shirt"})
        noisy = _keys(urls={"page_a": "HTTPS://SHOP.example.com:443/products/linen-shirt/?variant=12#top"})
        assert plain == noisy

    def test_locale_does_not_change_product_key(self) -> None:
        fr = _keys(locale="fr")
        en = _keys(locale="en")
        assert fr.product_key == en.product_key
        assert fr.snapshot_key != en.snapshot_key
        assert fr.run_key != en.run_key

    def test_viewports_change_snapshot_and_below(self) -> None:
        base = _keys()
        other = _keys(viewports={**VIEWPORTS, "mobile": {"width": 375, "height": 812}})
        assert base.product_key == other.product_key
        assert base.snapshot_key != other.snapshot_key
        assert base.render_key != other.render_key

    def test_report_flags_change_audit_and_render_only(self) -> None:
        base = _keys()
        white = _keys(white_label=True)
        assert base.run_key == white.run_key
        assert base.audit_key != white.audit_key
        assert base.render_key != white.render_key

    def test_copy_ready_changes_audit_key(self) -> None:
        assert _keys().audit_key != _keys(copy_ready=True).audit_key

    def test_mode_changes_product_key(self) -> None:
        assert _keys().product_key != _keys(mode="duo_ab").product_key

    def test_scoring_version_bump_keeps_snapshot(self) -> None:
        bumped = {**VERSIONS, "scoring_version": VERSIONS["scoring_version"] + "-next"}
        base = _keys()
        other = _keys(versions=bumped)
        assert base.snapshot_key == other.snapshot_key
        assert base.run_key != other.run_key
        assert base.render_key != other.render_key

    def test_normalize_version_bump_cascades_everywhere(self) -> None:
        bumped = {**VERSIONS, "normalize_version": VERSIONS["normalize_version"] + "-next"}
        base = _keys().as_dict()
        other = _keys(versions=bumped).as_dict()
        assert all(base[name] != other[name] for name in base)

    def test_csv_version_bump_changes_render_only(self) -> None:
        bumped = {**VERSIONS, "csv_export_version": VERSIONS["csv_export_version"] + "-next"}
        base = _keys()
        other = _keys(versions=bumped)
        assert base.audit_key == other.audit_key
        assert base.render_key != other.render_key

    def test_unknown_mode_raises(self) -> None:
        with pytest.raises(KeyDerivationError):
            _keys(mode="trio")

    def test_unknown_source_raises(self) -> None:
        with pytest.raises(KeyDerivationError):
            product_key(mode="solo", urls={"page_z": "https://example.com/"})

    def test_unknown_tier_raises(self) -> None:
        with pytest.raises(KeyDerivationError):
            derive_key("tenant", {"a": 1})


# ---------------------------------------------------------------------------
# Diagnostics
# ---------------------------------------------------------------------------


class TestAnalyzeKey:
    def test_valid_key(self) -> None:
        key = _keys().run_key
        analysis = analyze_key(key)
        assert analysis.valid is True
        assert analysis.tier == "run"
        assert analysis.prefix == "run"
        assert analysis.reason is None

    def test_empty_key(self) -> None:
        assert analyze_key("").reason == "empty key"

    def test_wrong_separator_count(self) -> None:
        assert analyze_key("prod_abc_def").reason == "expected exactly one '_' separator"
        assert analyze_key("prodabc").valid is False

    def test_unknown_prefix(self) -> None:
        analysis = analyze_key("tenant_0123456789abcdef")
        assert analysis.valid is False
        assert analysis.reason == "unknown prefix"

    def test_bad_hash(self) -> None:
        analysis = analyze_key("snap_XYZ")
        assert analysis.valid is False
        assert analysis.tier == "snapshot"
        assert "hex" in (analysis.reason or "")
