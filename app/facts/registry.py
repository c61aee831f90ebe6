"""
Versioned data tables used by the facts extraction engine.

The third-party signature registry and the keyword tables live in JSON files
under ``app/facts/data`` so they can be updated or swapped without touching
extraction code.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any

_DATA_DIR = Path(__file__).resolve().parent / "data"
DEFAULT_SIGNATURES_PATH = _DATA_DIR / "app_signatures.json"
DEFAULT_KEYWORDS_PATH = _DATA_DIR / "keywords.json"


class RegistryLoadError(RuntimeError):
    """Raised when a data table is missing or malformed."""


def _read_json(path: Path) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise RegistryLoadError(f"Cannot load data table {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise RegistryLoadError(f"Data table {path} must contain a JSON object.")
    return data


def _compile(patterns: Any) -> tuple[re.Pattern[str], ...]:
    if not isinstance(patterns, list):
        return ()
    return tuple(re.compile(str(item), re.IGNORECASE) for item in patterns)


# ---------------------------------------------------------------------------
# Signature registry
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AppSignature:
    name: str
    category: str
    patterns: tuple[re.Pattern[str], ...]

    def matches(self, html: str) -> bool:
        return any(pattern.search(html) for pattern in self.patterns)


@dataclass(frozen=True)
class SignatureRegistry:
    """
    Third-party integration signatures: ``{name, category, patterns}``.
    """

    version: str
    signatures: tuple[AppSignature, ...]

    def detect(self, html: str) -> list[str]:
        """
        Return the sorted, de-duplicated names of every matching signature.
        """

        return sorted({signature.name for signature in self.signatures if signature.matches(html)})

    def category_of(self, name: str) -> str | None:
        for signature in self.signatures:
            if signature.name == name:
                return signature.category
        return None


@lru_cache(maxsize=8)
def load_signature_registry(path: str | None = None) -> SignatureRegistry:
    data = _read_json(Path(path) if path else DEFAULT_SIGNATURES_PATH)
    entries = data.get("signatures")
    if not isinstance(entries, list):
        raise RegistryLoadError("Signature registry requires a 'signatures' list.")

    signatures = tuple(
        AppSignature(
            name=str(entry["name"]),
            category=str(entry.get("category", "other")),
            patterns=_compile(entry.get("patterns")),
        )
        for entry in entries
        if isinstance(entry, dict) and entry.get("name")
    )
    return SignatureRegistry(version=str(data.get("version", "0")), signatures=signatures)


# ---------------------------------------------------------------------------
# Keyword tables
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class KeywordTables:
    """
    FR/EN keyword lists and patterns for trust, stock and purchase signals.
    """

    version: str
    shipping: tuple[str, ...]
    returns: tuple[str, ...]
    social_proof: tuple[re.Pattern[str], ...]
    trust_near_atc: tuple[re.Pattern[str], ...]
    atc_text: re.Pattern[str]
    atc_fallback_phrases: tuple[str, ...]
    out_of_stock: re.Pattern[str]
    stock_text: re.Pattern[str]
    newsletter: re.Pattern[str]


@lru_cache(maxsize=8)
def load_keyword_tables(path: str | None = None) -> KeywordTables:
    data = _read_json(Path(path) if path else DEFAULT_KEYWORDS_PATH)
    try:
        return KeywordTables(
            version=str(data.get("version", "0")),
            shipping=tuple(str(item).lower() for item in data["shipping"]),
            returns=tuple(str(item).lower() for item in data["returns"]),
            social_proof=_compile(data["social_proof_patterns"]),
            trust_near_atc=_compile(data["trust_near_atc_patterns"]),
            atc_text=re.compile(data["atc_text_pattern"], re.IGNORECASE),
            atc_fallback_phrases=tuple(str(item).lower() for item in data["atc_fallback_phrases"]),
            out_of_stock=re.compile(data["out_of_stock_pattern"], re.IGNORECASE),
            stock_text=re.compile(data["stock_text_pattern"], re.IGNORECASE),
            newsletter=re.compile(data["newsletter_pattern"], re.IGNORECASE),
        )
    except (KeyError, TypeError, re.error) as exc:
        raise RegistryLoadError(f"Malformed keyword tables: {exc}") from exc
