"""
app/keys package marker.
"""

from app.keys.canonical_json import canonical_json
from app.keys.key_engine import AuditKeys, KeyAnalysis, analyze_key, derive_all_keys, derive_key
from app.keys.url_normalizer import normalize_url

__all__ = [
    "AuditKeys",
    "KeyAnalysis",
    "analyze_key",
    "canonical_json",
    "derive_all_keys",
    "derive_key",
    "normalize_url",
]
