"""
app/keys/url_normalizer.py

Canonical URL form used as the semantic input of the product key.
"""

from __future__ import annotations

from urllib.parse import urlsplit

_DEFAULT_PORTS = {"http": 80, "https": 443}


def _fallback(url: str) -> str:
    lowered = url.strip().lower()
    if len(lowered) > 1 and lowered.endswith("/"):
        return lowered.rstrip("/")
    return lowered


def normalize_url(url: str) -> str:
    """
    Return ``scheme://host/path`` with host and path lowercased.

    Query string, fragment and default ports are dropped; a trailing slash
    is removed unless the path is the root. Malformed input never raises:
    it falls back to a trimmed, lowercased form.
    """

    if not isinstance(url, str):
        return ""

    try:
        parts = urlsplit(url.strip())
        scheme = parts.scheme.lower()
        host = (parts.hostname or "").lower()
        if not scheme or not host:
            return _fallback(url)

        port = parts.port
        netloc = host
        if port is not None and _DEFAULT_PORTS.get(scheme) != port:
            netloc = f"{host}:{port}"

        path = parts.path.lower() or "/"
        if len(path) > 1:
            path = path.rstrip("/") or "/"
        return f"{scheme}://{netloc}{path}"
    except ValueError:
        return _fallback(url)
