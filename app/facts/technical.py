"""
Technical fact detectors: platform, theme, integrations, analytics,
accessibility and script loading.
"""

from __future__ import annotations

import re

from app.facts.page import PageContext
from app.facts.registry import SignatureRegistry
from app.facts.types import TechnicalFacts

SHOPIFY_VERSION_REGEX = re.compile(
    r"Shopify\.theme.*?version[\"']?\s*:\s*[\"']([^\"']+)",
    re.IGNORECASE | re.DOTALL,
)
THEME_NAME_PATTERNS = (
    re.compile(r"Shopify\.theme\s*=\s*\{[^}]*?[\"']name[\"']\s*:\s*[\"']([^\"']+)", re.IGNORECASE),
    re.compile(r"[\"']theme[\"']\s*:\s*[\"']([^\"']+)", re.IGNORECASE),
    re.compile(r"shopify-theme-([a-z0-9-]+)", re.IGNORECASE),
    re.compile(r"\"theme_name\"\s*:\s*\"([^\"]+)\"", re.IGNORECASE),
)
POPULAR_THEMES = ("Dawn", "Debut", "Brooklyn", "Narrative", "Venture", "Simple")
_POPULAR_THEME_REGEX = re.compile(
    r"theme[s]?[-_/ ]?(" + "|".join(POPULAR_THEMES) + r")\b",
    re.IGNORECASE,
)

SKIP_LINK_SELECTORS = (
    'a[href="#main"]',
    'a[href="#content"]',
    'a[href="#MainContent"]',
    ".skip-link",
    ".skip-to-content-link",
)
MIN_ARIA_LABELS = 5


def _shopify_detected(ctx: PageContext) -> bool:
    if "shopify" in ctx.html_lower:
        return True
    return (
        ctx.soup.select_one("[data-shopify]") is not None
        or ctx.soup.select_one('script[src*="shopify"]') is not None
    )


def _theme_name(html: str) -> str | None:
    for pattern in THEME_NAME_PATTERNS:
        match = pattern.search(html)
        if match and match.group(1).strip():
            return match.group(1).strip()
    match = _POPULAR_THEME_REGEX.search(html)
    if match:
        return match.group(1).capitalize()
    return None


def _script_counts(ctx: PageContext) -> tuple[int, int, int]:
    scripts = ctx.soup.find_all("script")
    external = [script for script in scripts if script.get("src")]
    blocking = 0
    head = ctx.soup.head
    if head is not None:
        for script in head.find_all("script"):
            if not script.get("src"):
                continue
            if script.has_attr("async") or script.has_attr("defer"):
                continue
            if str(script.get("type", "")).lower() == "module":
                continue
            blocking += 1
    return len(scripts), len(external), blocking


def detect_technical_facts(
    ctx: PageContext,
    registry: SignatureRegistry,
    *,
    lcp_ms: int | None = None,
) -> TechnicalFacts:
    html_lower = ctx.html_lower
    is_shopify = _shopify_detected(ctx)
    version_match = SHOPIFY_VERSION_REGEX.search(ctx.html) if is_shopify else None
    script_count, external_count, blocking_count = _script_counts(ctx)
    html_tag = ctx.soup.find("html")

    return TechnicalFacts(
        is_shopify=is_shopify,
        shopify_version=version_match.group(1) if version_match else None,
        theme_name=_theme_name(ctx.html) if is_shopify else None,
        detected_apps=tuple(registry.detect(ctx.html)),
        has_google_analytics=(
            "google-analytics.com" in html_lower
            or "googletagmanager.com" in html_lower
            or "gtag(" in html_lower
        ),
        has_facebook_pixel=(
            "connect.facebook.net" in html_lower
            or "fbevents.js" in html_lower
            or "fbq(" in html_lower
        ),
        has_klaviyo="klaviyo" in html_lower,
        has_skip_link=any(ctx.soup.select_one(selector) is not None for selector in SKIP_LINK_SELECTORS),
        has_aria_labels=len(ctx.soup.select("[aria-label]")) > MIN_ARIA_LABELS,
        has_lang_attribute=bool(html_tag is not None and str(html_tag.get("lang", "")).strip()),
        script_count=script_count,
        external_script_count=external_count,
        blocking_script_count=blocking_count,
        lcp_ms=int(lcp_ms) if lcp_ms is not None else None,
    )
