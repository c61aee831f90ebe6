"""
Parsed page context shared by every fact detector.
"""

from __future__ import annotations

import re

from bs4 import BeautifulSoup, Tag

from app.facts.json_ld import JsonLdProduct, extract_json_ld_products
from app.facts.registry import KeywordTables

MAIN_REGION_SELECTORS = ("main", ".product-info", "body")
EXCLUDED_REGION_SELECTORS = (
    "nav",
    "header",
    "footer",
    "script",
    "style",
    "noscript",
    '[class*="breadcrumb"]',
    '[id*="breadcrumb"]',
    '[class*="nav"]',
    '[id*="nav"]',
    '[class*="header"]',
    '[id*="header"]',
    '[class*="footer"]',
    '[id*="footer"]',
)

_WHITESPACE = re.compile(r"\s+")


def clean_text(value: str | None) -> str:
    if not value:
        return ""
    return _WHITESPACE.sub(" ", value).strip()


def class_string(node: Tag) -> str:
    raw = node.get("class")
    if isinstance(raw, list):
        return " ".join(raw).lower()
    return str(raw or "").lower()


def node_text(node: Tag) -> str:
    """
    Visible text of an element, falling back to its value or aria-label.
    """

    text = clean_text(node.get_text(" ", strip=True))
    if text:
        return text
    for attribute in ("value", "aria-label", "title"):
        value = node.get(attribute)
        if isinstance(value, str) and value.strip():
            return clean_text(value)
    return ""


class PageContext:
    """
    One parsed document plus derived views reused across detectors.
    """

    def __init__(self, *, markup: str, keywords: KeywordTables) -> None:
        self.html = markup or ""
        self.html_lower = self.html.lower()
        self.soup = BeautifulSoup(self.html, "html.parser")
        self.keywords = keywords
        self.json_ld: tuple[JsonLdProduct, ...] = tuple(extract_json_ld_products(self.soup))
        self.main_text = self._region_text()
        body = self.soup.body or self.soup
        self.body_text = clean_text(body.get_text(" ", strip=True))
        self.body_text_lower = self.body_text.lower()

    def _region_text(self) -> str:
        region: Tag | None = None
        for selector in MAIN_REGION_SELECTORS:
            region = self.soup.select_one(selector)
            if region is not None:
                break
        if region is None:
            return ""

        # Work on a detached copy so exclusions never mutate the shared soup.
        detached = BeautifulSoup(str(region), "html.parser")
        for selector in EXCLUDED_REGION_SELECTORS:
            for node in detached.select(selector):
                if node.name in {"body", "html", "main"}:
                    continue
                node.decompose()
        return clean_text(detached.get_text(" ", strip=True))

    def meta_content(self, *names: str) -> str | None:
        """
        First non-empty ``content`` of a meta tag matched by property or name.
        """

        for name in names:
            node = self.soup.find("meta", attrs={"property": name}) or self.soup.find(
                "meta",
                attrs={"name": name},
            )
            if node is None:
                continue
            content = node.get("content")
            if isinstance(content, str) and content.strip():
                return content.strip()
        return None
