"""
Structured product data (JSON-LD) scanning.
"""

from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass
from typing import Any

from bs4 import BeautifulSoup

from app.facts.price import normalize_price

_PRODUCT_TYPES = {
    "product",
    "http://schema.org/product",
    "https://schema.org/product",
}
_TAG_REGEX = re.compile(r"<[^>]+>")
_SPACE_REGEX = re.compile(r"\s+")


@dataclass(frozen=True)
class JsonLdProduct:
    """
    Fields read from one embedded Product block.
    """

    name: str | None = None
    price: float | None = None
    currency: str | None = None
    availability: str | None = None
    description: str | None = None
    rating_value: float | None = None
    review_count: int | None = None


def _as_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
        return number if math.isfinite(number) else None
    if isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            # Displayed forms such as "1.234,56" or "49,00 €".
            return normalize_price(value)
        return number if math.isfinite(number) else None
    return None


def _as_int(value: Any) -> int | None:
    number = _as_float(value)
    return int(number) if number is not None else None


def _as_text(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    text = _SPACE_REGEX.sub(" ", _TAG_REGEX.sub(" ", value)).strip()
    return text or None


def _is_product(node: dict[str, Any]) -> bool:
    raw_type = node.get("@type")
    types = raw_type if isinstance(raw_type, list) else [raw_type]
    return any(isinstance(item, str) and item.strip().lower() in _PRODUCT_TYPES for item in types)


def _iter_nodes(payload: Any):
    if isinstance(payload, list):
        for item in payload:
            yield from _iter_nodes(item)
        return
    if not isinstance(payload, dict):
        return
    yield payload
    graph = payload.get("@graph")
    if isinstance(graph, list):
        for item in graph:
            yield from _iter_nodes(item)


def _first_offer(offers: Any) -> dict[str, Any]:
    if isinstance(offers, list):
        for item in offers:
            if isinstance(item, dict):
                return item
        return {}
    return offers if isinstance(offers, dict) else {}


def _to_product(node: dict[str, Any]) -> JsonLdProduct:
    offer = _first_offer(node.get("offers"))
    price = _as_float(offer.get("price"))
    if price is None:
        price = _as_float(offer.get("lowPrice"))
    if price is None:
        price = _as_float(node.get("price"))

    currency = offer.get("priceCurrency") or node.get("priceCurrency")
    availability = offer.get("availability") or node.get("availability")
    rating = node.get("aggregateRating") if isinstance(node.get("aggregateRating"), dict) else {}

    return JsonLdProduct(
        name=_as_text(node.get("name")),
        price=price,
        currency=currency.strip().upper() if isinstance(currency, str) and currency.strip() else None,
        availability=availability if isinstance(availability, str) else None,
        description=_as_text(node.get("description")),
        rating_value=_as_float(rating.get("ratingValue")),
        review_count=_as_int(rating.get("reviewCount") or rating.get("ratingCount")),
    )


def extract_json_ld_products(soup: BeautifulSoup) -> list[JsonLdProduct]:
    """
    Scan every ``application/ld+json`` block and return Product entries in
    document order. Malformed blocks are skipped.
    """

    products: list[JsonLdProduct] = []
    for script in soup.select('script[type="application/ld+json"]'):
        raw = script.string if script.string is not None else script.get_text()
        if not raw or not raw.strip():
            continue
        try:
            payload = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            continue
        for node in _iter_nodes(payload):
            if _is_product(node):
                products.append(_to_product(node))
    return products
