"""
Product (purchase block) fact detectors.

Every field is resolved through a :class:`FieldCascade` whose strategies are
ordered from the most to the least trustworthy source:

    1. embedded structured data (JSON-LD)
    2. field-specific CSS / attribute selectors
    3. page metadata tags
    4. regex over the main content region (navigation excluded)

Strategies are plain module-level functions so a cascade can be rebuilt
with a different order or a subset for tests and tuning.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from bs4 import NavigableString, Tag

from app.facts.cascade import FieldCascade
from app.facts.page import PageContext, clean_text, node_text
from app.facts.price import (
    currency_from_token,
    extract_price_token,
    format_price,
    normalize_price,
)

# ---------------------------------------------------------------------------
# Selector tables
# ---------------------------------------------------------------------------

TITLE_SELECTORS = (
    ".product__title",
    ".product-title",
    ".product-single__title",
    "main h1",
    "article h1",
    '[itemtype*="Product"] h1',
    '[data-testid*="product-title"]',
    "h1",
)

PRICE_SELECTORS = (
    "[data-price]",
    '[data-testid="product-price"]',
    ".price-item",
    ".product__price",
    ".product-price",
    ".price__current",
    "[data-product-price]",
    '[itemtype*="Product"] [itemprop="price"]',
)

SALE_PRICE_SELECTORS = (
    ".price--on-sale",
    ".price__sale",
    ".product__price--sale",
    ".price-item--sale",
)

REGULAR_PRICE_SELECTORS = (
    ".price--regular",
    ".price__regular",
    ".product__price--regular",
    ".price-item--regular",
    "s",
    "del",
)

ATC_SELECTORS = (
    '[data-testid*="add-to-cart"]',
    '[data-testid*="addToCart"]',
    'button[aria-label*="Ajouter"]',
    'button[aria-label*="Add"]',
    'button[aria-label*="add"]',
    '[data-action="add-to-cart"]',
    'button[name="add"]',
    'button[type="submit"][name="add"]',
    ".shopify-payment-button button",
    'form[action*="/cart/add"] button[type="submit"]',
    "[data-add-to-cart]",
    ".product-form__submit",
    ".btn--add-to-cart",
    'button[class*="add-to-cart"]',
    'button[class*="sticky"]',
)

ATC_FALLBACK_ELEMENTS = ("button", "a", '[role="button"]', 'input[type="submit"]')

STICKY_CONTAINER_SELECTORS = (
    '[class*="sticky"]',
    '[class*="fixed"]',
    '[style*="position: fixed"]',
    '[style*="position:fixed"]',
    '[style*="position: sticky"]',
    '[style*="position:sticky"]',
)

VARIANT_SELECTOR_FAMILIES = (
    ('[data-testid*="size"]', '[data-testid*="Size"]'),
    ('button[aria-label*="Size"]', 'button[aria-label*="size"]'),
    ('[data-testid*="variant"]',),
    ('[data-testid*="option"]',),
    (".product-form__input",),
    ('select[name*="option"]',),
    (".variant-input",),
    ("[data-variant-input]",),
)

VARIANT_SIBLING_LABEL_SELECTORS = (".variant-label", ".product-form__label", "legend")

DESCRIPTION_SELECTORS = (
    "#details-section",
    ".product-details__description",
    '[data-testid="product-description"]',
    '[data-testid*="description"]',
    '.accordion__content[id*="description"]',
    '[id*="description"] .accordion__content',
    ".product__description",
    ".product-description",
    ".product-single__description",
    '[class*="product"][class*="description"]',
    '[itemprop="description"]',
)

STOCK_SELECTORS = ('[class*="stock"]', '[class*="inventory"]', "[data-stock]")

MIN_DESCRIPTION_LENGTH = 50
MAX_ADJACENT_LABEL_LENGTH = 50
MAX_STOCK_TEXT_LENGTH = 300


# ---------------------------------------------------------------------------
# Cascade results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PriceHit:
    display: str
    value: float | None
    currency: str | None


@dataclass(frozen=True)
class AtcHit:
    text: str
    count: int
    element: Tag | None = None


@dataclass(frozen=True)
class StockHit:
    in_stock: bool
    source: str


@dataclass(frozen=True)
class DescriptionHit:
    text: str
    source: str


# ---------------------------------------------------------------------------
# Title
# ---------------------------------------------------------------------------


def title_from_json_ld(ctx: PageContext) -> str | None:
    for product in ctx.json_ld:
        if product.name:
            return product.name
    return None


def title_from_selectors(ctx: PageContext) -> str | None:
    for selector in TITLE_SELECTORS:
        node = ctx.soup.select_one(selector)
        if node is None:
            continue
        text = clean_text(node.get_text(" ", strip=True))
        if text:
            return text
    return None


def title_from_meta(ctx: PageContext) -> str | None:
    return ctx.meta_content("og:title", "twitter:title")


TITLE_CASCADE: FieldCascade[str] = FieldCascade(
    name="title",
    strategies=(title_from_json_ld, title_from_selectors, title_from_meta),
)


# ---------------------------------------------------------------------------
# Price
# ---------------------------------------------------------------------------


def _price_hit_from_token(token: str | None, currency: str | None = None) -> PriceHit | None:
    if not token:
        return None
    return PriceHit(
        display=token,
        value=normalize_price(token),
        currency=currency or currency_from_token(token),
    )


def price_from_json_ld(ctx: PageContext) -> PriceHit | None:
    for product in ctx.json_ld:
        if product.price is not None and math.isfinite(product.price) and product.price > 0:
            return PriceHit(
                display=format_price(product.price, product.currency),
                value=product.price,
                currency=product.currency,
            )
    return None


def price_from_selectors(ctx: PageContext) -> PriceHit | None:
    for selector in PRICE_SELECTORS:
        for node in ctx.soup.select(selector):
            hit = _price_hit_from_token(extract_price_token(node.get_text(" ", strip=True)))
            if hit is not None:
                return hit
    return None


def price_from_meta(ctx: PageContext) -> PriceHit | None:
    currency = ctx.meta_content("product:price:currency", "og:price:currency")
    currency = currency.upper() if currency else None

    amount = ctx.meta_content("product:price:amount", "og:price:amount")
    if amount:
        value = normalize_price(amount)
        if value is not None:
            return PriceHit(display=format_price(value, currency), value=value, currency=currency)

    twitter = ctx.meta_content("twitter:data1")
    return _price_hit_from_token(extract_price_token(twitter), currency)


def price_from_main_text(ctx: PageContext) -> PriceHit | None:
    return _price_hit_from_token(extract_price_token(ctx.main_text))


def _valid_price(hit: PriceHit) -> bool:
    return hit.value is not None and math.isfinite(hit.value) and hit.value > 0


PRICE_CASCADE: FieldCascade[PriceHit] = FieldCascade(
    name="price",
    strategies=(price_from_json_ld, price_from_selectors, price_from_meta, price_from_main_text),
    validator=_valid_price,
)


def _first_price_token(ctx: PageContext, selectors: tuple[str, ...]) -> str | None:
    for selector in selectors:
        for node in ctx.soup.select(selector):
            token = extract_price_token(node.get_text(" ", strip=True))
            if token:
                return token
    return None


def detect_sale_price(ctx: PageContext) -> str | None:
    return _first_price_token(ctx, SALE_PRICE_SELECTORS)


def detect_regular_price(ctx: PageContext) -> str | None:
    return _first_price_token(ctx, REGULAR_PRICE_SELECTORS)


# ---------------------------------------------------------------------------
# Purchase action (add to cart)
# ---------------------------------------------------------------------------


def atc_from_selectors(ctx: PageContext) -> AtcHit | None:
    seen: set[int] = set()
    matches: list[tuple[Tag, str]] = []
    for selector in ATC_SELECTORS:
        for node in ctx.soup.select(selector):
            if id(node) in seen:
                continue
            seen.add(id(node))
            text = node_text(node)
            if text and ctx.keywords.atc_text.search(text):
                matches.append((node, text))
    if not matches:
        return None
    first_node, first_text = matches[0]
    return AtcHit(text=first_text, count=len(matches), element=first_node)


def atc_from_text_scan(ctx: PageContext) -> AtcHit | None:
    seen: set[int] = set()
    matches: list[tuple[Tag, str]] = []
    for selector in ATC_FALLBACK_ELEMENTS:
        for node in ctx.soup.select(selector):
            if id(node) in seen:
                continue
            seen.add(id(node))
            text = node_text(node)
            lowered = text.lower()
            if any(phrase in lowered for phrase in ctx.keywords.atc_fallback_phrases):
                matches.append((node, text))
    if not matches:
        return None
    first_node, first_text = matches[0]
    return AtcHit(text=first_text, count=len(matches), element=first_node)


ATC_CASCADE: FieldCascade[AtcHit] = FieldCascade(
    name="atc",
    strategies=(atc_from_selectors, atc_from_text_scan),
)


def detect_sticky_atc(ctx: PageContext, atc: AtcHit | None) -> bool:
    """
    A sticky or fixed-position container holding purchase-action text.

    Always False when no purchase action exists on the page.
    """

    if atc is None:
        return False
    for selector in STICKY_CONTAINER_SELECTORS:
        for node in ctx.soup.select(selector):
            if node.name in {"html", "body"}:
                continue
            text = node_text(node)
            if text and ctx.keywords.atc_text.search(text) and len(text) < 500:
                return True
    return False


# ---------------------------------------------------------------------------
# Variants
# ---------------------------------------------------------------------------


def _first_string(node: Tag) -> str:
    for child in node.descendants:
        if isinstance(child, NavigableString):
            text = clean_text(str(child))
            if text:
                return text
    return ""


def label_from_preceding_label(control: Tag, ctx: PageContext) -> str:
    previous = control.find_previous_sibling("label")
    return clean_text(previous.get_text(" ", strip=True)) if previous is not None else ""


def label_from_wrapping_label(control: Tag, ctx: PageContext) -> str:
    wrapper = control.find_parent("label")
    return _first_string(wrapper) if wrapper is not None else ""


def label_from_sibling_label(control: Tag, ctx: PageContext) -> str:
    for scope in (control, control.parent):
        if not isinstance(scope, Tag):
            continue
        for selector in VARIANT_SIBLING_LABEL_SELECTORS:
            node = scope.select_one(selector)
            if node is not None:
                text = clean_text(node.get_text(" ", strip=True))
                if text:
                    return text
    return ""


def label_from_aria(control: Tag, ctx: PageContext) -> str:
    value = control.get("aria-label")
    return clean_text(value) if isinstance(value, str) else ""


def label_from_for_attribute(control: Tag, ctx: PageContext) -> str:
    for attribute in ("id", "name"):
        value = control.get(attribute)
        if not isinstance(value, str) or not value:
            continue
        for label in ctx.soup.find_all("label"):
            if label.get("for") == value:
                text = clean_text(label.get_text(" ", strip=True))
                if text:
                    return text
    return ""


def label_from_adjacent_text(control: Tag, ctx: PageContext) -> str:
    parent = control.parent
    if not isinstance(parent, Tag):
        return ""
    text = clean_text(
        " ".join(str(child) for child in parent.children if isinstance(child, NavigableString))
    )
    return text if 0 < len(text) < MAX_ADJACENT_LABEL_LENGTH else ""


VARIANT_LABEL_STRATEGIES = (
    label_from_preceding_label,
    label_from_wrapping_label,
    label_from_sibling_label,
    label_from_aria,
    label_from_for_attribute,
    label_from_adjacent_text,
)


def _variant_label(control: Tag, ctx: PageContext) -> str:
    for strategy in VARIANT_LABEL_STRATEGIES:
        label = strategy(control, ctx).rstrip(":").strip()
        if label:
            return label
    return ""


def _unique(labels: list[str]) -> tuple[str, ...]:
    ordered: list[str] = []
    for label in labels:
        if label and label not in ordered:
            ordered.append(label)
    return tuple(ordered)


def variant_controls_from_families(ctx: PageContext) -> list[Tag] | None:
    for family in VARIANT_SELECTOR_FAMILIES:
        controls: list[Tag] = []
        for selector in family:
            controls.extend(ctx.soup.select(selector))
        if controls:
            return controls
    return None


def variant_controls_from_option_selects(ctx: PageContext) -> list[Tag] | None:
    controls = [
        node
        for node in ctx.soup.find_all("select")
        if str(node.get("name", "")).startswith("options[") or "variant" in str(node.get("id", "")).lower()
    ]
    return controls or None


VARIANT_CONTROLS_CASCADE: FieldCascade[list[Tag]] = FieldCascade(
    name="variant_controls",
    strategies=(variant_controls_from_families, variant_controls_from_option_selects),
)


def variant_types(controls: list[Tag], ctx: PageContext) -> tuple[str, ...]:
    labels: list[str] = []
    for control in controls:
        label = _variant_label(control, ctx)
        if not label:
            name = str(control.get("name", ""))
            if name.startswith("options[") and name.endswith("]"):
                label = name[len("options[") : -1]
        labels.append(label)
    return _unique(labels)


def variant_complexity(types: tuple[str, ...]) -> int:
    return min(10, 1 + len(types) * 2)


# ---------------------------------------------------------------------------
# Stock
# ---------------------------------------------------------------------------


def stock_from_json_ld(ctx: PageContext, atc: AtcHit | None) -> StockHit | None:
    for product in ctx.json_ld:
        if not product.availability:
            continue
        availability = product.availability.lower().rsplit("/", 1)[-1]
        if availability in {"instock", "limitedavailability", "preorder", "instoreonly", "onlineonly"}:
            return StockHit(in_stock=True, source="json_ld")
        if availability in {"outofstock", "soldout", "discontinued"}:
            return StockHit(in_stock=False, source="json_ld")
    return None


def stock_from_atc_text(ctx: PageContext, atc: AtcHit | None) -> StockHit | None:
    if atc is not None and ctx.keywords.out_of_stock.search(atc.text):
        return StockHit(in_stock=False, source="atc_text")
    return None


def stock_from_main_text(ctx: PageContext, atc: AtcHit | None) -> StockHit | None:
    if ctx.keywords.out_of_stock.search(ctx.main_text):
        return StockHit(in_stock=False, source="main_text")
    return None


def stock_from_atc_presence(ctx: PageContext, atc: AtcHit | None) -> StockHit | None:
    if atc is not None:
        return StockHit(in_stock=True, source="atc_presence")
    return None


STOCK_CASCADE: FieldCascade[StockHit] = FieldCascade(
    name="stock",
    strategies=(stock_from_json_ld, stock_from_atc_text, stock_from_main_text, stock_from_atc_presence),
)


def detect_stock_text(ctx: PageContext) -> str | None:
    pattern = ctx.keywords.stock_text
    for selector in STOCK_SELECTORS:
        for node in ctx.soup.select(selector):
            text = clean_text(node.get_text(" ", strip=True))
            if text and pattern.search(text):
                return text[:MAX_STOCK_TEXT_LENGTH]
    match = pattern.search(ctx.main_text)
    return match.group(0) if match else None


# ---------------------------------------------------------------------------
# Description
# ---------------------------------------------------------------------------


def description_from_json_ld(ctx: PageContext) -> DescriptionHit | None:
    for product in ctx.json_ld:
        if product.description and len(product.description) > MIN_DESCRIPTION_LENGTH:
            return DescriptionHit(text=product.description, source="json_ld")
    return None


def _description_nodes(ctx: PageContext):
    for selector in DESCRIPTION_SELECTORS:
        for node in ctx.soup.select(selector):
            text = clean_text(node.get_text(" ", strip=True))
            if text:
                yield text


def description_from_selectors(ctx: PageContext) -> DescriptionHit | None:
    for text in _description_nodes(ctx):
        if len(text) > MIN_DESCRIPTION_LENGTH:
            return DescriptionHit(text=text, source="selector")
    return None


def description_from_meta(ctx: PageContext) -> DescriptionHit | None:
    content = ctx.meta_content("description", "og:description")
    if content and len(content) > MIN_DESCRIPTION_LENGTH:
        return DescriptionHit(text=clean_text(content), source="meta")
    return None


def description_from_short_block(ctx: PageContext) -> DescriptionHit | None:
    for text in _description_nodes(ctx):
        return DescriptionHit(text=text, source="selector_short")
    return None


DESCRIPTION_CASCADE: FieldCascade[DescriptionHit] = FieldCascade(
    name="description",
    strategies=(
        description_from_json_ld,
        description_from_selectors,
        description_from_meta,
        description_from_short_block,
    ),
)

