"""
Structural fact detectors: direct DOM counting and keyword matching.
"""

from __future__ import annotations

from bs4 import Tag

from app.facts.page import PageContext, class_string, clean_text
from app.facts.product import AtcHit
from app.facts.types import StructuralFacts

REVIEW_WIDGET_SELECTORS = (
    '[id*="yotpo"]',
    ".yotpo",
    '[id*="review"]',
    ".star-rating",
    ".product-reviews",
    '[data-testid*="review"]',
    "#judgeme_product_reviews",
    ".jdgm-widget",
    ".loox-rating",
    ".okeReviews",
    ".stamped-main-widget",
)
REVIEW_CLASS_SELECTOR = '[class*="review"]'
MIN_REVIEW_CLASS_MATCHES = 5

ATC_CONTAINER_TOKENS = ("product-form", "product__info", "product-info", "buy-box", "purchase")


def _main_h1_text(ctx: PageContext) -> str | None:
    node = ctx.soup.select_one("main h1") or ctx.soup.find("h1")
    if node is None:
        return None
    text = clean_text(node.get_text(" ", strip=True))
    return text or None


def _image_counts(ctx: PageContext) -> tuple[int, int, int]:
    images = ctx.soup.find_all("img")
    without_alt = 0
    lazy = 0
    for image in images:
        alt = image.get("alt")
        if not isinstance(alt, str) or not alt.strip():
            without_alt += 1
        if str(image.get("loading", "")).lower() == "lazy" or image.has_attr("data-src"):
            lazy += 1
    return len(images), without_alt, lazy


def _has_reviews_section(ctx: PageContext) -> bool:
    for product in ctx.json_ld:
        if product.rating_value is not None or (product.review_count or 0) > 0:
            return True
    for selector in REVIEW_WIDGET_SELECTORS:
        if ctx.soup.select_one(selector) is not None:
            return True
    return len(ctx.soup.select(REVIEW_CLASS_SELECTOR)) > MIN_REVIEW_CLASS_MATCHES


def _has_social_proof(ctx: PageContext) -> bool:
    if any((product.review_count or 0) > 0 for product in ctx.json_ld):
        return True
    return any(pattern.search(ctx.body_text) for pattern in ctx.keywords.social_proof)


def _has_newsletter_form(ctx: PageContext) -> bool:
    for form in ctx.soup.find_all("form"):
        if form.select_one('input[type="email"]') is None:
            continue
        haystack = " ".join(
            [
                str(form.get("action", "")),
                str(form.get("id", "")),
                class_string(form),
                form.get_text(" ", strip=True),
            ]
        )
        if ctx.keywords.newsletter.search(haystack):
            return True
    return False


def _atc_container(element: Tag) -> Tag | None:
    for parent in element.parents:
        if not isinstance(parent, Tag):
            continue
        if parent.name == "form":
            return parent
        classes = class_string(parent)
        if any(token in classes for token in ATC_CONTAINER_TOKENS):
            return parent
    return None


def _trust_badges_near_atc(ctx: PageContext, atc: AtcHit | None) -> bool:
    if atc is None or atc.element is None:
        return False
    container = _atc_container(atc.element)
    if container is None:
        return False
    parts = [container.get_text(" ", strip=True)]
    for image in container.find_all(["img", "svg"]):
        parts.append(str(image.get("alt", "")))
        parts.append(str(image.get("src", "")))
        parts.append(class_string(image))
    haystack = " ".join(parts)
    return any(pattern.search(haystack) for pattern in ctx.keywords.trust_near_atc)


def detect_structural_facts(ctx: PageContext, atc: AtcHit | None) -> StructuralFacts:
    image_count, images_without_alt, lazy_loaded = _image_counts(ctx)
    text = ctx.body_text_lower
    return StructuralFacts(
        h1_count=len(ctx.soup.find_all("h1")),
        h2_count=len(ctx.soup.find_all("h2")),
        h3_count=len(ctx.soup.find_all("h3")),
        main_h1_text=_main_h1_text(ctx),
        image_count=image_count,
        images_without_alt=images_without_alt,
        lazy_loaded_images=lazy_loaded,
        has_reviews_section=_has_reviews_section(ctx),
        has_shipping_info=any(keyword in text for keyword in ctx.keywords.shipping),
        has_return_policy=any(keyword in text for keyword in ctx.keywords.returns),
        has_social_proof=_has_social_proof(ctx),
        form_count=len(ctx.soup.find_all("form")),
        has_newsletter_form=_has_newsletter_form(ctx),
        trust_badges_near_atc=_trust_badges_near_atc(ctx, atc),
    )
