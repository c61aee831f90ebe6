"""
Fact record data models produced by the facts extraction engine.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass(frozen=True)
class ProductFacts:
    """
    Purchase-block facts of a product detail page.
    """

    title: str | None = None
    price: str | None = None
    price_value: float | None = None
    currency: str | None = None
    sale_price: str | None = None
    regular_price: str | None = None
    has_atc_button: bool = False
    atc_text: str | None = None
    atc_button_count: int = 0
    has_variant_selector: bool = False
    variant_types: tuple[str, ...] = ()
    variant_complexity: int = 1
    in_stock: bool | None = None
    stock_text: str | None = None
    has_description: bool = False
    description_length: int = 0
    description_source: str | None = None
    has_sticky_atc_mobile: bool = False


@dataclass(frozen=True)
class StructuralFacts:
    """
    Heading, media and trust-signal facts from direct DOM counting.
    """

    h1_count: int = 0
    h2_count: int = 0
    h3_count: int = 0
    main_h1_text: str | None = None
    image_count: int = 0
    images_without_alt: int = 0
    lazy_loaded_images: int = 0
    has_reviews_section: bool = False
    has_shipping_info: bool = False
    has_return_policy: bool = False
    has_social_proof: bool = False
    form_count: int = 0
    has_newsletter_form: bool = False
    trust_badges_near_atc: bool = False


@dataclass(frozen=True)
class TechnicalFacts:
    """
    Platform, integration, analytics and accessibility facts.
    """

    is_shopify: bool = False
    shopify_version: str | None = None
    theme_name: str | None = None
    detected_apps: tuple[str, ...] = ()
    has_google_analytics: bool = False
    has_facebook_pixel: bool = False
    has_klaviyo: bool = False
    has_skip_link: bool = False
    has_aria_labels: bool = False
    has_lang_attribute: bool = False
    script_count: int = 0
    external_script_count: int = 0
    blocking_script_count: int = 0
    lcp_ms: int | None = None


@dataclass(frozen=True)
class FactRecord:
    """
    Complete fact record for one page.

    ``parse_duration_ms`` is informational and excluded from equality so two
    extractions of identical markup compare equal.
    """

    product: ProductFacts = field(default_factory=ProductFacts)
    structure: StructuralFacts = field(default_factory=StructuralFacts)
    technical: TechnicalFacts = field(default_factory=TechnicalFacts)
    registry_version: str = ""
    parse_duration_ms: float = field(default=0.0, compare=False)

    def to_dict(self, *, include_timing: bool = False) -> dict[str, Any]:
        payload = asdict(self)
        for section in ("product", "technical"):
            for key, value in payload[section].items():
                if isinstance(value, tuple):
                    payload[section][key] = list(value)
        if not include_timing:
            payload.pop("parse_duration_ms", None)
        return payload

    def is_minimal(self) -> bool:
        """
        True when at least one of title, price or purchase action was found.
        """

        return bool(self.product.title or self.product.price or self.product.has_atc_button)

    def summary(self) -> dict[str, Any]:
        return {
            "has_atc_button": self.product.has_atc_button,
            "has_price": self.product.price is not None,
            "has_title": self.product.title is not None,
            "has_variant_selector": self.product.has_variant_selector,
            "has_description": self.product.has_description,
            "has_reviews_section": self.structure.has_reviews_section,
            "is_shopify": self.technical.is_shopify,
        }
