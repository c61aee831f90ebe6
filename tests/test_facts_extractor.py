"""
tests/test_facts_extractor.py

Pytest unit tests for the facts extraction engine.

All tests parse in-memory markup; no browser, no network.

Coverage
--------
- Structured data wins over selectors and metadata
- Structured-data prices: comma decimals, non-finite values
- Selector and main-content fallbacks when structured data is absent
- Navigation text never feeds the price fallback
- Variant labels and complexity
- Stock resolution order
- Cascade overrides and unknown cascade names
- Malformed and empty markup
- Determinism and serialization
"""

from __future__ import annotations

import json

import pytest

from app.facts.cascade import FieldCascade
from app.facts.extractor import DEFAULT_CASCADES, FactsExtractor, extract_facts
from app.facts.product import (
    TITLE_CASCADE,
    title_from_meta,
    title_from_selectors,
    variant_complexity,
)
from app.facts.types import FactRecord


# ---------------------------------------------------------------------------
# Structured data first
# ---------------------------------------------------------------------------


class TestStructuredPage:
    def test_title_from_json_ld(self, shopify_facts: FactRecord) -> None:
        assert shopify_facts.product.title == "Chemise en lin"

    def test_price_from_json_ld(self, shopify_facts: FactRecord) -> None:
        product = shopify_facts.product
        assert product.price == "49,00 €"
        assert product.price_value == pytest.approx(49.0)
        assert product.currency == "EUR"

    def test_purchase_action(self, shopify_facts: FactRecord) -> None:
        product = shopify_facts.product
        assert product.has_atc_button is True
        assert product.atc_text == "Ajouter au panier"
        assert product.atc_button_count == 1
        assert product.has_sticky_atc_mobile is False

    def test_variant_selector_label(self, shopify_facts: FactRecord) -> None:
        product = shopify_facts.product
        assert product.has_variant_selector is True
        assert product.variant_types == ("Taille",)
        assert product.variant_complexity == 3

    def test_stock_and_description(self, shopify_facts: FactRecord) -> None:
        product = shopify_facts.product
        assert product.in_stock is True
        assert product.has_description is True
        assert product.description_source == "json_ld"
        assert product.description_length > 50

    def test_technical_facts(self, shopify_facts: FactRecord) -> None:
        technical = shopify_facts.technical
        assert technical.is_shopify is True
        assert technical.has_lang_attribute is True
        assert technical.lcp_ms == 1800

    def test_is_minimal(self, shopify_facts: FactRecord) -> None:
        assert shopify_facts.is_minimal() is True


def _json_ld_page(price, *, body: str = "") -> str:
    payload = json.dumps(
        {
            "@context": "https://schema.org",
            "@type": "Product",
            "name": "Lampe de bureau",
            "offers": {"@type": "Offer", "price": price, "priceCurrency": "EUR"},
        }
    )
    return (
        "<html><head>"
        f'<script type="application/ld+json">{payload}</script>'
        f"</head><body><main><h1>Lampe de bureau</h1>{body}</main></body></html>"
    )


class TestStructuredPrices:
    @pytest.mark.parametrize("raw", ["Infinity", "-Infinity", "NaN", "1e999"])
    def test_non_finite_price_is_null(self, raw: str) -> None:
        facts = extract_facts(_json_ld_page(raw))
        assert facts.product.price is None
        assert facts.product.price_value is None
        json.dumps(facts.to_dict(), allow_nan=False)

    def test_non_finite_price_falls_through_cascade(self) -> None:
        facts = extract_facts(_json_ld_page("Infinity", body="<p>Prix : 35,00 €</p>"))
        assert facts.product.price_value == pytest.approx(35.0)

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("1.234,56", 1234.56), ("49,00", 49.0), ("1,234.56", 1234.56), ("19.90", 19.9), (24, 24.0)],
    )
    def test_displayed_price_forms(self, raw, expected: float) -> None:
        facts = extract_facts(_json_ld_page(raw))
        assert facts.product.price_value == pytest.approx(expected)
        assert facts.product.currency == "EUR"


# ---------------------------------------------------------------------------
# Fallback strategies
# ---------------------------------------------------------------------------


class TestFallbackPage:
    def test_title_from_main_heading(self, plain_facts: FactRecord) -> None:
        assert plain_facts.product.title == "Canvas Tote"

    def test_price_from_main_text_skips_navigation(self, plain_facts: FactRecord) -> None:
        assert plain_facts.product.price == "24,90 €"
        assert plain_facts.product.price_value == pytest.approx(24.9)

    def test_variant_types_from_legends(self, plain_facts: FactRecord) -> None:
        assert plain_facts.product.variant_types == ("Size", "Color")
        assert plain_facts.product.variant_complexity == 5

    def test_out_of_stock_from_main_text(self, plain_facts: FactRecord) -> None:
        assert plain_facts.product.has_atc_button is True
        assert plain_facts.product.in_stock is False

    def test_missing_description(self, plain_facts: FactRecord) -> None:
        assert plain_facts.product.has_description is False
        assert plain_facts.product.description_length == 0

    def test_not_shopify(self, plain_facts: FactRecord) -> None:
        assert plain_facts.technical.is_shopify is False


class TestVariantComplexity:
    def test_no_variants(self) -> None:
        assert variant_complexity(()) == 1

    def test_capped_at_ten(self) -> None:
        assert variant_complexity(tuple(str(i) for i in range(8))) == 10


# ---------------------------------------------------------------------------
# Cascades
# ---------------------------------------------------------------------------


class TestCascades:
    def test_first_valid_strategy_wins(self) -> None:
        cascade = FieldCascade(
            name="demo",
            strategies=(lambda: None, lambda: "  ", lambda: "second", lambda: "third"),
        )
        hit = cascade.resolve()
        assert hit is not None
        assert hit.value == "second"

    def test_validator_rejects_candidate(self) -> None:
        def small() -> int:
            return 0

        def large() -> int:
            return 7

        cascade = FieldCascade(name="demo", strategies=(small, large), validator=lambda v: v > 0)
        hit = cascade.resolve()
        assert hit is not None
        assert hit.value == 7
        assert hit.strategy == "large"

    def test_no_hit(self) -> None:
        assert FieldCascade(name="demo", strategies=(lambda: None,)).resolve() is None

    def test_override_changes_resolution_order(self, shopify_markup: str) -> None:
        meta_first = TITLE_CASCADE.with_strategies([title_from_meta, title_from_selectors])
        facts = FactsExtractor(cascades={"title": meta_first}).extract(shopify_markup)
        assert facts.product.title == "Chemise en lin | Maison Exemple"

    def test_override_does_not_touch_default(self, shopify_markup: str) -> None:
        TITLE_CASCADE.with_strategies([title_from_meta])
        assert DEFAULT_CASCADES["title"] is TITLE_CASCADE
        assert extract_facts(shopify_markup).product.title == "Chemise en lin"

    def test_unknown_cascade_name_raises(self) -> None:
        with pytest.raises(ValueError, match="subtitle"):
            FactsExtractor(cascades={"subtitle": TITLE_CASCADE})


# ---------------------------------------------------------------------------
# Robustness
# ---------------------------------------------------------------------------


class TestRobustness:
    @pytest.mark.parametrize("markup", ["", None, "<div><p>unclosed <b>tags", "<<<>>>"])
    def test_malformed_markup_never_raises(self, markup) -> None:
        facts = extract_facts(markup)
        assert isinstance(facts, FactRecord)

    def test_empty_page_is_not_minimal(self, empty_markup: str) -> None:
        facts = extract_facts(empty_markup)
        assert facts.product.title is None
        assert facts.product.price is None
        assert facts.product.has_atc_button is False
        assert facts.is_minimal() is False

    def test_extraction_is_deterministic(self, extractor: FactsExtractor, plain_markup: str) -> None:
        first = extractor.extract(plain_markup)
        second = extractor.extract(plain_markup)
        assert first == second
        assert first.to_dict() == second.to_dict()

    def test_to_dict_excludes_timing_by_default(self, shopify_facts: FactRecord) -> None:
        payload = shopify_facts.to_dict()
        assert "parse_duration_ms" not in payload
        assert payload["product"]["variant_types"] == ["Taille"]
        assert "parse_duration_ms" in shopify_facts.to_dict(include_timing=True)

    def test_summary_keys(self, shopify_facts: FactRecord) -> None:
        summary = shopify_facts.summary()
        assert summary["has_atc_button"] is True
        assert summary["has_price"] is True
        assert summary["is_shopify"] is True
