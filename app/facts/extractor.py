"""
Facts extraction engine.

Turns one page's markup into a :class:`FactRecord`. Extraction is pure: the
same markup, registry and keyword tables always produce the same record
(``parse_duration_ms`` aside). Malformed markup never raises; missing fields
fall back to their defaults.
"""

from __future__ import annotations

import time
from collections.abc import Mapping

from app.facts.cascade import FieldCascade
from app.facts.page import PageContext
from app.facts.product import (
    ATC_CASCADE,
    DESCRIPTION_CASCADE,
    PRICE_CASCADE,
    STOCK_CASCADE,
    TITLE_CASCADE,
    VARIANT_CONTROLS_CASCADE,
    AtcHit,
    detect_regular_price,
    detect_sale_price,
    detect_stock_text,
    detect_sticky_atc,
    variant_complexity,
    variant_types,
)
from app.facts.registry import (
    KeywordTables,
    SignatureRegistry,
    load_keyword_tables,
    load_signature_registry,
)
from app.facts.structural import detect_structural_facts
from app.facts.technical import detect_technical_facts
from app.facts.types import FactRecord, ProductFacts

DEFAULT_CASCADES: dict[str, FieldCascade] = {
    "title": TITLE_CASCADE,
    "price": PRICE_CASCADE,
    "atc": ATC_CASCADE,
    "variant_controls": VARIANT_CONTROLS_CASCADE,
    "stock": STOCK_CASCADE,
    "description": DESCRIPTION_CASCADE,
}


class FactsExtractor:
    """
    Parse page markup into a fact record.

    Parameters
    ----------
    registry:
        Third-party signature registry. Defaults to the bundled table.
    keywords:
        Keyword tables. Defaults to the bundled table.
    cascades:
        Per-field cascade overrides keyed by field name (``title``,
        ``price``, ``atc``, ``variant_controls``, ``stock``,
        ``description``).
    """

    def __init__(
        self,
        *,
        registry: SignatureRegistry | None = None,
        keywords: KeywordTables | None = None,
        cascades: Mapping[str, FieldCascade] | None = None,
    ) -> None:
        self.registry = registry or load_signature_registry()
        self.keywords = keywords or load_keyword_tables()
        unknown = set(cascades or {}) - set(DEFAULT_CASCADES)
        if unknown:
            raise ValueError(f"Unknown cascade field(s): {', '.join(sorted(unknown))}")
        self.cascades = {**DEFAULT_CASCADES, **dict(cascades or {})}

    def extract(self, markup: str | None, *, lcp_ms: int | None = None) -> FactRecord:
        started = time.perf_counter()
        ctx = PageContext(markup=markup or "", keywords=self.keywords)

        product, atc = self._product_facts(ctx)
        structure = detect_structural_facts(ctx, atc)
        technical = detect_technical_facts(ctx, self.registry, lcp_ms=lcp_ms)

        elapsed_ms = (time.perf_counter() - started) * 1000.0
        return FactRecord(
            product=product,
            structure=structure,
            technical=technical,
            registry_version=self.registry.version,
            parse_duration_ms=round(elapsed_ms, 3),
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _resolve(self, field_name: str, *args):
        hit = self.cascades[field_name].resolve(*args)
        return hit.value if hit is not None else None

    def _product_facts(self, ctx: PageContext) -> tuple[ProductFacts, AtcHit | None]:
        title = self._resolve("title", ctx)
        price = self._resolve("price", ctx)
        atc: AtcHit | None = self._resolve("atc", ctx)
        controls = self._resolve("variant_controls", ctx) or []
        types = variant_types(controls, ctx) if controls else ()
        stock = self._resolve("stock", ctx, atc)
        description = self._resolve("description", ctx)

        product = ProductFacts(
            title=title,
            price=price.display if price is not None else None,
            price_value=price.value if price is not None else None,
            currency=price.currency if price is not None else None,
            sale_price=detect_sale_price(ctx),
            regular_price=detect_regular_price(ctx),
            has_atc_button=atc is not None,
            atc_text=atc.text if atc is not None else None,
            atc_button_count=atc.count if atc is not None else 0,
            has_variant_selector=bool(controls),
            variant_types=types,
            variant_complexity=variant_complexity(types),
            in_stock=stock.in_stock if stock is not None else None,
            stock_text=detect_stock_text(ctx),
            has_description=description is not None,
            description_length=len(description.text) if description is not None else 0,
            description_source=description.source if description is not None else None,
            has_sticky_atc_mobile=detect_sticky_atc(ctx, atc),
        )
        return product, atc


def extract_facts(markup: str | None, *, lcp_ms: int | None = None) -> FactRecord:
    """Extract facts with the bundled registry and keyword tables."""

    return FactsExtractor().extract(markup, lcp_ms=lcp_ms)
