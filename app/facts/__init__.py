"""
Facts extraction engine for product detail pages.
"""

from app.facts.cascade import CascadeHit, FieldCascade
from app.facts.extractor import DEFAULT_CASCADES, FactsExtractor, extract_facts
from app.facts.price import format_price, normalize_price
from app.facts.registry import (
    KeywordTables,
    RegistryLoadError,
    SignatureRegistry,
    load_keyword_tables,
    load_signature_registry,
)
from app.facts.types import FactRecord, ProductFacts, StructuralFacts, TechnicalFacts

__all__ = [
    "CascadeHit",
    "DEFAULT_CASCADES",
    "FactRecord",
    "FactsExtractor",
    "FieldCascade",
    "KeywordTables",
    "ProductFacts",
    "RegistryLoadError",
    "SignatureRegistry",
    "StructuralFacts",
    "TechnicalFacts",
    "extract_facts",
    "format_price",
    "load_keyword_tables",
    "load_signature_registry",
    "normalize_price",
]
