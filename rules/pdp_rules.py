"""
rules/pdp_rules.py

Deterministic, rule-based ticket strategy for product detail pages.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any

from app.schemas.evidence import Evidence
from app.schemas.ticket import Ticket, build_ticket_id
from app.services.ticket_service import apply_guardrails, sort_tickets_stable
from rules.base import BaseTicketStrategy, StrategyResult, SynthesisRequest

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_PDP_RULES_PATH = Path(__file__).resolve().parent / "data" / "pdp_rules.json"

SUPPORTED_LOCALES = ("fr", "en")
DEFAULT_LOCALE = "fr"

# Rule pass output limits; the table's "max_matches" overrides the match cap.
_DEFAULT_MAX_MATCHES = 5
_MAX_RULE_LARGE_EFFORT = 1

_LONG_DESCRIPTION = 800
_SHORT_DESCRIPTION = 100
_LCP_POOR_MS = 2500
_MAX_VARIANT_TYPES = 3


@lru_cache(maxsize=1)
def load_rule_table(path: str | None = None) -> dict:
    raw = Path(path or _PDP_RULES_PATH).read_text(encoding="utf-8")
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError("PDP rule table must contain a JSON object.")
    return data


def _as_dict(value: object) -> dict:
    return value if isinstance(value, dict) else {}


def max_rule_matches() -> int:
    """Match cap of one rule pass, read from the table."""

    value = load_rule_table().get("max_matches", _DEFAULT_MAX_MATCHES)
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValueError(f"PDP rule table 'max_matches' must be a positive integer, got {value!r}.")
    return value


def category_defaults() -> dict[str, dict]:
    """Per-category ``rule_id`` and ``affected_criteria_ids`` fallbacks."""

    return _as_dict(load_rule_table().get("category_defaults"))


def resolve_locale(locale: str | None) -> str:
    value = (locale or DEFAULT_LOCALE).strip().lower()[:2]
    return value if value in SUPPORTED_LOCALES else DEFAULT_LOCALE


def pick_evidence_id(evidences: tuple[Evidence, ...] | list[Evidence]) -> str | None:
    """Prefer the first screenshot, else the first evidence of any type."""

    for evidence in evidences:
        if evidence.type == "screenshot":
            return evidence.evidence_id
    return evidences[0].evidence_id if evidences else None


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------


def _cta_missing(request: SynthesisRequest) -> bool:
    return not request.facts.product.has_atc_button


def _images_alt(request: SynthesisRequest) -> bool:
    return request.facts.structure.images_without_alt > 0


def _above_fold(request: SynthesisRequest) -> bool:
    pdp = request.facts.product
    return pdp.has_atc_button and pdp.description_length > _LONG_DESCRIPTION


def _trust_badges(request: SynthesisRequest) -> bool:
    structure = request.facts.structure
    return not structure.has_shipping_info and not structure.has_return_policy


def _reviews(request: SynthesisRequest) -> bool:
    return not request.facts.structure.has_reviews_section


def _performance(request: SynthesisRequest) -> bool:
    lcp = request.facts.technical.lcp_ms
    perf_deductions = request.score.deductions("perf") if request.score is not None else []
    return (lcp is not None and lcp > _LCP_POOR_MS) or bool(perf_deductions)


def _description(request: SynthesisRequest) -> bool:
    pdp = request.facts.product
    return not pdp.has_description or pdp.description_length < _SHORT_DESCRIPTION


def _variants(request: SynthesisRequest) -> bool:
    pdp = request.facts.product
    return pdp.has_variant_selector and len(pdp.variant_types) > _MAX_VARIANT_TYPES


_MATCHERS: dict[str, Callable[[SynthesisRequest], bool]] = {
    "cta_missing": _cta_missing,
    "images_alt": _images_alt,
    "above_fold": _above_fold,
    "trust_badges": _trust_badges,
    "reviews": _reviews,
    "performance": _performance,
    "description": _description,
    "variants": _variants,
}


# ---------------------------------------------------------------------------
# Rule definitions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RuleDefinition:
    id: str
    category: str
    impact: str
    effort: str
    owner: str
    rule_id: str
    affected_criteria_ids: tuple[str, ...]
    content: dict[str, dict[str, Any]]
    matches: Callable[[SynthesisRequest], bool]

    @property
    def signal(self) -> str:
        return self.id.upper()


def _placeholders(request: SynthesisRequest) -> dict[str, Any]:
    pdp = request.facts.product
    return {
        "images_without_alt": request.facts.structure.images_without_alt,
        "description_length": pdp.description_length,
        "lcp_ms": request.facts.technical.lcp_ms,
        "variant_types": ", ".join(pdp.variant_types) or "multiple",
    }


def _render_content(content: dict[str, dict[str, Any]], request: SynthesisRequest) -> dict[str, Any]:
    block = _as_dict(content.get(resolve_locale(request.locale))) or _as_dict(content.get(DEFAULT_LOCALE))
    values = _placeholders(request)
    why = str(block.get("why", ""))
    if "{lcp_ms}" in why and values["lcp_ms"] is None:
        why = str(block.get("why_without_lcp", why))
    return {
        "title": str(block.get("title", "")).format(**values),
        "why": why.format(**values),
        "how_to": [str(step).format(**values) for step in block.get("how_to", [])],
        "validation": [str(step).format(**values) for step in block.get("validation", [])],
        "notes": block.get("notes"),
    }


@lru_cache(maxsize=1)
def load_rule_definitions() -> tuple[RuleDefinition, ...]:
    definitions = []
    for entry in load_rule_table().get("rules") or []:
        rule_key = str(entry["id"])
        matcher = _MATCHERS.get(rule_key)
        if matcher is None:
            raise ValueError(f"No predicate registered for rule '{rule_key}'.")
        definitions.append(
            RuleDefinition(
                id=rule_key,
                category=str(entry["category"]),
                impact=str(entry["impact"]),
                effort=str(entry["effort"]),
                owner=str(entry["owner"]),
                rule_id=str(entry["rule_id"]),
                affected_criteria_ids=tuple(entry.get("affected_criteria_ids") or ()),
                content=_as_dict(entry.get("content")),
                matches=matcher,
            )
        )
    return tuple(definitions)


# ---------------------------------------------------------------------------
# Ticket builders
# ---------------------------------------------------------------------------


def build_rule_ticket(rule: RuleDefinition, request: SynthesisRequest, evidence_id: str) -> Ticket:
    content = _render_content(rule.content, request)
    return Ticket(
        ticket_id=build_ticket_id(request.mode, rule.category, rule.signal),
        mode=request.mode,
        title=content["title"],
        impact=rule.impact,
        effort=rule.effort,
        risk="low",
        confidence="high",
        category=rule.category,
        why=content["why"],
        evidence_refs=[evidence_id],
        how_to=content["how_to"],
        validation=content["validation"],
        quick_win=rule.effort == "s" and rule.impact == "high",
        owner=rule.owner,
        notes=str(load_rule_table().get("notes", "")),
        rule_id=rule.rule_id,
        affected_criteria_ids=list(rule.affected_criteria_ids),
    )


def build_insufficient_data_ticket(request: SynthesisRequest) -> Ticket | None:
    """
    The single ticket emitted when title, price and purchase action are all
    missing. ``None`` when there is no evidence to cite.
    """

    if not request.evidences:
        return None
    entry = _as_dict(load_rule_table().get("insufficient_data"))
    content = _render_content(_as_dict(entry.get("content")), request)
    return Ticket(
        ticket_id=build_ticket_id(request.mode, entry["category"], entry["signal"]),
        mode=request.mode,
        title=content["title"],
        impact=entry["impact"],
        effort=entry["effort"],
        risk=entry["risk"],
        confidence=entry["confidence"],
        category=entry["category"],
        why=content["why"],
        evidence_refs=[request.evidences[0].evidence_id],
        how_to=content["how_to"],
        validation=content["validation"],
        quick_win=False,
        owner=entry["owner"],
        notes=str(content.get("notes") or ""),
        rule_id=entry.get("rule_id"),
        affected_criteria_ids=list(entry.get("affected_criteria_ids") or []) or None,
    )


# ---------------------------------------------------------------------------
# Strategy
# ---------------------------------------------------------------------------


class PdpRulesStrategy(BaseTicketStrategy):
    """
    Fixed, ordered rules evaluated against the fact record.

    Rules evaluated (in order)
    --------------------------
    cta_missing, images_alt, above_fold, trust_badges, reviews,
    performance, description, variants.

    Each match emits one ticket citing a single evidence id (a screenshot
    when available). The pass stops after ``max_matches`` matches (five in
    the bundled table). Without evidence no ticket is emitted.
    """

    name = "rules"

    def __init__(
        self,
        rules: tuple[RuleDefinition, ...] | None = None,
        max_matches: int | None = None,
    ) -> None:
        self._rules = rules if rules is not None else load_rule_definitions()
        self._max_matches = max_matches if max_matches is not None else max_rule_matches()

    def candidates(self, request: SynthesisRequest) -> list[Ticket]:
        evidence_id = pick_evidence_id(request.evidences)
        if evidence_id is None:
            return []

        tickets: list[Ticket] = []
        for rule in self._rules:
            if not rule.matches(request):
                continue
            tickets.append(build_rule_ticket(rule, request, evidence_id))
            if len(tickets) >= self._max_matches:
                break

        guarded = apply_guardrails(sort_tickets_stable(tickets), max_large_effort=_MAX_RULE_LARGE_EFFORT)
        return guarded[: self._max_matches]

    def generate(self, request: SynthesisRequest) -> StrategyResult:
        tickets = self.candidates(request)
        reasoning = request.score.reasoning if request.score is not None else ""
        return StrategyResult(
            tickets=tuple(tickets),
            strategy=self.name,
            reasoning=reasoning,
            ai_disabled=True,
        )
