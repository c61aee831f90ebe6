"""
rules/scoring.py

Deterministic strategist score computed from a fact record.

Seven pillars start at a neutral base, receive bonuses and penalties from a
fixed, ordered set of checks and are clamped to [0, 100]. The strategist
score is the weighted sum of the pillars. Deltas, reasons and weights come
from ``rules/data/scoring_rules.json``; the predicates live here.

No I/O beyond loading the data table, no logging, no side effects.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any

from app.facts.registry import SignatureRegistry, load_signature_registry
from app.facts.types import FactRecord

# ---------------------------------------------------------------------------
# Data table
# ---------------------------------------------------------------------------

_SCORING_RULES_PATH = Path(__file__).resolve().parent / "data" / "scoring_rules.json"


@lru_cache(maxsize=1)
def _load_scoring_rules() -> dict:
    raw = _SCORING_RULES_PATH.read_text(encoding="utf-8")
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError(f"{_SCORING_RULES_PATH} must contain a JSON object.")
    return data


def _as_dict(value: object) -> dict:
    return value if isinstance(value, dict) else {}


def _as_float(value: object, default: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ScoreItem:
    pillar: str
    delta: int
    reason: str
    rule_id: str | None = None
    criteria_ids: tuple[str, ...] = ()
    fact_ids: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"pillar": self.pillar, "delta": self.delta, "reason": self.reason}
        if self.rule_id:
            payload["rule_id"] = self.rule_id
        if self.criteria_ids:
            payload["criteria_ids"] = list(self.criteria_ids)
        if self.fact_ids:
            payload["fact_ids"] = list(self.fact_ids)
        return payload


@dataclass(frozen=True)
class ScoreResult:
    strategist_score: int
    pillar_scores: dict[str, int]
    breakdown: tuple[ScoreItem, ...] = field(default_factory=tuple)
    reasoning: str = ""
    version: str = ""

    def deductions(self, pillar: str) -> list[ScoreItem]:
        return [item for item in self.breakdown if item.pillar == pillar and item.delta < 0]

    def to_dict(self) -> dict[str, Any]:
        return {
            "strategist_score": self.strategist_score,
            "pillar_scores": dict(self.pillar_scores),
            "breakdown": [item.to_dict() for item in self.breakdown],
            "reasoning": self.reasoning,
            "version": self.version,
        }


# ---------------------------------------------------------------------------
# Scorer
# ---------------------------------------------------------------------------


class StrategistScorer:
    """
    Rule-based scorer over a :class:`FactRecord`.

    Checks are evaluated in a fixed order so the breakdown is reproducible.
    """

    def __init__(
        self,
        *,
        table: dict | None = None,
        registry: SignatureRegistry | None = None,
    ) -> None:
        self._table = table if table is not None else _load_scoring_rules()
        self._rules = _as_dict(self._table.get("rules"))
        self._thresholds = _as_dict(self._table.get("thresholds"))
        self._weights = {
            str(name): _as_float(weight, 0.0)
            for name, weight in _as_dict(self._table.get("pillar_weights")).items()
        }
        self._registry = registry or load_signature_registry()

    @property
    def version(self) -> str:
        return str(self._table.get("version", ""))

    def score(self, facts: FactRecord) -> ScoreResult:
        base = _as_float(self._table.get("pillar_base"), 50.0)
        maximum = _as_float(self._table.get("pillar_max"), 100.0)

        breakdown = tuple(self._evaluate(facts))
        sums = {pillar: base for pillar in self._weights}
        for item in breakdown:
            sums[item.pillar] = sums.get(item.pillar, base) + item.delta

        pillar_scores = {
            pillar: int(max(0.0, min(maximum, round(sums[pillar]))))
            for pillar in self._weights
        }
        total = sum(pillar_scores[pillar] * weight for pillar, weight in self._weights.items())

        reasoning = "; ".join(
            f"[{item.pillar}] {'+' if item.delta > 0 else ''}{item.delta}: {item.reason}"
            for item in breakdown
            if item.delta != 0
        )
        return ScoreResult(
            strategist_score=int(round(total)),
            pillar_scores=pillar_scores,
            breakdown=breakdown,
            reasoning=reasoning or "No deductions or bonuses applied.",
            version=self.version,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _item(self, key: str, *, delta: int | None = None, reason_key: str = "reason", **fmt: Any) -> ScoreItem:
        rule = _as_dict(self._rules.get(key))
        reason = str(rule.get(reason_key) or rule.get("reason") or key)
        if fmt:
            reason = reason.format(**fmt)
        return ScoreItem(
            pillar=str(rule.get("pillar", "clarte")),
            delta=int(delta if delta is not None else rule.get("delta", 0)),
            reason=reason,
            rule_id=rule.get("rule_id"),
            criteria_ids=tuple(rule.get("criteria_ids") or ()),
            fact_ids=tuple(rule.get("fact_ids") or ()),
        )

    def _evaluate(self, facts: FactRecord) -> Iterator[ScoreItem]:
        for check in self._checks():
            yield from check(facts)

    def _checks(self) -> tuple[Callable[[FactRecord], Iterator[ScoreItem]], ...]:
        return (
            self._clarity,
            self._friction,
            self._trust,
            self._social,
            self._mobile,
            self._performance,
            self._seo,
        )

    def _clarity(self, facts: FactRecord) -> Iterator[ScoreItem]:
        pdp = facts.product
        min_description = int(_as_float(self._thresholds.get("min_description_length"), 50))
        if not pdp.has_atc_button:
            yield self._item("atc_missing")
        if not (pdp.price or pdp.regular_price or pdp.sale_price):
            yield self._item("price_missing")
        if not pdp.has_description:
            yield self._item("description_missing")
        elif pdp.description_length < min_description:
            yield self._item("description_short")
        if pdp.has_atc_button and pdp.atc_button_count >= 1:
            yield self._item("atc_present")
        if pdp.has_variant_selector and pdp.variant_types:
            yield self._item("variant_selector_present")

    def _friction(self, facts: FactRecord) -> Iterator[ScoreItem]:
        pdp, structure = facts.product, facts.structure
        if structure.h1_count == 0:
            yield self._item("h1_missing")
        if structure.images_without_alt > 0 and structure.image_count > 0:
            rule = _as_dict(self._rules.get("image_alt_missing"))
            ratio = structure.images_without_alt / structure.image_count
            scaled = round(_as_float(rule.get("max_penalty"), -20.0) * ratio)
            penalty = min(int(_as_float(rule.get("delta"), -10.0)), int(scaled))
            yield self._item("image_alt_missing", delta=penalty, count=structure.images_without_alt)
        if not facts.technical.has_aria_labels:
            yield self._item("aria_labels_missing")
        if structure.h1_count >= 1 and structure.main_h1_text:
            yield self._item("h1_present")
        if pdp.has_atc_button and not pdp.has_sticky_atc_mobile:
            yield self._item("sticky_atc_missing")
        max_clicks = _as_float(self._thresholds.get("max_variant_clicks"), 3)
        if pdp.variant_types and pdp.variant_complexity > max_clicks:
            yield self._item("variant_complexity_high")

    def _trust(self, facts: FactRecord) -> Iterator[ScoreItem]:
        structure = facts.structure
        if not (structure.has_shipping_info or structure.has_return_policy):
            yield self._item("shipping_returns_missing")
        else:
            if structure.has_shipping_info:
                yield self._item("shipping_info_present")
            if structure.has_return_policy:
                yield self._item("return_policy_present")
        if facts.product.has_atc_button and not structure.trust_badges_near_atc:
            yield self._item("trust_badges_missing")

    def _social(self, facts: FactRecord) -> Iterator[ScoreItem]:
        structure = facts.structure
        if not (structure.has_reviews_section or structure.has_social_proof):
            yield self._item("social_proof_missing")

        premium = [str(name).lower() for name in self._table.get("premium_review_apps") or ()]
        for app in facts.technical.detected_apps:
            if self._registry.category_of(app) != "reviews":
                continue
            yield self._item("review_app_detected", app=app)
            if any(name in app.lower() for name in premium):
                yield self._item("premium_review_app_detected", app=app)

        if structure.has_reviews_section:
            yield self._item("reviews_section_present")
        if structure.has_social_proof:
            yield self._item("social_proof_present")

    def _mobile(self, facts: FactRecord) -> Iterator[ScoreItem]:
        if facts.technical.has_skip_link:
            yield self._item("skip_link_present")
        else:
            yield self._item("skip_link_missing")
        if facts.structure.form_count > 0:
            yield self._item("forms_present")

    def _performance(self, facts: FactRecord) -> Iterator[ScoreItem]:
        technical = facts.technical
        lcp_threshold = _as_float(self._thresholds.get("lcp_poor_ms"), 2500)
        if technical.lcp_ms is not None and technical.lcp_ms > lcp_threshold:
            yield self._item("lcp_poor", lcp_ms=technical.lcp_ms)

        max_blocking = _as_float(self._thresholds.get("max_blocking_scripts"), 3)
        if technical.blocking_script_count > max_blocking:
            yield self._item("blocking_scripts", count=technical.blocking_script_count)

        penalties = _as_dict(_as_dict(self._rules.get("tracking_scripts")).get("penalties"))
        tracking = 0
        if technical.has_google_analytics:
            tracking += int(_as_float(penalties.get("google_analytics"), -5))
        if technical.has_facebook_pixel:
            tracking += int(_as_float(penalties.get("facebook_pixel"), -5))
        if technical.has_klaviyo:
            tracking += int(_as_float(penalties.get("klaviyo"), -3))
        if technical.has_google_analytics or technical.has_facebook_pixel or technical.has_klaviyo:
            yield self._item("tracking_scripts", delta=tracking)

        if facts.structure.lazy_loaded_images > 0:
            yield self._item("lazy_load_present")

    def _seo(self, facts: FactRecord) -> Iterator[ScoreItem]:
        h1_count = facts.structure.h1_count
        if h1_count == 0:
            rule = _as_dict(self._rules.get("h1_not_unique"))
            yield self._item(
                "h1_not_unique",
                delta=int(_as_float(rule.get("missing_delta"), -15)),
                reason_key="missing_reason",
            )
        elif h1_count > 1:
            yield self._item("h1_not_unique")
        else:
            yield self._item("h1_unique")
        if facts.technical.has_lang_attribute:
            yield self._item("lang_attribute_present")


def compute_score(facts: FactRecord) -> ScoreResult:
    """Score a fact record with the bundled data table."""

    return StrategistScorer().score(facts)
