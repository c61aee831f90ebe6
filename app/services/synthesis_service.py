"""
app/services/synthesis_service.py

Ticket synthesis for one audited page: degraded-input short-circuit,
strategy selection, post-processing and narrative assembly.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from app.config import SynthesisSettings, get_synthesis_settings
from app.facts.types import FactRecord
from app.logging_utils import log_event
from app.schemas.evidence import Evidence
from app.schemas.ticket import Ticket
from app.services.ticket_service import extract_quick_wins, promote_tickets
from llm_synthesis.adapter import get_llm_adapter
from llm_synthesis.fallback import fallback_narrative
from llm_synthesis.schema import SynthesisBrief
from llm_synthesis.synthesizer import ModelBackedTicketStrategy
from rules.base import BaseTicketStrategy, StrategyResult, SynthesisRequest
from rules.pdp_rules import (
    PdpRulesStrategy,
    build_insufficient_data_ticket,
    category_defaults,
    resolve_locale,
)
from rules.scoring import ScoreResult

logger = logging.getLogger(__name__)

# Narrative for paths that never reach a language model.
_NARRATIVE: dict[str, dict[str, Any]] = {
    "fr": {
        "rules_summary": "Audit déterministe : {count} action(s) prioritaire(s) identifiée(s).",
        "rules_summary_empty": "Audit déterministe : aucune action prioritaire détectée.",
        "insufficient_summary": (
            "Données produit insuffisantes : ni prix, ni bouton d'achat, ni titre détectés."
        ),
        "insufficient_reasoning": "Analyse interrompue : données produit minimales absentes",
        "plan_quick_wins": "Quick wins : {titles}",
        "plan_core": "Chantiers principaux : {titles}",
        "plan_large": "Chantiers structurants : {titles}",
        "plan_none": "Aucune action planifiée",
        "plan_retry": "Relancer l'audit une fois la page accessible",
    },
    "en": {
        "rules_summary": "Deterministic audit: {count} priority action(s) identified.",
        "rules_summary_empty": "Deterministic audit: no priority action detected.",
        "insufficient_summary": "Insufficient product data: no price, purchase button or title detected.",
        "insufficient_reasoning": "Analysis stopped: minimal product data missing",
        "plan_quick_wins": "Quick wins: {titles}",
        "plan_core": "Core work: {titles}",
        "plan_large": "Structural work: {titles}",
        "plan_none": "No action planned",
        "plan_retry": "Re-run the audit once the page is reachable",
    },
}


@dataclass(frozen=True)
class SynthesisResult:
    tickets: list[Ticket]
    evidences: list[Evidence]
    reasoning: str = ""
    executive_summary: str = ""
    plan_30_60_90: dict[str, str] = field(default_factory=dict)
    ai_disabled: bool = False
    strategy: str = "rules"
    quick_wins: list[Ticket] = field(default_factory=list)
    skipped_reason: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


def build_ticket_strategy(settings: SynthesisSettings | None = None) -> BaseTicketStrategy:
    """
    ``rules`` runs the deterministic rule set alone; ``model`` rewrites the
    rule candidates through the configured language model behind the gate.
    """

    resolved = settings or get_synthesis_settings()
    if resolved.strategy == "rules":
        return PdpRulesStrategy()
    return ModelBackedTicketStrategy(get_llm_adapter(resolved), max_retries=resolved.max_retries)


def _titles(tickets: Sequence[Ticket]) -> str:
    return ", ".join(ticket.title for ticket in tickets)


def deterministic_plan(tickets: Sequence[Ticket], locale: str) -> dict[str, str]:
    """
    0-30 days: quick wins; 30-60: remaining s/m work; 60-90: effort=l work.
    """

    texts = _NARRATIVE[resolve_locale(locale)]
    quick = extract_quick_wins(tickets)
    quick_ids = {ticket.ticket_id for ticket in quick}
    core = [t for t in tickets if t.ticket_id not in quick_ids and t.effort != "l"]
    large = [t for t in tickets if t.effort == "l"]
    return {
        "j0_30": texts["plan_quick_wins"].format(titles=_titles(quick)) if quick else texts["plan_none"],
        "j30_60": texts["plan_core"].format(titles=_titles(core)) if core else texts["plan_none"],
        "j60_90": texts["plan_large"].format(titles=_titles(large)) if large else texts["plan_none"],
    }


class SynthesisService:
    """
    Produces the promoted ticket set for one page.

    Parameters
    ----------
    strategy:
        Ticket strategy; built from settings when omitted.
    settings:
        Synthesis settings (caps, guardrails, insufficient-evidence policy).
    """

    def __init__(
        self,
        *,
        strategy: BaseTicketStrategy | None = None,
        settings: SynthesisSettings | None = None,
    ) -> None:
        self._settings = settings or get_synthesis_settings()
        self._strategy = strategy or build_ticket_strategy(self._settings)

    @property
    def strategy_name(self) -> str:
        return self._strategy.name

    def synthesize(
        self,
        facts: FactRecord,
        evidences: Sequence[Evidence],
        locale: str,
        *,
        mode: str = "solo",
        score: ScoreResult | None = None,
        evidence_completeness: str | None = None,
    ) -> SynthesisResult:
        locale = resolve_locale(locale)
        request = SynthesisRequest(
            facts=facts,
            evidences=tuple(evidences),
            locale=locale,
            mode=mode,
            score=score,
        )

        if not facts.is_minimal():
            return self._insufficient_data(request)

        if evidence_completeness == "insufficient" and not self._settings.synthesize_on_insufficient_evidence:
            log_event(logger, logging.WARNING, "synthesis_skipped", reason="insufficient_evidence", mode=mode)
            return SynthesisResult(
                tickets=[],
                evidences=list(evidences),
                reasoning=score.reasoning if score is not None else "",
                ai_disabled=True,
                strategy=self._strategy.name,
                skipped_reason="insufficient_evidence",
            )

        outcome = self._strategy.generate(request)
        return self._finalize(outcome, request)

    def degraded(
        self,
        facts: FactRecord | None,
        evidences: Sequence[Evidence],
        locale: str,
        *,
        mode: str = "solo",
    ) -> SynthesisResult:
        """
        Deterministic fallback narrative for when synthesis itself failed.
        """

        brief = SynthesisBrief(
            facts=facts.to_dict() if facts is not None else {},
            tickets=(),
            evidences=tuple(evidences),
            locale=resolve_locale(locale),
            mode=mode,
            score={},
        )
        output = fallback_narrative(brief)
        tickets = list(output.tickets)
        return SynthesisResult(
            tickets=tickets,
            evidences=list(evidences),
            reasoning=output.reasoning,
            executive_summary=output.executive_summary,
            plan_30_60_90=output.plan_30_60_90.model_dump(),
            ai_disabled=True,
            strategy=self._strategy.name,
            quick_wins=extract_quick_wins(tickets),
        )

    # ------------------------------------------------------------------

    def _insufficient_data(self, request: SynthesisRequest) -> SynthesisResult:
        texts = _NARRATIVE[request.locale]
        ticket = build_insufficient_data_ticket(request)
        tickets = [ticket] if ticket is not None else []
        log_event(
            logger,
            logging.WARNING,
            "synthesis_insufficient_data",
            mode=request.mode,
            evidence_count=len(request.evidences),
        )
        return SynthesisResult(
            tickets=tickets,
            evidences=list(request.evidences),
            reasoning=texts["insufficient_reasoning"],
            executive_summary=texts["insufficient_summary"],
            plan_30_60_90={
                "j0_30": texts["plan_retry"],
                "j30_60": texts["plan_none"],
                "j60_90": texts["plan_none"],
            },
            ai_disabled=True,
            strategy=self._strategy.name,
        )

    def _finalize(self, outcome: StrategyResult, request: SynthesisRequest) -> SynthesisResult:
        promoted = promote_tickets(
            outcome.tickets,
            category_defaults=category_defaults(),
            max_tickets=self._settings.max_tickets,
            max_large_effort=self._settings.max_large_effort,
        )
        texts = _NARRATIVE[request.locale]
        summary = outcome.executive_summary
        if not summary:
            summary = (
                texts["rules_summary"].format(count=len(promoted))
                if promoted
                else texts["rules_summary_empty"]
            )
        plan = dict(outcome.plan_30_60_90) or deterministic_plan(promoted, request.locale)
        return SynthesisResult(
            tickets=promoted,
            evidences=list(request.evidences),
            reasoning=outcome.reasoning,
            executive_summary=summary,
            plan_30_60_90=plan,
            ai_disabled=outcome.ai_disabled,
            strategy=outcome.strategy,
            quick_wins=extract_quick_wins(promoted),
            metadata=dict(outcome.metadata),
        )
