"""Deterministic fallback narrative used whenever model output is rejected."""

from typing import Dict, List

from app.schemas.ticket import Ticket, build_ticket_id
from llm_synthesis.schema import Plan306090, SynthesisBrief, SynthesisOutput

FALLBACK_NOTES = "AI_DISABLED: fallback after validation failure"

_TEXTS: Dict[str, Dict[str, object]] = {
    "fr": {
        "summary_with_tickets": (
            "Audit en mode dégradé (AI_DISABLED). {count} ticket(s) couvrant : {categories}. "
            "Vérification manuelle recommandée."
        ),
        "summary_empty": "Audit en mode dégradé (AI_DISABLED). Vérification manuelle requise.",
        "reasoning": "Narratif de repli : validation AI échouée, pas de synthèse LLM",
        "candidate_title": "Vérification manuelle requise (AI désactivé)",
        "candidate_why": "Le service de synthèse AI n'a pas pu valider la sortie.",
        "generic_title": "AI désactivé : vérification manuelle requise",
        "generic_why": (
            "Le service de synthèse AI n'a pas pu valider la sortie. "
            "Vérification manuelle des captures requise."
        ),
        "how_to": [
            "Examiner les captures et faits collectés",
            "Valider manuellement les tickets identifiés",
            "Relancer l'audit une fois le service rétabli",
        ],
        "validation": ["Vérifier la conformité des données", "Relancer l'audit avec succès"],
        "plan": {
            "j0_30": "Vérification manuelle, corriger les bloqueurs potentiels",
            "j30_60": "Relancer l'audit avec synthèse AI",
            "j60_90": "Optimisations standard une fois l'audit validé",
        },
    },
    "en": {
        "summary_with_tickets": (
            "Audit in degraded mode (AI_DISABLED). {count} ticket(s) covering: {categories}. "
            "Manual review recommended."
        ),
        "summary_empty": "Audit in degraded mode (AI_DISABLED). Manual review required.",
        "reasoning": "Fallback narrative: AI validation failed, no LLM synthesis",
        "candidate_title": "Manual review required (AI disabled)",
        "candidate_why": "The AI synthesis service could not validate its output.",
        "generic_title": "AI disabled: manual review required",
        "generic_why": (
            "The AI synthesis service could not validate its output. "
            "Manual review of the captures is required."
        ),
        "how_to": [
            "Review the captures and collected facts",
            "Manually validate the identified tickets",
            "Re-run the audit once the service is restored",
        ],
        "validation": ["Check data consistency", "Re-run the audit successfully"],
        "plan": {
            "j0_30": "Manual review, fix potential blockers",
            "j30_60": "Re-run the audit with AI synthesis",
            "j60_90": "Standard optimizations once the audit is validated",
        },
    },
}


def _texts(locale: str) -> Dict[str, object]:
    return _TEXTS.get((locale or "fr")[:2].lower(), _TEXTS["fr"])


def _fallback_ticket(
    ticket_id: str,
    mode: str,
    category: str,
    title: str,
    why: str,
    evidence_id: str,
    texts: Dict[str, object],
) -> Ticket:
    return Ticket(
        ticket_id=ticket_id,
        mode=mode,
        title=title,
        impact="medium",
        effort="s",
        risk="low",
        confidence="medium",
        category=category,
        why=why,
        evidence_refs=[evidence_id],
        how_to=list(texts["how_to"]),
        validation=list(texts["validation"]),
        quick_win=False,
        owner="dev",
        notes=FALLBACK_NOTES,
    )


def fallback_narrative(brief: SynthesisBrief) -> SynthesisOutput:
    """Build the degraded-mode narrative for a brief.

    One ticket per candidate in the brief, or a single generic ticket when
    there are none. Every ticket cites only the first evidence of the
    catalog; with an empty catalog no ticket can be cited and none is
    produced.

    Args:
        brief: The brief whose model output was rejected.

    Returns:
        A schema-valid SynthesisOutput. Callers mark it ``ai_disabled``.
    """
    texts = _texts(brief.locale)
    categories: List[str] = []
    for ticket in brief.tickets:
        if ticket.category not in categories:
            categories.append(ticket.category)

    if brief.tickets:
        summary = str(texts["summary_with_tickets"]).format(
            count=len(brief.tickets),
            categories=", ".join(categories),
        )
    else:
        summary = str(texts["summary_empty"])

    tickets: List[Ticket] = []
    if brief.evidences:
        first_evidence = brief.evidences[0].evidence_id
        if brief.tickets:
            for candidate in brief.tickets:
                tickets.append(
                    _fallback_ticket(
                        candidate.ticket_id,
                        candidate.mode,
                        candidate.category,
                        str(texts["candidate_title"]),
                        str(texts["candidate_why"]),
                        first_evidence,
                        texts,
                    )
                )
        else:
            tickets.append(
                _fallback_ticket(
                    build_ticket_id(brief.mode, "ux", "AI_DISABLED"),
                    brief.mode,
                    "ux",
                    str(texts["generic_title"]),
                    str(texts["generic_why"]),
                    first_evidence,
                    texts,
                )
            )

    return SynthesisOutput(
        tickets=tickets,
        reasoning=str(texts["reasoning"]),
        executive_summary=summary,
        plan_30_60_90=Plan306090(**texts["plan"]),
    )
