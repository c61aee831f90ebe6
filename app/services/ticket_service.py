"""
app/services/ticket_service.py

Ticket post-processing shared by every synthesis strategy: vocabulary
normalization, category enrichment, priority scoring, stable sorting,
guardrails and promotion.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from app.schemas.ticket import Ticket

LEVEL_SCORES = {"high": 3, "medium": 2, "low": 1}
EFFORT_SCORES = {"s": 1, "m": 2, "l": 3}
RISK_SCORES = {"low": 1, "medium": 2, "high": 3}

LEGACY_OWNERS = {"owner_hint": "dev", "content": "dev", "ops": "dev"}
LEGACY_EFFORTS = {"small": "s", "medium": "m", "large": "l"}

DEFAULT_MAX_TICKETS = 5
DEFAULT_MAX_LARGE_EFFORT = 1


# ---------------------------------------------------------------------------
# Vocabulary
# ---------------------------------------------------------------------------


def normalize_ticket_payload(payload: Mapping[str, Any]) -> dict[str, Any]:
    """
    Map legacy owner and effort values onto the closed vocabularies.

    Works on raw dictionaries so it can run before schema validation.
    """

    normalized = dict(payload)
    owner = normalized.get("owner")
    if isinstance(owner, str):
        lowered = owner.strip().lower()
        normalized["owner"] = LEGACY_OWNERS.get(lowered, lowered)
    effort = normalized.get("effort")
    if isinstance(effort, str):
        lowered = effort.strip().lower()
        normalized["effort"] = LEGACY_EFFORTS.get(lowered, lowered)
    return normalized


# ---------------------------------------------------------------------------
# Enrichment and priority
# ---------------------------------------------------------------------------


def enrich_from_category(ticket: Ticket, category_defaults: Mapping[str, Mapping[str, Any]]) -> Ticket:
    """Fill ``rule_id`` and ``affected_criteria_ids`` from category defaults when absent."""

    defaults = category_defaults.get(ticket.category) or {}
    update: dict[str, Any] = {}
    if not ticket.rule_id and defaults.get("rule_id"):
        update["rule_id"] = str(defaults["rule_id"])
    if not ticket.affected_criteria_ids and defaults.get("affected_criteria_ids"):
        update["affected_criteria_ids"] = [str(item) for item in defaults["affected_criteria_ids"]]
    return ticket.model_copy(update=update) if update else ticket


def priority_score(ticket: Ticket) -> int:
    """impact x 3 + confidence x 2 - effort x 2 - risk."""

    return (
        LEVEL_SCORES[ticket.impact] * 3
        + LEVEL_SCORES[ticket.confidence] * 2
        - EFFORT_SCORES[ticket.effort] * 2
        - RISK_SCORES[ticket.risk]
    )


def _sort_key(ticket: Ticket) -> tuple:
    return (
        -priority_score(ticket),
        -LEVEL_SCORES[ticket.impact],
        -LEVEL_SCORES[ticket.confidence],
        EFFORT_SCORES[ticket.effort],
        RISK_SCORES[ticket.risk],
        ticket.ticket_id,
    )


def sort_tickets_stable(tickets: Iterable[Ticket]) -> list[Ticket]:
    """
    Sort by score desc, impact desc, confidence desc, effort asc, risk asc,
    then ticket id. Idempotent.
    """

    return sorted(tickets, key=_sort_key)


def apply_guardrails(tickets: Iterable[Ticket], *, max_large_effort: int = DEFAULT_MAX_LARGE_EFFORT) -> list[Ticket]:
    """Drop low-confidence tickets and keep at most ``max_large_effort`` effort=l tickets."""

    kept: list[Ticket] = []
    large = 0
    for ticket in tickets:
        if ticket.confidence == "low":
            continue
        if ticket.effort == "l":
            if large >= max_large_effort:
                continue
            large += 1
        kept.append(ticket)
    return kept


def promote_tickets(
    tickets: Iterable[Ticket],
    *,
    category_defaults: Mapping[str, Mapping[str, Any]] | None = None,
    max_tickets: int = DEFAULT_MAX_TICKETS,
    max_large_effort: int = DEFAULT_MAX_LARGE_EFFORT,
) -> list[Ticket]:
    """
    Full post-processing pass: enrich, sort, guard, cap.
    """

    enriched = [enrich_from_category(ticket, category_defaults or {}) for ticket in tickets]
    guarded = apply_guardrails(sort_tickets_stable(enriched), max_large_effort=max_large_effort)
    return guarded[: max(0, max_tickets)]


def extract_quick_wins(tickets: Iterable[Ticket]) -> list[Ticket]:
    return [
        ticket
        for ticket in tickets
        if ticket.quick_win and ticket.effort == "s" and ticket.confidence in {"high", "medium"}
    ]
