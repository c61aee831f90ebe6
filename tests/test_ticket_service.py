"""
tests/test_ticket_service.py

Pytest unit tests for ticket post-processing.

All tests are pure Python: tickets are built in memory.

Coverage
--------
- Ticket contract: id format, id/field agreement, how-to bounds
- Priority score formula
- Stable sort order and idempotence
- Guardrails: low confidence, large-effort cap
- Promotion cap and category enrichment
- Quick wins
- Legacy owner/effort normalization
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from app.schemas.ticket import build_ticket_id, parse_ticket_id
from app.services.ticket_service import (
    apply_guardrails,
    enrich_from_category,
    extract_quick_wins,
    normalize_ticket_payload,
    priority_score,
    promote_tickets,
    sort_tickets_stable,
)


# ---------------------------------------------------------------------------
# Contract
# ---------------------------------------------------------------------------


class TestTicketContract:
    def test_build_and_parse_id(self) -> None:
        ticket_id = build_ticket_id("solo", "trust", "no reviews", seq=3)
        assert ticket_id == "T_solo_trust_SIG_NO_REVIEWS_pdp_03"
        assert parse_ticket_id(ticket_id) == {
            "mode": "solo",
            "category": "trust",
            "signal": "NO_REVIEWS",
            "scope": "pdp",
            "seq": "03",
        }

    def test_parse_rejects_garbage(self) -> None:
        assert parse_ticket_id("T_unknown") is None

    def test_id_category_must_match(self, ticket_factory) -> None:
        with pytest.raises(ValidationError):
            ticket_factory(ticket_id=build_ticket_id("solo", "trust", "X"))

    def test_how_to_bounds(self, ticket_factory) -> None:
        with pytest.raises(ValidationError):
            ticket_factory(how_to=["one", "two"])
        with pytest.raises(ValidationError):
            ticket_factory(how_to=[f"step {index}" for index in range(8)])

    def test_evidence_refs_must_be_ids(self, ticket_factory) -> None:
        with pytest.raises(ValidationError):
            ticket_factory(evidence_refs=["https://cdn.example.com/a.png"])

    def test_evidence_refs_accept_anchor_form(self, ticket_factory) -> None:
        ticket = ticket_factory(evidence_refs=["#evidence-E_page_a_mobile_screenshot_above_fold_01"])
        assert ticket.evidence_refs[0].startswith("#evidence-")

    def test_unknown_owner_rejected(self, ticket_factory) -> None:
        with pytest.raises(ValidationError):
            ticket_factory(owner="marketing")


# ---------------------------------------------------------------------------
# Priority and ordering
# ---------------------------------------------------------------------------


class TestPriority:
    def test_formula(self, ticket_factory) -> None:
        assert priority_score(ticket_factory()) == 12
        ticket = ticket_factory(impact="medium", effort="m", risk="medium", confidence="medium")
        assert priority_score(ticket) == 6 + 4 - 4 - 2

    def test_sort_by_score_then_id(self, ticket_factory) -> None:
        low = ticket_factory("C", impact="low")
        top_b = ticket_factory("B")
        top_a = ticket_factory("A")
        ordered = sort_tickets_stable([low, top_b, top_a])
        assert [ticket.ticket_id for ticket in ordered] == [
            top_a.ticket_id,
            top_b.ticket_id,
            low.ticket_id,
        ]

    def test_sort_is_idempotent(self, ticket_factory) -> None:
        tickets = [
            ticket_factory("C", effort="m"),
            ticket_factory("A", impact="medium"),
            ticket_factory("B", risk="high"),
        ]
        once = sort_tickets_stable(tickets)
        assert sort_tickets_stable(once) == once
        assert sort_tickets_stable(reversed(tickets)) == once


# ---------------------------------------------------------------------------
# Guardrails and promotion
# ---------------------------------------------------------------------------


class TestGuardrails:
    def test_drops_low_confidence(self, ticket_factory) -> None:
        kept = apply_guardrails([ticket_factory("A", confidence="low"), ticket_factory("B")])
        assert [ticket.ticket_id for ticket in kept] == [ticket_factory("B").ticket_id]

    def test_caps_large_effort(self, ticket_factory) -> None:
        tickets = [ticket_factory(signal, effort="l") for signal in ("A", "B", "C")]
        assert len(apply_guardrails(tickets)) == 1
        assert len(apply_guardrails(tickets, max_large_effort=2)) == 2

    def test_promote_caps_count(self, ticket_factory) -> None:
        tickets = [ticket_factory(f"S{index}") for index in range(8)]
        assert len(promote_tickets(tickets)) == 5
        assert len(promote_tickets(tickets, max_tickets=2)) == 2

    def test_promote_enriches_from_category(self, ticket_factory) -> None:
        defaults = {"offer_clarity": {"rule_id": "R_OFFER", "affected_criteria_ids": ["C1", "C2"]}}
        promoted = promote_tickets([ticket_factory()], category_defaults=defaults)
        assert promoted[0].rule_id == "R_OFFER"
        assert promoted[0].affected_criteria_ids == ["C1", "C2"]

    def test_enrichment_keeps_existing_values(self, ticket_factory) -> None:
        ticket = ticket_factory(rule_id="R_OWN")
        enriched = enrich_from_category(ticket, {"offer_clarity": {"rule_id": "R_OFFER"}})
        assert enriched.rule_id == "R_OWN"

    def test_quick_wins(self, ticket_factory) -> None:
        tickets = [
            ticket_factory("A"),
            ticket_factory("B", effort="m"),
            ticket_factory("C", quick_win=False),
            ticket_factory("D", confidence="low"),
        ]
        assert [ticket.ticket_id for ticket in extract_quick_wins(tickets)] == [tickets[0].ticket_id]


# ---------------------------------------------------------------------------
# Legacy vocabulary
# ---------------------------------------------------------------------------


class TestNormalizeTicketPayload:
    @pytest.mark.parametrize("legacy", ["owner_hint", "content", "ops", " Ops "])
    def test_legacy_owner_maps_to_dev(self, legacy: str) -> None:
        assert normalize_ticket_payload({"owner": legacy})["owner"] == "dev"

    @pytest.mark.parametrize(("legacy", "expected"), [("small", "s"), ("Medium", "m"), ("large", "l")])
    def test_legacy_effort(self, legacy: str, expected: str) -> None:
        assert normalize_ticket_payload({"effort": legacy})["effort"] == expected

    def test_known_values_pass_through(self) -> None:
        payload = normalize_ticket_payload({"owner": "copy", "effort": "s", "title": "x"})
        assert payload == {"owner": "copy", "effort": "s", "title": "x"}
