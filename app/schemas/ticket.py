"""
app/schemas/ticket.py

Ticket contract shared by the rule-based and model-backed synthesis
strategies. Every vocabulary is closed.
"""

from __future__ import annotations

import re
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from app.schemas.evidence import EVIDENCE_REF_PREFIX, is_evidence_id

AuditMode = Literal["solo", "duo_ab", "duo_before_after"]
TicketCategory = Literal[
    "offer_clarity",
    "trust",
    "media",
    "ux",
    "performance",
    "seo_basics",
    "accessibility",
    "comparison",
]
Level = Literal["high", "medium", "low"]
Effort = Literal["s", "m", "l"]
Risk = Literal["low", "medium", "high"]
Owner = Literal["cro", "copy", "design", "dev", "merch", "data"]

AUDIT_MODE_VALUES: tuple[str, ...] = ("solo", "duo_ab", "duo_before_after")
TICKET_CATEGORIES: tuple[str, ...] = (
    "offer_clarity",
    "trust",
    "media",
    "ux",
    "performance",
    "seo_basics",
    "accessibility",
    "comparison",
)
TICKET_SCOPES: tuple[str, ...] = ("pdp", "page_a", "page_b", "gap", "before", "after", "diff")

TICKET_ID_PATTERN = (
    r"^T_(?P<mode>" + "|".join(AUDIT_MODE_VALUES) + r")"
    r"_(?P<category>" + "|".join(TICKET_CATEGORIES) + r")"
    r"_SIG_(?P<signal>[A-Z0-9_]+)"
    r"_(?P<scope>" + "|".join(TICKET_SCOPES) + r")_(?P<seq>[0-9]{2})$"
)
_TICKET_ID_REGEX = re.compile(TICKET_ID_PATTERN)

MIN_HOW_TO_STEPS = 3
MAX_HOW_TO_STEPS = 7


def parse_ticket_id(ticket_id: str) -> dict[str, str] | None:
    match = _TICKET_ID_REGEX.match(ticket_id or "")
    return match.groupdict() if match else None


def build_ticket_id(mode: str, category: str, signal: str, scope: str = "pdp", seq: int = 1) -> str:
    signal_token = re.sub(r"[^A-Z0-9_]+", "_", signal.upper()).strip("_") or "GENERIC"
    return f"T_{mode}_{category}_SIG_{signal_token}_{scope}_{seq:02d}"


class Ticket(BaseModel):
    """
    One prioritizable, evidence-linked improvement ticket.
    """

    model_config = ConfigDict(extra="forbid", frozen=True, str_strip_whitespace=True)

    ticket_id: str = Field(pattern=TICKET_ID_PATTERN)
    mode: AuditMode
    title: str = Field(min_length=1)
    impact: Level
    effort: Effort
    risk: Risk
    confidence: Level
    category: TicketCategory
    why: str = Field(min_length=1)
    evidence_refs: list[str] = Field(min_length=1)
    how_to: list[str] = Field(min_length=MIN_HOW_TO_STEPS, max_length=MAX_HOW_TO_STEPS)
    validation: list[str] = Field(min_length=1)
    quick_win: bool
    owner: Owner
    notes: str
    rule_id: str | None = None
    affected_criteria_ids: list[str] | None = None

    @field_validator("evidence_refs")
    @classmethod
    def _check_evidence_refs(cls, refs: list[str]) -> list[str]:
        for ref in refs:
            bare = ref[len(EVIDENCE_REF_PREFIX) :] if ref.startswith(EVIDENCE_REF_PREFIX) else ref
            if not is_evidence_id(bare):
                raise ValueError(f"'{ref}' is not a valid evidence id")
        return refs

    @field_validator("how_to", "validation")
    @classmethod
    def _check_steps(cls, steps: list[str]) -> list[str]:
        if any(not step.strip() for step in steps):
            raise ValueError("steps must be non-empty strings")
        return steps

    @model_validator(mode="after")
    def _check_id_matches_fields(self) -> "Ticket":
        parts = parse_ticket_id(self.ticket_id)
        if parts is None:
            return self
        if parts["mode"] != self.mode:
            raise ValueError(f"ticket_id mode '{parts['mode']}' does not match mode '{self.mode}'")
        if parts["category"] != self.category:
            raise ValueError(
                f"ticket_id category '{parts['category']}' does not match category '{self.category}'"
            )
        return self
