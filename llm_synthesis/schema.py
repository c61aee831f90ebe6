"""Structured input and output contracts for model-backed ticket synthesis."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.evidence import Evidence
from app.schemas.ticket import Ticket


class Plan306090(BaseModel):
    """Three-horizon action plan."""

    model_config = ConfigDict(extra="forbid", frozen=True, str_strip_whitespace=True)

    j0_30: str = ""
    j30_60: str = ""
    j60_90: str = ""


class SynthesisOutput(BaseModel):
    """Only allowed output contract for the synthesis model."""

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
        str_strip_whitespace=True,
    )

    tickets: List[Ticket] = Field(default_factory=list)
    reasoning: str = ""
    executive_summary: str = ""
    plan_30_60_90: Plan306090 = Field(default_factory=Plan306090)


@dataclass(frozen=True)
class SynthesisBrief:
    """Catalogs handed to the model; the only ids it may cite.

    Attributes:
        facts: Serialized fact record of the audited page.
        tickets: Candidate tickets produced by the rule strategy.
        evidences: Evidence catalog of the run.
        locale: Output language.
        mode: Audit mode stamped on every ticket id.
    """

    facts: Dict[str, Any]
    tickets: Tuple[Ticket, ...] = ()
    evidences: Tuple[Evidence, ...] = ()
    locale: str = "fr"
    mode: str = "solo"
    score: Dict[str, Any] = field(default_factory=dict)

    @property
    def ticket_ids(self) -> List[str]:
        return [ticket.ticket_id for ticket in self.tickets]

    @property
    def evidence_ids(self) -> List[str]:
        return [evidence.evidence_id for evidence in self.evidences]
