"""
rules/base.py

Abstract base class and shared value objects for ticket synthesis strategies.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from app.facts.types import FactRecord
from app.schemas.evidence import Evidence
from app.schemas.ticket import Ticket
from rules.scoring import ScoreResult


@dataclass(frozen=True)
class SynthesisRequest:
    """
    Everything a strategy may read. Strategies never reach outside it.
    """

    facts: FactRecord
    evidences: tuple[Evidence, ...]
    locale: str = "fr"
    mode: str = "solo"
    score: ScoreResult | None = None

    @property
    def evidence_ids(self) -> list[str]:
        return [evidence.evidence_id for evidence in self.evidences]


@dataclass(frozen=True)
class StrategyResult:
    tickets: tuple[Ticket, ...]
    strategy: str
    reasoning: str = ""
    executive_summary: str = ""
    plan_30_60_90: dict[str, str] = field(default_factory=dict)
    ai_disabled: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)


class BaseTicketStrategy(ABC):
    """
    Contract for ticket synthesis strategies.

    Subclasses receive a :class:`SynthesisRequest` and must return tickets
    that conform to the ticket contract and cite only evidence ids from
    ``request.evidences``.
    """

    name: str = "base"

    @abstractmethod
    def generate(self, request: SynthesisRequest) -> StrategyResult:
        """
        Produce tickets for one audited page.

        Parameters
        ----------
        request:
            Fact record, evidence catalog, locale, audit mode and the
            optional strategist score of the run.

        Returns
        -------
        StrategyResult
            Tickets plus narrative fields. ``ai_disabled`` is True when the
            output came from a deterministic path.
        """
