"""Model-backed ticket strategy guarded by the validation gate.

The gate is the only route from model output to persisted tickets: it
returns either the validated output (``accepted``) or the deterministic
fallback narrative (``fallback``). Invalid output never leaves this module.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Literal, Optional

from app.logging_utils import log_event
from app.schemas.ticket import Ticket
from llm_synthesis.adapter import BaseLLMAdapter
from llm_synthesis.fallback import fallback_narrative
from llm_synthesis.prompt_builder import SynthesisPromptBuilder
from llm_synthesis.retry import LLMRetryExhaustedError, generate_structured
from llm_synthesis.schema import SynthesisBrief, SynthesisOutput
from llm_synthesis.validator import LLMOutputValidationError
from rules.base import BaseTicketStrategy, StrategyResult, SynthesisRequest
from rules.pdp_rules import PdpRulesStrategy

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GateOutcome:
    """Result of one pass through the validation gate.

    Attributes:
        status: ``accepted`` when the model output passed every check.
        output: The accepted output or the fallback narrative.
        stage: Failing stage (json_parse, schema, references, transport).
        reason: Human-readable failure summary.
        attempts: Model calls made.
    """

    status: Literal["accepted", "fallback"]
    output: SynthesisOutput
    stage: Optional[str] = None
    reason: Optional[str] = None
    attempts: int = 0

    @property
    def ai_disabled(self) -> bool:
        return self.status == "fallback"


class ValidationGate:
    """Calls the model for a brief and validates the answer against it."""

    def __init__(
        self,
        adapter: BaseLLMAdapter,
        prompt_builder: Optional[SynthesisPromptBuilder] = None,
        max_retries: int = 2,
    ) -> None:
        self._adapter = adapter
        self._prompt_builder = prompt_builder or SynthesisPromptBuilder()
        self._max_retries = max_retries

    def run(self, brief: SynthesisBrief) -> GateOutcome:
        system_prompt, user_prompt = self._prompt_builder.build_prompt(brief)
        try:
            generation = generate_structured(
                self._adapter,
                system_prompt,
                user_prompt,
                brief=brief,
                max_retries=self._max_retries,
            )
        except LLMOutputValidationError as exc:
            return self._fallback(brief, exc.stage, "; ".join(exc.errors))
        except LLMRetryExhaustedError as exc:
            return self._fallback(brief, exc.last_error.stage, str(exc), attempts=exc.attempts)
        except Exception as exc:
            return self._fallback(brief, "transport", f"{type(exc).__name__}: {exc}")

        return GateOutcome(status="accepted", output=generation.output, attempts=generation.attempts)

    def _fallback(self, brief: SynthesisBrief, stage: str, reason: str, attempts: int = 1) -> GateOutcome:
        log_event(
            logger,
            logging.WARNING,
            "synthesis_fallback",
            stage=stage,
            reason=reason,
            attempts=attempts,
            candidate_count=len(brief.tickets),
            evidence_count=len(brief.evidences),
        )
        return GateOutcome(
            status="fallback",
            output=fallback_narrative(brief),
            stage=stage,
            reason=reason,
            attempts=attempts,
        )


def merge_tickets(candidates: Iterable[Ticket], model_tickets: Iterable[Ticket]) -> List[Ticket]:
    """Model tickets replace candidates with the same id; other candidates are kept.

    Candidate order is preserved. Model tickets with new ids are appended;
    the gate only lets those through when the brief had no candidates.
    """
    by_id = {}
    for ticket in model_tickets:
        by_id.setdefault(ticket.ticket_id, ticket)
    merged = [by_id.pop(candidate.ticket_id, candidate) for candidate in candidates]
    merged.extend(by_id.values())
    return merged


class ModelBackedTicketStrategy(BaseTicketStrategy):
    """Rule candidates rewritten by a language model behind the gate."""

    name = "model"

    def __init__(
        self,
        adapter: BaseLLMAdapter,
        *,
        rules: Optional[PdpRulesStrategy] = None,
        gate: Optional[ValidationGate] = None,
        max_retries: int = 2,
    ) -> None:
        self._rules = rules or PdpRulesStrategy()
        self._gate = gate or ValidationGate(adapter, max_retries=max_retries)

    def build_brief(self, request: SynthesisRequest, candidates: List[Ticket]) -> SynthesisBrief:
        return SynthesisBrief(
            facts=request.facts.to_dict(),
            tickets=tuple(candidates),
            evidences=tuple(request.evidences),
            locale=request.locale,
            mode=request.mode,
            score=request.score.to_dict() if request.score is not None else {},
        )

    def generate(self, request: SynthesisRequest) -> StrategyResult:
        candidates = self._rules.candidates(request)
        outcome = self._gate.run(self.build_brief(request, candidates))
        output = outcome.output
        return StrategyResult(
            tickets=tuple(merge_tickets(candidates, output.tickets)),
            strategy=self.name,
            reasoning=output.reasoning,
            executive_summary=output.executive_summary,
            plan_30_60_90=output.plan_30_60_90.model_dump(),
            ai_disabled=outcome.ai_disabled,
            metadata={
                "gate_status": outcome.status,
                "gate_stage": outcome.stage,
                "gate_reason": outcome.reason,
                "gate_attempts": outcome.attempts,
            },
        )
