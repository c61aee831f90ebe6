"""Corrective retries for malformed model output.

Only formatting failures (``json_parse``, ``schema``) are retried, and each
retry tells the model what was wrong with its previous answer. Reference
violations and transport errors propagate on the first occurrence.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from llm_synthesis.adapter import BaseLLMAdapter
from llm_synthesis.schema import SynthesisBrief, SynthesisOutput
from llm_synthesis.validator import LLMOutputValidationError, validate_llm_output

logger = logging.getLogger(__name__)

RETRYABLE_STAGES = frozenset({"json_parse", "schema"})

# Keeps the correction block short; the full list stays on the exception.
_MAX_REPORTED_ERRORS = 8


class LLMRetryExhaustedError(Exception):
    """Every attempt produced malformed output.

    Attributes:
        attempts: Number of model calls made.
        history: One validation error per failed attempt, oldest first.
    """

    def __init__(self, history: List[LLMOutputValidationError]) -> None:
        self.history = history
        self.attempts = len(history)
        super().__init__(
            f"Model output rejected {self.attempts} time(s); "
            f"last failure at stage '{self.last_error.stage}': {self.last_error}"
        )

    @property
    def last_error(self) -> LLMOutputValidationError:
        return self.history[-1]


@dataclass(frozen=True)
class StructuredGeneration:
    """A validated output and what it took to get it."""

    output: SynthesisOutput
    attempts: int
    rejected: List[LLMOutputValidationError] = field(default_factory=list)


def correction_prompt(user_prompt: str, error: LLMOutputValidationError) -> str:
    """Append the previous rejection to the run prompt.

    Args:
        user_prompt: The original run prompt, repeated unchanged.
        error: Why the previous answer was rejected.

    Returns:
        The prompt for the next attempt.
    """
    problems = error.errors[:_MAX_REPORTED_ERRORS] or [str(error)]
    lines = [
        user_prompt,
        "",
        "## CORRECTION",
        f"Your previous answer was rejected at the '{error.stage}' check:",
    ]
    lines.extend(f"- {problem}" for problem in problems)
    lines.append("Answer again with a single JSON object that follows the output contract exactly.")
    return "\n".join(lines)


def generate_structured(
    adapter: BaseLLMAdapter,
    system_prompt: str,
    user_prompt: str,
    brief: Optional[SynthesisBrief] = None,
    max_retries: int = 2,
) -> StructuredGeneration:
    """Call the model until its answer validates or the budget runs out.

    Args:
        adapter: Model backend.
        system_prompt: Fixed instructions, identical on every attempt.
        user_prompt: Run-specific prompt for the first attempt.
        brief: Catalogs the references are checked against.
        max_retries: Extra attempts after the first one.

    Raises:
        LLMOutputValidationError: On a non-retryable stage.
        LLMRetryExhaustedError: When every attempt was malformed.
    """
    budget = 1 + max(0, max_retries)
    rejected: List[LLMOutputValidationError] = []
    prompt = user_prompt

    while len(rejected) < budget:
        raw = adapter.generate(system_prompt, prompt)
        try:
            output = validate_llm_output(raw, brief)
        except LLMOutputValidationError as exc:
            if exc.stage not in RETRYABLE_STAGES:
                raise
            rejected.append(exc)
            logger.warning(
                "Model output rejected (%d/%d) at %s: %s",
                len(rejected),
                budget,
                exc.stage,
                "; ".join(exc.errors[:_MAX_REPORTED_ERRORS]),
            )
            prompt = correction_prompt(user_prompt, exc)
            continue

        if rejected:
            logger.info("Model output accepted after %d rejection(s)", len(rejected))
        return StructuredGeneration(output=output, attempts=len(rejected) + 1, rejected=rejected)

    raise LLMRetryExhaustedError(rejected)
