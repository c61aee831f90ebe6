"""Validation layer for raw LLM synthesis output.

Parses the raw string, normalizes legacy vocabularies, validates the result
against the SynthesisOutput schema and finally enforces referential
integrity against the brief's ticket and evidence catalogs.
"""

import json
import re
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from app.schemas.evidence import evidence_id_from_ref
from app.services.ticket_service import normalize_ticket_payload
from llm_synthesis.schema import SynthesisBrief, SynthesisOutput

_OUTPUT_KEYS = ("tickets", "reasoning", "executive_summary", "plan_30_60_90")


class LLMOutputValidationError(Exception):
    """Raised when LLM output fails parsing, schema or reference validation.

    Attributes:
        stage: Which validation step failed ("json_parse", "schema" or "references").
        errors: List of human-readable error descriptions.
        raw_response: The original string that failed validation.
    """

    def __init__(
        self,
        stage: str,
        errors: List[str],
        raw_response: str,
    ) -> None:
        self.stage = stage
        self.errors = errors
        self.raw_response = raw_response
        message = (
            f"LLM output validation failed at stage '{stage}': "
            + "; ".join(errors)
        )
        super().__init__(message)


def _strip_markdown_fences(text: str) -> str:
    """Remove optional markdown code fences wrapping JSON.

    LLMs sometimes wrap output in ```json ... ``` despite instructions.

    Args:
        text: Raw LLM response string.

    Returns:
        The text with leading/trailing code fences removed, if present.
    """
    stripped = text.strip()
    match = re.match(
        r"^```(?:json)?\s*\n?(.*?)\n?\s*```$",
        stripped,
        re.DOTALL,
    )
    if match:
        return match.group(1).strip()
    return stripped


def _project_output(data: Dict[str, Any]) -> Dict[str, Any]:
    """Keep only SynthesisOutput keys and normalize ticket vocabularies."""
    projected = {key: data[key] for key in _OUTPUT_KEYS if key in data}
    tickets = projected.get("tickets")
    if isinstance(tickets, list):
        projected["tickets"] = [
            normalize_ticket_payload(ticket) if isinstance(ticket, dict) else ticket
            for ticket in tickets
        ]
    return projected


def check_references(output: SynthesisOutput, brief: SynthesisBrief) -> List[str]:
    """List every ticket id or evidence id the brief does not contain.

    Ticket ids are only constrained when the brief carries candidates.
    """
    known_tickets = set(brief.ticket_ids)
    known_evidence = set(brief.evidence_ids)
    errors: List[str] = []
    for ticket in output.tickets:
        if known_tickets and ticket.ticket_id not in known_tickets:
            errors.append(f"ticket_id '{ticket.ticket_id}' not present in brief tickets")
        for ref in ticket.evidence_refs:
            if evidence_id_from_ref(ref) not in known_evidence:
                errors.append(
                    f"evidence_ref '{ref}' of '{ticket.ticket_id}' not present in brief evidences"
                )
    return errors


def validate_llm_output(
    raw_response: str,
    brief: Optional[SynthesisBrief] = None,
) -> SynthesisOutput:
    """Parse and validate a raw LLM response string.

    Steps:
        1. Strip optional markdown fences.
        2. Parse as JSON.
        3. Project payload into SynthesisOutput keys and normalize vocabularies.
        4. Validate against the SynthesisOutput Pydantic model.
        5. Enforce references against ``brief`` when one is given.

    Args:
        raw_response: The raw string returned by the LLM adapter.
        brief: Catalogs the output may cite.

    Returns:
        A validated SynthesisOutput instance.

    Raises:
        LLMOutputValidationError: If any step fails.
    """
    cleaned = _strip_markdown_fences(raw_response or "")

    # Step 1: JSON parse
    try:
        data = json.loads(cleaned)
    except (json.JSONDecodeError, TypeError) as exc:
        raise LLMOutputValidationError(
            stage="json_parse",
            errors=[str(exc)],
            raw_response=raw_response,
        ) from exc

    # Step 2: Object shape
    if not isinstance(data, dict) or not isinstance(data.get("tickets"), list):
        raise LLMOutputValidationError(
            stage="schema",
            errors=["top-level JSON must be an object with a 'tickets' array"],
            raw_response=raw_response,
        )

    # Step 3: Schema validation
    try:
        parsed = SynthesisOutput.model_validate(_project_output(data))
    except ValidationError as exc:
        errors = [
            f"{'.'.join(str(loc) for loc in e['loc'])}: {e['msg']}"
            for e in exc.errors()
        ]
        raise LLMOutputValidationError(
            stage="schema",
            errors=errors,
            raw_response=raw_response,
        ) from exc

    # Step 4: Referential integrity
    if brief is not None:
        reference_errors = check_references(parsed, brief)
        if reference_errors:
            raise LLMOutputValidationError(
                stage="references",
                errors=reference_errors,
                raw_response=raw_response,
            )

    return parsed
