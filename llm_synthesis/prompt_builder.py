"""Structured prompt builder for model-backed ticket synthesis."""

import json
from typing import List, Tuple

from app.schemas.evidence import Evidence
from llm_synthesis.schema import SynthesisBrief, SynthesisOutput

MAX_MODEL_TICKETS = 8

_SCHEMA_JSON = json.dumps(SynthesisOutput.model_json_schema(), indent=2)

_EXAMPLE_OUTPUT = json.dumps(
    {
        "tickets": [
            {
                "ticket_id": "T_solo_trust_SIG_TRUST_BADGES_pdp_01",
                "mode": "solo",
                "title": "Show delivery time and returns next to the Add to Cart button",
                "impact": "high",
                "effort": "s",
                "risk": "low",
                "confidence": "high",
                "category": "trust",
                "why": "Shipping and returns information was not detected on the page.",
                "evidence_refs": ["E_page_a_mobile_screenshot_above_fold_01"],
                "how_to": [
                    "Add a delivery-time line under the price",
                    "Link the returns policy next to the button",
                    "Check the block on a 390px viewport",
                ],
                "validation": ["Shipping info visible without scrolling"],
                "quick_win": True,
                "owner": "copy",
                "notes": "",
            }
        ],
        "reasoning": "Trust gaps block conversion before any layout work.",
        "executive_summary": "The page converts poorly because key trust signals are missing.",
        "plan_30_60_90": {
            "j0_30": "Fix conversion blockers",
            "j30_60": "Add social proof",
            "j60_90": "Tune performance",
        },
    },
    indent=2,
)

_SYSTEM_INSTRUCTIONS = f"""\
You are an expert e-commerce UX/CRO auditor writing actionable optimization tickets
for one product detail page.

STRICT RULES:
- Every ticket MUST cite at least one evidence_id from the EVIDENCE CATALOG.
- Do NOT cite any evidence_id that is not listed in the EVIDENCE CATALOG.
- When CANDIDATE TICKETS are provided, only rewrite those tickets and keep their ticket_id.
- Only report issues supported by the PROVIDED FACTS. Do not invent measurements.
- impact and confidence: high | medium | low. effort: s | m | l. risk: low | medium | high.
- owner: cro | copy | design | dev | merch | data.
- how_to has 3 to 7 concrete steps. validation has at least 1 check.
- quick_win is true only when effort is "s" and impact is "high".
- notes is always present (may be an empty string).
- At most {MAX_MODEL_TICKETS} tickets.
- Return strictly valid JSON matching the schema defined below.
- Do NOT include any text outside the JSON object.
- Do NOT wrap the JSON in markdown code fences.
"""

_SECTION_TEMPLATE = """\
## {title}
```json
{data}
```
"""

_LANGUAGES = {"fr": "French", "en": "English"}


def format_evidence_line(evidence: Evidence) -> str:
    return f"- {evidence.evidence_id} ({evidence.type}, {evidence.viewport}, level {evidence.level})"


class SynthesisPromptBuilder:
    """Builds a deterministic (system, user) prompt pair from a brief.

    The same brief always produces byte-identical prompts.
    """

    def build_prompt(self, brief: SynthesisBrief) -> Tuple[str, str]:
        """Build the system and user prompts.

        Args:
            brief: Facts, candidate tickets and evidence catalog of the run.

        Returns:
            ``(system_prompt, user_prompt)``.
        """
        sections = self._format_data_sections(
            provided_facts=brief.facts,
            strategist_score=brief.score,
            candidate_tickets=[ticket.model_dump(mode="json") for ticket in brief.tickets],
        )
        evidence_lines = "\n".join(format_evidence_line(e) for e in brief.evidences) or "- (none)"
        language = _LANGUAGES.get(brief.locale, "French")

        user_prompt = (
            f"# PROVIDED DATA\n\n{sections}\n"
            f"## Evidence Catalog\n{evidence_lines}\n\n"
            f"# OUTPUT SCHEMA\n\n"
            f"Your response MUST conform to this JSON schema:\n\n"
            f"```json\n{_SCHEMA_JSON}\n```\n\n"
            f"# EXAMPLE OUTPUT\n\n"
            f"```json\n{_EXAMPLE_OUTPUT}\n```\n\n"
            f"# TASK\n\n"
            f"Audit mode: {brief.mode}. Write all text in {language}. "
            f"Return a single JSON object matching the schema above. "
            f"Use only the provided data and the listed evidence ids."
        )
        return _SYSTEM_INSTRUCTIONS, user_prompt

    def _format_data_sections(self, **data: object) -> str:
        """Format each data value as a labeled JSON section.

        Args:
            **data: Named values to include in the prompt.

        Returns:
            Concatenated formatted sections.
        """
        parts: List[str] = []
        for key, value in data.items():
            title = key.replace("_", " ").title()
            body = json.dumps(value, indent=2, sort_keys=True, ensure_ascii=False, default=str)
            parts.append(_SECTION_TEMPLATE.format(title=title, data=body))
        return "\n".join(parts)

