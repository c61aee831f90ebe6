"""
app/services/evidence_builder.py

Turns stored capture artifacts into identified evidence items.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from typing import Any, Literal

from app.capture.types import VIEWPORT_PROFILES
from app.domain.audit import StoredArtifact
from app.facts.types import FactRecord
from app.schemas.evidence import (
    DetectionDetail,
    Evidence,
    ScreenshotDetail,
    evidence_ref,
)

EvidenceCompleteness = Literal["complete", "partial", "insufficient"]

# artifact kind -> (evidence type, label)
ARTIFACT_EVIDENCE: dict[str, tuple[str, str]] = {
    "screenshot": ("screenshot", "above_fold"),
    "html": ("detection", "html_snapshot"),
}

_SLUG_INVALID = re.compile(r"[^a-z0-9]+")


def slugify_label(label: str) -> str:
    slug = _SLUG_INVALID.sub("_", (label or "").lower()).strip("_")
    return slug or "item"


def build_evidence_id(source: str, viewport: str, evidence_type: str, label: str, index: int) -> str:
    return f"E_{source}_{viewport}_{evidence_type}_{slugify_label(label)}_{index:02d}"


def _details(artifact: StoredArtifact, evidence_type: str, facts: FactRecord | None) -> Any:
    if evidence_type == "screenshot":
        profile = VIEWPORT_PROFILES.get(artifact.viewport)
        return ScreenshotDetail(
            storage_path=artifact.path,
            public_url=artifact.public_url,
            width=artifact.width or (profile.width if profile else None),
            height=artifact.height or (profile.height if profile else None),
            full_page=False,
            cached=artifact.cached,
        )
    return DetectionDetail(
        storage_path=artifact.path,
        public_url=artifact.public_url,
        facts_summary=facts.summary() if facts is not None else {},
    )


def build_evidences(
    artifact_refs: Sequence[StoredArtifact],
    *,
    captured_at: str,
    source: str = "page_a",
    facts: FactRecord | None = None,
) -> list[Evidence]:
    """
    Build one evidence item per stored artifact.

    Parameters
    ----------
    artifact_refs:
        Uploaded artifacts in pipeline order. Unknown kinds (e.g. CSV
        exports) are skipped.
    captured_at:
        ISO timestamp shared by every item of the run.
    source:
        Page role: ``page_a``, ``page_b``, ``before`` or ``after``.
    facts:
        When given, detection items carry the fact summary in ``details``.

    Returns
    -------
    list[Evidence]
        Items with run-unique ids. The two-digit index increments inside
        each ``(source, viewport, type, label)`` group.
    """

    counters: dict[tuple[str, str, str, str], int] = {}
    evidences: list[Evidence] = []
    for artifact in artifact_refs:
        mapping = ARTIFACT_EVIDENCE.get(artifact.kind)
        if mapping is None:
            continue
        evidence_type, label = mapping
        viewport = artifact.viewport if artifact.viewport in VIEWPORT_PROFILES else "na"
        group = (source, viewport, evidence_type, label)
        counters[group] = counters.get(group, 0) + 1
        evidence_id = build_evidence_id(source, viewport, evidence_type, label, counters[group])
        evidences.append(
            Evidence(
                evidence_id=evidence_id,
                level="A",
                type=evidence_type,
                label=label,
                source=source,
                viewport=viewport,
                timestamp=captured_at,
                ref=evidence_ref(evidence_id),
                details=_details(artifact, evidence_type, facts),
            )
        )
    return evidences


def evidence_completeness(
    artifact_refs: Sequence[StoredArtifact],
    facts: FactRecord | None,
) -> EvidenceCompleteness:
    """
    ``complete`` needs both fold screenshots and the mobile markup;
    ``partial`` needs the mobile screenshot plus a detected purchase action
    and description.
    """

    present = {(artifact.viewport, artifact.kind) for artifact in artifact_refs}
    has_mobile_fold = ("mobile", "screenshot") in present
    if has_mobile_fold and ("desktop", "screenshot") in present and ("mobile", "html") in present:
        return "complete"
    if (
        has_mobile_fold
        and facts is not None
        and facts.product.has_atc_button
        and facts.product.has_description
    ):
        return "partial"
    return "insufficient"
