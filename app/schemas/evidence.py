"""
app/schemas/evidence.py

Evidence contract: one identified, classified proof item per captured
artifact or measurement.
"""

from __future__ import annotations

import re
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

EvidenceLevel = Literal["A", "B", "C"]
EvidenceType = Literal["screenshot", "measurement", "detection"]
EvidenceSource = Literal["page_a", "page_b", "before", "after"]
EvidenceViewport = Literal["mobile", "desktop", "na"]

EVIDENCE_ID_PATTERN = (
    r"^E_(page_a|page_b|before|after)_(mobile|desktop|na)_"
    r"(screenshot|measurement|detection)_[a-z0-9_]+_[0-9]{2}$"
)
EVIDENCE_REF_PATTERN = r"^#evidence-E_"
EVIDENCE_REF_PREFIX = "#evidence-"

_EVIDENCE_ID_REGEX = re.compile(EVIDENCE_ID_PATTERN)


def is_evidence_id(value: str) -> bool:
    return isinstance(value, str) and bool(_EVIDENCE_ID_REGEX.match(value))


def evidence_ref(evidence_id: str) -> str:
    return f"{EVIDENCE_REF_PREFIX}{evidence_id}"


def evidence_id_from_ref(ref: str) -> str:
    """
    Accept either a bare evidence id or a ``#evidence-`` reference.
    """

    value = (ref or "").strip()
    if value.startswith(EVIDENCE_REF_PREFIX):
        return value[len(EVIDENCE_REF_PREFIX) :]
    return value


# ---------------------------------------------------------------------------
# Detail variants
# ---------------------------------------------------------------------------


class _DetailBase(BaseModel):
    # Unknown keys are kept so newer producers stay readable.
    model_config = ConfigDict(extra="allow", frozen=True)


class ScreenshotDetail(_DetailBase):
    kind: Literal["screenshot"] = "screenshot"
    storage_path: str | None = None
    public_url: str | None = None
    width: int | None = Field(default=None, ge=1)
    height: int | None = Field(default=None, ge=1)
    full_page: bool = False
    cached: bool = False


class MeasurementDetail(_DetailBase):
    kind: Literal["measurement"] = "measurement"
    metric: str = Field(min_length=1)
    value: float | None = None
    unit: str | None = None


class DetectionDetail(_DetailBase):
    kind: Literal["detection"] = "detection"
    method: str = "dom_heuristics"
    storage_path: str | None = None
    public_url: str | None = None
    facts_summary: dict[str, Any] = Field(default_factory=dict)


EvidenceDetail = Annotated[
    Union[ScreenshotDetail, MeasurementDetail, DetectionDetail],
    Field(discriminator="kind"),
]


# ---------------------------------------------------------------------------
# Evidence
# ---------------------------------------------------------------------------


class Evidence(BaseModel):
    """
    One evidence item.

    ``ref`` is always ``#evidence-<evidence_id>``; storage locations only
    ever appear inside ``details``.
    """

    model_config = ConfigDict(extra="forbid", frozen=True, str_strip_whitespace=True)

    evidence_id: str = Field(pattern=EVIDENCE_ID_PATTERN)
    level: EvidenceLevel
    type: EvidenceType
    label: str = Field(min_length=1)
    source: EvidenceSource
    viewport: EvidenceViewport
    timestamp: str = Field(min_length=1)
    ref: str = Field(pattern=EVIDENCE_REF_PATTERN)
    details: EvidenceDetail

    @model_validator(mode="after")
    def _check_consistency(self) -> "Evidence":
        if self.ref != evidence_ref(self.evidence_id):
            raise ValueError(f"ref must be '{evidence_ref(self.evidence_id)}'")
        if self.details.kind != self.type:
            raise ValueError(f"details.kind '{self.details.kind}' does not match type '{self.type}'")
        prefix = f"E_{self.source}_{self.viewport}_{self.type}_"
        if not self.evidence_id.startswith(prefix):
            raise ValueError(f"evidence_id must start with '{prefix}'")
        return self
