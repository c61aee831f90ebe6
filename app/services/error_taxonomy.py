"""
app/services/error_taxonomy.py

Maps fine-grained pipeline stages onto the reported macro stages and infers
why evidence is missing for capture and storage failures.
"""

from __future__ import annotations

from datetime import datetime, timezone

from app.domain.audit import PipelineError
from app.failure_codes import ERROR_STAGES, MISSING_EVIDENCE_REASONS

_STAGE_MACRO: dict[str, str] = {
    "normalize": "normalize",
    "keys": "normalize",
    "capture": "capture",
    "capture_mobile": "capture",
    "capture_desktop": "capture",
    "cache_check": "capture",
    "facts_collection": "detectors",
    "detectors": "detectors",
    "scoring": "scoring",
    "ai_generation": "scoring",
    "synthesis": "scoring",
    "validation": "scoring",
    "report": "report",
    "report_generation": "report",
    "delivery": "report",
    "render_pdf": "render_pdf",
    "storage": "storage",
    "persistence": "storage",
}

# Checked in order; the first keyword hit wins.
_REASON_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("timeout", ("timeout",)),
    ("blocked_by_cookie_consent", ("cookie", "consent")),
    ("blocked_by_popup", ("popup", "modal")),
    ("navigation_intercepted", ("navigation", "intercepted")),
    ("infinite_scroll_or_lazyload", ("lazy", "scroll", "infinite")),
)


def map_stage_to_macro(stage: str) -> str:
    value = (stage or "").strip().lower()
    if value in _STAGE_MACRO:
        return _STAGE_MACRO[value]
    if value.startswith("storage_"):
        return "storage"
    if value in ERROR_STAGES:
        return value
    return "unknown"


def infer_missing_evidence_reason(stage: str, code: str | None, message: str | None) -> str | None:
    """
    Reason a capture or storage failure left evidence missing.

    Returns None for every other macro stage.
    """

    if map_stage_to_macro(stage) not in {"capture", "storage"}:
        return None
    haystack = f"{code or ''} {message or ''}".lower()
    for reason, keywords in _REASON_KEYWORDS:
        if any(keyword in haystack for keyword in keywords):
            return reason
    return "unknown_render_issue"


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def make_pipeline_error(
    stage: str,
    code: str,
    message: str,
    *,
    timestamp: str | None = None,
    missing_evidence_reason: str | None = None,
) -> PipelineError:
    """
    Normalize one raw failure into a reported pipeline error.
    """

    reason = missing_evidence_reason
    if reason is not None and reason not in MISSING_EVIDENCE_REASONS:
        reason = None
    if reason is None:
        reason = infer_missing_evidence_reason(stage, code, message)
    return PipelineError(
        stage=map_stage_to_macro(stage),
        code=code or "",
        message=message or "",
        timestamp=timestamp or utc_timestamp(),
        missing_evidence_reason=reason,
    )


class ErrorCollector:
    """
    Ordered error list for one run.
    """

    def __init__(self) -> None:
        self._errors: list[PipelineError] = []

    def record(self, stage: str, code: str, message: str, **kwargs: str | None) -> PipelineError:
        error = make_pipeline_error(stage, code, message, **kwargs)
        self._errors.append(error)
        return error

    def extend(self, errors: list[PipelineError]) -> None:
        self._errors.extend(errors)

    @property
    def errors(self) -> list[PipelineError]:
        return list(self._errors)

    def __len__(self) -> int:
        return len(self._errors)

    def __bool__(self) -> bool:
        return bool(self._errors)
