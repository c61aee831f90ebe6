"""
app/domain/audit.py

Domain models for one PDP audit run.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Literal

from app.keys.key_engine import AuditKeys
from app.schemas.evidence import Evidence
from app.schemas.ticket import Ticket

RunStatus = Literal["ok", "degraded", "failed"]

RUN_STATES = (
    "PENDING",
    "CACHE_CHECK",
    "CAPTURING",
    "EXTRACTING",
    "SYNTHESIZING",
    "PERSISTING",
    "REPORTING",
    "OK",
    "DEGRADED",
    "FAILED",
)
TERMINAL_STATES = frozenset({"OK", "DEGRADED", "FAILED"})


@dataclass(frozen=True)
class AuditOptions:
    """
    One audit request.
    """

    url: str
    mode: str = "solo"
    locale: str = "fr"
    copy_ready: bool = False
    white_label: bool = False
    timeout_ms: int | None = None
    block_resources: bool | None = None
    force_refresh: bool = False


@dataclass(frozen=True)
class PipelineError:
    """
    One recorded pipeline failure, normalized onto the macro stages.
    """

    stage: str
    code: str
    message: str
    timestamp: str
    missing_evidence_reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class StoredArtifact:
    """
    Reference to one uploaded capture artifact.
    """

    viewport: str
    kind: str
    path: str
    public_url: str
    size: int = 0
    cached: bool = False
    width: int | None = None
    height: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class AuditExports:
    tickets: list[Ticket] = field(default_factory=list)
    evidences: list[Evidence] = field(default_factory=list)
    score: dict[str, Any] | None = None
    reasoning: str = ""
    executive_summary: str = ""
    plan_30_60_90: dict[str, str] = field(default_factory=dict)
    ai_disabled: bool = False
    strategy: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "tickets": [ticket.model_dump(mode="json") for ticket in self.tickets],
            "evidences": [evidence.model_dump(mode="json") for evidence in self.evidences],
            "score": self.score,
            "reasoning": self.reasoning,
            "executive_summary": self.executive_summary,
            "plan_30_60_90": dict(self.plan_30_60_90),
            "ai_disabled": self.ai_disabled,
            "strategy": self.strategy,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "AuditExports":
        """
        Rebuild exports persisted by ``to_dict``.
        """

        return cls(
            tickets=[Ticket.model_validate(item) for item in payload.get("tickets") or []],
            evidences=[Evidence.model_validate(item) for item in payload.get("evidences") or []],
            score=payload.get("score"),
            reasoning=str(payload.get("reasoning") or ""),
            executive_summary=str(payload.get("executive_summary") or ""),
            plan_30_60_90=dict(payload.get("plan_30_60_90") or {}),
            ai_disabled=bool(payload.get("ai_disabled", False)),
            strategy=payload.get("strategy"),
        )


@dataclass(frozen=True)
class AuditResult:
    """
    Final outcome of one audit run. Always carries a status, every recorded
    error and whatever exports were produced.
    """

    keys: AuditKeys
    status: RunStatus
    duration_ms: int
    from_cache: bool = False
    exports: AuditExports = field(default_factory=AuditExports)
    report_urls: dict[str, str] = field(default_factory=dict)
    errors: list[PipelineError] = field(default_factory=list)
    report_meta: dict[str, Any] = field(default_factory=dict)
    artifacts: list[StoredArtifact] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "keys": self.keys.as_dict(),
            "status": self.status,
            "duration_ms": self.duration_ms,
            "from_cache": self.from_cache,
            "exports": self.exports.to_dict(),
            "report_urls": dict(self.report_urls),
            "errors": [error.to_dict() for error in self.errors],
            "report_meta": dict(self.report_meta),
            "artifacts": [artifact.to_dict() for artifact in self.artifacts],
        }


@dataclass(frozen=True)
class AuditRecord:
    """
    Everything persisted for one completed run, in upsert order:
    product, snapshot, snapshot source, score run, audit job.
    """

    keys: AuditKeys
    mode: str
    locale: str
    url: str
    normalized_urls: dict[str, str]
    viewports: dict[str, Any]
    capture_meta: dict[str, Any]
    captured_at: str
    artefacts: dict[str, Any]
    evidence_completeness: str
    exports: dict[str, Any]
    status: RunStatus
    errors: list[dict[str, Any]]
    report_meta: dict[str, Any]
    versions: dict[str, Any]
    source: str = "page_a"


@dataclass(frozen=True)
class StoredRun:
    """
    A persisted run as read back for the cache check.
    """

    run_key: str
    status: str
    exports: dict[str, Any]
    errors: list[dict[str, Any]] = field(default_factory=list)
    report_meta: dict[str, Any] = field(default_factory=dict)
    artefacts: dict[str, Any] = field(default_factory=dict)
    report_urls: dict[str, str] = field(default_factory=dict)
