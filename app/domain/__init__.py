"""
app/domain package marker.
"""

from app.domain.audit import (
    AuditExports,
    AuditOptions,
    AuditRecord,
    AuditResult,
    PipelineError,
    StoredArtifact,
    StoredRun,
)

__all__ = [
    "AuditExports",
    "AuditOptions",
    "AuditRecord",
    "AuditResult",
    "PipelineError",
    "StoredArtifact",
    "StoredRun",
]
