"""
db/models/audit_job.py

Report-level audit job keyed by audit key.
"""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import ForeignKey, Index, String
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, TimestampMixin


class AuditJobStatus:
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class AuditJob(Base, TimestampMixin):
    __tablename__ = "audit_jobs"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    audit_key: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
    )
    run_key: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("score_runs.run_key", ondelete="CASCADE"),
        nullable=False,
    )
    mode: Mapped[str] = mapped_column(String(32), nullable=False)
    report_meta: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False)
    versions: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False)
    canonical_input: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False)
    report_urls: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=AuditJobStatus.PENDING,
    )

    __table_args__ = (
        Index("ix_audit_jobs_run_key", "run_key"),
        Index("ix_audit_jobs_status", "status"),
    )
