"""
db/models/score_run.py

One scored run: tickets, evidences and narrative exports keyed by run key.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, ForeignKey, Index, String
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, TimestampMixin


class ScoreRun(Base, TimestampMixin):
    __tablename__ = "score_runs"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    run_key: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
    )
    snapshot_key: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("snapshots.snapshot_key", ondelete="CASCADE"),
        nullable=False,
    )
    mode: Mapped[str] = mapped_column(String(32), nullable=False)
    versions: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False)
    canonical_input: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False)
    exports: Mapped[dict[str, Any]] = mapped_column(
        JSONB,
        nullable=False,
        comment="Tickets, evidences, score and narrative",
    )
    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        comment="ok, degraded, failed",
    )
    errors: Mapped[list[Any]] = mapped_column(JSONB, nullable=False, default=list)
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    __table_args__ = (
        Index("ix_score_runs_snapshot_key", "snapshot_key"),
        Index("ix_score_runs_status", "status"),
    )
