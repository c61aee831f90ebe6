"""
db/models/snapshot.py

Capture snapshots and their per-page sources.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, TimestampMixin


class SnapshotStatus:
    OK = "ok"
    DEGRADED = "degraded"
    FAILED = "failed"


class Snapshot(Base, TimestampMixin):
    __tablename__ = "snapshots"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    snapshot_key: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
    )
    product_key: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("products.product_key", ondelete="CASCADE"),
        nullable=False,
    )
    locale: Mapped[str] = mapped_column(String(8), nullable=False)
    viewports: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False)
    capture_meta: Mapped[dict[str, Any] | None] = mapped_column(
        JSONB,
        nullable=True,
        comment="Capture options used: timeout, resource blocking",
    )
    versions: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False)
    canonical_input: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False)
    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=SnapshotStatus.OK,
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    __table_args__ = (
        Index("ix_snapshots_product_key", "product_key"),
    )


class SnapshotSource(Base, TimestampMixin):
    __tablename__ = "snapshot_sources"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    snapshot_key: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("snapshots.snapshot_key", ondelete="CASCADE"),
        nullable=False,
    )
    source: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        comment="page_a, page_b, before, after",
    )
    url: Mapped[str] = mapped_column(String(2048), nullable=False)
    captured_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    artefacts: Mapped[dict[str, Any]] = mapped_column(
        JSONB,
        nullable=False,
        comment="Stored artifact references and the fact record",
    )
    evidence_completeness: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        comment="complete, partial, insufficient",
    )
    missing_evidence: Mapped[list[Any]] = mapped_column(JSONB, nullable=False, default=list)

    __table_args__ = (
        UniqueConstraint("snapshot_key", "source", name="uq_snapshot_sources_snapshot_source"),
    )
