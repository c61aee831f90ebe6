"""
db/models/product.py

Audited product identity, keyed by the product cache key.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, String
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, TimestampMixin


class Product(Base, TimestampMixin):
    __tablename__ = "products"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    product_key: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
    )
    mode: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        comment="solo, duo_ab, duo_before_after",
    )
    normalized_urls: Mapped[dict[str, Any]] = mapped_column(
        JSONB,
        nullable=False,
        comment="Normalized URL per page role",
    )
    versions: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False)
    canonical_input: Mapped[dict[str, Any]] = mapped_column(
        JSONB,
        nullable=False,
        comment="Exact semantic input hashed into product_key",
    )
    last_seen_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
