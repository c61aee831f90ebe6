"""
db/session.py

Lazily built engine and session factory for the audit store.
"""

from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from db.config import DatabaseSettings, get_database_settings

_engine: Engine | None = None
_session_factory: sessionmaker | None = None


def create_db_engine(settings: DatabaseSettings | None = None) -> Engine:
    """
    Build a pooled PostgreSQL engine. Upserts rely on ``ON CONFLICT``,
    so other backends are refused.
    """

    resolved = settings or get_database_settings()
    if not resolved.url.startswith("postgresql"):
        raise RuntimeError("Only PostgreSQL URLs are supported.")
    return create_engine(
        resolved.url,
        echo=resolved.echo,
        pool_pre_ping=True,
        pool_recycle=resolved.pool_recycle_seconds,
        pool_size=resolved.pool_size,
        max_overflow=resolved.max_overflow,
    )


def get_engine() -> Engine:
    global _engine
    if _engine is None:
        _engine = create_db_engine()
    return _engine


def SessionLocal() -> Session:
    """
    Open a new session on the shared engine. The engine is created on first use.
    """

    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(
            bind=get_engine(),
            class_=Session,
            autoflush=False,
            expire_on_commit=False,
        )
    return _session_factory()

