"""
Model package exports.

Import all SQLAlchemy models here so metadata registration works without
extra imports.
"""

from db.models.audit_job import AuditJob
from db.models.product import Product
from db.models.score_run import ScoreRun
from db.models.snapshot import Snapshot, SnapshotSource

__all__ = [
    "AuditJob",
    "Product",
    "ScoreRun",
    "Snapshot",
    "SnapshotSource",
]
