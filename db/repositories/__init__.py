"""
Repository layer exports.
"""

from db.repositories.audit_repository import AuditPersistenceError, AuditRepository, SqlAuditStore

__all__ = [
    "AuditPersistenceError",
    "AuditRepository",
    "SqlAuditStore",
]
