"""
db/repositories/audit_repository.py

Persistence layer for audit runs: product, snapshot, snapshot source,
score run and audit job.

Every write is an idempotent upsert on the table's key column. The
repository never commits; :class:`SqlAuditStore` owns the transaction.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.domain.audit import AuditRecord, StoredRun
from db.models.audit_job import AuditJob, AuditJobStatus
from db.models.product import Product
from db.models.score_run import ScoreRun
from db.models.snapshot import Snapshot, SnapshotSource
from db.session import SessionLocal

logger = logging.getLogger(__name__)

_SOURCE_CONSTRAINT = "uq_snapshot_sources_snapshot_source"


class AuditPersistenceError(Exception):
    """Raised when an audit run cannot be read or written."""


def _now_utc() -> datetime:
    return datetime.now(tz=timezone.utc)


def _parse_timestamp(value: str) -> datetime:
    try:
        parsed = datetime.fromisoformat(value)
    except (TypeError, ValueError):
        return _now_utc()
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


class AuditRepository:
    """
    Upserts and lookups for one session.

    Parameters
    ----------
    session:
        Open SQLAlchemy session. Commit and rollback stay with the caller.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def upsert_product(self, record: AuditRecord) -> None:
        versions = {"normalize_version": record.versions.get("normalize_version")}
        canonical_input = {
            "mode": record.mode,
            "normalized_urls": dict(record.normalized_urls),
            "normalize_version": versions["normalize_version"],
        }
        stmt = (
            insert(Product)
            .values(
                product_key=record.keys.product_key,
                mode=record.mode,
                normalized_urls=dict(record.normalized_urls),
                versions=versions,
                canonical_input=canonical_input,
                last_seen_at=_now_utc(),
            )
            .on_conflict_do_update(
                index_elements=[Product.product_key],
                set_={"last_seen_at": _now_utc(), "updated_at": _now_utc()},
            )
        )
        self._session.execute(stmt)

    def upsert_snapshot(self, record: AuditRecord) -> None:
        versions = {
            "engine_version": record.versions.get("engine_version"),
            "normalize_version": record.versions.get("normalize_version"),
        }
        canonical_input = {
            "product_key": record.keys.product_key,
            "locale": record.locale,
            "viewports": dict(record.viewports),
            "engine_version": versions["engine_version"],
        }
        captured_at = _parse_timestamp(record.captured_at)
        stmt = (
            insert(Snapshot)
            .values(
                snapshot_key=record.keys.snapshot_key,
                product_key=record.keys.product_key,
                locale=record.locale,
                viewports=dict(record.viewports),
                capture_meta=dict(record.capture_meta),
                versions=versions,
                canonical_input=canonical_input,
                status=record.status,
                completed_at=captured_at,
            )
            .on_conflict_do_update(
                index_elements=[Snapshot.snapshot_key],
                set_={
                    "capture_meta": dict(record.capture_meta),
                    "status": record.status,
                    "completed_at": captured_at,
                    "updated_at": _now_utc(),
                },
            )
        )
        self._session.execute(stmt)

    def upsert_snapshot_source(self, record: AuditRecord) -> None:
        url = record.normalized_urls.get(record.source, record.url)
        stmt = (
            insert(SnapshotSource)
            .values(
                snapshot_key=record.keys.snapshot_key,
                source=record.source,
                url=url,
                captured_at=_parse_timestamp(record.captured_at),
                artefacts=dict(record.artefacts),
                evidence_completeness=record.evidence_completeness,
                missing_evidence=[
                    error for error in record.errors if error.get("missing_evidence_reason")
                ],
            )
            .on_conflict_do_update(
                constraint=_SOURCE_CONSTRAINT,
                set_={
                    "url": url,
                    "captured_at": _parse_timestamp(record.captured_at),
                    "artefacts": dict(record.artefacts),
                    "evidence_completeness": record.evidence_completeness,
                    "updated_at": _now_utc(),
                },
            )
        )
        self._session.execute(stmt)

    def upsert_score_run(self, record: AuditRecord) -> None:
        versions = {
            "detectors_version": record.versions.get("detectors_version"),
            "scoring_version": record.versions.get("scoring_version"),
        }
        canonical_input = {
            "snapshot_key": record.keys.snapshot_key,
            "detectors_version": versions["detectors_version"],
            "scoring_version": versions["scoring_version"],
            "mode": record.mode,
        }
        stmt = (
            insert(ScoreRun)
            .values(
                run_key=record.keys.run_key,
                snapshot_key=record.keys.snapshot_key,
                mode=record.mode,
                versions=versions,
                canonical_input=canonical_input,
                exports=dict(record.exports),
                status=record.status,
                errors=list(record.errors),
                completed_at=_now_utc(),
            )
            .on_conflict_do_update(
                index_elements=[ScoreRun.run_key],
                set_={
                    "exports": dict(record.exports),
                    "status": record.status,
                    "errors": list(record.errors),
                    "completed_at": _now_utc(),
                    "updated_at": _now_utc(),
                },
            )
        )
        self._session.execute(stmt)

    def upsert_audit_job(self, record: AuditRecord) -> None:
        canonical_input = {
            "run_key": record.keys.run_key,
            "mode": record.mode,
            "url": record.url,
            "locale": record.locale,
        }
        stmt = (
            insert(AuditJob)
            .values(
                audit_key=record.keys.audit_key,
                run_key=record.keys.run_key,
                mode=record.mode,
                report_meta=dict(record.report_meta),
                versions=dict(record.versions),
                canonical_input=canonical_input,
                status=AuditJobStatus.PENDING,
            )
            .on_conflict_do_update(
                index_elements=[AuditJob.audit_key],
                set_={
                    "run_key": record.keys.run_key,
                    "report_meta": dict(record.report_meta),
                    "versions": dict(record.versions),
                    "status": AuditJobStatus.PENDING,
                    "updated_at": _now_utc(),
                },
            )
        )
        self._session.execute(stmt)

    def save_audit(self, record: AuditRecord) -> None:
        """
        Upsert the five rows of one run, parents first.
        """

        self.upsert_product(record)
        self.upsert_snapshot(record)
        self.upsert_snapshot_source(record)
        self.upsert_score_run(record)
        self.upsert_audit_job(record)

    def update_audit_job(
        self,
        audit_key: str,
        *,
        status: str,
        report_urls: dict[str, str] | None = None,
    ) -> None:
        job = self._session.scalars(select(AuditJob).where(AuditJob.audit_key == audit_key)).first()
        if job is None:
            return
        job.status = status
        if report_urls is not None:
            job.report_urls = dict(report_urls)

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_run(self, run_key: str) -> StoredRun | None:
        """
        Exact-key lookup of a score run with its page source and job.
        """

        run = self._session.scalars(select(ScoreRun).where(ScoreRun.run_key == run_key)).first()
        if run is None:
            return None
        source = self._session.scalars(
            select(SnapshotSource).where(
                SnapshotSource.snapshot_key == run.snapshot_key,
                SnapshotSource.source == "page_a",
            )
        ).first()
        job = self._session.scalars(
            select(AuditJob).where(AuditJob.run_key == run_key).order_by(AuditJob.updated_at.desc())
        ).first()
        return StoredRun(
            run_key=run.run_key,
            status=run.status,
            exports=dict(run.exports or {}),
            errors=list(run.errors or []),
            report_meta=dict(job.report_meta or {}) if job is not None else {},
            artefacts=dict(source.artefacts or {}) if source is not None else {},
            report_urls=dict(job.report_urls or {}) if job is not None else {},
        )


class SqlAuditStore:
    """
    Transactional audit store over :class:`AuditRepository`.

    Each call runs in its own session; database failures surface as
    :class:`AuditPersistenceError`.
    """

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal) -> None:
        self._session_factory = session_factory

    def get_run(self, run_key: str) -> StoredRun | None:
        session = self._session_factory()
        try:
            return AuditRepository(session).get_run(run_key)
        except SQLAlchemyError as exc:
            raise AuditPersistenceError(f"Run lookup failed for {run_key}: {exc}") from exc
        finally:
            session.close()

    def save_audit(self, record: AuditRecord) -> None:
        session = self._session_factory()
        try:
            AuditRepository(session).save_audit(record)
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.exception("Audit persistence failed run_key=%s", record.keys.run_key)
            raise AuditPersistenceError(f"Persisting run {record.keys.run_key} failed: {exc}") from exc
        finally:
            session.close()

    def update_audit_job(self, audit_key: str, *, status: str, report_urls: dict[str, Any] | None = None) -> None:
        session = self._session_factory()
        try:
            AuditRepository(session).update_audit_job(audit_key, status=status, report_urls=report_urls)
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise AuditPersistenceError(f"Updating audit job {audit_key} failed: {exc}") from exc
        finally:
            session.close()
