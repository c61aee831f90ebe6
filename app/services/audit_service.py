"""
app/services/audit_service.py

Audit pipeline orchestrator.

State machine
-------------
PENDING -> CACHE_CHECK -> CAPTURING -> EXTRACTING -> SYNTHESIZING
-> PERSISTING -> REPORTING -> OK | DEGRADED | FAILED

Fatal: both captures failing, persistence failing. Everything else is
recorded as a pipeline error and the run continues in degraded mode.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Protocol

from pydantic import ValidationError

from app.capture.engine import CaptureOrchestrator
from app.capture.session_pool import BrowserSessionPool
from app.capture.types import VIEWPORTS, CaptureOptions, CapturePair, viewport_key_dicts
from app.config import (
    AuditSettings,
    CaptureSettings,
    get_audit_settings,
    get_capture_settings,
)
from app.domain.audit import (
    RUN_STATES,
    TERMINAL_STATES,
    AuditExports,
    AuditOptions,
    AuditRecord,
    AuditResult,
    PipelineError,
    StoredArtifact,
    StoredRun,
)
from app.facts.extractor import FactsExtractor
from app.facts.types import FactRecord
from app.keys.key_engine import AuditKeys, derive_all_keys
from app.keys.url_normalizer import normalize_url
from app.keys.versions import VERSIONS
from app.logging_utils import log_event
from app.schemas.evidence import Evidence
from app.services.error_taxonomy import ErrorCollector
from app.services.evidence_builder import build_evidences, evidence_completeness
from app.services.report_delivery import CsvReportGenerator, ReportGenerator
from app.services.synthesis_service import SynthesisResult, SynthesisService
from app.storage import get_blob_storage
from app.storage.base import BlobStorage, UploadError
from rules.scoring import ScoreResult, StrategistScorer

logger = logging.getLogger(__name__)

UPLOAD_KINDS = ("screenshot", "html")
MAX_UPLOAD_WORKERS = 4


class AuditStore(Protocol):
    """
    Persistence seam of the pipeline. ``db.repositories.SqlAuditStore`` is
    the production implementation.
    """

    def get_run(self, run_key: str) -> StoredRun | None:
        ...

    def save_audit(self, record: AuditRecord) -> None:
        ...

    def update_audit_job(
        self,
        audit_key: str,
        *,
        status: str,
        report_urls: dict[str, Any] | None = None,
    ) -> None:
        ...


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _stored_errors(raw: list[dict[str, Any]]) -> list[PipelineError]:
    errors: list[PipelineError] = []
    for item in raw:
        errors.append(
            PipelineError(
                stage=str(item.get("stage") or "unknown"),
                code=str(item.get("code") or ""),
                message=str(item.get("message") or ""),
                timestamp=str(item.get("timestamp") or _utc_now()),
                missing_evidence_reason=item.get("missing_evidence_reason"),
            )
        )
    return errors


class AuditPipeline:
    """
    Runs one audit end to end.

    A pipeline instance serves a single run: the capture orchestrator it
    holds wraps a browser session pool scoped to that run, and both the pool
    and the report generator are closed when ``run`` returns.

    Parameters
    ----------
    capture:
        Two-viewport capture orchestrator for this run.
    storage:
        Blob storage for screenshots and markup snapshots.
    store:
        Run persistence (upserts plus exact-key lookup).
    synthesis:
        Ticket synthesis service; built from settings when omitted.
    report_generator:
        Report delivery collaborator; CSV upload by default.
    """

    def __init__(
        self,
        *,
        capture: CaptureOrchestrator,
        storage: BlobStorage,
        store: AuditStore,
        synthesis: SynthesisService | None = None,
        extractor: FactsExtractor | None = None,
        scorer: StrategistScorer | None = None,
        report_generator: ReportGenerator | None = None,
        capture_settings: CaptureSettings | None = None,
        audit_settings: AuditSettings | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._capture = capture
        self._storage = storage
        self._store = store
        self._synthesis = synthesis or SynthesisService()
        self._extractor = extractor or FactsExtractor()
        self._scorer = scorer or StrategistScorer()
        self._report_generator = report_generator or CsvReportGenerator(storage)
        self._capture_settings = capture_settings or get_capture_settings()
        self._audit_settings = audit_settings or get_audit_settings()
        self._clock = clock
        self.state = "PENDING"
        self.state_history: list[str] = ["PENDING"]

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def _transition(self, state: str) -> None:
        if state not in RUN_STATES:
            raise ValueError(f"Unknown run state '{state}'.")
        if self.state in TERMINAL_STATES:
            raise RuntimeError(f"Run already finished in state '{self.state}'.")
        self.state = state
        self.state_history.append(state)
        logger.debug("Audit run state -> %s", state)

    def _elapsed_ms(self, started: float) -> int:
        return int((self._clock() - started) * 1000)

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def run(self, options: AuditOptions) -> AuditResult:
        started = self._clock()
        try:
            result = self._run(options, started)
        finally:
            self._cleanup()
        log_event(
            logger,
            logging.INFO if result.status != "failed" else logging.WARNING,
            "audit_completed",
            run_key=result.keys.run_key,
            status=result.status,
            from_cache=result.from_cache,
            duration_ms=result.duration_ms,
            error_count=len(result.errors),
            ticket_count=len(result.exports.tickets),
        )
        return result

    def _run(self, options: AuditOptions, started: float) -> AuditResult:
        errors = ErrorCollector()
        mode = options.mode or self._audit_settings.default_mode
        locale = (options.locale or self._audit_settings.default_locale).lower()
        normalized_url = normalize_url(options.url)
        keys = derive_all_keys(
            mode=mode,
            urls={"page_a": options.url},
            locale=locale,
            viewports=viewport_key_dicts(),
            copy_ready=options.copy_ready,
            white_label=options.white_label,
        )
        report_meta: dict[str, Any] = {
            "mode": mode,
            "evidence_completeness": "insufficient",
            "alignment_level": None,
            "url": options.url,
            "normalized_url": normalized_url,
            "locale": locale,
            "captured_at": _utc_now(),
        }

        # ---- cache check ------------------------------------------------
        self._transition("CACHE_CHECK")
        if not options.force_refresh:
            cached = self._check_cache(keys, errors, started)
            if cached is not None:
                return cached

        # ---- capture ----------------------------------------------------
        self._transition("CAPTURING")
        capture_options = CaptureOptions(
            timeout_ms=options.timeout_ms or self._capture_settings.timeout_ms,
            block_resources=(
                options.block_resources
                if options.block_resources is not None
                else self._capture_settings.block_resources
            ),
            selector_wait_ms=self._capture_settings.selector_wait_ms,
            scroll_settle_ms=self._capture_settings.scroll_settle_ms,
        )
        pair = self._capture.capture_both(options.url, capture_options)
        for result in pair.results():
            if result.error is not None:
                errors.record(
                    f"capture_{result.viewport}",
                    result.error.type.upper(),
                    result.error.message,
                )
        if pair.all_failed:
            return self._finish("failed", keys, errors, started, report_meta=report_meta)

        captured_at = next(
            (result.artifact.captured_at for result in pair.results() if result.artifact is not None),
            _utc_now(),
        )
        report_meta["captured_at"] = captured_at

        # ---- extraction -------------------------------------------------
        self._transition("EXTRACTING")
        facts = self._extract(pair, errors)
        stored = self._upload_artifacts(keys.snapshot_key, pair, errors)
        evidences = build_evidences(stored, captured_at=captured_at, facts=facts)
        completeness = evidence_completeness(stored, facts)
        report_meta["evidence_completeness"] = completeness

        # ---- synthesis --------------------------------------------------
        self._transition("SYNTHESIZING")
        score = self._score(facts, errors)
        synthesis = self._synthesize(facts, evidences, locale, mode, score, completeness, errors)
        exports = AuditExports(
            tickets=list(synthesis.tickets),
            evidences=list(synthesis.evidences),
            score=score.to_dict() if score is not None else None,
            reasoning=synthesis.reasoning,
            executive_summary=synthesis.executive_summary,
            plan_30_60_90=dict(synthesis.plan_30_60_90),
            ai_disabled=synthesis.ai_disabled,
            strategy=synthesis.strategy,
        )

        # ---- persistence ------------------------------------------------
        self._transition("PERSISTING")
        run_status = "degraded" if errors else "ok"
        record = AuditRecord(
            keys=keys,
            mode=mode,
            locale=locale,
            url=options.url,
            normalized_urls={"page_a": normalized_url},
            viewports=viewport_key_dicts(),
            capture_meta={
                "timeout_ms": capture_options.timeout_ms,
                "block_resources": capture_options.block_resources,
                "captures": {
                    result.viewport: result.artifact.metadata()
                    for result in pair.results()
                    if result.artifact is not None
                },
            },
            captured_at=captured_at,
            artefacts={
                "artifacts": [artifact.to_dict() for artifact in stored],
                "facts": facts.to_dict() if facts is not None else None,
                "facts_version": VERSIONS["detectors_version"] if facts is not None else None,
            },
            evidence_completeness=completeness,
            exports=exports.to_dict(),
            status=run_status,
            errors=[error.to_dict() for error in errors.errors],
            report_meta=dict(report_meta),
            versions=dict(VERSIONS),
        )
        try:
            self._store.save_audit(record)
        except Exception as exc:
            errors.record("persistence", "DB_ERROR", str(exc) or type(exc).__name__)
            return self._finish(
                "failed",
                keys,
                errors,
                started,
                exports=exports,
                report_meta=report_meta,
                artifacts=stored,
            )

        # ---- report delivery --------------------------------------------
        self._transition("REPORTING")
        interim = AuditResult(
            keys=keys,
            status=run_status,
            duration_ms=self._elapsed_ms(started),
            exports=exports,
            errors=errors.errors,
            report_meta=dict(report_meta),
            artifacts=list(stored),
        )
        report_urls = self._deliver(interim, keys, errors)

        return self._finish(
            "degraded" if errors else "ok",
            keys,
            errors,
            started,
            exports=exports,
            report_meta=report_meta,
            artifacts=stored,
            report_urls=report_urls,
        )

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _check_cache(self, keys: AuditKeys, errors: ErrorCollector, started: float) -> AuditResult | None:
        try:
            stored = self._store.get_run(keys.run_key)
        except Exception as exc:
            errors.record("cache_check", "CACHE_ERROR", str(exc) or type(exc).__name__)
            return None
        if stored is None or stored.status != "ok":
            return None
        try:
            exports = AuditExports.from_dict(stored.exports)
        except ValidationError as exc:
            errors.record("cache_check", "EXPORTS_VALIDATION_FAILED", f"Invalid exports in cache: {exc}")
            return None

        artifacts = [
            StoredArtifact(**item)
            for item in stored.artefacts.get("artifacts") or []
            if isinstance(item, dict)
        ]
        self._transition("OK")
        return AuditResult(
            keys=keys,
            status="ok",
            duration_ms=self._elapsed_ms(started),
            from_cache=True,
            exports=exports,
            report_urls=dict(stored.report_urls),
            errors=_stored_errors(stored.errors),
            report_meta=dict(stored.report_meta),
            artifacts=artifacts,
        )

    def _extract(self, pair: CapturePair, errors: ErrorCollector) -> FactRecord | None:
        artifact = pair.artifact("mobile") or pair.artifact("desktop")
        if artifact is None:
            return None
        try:
            return self._extractor.extract(artifact.markup, lcp_ms=artifact.lcp_ms)
        except Exception as exc:
            errors.record("facts_collection", "FACTS_COLLECTION_ERROR", str(exc) or type(exc).__name__)
            return None

    def _upload_one(self, namespace_key: str, viewport: str, kind: str, data: bytes) -> StoredArtifact:
        # Evidence must match this run's capture, never a file left by an earlier one.
        upload = self._storage.upload(namespace_key, viewport, data, kind=kind, overwrite=True)
        return StoredArtifact(
            viewport=viewport,
            kind=kind,
            path=upload.path,
            public_url=upload.public_url,
            size=upload.size,
            cached=upload.cached,
        )

    def _upload_artifacts(
        self,
        namespace_key: str,
        pair: CapturePair,
        errors: ErrorCollector,
    ) -> list[StoredArtifact]:
        """
        Upload every captured artifact in parallel; failures are recorded
        per artifact and never abort the run.
        """

        jobs: list[tuple[str, str, bytes]] = []
        for viewport in VIEWPORTS:
            artifact = pair.artifact(viewport)
            if artifact is None:
                continue
            jobs.append((viewport, "screenshot", artifact.screenshot))
            jobs.append((viewport, "html", artifact.markup.encode("utf-8")))
        if not jobs:
            return []

        stored: list[StoredArtifact] = []
        with ThreadPoolExecutor(max_workers=min(MAX_UPLOAD_WORKERS, len(jobs))) as executor:
            futures = [
                (viewport, kind, executor.submit(self._upload_one, namespace_key, viewport, kind, data))
                for viewport, kind, data in jobs
            ]
            for viewport, kind, future in futures:
                try:
                    stored.append(future.result())
                except UploadError as exc:
                    self._record_upload_failure(errors, viewport, kind, exc.type.upper(), exc.message)
                except Exception as exc:
                    self._record_upload_failure(errors, viewport, kind, "UNKNOWN", str(exc) or type(exc).__name__)
        return stored

    @staticmethod
    def _record_upload_failure(
        errors: ErrorCollector,
        viewport: str,
        kind: str,
        code: str,
        message: str,
    ) -> None:
        errors.record(f"storage_{viewport}_{kind}", code, message)
        log_event(
            logger,
            logging.WARNING,
            "artifact_upload_failed",
            viewport=viewport,
            kind=kind,
            code=code,
            message=message,
        )

    def _score(self, facts: FactRecord | None, errors: ErrorCollector) -> ScoreResult | None:
        if facts is None:
            return None
        try:
            return self._scorer.score(facts)
        except Exception as exc:
            errors.record("scoring", "SCORING_ERROR", str(exc) or type(exc).__name__)
            return None

    def _synthesize(
        self,
        facts: FactRecord | None,
        evidences: list[Evidence],
        locale: str,
        mode: str,
        score: ScoreResult | None,
        completeness: str,
        errors: ErrorCollector,
    ) -> SynthesisResult:
        if facts is None:
            return self._synthesis.degraded(None, evidences, locale, mode=mode)
        try:
            result = self._synthesis.synthesize(
                facts,
                evidences,
                locale,
                mode=mode,
                score=score,
                evidence_completeness=completeness,
            )
        except Exception as exc:
            errors.record("synthesis", "SYNTHESIS_ERROR", str(exc) or type(exc).__name__)
            log_event(logger, logging.WARNING, "synthesis_fallback", stage="synthesis", reason=str(exc))
            return self._synthesis.degraded(facts, evidences, locale, mode=mode)

        if result.skipped_reason == "insufficient_evidence":
            errors.record(
                "scoring",
                "INSUFFICIENT_EVIDENCE",
                "Evidence completeness is insufficient; synthesis skipped.",
            )
        if result.metadata.get("gate_status") == "fallback":
            errors.record(
                "validation",
                "AI_VALIDATION_FAILED",
                f"{result.metadata.get('gate_stage')}: {result.metadata.get('gate_reason')}",
            )
        return result

    def _deliver(self, interim: AuditResult, keys: AuditKeys, errors: ErrorCollector) -> dict[str, str]:
        try:
            report_urls = self._report_generator.generate(interim)
        except Exception as exc:
            errors.record("report_generation", "REPORT_GENERATION_ERROR", str(exc) or type(exc).__name__)
            return {}
        try:
            self._store.update_audit_job(keys.audit_key, status="completed", report_urls=report_urls)
        except Exception as exc:
            errors.record("delivery", "JOB_UPDATE_FAILED", str(exc) or type(exc).__name__)
        return report_urls

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    def _finish(
        self,
        status: str,
        keys: AuditKeys,
        errors: ErrorCollector,
        started: float,
        *,
        exports: AuditExports | None = None,
        report_meta: dict[str, Any] | None = None,
        artifacts: list[StoredArtifact] | None = None,
        report_urls: dict[str, str] | None = None,
    ) -> AuditResult:
        self._transition(status.upper())
        return AuditResult(
            keys=keys,
            status=status,
            duration_ms=self._elapsed_ms(started),
            from_cache=False,
            exports=exports or AuditExports(),
            report_urls=dict(report_urls or {}),
            errors=errors.errors,
            report_meta=dict(report_meta or {}),
            artifacts=list(artifacts or []),
        )

    def _cleanup(self) -> None:
        try:
            self._capture.close()
        except Exception as exc:
            logger.warning("Capture cleanup failed: %s", exc)
        try:
            self._report_generator.close()
        except Exception as exc:
            logger.warning("Report generator cleanup failed: %s", exc)


def run_audit(
    options: AuditOptions,
    *,
    store: AuditStore | None = None,
    storage: BlobStorage | None = None,
    capture_settings: CaptureSettings | None = None,
) -> AuditResult:
    """
    Run one audit with production collaborators: a fresh browser session
    pool, the configured blob storage and the SQL audit store.
    """

    from app.capture.playwright_adapter import PlaywrightCaptureAdapter
    from db.repositories.audit_repository import SqlAuditStore

    settings = capture_settings or get_capture_settings()
    pool = BrowserSessionPool(
        settings.max_browser_sessions,
        headless=settings.headless,
        drain_timeout_seconds=settings.session_drain_seconds,
    )
    resolved_storage = storage or get_blob_storage()
    pipeline = AuditPipeline(
        capture=CaptureOrchestrator.from_settings(PlaywrightCaptureAdapter(pool), settings),
        storage=resolved_storage,
        store=store or SqlAuditStore(),
        capture_settings=settings,
    )
    return pipeline.run(options)
