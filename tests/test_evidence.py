"""
tests/test_evidence.py

Pytest unit tests for the evidence contract and the evidence builder.

Coverage
--------
- Evidence id format and reference consistency
- Detail discriminator and type agreement
- One evidence item per stored artifact, unknown kinds skipped
- Run-unique ids when a label repeats
- Evidence completeness levels
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from app.domain.audit import StoredArtifact
from app.schemas.evidence import (
    Evidence,
    ScreenshotDetail,
    evidence_id_from_ref,
    evidence_ref,
    is_evidence_id,
)
from app.services.evidence_builder import (
    build_evidence_id,
    build_evidences,
    evidence_completeness,
    slugify_label,
)

CAPTURED_AT = "2026-03-01T10:00:00+00:00"


def _evidence(**overrides) -> Evidence:
    evidence_id = "E_page_a_mobile_screenshot_above_fold_01"
    payload = {
        "evidence_id": evidence_id,
        "level": "A",
        "type": "screenshot",
        "label": "above_fold",
        "source": "page_a",
        "viewport": "mobile",
        "timestamp": CAPTURED_AT,
        "ref": evidence_ref(evidence_id),
        "details": {"kind": "screenshot", "width": 390, "height": 844},
    }
    payload.update(overrides)
    return Evidence(**payload)


# ---------------------------------------------------------------------------
# Contract
# ---------------------------------------------------------------------------


class TestEvidenceContract:
    def test_valid_item(self) -> None:
        evidence = _evidence()
        assert isinstance(evidence.details, ScreenshotDetail)
        assert evidence.ref == "#evidence-E_page_a_mobile_screenshot_above_fold_01"

    def test_ref_must_match_id(self) -> None:
        with pytest.raises(ValidationError):
            _evidence(ref="#evidence-E_page_a_mobile_screenshot_above_fold_02")

    def test_storage_url_is_not_a_ref(self) -> None:
        with pytest.raises(ValidationError):
            _evidence(ref="https://cdn.example.com/snap/mobile.png")

    def test_details_kind_must_match_type(self) -> None:
        with pytest.raises(ValidationError):
            _evidence(details={"kind": "detection"})

    def test_id_prefix_must_match_fields(self) -> None:
        with pytest.raises(ValidationError):
            _evidence(viewport="desktop")

    def test_unknown_level_rejected(self) -> None:
        with pytest.raises(ValidationError):
            _evidence(level="D")

    def test_extra_fields_rejected(self) -> None:
        with pytest.raises(ValidationError):
            _evidence(storage_url="https://cdn.example.com/x.png")

    def test_id_helpers(self) -> None:
        evidence_id = "E_page_a_na_detection_html_snapshot_03"
        assert is_evidence_id(evidence_id) is True
        assert is_evidence_id("E_page_a_tablet_screenshot_x_01") is False
        assert evidence_id_from_ref(evidence_ref(evidence_id)) == evidence_id
        assert evidence_id_from_ref(evidence_id) == evidence_id


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------


class TestBuildEvidences:
    def test_one_item_per_artifact(self, full_artifacts, shopify_facts) -> None:
        evidences = build_evidences(full_artifacts, captured_at=CAPTURED_AT, facts=shopify_facts)
        assert [item.evidence_id for item in evidences] == [
            "E_page_a_mobile_screenshot_above_fold_01",
            "E_page_a_mobile_detection_html_snapshot_01",
            "E_page_a_desktop_screenshot_above_fold_01",
            "E_page_a_desktop_detection_html_snapshot_01",
        ]
        assert all(item.level == "A" for item in evidences)
        assert all(item.timestamp == CAPTURED_AT for item in evidences)

    def test_storage_location_lives_in_details(self, full_artifacts) -> None:
        evidences = build_evidences(full_artifacts, captured_at=CAPTURED_AT)
        first = evidences[0]
        assert first.details.public_url == full_artifacts[0].public_url
        assert first.ref == evidence_ref(first.evidence_id)

    def test_screenshot_dimensions_default_to_profile(self, full_artifacts) -> None:
        evidences = build_evidences(full_artifacts, captured_at=CAPTURED_AT)
        assert (evidences[0].details.width, evidences[0].details.height) == (390, 844)
        assert (evidences[2].details.width, evidences[2].details.height) == (1440, 900)

    def test_detection_carries_fact_summary(self, full_artifacts, shopify_facts) -> None:
        evidences = build_evidences(full_artifacts, captured_at=CAPTURED_AT, facts=shopify_facts)
        assert evidences[1].details.facts_summary["has_atc_button"] is True

    def test_repeated_label_gets_next_index(self, artifact_factory) -> None:
        artifacts = [artifact_factory("mobile", "screenshot"), artifact_factory("mobile", "screenshot")]
        ids = [item.evidence_id for item in build_evidences(artifacts, captured_at=CAPTURED_AT)]
        assert ids == [
            "E_page_a_mobile_screenshot_above_fold_01",
            "E_page_a_mobile_screenshot_above_fold_02",
        ]

    def test_unknown_kind_skipped(self, artifact_factory) -> None:
        evidences = build_evidences([artifact_factory("desktop", "csv")], captured_at=CAPTURED_AT)
        assert evidences == []

    def test_unknown_viewport_becomes_na(self) -> None:
        artifact = StoredArtifact(viewport="tablet", kind="html", path="x/y.html", public_url="https://x/y.html")
        evidences = build_evidences([artifact], captured_at=CAPTURED_AT)
        assert evidences[0].viewport == "na"
        assert evidences[0].evidence_id == "E_page_a_na_detection_html_snapshot_01"

    def test_source_is_propagated(self, artifact_factory) -> None:
        evidences = build_evidences(
            [artifact_factory("mobile", "screenshot")],
            captured_at=CAPTURED_AT,
            source="before",
        )
        assert evidences[0].evidence_id.startswith("E_before_mobile_")

    def test_id_helpers(self) -> None:
        assert slugify_label("Above the Fold!") == "above_the_fold"
        assert slugify_label("") == "item"
        assert build_evidence_id("page_a", "mobile", "measurement", "LCP", 7) == (
            "E_page_a_mobile_measurement_lcp_07"
        )


# ---------------------------------------------------------------------------
# Completeness
# ---------------------------------------------------------------------------


class TestEvidenceCompleteness:
    def test_complete(self, full_artifacts, shopify_facts) -> None:
        assert evidence_completeness(full_artifacts, shopify_facts) == "complete"

    def test_complete_without_desktop_markup(self, artifact_factory) -> None:
        artifacts = [
            artifact_factory("mobile", "screenshot"),
            artifact_factory("mobile", "html"),
            artifact_factory("desktop", "screenshot"),
        ]
        assert evidence_completeness(artifacts, None) == "complete"

    def test_partial_with_purchase_block(self, artifact_factory, shopify_facts) -> None:
        artifacts = [artifact_factory("mobile", "screenshot")]
        assert evidence_completeness(artifacts, shopify_facts) == "partial"

    def test_insufficient_without_description(self, artifact_factory, plain_facts) -> None:
        artifacts = [artifact_factory("mobile", "screenshot")]
        assert evidence_completeness(artifacts, plain_facts) == "insufficient"

    def test_insufficient_without_mobile_fold(self, artifact_factory, shopify_facts) -> None:
        artifacts = [artifact_factory("desktop", "screenshot"), artifact_factory("desktop", "html")]
        assert evidence_completeness(artifacts, shopify_facts) == "insufficient"

    def test_empty(self) -> None:
        assert evidence_completeness([], None) == "insufficient"
