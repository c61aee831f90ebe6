"""
app/keys/versions.py

Version stamps folded into the deterministic cache keys.

Bumping any stamp invalidates every key tier that includes it and every
tier downstream of that one.
"""

from __future__ import annotations

NORMALIZE_VERSION = "1.0"
ENGINE_VERSION = "1.0"
DETECTORS_VERSION = "1.0"
SCORING_VERSION = "2.2"
REPORT_OUTLINE_VERSION = "3.1"
RENDER_VERSION = "1.0"
CSV_EXPORT_VERSION = 1
TICKET_SCHEMA_VERSION = 2
EVIDENCE_SCHEMA_VERSION = 2

VERSIONS: dict[str, str | int] = {
    "normalize_version": NORMALIZE_VERSION,
    "engine_version": ENGINE_VERSION,
    "detectors_version": DETECTORS_VERSION,
    "scoring_version": SCORING_VERSION,
    "report_outline_version": REPORT_OUTLINE_VERSION,
    "render_version": RENDER_VERSION,
    "csv_export_version": CSV_EXPORT_VERSION,
    "ticket_schema_version": TICKET_SCHEMA_VERSION,
    "evidence_schema_version": EVIDENCE_SCHEMA_VERSION,
}
