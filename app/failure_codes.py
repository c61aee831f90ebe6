"""Shared failure code constants for audit pipeline error handling."""

# Macro stages every pipeline error is reported under.
ERROR_STAGES = [
    "normalize",
    "capture",
    "detectors",
    "scoring",
    "report",
    "render_pdf",
    "storage",
    "unknown",
]

MISSING_EVIDENCE_REASONS = [
    "blocked_by_cookie_consent",
    "blocked_by_popup",
    "infinite_scroll_or_lazyload",
    "navigation_intercepted",
    "timeout",
    "unknown_render_issue",
]

CAPTURE_ERROR_TYPES = [
    "timeout",
    "not_found",
    "network_error",
    "unknown",
]

UPLOAD_ERROR_TYPES = [
    "storage_error",
    "network_error",
    "auth_error",
    "unknown",
]
