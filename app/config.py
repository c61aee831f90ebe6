"""
app/config.py

Application-level configuration helpers.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from db.config import load_env_files

_ALLOWED_SYNTHESIS_STRATEGIES = {"model", "rules"}
_ALLOWED_STORAGE_BACKENDS = {"local", "supabase"}


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    """
    Ensure project `.env` files are loaded once before reading app settings.
    """

    load_env_files()


def _get_bool_env(name: str, default: bool) -> bool:
    """
    Read a boolean from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    """
    Read an integer from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    """
    Read a float from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return float(raw_value)
    except ValueError:
        return default


def _get_str_env(name: str, default: str) -> str:
    """
    Read a string from environment variables with fallback.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return default
    stripped = value.strip()
    return stripped if stripped else default


def _get_optional_str_env(name: str) -> str | None:
    """
    Read an optional string value from environment variables.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return None
    stripped = value.strip()
    return stripped if stripped else None


def _get_choice_env(name: str, default: str, allowed: set[str]) -> str:
    """
    Read a lowercase string constrained to ``allowed``.

    Unknown values raise RuntimeError so a typo never silently selects
    a different backend.
    """

    value = _get_str_env(name, default).lower()
    if value not in allowed:
        raise RuntimeError(
            f"{name} '{value}' is not valid. Allowed values: {sorted(allowed)}."
        )
    return value


@dataclass(frozen=True)
class CaptureSettings:
    """
    Browser capture behavior settings.
    """

    timeout_ms: int = 15000
    block_resources: bool = True
    max_browser_sessions: int = 2
    selector_wait_ms: int = 8000
    scroll_settle_ms: int = 250
    max_retries: int = 0
    backoff_initial_seconds: float = 0.5
    backoff_multiplier: float = 2.0
    headless: bool = True
    session_drain_seconds: float = 30.0


@dataclass(frozen=True)
class SynthesisSettings:
    """
    Ticket synthesis and LLM adapter settings.
    """

    strategy: str = "model"
    adapter: str = "openai"
    model: str = "gpt-4o-mini"
    max_tokens: int = 4096
    api_key: str | None = None
    base_url: str | None = None
    timeout_seconds: float = 60.0
    max_retries: int = 2
    max_tickets: int = 5
    max_large_effort: int = 1
    synthesize_on_insufficient_evidence: bool = True


@dataclass(frozen=True)
class StorageSettings:
    """
    Blob storage backend settings for capture artifacts and exports.
    """

    backend: str = "local"
    root_dir: str = "data/artifacts"
    supabase_url: str | None = None
    supabase_key: str | None = None
    screenshot_bucket: str = "screenshots"
    report_bucket: str = "html-reports"
    timeout_seconds: float = 30.0
    max_retries: int = 0
    backoff_initial_seconds: float = 0.5
    backoff_multiplier: float = 2.0


@dataclass(frozen=True)
class AuditSettings:
    """
    Top-level audit run defaults.
    """

    default_locale: str = "fr"
    default_mode: str = "solo"


@lru_cache(maxsize=1)
def get_capture_settings() -> CaptureSettings:
    """
    Return cached capture settings from environment variables.
    """

    return CaptureSettings(
        timeout_ms=max(1000, _get_int_env("AUDIT_CAPTURE_TIMEOUT_MS", 15000)),
        block_resources=_get_bool_env("AUDIT_BLOCK_RESOURCES", True),
        max_browser_sessions=max(1, _get_int_env("AUDIT_MAX_BROWSER_SESSIONS", 2)),
        selector_wait_ms=max(0, _get_int_env("AUDIT_SELECTOR_WAIT_MS", 8000)),
        scroll_settle_ms=max(0, _get_int_env("AUDIT_SCROLL_SETTLE_MS", 250)),
        max_retries=max(0, _get_int_env("AUDIT_CAPTURE_RETRIES", 0)),
        backoff_initial_seconds=max(0.0, _get_float_env("AUDIT_CAPTURE_BACKOFF_SECONDS", 0.5)),
        backoff_multiplier=max(1.0, _get_float_env("AUDIT_CAPTURE_BACKOFF_MULTIPLIER", 2.0)),
        headless=_get_bool_env("AUDIT_BROWSER_HEADLESS", True),
        session_drain_seconds=max(0.0, _get_float_env("AUDIT_SESSION_DRAIN_SECONDS", 30.0)),
    )


@lru_cache(maxsize=1)
def get_synthesis_settings() -> SynthesisSettings:
    """
    Return cached synthesis settings from environment variables.

    Raises RuntimeError if AUDIT_SYNTHESIS_STRATEGY is not 'model' or 'rules'.
    """

    return SynthesisSettings(
        strategy=_get_choice_env(
            "AUDIT_SYNTHESIS_STRATEGY",
            "model",
            _ALLOWED_SYNTHESIS_STRATEGIES,
        ),
        adapter=_get_str_env("LLM_ADAPTER", "openai").lower(),
        model=_get_str_env("LLM_MODEL", "gpt-4o-mini"),
        max_tokens=max(256, _get_int_env("LLM_MAX_TOKENS", 4096)),
        api_key=_get_optional_str_env("LLM_API_KEY") or _get_optional_str_env("OPENAI_API_KEY"),
        base_url=_get_optional_str_env("LLM_BASE_URL"),
        timeout_seconds=max(1.0, _get_float_env("LLM_TIMEOUT_SECONDS", 60.0)),
        max_retries=max(0, _get_int_env("LLM_MAX_RETRIES", 2)),
        max_tickets=max(1, _get_int_env("AUDIT_MAX_TICKETS", 5)),
        max_large_effort=max(0, _get_int_env("AUDIT_MAX_LARGE_EFFORT", 1)),
        synthesize_on_insufficient_evidence=_get_bool_env(
            "AUDIT_SYNTHESIZE_ON_INSUFFICIENT_EVIDENCE",
            True,
        ),
    )


@lru_cache(maxsize=1)
def get_storage_settings() -> StorageSettings:
    """
    Return cached blob storage settings from environment variables.
    """

    return StorageSettings(
        backend=_get_choice_env("AUDIT_STORAGE_BACKEND", "local", _ALLOWED_STORAGE_BACKENDS),
        root_dir=_get_str_env("AUDIT_STORAGE_ROOT", "data/artifacts"),
        supabase_url=_get_optional_str_env("SUPABASE_URL"),
        supabase_key=_get_optional_str_env("SUPABASE_SERVICE_ROLE_KEY"),
        screenshot_bucket=_get_str_env("AUDIT_SCREENSHOT_BUCKET", "screenshots"),
        report_bucket=_get_str_env("AUDIT_REPORT_BUCKET", "html-reports"),
        timeout_seconds=max(1.0, _get_float_env("AUDIT_STORAGE_TIMEOUT_SECONDS", 30.0)),
        max_retries=max(0, _get_int_env("AUDIT_STORAGE_RETRIES", 0)),
        backoff_initial_seconds=max(0.0, _get_float_env("AUDIT_STORAGE_BACKOFF_SECONDS", 0.5)),
        backoff_multiplier=max(1.0, _get_float_env("AUDIT_STORAGE_BACKOFF_MULTIPLIER", 2.0)),
    )


@lru_cache(maxsize=1)
def get_audit_settings() -> AuditSettings:
    """
    Return cached audit defaults from environment variables.
    """

    return AuditSettings(
        default_locale=_get_str_env("AUDIT_DEFAULT_LOCALE", "fr").lower(),
        default_mode=_get_str_env("AUDIT_DEFAULT_MODE", "solo").lower(),
    )
