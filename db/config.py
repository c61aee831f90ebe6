"""
Database configuration for the audit store.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

_ENV_FILES = (".env", ".env.local")
_URL_VARIABLES = ("AUDIT_DATABASE_URL", "DATABASE_URL", "SUPABASE_DB_URL")


def load_env_files(project_root: Path | None = None) -> None:
    """
    Load ``KEY=VALUE`` lines from the project's ``.env`` files.

    Variables already present in the process environment win.
    """

    root = project_root or Path(__file__).resolve().parents[1]
    for filename in _ENV_FILES:
        env_path = root / filename
        if not env_path.is_file():
            continue
        for raw_line in env_path.read_text(encoding="utf-8").splitlines():
            line = raw_line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, value = line.split("=", 1)
            key = key.removeprefix("export ").strip()
            if key and key not in os.environ:
                os.environ[key] = value.strip().strip('"').strip("'")


def normalize_postgres_url(url: str) -> str:
    """
    Rewrite ``postgres://`` and bare ``postgresql://`` URLs to the psycopg driver.
    """

    for prefix in ("postgres://", "postgresql://"):
        if url.startswith(prefix):
            return "postgresql+psycopg://" + url[len(prefix):]
    return url


def resolve_database_url() -> str:
    """
    First non-empty of AUDIT_DATABASE_URL, DATABASE_URL, SUPABASE_DB_URL.
    """

    load_env_files()
    for name in _URL_VARIABLES:
        value = (os.getenv(name) or "").strip()
        if value:
            return normalize_postgres_url(value)
    raise RuntimeError(
        "No database URL configured. Set one of: " + ", ".join(_URL_VARIABLES) + "."
    )


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, ""))
    except ValueError:
        return default


@dataclass(frozen=True)
class DatabaseSettings:
    url: str
    echo: bool = False
    pool_size: int = 5
    max_overflow: int = 10
    pool_recycle_seconds: int = 1800


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
    url = resolve_database_url()
    return DatabaseSettings(
        url=url,
        echo=os.getenv("SQL_ECHO", "").strip().lower() in {"1", "true", "yes", "on"},
        pool_size=max(1, _int_env("DB_POOL_SIZE", 5)),
        max_overflow=max(0, _int_env("DB_MAX_OVERFLOW", 10)),
        pool_recycle_seconds=max(60, _int_env("DB_POOL_RECYCLE", 1800)),
    )
