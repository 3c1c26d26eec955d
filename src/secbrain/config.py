# src/secbrain/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- No secrets required at import time: without endpoints the app runs offline.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "SECBRAIN"

load_dotenv(override=False)


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_opt(name: str) -> str | None:
    v = os.getenv(name)
    if v is None or v.strip() == "":
        return None
    return v.strip()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str
    console_enabled: bool

    # ---- Local data (ignored by git) ----
    data_dir: Path
    fallback_db_path: Path

    # ---- Remote document store ----
    remote_base_url: str
    remote_api_key: str | None
    remote_timeout_seconds: float

    # ---- Credential service ----
    auth_base_url: str
    auth_api_key: str | None

    # ---- Ids / sync ----
    id_policy: str
    sync_interval_seconds: float

    @staticmethod
    def from_env() -> Settings:
        app_name = _env(_k("APP_NAME"), "secbrain").strip() or "secbrain"
        log_level = _env(_k("LOG_LEVEL"), "INFO")
        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/secbrain"))
        fallback_db_path = _env_path(_k("FALLBACK_DB_PATH"), data_dir / "fallback.sqlite3")

        remote_timeout = _env_float(_k("REMOTE_TIMEOUT_SECONDS"), 10.0)
        if remote_timeout <= 0:
            remote_timeout = 10.0

        id_policy = _env(_k("ID_POLICY"), "remote").strip().lower()
        if id_policy not in ("remote", "counter"):
            id_policy = "remote"

        sync_interval = _env_float(_k("SYNC_INTERVAL_SECONDS"), 30.0)
        if sync_interval <= 0:
            sync_interval = 30.0

        return Settings(
            app_name=app_name,
            log_level=log_level,
            console_enabled=console_enabled,
            data_dir=data_dir,
            fallback_db_path=fallback_db_path,
            remote_base_url=_env(_k("REMOTE_BASE_URL"), "").strip(),
            remote_api_key=_env_opt(_k("REMOTE_API_KEY")),
            remote_timeout_seconds=remote_timeout,
            auth_base_url=_env(_k("AUTH_BASE_URL"), "").strip(),
            auth_api_key=_env_opt(_k("AUTH_API_KEY")),
            id_policy=id_policy,
            sync_interval_seconds=sync_interval,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
