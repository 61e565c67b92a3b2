# src/progress_overlay/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (normal "settings layer").
- Read-only for the core: the reconciler only receives the numbers it needs.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "OVERLAY"

load_dotenv(override=False)


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


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
    log_dir: Path

    # ---- Connector flags ----
    console_enabled: bool

    # ---- Event source ----
    data_dir: Path
    events_path: Path
    poll_interval_seconds: float
    replay_existing: bool

    # ---- Task view ----
    max_recent_tasks: int
    stale_task_threshold_ms: int
    sweep_interval_seconds: float

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "progress-overlay") or "progress-overlay"
        log_level = _env(_k("LOG_LEVEL"), "INFO")
        log_dir = _env_path(_k("LOG_DIR"), Path(".local/progress-overlay"))

        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)

        data_dir = _env_path(_k("DATA_DIR"), Path("~/.claude").expanduser())
        events_path = _env_path(_k("EVENTS_FILE"), data_dir / "progress-events.jsonl")
        poll_interval_seconds = _env_float(_k("POLL_INTERVAL_SECONDS"), 0.25)
        replay_existing = _env_bool(_k("REPLAY_EXISTING"), False)

        max_recent_tasks = max(1, _env_int(_k("MAX_RECENT_TASKS"), 10))
        stale_task_threshold_ms = max(1000, _env_int(_k("STALE_TASK_THRESHOLD_MS"), 30_000))
        sweep_interval_seconds = _env_float(_k("SWEEP_INTERVAL_SECONDS"), 5.0)

        return Settings(
            app_name=app_name,
            log_level=log_level,
            log_dir=log_dir,
            console_enabled=console_enabled,
            data_dir=data_dir,
            events_path=events_path,
            poll_interval_seconds=poll_interval_seconds,
            replay_existing=replay_existing,
            max_recent_tasks=max_recent_tasks,
            stale_task_threshold_ms=stale_task_threshold_ms,
            sweep_interval_seconds=sweep_interval_seconds,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
