"""
Request correlation and shared logging state.

The request id lives in a ContextVar so that concurrent generation requests
running on one event loop each log under their own id. Everything else here
is process-wide: the active level and the resolved logging section of the
settings file.

Environment overrides (highest priority):
    SERMON_TTS_LOG_LEVEL       level 1-4 or a level name
    SERMON_TTS_LOG_DIR         directory for the JSONL file
    SERMON_TTS_JSONL_FILE      JSONL file name
    SERMON_TTS_LOG_ROTATE_BYTES / SERMON_TTS_LOG_ROTATE_BACKUP
"""
from __future__ import annotations

import os
from contextvars import ContextVar
from typing import Any, Dict

import yaml

from .levels import LEVEL_NAMES, LogLevel

_request_id: ContextVar[str] = ContextVar("request_id", default="-")

_configured: bool = False
_log_config: Dict[str, Any] = {}
_current_level: LogLevel = LogLevel.NORMAL


def get_request_id() -> str:
    """Request id bound to the current context, "-" outside a request."""
    return _request_id.get()


def set_request_id(rid: str) -> None:
    _request_id.set(rid)


def get_level() -> LogLevel:
    return _current_level


def set_level(level: LogLevel) -> None:
    global _current_level
    _current_level = level


def get_level_name() -> str:
    return LEVEL_NAMES.get(int(_current_level), "NORMAL")


def is_configured() -> bool:
    return _configured


def set_configured(value: bool) -> None:
    global _configured
    _configured = value


def get_log_config() -> Dict[str, Any]:
    return _log_config


def set_log_config(config: Dict[str, Any]) -> None:
    global _log_config
    _log_config = config


def _int_env(name: str) -> int | None:
    raw = os.getenv(name)
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def read_logging_config() -> Dict[str, Any]:
    """
    Resolve the logging section: settings.yaml first, then env overrides.

    A missing or malformed settings file leaves the defaults in place; the
    service configuration loader reports those problems on its own.
    """
    cfg: Dict[str, Any] = {}

    settings_path = os.getenv("SERMON_TTS_SETTINGS", "config/settings.yaml")
    try:
        from sermon_tts.core.config import load_settings
        settings = load_settings(settings_path)
        cfg.update(settings.raw.get("logging", {}) or {})
    except (OSError, ValueError, yaml.YAMLError):
        pass

    if os.getenv("SERMON_TTS_LOG_LEVEL"):
        cfg["level"] = os.environ["SERMON_TTS_LOG_LEVEL"]
    if os.getenv("SERMON_TTS_LOG_DIR"):
        cfg["log_dir"] = os.environ["SERMON_TTS_LOG_DIR"]
    if os.getenv("SERMON_TTS_JSONL_FILE"):
        cfg["jsonl_file"] = os.environ["SERMON_TTS_JSONL_FILE"]

    rotate_bytes = _int_env("SERMON_TTS_LOG_ROTATE_BYTES")
    if rotate_bytes is not None:
        cfg["rotate_max_bytes"] = rotate_bytes
    rotate_backup = _int_env("SERMON_TTS_LOG_ROTATE_BACKUP")
    if rotate_backup is not None:
        cfg["rotate_backup_count"] = rotate_backup

    return cfg
