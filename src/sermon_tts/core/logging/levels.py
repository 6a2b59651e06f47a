"""
Numeric log levels for sermon-tts.

The service exposes four verbosity levels instead of the standard library's
five, which maps cleanly onto a single ``SERMON_TTS_LOG_LEVEL`` setting:

    1 = MINIMAL  -> logging.WARNING   (startup, shutdown, failures)
    2 = NORMAL   -> logging.INFO      (generation lifecycle, cache outcome)
    3 = VERBOSE  -> logging.DEBUG     (per-stage timing, chunk details)
    4 = DEBUG    -> logging.DEBUG - 5 (store calls, retry internals)
"""
from __future__ import annotations

import logging
from enum import IntEnum
from typing import Any


class LogLevel(IntEnum):
    """Verbosity levels, higher is chattier."""
    MINIMAL = 1
    NORMAL = 2
    VERBOSE = 3
    DEBUG = 4


LEVEL_MAP = {
    LogLevel.MINIMAL: logging.WARNING,
    LogLevel.NORMAL: logging.INFO,
    LogLevel.VERBOSE: logging.DEBUG,
    LogLevel.DEBUG: logging.DEBUG - 5,
}

LEVEL_NAMES = {int(level): level.name for level in LogLevel}

_NAME_ALIASES = {
    "MINIMAL": LogLevel.MINIMAL,
    "NORMAL": LogLevel.NORMAL,
    "VERBOSE": LogLevel.VERBOSE,
    "DEBUG": LogLevel.DEBUG,
    "TRACE": LogLevel.DEBUG,
    "CRITICAL": LogLevel.MINIMAL,
    "ERROR": LogLevel.MINIMAL,
    "WARNING": LogLevel.MINIMAL,
    "WARN": LogLevel.MINIMAL,
    "INFO": LogLevel.NORMAL,
}


def coerce_level(value: Any) -> LogLevel:
    """
    Convert a configured level into a LogLevel.

    Accepts a LogLevel, an int in 1..4, a stdlib logging level int, a level
    name ("VERBOSE", "INFO", ...) or a numeric string. Anything unparseable
    falls back to NORMAL.

    Examples:
        >>> coerce_level("3")
        <LogLevel.VERBOSE: 3>
        >>> coerce_level(logging.WARNING)
        <LogLevel.MINIMAL: 1>
    """
    if isinstance(value, LogLevel):
        return value

    if isinstance(value, int):
        if 1 <= value <= 4:
            return LogLevel(value)
        if value >= logging.WARNING:
            return LogLevel.MINIMAL
        if value >= logging.INFO:
            return LogLevel.NORMAL
        return LogLevel.DEBUG

    if isinstance(value, str):
        text = value.strip().upper()
        if text.isdigit():
            return coerce_level(int(text))
        return _NAME_ALIASES.get(text, LogLevel.NORMAL)

    return LogLevel.NORMAL
