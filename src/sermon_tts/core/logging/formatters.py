"""
Log formatters: JSON Lines for files, colored single lines for the console.

JSONL:
    {"ts":"2026-03-01T09:12:44+00:00","level":2,"tag":"INFO","message":"cache_hit",
     "request_id":"3f9a0c1b2d4e","extra":{"key":"5a2b9e10"}}

Console:
    09:12:44 [ INFO  ] (3f9a0c1b2d4e) cache_hit key=5a2b9e10 0.004s
"""
from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Dict

from . import colors
from .colors import Colors, get_tag_color


class JsonlFormatter(logging.Formatter):
    """One JSON object per record; ``extra`` holds the keyword fields."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created).astimezone().isoformat(),
            "level": getattr(record, "numeric_level", 2),
            "tag": getattr(record, "tag", record.levelname),
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", "-"),
        }

        event = getattr(record, "event", None)
        if event:
            payload["event"] = event
        seconds = getattr(record, "seconds", None)
        if seconds is not None:
            payload["seconds"] = seconds
        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            payload["extra"] = extra_data

        return json.dumps(payload, ensure_ascii=False, default=str)


class ColoredConsoleFormatter(logging.Formatter):
    """
    Human-readable console lines.

    Timings are green under 100ms, yellow under 1s and red above. Cache
    outcomes and retry attempts get their own highlight so that a run of
    misses or retries stands out while tailing the log.
    """

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        tag = getattr(record, "tag", record.levelname)
        rid = getattr(record, "request_id", "-")

        parts = [
            colors.colorize(ts, Colors.DIM),
            colors.colorize(f"[{tag:^7}]", get_tag_color(tag)),
        ]
        if rid != "-":
            parts.append(colors.colorize(f"({rid})", Colors.DIM + Colors.CYAN))
        parts.append(record.getMessage())

        event = getattr(record, "event", None)
        if event:
            parts.append(colors.colorize(f"event={event}", Colors.BLUE))

        seconds = getattr(record, "seconds", None)
        if seconds is not None:
            parts.append(colors.colorize(f"{seconds:.3f}s", self._timing_color(seconds)))

        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            for key, value in extra_data.items():
                parts.append(colors.colorize(f"{key}={value}", self._field_color(key, value)))

        return " ".join(parts)

    @staticmethod
    def _timing_color(seconds: float) -> str:
        if seconds < 0.1:
            return Colors.GREEN
        if seconds < 1.0:
            return Colors.YELLOW
        return Colors.RED

    @staticmethod
    def _field_color(key: str, value: Any) -> str:
        if key == "cached" and isinstance(value, bool):
            return Colors.GREEN if value else Colors.MAGENTA
        if key == "attempt" and isinstance(value, int):
            return Colors.YELLOW if value > 1 else Colors.DIM
        if key in ("cache_hits", "cached_chunks") and isinstance(value, int):
            return Colors.GREEN if value else Colors.DIM
        return Colors.DIM
