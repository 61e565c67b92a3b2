# src/progress_overlay/tasks/task_events.py

from __future__ import annotations

"""
Event decoding.

Turns one JSONL line (or an already-parsed mapping) into a TaskEvent.
Anything that cannot be decoded is logged and dropped here, so the
reconciler only ever sees well-formed events.
"""

import json
import logging
import math
from typing import Any

from .task_models import EventKind, TaskEvent

logger = logging.getLogger(__name__)


def _opt_str(raw: Any) -> str | None:
    if raw is None:
        return None
    s = str(raw).strip()
    return s or None


def _opt_bool(raw: Any) -> bool | None:
    if raw is None:
        return None
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, (int, float)):
        return bool(raw)
    if isinstance(raw, str):
        return raw.strip().lower() in {"1", "true", "yes", "y", "on"}
    return None


def _timestamp(raw: Any) -> int | None:
    # bool is an int subclass; a "timestamp": true is not a timestamp.
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str):
        try:
            raw = float(raw.strip())
        except ValueError:
            return None
    if isinstance(raw, float):
        # json accepts NaN and turns 1e400 into inf.
        return int(raw) if math.isfinite(raw) else None
    return None


def decode_event(data: dict[str, Any]) -> TaskEvent | None:
    """
    Build a TaskEvent from a parsed JSON object.

    Rules:
    - "type" must be one of the known event kinds
    - "timestamp" is required (ms since epoch)
    - "task_id" is required for every kind except session_stopped
    - "duration_ms" is accepted and ignored (derived from timestamps instead)
    """
    kind = EventKind.parse(data.get("type"))
    if kind is None:
        logger.warning("Unknown event type %r; dropping.", data.get("type"))
        return None

    ts = _timestamp(data.get("timestamp"))
    if ts is None:
        logger.warning("Event %s without a usable timestamp; dropping.", kind.value)
        return None

    task_id = _opt_str(data.get("task_id")) or ""
    if not task_id and kind != EventKind.SESSION_STOPPED:
        logger.warning("Event %s without task_id; dropping.", kind.value)
        return None

    return TaskEvent(
        kind=kind,
        task_id=task_id,
        timestamp=ts,
        session_id=_opt_str(data.get("session_id")),
        tool=_opt_str(data.get("tool")),
        description=_opt_str(data.get("description")),
        background=_opt_bool(data.get("background")),
        subagent_type=_opt_str(data.get("subagent_type")),
    )


def decode_event_line(line: str) -> TaskEvent | None:
    """Decode one JSONL line. Blank lines return None silently."""
    trimmed = (line or "").strip()
    if not trimmed:
        return None

    try:
        data = json.loads(trimmed)
    except json.JSONDecodeError as e:
        logger.warning("Failed to parse event: %s - line: %s", e, trimmed[:200])
        return None

    if not isinstance(data, dict):
        logger.warning("Event line is not a JSON object: %s", trimmed[:200])
        return None

    return decode_event(data)
