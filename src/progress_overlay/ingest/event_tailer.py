# src/progress_overlay/ingest/event_tailer.py

from __future__ import annotations

"""
JSONL event file tailer.

The agent appends one JSON object per line to the events file. This module
reads whatever was appended since the last call and feeds decoded events to
the reconciler (any EventSink), one at a time, in file order.

Notes:
- A line without its trailing newline is still being written; it is left for
  the next read.
- If the file shrinks (cleared by the user), reading restarts at offset 0.
- A missing file yields no events; the loop keeps polling until it appears.
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path

from ..core.ports import EventSink
from ..tasks.task_events import decode_event_line
from ..tasks.task_models import TaskEvent

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class FileState:
    last_position: int = 0
    last_size: int = 0


def ensure_events_file(path: str | Path) -> Path:
    p = Path(path).expanduser()
    p.parent.mkdir(parents=True, exist_ok=True)
    if not p.exists():
        p.touch()
        logger.info("Created events file %s", p)
    return p


def initial_state(path: str | Path, *, from_start: bool = False) -> FileState:
    """Start at end of file unless from_start (history is not replayed by default)."""
    p = Path(path)
    if from_start or not p.exists():
        return FileState()
    size = p.stat().st_size
    return FileState(last_position=size, last_size=size)


def read_new_events(path: str | Path, state: FileState) -> list[TaskEvent]:
    p = Path(path)
    if not p.exists():
        return []

    current_size = p.stat().st_size

    if current_size < state.last_size:
        logger.debug("Events file truncated, resetting position")
        state.last_position = 0

    if current_size <= state.last_position:
        state.last_size = current_size
        return []

    with p.open("rb") as fh:
        fh.seek(state.last_position)
        chunk = fh.read(current_size - state.last_position)

    # Only consume complete lines.
    end = chunk.rfind(b"\n")
    if end < 0:
        state.last_size = current_size
        return []
    complete = chunk[: end + 1]

    events: list[TaskEvent] = []
    for raw in complete.splitlines():
        line = raw.decode("utf-8", errors="replace")
        event = decode_event_line(line)
        if event is not None:
            logger.debug("Task event: %s - %s", event.kind.value, event.task_id)
            events.append(event)

    state.last_position += len(complete)
    state.last_size = current_size
    return events


async def run_event_tailer(
        sink: EventSink,
        path: str | Path,
        *,
        interval_seconds: float = 0.25,
        from_start: bool = False,
) -> None:
    """
    Polling tailer.

    Every interval_seconds:
    - read lines appended since the last poll
    - apply each decoded event to the sink in order
    A failed poll is logged and the next poll retries.

    To stop the tailer, cancel the coroutine/task.
    """
    sleep_s = max(0.01, float(interval_seconds))
    p = Path(path).expanduser()

    try:
        state = initial_state(p, from_start=from_start)
    except OSError:
        logger.exception("Failed to stat events file %s", p)
        state = FileState()

    logger.info("Event tailer watching %s (offset=%d)", p, state.last_position)

    while True:
        try:
            events = read_new_events(p, state)
        except Exception:
            logger.exception("read_new_events failed path=%s", p)
            events = []

        for event in events:
            try:
                sink.apply(event)
            except Exception:
                logger.exception("apply failed kind=%s task_id=%s", event.kind.value, event.task_id)

        await asyncio.sleep(sleep_s)
