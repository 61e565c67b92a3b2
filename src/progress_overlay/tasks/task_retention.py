# src/progress_overlay/tasks/task_retention.py

from __future__ import annotations

"""
Retention policy for finished tasks.

select_recent() is the read-time view (N most recently ended, newest first).
evict_overflow() bounds internal storage so a long-running process does not
accumulate history forever; the visible result only depends on select_recent().
"""

from collections.abc import Iterable

from .task_models import Task

# Internal storage keeps this many times the visible cap.
RETENTION_FACTOR = 4


def _ended_key(task: Task) -> int:
    return task.ended_at if task.ended_at is not None else 0


def select_recent(tasks: Iterable[Task], limit: int) -> list[Task]:
    if limit <= 0:
        return []
    finished = [t for t in tasks if t.is_terminal]
    finished.sort(key=_ended_key, reverse=True)
    return finished[:limit]


def hard_cap_for(max_recent_tasks: int) -> int:
    return max(1, int(max_recent_tasks)) * RETENTION_FACTOR


def evict_overflow(tasks: Iterable[Task], hard_cap: int) -> list[str]:
    """Return ids of the oldest-ended finished tasks beyond hard_cap."""
    finished = [t for t in tasks if t.is_terminal]
    overflow = len(finished) - max(0, hard_cap)
    if overflow <= 0:
        return []
    finished.sort(key=_ended_key)
    return [t.id for t in finished[:overflow]]
