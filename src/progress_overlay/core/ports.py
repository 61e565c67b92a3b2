# src/progress_overlay/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used around the core.

Consumers (console, UI bindings) depend on these Protocols instead of the
concrete reconciler. This keeps the presentation side swappable and makes
testing easier.
"""

from typing import Protocol

from ..tasks.task_models import Task, TaskEvent, TaskStats


class EventSink(Protocol):
    """Transport-side port: where decoded events go."""

    def apply(self, event: TaskEvent) -> bool: ...


class TaskView(Protocol):
    """Read surface exposed to subscribers."""

    def active_tasks(self) -> list[Task]: ...
    def recent_tasks(self, limit: int | None = None) -> list[Task]: ...
    def stats(self) -> TaskStats: ...
    def search_tasks(self, query: str, limit: int = 20) -> list[Task]: ...
    def tasks_for_session(self, session_id: str) -> list[Task]: ...
