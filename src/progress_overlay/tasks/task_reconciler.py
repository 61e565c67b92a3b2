# src/progress_overlay/tasks/task_reconciler.py

from __future__ import annotations

import logging
import threading
from dataclasses import replace

from ..core.notifier import ChangeNotifier
from .task_models import (
    DEFAULT_DESCRIPTION,
    DEFAULT_TOOL,
    EventKind,
    Task,
    TaskEvent,
    TaskStats,
    TaskStatus,
)
from .task_retention import evict_overflow, hard_cap_for, select_recent

logger = logging.getLogger(__name__)

# A sibling in the same session that is still active this long after it
# started is treated as abandoned when a new task starts.
SESSION_STALE_MS = 2000


class TaskReconciler:
    """
    In-memory task table and the only code that mutates it.

    Every public method takes the same lock, so event application, sweeps and
    reads are serialized. Notifications go out after the lock is released.

    Returned Task objects are copies.
    """

    def __init__(
        self,
        *,
        max_recent_tasks: int = 10,
        notifier: ChangeNotifier | None = None,
    ) -> None:
        self._tasks: dict[str, Task] = {}
        self._lock = threading.RLock()
        self._max_recent = max(1, int(max_recent_tasks))
        self._hard_cap = hard_cap_for(self._max_recent)
        self._notifier = notifier

    @property
    def max_recent_tasks(self) -> int:
        return self._max_recent

    # ---- event application ----

    def apply(self, event: TaskEvent) -> bool:
        """Apply one event. Returns True if the table changed."""
        with self._lock:
            kind = event.kind
            if kind == EventKind.TASK_STARTED:
                touched = self._on_started(event)
            elif kind == EventKind.TASK_COMPLETE:
                touched = self._on_finished(event, TaskStatus.COMPLETED)
            elif kind == EventKind.TASK_ERROR:
                touched = self._on_finished(event, TaskStatus.ERROR)
            elif kind == EventKind.SESSION_STOPPED:
                touched = self._on_session_stopped(event)
            else:
                logger.warning("Unknown event kind: %s", kind)
                touched = []

        if touched:
            self._notify(str(kind), touched)
        return bool(touched)

    def _on_started(self, event: TaskEvent) -> list[str]:
        touched: list[str] = []
        if event.session_id:
            touched.extend(
                self.purge_stale_in_session(event.session_id, event.timestamp, keep_id=event.task_id)
            )

        if event.task_id in self._tasks:
            logger.debug("Task %s restarted; overwriting previous entry", event.task_id)

        self._tasks[event.task_id] = Task(
            id=event.task_id,
            tool=event.tool or DEFAULT_TOOL,
            description=event.description or DEFAULT_DESCRIPTION,
            status=TaskStatus.ACTIVE,
            started_at=event.timestamp,
            ended_at=None,
            is_background=bool(event.background),
            subagent_type=event.subagent_type,
            session_id=event.session_id,
        )
        touched.append(event.task_id)
        return touched

    def purge_stale_in_session(self, session_id: str, now_ts: int, *, keep_id: str | None = None) -> list[str]:
        """
        Drop active tasks of session_id that started more than SESSION_STALE_MS
        before now_ts. The producer has no cancel event; a new task in the
        same session is the only signal that older ones were abandoned.

        Caller must hold the lock.
        """
        stale = [
            t.id
            for t in self._tasks.values()
            if t.id != keep_id
            and t.session_id == session_id
            and t.status == TaskStatus.ACTIVE
            and now_ts - t.started_at > SESSION_STALE_MS
        ]
        for task_id in stale:
            del self._tasks[task_id]
        if stale:
            logger.info("Purged %d stale task(s) in session %s: %s", len(stale), session_id, stale)
        return stale

    def _on_finished(self, event: TaskEvent, status: TaskStatus) -> list[str]:
        task = self._tasks.get(event.task_id)
        if task is None:
            logger.debug("%s for unknown task %s ignored", status.value, event.task_id)
            return []
        if task.status != TaskStatus.ACTIVE:
            logger.debug("%s for finished task %s ignored (status=%s)", status.value, task.id, task.status.value)
            return []

        task.status = status
        task.ended_at = event.timestamp
        logger.debug("Task %s -> %s", task.id, status.value)
        return [task.id, *self._evict_overflow()]

    def _on_session_stopped(self, event: TaskEvent) -> list[str]:
        # Global clear: every active task goes, whatever its session.
        active = [t.id for t in self._tasks.values() if t.status == TaskStatus.ACTIVE]
        for task_id in active:
            del self._tasks[task_id]
        if active:
            logger.info(
                "Session %s stopped; cleared %d active task(s)",
                event.session_id or "?",
                len(active),
            )
        return active

    def _evict_overflow(self) -> list[str]:
        evicted = evict_overflow(self._tasks.values(), self._hard_cap)
        for task_id in evicted:
            del self._tasks[task_id]
        if evicted:
            logger.debug("Retention evicted %d finished task(s)", len(evicted))
        return evicted

    # ---- sweeper ----

    def sweep_stale(self, now_ms: int, threshold_ms: int) -> list[str]:
        """Demote active tasks older than threshold_ms to error at now_ms."""
        with self._lock:
            demoted: list[str] = []
            for task in self._tasks.values():
                if task.status == TaskStatus.ACTIVE and now_ms - task.started_at > threshold_ms:
                    task.status = TaskStatus.ERROR
                    task.ended_at = now_ms
                    demoted.append(task.id)
            touched = demoted + self._evict_overflow() if demoted else []

        if demoted:
            logger.info("Sweeper marked %d stale task(s) as error: %s", len(demoted), demoted)
            self._notify("sweep", touched)
        return demoted

    # ---- reads ----

    def active_tasks(self) -> list[Task]:
        with self._lock:
            out = [replace(t) for t in self._tasks.values() if t.status == TaskStatus.ACTIVE]
        out.sort(key=lambda t: t.started_at)
        return out

    def recent_tasks(self, limit: int | None = None) -> list[Task]:
        n = self._max_recent if limit is None else int(limit)
        with self._lock:
            return [replace(t) for t in select_recent(self._tasks.values(), n)]

    def get_task(self, task_id: str) -> Task | None:
        with self._lock:
            task = self._tasks.get(task_id)
            return replace(task) if task is not None else None

    def tasks_for_session(self, session_id: str) -> list[Task]:
        """All tasks (any status) recorded for session_id, oldest first."""
        with self._lock:
            out = [replace(t) for t in self._tasks.values() if t.session_id == session_id]
        out.sort(key=lambda t: t.started_at)
        return out

    def count_tasks(self) -> int:
        with self._lock:
            return len(self._tasks)

    def stats(self) -> TaskStats:
        with self._lock:
            tasks = [replace(t) for t in self._tasks.values()]

        completed = sum(1 for t in tasks if t.status == TaskStatus.COMPLETED)
        errors = sum(1 for t in tasks if t.status == TaskStatus.ERROR)
        durations = [t.duration_ms for t in tasks if t.duration_ms is not None]
        return TaskStats(
            total_tasks=len(tasks),
            active_tasks=len(tasks) - completed - errors,
            completed_tasks=completed,
            error_tasks=errors,
            avg_duration_ms=(sum(durations) / len(durations)) if durations else None,
        )

    def search_tasks(self, query: str, limit: int = 20) -> list[Task]:
        """Case-insensitive substring search over tool/description/subagent_type."""
        needle = (query or "").strip().lower()
        if not needle or limit <= 0:
            return []

        with self._lock:
            hits = [
                replace(t)
                for t in self._tasks.values()
                if needle in t.tool.lower()
                or needle in t.description.lower()
                or needle in (t.subagent_type or "").lower()
            ]
        hits.sort(key=lambda t: t.started_at, reverse=True)
        return hits[:limit]

    # ---- explicit deletion ----

    def clear_completed(self) -> int:
        with self._lock:
            done = [t.id for t in self._tasks.values() if t.is_terminal]
            for task_id in done:
                del self._tasks[task_id]

        if done:
            logger.info("Cleared %d finished task(s)", len(done))
            self._notify("clear_completed", done)
        return len(done)

    def _notify(self, reason: str, task_ids: list[str]) -> None:
        if self._notifier is None:
            return
        self._notifier.publish(reason, tuple(dict.fromkeys(task_ids)))
