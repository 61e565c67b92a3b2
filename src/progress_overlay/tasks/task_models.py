# src/progress_overlay/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class TaskStatus(StrEnum):
    """
    Task lifecycle status.

    Notes:
    - "active" is the only non-terminal state.
    - Transitions flow active -> completed or active -> error, never back.
    """

    ACTIVE = "active"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self is not TaskStatus.ACTIVE


class EventKind(StrEnum):
    TASK_STARTED = "task_started"
    TASK_COMPLETE = "task_complete"
    TASK_ERROR = "task_error"
    SESSION_STOPPED = "session_stopped"

    @classmethod
    def parse(cls, raw: object) -> EventKind | None:
        if not isinstance(raw, str):
            return None
        try:
            return cls(raw.strip())
        except ValueError:
            return None


DEFAULT_TOOL = "Unknown"
DEFAULT_DESCRIPTION = "Running…"


@dataclass(slots=True)
class Task:
    id: str
    tool: str
    description: str
    status: TaskStatus
    started_at: int
    ended_at: int | None = None

    is_background: bool = False
    subagent_type: str | None = None
    session_id: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status == TaskStatus.ACTIVE

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def duration_ms(self) -> int | None:
        if self.ended_at is None:
            return None
        return max(0, self.ended_at - self.started_at)


@dataclass(slots=True, frozen=True)
class TaskEvent:
    """
    One decoded line of the event stream.

    task_id is "" for session_stopped events that carry no id.
    Timestamps are milliseconds since the epoch, taken from the producer.
    """

    kind: EventKind
    task_id: str
    timestamp: int
    session_id: str | None = None

    # task_started payload
    tool: str | None = None
    description: str | None = None
    background: bool | None = None
    subagent_type: str | None = None


@dataclass(slots=True, frozen=True)
class TaskStats:
    total_tasks: int
    active_tasks: int
    completed_tasks: int
    error_tasks: int
    avg_duration_ms: float | None
