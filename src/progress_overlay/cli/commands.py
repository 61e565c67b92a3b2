# src/progress_overlay/cli/commands.py

from __future__ import annotations

import inspect
import logging
import time
from collections.abc import Callable
from datetime import datetime
from typing import cast

from ..core.ports import TaskView
from ..core.state import AppState
from ..tasks.task_models import Task, TaskStatus

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[[AppState, list[str]], str]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], str]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by the console (/help, /active, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except (TypeError, ValueError):
            nparams = 3

        if nparams >= 3:
            h3 = cast(CommandHandler3, handler)
            return h3(state, args, emit)

        h2 = cast(CommandHandler2, handler)
        return h2(state, args)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def _fmt_ts(ms: int | None) -> str:
    if ms is None:
        return "-"
    return datetime.fromtimestamp(ms / 1000).astimezone().strftime("%H:%M:%S")


def _fmt_duration(ms: int | None) -> str:
    if ms is None:
        return "-"
    if ms < 1000:
        return f"{ms}ms"
    if ms < 60_000:
        return f"{ms / 1000:.1f}s"
    return f"{ms // 60_000}m{(ms % 60_000) // 1000:02d}s"


def format_task(task: Task, *, now_ms: int | None = None) -> str:
    marker = {
        TaskStatus.ACTIVE: "…",
        TaskStatus.COMPLETED: "✓",
        TaskStatus.ERROR: "✗",
    }[task.status]

    if task.is_active:
        elapsed = None if now_ms is None else max(0, now_ms - task.started_at)
        timing = f"running {_fmt_duration(elapsed)}"
    else:
        timing = f"{_fmt_duration(task.duration_ms)} at {_fmt_ts(task.ended_at)}"

    extras = []
    if task.subagent_type:
        extras.append(task.subagent_type)
    if task.is_background:
        extras.append("bg")
    extra = f" [{', '.join(extras)}]" if extras else ""

    return f"{marker} {task.tool}: {task.description}{extra} ({timing})"


def _format_list(title: str, tasks: list[Task], empty: str) -> str:
    if not tasks:
        return empty
    now_ms = int(time.time() * 1000)
    lines = [title]
    for i, t in enumerate(tasks, start=1):
        lines.append(f"{i}. {format_task(t, now_ms=now_ms)}")
    return "\n".join(lines)


def _view(state: AppState) -> TaskView:
    return state.reconciler


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str]) -> str:
    s = state.settings
    return (
        "Status:\n"
        f"  Events file: {s.events_path}\n"
        f"  Recent tasks shown: {s.max_recent_tasks}\n"
        f"  Stale threshold: {s.stale_task_threshold_ms}ms (sweep every {s.sweep_interval_seconds}s)\n"
        f"  Tasks in table: {state.reconciler.count_tasks()}"
    )


def cmd_active(state: AppState, args: list[str]) -> str:
    return _format_list("Active tasks:", _view(state).active_tasks(), "No active tasks.")


def cmd_recent(state: AppState, args: list[str]) -> str:
    """
    /recent     -> default number of recent tasks
    /recent N   -> at most N
    """
    limit: int | None = None
    if args:
        try:
            limit = int(args[0])
        except ValueError:
            return "Usage: /recent [N]"
    return _format_list("Recent tasks:", _view(state).recent_tasks(limit), "No finished tasks yet.")


def cmd_stats(state: AppState, args: list[str]) -> str:
    st = _view(state).stats()
    avg = "-" if st.avg_duration_ms is None else _fmt_duration(int(st.avg_duration_ms))
    return (
        "Task stats:\n"
        f"  Total: {st.total_tasks}\n"
        f"  Active: {st.active_tasks}\n"
        f"  Completed: {st.completed_tasks}\n"
        f"  Errors: {st.error_tasks}\n"
        f"  Avg duration: {avg}"
    )


def cmd_search(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /search <text>"
    query = " ".join(args)
    hits = _view(state).search_tasks(query, limit=20)
    return _format_list(f"Tasks matching {query!r}:", hits, f"No tasks match {query!r}.")


def cmd_session(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /session <session_id>"
    session_id = args[0]
    return _format_list(
        f"Tasks in session {session_id}:",
        _view(state).tasks_for_session(session_id),
        f"No tasks in session {session_id}.",
    )


def cmd_clear(state: AppState, args: list[str]) -> str:
    n = state.reconciler.clear_completed()
    logger.debug("clear_completed removed %d task(s)", n)
    return f"Cleared {n} finished task(s)." if n else "Nothing to clear."


def cmd_exit(state: AppState, args: list[str]) -> str:
    # The console loop intercepts /exit itself; this entry only documents it.
    return "Use /exit in the console to quit."


def cmd_watch(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /watch     -> print change notices for 10 seconds
    /watch N   -> for N seconds
    """
    seconds = 10.0
    if args:
        try:
            seconds = max(0.0, float(args[0]))
        except ValueError:
            return "Usage: /watch [seconds]"

    sub = state.notifier.subscribe("console-watch")
    seen = 0
    try:
        deadline = time.monotonic() + seconds
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            notice = sub.get(timeout=remaining)
            if notice is None:
                continue
            seen += 1
            if emit is not None:
                ids = ", ".join(notice.task_ids) or "-"
                emit(f"[{notice.reason}] v{notice.version}: {ids}")
    finally:
        state.notifier.unsubscribe(sub)

    return f"Watched {seconds:g}s, {seen} change(s)."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show current settings and table size.")
registry.register("active", cmd_active, help_text="List active tasks.", aliases=["a"])
registry.register("recent", cmd_recent, help_text="List recently finished tasks: /recent [N].", aliases=["r"])
registry.register("stats", cmd_stats, help_text="Show task counters and average duration.")
registry.register("search", cmd_search, help_text="Search tasks by tool/description: /search <text>.")
registry.register("session", cmd_session, help_text="List every task of one session: /session <id>.", aliases=["s"])
registry.register("clear", cmd_clear, help_text="Remove finished tasks from the view.")
registry.register("watch", cmd_watch, help_text="Stream change notices: /watch [seconds].")
registry.register("exit", cmd_exit, help_text="Quit the console.", aliases=["quit"])
