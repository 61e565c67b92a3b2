# src/progress_overlay/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires the notifier and reconciler into AppState.
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..core.notifier import ChangeNotifier
from ..core.state import AppState
from ..tasks.task_reconciler import TaskReconciler

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.log_dir.mkdir(parents=True, exist_ok=True)
    settings.events_path.parent.mkdir(parents=True, exist_ok=True)


def create_initial_state(*, settings=None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    notifier = ChangeNotifier()
    reconciler = TaskReconciler(
        max_recent_tasks=settings.max_recent_tasks,
        notifier=notifier,
    )
    logger.debug(
        "Reconciler ready (max_recent=%s, events=%s)",
        settings.max_recent_tasks,
        settings.events_path,
    )
    return AppState(settings=settings, reconciler=reconciler, notifier=notifier)
