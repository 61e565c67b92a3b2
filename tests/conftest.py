# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from progress_overlay.core.notifier import ChangeNotifier
from progress_overlay.core.state import AppState
from progress_overlay.tasks.task_reconciler import TaskReconciler


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and the CLI modules.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="progress-overlay-test",
        log_level="DEBUG",
        log_dir=tmp_path / "logs",
        console_enabled=False,
        data_dir=tmp_path,
        events_path=tmp_path / "progress-events.jsonl",
        poll_interval_seconds=0.01,
        replay_existing=False,
        max_recent_tasks=5,
        stale_task_threshold_ms=30_000,
        sweep_interval_seconds=0.01,
    )


@pytest.fixture()
def notifier() -> ChangeNotifier:
    return ChangeNotifier(queue_size=16)


@pytest.fixture()
def reconciler(notifier: ChangeNotifier) -> TaskReconciler:
    return TaskReconciler(max_recent_tasks=5, notifier=notifier)


@pytest.fixture()
def state(settings: SimpleNamespace, reconciler: TaskReconciler, notifier: ChangeNotifier) -> AppState:
    return AppState(settings=settings, reconciler=reconciler, notifier=notifier)
