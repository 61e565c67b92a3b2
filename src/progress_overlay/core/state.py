# src/progress_overlay/core/state.py

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any

from ..tasks.task_reconciler import TaskReconciler
from .notifier import ChangeNotifier


@dataclass
class AppState:
    # Settings object (config.Settings in the app, SimpleNamespace in tests).
    settings: Any

    reconciler: TaskReconciler
    notifier: ChangeNotifier

    # Serializes console command handling; the reconciler has its own lock.
    lock: threading.Lock = field(default_factory=threading.Lock)
