# src/progress_overlay/tasks/task_sweeper.py

from __future__ import annotations

"""
Staleness sweeper.

Guards against tasks whose terminal event never arrives (crashed producer,
dropped line). Every interval_seconds it scans active tasks and demotes those
older than threshold_ms to error, with ended_at set to the sweep time, so the
UI shows a failure instead of a task that spins forever.

This is the only source of mutation not driven by an event. It goes through
TaskReconciler.sweep_stale(), which takes the same lock as apply().
"""

import asyncio
import logging
import time
from collections.abc import Callable

from .task_reconciler import TaskReconciler

logger = logging.getLogger(__name__)

DEFAULT_STALE_THRESHOLD_MS = 30_000
DEFAULT_SWEEP_INTERVAL_SECONDS = 5.0


def ms_now() -> int:
    return int(time.time() * 1000)


class StalenessSweeper:
    """
    Owns the sweeper task on an asyncio loop.

    start() and stop() must be called from the loop's thread (BackgroundRunner
    does this); sweeps are synchronous on that loop, so once stop() returns no
    sweep can run.
    """

    def __init__(
        self,
        reconciler: TaskReconciler,
        *,
        interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
        threshold_ms: int = DEFAULT_STALE_THRESHOLD_MS,
        clock: Callable[[], int] = ms_now,
    ) -> None:
        self._reconciler = reconciler
        self.interval_seconds = float(interval_seconds)
        self.threshold_ms = int(threshold_ms)
        self._clock = clock
        self._task: asyncio.Task[None] | None = None
        self._stopped = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def sweep_once(self) -> list[str]:
        if self._stopped:
            return []
        return self._reconciler.sweep_stale(self._clock(), self.threshold_ms)

    async def _loop(self) -> None:
        sleep_s = max(0.05, self.interval_seconds)
        while not self._stopped:
            try:
                self.sweep_once()
            except Exception:
                logger.exception("sweep_stale failed")
            await asyncio.sleep(sleep_s)

    def start(self) -> asyncio.Task[None]:
        if self.running:
            assert self._task is not None
            return self._task
        self._stopped = False
        self._task = asyncio.get_running_loop().create_task(self._loop(), name="staleness-sweeper")
        logger.info(
            "Staleness sweeper started (threshold=%sms, interval=%ss)",
            self.threshold_ms,
            self.interval_seconds,
        )
        return self._task

    def stop(self) -> None:
        self._stopped = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
            logger.info("Staleness sweeper stopped.")
