# src/progress_overlay/ingest/runner.py

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
from dataclasses import dataclass

from ..core.state import AppState
from ..tasks.task_sweeper import StalenessSweeper
from .event_tailer import ensure_events_file, run_event_tailer

logger = logging.getLogger(__name__)


async def _run_ingest(state: AppState, stop_event: asyncio.Event) -> None:
    """
    Tailer + sweeper on one event loop until stop_event is set.

    Both mutate the reconciler from this loop only, so mutations are also
    serialized by construction (the reconciler lock covers console reads).
    """
    settings = state.settings
    path = ensure_events_file(settings.events_path)

    tailer = asyncio.create_task(
        run_event_tailer(
            state.reconciler,
            path,
            interval_seconds=settings.poll_interval_seconds,
            from_start=settings.replay_existing,
        ),
        name="event-tailer",
    )

    sweeper = StalenessSweeper(
        state.reconciler,
        interval_seconds=settings.sweep_interval_seconds,
        threshold_ms=settings.stale_task_threshold_ms,
    )
    sweep_task = sweeper.start()

    try:
        await stop_event.wait()
    finally:
        sweeper.stop()
        tailer.cancel()
        for t in (tailer, sweep_task):
            with contextlib.suppress(asyncio.CancelledError):
                await t
        logger.info("Ingest stopped.")


@dataclass
class BackgroundRunner:
    thread: threading.Thread
    loop: asyncio.AbstractEventLoop
    stop_event: asyncio.Event

    def stop(self) -> None:
        try:
            self.loop.call_soon_threadsafe(self.stop_event.set)
        except RuntimeError:
            # Loop already closed.
            logger.debug("Failed to signal ingest stop.", exc_info=True)

    def join(self, timeout: float | None = None) -> None:
        self.thread.join(timeout=timeout)

    def is_alive(self) -> bool:
        return self.thread.is_alive()


def start_ingest_in_background(state: AppState) -> BackgroundRunner | None:
    """
    Start the tailer and sweeper in a background thread (so console REPL can run in parallel).

    Why a thread:
    - console REPL is blocking (input()).
    - tailer and sweeper are async and want their own event loop.
    """
    ready = threading.Event()
    holder: dict[str, object] = {}

    def runner() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        stop_event = asyncio.Event()

        holder["loop"] = loop
        holder["stop_event"] = stop_event
        ready.set()

        try:
            loop.run_until_complete(_run_ingest(state, stop_event))
        except Exception:
            logger.exception("Ingest loop crashed.")
        finally:
            with contextlib.suppress(Exception):
                loop.close()

    t = threading.Thread(target=runner, name="overlay-ingest", daemon=True)
    t.start()

    ready.wait(timeout=5.0)
    loop = holder.get("loop")
    stop_event = holder.get("stop_event")

    if not isinstance(loop, asyncio.AbstractEventLoop) or not isinstance(stop_event, asyncio.Event):
        logger.error("Ingest thread did not initialize properly.")
        return None

    logger.info("Ingest background thread started.")
    return BackgroundRunner(thread=t, loop=loop, stop_event=stop_event)
