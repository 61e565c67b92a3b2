# src/progress_overlay/core/notifier.py

from __future__ import annotations

"""
Change notifications for UI subscribers.

The reconciler publishes a ChangeNotice after every mutation. Delivery never
blocks: each subscriber owns a bounded queue, and when it is full the oldest
notice is dropped and counted as lag. Subscribers re-read the view anyway, so
losing intermediate notices only costs redundant renders.
"""

import logging
import queue
import threading
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ChangeNotice:
    reason: str
    version: int
    task_ids: tuple[str, ...] = ()


@dataclass(slots=True, eq=False)
class Subscription:
    name: str
    _queue: queue.Queue[ChangeNotice]
    lagged: int = 0
    closed: bool = field(default=False)

    def get(self, timeout: float | None = None) -> ChangeNotice | None:
        """Wait for the next notice; None on timeout."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> list[ChangeNotice]:
        out: list[ChangeNotice] = []
        while True:
            try:
                out.append(self._queue.get_nowait())
            except queue.Empty:
                return out

    def _offer(self, notice: ChangeNotice) -> None:
        while True:
            try:
                self._queue.put_nowait(notice)
                return
            except queue.Full:
                try:
                    self._queue.get_nowait()
                    self.lagged += 1
                except queue.Empty:
                    pass


class ChangeNotifier:
    """Non-blocking broadcast of ChangeNotice to any number of subscribers."""

    def __init__(self, *, queue_size: int = 256) -> None:
        self._queue_size = max(1, int(queue_size))
        self._subs: list[Subscription] = []
        self._lock = threading.Lock()
        self._version = 0

    @property
    def version(self) -> int:
        return self._version

    def subscribe(self, name: str = "subscriber") -> Subscription:
        sub = Subscription(name=name, _queue=queue.Queue(maxsize=self._queue_size))
        with self._lock:
            self._subs.append(sub)
        logger.debug("Subscriber registered: %s", name)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            if sub in self._subs:
                self._subs.remove(sub)
        sub.closed = True

    def publish(self, reason: str, task_ids: tuple[str, ...] = ()) -> ChangeNotice:
        with self._lock:
            self._version += 1
            notice = ChangeNotice(reason=reason, version=self._version, task_ids=task_ids)
            subs = list(self._subs)

        for sub in subs:
            before = sub.lagged
            sub._offer(notice)
            if sub.lagged != before:
                logger.warning("Subscriber %s lagged by %d notices", sub.name, sub.lagged)
        return notice
