# tests/test_notifier.py

from __future__ import annotations

from progress_overlay.core.notifier import ChangeNotifier


def test_publish_reaches_every_subscriber() -> None:
    notifier = ChangeNotifier()
    a = notifier.subscribe("a")
    b = notifier.subscribe("b")

    notifier.publish("task_started", ("t1",))

    for sub in (a, b):
        notice = sub.get(timeout=0.1)
        assert notice is not None
        assert notice.reason == "task_started"
        assert notice.task_ids == ("t1",)
        assert notice.version == 1


def test_full_queue_drops_oldest_without_blocking() -> None:
    notifier = ChangeNotifier(queue_size=2)
    slow = notifier.subscribe("slow")

    for i in range(5):
        notifier.publish(f"r{i}")

    assert slow.lagged == 3
    assert [n.reason for n in slow.drain()] == ["r3", "r4"]
    assert notifier.version == 5


def test_unsubscribed_gets_nothing() -> None:
    notifier = ChangeNotifier()
    sub = notifier.subscribe()
    notifier.unsubscribe(sub)

    notifier.publish("x")

    assert sub.closed is True
    assert sub.get(timeout=0.01) is None
