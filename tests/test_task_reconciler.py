# tests/test_task_reconciler.py

from __future__ import annotations

from progress_overlay.core.notifier import ChangeNotifier
from progress_overlay.tasks.task_models import (
    DEFAULT_DESCRIPTION,
    DEFAULT_TOOL,
    EventKind,
    TaskEvent,
    TaskStatus,
)
from progress_overlay.tasks.task_reconciler import SESSION_STALE_MS, TaskReconciler

from .fakes import complete, error, session_stopped, started


def test_start_then_complete_yields_one_completed_task(reconciler: TaskReconciler) -> None:
    assert reconciler.apply(started("t1", 1000))
    assert reconciler.apply(complete("t1", 1500))

    assert reconciler.count_tasks() == 1
    task = reconciler.get_task("t1")
    assert task is not None
    assert task.status == TaskStatus.COMPLETED
    assert task.ended_at == 1500
    assert task.ended_at >= task.started_at
    assert task.duration_ms == 500
    assert reconciler.active_tasks() == []


def test_task_error_marks_error(reconciler: TaskReconciler) -> None:
    reconciler.apply(started("t1", 1000))
    reconciler.apply(error("t1", 1200))

    task = reconciler.get_task("t1")
    assert task is not None
    assert task.status == TaskStatus.ERROR
    assert task.ended_at == 1200


def test_missing_fields_use_sentinels(reconciler: TaskReconciler) -> None:
    reconciler.apply(started("t1", 1000, tool=None, description=None))

    task = reconciler.get_task("t1")
    assert task is not None
    assert task.tool == DEFAULT_TOOL == "Unknown"
    assert task.description == DEFAULT_DESCRIPTION == "Running…"
    assert task.is_background is False
    assert task.ended_at is None


def test_started_keeps_producer_fields(reconciler: TaskReconciler) -> None:
    reconciler.apply(started("t1", 1000, session="s1", background=True, subagent_type="Explore"))

    task = reconciler.get_task("t1")
    assert task is not None
    assert task.is_background is True
    assert task.subagent_type == "Explore"
    assert task.session_id == "s1"


def test_complete_for_unknown_id_is_a_noop(reconciler: TaskReconciler, notifier: ChangeNotifier) -> None:
    reconciler.apply(started("t1", 1000))
    sub = notifier.subscribe()
    before = reconciler.active_tasks()

    assert reconciler.apply(complete("nope", 2000)) is False
    assert reconciler.apply(error("nope", 2000)) is False

    assert reconciler.active_tasks() == before
    assert reconciler.count_tasks() == 1
    assert reconciler.get_task("nope") is None
    assert sub.drain() == []


def test_terminal_status_is_not_overwritten(reconciler: TaskReconciler) -> None:
    reconciler.apply(started("t1", 1000))
    reconciler.apply(complete("t1", 2000))

    assert reconciler.apply(error("t1", 3000)) is False

    task = reconciler.get_task("t1")
    assert task is not None
    assert task.status == TaskStatus.COMPLETED
    assert task.ended_at == 2000


def test_duplicate_start_overwrites_entry(reconciler: TaskReconciler) -> None:
    reconciler.apply(started("t1", 1000, description="first"))
    reconciler.apply(complete("t1", 1100))
    reconciler.apply(started("t1", 5000, description="second"))

    assert reconciler.count_tasks() == 1
    task = reconciler.get_task("t1")
    assert task is not None
    assert task.status == TaskStatus.ACTIVE
    assert task.started_at == 5000
    assert task.ended_at is None
    assert task.description == "second"


def test_at_most_one_task_per_id_over_mixed_sequence(reconciler: TaskReconciler) -> None:
    events = [
        started("a", 1000, session="s1"),
        started("b", 1100, session="s1"),
        started("a", 1200, session="s1"),
        complete("b", 1300),
        started("b", 1400),
        error("a", 1500),
        started("c", 9000, session="s1"),
    ]
    for ev in events:
        reconciler.apply(ev)
        ids = [t.id for t in reconciler.active_tasks()] + [t.id for t in reconciler.recent_tasks(100)]
        assert len(ids) == len(set(ids))


def test_session_purge_removes_stale_sibling(reconciler: TaskReconciler) -> None:
    reconciler.apply(started("a", 1000, session="s1"))
    reconciler.apply(started("b", 1000 + SESSION_STALE_MS + 1, session="s1"))

    assert [t.id for t in reconciler.active_tasks()] == ["b"]
    assert reconciler.get_task("a") is None


def test_session_purge_keeps_recent_sibling(reconciler: TaskReconciler) -> None:
    # Exactly at the threshold is not "more than" the threshold.
    reconciler.apply(started("a", 1000, session="s1"))
    reconciler.apply(started("b", 1000 + SESSION_STALE_MS, session="s1"))

    assert {t.id for t in reconciler.active_tasks()} == {"a", "b"}


def test_session_purge_ignores_other_sessions_and_finished_tasks(reconciler: TaskReconciler) -> None:
    reconciler.apply(started("other", 1000, session="s2"))
    reconciler.apply(started("done", 1000, session="s1"))
    reconciler.apply(complete("done", 1500))
    reconciler.apply(started("nosession", 1000))

    reconciler.apply(started("new", 10_000, session="s1"))

    assert {t.id for t in reconciler.active_tasks()} == {"other", "nosession", "new"}
    done = reconciler.get_task("done")
    assert done is not None and done.status == TaskStatus.COMPLETED


def test_start_without_session_does_not_purge(reconciler: TaskReconciler) -> None:
    reconciler.apply(started("a", 1000, session="s1"))
    reconciler.apply(started("b", 60_000))

    assert {t.id for t in reconciler.active_tasks()} == {"a", "b"}


def test_complete_after_purge_is_ignored(reconciler: TaskReconciler) -> None:
    reconciler.apply(started("a", 1000, session="s1"))
    reconciler.apply(started("b", 4000, session="s1"))

    assert reconciler.apply(complete("a", 4100)) is False
    assert reconciler.get_task("a") is None


def test_purge_scenario_then_complete(reconciler: TaskReconciler) -> None:
    reconciler.apply(started("t1", 1000, session="s1"))
    reconciler.apply(started("t2", 4000, session="s1"))

    assert [t.id for t in reconciler.active_tasks()] == ["t2"]
    assert reconciler.count_tasks() == 1

    reconciler.apply(complete("t2", 5000))

    t2 = reconciler.get_task("t2")
    assert t2 is not None
    assert t2.status == TaskStatus.COMPLETED
    assert t2.ended_at == 5000
    assert reconciler.active_tasks() == []


def test_session_stopped_clears_all_active_tasks_globally(reconciler: TaskReconciler) -> None:
    reconciler.apply(started("a", 1000, session="s1"))
    reconciler.apply(started("b", 1100, session="s2"))
    reconciler.apply(started("c", 1200))
    reconciler.apply(started("done", 1300, session="s1"))
    reconciler.apply(complete("done", 1400))

    assert reconciler.apply(session_stopped(2000, session="s1")) is True

    assert reconciler.active_tasks() == []
    # History survives a stop.
    assert [t.id for t in reconciler.recent_tasks()] == ["done"]


def test_session_stopped_with_nothing_active_reports_no_change(reconciler: TaskReconciler) -> None:
    reconciler.apply(started("a", 1000))
    reconciler.apply(complete("a", 1100))

    assert reconciler.apply(session_stopped(2000)) is False
    assert reconciler.count_tasks() == 1


def test_active_tasks_are_copies(reconciler: TaskReconciler) -> None:
    reconciler.apply(started("a", 1000))
    snapshot = reconciler.active_tasks()[0]
    snapshot.status = TaskStatus.ERROR

    task = reconciler.get_task("a")
    assert task is not None and task.status == TaskStatus.ACTIVE


def test_recent_tasks_is_bounded_and_ordered(reconciler: TaskReconciler) -> None:
    for i in range(12):
        reconciler.apply(started(f"t{i}", 1000 + i))
    # End in a scrambled order.
    for i, end in enumerate([50, 10, 90, 30, 70, 20, 80, 40, 60, 11, 12, 13]):
        reconciler.apply(complete(f"t{i}", 10_000 + end))

    recent = reconciler.recent_tasks(3)
    assert len(recent) == 3
    ends = [t.ended_at for t in recent]
    assert ends == sorted(ends, reverse=True)
    assert [t.id for t in recent] == ["t2", "t6", "t4"]

    # Default limit comes from max_recent_tasks.
    assert len(reconciler.recent_tasks()) == reconciler.max_recent_tasks == 5
    assert reconciler.recent_tasks(0) == []


def test_storage_is_bounded_by_retention_cap() -> None:
    rec = TaskReconciler(max_recent_tasks=2)
    for i in range(50):
        rec.apply(started(f"t{i}", i * 10))
        rec.apply(complete(f"t{i}", i * 10 + 5))

    # Hard cap is 4x the visible cap; oldest-ended go first.
    assert rec.count_tasks() == 8
    assert rec.get_task("t0") is None
    assert rec.get_task("t49") is not None
    assert [t.id for t in rec.recent_tasks()] == ["t49", "t48"]


def test_eviction_never_touches_active_tasks() -> None:
    rec = TaskReconciler(max_recent_tasks=1)
    rec.apply(started("long", 0))
    for i in range(10):
        rec.apply(started(f"t{i}", 100 + i))
        rec.apply(complete(f"t{i}", 200 + i))

    assert [t.id for t in rec.active_tasks()] == ["long"]


def test_sweep_stale_demotes_to_error(reconciler: TaskReconciler) -> None:
    reconciler.apply(started("old", 1000))
    reconciler.apply(started("fresh", 40_000))

    demoted = reconciler.sweep_stale(now_ms=45_000, threshold_ms=30_000)

    assert demoted == ["old"]
    old = reconciler.get_task("old")
    assert old is not None
    assert old.status == TaskStatus.ERROR
    assert old.ended_at == 45_000
    assert [t.id for t in reconciler.active_tasks()] == ["fresh"]


def test_sweep_leaves_finished_tasks_alone(reconciler: TaskReconciler) -> None:
    reconciler.apply(started("a", 1000))
    reconciler.apply(complete("a", 1100))

    assert reconciler.sweep_stale(now_ms=1_000_000, threshold_ms=30_000) == []
    task = reconciler.get_task("a")
    assert task is not None and task.status == TaskStatus.COMPLETED
    assert task.ended_at == 1100


def test_clear_completed_drops_only_finished(reconciler: TaskReconciler) -> None:
    reconciler.apply(started("a", 1000))
    reconciler.apply(started("b", 1100))
    reconciler.apply(error("b", 1200))
    reconciler.apply(started("c", 1300))
    reconciler.apply(complete("c", 1400))

    assert reconciler.clear_completed() == 2
    assert reconciler.recent_tasks() == []
    assert [t.id for t in reconciler.active_tasks()] == ["a"]
    assert reconciler.clear_completed() == 0


def test_stats(reconciler: TaskReconciler) -> None:
    assert reconciler.stats().avg_duration_ms is None

    reconciler.apply(started("a", 1000))
    reconciler.apply(complete("a", 1100))
    reconciler.apply(started("b", 2000))
    reconciler.apply(error("b", 2300))
    reconciler.apply(started("c", 3000))

    st = reconciler.stats()
    assert st.total_tasks == 3
    assert st.active_tasks == 1
    assert st.completed_tasks == 1
    assert st.error_tasks == 1
    assert st.avg_duration_ms == 200.0


def test_search_tasks(reconciler: TaskReconciler) -> None:
    reconciler.apply(started("a", 1000, tool="Bash", description="npm run build"))
    reconciler.apply(started("b", 2000, tool="Read", description="src/app.py"))
    reconciler.apply(started("c", 3000, tool="Task", description="Find callers", subagent_type="Explore"))
    reconciler.apply(started("d", 4000, tool="Bash", description="pytest -q"))

    assert [t.id for t in reconciler.search_tasks("bash")] == ["d", "a"]
    assert [t.id for t in reconciler.search_tasks("APP.PY")] == ["b"]
    assert [t.id for t in reconciler.search_tasks("explore")] == ["c"]
    assert [t.id for t in reconciler.search_tasks("bash", limit=1)] == ["d"]
    assert reconciler.search_tasks("   ") == []


def test_notifications_follow_mutations(reconciler: TaskReconciler, notifier: ChangeNotifier) -> None:
    sub = notifier.subscribe("test")

    reconciler.apply(started("t1", 1000, session="s1"))
    reconciler.apply(started("t2", 4000, session="s1"))
    reconciler.apply(complete("t2", 5000))
    reconciler.apply(complete("missing", 5000))

    notices = sub.drain()
    assert [n.reason for n in notices] == ["task_started", "task_started", "task_complete"]
    assert notices[1].task_ids == ("t1", "t2")
    versions = [n.version for n in notices]
    assert versions == sorted(versions)


def test_unknown_kind_is_ignored(reconciler: TaskReconciler) -> None:
    # Bypass the enum on purpose: callers other than the decoder might do this.
    bogus = TaskEvent(kind="task_canceled", task_id="t1", timestamp=1000)  # type: ignore[arg-type]
    assert reconciler.apply(bogus) is False
    assert reconciler.count_tasks() == 0
    assert EventKind.parse("task_canceled") is None


def test_tasks_for_session_lists_every_status_oldest_first(reconciler: TaskReconciler) -> None:
    reconciler.apply(started("t2", 1500, session="s1"))
    reconciler.apply(started("t1", 1000, session="s1"))
    reconciler.apply(complete("t1", 1200))
    reconciler.apply(started("other", 1100, session="s2"))
    reconciler.apply(started("loose", 1300))

    tasks = reconciler.tasks_for_session("s1")

    assert [(t.id, t.status) for t in tasks] == [
        ("t1", TaskStatus.COMPLETED),
        ("t2", TaskStatus.ACTIVE),
    ]
    assert reconciler.tasks_for_session("missing") == []

    # Copies: changing them does not touch the table.
    tasks[1].status = TaskStatus.ERROR
    t2 = reconciler.get_task("t2")
    assert t2 is not None and t2.status == TaskStatus.ACTIVE
