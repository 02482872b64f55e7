from __future__ import annotations

from frozen_lake_hitl.engine.scheduler import Scheduler


def test_tasks_run_in_due_order():
    sched = Scheduler()
    calls = []
    sched.call_later(1.0, calls.append, "late")
    sched.call_later(0.5, calls.append, "early")
    sched.call_later(0.5, calls.append, "early-2")
    assert sched.advance(0.25) == 0
    assert sched.advance(0.25) == 2
    assert calls == ["early", "early-2"]
    assert sched.advance(1.0) == 1
    assert calls[-1] == "late"
    assert sched.pending == 0


def test_cancelled_task_never_runs():
    sched = Scheduler()
    calls = []
    handle = sched.call_later(0.2, calls.append, "x")
    handle.cancel()
    handle.cancel()
    assert not handle.pending
    assert sched.advance(1.0) == 0
    assert calls == []


def test_task_scheduled_from_callback_runs_if_due():
    sched = Scheduler()
    calls = []

    def first():
        calls.append("first")
        sched.call_later(0.0, calls.append, "now")
        sched.call_later(0.5, calls.append, "later")

    sched.call_later(1.0, first)
    assert sched.advance(1.0) == 2
    assert calls == ["first", "now"]
    assert sched.advance(0.5) == 1
    assert calls[-1] == "later"


def test_cancel_all():
    sched = Scheduler()
    handles = [sched.call_later(d, lambda: None) for d in (0.1, 0.2, 0.3)]
    handles[0].cancel()
    assert sched.cancel_all() == 2
    assert sched.pending == 0
    assert sched.advance(5.0) == 0


def test_clock_advances():
    sched = Scheduler()
    sched.advance(0.25)
    sched.advance(0.25)
    assert sched.now == 0.5
    handle = sched.call_later(1.0, lambda: None)
    assert handle.due == 1.5


def test_chained_task_timed_from_parent_due_time():
    sched = Scheduler()
    calls = []

    def first():
        calls.append(("first", sched.now))
        sched.call_later(0.5, lambda: calls.append(("second", sched.now)))

    sched.call_later(1.0, first)
    assert sched.advance(2.0) == 2
    assert calls == [("first", 1.0), ("second", 1.5)]
    assert sched.now == 2.0
