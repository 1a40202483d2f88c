import threading

from simple_probe.events import EventTap, SubscriptionGroup
from simple_probe.scheduling import ManualScheduler, ThreadedScheduler


def test_manual_scheduler_runs_posted_work_in_order():
    scheduler = ManualScheduler()
    seen = []
    scheduler.post(seen.append, 1)
    scheduler.post(lambda: scheduler.post(seen.append, 3))
    scheduler.post(seen.append, 2)
    assert seen == []
    assert scheduler.run_pending() == 4
    assert seen == [1, 2, 3]


def test_manual_scheduler_fires_timers_in_due_order():
    scheduler = ManualScheduler()
    seen = []
    scheduler.call_later(2.0, seen.append, "b")
    scheduler.call_later(1.0, seen.append, "a")
    cancelled = scheduler.call_later(1.5, seen.append, "x")
    cancelled.cancel()
    assert scheduler.pending_timers() == 2
    scheduler.advance(1.2)
    assert seen == ["a"]
    assert scheduler.now() == 1.2
    scheduler.advance(1.0)
    assert seen == ["a", "b"]


def test_manual_scheduler_timer_sees_its_due_time():
    scheduler = ManualScheduler(start=10.0)
    at = []
    scheduler.call_later(0.5, lambda: at.append(scheduler.now()))
    scheduler.advance(3.0)
    assert at == [10.5]
    assert scheduler.now() == 13.0


def test_threaded_scheduler_serializes_work_and_timers():
    done = threading.Event()
    seen = []
    with ThreadedScheduler("test-loop") as scheduler:
        scheduler.post(lambda: seen.append(threading.current_thread().name))
        scheduler.call_later(0.05, lambda: (seen.append("timer"), done.set()))
        assert done.wait(2.0)
    assert seen == ["test-loop", "timer"]


def test_threaded_scheduler_cancelled_timer_never_runs():
    seen = []
    with ThreadedScheduler() as scheduler:
        handle = scheduler.call_later(0.05, seen.append, "late")
        handle.cancel()
        flushed = threading.Event()
        scheduler.call_later(0.15, flushed.set)
        assert flushed.wait(2.0)
    assert seen == []


def test_threaded_scheduler_survives_handler_error():
    done = threading.Event()
    with ThreadedScheduler() as scheduler:
        scheduler.post(lambda: 1 / 0)
        scheduler.post(done.set)
        assert done.wait(2.0)


def test_subscription_release_is_idempotent():
    tap = EventTap("test")
    seen = []
    sub = tap.subscribe(seen.append)
    tap.emit(1)
    assert sub.release()
    assert not sub.release()
    tap.emit(2)
    assert seen == [1]
    assert len(tap) == 0


def test_listener_error_does_not_stop_others():
    tap = EventTap("test")
    seen = []
    tap.subscribe(lambda value: 1 / 0)
    tap.subscribe(seen.append)
    tap.emit("x")
    assert seen == ["x"]


def test_subscription_group_release_all():
    tap = EventTap("test")
    group = SubscriptionGroup()
    group.add(tap.subscribe(print))
    group.add(tap.subscribe(print))
    assert group.active_count() == 2
    assert group.release_all() == 2
    assert group.release_all() == 0
    assert len(tap) == 0
    late = group.add(tap.subscribe(print))
    assert not late.active
    assert len(tap) == 0
