import pytest

from simple_probe.grbl_responses import ResponseKind
from simple_probe.progress import ProgressTracker


@pytest.fixture
def tracker():
    t = ProgressTracker(3)
    t.start()
    return t


def _check_invariant(t):
    assert 0 <= t.acked <= t.sent <= t.total


def test_counts_sent_and_acked(tracker):
    assert tracker.record_sent("G21", "probe")
    assert tracker.record_inbound("ok").kind is ResponseKind.OK
    assert (tracker.sent, tracker.acked) == (1, 1)
    _check_invariant(tracker)


def test_ignores_queries_and_foreign_sources(tracker):
    assert not tracker.record_sent("?", "probe")
    assert not tracker.record_sent("$G", "feeder")
    assert not tracker.record_sent("<Idle|MPos:0,0,0>", None)
    assert not tracker.record_sent("G0 X0", "console")
    assert tracker.sent == 0


def test_only_ok_counts_as_ack(tracker):
    tracker.record_sent("G21", "probe")
    tracker.record_inbound("<Idle|MPos:0.000,0.000,0.000>")
    tracker.record_inbound("[GC:G0 G54 G17 G21 G90]")
    tracker.record_inbound("error:9")
    assert tracker.acked == 0
    tracker.record_inbound("OK")
    assert tracker.acked == 1


def test_ok_before_its_echo_advances_sent(tracker):
    tracker.record_inbound("ok")
    assert (tracker.sent, tracker.acked) == (1, 1)
    # the late echo of that same line is absorbed by the total clamp
    tracker.record_sent("G21", "probe")
    tracker.record_sent("G90", "probe")
    tracker.record_sent("G0 Z1", "probe")
    assert tracker.sent == 3
    _check_invariant(tracker)


def test_counters_clamped_to_total(tracker):
    for _ in range(5):
        tracker.record_sent("G0 X0", "probe")
    for _ in range(5):
        tracker.record_inbound("ok")
    assert (tracker.sent, tracker.acked, tracker.total) == (3, 3, 3)
    assert tracker.all_acknowledged()


def test_inactive_tracker_counts_nothing():
    t = ProgressTracker(2)
    t.record_sent("G0 X0", "probe")
    t.record_inbound("ok")
    assert (t.sent, t.acked) == (0, 0)
    t.start()
    t.record_sent("G0 X0", "probe")
    t.stop()
    t.record_inbound("ok")
    assert (t.sent, t.acked) == (1, 0)


def test_ratios(tracker):
    tracker.record_sent("G21", "probe")
    tracker.record_sent("G90", "probe")
    tracker.record_inbound("ok")
    assert tracker.sent_ratio() == pytest.approx(2 / 3)
    assert tracker.acked_ratio() == pytest.approx(1 / 3)


def test_invariant_holds_under_interleaving():
    t = ProgressTracker(5)
    t.start()
    events = ["ok", "sent", "ok", "ok", "sent", "sent", "ok", "sent", "sent", "sent", "ok", "ok", "ok"]
    last = (0, 0)
    for event in events:
        if event == "sent":
            t.record_sent("G0 X1", "probe")
        else:
            t.record_inbound("ok")
        _check_invariant(t)
        assert t.sent >= last[0] and t.acked >= last[1]
        last = (t.sent, t.acked)
    assert t.acked == 5


def test_negative_total_rejected():
    with pytest.raises(ValueError):
        ProgressTracker(-1)


def test_ok_with_nothing_issued_is_ignored(tracker):
    tracker.record_issued(0)
    tracker.record_inbound("ok")
    assert (tracker.sent, tracker.acked) == (0, 0)
    tracker.record_issued(1)
    tracker.record_inbound("ok")
    assert (tracker.sent, tracker.acked) == (1, 1)
    tracker.record_inbound("ok")
    assert (tracker.sent, tracker.acked) == (1, 1)
    _check_invariant(tracker)


def test_issued_count_only_moves_forward(tracker):
    tracker.record_issued(2)
    tracker.record_issued(1)
    tracker.record_inbound("ok")
    tracker.record_inbound("ok")
    tracker.record_inbound("ok")
    assert (tracker.sent, tracker.acked) == (2, 2)
