import pytest

from simple_probe.arbiter import (
    CompletionArbiter,
    CompletionSignal,
    allows_best_effort,
    completion_signals,
)
from simple_probe.methods import BitSetterMethod, BitZeroMethod, CustomMethod, ManualMethod, TouchPlateMethod
from simple_probe.progress import ProgressTracker
from simple_probe.utils.config import EngineConfig
from simple_probe.utils.exceptions import ControllerFault, ProbeTimeoutError


@pytest.fixture
def resolutions():
    return []


def _arbiter(method, scheduler, resolutions, total=5, config=None):
    tracker = ProgressTracker(total)
    tracker.start()
    arbiter = CompletionArbiter.for_method(method, scheduler, tracker, resolutions.append, config or EngineConfig())
    arbiter.start()
    return arbiter, tracker


def _feed(tracker, sent, acked):
    for _ in range(sent):
        tracker.record_sent("G0 X1", "probe")
    for _ in range(acked):
        tracker.record_inbound("ok")


def test_signals_per_method():
    assert completion_signals(BitSetterMethod()) == {CompletionSignal.STABILIZED}
    for method in (ManualMethod(), TouchPlateMethod(), BitZeroMethod(), CustomMethod()):
        assert completion_signals(method) == {CompletionSignal.ACK_COUNT, CompletionSignal.IDLE_TRANSITION}
        assert allows_best_effort(method)
    assert not allows_best_effort(BitSetterMethod())


def test_ack_count_resolves(scheduler, resolutions):
    arbiter, tracker = _arbiter(CustomMethod(gcode="G0"), scheduler, resolutions)
    _feed(tracker, 5, 4)
    assert not arbiter.check_acknowledged()
    _feed(tracker, 0, 1)
    assert arbiter.check_acknowledged()
    assert [r.signal for r in resolutions] == [CompletionSignal.ACK_COUNT]
    assert scheduler.pending_timers() == 0


def test_idle_transition_needs_dispatch_finished(scheduler, resolutions):
    arbiter, tracker = _arbiter(TouchPlateMethod(), scheduler, resolutions)
    arbiter.phase_changed("Run")
    assert not arbiter.phase_changed("Idle")
    arbiter.phase_changed("Run")
    arbiter.dispatch_finished()
    assert resolutions == []
    assert arbiter.phase_changed("Idle")
    assert resolutions[0].signal is CompletionSignal.IDLE_TRANSITION


def test_idle_without_running_does_not_resolve(scheduler, resolutions):
    arbiter, _ = _arbiter(TouchPlateMethod(), scheduler, resolutions)
    arbiter.dispatch_finished()
    assert not arbiter.phase_changed("Idle")
    assert not arbiter.phase_changed("idle")
    assert resolutions == []


def test_bitsetter_ignores_ack_and_idle(scheduler, resolutions):
    arbiter, tracker = _arbiter(BitSetterMethod(), scheduler, resolutions)
    _feed(tracker, 5, 5)
    arbiter.dispatch_finished()
    arbiter.phase_changed("Run")
    arbiter.phase_changed("Idle")
    assert resolutions == []
    assert arbiter.stabilized(1.234)
    assert resolutions[0].signal is CompletionSignal.STABILIZED
    assert resolutions[0].value == 1.234


def test_first_signal_wins(scheduler, resolutions):
    arbiter, tracker = _arbiter(CustomMethod(gcode="G0"), scheduler, resolutions, total=1)
    _feed(tracker, 1, 1)
    assert arbiter.check_acknowledged()
    assert not arbiter.fail(ControllerFault("late"))
    assert not arbiter.check_acknowledged()
    scheduler.advance(1000)
    assert len(resolutions) == 1
    assert resolutions[0].ok


def test_failure_shares_the_gate(scheduler, resolutions):
    arbiter, tracker = _arbiter(CustomMethod(gcode="G0"), scheduler, resolutions, total=1)
    assert arbiter.fail(ControllerFault("error:9"))
    _feed(tracker, 1, 1)
    assert not arbiter.check_acknowledged()
    assert len(resolutions) == 1
    assert not resolutions[0].ok


def test_fallback_best_effort_complete(scheduler, resolutions):
    arbiter, tracker = _arbiter(TouchPlateMethod(), scheduler, resolutions, total=10)
    _feed(tracker, 9, 8)
    scheduler.advance(299)
    assert resolutions == []
    scheduler.advance(2)
    assert [r.signal for r in resolutions] == [CompletionSignal.BEST_EFFORT]


def test_fallback_timeout_cites_ratios(scheduler, resolutions):
    arbiter, tracker = _arbiter(TouchPlateMethod(), scheduler, resolutions, total=10)
    _feed(tracker, 9, 7)
    scheduler.advance(301)
    error = resolutions[0].error
    assert isinstance(error, ProbeTimeoutError)
    assert error.kind == "Timeout"
    assert error.sent_ratio == pytest.approx(0.9)
    assert error.acked_ratio == pytest.approx(0.7)
    assert "90%" in str(error) and "70%" in str(error)


def test_bitsetter_timeout_never_best_effort(scheduler, resolutions):
    arbiter, tracker = _arbiter(BitSetterMethod(), scheduler, resolutions, total=4)
    _feed(tracker, 4, 4)
    scheduler.advance(301)
    assert isinstance(resolutions[0].error, ProbeTimeoutError)


def test_fallback_uses_configured_timeout(scheduler, resolutions):
    arbiter, _ = _arbiter(TouchPlateMethod(), scheduler, resolutions, config=EngineConfig(fallback_timeout=5))
    scheduler.advance(6)
    assert isinstance(resolutions[0].error, ProbeTimeoutError)


def test_teardown_is_idempotent(scheduler, resolutions):
    arbiter, tracker = _arbiter(TouchPlateMethod(), scheduler, resolutions)
    arbiter.teardown()
    arbiter.teardown()
    _feed(tracker, 5, 5)
    assert not arbiter.check_acknowledged()
    scheduler.advance(1000)
    assert resolutions == []


def test_idle_during_final_delay_is_held_until_dispatch_finishes(scheduler, resolutions):
    arbiter, _ = _arbiter(CustomMethod(gcode="G21\nG0 Z5"), scheduler, resolutions, total=2)
    arbiter.final_line_sent()
    arbiter.phase_changed("Run")
    assert not arbiter.phase_changed("Idle")
    assert resolutions == []
    arbiter.dispatch_finished()
    assert [r.signal for r in resolutions] == [CompletionSignal.IDLE_TRANSITION]


def test_held_idle_dropped_when_running_again(scheduler, resolutions):
    arbiter, _ = _arbiter(TouchPlateMethod(), scheduler, resolutions)
    arbiter.final_line_sent()
    arbiter.phase_changed("Run")
    arbiter.phase_changed("Idle")
    arbiter.phase_changed("Run")
    arbiter.dispatch_finished()
    assert resolutions == []
    assert arbiter.phase_changed("Idle")
