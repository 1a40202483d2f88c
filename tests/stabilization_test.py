import pytest

from simple_probe.stabilization import PositionSample, StabilizationDetector


def _sample(z, t=0.0):
    return PositionSample(0.0, 0.0, z, "work", t)


@pytest.fixture
def emitted():
    return []


@pytest.fixture
def detector(scheduler, emitted):
    return StabilizationDetector(scheduler, emitted.append, epsilon=0.001, window=0.5)


def test_emits_after_window_without_change(detector, scheduler, emitted):
    detector.start_polling()
    detector.observe(_sample(1.234))
    scheduler.advance(0.3)
    detector.observe(_sample(1.2345))
    scheduler.advance(0.3)
    assert len(emitted) == 1
    assert emitted[0].z == pytest.approx(1.2345)
    assert detector.emitted
    assert not detector.polling


def test_change_restarts_window(detector, scheduler, emitted):
    detector.start_polling()
    detector.observe(_sample(0.0))
    scheduler.advance(0.4)
    detector.observe(_sample(0.5))
    scheduler.advance(0.4)
    assert emitted == []
    scheduler.advance(0.2)
    assert [s.z for s in emitted] == [0.5]


def test_emits_once(detector, scheduler, emitted):
    detector.start_polling()
    detector.observe(_sample(2.0))
    scheduler.advance(1.0)
    detector.observe(_sample(3.0))
    scheduler.advance(1.0)
    detector.start_polling()
    scheduler.advance(1.0)
    assert len(emitted) == 1


def test_samples_before_polling_only_track_last(detector, scheduler, emitted):
    detector.observe(_sample(-5.0))
    scheduler.advance(2.0)
    assert emitted == []
    assert detector.record_baseline().z == -5.0
    detector.observe(_sample(1.0))
    detector.start_polling()
    scheduler.advance(0.6)
    assert [s.z for s in emitted] == [1.0]
    assert detector.baseline.z == -5.0


def test_cancel_prevents_emit(detector, scheduler, emitted):
    detector.start_polling()
    detector.observe(_sample(1.0))
    detector.cancel()
    scheduler.advance(5.0)
    assert emitted == []
    assert scheduler.pending_timers() == 0
