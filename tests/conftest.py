import pytest

from simple_probe.calibration import MemoryCalibrationStore
from simple_probe.events import EventTap
from simple_probe.scheduling import ManualScheduler
from simple_probe.types import Position, PositionSnapshot
from simple_probe.utils.config import EngineConfig


class FakeTransport:
    """Line transport that records sends and lets tests inject events.

    With ``echo`` set, every send is echoed back as an outbound-sent event
    tagged ``probe``, the way the real sender reports its writes.
    """

    def __init__(self, echo=True):
        self.echo = echo
        self.sent = []
        self.fail_on = None
        self.line_sent = EventTap("line_sent")
        self.line_acknowledged = EventTap("line_acknowledged")
        self.phase_transition = EventTap("phase_transition")
        self.disconnect = EventTap("disconnect")

    def send_line(self, text):
        if self.fail_on is not None and text == self.fail_on:
            raise OSError("port closed")
        self.sent.append(text)
        if self.echo:
            self.line_sent.emit(text, "probe")

    def on_line_sent(self, callback):
        return self.line_sent.subscribe(callback)

    def on_line_acknowledged(self, callback):
        return self.line_acknowledged.subscribe(callback)

    def on_phase_transition(self, callback):
        return self.phase_transition.subscribe(callback)

    def on_disconnect(self, callback):
        return self.disconnect.subscribe(callback)

    def receive(self, *lines):
        for line in lines:
            self.line_acknowledged.emit(line)

    def ack(self, count=1):
        self.receive(*(["ok"] * count))

    def phase(self, name):
        self.phase_transition.emit(name)

    def drop(self):
        self.disconnect.emit()

    def listener_count(self):
        return (
            len(self.line_sent)
            + len(self.line_acknowledged)
            + len(self.phase_transition)
            + len(self.disconnect)
        )


class FakePositionFeed:
    def __init__(self):
        self.tap = EventTap("position")

    def on_position(self, callback):
        return self.tap.subscribe(callback)

    def push(self, z, x=0.0, y=0.0, probe_contact=False):
        work = Position(x, y, z)
        self.tap.emit(PositionSnapshot(machine=work, work=work, probe_contact=probe_contact))


class FailingCalibrationStore(MemoryCalibrationStore):
    def __init__(self, fail_set=True, fail_clear=False):
        super().__init__()
        self.fail_set = fail_set
        self.fail_clear = fail_clear

    def set(self, key, value, metadata):
        if self.fail_set:
            return False
        return super().set(key, value, metadata)

    def clear(self, key):
        if self.fail_clear:
            raise OSError("read-only store")
        return super().clear(key)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def feed():
    return FakePositionFeed()


@pytest.fixture
def store():
    return MemoryCalibrationStore()


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def config():
    return EngineConfig()
