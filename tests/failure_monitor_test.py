import pytest

from simple_probe.failure_monitor import FailureMonitor
from simple_probe.grbl_responses import ResponseKind, classify_response, normalize_phase
from simple_probe.utils.exceptions import ControllerFault, ProbeContactError, TransportLost


@pytest.fixture
def failures():
    return []


@pytest.fixture
def monitor(failures):
    return FailureMonitor(failures.append)


@pytest.mark.parametrize(
    "line, kind",
    [
        ("ok", ResponseKind.OK),
        ("error:20", ResponseKind.ERROR),
        ("ALARM:4", ResponseKind.ALARM),
        ("[MSG:Reset to continue]", ResponseKind.ALARM),
        ("<Idle|MPos:0.000,0.000,0.000|FS:0,0>", ResponseKind.STATUS),
        ("> G0 X0 (ln=15)", ResponseKind.ECHO),
        ("[GC:G0 G54 G17 G21 G90 G94]", ResponseKind.OTHER),
        ("Grbl 1.1h ['$' for help]", ResponseKind.OTHER),
    ],
)
def test_classify_response(line, kind):
    assert classify_response(line).kind is kind


@pytest.mark.parametrize(
    "phase, expected",
    [("Idle", "idle"), ("Run", "running"), ("running", "running"), ("Alarm:1", "alarm"), ("Hold:0", "hold")],
)
def test_normalize_phase(phase, expected):
    assert normalize_phase(phase) == expected


def test_ok_and_other_lines_are_not_failures(monitor, failures):
    for line in ("ok", "<Idle|MPos:0,0,0>", "[MSG:Caution: Unlocked]", "> G0 X0"):
        assert monitor.observe_line(line) is None
    assert failures == []


def test_error_line_is_controller_fault_with_description(monitor, failures):
    error = monitor.observe_line("error:20")
    assert isinstance(error, ControllerFault)
    assert error.kind == "ControllerFault"
    assert error.code == 20
    assert error.code_kind == "error"
    assert str(error).startswith("error:20 (")
    assert failures == [error]


@pytest.mark.parametrize("code", [4, 5])
def test_probe_alarms_are_contact_errors(monitor, code):
    error = monitor.observe_line(f"ALARM:{code}")
    assert isinstance(error, ProbeContactError)
    assert error.alarm_code == code


def test_other_alarm_is_controller_fault(monitor):
    error = monitor.observe_line("ALARM:1")
    assert isinstance(error, ControllerFault)
    assert error.code_kind == "alarm"


def test_reset_to_continue_is_controller_fault(monitor):
    assert isinstance(monitor.observe_line("[MSG:Reset to continue]"), ControllerFault)


def test_failing_line_attached_from_recent_buffer(monitor):
    monitor.observe_line("ok")
    monitor.observe_line("> G38.2 Z-10 F100 (ln=5)")
    monitor.observe_line("ok")
    error = monitor.observe_line("error:9")
    assert str(error).endswith("\n\nFailing line: > G38.2 Z-10 F100 (ln=5)")
    assert error.line == "> G38.2 Z-10 F100 (ln=5)"


def test_failing_line_outside_buffer_is_not_attached(monitor):
    monitor.observe_line("> G0 X0 (ln=1)")
    for _ in range(5):
        monitor.observe_line("ok")
    error = monitor.observe_line("error:9")
    assert "Failing line" not in str(error)
    assert error.line is None
    assert len(monitor.recent_lines()) == 5


def test_fault_phase(monitor):
    assert monitor.observe_phase("Idle") is None
    error = monitor.observe_phase("Alarm")
    assert isinstance(error, ControllerFault)
    assert "alarm" in str(error)


def test_disconnect_and_send_failure(failures):
    monitor = FailureMonitor(failures.append)
    assert isinstance(monitor.observe_disconnect(), TransportLost)
    other = FailureMonitor(failures.append)
    error = other.send_failed(OSError("gone"), "G0 X0")
    assert isinstance(error, TransportLost)
    assert error.line == "G0 X0"


def test_reports_only_first_failure(monitor, failures):
    monitor.observe_line("error:9")
    assert monitor.observe_line("ALARM:1") is None
    assert monitor.observe_disconnect() is None
    assert len(failures) == 1
