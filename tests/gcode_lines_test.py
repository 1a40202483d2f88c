import pytest

from simple_probe.gcode_lines import (
    CommandLine,
    LineClass,
    classify_line,
    counts_as_sent,
    format_number,
    is_assignment,
    is_comment_only,
    strip_assignment_comment,
)


@pytest.mark.parametrize(
    "line, expected",
    [
        ("G38.2 Z-10 F100", LineClass.PROBE),
        ("G38.4 Z10 F5", LineClass.PROBE),
        ("g38.2 x5 f50", LineClass.PROBE),
        ("G4 P0.25", LineClass.DWELL),
        ("%wait", LineClass.DWELL),
        ("G0 Z10", LineClass.MOVEMENT),
        ("G53 G0 X10 Y10", LineClass.MOVEMENT),
        ("G1 X5 F200", LineClass.MOVEMENT),
        ("$J=G91 X1 F500", LineClass.MOVEMENT),
        ("G21", LineClass.MODE),
        ("G90", LineClass.MODE),
        ("M5", LineClass.MODE),
        ("G10 L20 P1 Z3", LineClass.MODE),
        ("%X_RIGHT=posx", LineClass.ASSIGNMENT),
        ("%msg Probing", LineClass.MODE),
        ("G0 X1 (G38.2 in a comment)", LineClass.MOVEMENT),
    ],
)
def test_classify_line(line, expected):
    assert classify_line(line) is expected


def test_command_line_strips_whitespace():
    line = CommandLine.of("  G4 P1  ")
    assert line.text == "G4 P1"
    assert line.line_class is LineClass.DWELL


def test_assignment_detection():
    assert is_assignment("%X_CHORD=X_RIGHT-X_LEFT")
    assert is_assignment("  %A=1 ; note")
    assert not is_assignment("%msg hello")
    assert not is_assignment("%WAIT")
    assert not is_assignment("G0 X0")


def test_strip_assignment_comment_only_touches_assignments():
    assert strip_assignment_comment("%X=posx ; right wall") == "%X=posx"
    assert strip_assignment_comment("%msg keep ; this") == "%msg keep ; this"
    assert strip_assignment_comment("G0 X0 ; keep") == "G0 X0 ; keep"


@pytest.mark.parametrize("line", ["", "   ", "; comment", "(paren comment)", "  ( a ) ( b )"])
def test_comment_only(line):
    assert is_comment_only(line)


def test_code_with_comment_is_not_comment_only():
    assert not is_comment_only("G0 X0 (move)")


def test_counts_as_sent_filters_queries_and_foreign_sources():
    assert counts_as_sent("G0 X0", "probe")
    assert counts_as_sent("G0 X0", "feeder")
    assert counts_as_sent("G0 X0", None)
    assert not counts_as_sent("G0 X0", "console")
    assert not counts_as_sent("?", "probe")
    assert not counts_as_sent("$G", "probe")
    assert not counts_as_sent("$$", None)
    assert not counts_as_sent("<Idle|MPos:0,0,0>", "probe")


@pytest.mark.parametrize(
    "value, expected",
    [(10, "10"), (12.7, "12.7"), (19.05, "19.05"), (-5, "-5"), (0.0, "0"), (-0.00001, "0"), (1.23456, "1.2346")],
)
def test_format_number(value, expected):
    assert format_number(value) == expected
