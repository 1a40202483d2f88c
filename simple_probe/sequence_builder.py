#!/usr/bin/env python3
# Simple Probe (GRBL probe sequencing engine)
# Copyright (C) 2026 Bob Kolbasowski
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License
# along with this program.  If not, see <https://www.gnu.org/licenses/>.
#
# Optional (not required by the license): If you make improvements, please consider
# contributing them back upstream (e.g., via a pull request) so others can benefit.
#
# SPDX-License-Identifier: GPL-3.0-or-later

"""Command Sequence Builder.

Pure functions from a zeroing method plus live context to an ordered list of
classified command lines. No I/O and no clock reads: the same inputs always
produce the same lines.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Mapping, Sequence

from .gcode_lines import (
    CommandLine,
    format_number,
    is_assignment,
    is_comment_only,
    strip_assignment_comment,
)
from .methods import (
    BitSetterMethod,
    BitZeroMethod,
    CustomMethod,
    ManualMethod,
    TouchPlateMethod,
    ZeroingMethod,
    assert_never,
)
from .utils.config import EngineConfig
from .utils.constants import (
    BITSETTER_RAPID_FEED_FALLBACK,
    BITZERO_MAJOR_RETRACT,
    BITZERO_SLOW_FEED,
    BITZERO_Z_FINAL,
    BITZERO_Z_KEEPOUT,
    BITZERO_Z_PROBE,
    DEFAULT_WCS,
    ERROR_EMPTY_CUSTOM,
    MACRO_PARAM_PAT,
    WCS_P_NUMBERS,
)
from .utils.exceptions import ConfigurationError


@dataclass(frozen=True)
class BuildContext:
    wcs: str = DEFAULT_WCS
    safe_z: float = -5.0
    fine_feedrate: float = 40.0
    touchplate_retract: float = 10.0
    macro_parameters: Mapping[str, float | str] = field(default_factory=dict)

    @classmethod
    def from_config(
        cls,
        config: EngineConfig,
        wcs: str = DEFAULT_WCS,
        macro_parameters: Mapping[str, float | str] | None = None,
    ) -> "BuildContext":
        return cls(
            wcs=wcs,
            safe_z=config.bitsetter_safe_z,
            fine_feedrate=config.bitsetter_fine_feedrate,
            touchplate_retract=config.touchplate_retract,
            macro_parameters=dict(macro_parameters or {}),
        )


def wcs_p_number(wcs: str) -> int:
    """G54 -> 1 ... G59 -> 6; unknown systems fall back to P1."""
    return WCS_P_NUMBERS.get((wcs or "").strip().upper(), 1)


def build_set_zero_command(wcs: str, axes: str) -> str:
    """``G10 L20 P<n>`` with a zero word for every requested axis."""
    words = [f"{axis.upper()}0" for axis in "xyz" if axis in axes.lower()]
    if not words:
        raise ConfigurationError(f"No axes selected to zero: {axes!r}")
    return f"G10 L20 P{wcs_p_number(wcs)} {' '.join(words)}"


def build_set_zero_with_offset_command(wcs: str, axis: str, value: float) -> str:
    return f"G10 L20 P{wcs_p_number(wcs)} {axis.upper()}{format_number(value)}"


def _lines(texts: Iterable[str]) -> list[CommandLine]:
    return [CommandLine.of(text) for text in texts]


def prepare_macro_lines(
    texts: Iterable[str],
    parameters: Mapping[str, float | str] | None = None,
) -> list[CommandLine]:
    """Turn user/macro text into sendable lines.

    Blank and comment-only lines are dropped. Assignment lines lose trailing
    comments; everything else passes through as written.
    """
    params = parameters or {}
    out: list[CommandLine] = []
    for raw in texts:
        line = raw.strip()
        if is_comment_only(line):
            continue
        if is_assignment(line):
            line = strip_assignment_comment(line)
            if not line:
                continue
        if params:
            line = _resolve_parameters(line, params)
        out.append(CommandLine.of(line))
    return out


def _resolve_parameters(line: str, params: Mapping[str, float | str]) -> str:
    def repl(match):
        name = match.group(1)
        if name not in params:
            return match.group(0)
        value = params[name]
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return format_number(value)
        return str(value)

    return MACRO_PARAM_PAT.sub(repl, line)


def build_touchplate_sequence(method: TouchPlateMethod, ctx: BuildContext) -> list[CommandLine]:
    return _lines([
        "G21",
        "M5",
        "G90",
        "G91",
        f"G38.2 Z-{format_number(method.probe_distance)} F{format_number(method.probe_feedrate)}",
        "G90",
        build_set_zero_with_offset_command(ctx.wcs, "Z", method.plate_thickness),
        "G91",
        f"G0 Z{format_number(ctx.touchplate_retract)}",
        "G90",
    ])


def build_navigation_sequence(method: BitSetterMethod, ctx: BuildContext) -> list[CommandLine]:
    """Raise to the safe machine Z, travel over the sensor, then lower."""
    pos = method.position
    return _lines([
        "G90",
        f"G53 G0 Z{format_number(ctx.safe_z)}",
        f"G53 G0 X{format_number(pos.x)} Y{format_number(pos.y)}",
        f"G53 G0 Z{format_number(pos.z)}",
    ])


def build_bitsetter_sequence(method: BitSetterMethod, ctx: BuildContext) -> list[CommandLine]:
    """Fast probe, then two slow touch/release passes with dwells."""
    rapid = method.probe_feedrate or BITSETTER_RAPID_FEED_FALLBACK
    return _lines([
        "G21",
        "M5",
        "G90",
        "G91",
        f"G38.2 Z-{format_number(method.probe_distance)} F{format_number(rapid)}",
        "G0 Z2",
        f"G38.2 Z-5 F{format_number(ctx.fine_feedrate)}",
        "G4 P0.25",
        "G38.4 Z10 F20",
        "G4 P0.25",
        "G38.2 Z-2 F10",
        "G4 P0.25",
        "G38.4 Z10 F5",
        "G4 P0.25",
        "G90",
    ])


def build_retract_sequence(ctx: BuildContext) -> list[CommandLine]:
    return _lines(["G90", f"G53 G0 Z{format_number(ctx.safe_z)}"])


def _bitzero_macro(method: BitZeroMethod, ctx: BuildContext) -> list[str]:
    dist = format_number(method.probe_distance)
    fast = format_number(method.probe_feedrate)
    slow = format_number(BITZERO_SLOW_FEED)
    retract = format_number(BITZERO_MAJOR_RETRACT)
    z_probe = format_number(BITZERO_Z_PROBE)
    keepout = format_number(BITZERO_Z_KEEPOUT)
    return [
        "G91",
        "G21",
        "",
        "; X-Axis Probing",
        f"G38.2 X{dist} F{fast}",
        "G0 X-2",
        f"G38.2 X5 F{slow}",
        "G90",
        "%X_RIGHT=posx ; right wall",
        "G91",
        f"G0 X-{retract}",
        "",
        f"G38.2 X-{dist} F{fast}",
        "G0 X2",
        f"G38.2 X-5 F{slow}",
        "G90",
        "%X_LEFT=posx ; left wall",
        "",
        "; Calculate X center and move there",
        "%X_CHORD=X_RIGHT-X_LEFT",
        "%X_OFFSET=X_CHORD/2",
        "G91",
        "G0 X[X_OFFSET]",
        "G4 P1",
        build_set_zero_command(ctx.wcs, "x"),
        "",
        "; Y-Axis Probing",
        "G91",
        f"G38.2 Y{dist} F{fast}",
        "G0 Y-2",
        f"G38.2 Y5 F{slow}",
        "G90",
        "%Y_TOP=posy ; top wall",
        "G91",
        f"G0 Y-{retract}",
        "",
        f"G38.2 Y-{dist} F{fast}",
        "G0 Y2",
        f"G38.2 Y-5 F{slow}",
        "G90",
        "%Y_BTM=posy ; bottom wall",
        "",
        "; Calculate Y center and move there",
        "%Y_CHORD=Y_TOP-Y_BTM",
        "%Y_OFFSET=Y_CHORD/2",
        "G91",
        "G0 Y[Y_OFFSET]",
        "G4 P1",
        build_set_zero_command(ctx.wcs, "y"),
        "",
        "; Z probe location clears the hole edge",
        "%HOLE_RADIUS=Y_CHORD/2",
        f"%Z_PROBE_X=HOLE_RADIUS+{keepout}",
        f"%Z_PROBE_Y=HOLE_RADIUS+{keepout}",
        "",
        "; Z-Axis Probing",
        f"G0 Z{z_probe}",
        "G0 X[Z_PROBE_X] Y[Z_PROBE_Y]",
        f"G38.2 Z-{z_probe} F{fast}",
        "G0 Z2",
        f"G38.2 Z-5 F{slow}",
        build_set_zero_with_offset_command(ctx.wcs, "Z", method.probe_thickness),
        f"G0 Z{format_number(BITZERO_Z_FINAL)}",
        "",
        "; Final: Move to origin",
        "G90",
        "G0 X0 Y0",
        "G4 P1",
    ]


def build_bitzero_sequence(method: BitZeroMethod, ctx: BuildContext) -> list[CommandLine]:
    """Hole-centre probe; the centre is computed by the controller's macro
    evaluator from the ``%`` assignments."""
    return prepare_macro_lines(_bitzero_macro(method, ctx))


def build_custom_sequence(method: CustomMethod, ctx: BuildContext) -> list[CommandLine]:
    text = method.gcode or ""
    if not text.strip():
        raise ConfigurationError(ERROR_EMPTY_CUSTOM)
    lines = prepare_macro_lines(text.splitlines(), ctx.macro_parameters)
    if not lines:
        raise ConfigurationError(ERROR_EMPTY_CUSTOM)
    return lines


def build_manual_sequence(method: ManualMethod, ctx: BuildContext) -> list[CommandLine]:
    return _lines([build_set_zero_command(ctx.wcs, method.axes)])


def build_sequence(method: ZeroingMethod, ctx: BuildContext) -> list[CommandLine]:
    """Lines for the method's probe (or zero-set) run.

    Raises:
        ConfigurationError: The method yields no sendable line
    """
    match method:
        case ManualMethod():
            lines = build_manual_sequence(method, ctx)
        case TouchPlateMethod():
            lines = build_touchplate_sequence(method, ctx)
        case BitSetterMethod():
            lines = build_bitsetter_sequence(method, ctx)
        case BitZeroMethod():
            lines = build_bitzero_sequence(method, ctx)
        case CustomMethod():
            lines = build_custom_sequence(method, ctx)
        case _:
            assert_never(method)
    if not lines:
        raise ConfigurationError(f"{method.name}: empty command sequence")
    return lines


def texts(lines: Sequence[CommandLine]) -> list[str]:
    return [line.text for line in lines]
