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

"""Zeroing method variants.

``ZeroingMethod`` is a closed union. Code that branches on it goes through
``match`` with an ``assert_never`` fallthrough so that adding a variant
fails loudly in the builder, the step counter and the completion rules.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, NoReturn, TypeAlias

from simple_probe.types import Position
from simple_probe.utils.exceptions import ConfigurationError, ValidationException
from simple_probe.utils.validation import (
    validate_axes,
    validate_coordinate,
    validate_distance,
    validate_feed_rate,
    validate_thickness,
)


def assert_never(value: Any) -> NoReturn:
    raise AssertionError(f"Unhandled zeroing method: {value!r}")


@dataclass(frozen=True)
class ManualMethod:
    axes: str = "xyz"
    id: str = "manual"
    name: str = "Manual"

    type = "manual"


@dataclass(frozen=True)
class TouchPlateMethod:
    plate_thickness: float = 19.05
    probe_distance: float = 25.0
    probe_feedrate: float = 100.0
    require_check: bool = True
    id: str = "touchplate"
    name: str = "Touch Plate"

    type = "touchplate"
    axes = "z"


@dataclass(frozen=True)
class BitSetterMethod:
    position: Position = field(default_factory=Position)
    probe_distance: float = 50.0
    probe_feedrate: float = 100.0
    require_check: bool = False
    id: str = "bitsetter"
    name: str = "BitSetter"

    type = "bitsetter"
    axes = "z"


@dataclass(frozen=True)
class BitZeroMethod:
    probe_distance: float = 25.0
    probe_feedrate: float = 100.0
    probe_thickness: float = 12.7
    require_check: bool = False
    id: str = "bitzero"
    name: str = "BitZero"

    type = "bitzero"
    axes = "xyz"


@dataclass(frozen=True)
class CustomMethod:
    gcode: str = ""
    axes: str = "xyz"
    id: str = "custom"
    name: str = "Custom G-code"

    type = "custom"


ZeroingMethod: TypeAlias = ManualMethod | TouchPlateMethod | BitSetterMethod | BitZeroMethod | CustomMethod


def total_steps(method: ZeroingMethod) -> int:
    """Number of wizard steps; depends only on the variant and its check flag."""
    match method:
        case ManualMethod():
            return 3
        case TouchPlateMethod(require_check=check):
            return 4 if check else 3
        case BitSetterMethod(require_check=check):
            return 4 if check else 3
        case BitZeroMethod(require_check=check):
            return 5 if check else 4
        case CustomMethod():
            return 2
        case _:
            assert_never(method)


def probe_step(method: ZeroingMethod) -> int | None:
    """Step on which the probe run happens (``None`` for manual)."""
    match method:
        case ManualMethod():
            return None
        case TouchPlateMethod(require_check=check):
            return 3 if check else 2
        case BitSetterMethod():
            return total_steps(method)
        case BitZeroMethod(require_check=check):
            return 4 if check else 3
        case CustomMethod():
            return 1
        case _:
            assert_never(method)


def navigate_step(method: ZeroingMethod) -> int | None:
    """BitSetter navigation step (``None`` for other methods)."""
    if isinstance(method, BitSetterMethod):
        return 2 if method.require_check else 1
    return None


def verification_step(method: ZeroingMethod) -> int | None:
    """Probe-circuit check step when the method asks for one."""
    if isinstance(method, (TouchPlateMethod, BitSetterMethod, BitZeroMethod)) and method.require_check:
        return 1
    return None


def zeroes_z(method: ZeroingMethod) -> bool:
    """Whether running the method re-zeroes Z and invalidates a tool reference."""
    match method:
        case TouchPlateMethod() | BitZeroMethod():
            return True
        case ManualMethod(axes=axes) | CustomMethod(axes=axes):
            return "z" in axes
        case BitSetterMethod():
            return False
        case _:
            assert_never(method)


def _get(record: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in record and record[key] is not None:
            return record[key]
    return default


def method_from_dict(record: Mapping[str, Any]) -> ZeroingMethod:
    """Build a method from a settings record (camelCase or snake_case keys).

    Raises:
        ConfigurationError: Unknown type or invalid parameter
    """
    kind = str(record.get("type", "")).strip().lower()
    method_id = str(record.get("id") or kind)
    name = str(record.get("name") or kind.title())
    try:
        if kind == "manual":
            return ManualMethod(
                axes=validate_axes(_get(record, "axes", default="xyz")),
                id=method_id,
                name=name,
            )
        if kind == "touchplate":
            return TouchPlateMethod(
                plate_thickness=validate_thickness(
                    _get(record, "plateThickness", "plate_thickness", default=19.05), "plate_thickness"
                ),
                probe_distance=validate_distance(
                    _get(record, "probeDistance", "probe_distance", default=25.0), "probe_distance"
                ),
                probe_feedrate=validate_feed_rate(
                    _get(record, "probeFeedrate", "probe_feedrate", default=100.0), "probe_feedrate"
                ),
                require_check=bool(_get(record, "requireCheck", "require_check", default=True)),
                id=method_id,
                name=name,
            )
        if kind == "bitsetter":
            raw_pos = _get(record, "position", default={}) or {}
            position = Position(
                x=validate_coordinate(raw_pos.get("x", 0.0), "x"),
                y=validate_coordinate(raw_pos.get("y", 0.0), "y"),
                z=validate_coordinate(raw_pos.get("z", 0.0), "z"),
            )
            return BitSetterMethod(
                position=position,
                probe_distance=validate_distance(
                    _get(record, "probeDistance", "probe_distance", default=50.0), "probe_distance"
                ),
                probe_feedrate=validate_feed_rate(
                    _get(record, "probeFeedrate", "probe_feedrate", default=100.0), "probe_feedrate"
                ),
                require_check=bool(_get(record, "requireCheck", "require_check", default=False)),
                id=method_id,
                name=name,
            )
        if kind == "bitzero":
            return BitZeroMethod(
                probe_distance=validate_distance(
                    _get(record, "probeDistance", "probe_distance", default=25.0), "probe_distance"
                ),
                probe_feedrate=validate_feed_rate(
                    _get(record, "probeFeedrate", "probe_feedrate", default=100.0), "probe_feedrate"
                ),
                probe_thickness=validate_thickness(
                    _get(record, "probeThickness", "probe_thickness", default=12.7), "probe_thickness"
                ),
                require_check=bool(_get(record, "requireCheck", "require_check", default=False)),
                id=method_id,
                name=name,
            )
        if kind == "custom":
            gcode = _get(record, "gcode", default="")
            if not isinstance(gcode, str):
                raise ConfigurationError(f"Custom method {method_id!r}: gcode must be text")
            return CustomMethod(
                gcode=gcode,
                axes=validate_axes(_get(record, "axes", default="xyz")),
                id=method_id,
                name=name,
            )
    except ValidationException as exc:
        raise ConfigurationError(f"Method {method_id!r}: {exc}") from exc
    raise ConfigurationError(f"Unknown zeroing method type: {record.get('type')!r}")
