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

"""Collaborator protocols and shared value types.

The engine never opens a connection or touches a settings file itself; it is
handed objects matching these protocols.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Mapping, Protocol, TypeAlias

from simple_probe.events import Subscription

LineSentCallback: TypeAlias = Callable[[str, "str | None"], None]
LineCallback: TypeAlias = Callable[[str], None]
PhaseCallback: TypeAlias = Callable[[str], None]
DisconnectCallback: TypeAlias = Callable[[], None]


@dataclass(frozen=True)
class Position:
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0


@dataclass(frozen=True)
class PositionSnapshot:
    """One push from the position feed."""

    machine: Position
    work: Position
    probe_contact: bool = False


class Transport(Protocol):
    def send_line(self, text: str) -> None: ...
    def on_line_sent(self, callback: LineSentCallback) -> Subscription: ...
    def on_line_acknowledged(self, callback: LineCallback) -> Subscription: ...
    def on_phase_transition(self, callback: PhaseCallback) -> Subscription: ...
    def on_disconnect(self, callback: DisconnectCallback) -> Subscription: ...


class PositionFeed(Protocol):
    def on_position(self, callback: Callable[[PositionSnapshot], None]) -> Subscription: ...


class CalibrationStore(Protocol):
    def get(self, key: str) -> Any | None: ...
    def set(self, key: str, value: Any, metadata: Mapping[str, Any]) -> bool: ...
    def clear(self, key: str) -> bool: ...


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Single-actor event queue plus timers."""

    def now(self) -> float: ...
    def post(self, func: Callable[..., Any], *args: Any) -> None: ...
    def call_later(self, delay: float, func: Callable[..., Any], *args: Any) -> TimerHandle: ...
