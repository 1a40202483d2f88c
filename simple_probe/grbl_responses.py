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

"""Inbound line classification shared by the progress tracker and the
failure monitor.

Grbl answers every line with ``ok`` or ``error:N``, and reports alarms as
``ALARM:N``. Status reports (``<...>``), bracketed feedback (``[...]``) and
the sender's own echo of the line being executed (``> G0 X0 (ln=15)``) are
informational.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

from .utils.constants import FAILING_LINE_PREFIX
from .utils.grbl_errors import GrblCode, annotate_grbl_message, parse_grbl_code


class ResponseKind(enum.Enum):
    OK = "ok"
    ERROR = "error"
    ALARM = "alarm"
    STATUS = "status"
    ECHO = "echo"
    OTHER = "other"


@dataclass(frozen=True)
class Response:
    kind: ResponseKind
    text: str
    code: GrblCode | None = None

    @property
    def message(self) -> str:
        return annotate_grbl_message(self.text)


def classify_response(raw: str) -> Response:
    text = (raw or "").strip()
    lower = text.lower()
    if lower == "ok":
        return Response(ResponseKind.OK, text)
    if lower.startswith("error:"):
        return Response(ResponseKind.ERROR, text, parse_grbl_code(text))
    if lower.startswith("alarm:"):
        return Response(ResponseKind.ALARM, text, parse_grbl_code(text))
    if "[msg:" in lower and "reset to continue" in lower:
        return Response(ResponseKind.ALARM, text)
    if text.startswith("<") and text.endswith(">"):
        return Response(ResponseKind.STATUS, text)
    if text.startswith(FAILING_LINE_PREFIX):
        return Response(ResponseKind.ECHO, text)
    return Response(ResponseKind.OTHER, text)


# Controller/workflow phases as reported by the transport.
PHASE_IDLE = "idle"
PHASE_RUNNING = "running"
FAULT_PHASES = frozenset({"alarm", "error"})

_PHASE_ALIASES = {
    "run": PHASE_RUNNING,
    "running": PHASE_RUNNING,
    "jog": PHASE_RUNNING,
    "home": PHASE_RUNNING,
    "idle": PHASE_IDLE,
    "alarm": "alarm",
    "error": "error",
}


def normalize_phase(phase: str) -> str:
    """Map transport phase names (``Idle``, ``Run``, ``Alarm:1``...) to one vocabulary."""
    base = (phase or "").strip().lower()
    base = base.split(":", 1)[0].split("|", 1)[0]
    return _PHASE_ALIASES.get(base, base)
