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

"""Failure classification for a probe run."""

from __future__ import annotations

import logging
from collections import deque
from typing import Callable

from .grbl_responses import FAULT_PHASES, Response, ResponseKind, classify_response, normalize_phase
from .utils.constants import (
    ERROR_PHASE_FAULT,
    ERROR_TRANSPORT_LOST,
    FAILING_LINE_PREFIX,
    RECENT_RX_LINES,
)
from .utils.exceptions import ControllerFault, ProbeContactError, ProbeSessionError, TransportLost

logger = logging.getLogger(__name__)


class FailureMonitor:
    """Turns error/alarm lines, fault phases and disconnects into failures.

    Errors can race ahead of the echo of the line they concern, so the last
    few inbound lines are kept and searched for a ``> ...`` echo.
    """

    def __init__(self, on_failure: Callable[[ProbeSessionError], None], history: int = RECENT_RX_LINES):
        self._on_failure = on_failure
        self._recent: deque[str] = deque(maxlen=history)
        self._failed = False

    @property
    def failed(self) -> bool:
        return self._failed

    def recent_lines(self) -> list[str]:
        return list(self._recent)

    def failing_line(self) -> str | None:
        for text in self._recent:
            if text.startswith(FAILING_LINE_PREFIX):
                return text
        return None

    def observe_line(self, text: str, response: Response | None = None) -> ProbeSessionError | None:
        stripped = (text or "").strip()
        self._recent.append(stripped)
        response = response or classify_response(stripped)
        if response.kind is ResponseKind.ERROR or response.kind is ResponseKind.ALARM:
            return self._report(self._classify(response))
        return None

    def observe_phase(self, phase: str) -> ProbeSessionError | None:
        current = normalize_phase(phase)
        if current not in FAULT_PHASES:
            return None
        return self._report(ControllerFault(ERROR_PHASE_FAULT.format(phase=current), code_kind=current))

    def observe_disconnect(self) -> ProbeSessionError | None:
        return self._report(TransportLost(ERROR_TRANSPORT_LOST))

    def send_failed(self, exc: Exception, line: str) -> ProbeSessionError | None:
        return self._report(TransportLost(f"{ERROR_TRANSPORT_LOST}: {exc}", line=line))

    def _classify(self, response: Response) -> ProbeSessionError:
        message = response.message
        failing = self.failing_line()
        if failing:
            message = f"{message}\n\nFailing line: {failing}"
        code = response.code
        if code is not None and code.is_probe_failure:
            return ProbeContactError(message, line=failing, alarm_code=code.code)
        return ControllerFault(
            message,
            line=failing,
            code=code.code if code else None,
            code_kind=code.kind if code else response.kind.value,
        )

    def _report(self, error: ProbeSessionError) -> ProbeSessionError | None:
        if self._failed:
            return None
        self._failed = True
        logger.error(f"{error.kind}: {error}")
        self._on_failure(error)
        return error
