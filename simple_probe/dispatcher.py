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

"""Paced line dispatch.

The dispatcher sends one line, waits a class-dependent delay, then sends the
next. It is pacing only: acknowledgments are never consulted here.
"""

from __future__ import annotations

import logging
from typing import Callable, Sequence

from .gcode_lines import CommandLine, LineClass
from .types import Scheduler, TimerHandle, Transport
from .utils.config import EngineConfig
from .utils.logging_config import LINES_LOGGER_NAME

logger = logging.getLogger(__name__)
lines_logger = logging.getLogger(LINES_LOGGER_NAME)


class LineDispatcher:
    def __init__(
        self,
        transport: Transport,
        scheduler: Scheduler,
        lines: Sequence[CommandLine],
        config: EngineConfig | None = None,
        *,
        on_line_sending: Callable[[int, CommandLine], None] | None = None,
        on_line_dispatched: Callable[[int, CommandLine], None] | None = None,
        on_finished: Callable[[], None] | None = None,
        on_send_failed: Callable[[Exception, CommandLine], None] | None = None,
    ):
        self._transport = transport
        self._scheduler = scheduler
        self._lines = list(lines)
        self._config = config or EngineConfig()
        self._on_line_sending = on_line_sending
        self._on_line_dispatched = on_line_dispatched
        self._on_finished = on_finished
        self._on_send_failed = on_send_failed
        self._index = 0
        self._timer: TimerHandle | None = None
        self._started = False
        self._cancelled = False
        self._finished = False

    @property
    def dispatched(self) -> int:
        return self._index

    @property
    def total(self) -> int:
        return len(self._lines)

    @property
    def finished(self) -> bool:
        return self._finished

    def delay_for(self, line: CommandLine) -> float:
        if line.line_class is LineClass.PROBE:
            return self._config.delay_probe
        if line.line_class is LineClass.DWELL:
            return self._config.delay_dwell
        return self._config.delay_default

    def start(self) -> None:
        if self._started:
            return
        self._started = True
        self._send_next()

    def cancel(self) -> None:
        self._cancelled = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _send_next(self) -> None:
        self._timer = None
        if self._cancelled:
            return
        if self._index >= len(self._lines):
            self._finished = True
            logger.debug(f"Dispatched all {len(self._lines)} lines")
            if self._on_finished:
                self._on_finished()
            return
        line = self._lines[self._index]
        if self._on_line_sending:
            self._on_line_sending(self._index + 1, line)
        try:
            self._transport.send_line(line.text)
        except Exception as exc:
            logger.error(f"Send failed for {line.text!r}: {exc}")
            self._cancelled = True
            if self._on_send_failed:
                self._on_send_failed(exc, line)
            return
        self._index += 1
        lines_logger.info(f"TX [{line.line_class.value}] {line.text}")
        if self._on_line_dispatched:
            self._on_line_dispatched(self._index, line)
        # a callback may have torn the run down
        if self._cancelled:
            return
        self._timer = self._scheduler.call_later(self.delay_for(line), self._send_next)
