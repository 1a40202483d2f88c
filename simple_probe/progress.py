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

"""Sent/acknowledged line counters for one probe run."""

from __future__ import annotations

import logging

from .gcode_lines import counts_as_sent
from .grbl_responses import Response, ResponseKind, classify_response

logger = logging.getLogger(__name__)


class ProgressTracker:
    """Counts substantive outbound lines and ``ok`` acknowledgments.

    Counters only move forward and stay within ``0 <= acked <= sent <= total``.
    Nothing is counted until :meth:`start` and after :meth:`stop`.
    """

    def __init__(self, total: int):
        if total < 0:
            raise ValueError(f"total must be >= 0, got {total}")
        self._total = int(total)
        self._sent = 0
        self._acked = 0
        self._issued: int | None = None
        self._active = False

    @property
    def total(self) -> int:
        return self._total

    @property
    def sent(self) -> int:
        return self._sent

    @property
    def acked(self) -> int:
        return self._acked

    @property
    def active(self) -> bool:
        return self._active

    def start(self) -> None:
        self._active = True

    def stop(self) -> None:
        self._active = False

    def sent_ratio(self) -> float:
        return self._sent / self._total if self._total else 1.0

    def acked_ratio(self) -> float:
        return self._acked / self._total if self._total else 1.0

    def all_acknowledged(self) -> bool:
        return self._total > 0 and self._acked >= self._total

    def record_issued(self, count: int) -> None:
        """Note that the dispatcher has started writing its ``count``-th line.

        Once known, an ``ok`` with no sent echo outstanding only counts when
        the dispatcher has issued more lines than ``sent`` shows.
        """
        if not self._active:
            return
        count = min(int(count), self._total)
        if self._issued is None or count > self._issued:
            self._issued = count

    def record_sent(self, text: str, source: str | None = None) -> bool:
        """Count an outbound echo. Returns True when ``sent`` advanced."""
        if not self._active or not counts_as_sent(text, source):
            return False
        if self._sent >= self._total:
            logger.debug(f"Ignoring sent echo beyond total: {text!r}")
            return False
        self._sent += 1
        return True

    def record_inbound(self, text: str) -> Response:
        """Classify an inbound line and count it when it is ``ok``."""
        response = classify_response(text)
        if self._active and response.kind is ResponseKind.OK:
            self._record_ok()
        return response

    def _record_ok(self) -> None:
        if self._acked < self._sent:
            self._acked += 1
            return
        # ok raced ahead of its sent echo
        ceiling = self._total if self._issued is None else self._issued
        if self._sent < ceiling:
            self._sent += 1
            self._acked += 1
            return
        logger.debug(f"Ignoring ok with no line outstanding (sent {self._sent}, issued {self._issued})")
