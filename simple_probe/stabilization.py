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

"""Position stabilization detection.

The position feed updates asynchronously to motion completion, so a reading
taken right after the last probe line may be stale or mid-motion. The
detector waits until work Z stops moving for a debounce window.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from .types import Position, PositionSnapshot, Scheduler, TimerHandle
from .utils.constants import STABILIZATION_EPSILON, STABILIZATION_WINDOW

logger = logging.getLogger(__name__)

MACHINE_SPACE = "machine"
WORK_SPACE = "work"


@dataclass(frozen=True)
class PositionSample:
    x: float
    y: float
    z: float
    space: str
    timestamp: float

    @classmethod
    def from_position(cls, position: Position, space: str, timestamp: float) -> "PositionSample":
        return cls(position.x, position.y, position.z, space, timestamp)

    @classmethod
    def work_from_snapshot(cls, snapshot: PositionSnapshot, timestamp: float) -> "PositionSample":
        return cls.from_position(snapshot.work, WORK_SPACE, timestamp)


class StabilizationDetector:
    """Emits the work Z once it holds within ``epsilon`` for ``window`` seconds.

    Only the baseline (taken before the probe stage) and the most recent
    sample are retained. The value is emitted at most once.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        on_stable: Callable[[PositionSample], None],
        *,
        epsilon: float = STABILIZATION_EPSILON,
        window: float = STABILIZATION_WINDOW,
    ):
        self._scheduler = scheduler
        self._on_stable = on_stable
        self.epsilon = epsilon
        self.window = window
        self._baseline: PositionSample | None = None
        self._last: PositionSample | None = None
        self._timer: TimerHandle | None = None
        self._polling = False
        self._emitted = False

    @property
    def baseline(self) -> PositionSample | None:
        return self._baseline

    @property
    def last_sample(self) -> PositionSample | None:
        return self._last

    @property
    def polling(self) -> bool:
        return self._polling

    @property
    def emitted(self) -> bool:
        return self._emitted

    def record_baseline(self) -> PositionSample | None:
        """Pin the most recent sample as P0."""
        self._baseline = self._last
        if self._baseline is not None:
            logger.debug(f"Stabilization baseline z={self._baseline.z:.4f}")
        return self._baseline

    def start_polling(self) -> None:
        if self._polling or self._emitted:
            return
        self._polling = True
        if self._last is not None:
            self._restart_window()

    def observe(self, sample: PositionSample) -> None:
        previous = self._last
        self._last = sample
        if not self._polling or self._emitted:
            return
        if previous is None or abs(sample.z - previous.z) >= self.epsilon:
            self._restart_window()
        elif self._timer is None:
            self._restart_window()

    def cancel(self) -> None:
        self._polling = False
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _restart_window(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._timer = self._scheduler.call_later(self.window, self._window_elapsed)

    def _window_elapsed(self) -> None:
        self._timer = None
        if not self._polling or self._emitted or self._last is None:
            return
        self._emitted = True
        self._polling = False
        sample = self._last
        if self._baseline is not None:
            logger.info(
                f"Position stabilized at z={sample.z:.4f} "
                f"(moved {sample.z - self._baseline.z:+.4f} from baseline)"
            )
        else:
            logger.info(f"Position stabilized at z={sample.z:.4f}")
        self._on_stable(sample)
