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

"""Completion arbitration.

Several signals race to end a run: every line acknowledged, the controller
going from running back to idle, a stabilized position (bitsetter), the
fallback timer, and any failure. The first one through the gate wins; later
ones are dropped.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any, Callable

from .grbl_responses import PHASE_IDLE, PHASE_RUNNING, normalize_phase
from .methods import (
    BitSetterMethod,
    BitZeroMethod,
    CustomMethod,
    ManualMethod,
    TouchPlateMethod,
    ZeroingMethod,
    assert_never,
)
from .progress import ProgressTracker
from .types import Scheduler, TimerHandle
from .utils.config import EngineConfig
from .utils.exceptions import ProbeSessionError, ProbeTimeoutError

logger = logging.getLogger(__name__)


class CompletionSignal(enum.Enum):
    ACK_COUNT = "ack_count"
    IDLE_TRANSITION = "idle_transition"
    STABILIZED = "stabilized"
    BEST_EFFORT = "best_effort"


@dataclass(frozen=True)
class Resolution:
    signal: CompletionSignal | None
    value: Any = None
    error: ProbeSessionError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def completion_signals(method: ZeroingMethod) -> frozenset[CompletionSignal]:
    """Signals that may complete a probe run of ``method``."""
    match method:
        case BitSetterMethod():
            return frozenset({CompletionSignal.STABILIZED})
        case ManualMethod() | TouchPlateMethod() | BitZeroMethod() | CustomMethod():
            return frozenset({CompletionSignal.ACK_COUNT, CompletionSignal.IDLE_TRANSITION})
        case _:
            assert_never(method)


def allows_best_effort(method: ZeroingMethod) -> bool:
    """Whether the fallback timer may declare completion from line ratios.

    The bitsetter result is a measured value; without a stabilized reading
    there is nothing to store, so it always fails on timeout.
    """
    return CompletionSignal.ACK_COUNT in completion_signals(method)


class CompletionArbiter:
    def __init__(
        self,
        scheduler: Scheduler,
        tracker: ProgressTracker,
        on_resolved: Callable[[Resolution], None],
        *,
        signals: frozenset[CompletionSignal],
        best_effort: bool,
        config: EngineConfig | None = None,
        label: str = "probe run",
    ):
        self._scheduler = scheduler
        self._tracker = tracker
        self._on_resolved = on_resolved
        self._signals = signals
        self._best_effort = best_effort
        self._config = config or EngineConfig()
        self._label = label
        self._timer: TimerHandle | None = None
        self._resolution: Resolution | None = None
        self._last_phase: str | None = None
        self._dispatch_done = False
        self._final_line_out = False
        self._idle_pending = False
        self._torn_down = False

    @classmethod
    def for_method(
        cls,
        method: ZeroingMethod,
        scheduler: Scheduler,
        tracker: ProgressTracker,
        on_resolved: Callable[[Resolution], None],
        config: EngineConfig | None = None,
    ) -> "CompletionArbiter":
        return cls(
            scheduler,
            tracker,
            on_resolved,
            signals=completion_signals(method),
            best_effort=allows_best_effort(method),
            config=config,
            label=method.name,
        )

    @property
    def resolved(self) -> bool:
        return self._resolution is not None

    @property
    def resolution(self) -> Resolution | None:
        return self._resolution

    def start(self) -> None:
        if self._timer is None and not self._torn_down:
            self._timer = self._scheduler.call_later(self._config.fallback_timeout, self._fallback_expired)

    def teardown(self) -> None:
        """Cancel the fallback timer. Safe to call repeatedly."""
        if self._torn_down:
            return
        self._torn_down = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def final_line_sent(self) -> None:
        """The last line is on the wire; only its trailing delay remains."""
        self._final_line_out = True

    def dispatch_finished(self) -> None:
        self._dispatch_done = True
        self._final_line_out = True
        if self.check_acknowledged():
            return
        if self._idle_pending and CompletionSignal.IDLE_TRANSITION in self._signals:
            self._resolve(Resolution(CompletionSignal.IDLE_TRANSITION))

    def check_acknowledged(self) -> bool:
        if CompletionSignal.ACK_COUNT not in self._signals:
            return False
        if self._tracker.all_acknowledged():
            return self._resolve(Resolution(CompletionSignal.ACK_COUNT))
        return False

    def phase_changed(self, phase: str) -> bool:
        """Track controller phase; running -> idle after the final line completes the run.

        An idle seen while the final line's delay is still running is held
        and applied by :meth:`dispatch_finished`.
        """
        current = normalize_phase(phase)
        previous, self._last_phase = self._last_phase, current
        if CompletionSignal.IDLE_TRANSITION not in self._signals:
            return False
        if current == PHASE_RUNNING:
            self._idle_pending = False
            return False
        if previous == PHASE_RUNNING and current == PHASE_IDLE:
            if self._dispatch_done:
                return self._resolve(Resolution(CompletionSignal.IDLE_TRANSITION))
            if self._final_line_out:
                logger.debug(f"{self._label}: idle after the final line, waiting out its delay")
                self._idle_pending = True
            else:
                logger.debug(f"{self._label}: idle between lines, still dispatching")
        return False

    def stabilized(self, value: Any) -> bool:
        if CompletionSignal.STABILIZED not in self._signals:
            return False
        return self._resolve(Resolution(CompletionSignal.STABILIZED, value=value))

    def fail(self, error: ProbeSessionError) -> bool:
        return self._resolve(Resolution(None, error=error))

    def _fallback_expired(self) -> None:
        self._timer = None
        if self.resolved or self._torn_down:
            return
        sent_ratio = self._tracker.sent_ratio()
        acked_ratio = self._tracker.acked_ratio()
        threshold = self._config.best_effort_ratio
        if self._best_effort and sent_ratio >= threshold and acked_ratio >= threshold:
            logger.warning(
                f"{self._label}: no completion signal after {self._config.fallback_timeout:.0f}s; "
                f"best-effort complete (sent {sent_ratio:.0%}, acknowledged {acked_ratio:.0%})"
            )
            self._resolve(Resolution(CompletionSignal.BEST_EFFORT))
            return
        message = (
            f"Probe sequence timed out after {self._config.fallback_timeout:.0f}s "
            f"(sent {self._tracker.sent}/{self._tracker.total} = {sent_ratio:.0%}, "
            f"acknowledged {self._tracker.acked}/{self._tracker.total} = {acked_ratio:.0%}). "
            "Please check the machine and try again."
        )
        self._resolve(Resolution(None, error=ProbeTimeoutError(message, sent_ratio, acked_ratio)))

    def _resolve(self, resolution: Resolution) -> bool:
        if self._resolution is not None or self._torn_down:
            return False
        self._resolution = resolution
        self.teardown()
        if resolution.ok:
            logger.info(f"{self._label}: resolved by {resolution.signal.value}")
        else:
            logger.info(f"{self._label}: failed ({resolution.error.kind})")
        self._on_resolved(resolution)
        return True
