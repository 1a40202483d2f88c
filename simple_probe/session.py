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

"""Probe session state machine.

One session drives one zeroing method through its wizard steps:

    idle -> navigating (bitsetter) -> verifying (optional) -> probing
         -> capturing (bitsetter) -> storing (bitsetter) -> complete

``error`` is reachable from every non-terminal state. Each terminal
transition happens once and, in the same handler, cancels every timer and
releases every subscription the session holds.
"""

from __future__ import annotations

import enum
import logging
import threading
from functools import partial
from dataclasses import dataclass
from typing import Any, Callable

from .arbiter import CompletionArbiter, CompletionSignal, Resolution
from .calibration import CalibrationEntry, CalibrationStoreAdapter
from .dispatcher import LineDispatcher
from .events import SubscriptionGroup
from .failure_monitor import FailureMonitor
from .gcode_lines import CommandLine
from .methods import (
    BitSetterMethod,
    ZeroingMethod,
    navigate_step,
    probe_step,
    total_steps,
    verification_step,
    zeroes_z,
)
from .progress import ProgressTracker
from .sequence_builder import BuildContext, build_navigation_sequence, build_retract_sequence, build_sequence
from .stabilization import PositionSample, StabilizationDetector
from .types import CalibrationStore, PositionFeed, PositionSnapshot, Scheduler, TimerHandle, Transport
from .utils.config import EngineConfig
from .utils.constants import ERROR_CANCELLED, ERROR_TRANSPORT_LOST
from .utils.exceptions import (
    CalibrationStoreError,
    ConfigurationError,
    InvalidTransitionError,
    ProbeCancelled,
    ProbeSessionError,
    TransportLost,
)
from .utils.logging_config import LINES_LOGGER_NAME

logger = logging.getLogger(__name__)
lines_logger = logging.getLogger(LINES_LOGGER_NAME)


class SessionStatus(str, enum.Enum):
    IDLE = "idle"
    NAVIGATING = "navigating"
    VERIFYING = "verifying"
    PROBING = "probing"
    CAPTURING = "capturing"
    STORING = "storing"
    COMPLETE = "complete"
    ERROR = "error"

    @property
    def terminal(self) -> bool:
        return self in (SessionStatus.COMPLETE, SessionStatus.ERROR)


_BUSY = (SessionStatus.NAVIGATING, SessionStatus.PROBING, SessionStatus.CAPTURING, SessionStatus.STORING)
_BACK_ALLOWED = (SessionStatus.IDLE, SessionStatus.VERIFYING, SessionStatus.NAVIGATING)


@dataclass(frozen=True)
class StatusSnapshot:
    method_id: str
    step: int
    total_steps: int
    status: SessionStatus
    error: str | None = None
    error_kind: str | None = None
    error_line: str | None = None
    sent: int = 0
    acked: int = 0
    total: int = 0
    navigated: bool = False
    verified: bool = False


class _SerializedScheduler:
    """Runs every posted callable and timer under the session lock."""

    def __init__(self, scheduler: Scheduler, lock: threading.RLock):
        self._scheduler = scheduler
        self._lock = lock

    def now(self) -> float:
        return self._scheduler.now()

    def post(self, func: Callable[..., Any], *args: Any) -> None:
        self._scheduler.post(self._locked, func, args)

    def call_later(self, delay: float, func: Callable[..., Any], *args: Any) -> TimerHandle:
        return self._scheduler.call_later(delay, self._locked, func, args)

    def _locked(self, func: Callable[..., Any], args: tuple[Any, ...]) -> None:
        with self._lock:
            func(*args)


class _Run:
    """Collaborators wired for one dispatched sequence."""

    def __init__(self, kind: str, tracker: ProgressTracker):
        self.kind = kind
        self.tracker = tracker
        self.subs = SubscriptionGroup()
        self.dispatcher: LineDispatcher | None = None
        self.arbiter: CompletionArbiter | None = None
        self.monitor: FailureMonitor | None = None
        self.settle_timer: TimerHandle | None = None
        self.stopped = False

    def stop(self) -> None:
        if self.stopped:
            return
        self.stopped = True
        self.tracker.stop()
        if self.dispatcher is not None:
            self.dispatcher.cancel()
        if self.arbiter is not None:
            self.arbiter.teardown()
        if self.settle_timer is not None:
            self.settle_timer.cancel()
            self.settle_timer = None
        self.subs.release_all()


class ProbeSession:
    """Drives one zeroing method against an injected transport.

    Transport and position callbacks are posted onto ``scheduler`` and
    handled one at a time. Public operations take the same lock, so they
    never interleave with a handler.
    """

    def __init__(
        self,
        method: ZeroingMethod,
        transport: Transport,
        scheduler: Scheduler,
        *,
        position_feed: PositionFeed | None = None,
        calibration_store: CalibrationStore | None = None,
        context: BuildContext | None = None,
        config: EngineConfig | None = None,
        on_status: Callable[[StatusSnapshot], None] | None = None,
    ):
        self.method = method
        self.config = config or EngineConfig()
        self.context = context or BuildContext.from_config(self.config)
        self._transport = transport
        self._lock = threading.RLock()
        self._scheduler = _SerializedScheduler(scheduler, self._lock)
        self._position_feed = position_feed
        self._calibration = CalibrationStoreAdapter(calibration_store) if calibration_store is not None else None
        self._on_status = on_status

        self._total_steps = total_steps(method)
        self._step = 1
        self._status = SessionStatus.IDLE
        self._navigated = False
        self._verified = False
        self._error: ProbeSessionError | None = None
        self._probe_tracker: ProgressTracker | None = None
        self._run: _Run | None = None
        self._terminal_evt = threading.Event()
        self._torn_down = False

        self._detector: StabilizationDetector | None = None
        if isinstance(method, BitSetterMethod):
            self._detector = StabilizationDetector(
                self._scheduler,
                self._on_stabilized,
                epsilon=self.config.stabilization_epsilon,
                window=self.config.stabilization_window,
            )

        self._session_subs = SubscriptionGroup()
        self._session_subs.add(transport.on_disconnect(self._post_disconnect))
        if position_feed is not None:
            self._session_subs.add(position_feed.on_position(self._post_position))
        logger.info(f"Probe session opened for {method.name} ({method.type}), {self._total_steps} steps")

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def step(self) -> int:
        return self._step

    @property
    def total_steps(self) -> int:
        return self._total_steps

    @property
    def navigated(self) -> bool:
        return self._navigated

    @property
    def verified(self) -> bool:
        return self._verified

    @property
    def error(self) -> ProbeSessionError | None:
        return self._error

    @property
    def terminal(self) -> bool:
        return self._status.terminal

    @property
    def stored_entry(self) -> CalibrationEntry | None:
        return self._calibration.written if self._calibration else None

    def current_status(self) -> StatusSnapshot:
        with self._lock:
            tracker = self._probe_tracker
            error = self._error
            return StatusSnapshot(
                method_id=self.method.id,
                step=self._step,
                total_steps=self._total_steps,
                status=self._status,
                error=str(error) if error else None,
                error_kind=error.kind if error else None,
                error_line=error.line if error else None,
                sent=tracker.sent if tracker else 0,
                acked=tracker.acked if tracker else 0,
                total=tracker.total if tracker else 0,
                navigated=self._navigated,
                verified=self._verified,
            )

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the session is terminal. Returns False on timeout."""
        return self._terminal_evt.wait(timeout)

    # ------------------------------------------------------------------
    # Wizard navigation
    # ------------------------------------------------------------------

    def next_step(self) -> int:
        with self._lock:
            self._require_open("advance")
            if self._status in _BUSY:
                raise InvalidTransitionError("advance", self._status.value)
            if self._step >= self._total_steps:
                raise InvalidTransitionError("advance past the last step", self._status.value)
            if self._step == probe_step(self.method) and self._status is not SessionStatus.COMPLETE:
                raise InvalidTransitionError("advance before the probe completes", self._status.value)
            if self._step == navigate_step(self.method) and not self._navigated:
                raise InvalidTransitionError("advance before navigating", self._status.value)
            if self._status is SessionStatus.VERIFYING:
                self._status = SessionStatus.IDLE
            self._step += 1
            self._notify()
            return self._step

    def back(self) -> int:
        with self._lock:
            self._require_open("go back")
            if self._status not in _BACK_ALLOWED or self._step <= 1:
                raise InvalidTransitionError("go back", self._status.value)
            if self._status is SessionStatus.NAVIGATING and self._run is not None:
                logger.info("Navigation abandoned by back")
                self._run.stop()
                self._run = None
            nav = navigate_step(self.method)
            if nav is not None and self._step in (nav, nav + 1):
                self._navigated = False
            self._status = SessionStatus.IDLE
            self._step -= 1
            self._notify()
            return self._step

    def begin_verification(self) -> None:
        with self._lock:
            self._require_open("verify probe")
            if verification_step(self.method) is None or self._status is not SessionStatus.IDLE:
                raise InvalidTransitionError("verify probe", self._status.value)
            self._verified = False
            self._status = SessionStatus.VERIFYING
            logger.info("Waiting for probe contact")
            self._notify()

    def end_verification(self) -> bool:
        with self._lock:
            if self._status is not SessionStatus.VERIFYING:
                raise InvalidTransitionError("end verification", self._status.value)
            self._status = SessionStatus.IDLE
            self._notify()
            return self._verified

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    def navigate(self) -> None:
        """Move over the BitSetter. Returns to ``idle`` with ``navigated`` set."""
        with self._lock:
            self._require_open("navigate")
            if not isinstance(self.method, BitSetterMethod) or self._status is not SessionStatus.IDLE:
                raise InvalidTransitionError("navigate", self._status.value)
            lines = build_navigation_sequence(self.method, self.context)
            self._navigated = False
            self._status = SessionStatus.NAVIGATING
            run = _Run("navigate", ProgressTracker(len(lines)))
            run.arbiter = CompletionArbiter(
                self._scheduler,
                run.tracker,
                partial(self._on_resolved, run),
                signals=frozenset({CompletionSignal.ACK_COUNT, CompletionSignal.IDLE_TRANSITION}),
                best_effort=True,
                config=self.config,
                label=f"{self.method.name} navigation",
            )
            self._start_run(run, lines)

    def run_probe(self) -> None:
        """Build, wire and start the method's probe run (``idle -> probing``)."""
        with self._lock:
            self._require_open("probe")
            if self._status is not SessionStatus.IDLE:
                raise InvalidTransitionError("probe", self._status.value)
            try:
                lines = self._prepare_probe()
            except ProbeSessionError as exc:
                self._fail(exc)
                return
            self._probe_tracker = ProgressTracker(len(lines))
            self._status = SessionStatus.PROBING
            if self._detector is not None:
                self._detector.record_baseline()
            run = _Run("probe", self._probe_tracker)
            run.arbiter = CompletionArbiter.for_method(
                self.method,
                self._scheduler,
                run.tracker,
                partial(self._on_resolved, run),
                self.config,
            )
            self._start_run(run, lines)

    def _prepare_probe(self) -> list[CommandLine]:
        if isinstance(self.method, BitSetterMethod):
            if self._position_feed is None:
                raise ConfigurationError("BitSetter probing needs a position feed")
            if self._calibration is None:
                raise ConfigurationError("BitSetter probing needs a calibration store")
        lines = build_sequence(self.method, self.context)
        if zeroes_z(self.method) and self._calibration is not None:
            # a stale reference must not block zeroing
            try:
                self._calibration.clear_tool_reference(self.context.wcs)
            except CalibrationStoreError as exc:
                logger.warning(f"Could not clear the {self.context.wcs} tool reference: {exc}")
        return lines

    def _start_run(self, run: _Run, lines: list[CommandLine]) -> None:
        self._run = run
        run.monitor = FailureMonitor(run.arbiter.fail)
        run.dispatcher = LineDispatcher(
            self._transport,
            self._scheduler,
            lines,
            self.config,
            on_line_sending=partial(self._on_line_sending, run),
            on_finished=partial(self._on_dispatch_finished, run),
            on_send_failed=partial(self._on_send_failed, run),
        )
        post = self._scheduler.post
        run.subs.add(self._transport.on_line_sent(
            lambda text, source=None: post(self._handle_line_sent, run, text, source)))
        run.subs.add(self._transport.on_line_acknowledged(
            lambda text: post(self._handle_inbound, run, text)))
        run.subs.add(self._transport.on_phase_transition(
            lambda phase: post(self._handle_phase, run, phase)))

        logger.info(f"{self.method.name}: starting {run.kind} run with {len(lines)} lines")
        run.tracker.start()
        run.tracker.record_issued(0)
        run.arbiter.start()
        self._notify()
        run.dispatcher.start()

    # ------------------------------------------------------------------
    # Handlers (run on the scheduler under the session lock)
    # ------------------------------------------------------------------

    def _live(self, run: _Run) -> bool:
        return not run.stopped and run is self._run and not self._status.terminal

    def _handle_line_sent(self, run: _Run, text: str, source: str | None) -> None:
        if not self._live(run):
            return
        if run.tracker.record_sent(text, source) and run.kind == "probe":
            self._notify()

    def _handle_inbound(self, run: _Run, text: str) -> None:
        if not self._live(run):
            return
        lines_logger.debug(f"RX {text.strip()}")
        before = run.tracker.acked
        response = run.tracker.record_inbound(text)
        run.monitor.observe_line(text, response)
        if not self._live(run):
            return
        if run.tracker.acked != before:
            if run.kind == "probe":
                self._notify()
            run.arbiter.check_acknowledged()

    def _handle_phase(self, run: _Run, phase: str) -> None:
        if not self._live(run):
            return
        logger.debug(f"Controller phase: {phase}")
        if run.monitor.observe_phase(phase) is None and self._live(run):
            run.arbiter.phase_changed(phase)

    def _on_dispatch_finished(self, run: _Run) -> None:
        if not self._live(run):
            return
        run.arbiter.dispatch_finished()
        if not self._live(run) or self._detector is None or run.kind != "probe":
            return
        run.settle_timer = self._scheduler.call_later(self.config.capture_settle_delay, self._enter_capturing, run)

    def _on_line_sending(self, run: _Run, index: int, line: CommandLine) -> None:
        # queued ahead of any reply to this line
        self._scheduler.post(self._note_issued, run, index)

    def _note_issued(self, run: _Run, index: int) -> None:
        if not self._live(run):
            return
        run.tracker.record_issued(index)
        if index >= run.dispatcher.total:
            run.arbiter.final_line_sent()

    def _on_send_failed(self, run: _Run, exc: Exception, line: CommandLine) -> None:
        if self._live(run):
            run.monitor.send_failed(exc, line.text)

    def _enter_capturing(self, run: _Run) -> None:
        run.settle_timer = None
        if not self._live(run) or self._status is not SessionStatus.PROBING:
            return
        self._status = SessionStatus.CAPTURING
        logger.info("Probe lines dispatched; waiting for position to stabilize")
        self._notify()
        self._detector.start_polling()

    def _on_stabilized(self, sample: PositionSample) -> None:
        run = self._run
        if run is None or not self._live(run):
            return
        run.arbiter.stabilized(sample.z)

    def _post_disconnect(self) -> None:
        self._scheduler.post(self._handle_disconnect)

    def _handle_disconnect(self) -> None:
        if self._status.terminal:
            return
        run = self._run
        if run is not None and self._live(run):
            run.monitor.observe_disconnect()
        if not self._status.terminal:
            self._fail(TransportLost(ERROR_TRANSPORT_LOST))

    def _post_position(self, snapshot: PositionSnapshot) -> None:
        self._scheduler.post(self._handle_position, snapshot)

    def _handle_position(self, snapshot: PositionSnapshot) -> None:
        if self._status.terminal:
            return
        if self._status is SessionStatus.VERIFYING and snapshot.probe_contact and not self._verified:
            self._verified = True
            logger.info("Probe contact detected")
            self._notify()
        if self._detector is not None:
            self._detector.observe(PositionSample.work_from_snapshot(snapshot, self._scheduler.now()))

    def _on_resolved(self, run: _Run, resolution: Resolution) -> None:
        run.stop()
        if self._detector is not None:
            self._detector.cancel()
        if self._status.terminal:
            return
        if not resolution.ok:
            self._fail(resolution.error)
            return
        if run.kind == "navigate":
            self._run = None
            self._navigated = True
            self._status = SessionStatus.IDLE
            logger.info("Navigation complete")
            self._notify()
            return
        if isinstance(self.method, BitSetterMethod):
            self._store_reference(float(resolution.value))
            return
        self._complete()

    def _store_reference(self, value: float) -> None:
        self._status = SessionStatus.STORING
        self._notify()
        try:
            self._calibration.store_tool_reference(self.context.wcs, value)
        except CalibrationStoreError as exc:
            self._fail(exc)
            return
        for line in build_retract_sequence(self.context):
            try:
                self._transport.send_line(line.text)
            except Exception as exc:
                logger.error(f"Retract failed: {exc}")
                self._fail(TransportLost(f"Failed to retract after storing the tool reference: {exc}", line=line.text))
                return
            lines_logger.info(f"TX [{line.line_class.value}] {line.text}")
        self._complete()

    # ------------------------------------------------------------------
    # Termination
    # ------------------------------------------------------------------

    def cancel(self) -> bool:
        """Abort the session. Returns False when it had already ended."""
        with self._lock:
            if self._status.terminal:
                return False
            logger.info(f"{self.method.name}: cancelled")
            self._fail(ProbeCancelled(ERROR_CANCELLED))
            return True

    def teardown(self) -> None:
        """Release every subscription and timer. Safe to call repeatedly."""
        with self._lock:
            if self._torn_down:
                return
            self._torn_down = True
            if self._run is not None:
                self._run.stop()
            if self._detector is not None:
                self._detector.cancel()
            released = self._session_subs.release_all()
            logger.debug(f"Session teardown released {released} session subscriptions")

    def _complete(self) -> None:
        self._status = SessionStatus.COMPLETE
        self._step = self._total_steps
        logger.info(f"{self.method.name}: complete")
        self._finish()

    def _fail(self, error: ProbeSessionError) -> None:
        if self._status.terminal:
            return
        self._error = error
        self._status = SessionStatus.ERROR
        logger.error(f"{self.method.name}: {error.kind}: {error}")
        self._finish()

    def _finish(self) -> None:
        self.teardown()
        self._terminal_evt.set()
        self._notify()

    def _require_open(self, operation: str) -> None:
        if self._status.terminal:
            raise InvalidTransitionError(operation, self._status.value)

    def _notify(self) -> None:
        if self._on_status is None:
            return
        try:
            self._on_status(self.current_status())
        except Exception:
            logger.exception("Status listener failed")
