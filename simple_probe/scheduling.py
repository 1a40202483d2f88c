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

"""Event queue and timers for probe sessions.

A session is a single logical actor: every transport callback, position
sample and timer expiry is posted onto one queue and handled in order, so
handlers never race on the session's counters or status.
"""

from __future__ import annotations

import heapq
import itertools
import logging
import queue
import threading
import time
from typing import Any, Callable

from .utils.constants import EVENT_QUEUE_TIMEOUT, THREAD_JOIN_TIMEOUT

logger = logging.getLogger(__name__)


class _ThreadTimer:
    def __init__(self, timer: threading.Timer):
        self._timer = timer
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True
        self._timer.cancel()


class ThreadedScheduler:
    """Worker thread draining a ``queue.Queue`` of callables.

    Timers are ``threading.Timer`` objects that only post back onto the
    queue; the callback itself always runs on the worker thread.
    """

    def __init__(self, name: str = "probe-session"):
        self.name = name
        self._q: queue.Queue[tuple[Callable[..., Any], tuple[Any, ...]]] = queue.Queue()
        self._stop_evt = threading.Event()
        self._thread: threading.Thread | None = None
        self._timers: set[_ThreadTimer] = set()
        self._timers_lock = threading.Lock()

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
        return False

    def now(self) -> float:
        return time.monotonic()

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_evt.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            args=(self._stop_evt,),
            name=self.name,
            daemon=True,
        )
        self._thread.start()

    def stop(self) -> None:
        self._stop_evt.set()
        with self._timers_lock:
            timers = list(self._timers)
            self._timers.clear()
        for handle in timers:
            handle.cancel()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=THREAD_JOIN_TIMEOUT)
        self._thread = None

    def post(self, func: Callable[..., Any], *args: Any) -> None:
        self._q.put((func, args))

    def call_later(self, delay: float, func: Callable[..., Any], *args: Any) -> _ThreadTimer:
        handle: _ThreadTimer

        def fire() -> None:
            with self._timers_lock:
                self._timers.discard(handle)
            if not handle.cancelled:
                self.post(self._run_timer, handle, func, args)

        timer = threading.Timer(max(0.0, delay), fire)
        timer.daemon = True
        handle = _ThreadTimer(timer)
        with self._timers_lock:
            self._timers.add(handle)
        timer.start()
        return handle

    @staticmethod
    def _run_timer(handle: _ThreadTimer, func: Callable[..., Any], args: tuple[Any, ...]) -> None:
        # cancel() may land after the timer posted but before it ran
        if not handle.cancelled:
            func(*args)

    def _run_loop(self, stop_evt: threading.Event) -> None:
        logger.debug(f"{self.name} event loop started")
        try:
            while not stop_evt.is_set():
                try:
                    func, args = self._q.get(timeout=EVENT_QUEUE_TIMEOUT)
                except queue.Empty:
                    continue
                try:
                    func(*args)
                except Exception:
                    logger.exception(f"{self.name} handler failed")
        finally:
            logger.debug(f"{self.name} event loop stopped")


class _ManualTimer:
    def __init__(self, due: float):
        self.due = due
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Virtual-time scheduler for tests and dry runs.

    Nothing runs until :meth:`run_pending` or :meth:`advance` is called.
    Handler exceptions propagate to the caller.
    """

    def __init__(self, start: float = 0.0):
        self._now = start
        self._ready: list[tuple[Callable[..., Any], tuple[Any, ...]]] = []
        self._timers: list[tuple[float, int, _ManualTimer, Callable[..., Any], tuple[Any, ...]]] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self._now

    def post(self, func: Callable[..., Any], *args: Any) -> None:
        self._ready.append((func, args))

    def call_later(self, delay: float, func: Callable[..., Any], *args: Any) -> _ManualTimer:
        handle = _ManualTimer(self._now + max(0.0, delay))
        heapq.heappush(self._timers, (handle.due, next(self._seq), handle, func, args))
        return handle

    def pending_timers(self) -> int:
        return sum(1 for _, _, handle, _, _ in self._timers if not handle.cancelled)

    def run_pending(self) -> int:
        """Run queued callables (including ones they post). Returns the count."""
        ran = 0
        while self._ready:
            func, args = self._ready.pop(0)
            func(*args)
            ran += 1
        return ran

    def advance(self, seconds: float) -> None:
        """Move the clock forward, firing due timers in order."""
        target = self._now + max(0.0, seconds)
        self.run_pending()
        while self._timers and self._timers[0][0] <= target:
            due, _, handle, func, args = heapq.heappop(self._timers)
            if handle.cancelled:
                continue
            self._now = max(self._now, due)
            func(*args)
            self.run_pending()
        self._now = target
