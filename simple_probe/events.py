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

"""Event taps with explicit subscription handles.

Every ``subscribe`` returns a :class:`Subscription`. The holder releases it on
teardown; releasing twice is a no-op, so teardown paths can be run blindly.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

Callback = TypeVar("Callback", bound=Callable[..., Any])


class Subscription:
    """Handle for one registered callback."""

    def __init__(self, tap: "EventTap[Any]", token: int, name: str):
        self._tap = tap
        self._token = token
        self.name = name
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def release(self) -> bool:
        """Deregister the callback. Returns False if already released."""
        if not self._active:
            return False
        self._active = False
        self._tap._remove(self._token)
        return True

    def __repr__(self) -> str:
        state = "active" if self._active else "released"
        return f"<Subscription {self.name} #{self._token} {state}>"


class EventTap(Generic[Callback]):
    """Thread-safe callback registry for one event stream."""

    def __init__(self, name: str):
        self.name = name
        self._lock = threading.Lock()
        self._callbacks: dict[int, Callback] = {}
        self._next_token = 0

    def subscribe(self, callback: Callback) -> Subscription:
        with self._lock:
            self._next_token += 1
            token = self._next_token
            self._callbacks[token] = callback
        return Subscription(self, token, self.name)

    def _remove(self, token: int) -> None:
        with self._lock:
            self._callbacks.pop(token, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._callbacks)

    def emit(self, *args: Any) -> None:
        with self._lock:
            callbacks = list(self._callbacks.values())
        for callback in callbacks:
            try:
                callback(*args)
            except Exception:
                logger.exception(f"Listener on {self.name} failed")


class SubscriptionGroup:
    """Owns the subscriptions of one run so they can be released together."""

    def __init__(self) -> None:
        self._subs: list[Subscription] = []
        self._closed = False

    def add(self, sub: Subscription) -> Subscription:
        if self._closed:
            sub.release()
            return sub
        self._subs.append(sub)
        return sub

    @property
    def closed(self) -> bool:
        return self._closed

    def active_count(self) -> int:
        return sum(1 for sub in self._subs if sub.active)

    def release_all(self) -> int:
        """Release every held subscription. Returns how many were released."""
        self._closed = True
        released = 0
        for sub in self._subs:
            if sub.release():
                released += 1
        self._subs.clear()
        return released
