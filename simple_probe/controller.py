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

"""Per-connection control surface for probe sessions."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Mapping

from .methods import ZeroingMethod, method_from_dict
from .sequence_builder import BuildContext
from .session import ProbeSession, StatusSnapshot
from .types import CalibrationStore, PositionFeed, Scheduler, Transport
from .utils.config import EngineConfig, Settings
from .utils.constants import DEFAULT_WCS, ERROR_SESSION_BUSY
from .utils.exceptions import ConfigurationError, SessionBusyError, ValidationException
from .utils.validation import validate_wcs

logger = logging.getLogger(__name__)


class ProbeController:
    """Owns at most one live :class:`ProbeSession` for a connection.

    Starting a second session while one is still running raises
    :class:`SessionBusyError` instead of interleaving two line streams on
    the same wire.
    """

    def __init__(
        self,
        transport: Transport,
        scheduler: Scheduler,
        *,
        position_feed: PositionFeed | None = None,
        calibration_store: CalibrationStore | None = None,
        config: EngineConfig | None = None,
        on_status: Callable[[StatusSnapshot], None] | None = None,
    ):
        self._transport = transport
        self._scheduler = scheduler
        self._position_feed = position_feed
        self._calibration_store = calibration_store
        self.config = config or EngineConfig()
        self._on_status = on_status
        self._lock = threading.Lock()
        self._session: ProbeSession | None = None
        self._last_status: StatusSnapshot | None = None

    @classmethod
    def from_settings(cls, settings: Settings, transport: Transport, scheduler: Scheduler, **kwargs: Any) -> "ProbeController":
        return cls(transport, scheduler, config=EngineConfig.from_settings(settings), **kwargs)

    @property
    def session(self) -> ProbeSession | None:
        return self._session

    def is_busy(self) -> bool:
        session = self._session
        return session is not None and not session.terminal

    def start(
        self,
        method: ZeroingMethod | Mapping[str, Any],
        context: BuildContext | None = None,
        *,
        wcs: str | None = None,
    ) -> ProbeSession:
        """Open a session for ``method`` (a method value or a settings record).

        Raises:
            SessionBusyError: A session on this connection is not terminal
            ConfigurationError: A settings record could not be turned into a method
        """
        if not isinstance(method, ZeroingMethod):
            method = method_from_dict(method)
        if context is None:
            try:
                active_wcs = validate_wcs(wcs) if wcs else DEFAULT_WCS
            except ValidationException as exc:
                raise ConfigurationError(str(exc)) from exc
            context = BuildContext.from_config(self.config, wcs=active_wcs)
        with self._lock:
            if self.is_busy():
                logger.warning(f"Rejected {method.name}: {ERROR_SESSION_BUSY}")
                raise SessionBusyError(ERROR_SESSION_BUSY)
            if self._session is not None:
                self._session.teardown()
            self._session = ProbeSession(
                method,
                self._transport,
                self._scheduler,
                position_feed=self._position_feed,
                calibration_store=self._calibration_store,
                context=context,
                config=self.config,
                on_status=self._session_status,
            )
            self._last_status = None
            return self._session

    def cancel(self) -> bool:
        session = self._session
        if session is None:
            return False
        return session.cancel()

    def current_status(self) -> StatusSnapshot | None:
        session = self._session
        if session is not None:
            return session.current_status()
        return self._last_status

    def _session_status(self, snapshot: StatusSnapshot) -> None:
        self._last_status = snapshot
        if snapshot.status.terminal:
            logger.info(f"Session for {snapshot.method_id} ended: {snapshot.status.value}")
        if self._on_status is not None:
            self._on_status(snapshot)
