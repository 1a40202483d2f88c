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

"""Calibration persistence.

The adapter is the only writer of tool-length references. A cleared reference
is removed from the store, never written as zero: zero is a valid measurement
while a missing key means "unknown".
"""

from __future__ import annotations

import json
import logging
import os
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional

from .types import CalibrationStore
from .utils.config import atomic_write_json, get_settings_path
from .utils.constants import CALIBRATION_FILENAME, DEFAULT_WCS, ERROR_STORE_FAILED, TOOL_REFERENCE_KEY_PREFIX
from .utils.exceptions import CalibrationStoreError

logger = logging.getLogger(__name__)


def tool_reference_key(wcs: str) -> str:
    return f"{TOOL_REFERENCE_KEY_PREFIX}{(wcs or DEFAULT_WCS).strip().upper()}"


@dataclass(frozen=True)
class CalibrationEntry:
    key: str
    value: float
    coordinate_system: str
    timestamp: float

    def metadata(self) -> Dict[str, Any]:
        return {"wcs": self.coordinate_system, "timestamp": self.timestamp}


class CalibrationStoreAdapter:
    """Writes at most one tool reference per instance (one per session)."""

    def __init__(self, store: CalibrationStore, clock: Callable[[], float] = time.time):
        self._store = store
        self._clock = clock
        self._written: CalibrationEntry | None = None

    @property
    def written(self) -> CalibrationEntry | None:
        return self._written

    def tool_reference(self, wcs: str) -> Optional[float]:
        value = self._store.get(tool_reference_key(wcs))
        if isinstance(value, Mapping):
            value = value.get("value")
        return None if value is None else float(value)

    def store_tool_reference(self, wcs: str, value: float) -> CalibrationEntry:
        """Persist the captured reference.

        Raises:
            CalibrationStoreError: The store rejected or failed the write
        """
        if self._written is not None:
            logger.warning(f"Tool reference already stored as {self._written.key}; skipping second write")
            return self._written
        wcs = (wcs or DEFAULT_WCS).strip().upper()
        entry = CalibrationEntry(tool_reference_key(wcs), float(value), wcs, self._clock())
        try:
            ok = self._store.set(entry.key, entry.value, entry.metadata())
        except CalibrationStoreError:
            raise
        except Exception as exc:
            logger.error(f"Failed to store {entry.key}: {exc}")
            raise CalibrationStoreError(f"{ERROR_STORE_FAILED} ({exc})") from exc
        if not ok:
            raise CalibrationStoreError(ERROR_STORE_FAILED)
        self._written = entry
        logger.info(f"Stored tool reference {entry.key} = {entry.value:.4f}")
        return entry

    def clear_tool_reference(self, wcs: str) -> bool:
        """Forget the reference for ``wcs``. Returns False when none was stored.

        Raises:
            CalibrationStoreError: The store failed to clear an existing key
        """
        key = tool_reference_key(wcs)
        try:
            removed = self._store.clear(key)
        except CalibrationStoreError:
            raise
        except Exception as exc:
            logger.error(f"Failed to clear {key}: {exc}")
            raise CalibrationStoreError(f"Failed to clear tool reference ({exc})") from exc
        if removed:
            logger.info(f"Cleared tool reference {key}")
        return bool(removed)


class MemoryCalibrationStore:
    """In-process store for dry runs and tests."""

    def __init__(self, initial: Mapping[str, Any] | None = None):
        self._data: Dict[str, Dict[str, Any]] = {}
        for key, value in (initial or {}).items():
            self._data[key] = {"value": value}
        self.writes: list[tuple[str, Any, Dict[str, Any]]] = []

    def get(self, key: str) -> Any | None:
        record = self._data.get(key)
        return None if record is None else record["value"]

    def set(self, key: str, value: Any, metadata: Mapping[str, Any]) -> bool:
        self._data[key] = {"value": value, **dict(metadata)}
        self.writes.append((key, value, dict(metadata)))
        return True

    def clear(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    def record(self, key: str) -> Dict[str, Any] | None:
        record = self._data.get(key)
        return None if record is None else dict(record)


def get_calibration_path() -> str:
    return os.path.join(os.path.dirname(get_settings_path()), CALIBRATION_FILENAME)


class JsonCalibrationStore:
    """Calibration values in a JSON file, written atomically with a backup.

    Each key maps to ``{"value": ..., <metadata>...}``.
    """

    def __init__(self, filepath: Optional[str] = None):
        self.filepath = filepath or get_calibration_path()
        self._lock = threading.Lock()
        self._data: Dict[str, Dict[str, Any]] | None = None

    def _load(self) -> Dict[str, Dict[str, Any]]:
        if self._data is not None:
            return self._data
        if not os.path.exists(self.filepath):
            self._data = {}
            return self._data
        try:
            with open(self.filepath, "r", encoding="utf-8") as f:
                loaded = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to read calibration file: {e}")
            raise CalibrationStoreError(f"Failed to read {self.filepath}: {e}") from e
        if not isinstance(loaded, dict):
            raise CalibrationStoreError(f"{self.filepath} must contain a JSON object")
        self._data = {k: v for k, v in loaded.items() if isinstance(v, dict) and "value" in v}
        return self._data

    def _write(self, data: Dict[str, Dict[str, Any]]) -> None:
        try:
            atomic_write_json(self.filepath, data)
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to write calibration file: {e}")
            raise CalibrationStoreError(f"Failed to save {self.filepath}: {e}") from e

    def get(self, key: str) -> Any | None:
        with self._lock:
            record = self._load().get(key)
        return None if record is None else record.get("value")

    def set(self, key: str, value: Any, metadata: Mapping[str, Any]) -> bool:
        with self._lock:
            data = dict(self._load())
            data[key] = {"value": value, **dict(metadata)}
            self._write(data)
            self._data = data
        return True

    def clear(self, key: str) -> bool:
        with self._lock:
            data = dict(self._load())
            if key not in data:
                return False
            del data[key]
            self._write(data)
            self._data = data
        return True
