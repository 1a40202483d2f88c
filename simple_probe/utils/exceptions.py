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

"""Custom exceptions for Simple Probe.

This module defines specific exception types for the failure classes a probe
session can end in, plus the settings/validation errors shared with the
configuration layer.
"""

from typing import Any, Optional


class SimpleProbeException(Exception):
    """Base exception for all Simple Probe errors."""
    pass


# ============================================================================
# PROBE SESSION FAILURES
# ============================================================================

class ProbeSessionError(SimpleProbeException):
    """Base class for failures that end a probe session.

    ``kind`` is the classification tag surfaced to the caller and
    ``line`` holds the offending command or response text when known.
    """

    kind = "ProbeSessionError"

    def __init__(self, message: str, line: Optional[str] = None):
        super().__init__(message)
        self.line = line


class ProbeContactError(ProbeSessionError):
    """Probe did not make (or lose) contact within the programmed travel."""

    kind = "ProbeContactError"

    def __init__(self, message: str, line: Optional[str] = None, alarm_code: Optional[int] = None):
        super().__init__(message, line)
        self.alarm_code = alarm_code


class ControllerFault(ProbeSessionError):
    """Controller reported an error or alarm."""

    kind = "ControllerFault"

    def __init__(
        self,
        message: str,
        line: Optional[str] = None,
        code: Optional[int] = None,
        code_kind: Optional[str] = None,
    ):
        super().__init__(message, line)
        self.code = code
        self.code_kind = code_kind


class TransportLost(ProbeSessionError):
    """Transport disconnected while a sequence was active."""

    kind = "TransportLost"


class ProbeTimeoutError(ProbeSessionError):
    """Fallback timer expired without enough acknowledged lines."""

    kind = "Timeout"

    def __init__(
        self,
        message: str,
        sent_ratio: Optional[float] = None,
        acked_ratio: Optional[float] = None,
    ):
        super().__init__(message)
        self.sent_ratio = sent_ratio
        self.acked_ratio = acked_ratio


class ConfigurationError(ProbeSessionError):
    """Method configuration produced no usable command sequence."""

    kind = "ConfigurationError"


class ProbeCancelled(ProbeSessionError):
    """Operator cancelled the session."""

    kind = "Cancelled"


class CalibrationStoreError(ProbeSessionError):
    """Persisting or clearing a calibration value failed."""

    kind = "CalibrationStoreError"


# ============================================================================
# SESSION CONTROL EXCEPTIONS
# ============================================================================

class SessionControlError(SimpleProbeException):
    """Base exception for invalid use of the session control surface."""
    pass


class SessionBusyError(SessionControlError):
    """Attempted to start a session while another one is active."""
    pass


class InvalidTransitionError(SessionControlError):
    """Requested operation is not allowed in the current session state."""

    def __init__(self, operation: str, status: str):
        self.operation = operation
        self.status = status
        super().__init__(f"Cannot {operation} while session is {status}")


# ============================================================================
# SETTINGS EXCEPTIONS
# ============================================================================

class SettingsException(SimpleProbeException):
    """Base exception for settings errors."""
    pass


class SettingsLoadError(SettingsException):
    """Failed to load settings file."""
    pass


class SettingsSaveError(SettingsException):
    """Failed to save settings file."""
    pass


class SettingsValidationError(SettingsException):
    """Settings validation failed."""
    pass


# ============================================================================
# VALIDATION EXCEPTIONS
# ============================================================================

class ValidationException(SimpleProbeException):
    """Base exception for validation errors."""
    pass


class InvalidParameterError(ValidationException):
    """Invalid parameter value."""

    def __init__(self, parameter_name: str, value: Any, reason: Optional[str] = None):
        self.parameter_name = parameter_name
        self.value = value
        self.reason = reason

        message = f"Invalid value for '{parameter_name}': {value}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


class InvalidRangeError(ValidationException):
    """Value out of valid range."""

    def __init__(self, value, min_val, max_val):
        self.value = value
        self.min_val = min_val
        self.max_val = max_val

        message = f"Value {value} out of range [{min_val}, {max_val}]"
        super().__init__(message)
