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

"""Constants and configuration values for Simple Probe.

This module centralizes all magic numbers, default values, and configuration
constants used by the probe sequencing engine.
"""

import re

# ============================================================================
# LINE DISPATCH PACING
# ============================================================================

DISPATCH_DELAY_PROBE = 0.8
"""Delay (seconds) after a G38.x probe line before the next line is sent."""

DISPATCH_DELAY_DWELL = 0.35
"""Delay (seconds) after a G4 / %wait dwell line."""

DISPATCH_DELAY_DEFAULT = 0.3
"""Delay (seconds) after movement, mode and assignment lines."""

DISPATCH_SOURCE_TAG = "probe"
"""Source tag attached to lines sent by the dispatcher."""

COUNTED_SOURCE_TAGS = frozenset({"feeder", DISPATCH_SOURCE_TAG})
"""Outbound source tags whose lines count toward progress."""

# ============================================================================
# COMPLETION / FAILURE
# ============================================================================

FALLBACK_TIMEOUT = 300.0
"""Ceiling (seconds) before the fallback timer resolves a run."""

BEST_EFFORT_RATIO = 0.8
"""sent/total and acked/total ratio needed for best-effort completion."""

RECENT_RX_LINES = 5
"""Inbound lines retained to locate an echoed failing line."""

FAILING_LINE_PREFIX = "> "
"""Prefix of the controller echo of the line being executed."""

# ============================================================================
# STABILIZATION
# ============================================================================

STABILIZATION_EPSILON = 0.001
"""Z band (mm) within which two samples are considered unchanged."""

STABILIZATION_WINDOW = 0.5
"""Seconds the position must hold before it is declared stable."""

CAPTURE_SETTLE_DELAY = 1.0
"""Seconds after the last probe line before position polling starts."""

# ============================================================================
# PROBE SEQUENCE DEFAULTS
# ============================================================================

BITSETTER_SAFE_Z = -5.0
"""Machine Z (G53) used for travel to and from the BitSetter."""

BITSETTER_FINE_FEED = 40.0
"""Feedrate for the fine BitSetter probe pass."""

BITSETTER_RAPID_FEED_FALLBACK = 200.0
"""Fast BitSetter probe feedrate when the method does not set one."""

TOUCHPLATE_RETRACT = 10.0
"""Relative Z retract after touch plate zeroing."""

BITZERO_SLOW_FEED = 50.0
"""Feedrate for the fine BitZero edge passes."""

BITZERO_MAJOR_RETRACT = 2.0
"""Retract before probing the opposite wall of the hole."""

BITZERO_Z_PROBE = 15.0
"""Lift out of the hole and maximum Z probe travel."""

BITZERO_Z_KEEPOUT = 10.0
"""X/Y distance from the hole edge for the Z probe."""

BITZERO_Z_FINAL = 15.0
"""Final height above the probe block."""

DEFAULT_WCS = "G54"
"""Work coordinate system assumed when none is reported."""

WCS_P_NUMBERS = {
    "G54": 1,
    "G55": 2,
    "G56": 3,
    "G57": 4,
    "G58": 5,
    "G59": 6,
}
"""G10 L20 P-number for each work coordinate system."""

TOOL_REFERENCE_KEY_PREFIX = "bitsetter.toolReference."
"""Calibration store key prefix for tool-length references."""

# ============================================================================
# G-CODE PARSING CONSTANTS
# ============================================================================

PAREN_COMMENT_PAT = re.compile(r"\(.*?\)")
"""Parenthesized G-code comment."""

G_WORD_PAT = re.compile(r"(?<![A-Z])G\s*(\d+(?:\.\d+)?)", re.IGNORECASE)
"""G word with its numeric value."""

MACRO_AUXPAT = re.compile(r"^(%[A-Za-z0-9_-]+)\b *(.*)$")
"""Controller-side macro directive (``%wait``, ``%msg``, ``%X=...``)."""

MACRO_PARAM_PAT = re.compile(r"\[([A-Za-z_][A-Za-z0-9_]*)\]")
"""Bracketed macro parameter reference."""

STATUS_REPORT_PAT = re.compile(r"^<.*>$")
"""Live status report bracket."""

# ============================================================================
# SETTINGS CONSTANTS
# ============================================================================

SETTINGS_FILENAME = "settings.json"
"""Settings file name."""

SETTINGS_BACKUP_SUFFIX = ".backup"
"""Suffix for settings backup file."""

SETTINGS_TEMP_SUFFIX = ".tmp"
"""Suffix for temporary settings file during atomic writes."""

CALIBRATION_FILENAME = "calibration.json"
"""Calibration store file name."""

# ============================================================================
# SCHEDULING
# ============================================================================

EVENT_QUEUE_TIMEOUT = 0.1
"""Timeout (seconds) for event queue gets."""

THREAD_JOIN_TIMEOUT = 1.0
"""Timeout (seconds) when joining the event loop thread."""

# ============================================================================
# ERROR MESSAGES
# ============================================================================

ERROR_SESSION_BUSY = "Another probe session is active on this connection."
ERROR_EMPTY_CUSTOM = "No G-code found. Please configure the custom G-code in settings."
ERROR_TRANSPORT_LOST = "Connection lost during probe sequence"
ERROR_PHASE_FAULT = "Machine entered {phase} state during probe sequence"
ERROR_STORE_FAILED = "Failed to store tool reference. Please try again."
ERROR_CANCELLED = "Cancelled by operator"
