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

"""Outbound command line classification.

Each line the engine sends is tagged with a semantic class. The dispatcher
paces on it and the builder uses it to decide which lines may have their
comments stripped.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

from .utils.constants import (
    COUNTED_SOURCE_TAGS,
    G_WORD_PAT,
    MACRO_AUXPAT,
    PAREN_COMMENT_PAT,
    STATUS_REPORT_PAT,
)

# Directives handled by the controller-side macro runner, not assignments.
_NON_ASSIGNMENT_DIRECTIVES = ("%msg", "%wait", "%update")
_MOTION_G_CODES = {0.0, 1.0, 2.0, 3.0, 28.0, 30.0}


class LineClass(enum.Enum):
    MOVEMENT = "movement"
    PROBE = "probe"
    DWELL = "dwell"
    ASSIGNMENT = "assignment"
    MODE = "mode"


@dataclass(frozen=True)
class CommandLine:
    text: str
    line_class: LineClass

    @classmethod
    def of(cls, text: str) -> "CommandLine":
        text = text.strip()
        return cls(text, classify_line(text))


def _directive(line: str) -> str | None:
    match = MACRO_AUXPAT.match(line)
    if not match:
        return None
    return match.group(1).lower()


def is_assignment(line: str) -> bool:
    stripped = line.strip()
    if not stripped.startswith("%"):
        return False
    directive = _directive(stripped)
    return directive not in _NON_ASSIGNMENT_DIRECTIVES


def strip_code_comments(line: str) -> str:
    """Remove ``(...)`` and trailing ``;`` comments (for classification only)."""
    without_parens = PAREN_COMMENT_PAT.sub(" ", line)
    return without_parens.split(";", 1)[0].strip()


def strip_assignment_comment(line: str) -> str:
    """Drop a trailing ``;`` comment from an assignment line.

    The controller-side expression evaluator cannot parse one.
    """
    stripped = line.strip()
    if not is_assignment(stripped):
        return stripped
    return stripped.split(";", 1)[0].strip()


def is_comment_only(line: str) -> bool:
    stripped = line.strip()
    if not stripped:
        return True
    if stripped.startswith(";"):
        return True
    return not strip_code_comments(stripped)


def _g_codes(line: str) -> set[float]:
    codes = set()
    for match in G_WORD_PAT.finditer(line):
        try:
            codes.add(float(match.group(1)))
        except ValueError:
            continue
    return codes


def classify_line(line: str) -> LineClass:
    stripped = line.strip()
    if stripped.startswith("%"):
        directive = _directive(stripped)
        if directive == "%wait":
            return LineClass.DWELL
        if directive in _NON_ASSIGNMENT_DIRECTIVES:
            return LineClass.MODE
        return LineClass.ASSIGNMENT
    code = strip_code_comments(stripped).upper()
    if code.startswith("$J="):
        return LineClass.MOVEMENT
    codes = _g_codes(code)
    if any(38.0 <= c < 39.0 for c in codes):
        return LineClass.PROBE
    if 4.0 in codes:
        return LineClass.DWELL
    if codes & _MOTION_G_CODES:
        return LineClass.MOVEMENT
    return LineClass.MODE


def is_status_or_query(line: str) -> bool:
    """Status queries, ``$`` reads/settings and live status brackets."""
    stripped = line.strip()
    if not stripped:
        return True
    if stripped.startswith("$") or stripped.startswith("?"):
        return True
    return bool(STATUS_REPORT_PAT.match(stripped))


def counts_as_sent(line: str, source: str | None) -> bool:
    """Whether an outbound echo should advance the ``sent`` counter."""
    if source and source not in COUNTED_SOURCE_TAGS:
        return False
    return not is_status_or_query(line)


def format_number(value: float) -> str:
    """Render a number for G-code without trailing zeros (``10``, ``12.7``)."""
    text = f"{float(value):.4f}".rstrip("0").rstrip(".")
    if text in ("-0", ""):
        return "0"
    return text
