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

"""Logging setup for Simple Probe.

Three rotating files live under ``<config dir>/logs``: ``simple_probe.log``
(everything), ``errors.log`` (warnings and up) and ``lines.log`` (raw TX/RX
traffic from the ``simple_probe.lines`` logger).
"""

from __future__ import annotations

import logging
import logging.handlers
import tempfile
from pathlib import Path

from .config import get_settings_path

APP_LOGGER_NAME = "simple_probe"
LINES_LOGGER_NAME = f"{APP_LOGGER_NAME}.lines"
LOG_DIRNAME = "logs"

_APP_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_ERROR_FORMAT = "%(asctime)s [%(levelname)s] %(name)s:%(lineno)d\n%(message)s\n"
_LINES_FORMAT = "%(asctime)s.%(msecs)03d %(message)s"


def _has_handler(logger: logging.Logger, name: str) -> bool:
    return any(h.get_name() == name for h in logger.handlers)


def _attach_rotating(
    logger: logging.Logger,
    name: str,
    path: Path,
    level: int,
    formatter: logging.Formatter,
    max_bytes: int,
    backups: int,
) -> None:
    if _has_handler(logger, name):
        return
    handler = logging.handlers.RotatingFileHandler(
        path, maxBytes=max_bytes, backupCount=backups, encoding="utf-8"
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    handler.set_name(name)
    logger.addHandler(handler)


def get_log_dir() -> Path:
    """``logs`` beside the settings file, or a temp dir if that is read-only."""
    log_dir = Path(get_settings_path()).parent / LOG_DIRNAME
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
    except OSError:
        log_dir = Path(tempfile.gettempdir()) / "simple_probe_logs"
        log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir


def setup_logging(log_dir: Path | None = None, *, console_level: int = logging.INFO) -> logging.Logger:
    """Install console and rotating file handlers on the package logger.

    Safe to call more than once; handlers are keyed by name.
    """
    log_dir = log_dir or get_log_dir()

    app_logger = logging.getLogger(APP_LOGGER_NAME)
    app_logger.setLevel(logging.DEBUG)
    app_logger.propagate = False

    if not _has_handler(app_logger, "simple_probe_console"):
        console = logging.StreamHandler()
        console.setLevel(console_level)
        console.setFormatter(logging.Formatter("%(asctime)s %(levelname)-7s %(message)s", datefmt="%H:%M:%S"))
        console.set_name("simple_probe_console")
        app_logger.addHandler(console)

    _attach_rotating(
        app_logger, "simple_probe_app_file", log_dir / "simple_probe.log",
        logging.DEBUG, logging.Formatter(_APP_FORMAT), 10_000_000, 5,
    )
    _attach_rotating(
        app_logger, "simple_probe_error_file", log_dir / "errors.log",
        logging.WARNING, logging.Formatter(_ERROR_FORMAT), 2_000_000, 5,
    )

    lines_logger = logging.getLogger(LINES_LOGGER_NAME)
    lines_logger.setLevel(logging.DEBUG)
    _attach_rotating(
        lines_logger, "simple_probe_lines_file", log_dir / "lines.log",
        logging.DEBUG, logging.Formatter(_LINES_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"), 5_000_000, 3,
    )

    return app_logger
