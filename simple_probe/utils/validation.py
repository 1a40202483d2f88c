"""Validation utilities for Simple Probe.

This module provides validation functions for zeroing method parameters,
ensuring a method value is usable before a sequence is ever built from it.
"""

import math

from .constants import WCS_P_NUMBERS
from .exceptions import InvalidParameterError, InvalidRangeError

VALID_AXES = ("x", "y", "z", "xy", "xz", "yz", "xyz")


def _as_finite_float(value, name: str) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidParameterError(name, value, "must be numeric")
    if math.isnan(number) or math.isinf(number):
        raise InvalidParameterError(name, value, "must be finite")
    return number


def validate_feed_rate(feed: float, name: str = "feed_rate") -> float:
    """Validate feed rate value.

    Args:
        feed: Feed rate in mm/min
        name: Parameter name used in error messages

    Returns:
        The validated feed rate

    Raises:
        InvalidParameterError: If feed rate is invalid
    """
    feed = _as_finite_float(feed, name)
    if feed <= 0:
        raise InvalidParameterError(name, feed, "must be positive")
    return feed


def validate_distance(distance: float, name: str = "distance") -> float:
    """Validate a probe travel distance (must be positive)."""
    distance = _as_finite_float(distance, name)
    if distance <= 0:
        raise InvalidParameterError(name, distance, "must be positive")
    return distance


def validate_thickness(thickness: float, name: str = "thickness", max_val: float = 100.0) -> float:
    """Validate a plate/probe block thickness in mm.

    Raises:
        InvalidParameterError: If thickness is not numeric
        InvalidRangeError: If thickness is negative or implausibly large
    """
    thickness = _as_finite_float(thickness, name)
    if not (0.0 <= thickness <= max_val):
        raise InvalidRangeError(thickness, 0.0, max_val)
    return thickness


def validate_coordinate(value: float, axis: str) -> float:
    """Validate coordinate value.

    Args:
        value: Coordinate value
        axis: Axis name (for error messages)
    """
    return _as_finite_float(value, f"{axis}_coordinate")


def validate_axes(axes: str) -> str:
    """Validate and normalise an axes selector such as ``"xyz"``."""
    if not isinstance(axes, str):
        raise InvalidParameterError("axes", axes, "must be a string")
    normalized = axes.strip().lower()
    if normalized not in VALID_AXES:
        raise InvalidParameterError("axes", axes, f"must be one of {', '.join(VALID_AXES)}")
    return normalized


def validate_wcs(wcs: str) -> str:
    """Validate a work coordinate system name (G54..G59)."""
    if not isinstance(wcs, str) or not wcs.strip():
        raise InvalidParameterError("wcs", wcs, "must be non-empty string")
    normalized = wcs.strip().upper()
    if normalized not in WCS_P_NUMBERS:
        raise InvalidParameterError("wcs", wcs, "must be G54..G59")
    return normalized
