"""Utility modules for Simple Probe."""

from .constants import *
from .exceptions import *
from .validation import *
from .config import EngineConfig, Settings, get_settings_path

__all__ = [
    # Config
    "EngineConfig",
    "Settings",
    "get_settings_path",
]
