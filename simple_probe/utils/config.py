"""Engine settings management.

This module handles loading, saving, and managing the probe engine settings
(pacing delays, timeouts, stabilization tolerances and the configured zeroing
methods) with atomic file operations and automatic backup.
"""

import json
import os
import sys
import shutil
import logging
from dataclasses import dataclass
from typing import Dict, Any, List, Optional
from pathlib import Path

from .constants import (
    BEST_EFFORT_RATIO,
    BITSETTER_FINE_FEED,
    BITSETTER_SAFE_Z,
    CAPTURE_SETTLE_DELAY,
    DISPATCH_DELAY_DEFAULT,
    DISPATCH_DELAY_DWELL,
    DISPATCH_DELAY_PROBE,
    FALLBACK_TIMEOUT,
    SETTINGS_FILENAME,
    SETTINGS_BACKUP_SUFFIX,
    SETTINGS_TEMP_SUFFIX,
    STABILIZATION_EPSILON,
    STABILIZATION_WINDOW,
    TOUCHPLATE_RETRACT,
)
from .exceptions import (
    SettingsLoadError,
    SettingsSaveError,
    SettingsValidationError,
)

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS: Dict[str, Any] = {
    "dispatch": {
        "delay_probe": DISPATCH_DELAY_PROBE,
        "delay_dwell": DISPATCH_DELAY_DWELL,
        "delay_default": DISPATCH_DELAY_DEFAULT,
    },
    "completion": {
        "fallback_timeout": FALLBACK_TIMEOUT,
        "best_effort_ratio": BEST_EFFORT_RATIO,
    },
    "stabilization": {
        "epsilon": STABILIZATION_EPSILON,
        "window": STABILIZATION_WINDOW,
        "settle_delay": CAPTURE_SETTLE_DELAY,
    },
    "bitsetter": {
        "safe_z": BITSETTER_SAFE_Z,
        "fine_feedrate": BITSETTER_FINE_FEED,
    },
    "touchplate": {
        "retract": TOUCHPLATE_RETRACT,
    },
    "zeroing_methods": [
        {"id": "manual-default", "type": "manual", "name": "Manual", "enabled": True, "axes": "xyz"},
    ],
}


def _merge_over_defaults(defaults: Dict[str, Any], loaded: Dict[str, Any]) -> Dict[str, Any]:
    """Overlay ``loaded`` on ``defaults`` section by section; unknown keys survive."""
    merged: Dict[str, Any] = dict(loaded)
    for key, default_val in defaults.items():
        if key not in loaded:
            merged[key] = default_val
        elif isinstance(default_val, dict) and isinstance(loaded[key], dict):
            merged[key] = _merge_over_defaults(default_val, loaded[key])
    return merged


def get_default_settings_dir() -> str:
    """Directory holding the engine settings and calibration files.

    ``SIMPLE_PROBE_CONFIG_DIR`` wins; otherwise the platform config root.
    """
    env_dir = os.getenv("SIMPLE_PROBE_CONFIG_DIR")
    if env_dir:
        return env_dir

    if sys.platform.startswith("win"):
        root = os.getenv("LOCALAPPDATA") or os.getenv("APPDATA")
    else:
        root = os.getenv("XDG_CONFIG_HOME")
    return os.path.join(root or os.path.expanduser("~"), "SimpleProbe")


def get_settings_path() -> str:
    """Full path of the engine settings file, creating its directory.

    When the config directory cannot be created, ``~/.simple_probe`` and
    then the working directory are tried.
    """
    settings_dir = get_default_settings_dir()
    try:
        os.makedirs(settings_dir, exist_ok=True)
    except OSError as exc:
        logger.warning(f"Cannot create config dir {settings_dir}: {exc}")
        settings_dir = os.path.join(os.path.expanduser("~"), ".simple_probe")
        try:
            os.makedirs(settings_dir, exist_ok=True)
        except OSError:
            settings_dir = os.getcwd()
    return os.path.join(settings_dir, SETTINGS_FILENAME)


def atomic_write_json(filepath: str, data: Any) -> None:
    """Write ``data`` as JSON via temp file + rename, keeping a backup.

    Raises:
        OSError: If the write or rename fails (backup restored when possible)
    """
    path = Path(filepath)
    temp_path = Path(str(path) + SETTINGS_TEMP_SUFFIX)
    backup_path = Path(str(path) + SETTINGS_BACKUP_SUFFIX)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(temp_path, "w", encoding="utf-8") as fh:
            json.dump(data, fh, indent=2, sort_keys=True)
        if path.exists():
            try:
                shutil.copy2(path, backup_path)
            except OSError as exc:
                logger.warning(f"Could not back up {path.name}: {exc}")
        temp_path.replace(path)
    except OSError:
        if backup_path.exists():
            try:
                shutil.copy2(backup_path, path)
                logger.info(f"Restored {path.name} from backup")
            except OSError:
                logger.exception(f"Restoring {path.name} from backup failed")
        raise
    finally:
        if temp_path.exists():
            try:
                temp_path.unlink()
            except OSError:
                logger.debug(f"Left temp file behind: {temp_path}")


class Settings:
    """Persistent engine settings with dot-notation access.

    Example:
        settings = Settings()
        settings.load()
        settings.set("completion.fallback_timeout", 120.0)
        settings.save()
    """

    def __init__(self, filepath: Optional[str] = None):
        self.filepath = filepath or get_settings_path()
        self.data: Dict[str, Any] = self._defaults()
        logger.debug(f"Engine settings path: {self.filepath}")

    @staticmethod
    def _defaults() -> Dict[str, Any]:
        return json.loads(json.dumps(DEFAULT_SETTINGS))

    def load(self) -> bool:
        """Read the settings file and merge it over the defaults.

        Returns:
            False when there is no file yet (defaults stay in place)

        Raises:
            SettingsLoadError: If the file exists but cannot be read
        """
        if not os.path.exists(self.filepath):
            logger.info(f"No engine settings at {self.filepath}; using defaults")
            return False

        try:
            with open(self.filepath, "r", encoding="utf-8") as fh:
                raw = json.load(fh)
        except json.JSONDecodeError as exc:
            logger.error(f"Engine settings are not valid JSON: {exc}")
            raise SettingsLoadError(f"Invalid JSON in {self.filepath}: {exc}")
        except OSError as exc:
            logger.error(f"Cannot read engine settings: {exc}")
            raise SettingsLoadError(f"Cannot read {self.filepath}: {exc}")

        if not isinstance(raw, dict):
            raise SettingsLoadError("Settings file must contain a JSON object")
        self.data = _merge_over_defaults(self._defaults(), raw)
        logger.info(f"Loaded engine settings from {self.filepath}")
        return True

    def save(self) -> None:
        """Write the settings atomically (temp file, backup, rename).

        Raises:
            SettingsSaveError: If save fails
        """
        try:
            atomic_write_json(self.filepath, self.data)
        except (OSError, TypeError, ValueError) as exc:
            logger.error(f"Cannot write engine settings: {exc}")
            raise SettingsSaveError(f"Cannot save {self.filepath}: {exc}")
        logger.info(f"Saved engine settings to {self.filepath}")

    def get(self, key: str, default: Any = None) -> Any:
        """Look up ``key``; dots descend into nested sections."""
        node: Any = self.data
        for part in key.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    def set(self, key: str, value: Any) -> None:
        """Set setting value (dot notation creates nested dicts)."""
        *sections, leaf = key.split(".")
        node = self.data
        for part in sections:
            if not isinstance(node.get(part), dict):
                node[part] = {}
            node = node[part]
        node[leaf] = value

    def reset_to_defaults(self) -> None:
        self.data = self._defaults()
        logger.info("Engine settings reset to defaults")

    def validate(self) -> bool:
        """Check the tunables the engine reads.

        Raises:
            SettingsValidationError: On the first invalid value
        """
        if not isinstance(self.data, dict):
            raise SettingsValidationError("Engine settings must be a JSON object")

        for key in (
            "dispatch.delay_probe",
            "dispatch.delay_dwell",
            "dispatch.delay_default",
            "stabilization.settle_delay",
        ):
            value = self.get(key)
            if not isinstance(value, (int, float)) or value < 0:
                raise SettingsValidationError(f"Invalid {key}: {value}")

        for key in ("completion.fallback_timeout", "stabilization.epsilon", "stabilization.window"):
            value = self.get(key)
            if not isinstance(value, (int, float)) or value <= 0:
                raise SettingsValidationError(f"Invalid {key}: {value}")

        ratio = self.get("completion.best_effort_ratio")
        if not isinstance(ratio, (int, float)) or not 0 < ratio <= 1:
            raise SettingsValidationError(f"Invalid completion.best_effort_ratio: {ratio}")

        methods = self.get("zeroing_methods")
        if not isinstance(methods, list):
            raise SettingsValidationError("zeroing_methods must be a list")

        return True

    def zeroing_method_records(self) -> List[Dict[str, Any]]:
        """Return the enabled zeroing method records."""
        records = self.get("zeroing_methods", []) or []
        return [dict(r) for r in records if isinstance(r, dict) and r.get("enabled", True)]


@dataclass(frozen=True)
class EngineConfig:
    """Typed view of the tunables a probe session reads."""

    delay_probe: float = DISPATCH_DELAY_PROBE
    delay_dwell: float = DISPATCH_DELAY_DWELL
    delay_default: float = DISPATCH_DELAY_DEFAULT
    fallback_timeout: float = FALLBACK_TIMEOUT
    best_effort_ratio: float = BEST_EFFORT_RATIO
    stabilization_epsilon: float = STABILIZATION_EPSILON
    stabilization_window: float = STABILIZATION_WINDOW
    capture_settle_delay: float = CAPTURE_SETTLE_DELAY
    bitsetter_safe_z: float = BITSETTER_SAFE_Z
    bitsetter_fine_feedrate: float = BITSETTER_FINE_FEED
    touchplate_retract: float = TOUCHPLATE_RETRACT

    @classmethod
    def from_settings(cls, settings: Settings) -> "EngineConfig":
        settings.validate()
        return cls(
            delay_probe=float(settings.get("dispatch.delay_probe")),
            delay_dwell=float(settings.get("dispatch.delay_dwell")),
            delay_default=float(settings.get("dispatch.delay_default")),
            fallback_timeout=float(settings.get("completion.fallback_timeout")),
            best_effort_ratio=float(settings.get("completion.best_effort_ratio")),
            stabilization_epsilon=float(settings.get("stabilization.epsilon")),
            stabilization_window=float(settings.get("stabilization.window")),
            capture_settle_delay=float(settings.get("stabilization.settle_delay")),
            bitsetter_safe_z=float(settings.get("bitsetter.safe_z")),
            bitsetter_fine_feedrate=float(settings.get("bitsetter.fine_feedrate")),
            touchplate_retract=float(settings.get("touchplate.retract")),
        )
