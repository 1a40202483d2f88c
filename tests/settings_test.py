import json
import logging

import pytest

from simple_probe.utils.config import EngineConfig, Settings
from simple_probe.utils.exceptions import SettingsLoadError, SettingsValidationError
from simple_probe.utils.logging_config import LINES_LOGGER_NAME, setup_logging


@pytest.fixture
def settings(tmp_path):
    return Settings(str(tmp_path / "settings.json"))


def test_defaults_without_file(settings):
    assert settings.load() is False
    assert settings.get("dispatch.delay_probe") == 0.8
    assert settings.get("completion.fallback_timeout") == 300.0
    assert settings.get("missing.key", "fallback") == "fallback"


def test_save_and_reload_merges_defaults(settings, tmp_path):
    settings.set("completion.fallback_timeout", 120.0)
    settings.save()

    data = json.loads((tmp_path / "settings.json").read_text(encoding="utf-8"))
    del data["stabilization"]
    (tmp_path / "settings.json").write_text(json.dumps(data), encoding="utf-8")

    reloaded = Settings(settings.filepath)
    assert reloaded.load() is True
    assert reloaded.get("completion.fallback_timeout") == 120.0
    assert reloaded.get("stabilization.window") == 0.5


def test_invalid_json_raises(settings, tmp_path):
    (tmp_path / "settings.json").write_text("{", encoding="utf-8")
    with pytest.raises(SettingsLoadError):
        settings.load()


def test_validate_rejects_bad_values(settings):
    settings.set("completion.best_effort_ratio", 1.5)
    with pytest.raises(SettingsValidationError):
        settings.validate()
    settings.reset_to_defaults()
    settings.set("dispatch.delay_probe", -1)
    with pytest.raises(SettingsValidationError):
        settings.validate()


def test_engine_config_from_settings(settings):
    settings.set("dispatch.delay_probe", 1.5)
    settings.set("bitsetter.safe_z", -3)
    config = EngineConfig.from_settings(settings)
    assert config.delay_probe == 1.5
    assert config.bitsetter_safe_z == -3.0
    assert config.stabilization_epsilon == 0.001
    assert config == EngineConfig(delay_probe=1.5, bitsetter_safe_z=-3.0)


def test_zeroing_method_records_skip_disabled(settings):
    settings.set("zeroing_methods", [
        {"id": "a", "type": "manual", "enabled": True},
        {"id": "b", "type": "touchplate", "enabled": False},
        {"id": "c", "type": "custom", "gcode": "G0 X0"},
    ])
    assert [r["id"] for r in settings.zeroing_method_records()] == ["a", "c"]


def test_setup_logging_is_idempotent(tmp_path):
    root = setup_logging(tmp_path)
    lines_logger = logging.getLogger(LINES_LOGGER_NAME)
    try:
        count = len(root.handlers)
        setup_logging(tmp_path)
        assert len(root.handlers) == count
        assert len(lines_logger.handlers) == 1
        assert (tmp_path / "simple_probe.log").exists()
        assert (tmp_path / "lines.log").exists()
    finally:
        for logger in (root, lines_logger):
            for handler in list(logger.handlers):
                logger.removeHandler(handler)
                handler.close()
        root.propagate = True
