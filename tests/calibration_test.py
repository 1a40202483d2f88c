import json

import pytest

from simple_probe.calibration import (
    CalibrationStoreAdapter,
    JsonCalibrationStore,
    MemoryCalibrationStore,
    tool_reference_key,
)
from simple_probe.utils.exceptions import CalibrationStoreError

from conftest import FailingCalibrationStore


def test_tool_reference_key():
    assert tool_reference_key("G54") == "bitsetter.toolReference.G54"
    assert tool_reference_key("g55") == "bitsetter.toolReference.G55"
    assert tool_reference_key("") == "bitsetter.toolReference.G54"


def test_store_writes_once(store):
    adapter = CalibrationStoreAdapter(store, clock=lambda: 1000.0)
    entry = adapter.store_tool_reference("G54", 1.234)
    again = adapter.store_tool_reference("G54", 9.9)
    assert again is entry
    assert store.writes == [("bitsetter.toolReference.G54", 1.234, {"wcs": "G54", "timestamp": 1000.0})]
    assert adapter.tool_reference("G54") == pytest.approx(1.234)


def test_later_write_supersedes(store):
    CalibrationStoreAdapter(store).store_tool_reference("G54", 1.0)
    CalibrationStoreAdapter(store).store_tool_reference("G54", 2.0)
    assert store.get("bitsetter.toolReference.G54") == 2.0


def test_clear_is_not_zero(store):
    adapter = CalibrationStoreAdapter(store)
    adapter.store_tool_reference("G54", 0.0)
    assert adapter.tool_reference("G54") == 0.0
    assert adapter.clear_tool_reference("G54")
    assert adapter.tool_reference("G54") is None
    assert not adapter.clear_tool_reference("G54")


def test_rejected_write_raises():
    adapter = CalibrationStoreAdapter(FailingCalibrationStore(fail_set=True))
    with pytest.raises(CalibrationStoreError):
        adapter.store_tool_reference("G54", 1.0)
    assert adapter.written is None


def test_clear_failure_raises():
    adapter = CalibrationStoreAdapter(FailingCalibrationStore(fail_set=False, fail_clear=True))
    with pytest.raises(CalibrationStoreError):
        adapter.clear_tool_reference("G54")


def test_memory_store_initial_values():
    store = MemoryCalibrationStore({"bitsetter.toolReference.G55": -12.5})
    assert CalibrationStoreAdapter(store).tool_reference("G55") == -12.5


def test_json_store_round_trip(tmp_path):
    path = tmp_path / "calibration.json"
    store = JsonCalibrationStore(str(path))
    assert store.get("bitsetter.toolReference.G54") is None
    assert store.set("bitsetter.toolReference.G54", 1.234, {"wcs": "G54", "timestamp": 5.0})

    on_disk = json.loads(path.read_text(encoding="utf-8"))
    assert on_disk == {"bitsetter.toolReference.G54": {"value": 1.234, "wcs": "G54", "timestamp": 5.0}}

    reopened = JsonCalibrationStore(str(path))
    assert reopened.get("bitsetter.toolReference.G54") == 1.234
    assert reopened.clear("bitsetter.toolReference.G54")
    assert not reopened.clear("bitsetter.toolReference.G54")
    assert JsonCalibrationStore(str(path)).get("bitsetter.toolReference.G54") is None


def test_json_store_keeps_backup(tmp_path):
    path = tmp_path / "calibration.json"
    store = JsonCalibrationStore(str(path))
    store.set("a", 1, {})
    store.set("a", 2, {})
    backup = json.loads((tmp_path / "calibration.json.backup").read_text(encoding="utf-8"))
    assert backup["a"]["value"] == 1
    assert not (tmp_path / "calibration.json.tmp").exists()


def test_json_store_invalid_file(tmp_path):
    path = tmp_path / "calibration.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(CalibrationStoreError):
        JsonCalibrationStore(str(path)).get("a")


def test_json_store_default_path(tmp_path, monkeypatch):
    monkeypatch.setenv("SIMPLE_PROBE_CONFIG_DIR", str(tmp_path))
    store = JsonCalibrationStore()
    assert store.filepath == str(tmp_path / "calibration.json")
