"""Tests for the JSON configuration manager."""

import json

from shoulder_rom.config.config_manager import ConfigManager
from shoulder_rom.core.base import MeasurementMode, Side


def test_creates_default_config(tmp_path):
    manager = ConfigManager(str(tmp_path))

    assert (tmp_path / "config.json").exists()
    assert manager.get_section("measurement")["alpha"] == 0.2
    assert manager.get_section("capture")["target_fps"] == 20
    assert manager.get_section("video")["smoothing_alpha"] == 1.0
    assert manager.get_section("unknown") == {}


def test_merges_saved_config_with_defaults(tmp_path):
    (tmp_path / "config.json").write_text(json.dumps({"measurement": {"alpha": 0.5}}))

    manager = ConfigManager(str(tmp_path))

    assert manager.get_section("measurement")["alpha"] == 0.5
    assert manager.get_section("measurement")["abduction_max_z_diff"] == 0.12
    assert "visualization" in manager.get_complete_config()


def test_invalid_json_falls_back_to_defaults(tmp_path):
    (tmp_path / "config.json").write_text("{not json")
    manager = ConfigManager(str(tmp_path))
    assert manager.get_complete_config() == ConfigManager.DEFAULT_CONFIG


def test_update_section_persists(tmp_path):
    manager = ConfigManager(str(tmp_path))

    assert manager.update_section("measurement", {"alpha": 0.3})
    assert ConfigManager(str(tmp_path)).get_section("measurement")["alpha"] == 0.3


def test_update_unknown_section(tmp_path, caplog):
    manager = ConfigManager(str(tmp_path))
    assert manager.update_section("nonexistent", {"a": 1}) is False
    assert "Invalid configuration section" in caplog.text


def test_reset_to_defaults(tmp_path):
    manager = ConfigManager(str(tmp_path))
    manager.update_section("capture", {"target_fps": 5})

    assert manager.reset_to_defaults()
    assert manager.get_section("capture")["target_fps"] == 20


def test_thresholds_from_measurement_section(tmp_path):
    manager = ConfigManager(str(tmp_path))
    manager.update_section("measurement", {"extension_max_angle": 45.0})

    thresholds = manager.get_thresholds()

    assert thresholds.extension_max_angle == 45.0
    assert thresholds.sagittal_min_z_diff == 0.10


def test_create_session_uses_defaults(tmp_path):
    manager = ConfigManager(str(tmp_path))
    manager.update_section("measurement", {"default_side": "RIGHT", "alpha": 0.4})

    session = manager.create_session()
    assert session.side is Side.RIGHT
    assert session.mode is MeasurementMode.ABDUCTION
    assert session.alpha == 0.4

    session = manager.create_session(mode="FLEXION", alpha=1.0)
    assert session.mode is MeasurementMode.FLEXION
    assert session.alpha == 1.0
