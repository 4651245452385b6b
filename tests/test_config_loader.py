from __future__ import annotations

from pathlib import Path

import pytest

from blelink.core.config_loader import load_config, user_config_path
from blelink.core.errors import ConfigLoadError, ConfigValidationError


def _write_config(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


@pytest.fixture(autouse=True)
def _isolated_xdg(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "cfg"))


def test_load_packaged_default() -> None:
    loaded = load_config()
    assert loaded.config.target_names == ("TI BLE Sensor Tag", "SensorTag")
    assert loaded.config.connect_timeout_s == 10.0
    assert loaded.config.scan_timeout_s == 10.0
    assert loaded.warnings == ()


def test_user_config_path_follows_xdg(tmp_path: Path) -> None:
    assert user_config_path() == tmp_path / "cfg" / "blelink" / "config.yaml"


def test_user_config_overrides_default(tmp_path: Path) -> None:
    _write_config(
        tmp_path / "cfg" / "blelink" / "config.yaml",
        """
target_names: ["Heart Rate Strap"]
scan_timeout_s: 30
""",
    )

    loaded = load_config()
    assert loaded.config.target_names == ("Heart Rate Strap",)
    assert loaded.config.scan_timeout_s == 30.0
    assert loaded.config.discovery_timeout_s == 20.0
    assert any("target_names" in warning for warning in loaded.warnings)


def test_null_timeout_disables_bound(tmp_path: Path) -> None:
    path = tmp_path / "profile.yaml"
    _write_config(path, "connect_timeout_s: null\n")

    loaded = load_config(path)
    assert loaded.config.connect_timeout_s is None


def test_unknown_key_rejected(tmp_path: Path) -> None:
    path = tmp_path / "profile.yaml"
    _write_config(path, "target_name: [\"SensorTag\"]\n")

    with pytest.raises(ConfigValidationError):
        load_config(path)


def test_negative_timeout_rejected(tmp_path: Path) -> None:
    path = tmp_path / "profile.yaml"
    _write_config(path, "scan_timeout_s: -1\n")

    with pytest.raises(ConfigValidationError) as exc:
        load_config(path)
    assert "scan_timeout_s" in str(exc.value)


def test_duplicate_yaml_keys_rejected(tmp_path: Path) -> None:
    path = tmp_path / "profile.yaml"
    _write_config(
        path,
        """
scan_timeout_s: 5
scan_timeout_s: 6
""",
    )

    with pytest.raises(ConfigValidationError):
        load_config(path)


def test_duplicate_target_names_rejected(tmp_path: Path) -> None:
    path = tmp_path / "profile.yaml"
    _write_config(path, "target_names: [\"SensorTag\", \"SensorTag\"]\n")

    with pytest.raises(ConfigValidationError):
        load_config(path)


def test_non_mapping_root_rejected(tmp_path: Path) -> None:
    path = tmp_path / "profile.yaml"
    _write_config(path, "- SensorTag\n")

    with pytest.raises(ConfigValidationError):
        load_config(path)


def test_missing_explicit_path_is_load_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigLoadError):
        load_config(tmp_path / "absent.yaml")
