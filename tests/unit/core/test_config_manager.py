"""Unit tests for the Configuration Manager."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, List, Tuple

import pytest
import yaml

from vellum.core.base import VellumManager
from vellum.core.config_manager import ConfigManager, ConfigSchema
from vellum.utils.exceptions import ConfigurationError, ManagerInitializationError


def test_config_schema_default_values() -> None:
    """Test that ConfigSchema provides correct default values."""
    schema = ConfigSchema()

    assert schema.app["name"] == "Vellum"
    assert schema.logging["level"] == "INFO"
    assert schema.packaging["channel"] == "stable"
    assert schema.packaging["sources"]["stable"] == "https://packages.nuget.org/api/v2"
    assert schema.packaging["framework_preferences"] == [
        "net45", "net451", "net452", "net46", "net461", "net462"
    ]
    assert schema.packaging["core_package_id"] == "SS.CMS"
    assert schema.deployment["config_file_name"] == "Web.config"


def test_config_schema_rejects_unknown_channel() -> None:
    """Test validation of the feed channel."""
    packaging = ConfigSchema().packaging
    packaging["channel"] = "beta"

    with pytest.raises(ValueError, match="Feed channel"):
        ConfigSchema(packaging=packaging)


def test_config_schema_rejects_bad_preferences() -> None:
    """Test validation of the framework preference table."""
    packaging = ConfigSchema().packaging
    packaging["framework_preferences"] = "net462"

    with pytest.raises(ValueError, match="Framework preferences"):
        ConfigSchema(packaging=packaging)


def test_config_manager_yaml_file(config_manager: ConfigManager, tmp_path: Path) -> None:
    """Test loading configuration from a YAML file merged over defaults."""
    assert config_manager.get("app.name") == "Vellum Test"
    assert config_manager.get("packaging.channel") == "nightly"
    assert config_manager.get("packaging.packages_path") == str(tmp_path / "packages")
    assert config_manager.get("packaging.max_retries") == 3
    assert config_manager.get("deployment.bin_directory") == "Bin"
    assert config_manager.get("missing.key", "fallback") == "fallback"
    assert config_manager.status()["loaded_from_file"] is True


def test_config_manager_json_file(tmp_path: Path) -> None:
    """Test loading configuration from a JSON file."""
    config_file = tmp_path / "vellum.json"
    config_file.write_text(json.dumps({"packaging": {"timeout": 5.0}}), encoding="utf-8")

    manager = ConfigManager(config_path=config_file)
    manager.initialize()

    assert manager.get("packaging.timeout") == 5.0
    assert manager.get("packaging.channel") == "stable"


def test_config_manager_without_file(tmp_path: Path) -> None:
    """Test that a missing file leaves the defaults in place."""
    manager = ConfigManager(config_path=tmp_path / "absent.yaml")
    manager.initialize()

    assert manager.initialized
    assert manager.get("packaging.channel") == "stable"
    assert manager.status()["config_file"] is None


def test_config_manager_lifecycle_status(config_manager: ConfigManager) -> None:
    """Test the lifecycle flags shared by every manager."""
    status = config_manager.status()

    assert isinstance(config_manager, VellumManager)
    assert status["name"] == "config_manager"
    assert status["initialized"] is True
    assert status["healthy"] is True

    config_manager.shutdown()

    assert not config_manager.healthy


def test_config_manager_env_overrides(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Test environment variable overrides with typed parsing."""
    monkeypatch.setenv("VELLUM_PACKAGING__CHANNEL", "nightly")
    monkeypatch.setenv("VELLUM_PACKAGING__MAX_RETRIES", "5")
    monkeypatch.setenv("VELLUM_PACKAGING__ALLOW_PRERELEASE", "true")
    monkeypatch.setenv("VELLUM_PACKAGING__FRAMEWORK_PREFERENCES", "net462, net461")
    monkeypatch.setenv("VELLUM_PACKAGING__TIMEOUT", "2.5")

    manager = ConfigManager(config_path=tmp_path / "absent.yaml")
    manager.initialize()

    assert manager.get("packaging.channel") == "nightly"
    assert manager.get("packaging.max_retries") == 5
    assert manager.get("packaging.allow_prerelease") is True
    assert manager.get("packaging.framework_preferences") == ["net462", "net461"]
    assert manager.get("packaging.timeout") == 2.5
    assert manager.status()["env_vars_applied"] == 5


def test_config_manager_invalid_file(tmp_path: Path) -> None:
    """Test that an unparseable file fails initialization."""
    config_file = tmp_path / "vellum.yaml"
    config_file.write_text("packaging: [unclosed", encoding="utf-8")

    manager = ConfigManager(config_path=config_file)
    with pytest.raises(ManagerInitializationError):
        manager.initialize()


def test_config_manager_unsupported_format(tmp_path: Path) -> None:
    """Test that unknown file formats are rejected."""
    config_file = tmp_path / "vellum.ini"
    config_file.write_text("[packaging]", encoding="utf-8")

    with pytest.raises(ManagerInitializationError, match="Unsupported config file format"):
        ConfigManager(config_path=config_file).initialize()


def test_config_manager_invalid_values(tmp_path: Path) -> None:
    """Test that invalid values in the file fail initialization."""
    config_file = tmp_path / "vellum.yaml"
    config_file.write_text(yaml.dump({"packaging": {"channel": "beta"}}), encoding="utf-8")

    with pytest.raises(ManagerInitializationError):
        ConfigManager(config_path=config_file).initialize()


def test_get_before_initialize(tmp_path: Path) -> None:
    """Test that access before initialization is an error."""
    manager = ConfigManager(config_path=tmp_path / "vellum.yaml")

    with pytest.raises(ConfigurationError):
        manager.get("packaging.channel")
    with pytest.raises(ConfigurationError):
        manager.set("packaging.channel", "nightly")


def test_set_notifies_and_saves(config_manager: ConfigManager, temp_config_file: Path) -> None:
    """Test that set validates, notifies listeners and persists."""
    calls: List[Tuple[str, Any]] = []

    def listener(key: str, value: Any) -> None:
        calls.append((key, value))

    config_manager.register_listener("packaging", listener)
    config_manager.set("packaging.allow_prerelease", True)

    assert config_manager.get("packaging.allow_prerelease") is True
    assert calls == [("packaging.allow_prerelease", True)]
    saved = yaml.safe_load(temp_config_file.read_text(encoding="utf-8"))
    assert saved["packaging"]["allow_prerelease"] is True

    config_manager.unregister_listener("packaging", listener)
    config_manager.set("packaging.timeout", 10.0)
    assert len(calls) == 1


def test_set_rejects_invalid_value(config_manager: ConfigManager) -> None:
    """Test that set refuses values the schema rejects."""
    with pytest.raises(ConfigurationError):
        config_manager.set("packaging.channel", "beta")

    assert config_manager.get("packaging.channel") == "nightly"
