"""Unit tests for the Configuration Manager."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml

from lacona.core.config_manager import ConfigManager, ConfigSchema
from lacona.utils.exceptions import ConfigurationError


def test_config_schema_default_values() -> None:
    """Test that ConfigSchema provides correct default values."""
    schema = ConfigSchema()

    assert schema.addons.directory == "~/Library/Application Support/Lacona/Addons"
    assert schema.registry.url == "https://registry.npmjs.com"
    assert schema.registry.timeout == 30.0
    assert schema.packaging.ignore == []
    assert schema.link.install == ["npm", "install"]
    assert schema.host.application == "Lacona"
    assert schema.host.reload == ["osascript", "-e", 'tell application "Lacona" to reload addons']
    assert schema.host.logs == ["syslog"]
    assert schema.logging.level == "WARNING"
    assert schema.logging.file.enabled is False


def test_config_schema_validation_registry() -> None:
    """Test validation of the registry section."""
    schema = ConfigSchema(registry={"url": "http://localhost:4873", "timeout": 2})
    assert schema.registry.url == "http://localhost:4873"
    assert schema.registry.timeout == 2.0

    with pytest.raises(ValueError, match="Registry URL must be an http"):
        ConfigSchema(registry={"url": "ftp://registry.test", "timeout": 2})

    with pytest.raises(ValueError, match="Registry timeout must be a positive number"):
        ConfigSchema(registry={"url": "https://registry.test", "timeout": 0})

    with pytest.raises(ValueError, match="Registry timeout must be a positive number"):
        ConfigSchema(registry={"url": "https://registry.test", "timeout": True})


def test_config_schema_command_strings_are_split() -> None:
    """Test that commands given as strings become argument lists."""
    schema = ConfigSchema(link={"install": "yarn install --frozen-lockfile"})
    assert schema.link.install == ["yarn", "install", "--frozen-lockfile"]

    with pytest.raises(ValueError, match="must be a non-empty command list"):
        ConfigSchema(link={"install": []})

    with pytest.raises(ValueError, match="packaging.ignore must be a list of patterns"):
        ConfigSchema(packaging={"ignore": "*.log"})


def test_config_manager_yaml_file(temp_config_file: str, addon_root: Path) -> None:
    """Test loading configuration from a YAML file."""
    manager = ConfigManager(config_path=temp_config_file)
    manager.initialize()

    assert manager.initialized
    assert manager.get("addons.directory") == str(addon_root)
    assert manager.get("registry.url") == "https://registry.test"
    assert manager.get("registry.timeout") == 5
    # Keys absent from the file keep their defaults
    assert manager.get("host.application") == "Lacona"
    assert manager.get("logging.file.path") == "~/.lacona/logs/lacona-cli.log"

    status = manager.status()
    assert status["loaded_from_file"] is True
    assert status["config_file"] == temp_config_file

    manager.shutdown()
    assert not manager.initialized


def test_config_manager_json_file(tmp_path: Path) -> None:
    """Test loading configuration from a JSON file."""
    config_file = tmp_path / "config.json"
    with config_file.open("w") as f:
        json.dump({"registry": {"url": "http://localhost:4873"}, "host": {"application": "LaconaBeta"}}, f)

    manager = ConfigManager(config_path=config_file)
    manager.initialize()

    assert manager.get("registry.url") == "http://localhost:4873"
    assert manager.get("registry.timeout") == 30.0
    assert manager.get("host.application") == "LaconaBeta"


def test_config_manager_nonexistent_file(tmp_path: Path) -> None:
    """Test initialization with a non-existent file path."""
    manager = ConfigManager(config_path=tmp_path / "missing.yaml")
    manager.initialize()

    assert manager.initialized
    assert manager.get("registry.url") == "https://registry.npmjs.com"
    assert manager.status()["loaded_from_file"] is False


def test_config_manager_invalid_yaml(tmp_path: Path) -> None:
    """Test that a broken file is a configuration error."""
    config_file = tmp_path / "config.yaml"
    config_file.write_text("registry: [unclosed", encoding="utf-8")

    manager = ConfigManager(config_path=config_file)
    with pytest.raises(ConfigurationError, match="Error reading config file"):
        manager.initialize()


def test_config_manager_non_mapping_file(tmp_path: Path) -> None:
    config_file = tmp_path / "config.yaml"
    config_file.write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ConfigurationError, match="must contain a mapping"):
        ConfigManager(config_path=config_file).initialize()


def test_config_manager_unsupported_format(tmp_path: Path) -> None:
    config_file = tmp_path / "config.toml"
    config_file.write_text("[registry]\n", encoding="utf-8")

    with pytest.raises(ConfigurationError, match="Unsupported config file format"):
        ConfigManager(config_path=config_file).initialize()


def test_config_manager_invalid_values(tmp_path: Path) -> None:
    """Test that values failing validation are reported."""
    config_file = tmp_path / "config.yaml"
    with config_file.open("w") as f:
        yaml.dump({"registry": {"url": "not-a-url"}}, f)

    with pytest.raises(ConfigurationError, match="Invalid configuration"):
        ConfigManager(config_path=config_file).initialize()


def test_config_manager_env_vars(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Test that LACONA_ environment variables override file values."""
    monkeypatch.setenv("LACONA_REGISTRY_URL", "http://env-registry.test")
    monkeypatch.setenv("LACONA_REGISTRY_TIMEOUT", "12")
    monkeypatch.setenv("LACONA_ADDONS_DIRECTORY", str(tmp_path / "env-addons"))

    manager = ConfigManager(config_path=tmp_path / "missing.yaml")
    manager.initialize()

    assert manager.get("registry.url") == "http://env-registry.test"
    assert manager.get("registry.timeout") == 12
    assert manager.get("addons.directory") == str(tmp_path / "env-addons")
    assert manager.status()["env_vars_applied"] == 3


def test_parse_env_value() -> None:
    """Test conversion of environment variable strings."""
    assert ConfigManager._parse_env_value("true") is True
    assert ConfigManager._parse_env_value("Off") is False
    assert ConfigManager._parse_env_value("42") == 42
    assert ConfigManager._parse_env_value("-3") == -3
    assert ConfigManager._parse_env_value("2.5") == 2.5
    assert ConfigManager._parse_env_value("Lacona") == "Lacona"


def test_config_manager_overrides(temp_config_file: str, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Test that explicit overrides win over file and environment."""
    monkeypatch.setenv("LACONA_REGISTRY_URL", "http://env-registry.test")

    manager = ConfigManager(
        config_path=temp_config_file,
        overrides={
            "registry.url": "http://cli-registry.test",
            "addons.directory": str(tmp_path / "cli-addons"),
            "logging.level": None,
        },
    )
    manager.initialize()

    assert manager.get("registry.url") == "http://cli-registry.test"
    assert manager.get("addons.directory") == str(tmp_path / "cli-addons")
    # None overrides are ignored
    assert manager.get("logging.level") == "WARNING"


def test_config_manager_get(config_manager: ConfigManager) -> None:
    """Test dot-key access and defaults."""
    assert config_manager.get("registry") == {"url": "https://registry.test", "timeout": 5}
    assert config_manager.get("registry.missing", "fallback") == "fallback"
    assert config_manager.get("registry.url.deeper") is None


def test_config_manager_get_before_initialize() -> None:
    """Test that reading configuration before initialization fails."""
    manager = ConfigManager()
    with pytest.raises(ConfigurationError, match="before initialization"):
        manager.get("registry.url")


def test_config_manager_get_path(tmp_path: Path) -> None:
    manager = ConfigManager(config_path=tmp_path / "missing.yaml")
    manager.initialize()

    path = manager.get_path("addons.directory")
    assert path == Path("~/Library/Application Support/Lacona/Addons").expanduser()
    assert not str(path).startswith("~")

    with pytest.raises(ConfigurationError, match="Missing path setting"):
        manager.get_path("addons.nothing")


def test_config_schema_logging_format() -> None:
    assert ConfigSchema(logging={"format": "JSON"}).logging.format == "json"

    with pytest.raises(ValueError, match="Log format must be"):
        ConfigSchema(logging={"format": "xml"})


def test_config_manager_string_command_in_file(tmp_path: Path) -> None:
    """Test that a command written as a string in the file is split."""
    config_file = tmp_path / "config.yaml"
    config_file.write_text("host:\n  logs: log show --last 1h\n", encoding="utf-8")

    manager = ConfigManager(config_path=config_file)
    manager.initialize()

    assert manager.get("host.logs") == ["log", "show", "--last", "1h"]
    assert manager.get("host.reload")[0] == "osascript"


def test_config_schema_command_string_respects_quotes() -> None:
    """Test that quoted arguments survive splitting a command string."""
    schema = ConfigSchema(host={"reload": "osascript -e 'tell application \"Lacona\" to reload addons'"})

    assert schema.host.reload == ["osascript", "-e", 'tell application "Lacona" to reload addons']

    with pytest.raises(ValueError, match="cannot split command"):
        ConfigSchema(link={"install": "npm install 'unterminated"})


def test_config_manager_quoted_command_from_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LACONA_LINK_INSTALL", 'npm install --prefix "My Addons"')

    manager = ConfigManager(config_path=tmp_path / "missing.yaml")
    manager.initialize()

    assert manager.get("link.install") == ["npm", "install", "--prefix", "My Addons"]
