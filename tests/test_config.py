from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest

from lockkeeper.config import (
    LockKeeperConfig,
    discover_config_file,
    load_config,
    _parse_section,
    _pyproject_has_lockkeeper_section,
    _read_toml,
)
from lockkeeper.constants import DEFAULT_REGISTRY_URL
from lockkeeper.exceptions import ConfigError


@pytest.mark.unit
class TestLockKeeperConfig:
    """Tests for LockKeeperConfig dataclass."""

    def test_default_initialization(self) -> None:
        """Test LockKeeperConfig initializes with correct defaults."""
        config = LockKeeperConfig()

        assert config.registry_url == DEFAULT_REGISTRY_URL
        assert config.prefer_locked is True
        assert config.validate_after_install is True
        assert config.lockfile_name == "package-lock.json"
        assert config.source_path is None

    def test_to_log_dict(self) -> None:
        """Test to_log_dict returns configuration without metadata."""
        config = LockKeeperConfig(
            prefer_locked=False,
            source_path=Path("/test/path.toml"),
        )

        result = config.to_log_dict()

        assert result == {
            "registry_url": DEFAULT_REGISTRY_URL,
            "prefer_locked": False,
            "validate_after_install": True,
            "lockfile_name": "package-lock.json",
        }
        assert "source_path" not in result


@pytest.mark.unit
class TestDiscoverConfigFile:
    """Tests for discover_config_file."""

    def test_explicit_path_priority(self, tmp_path: Path) -> None:
        """Test an explicit path wins over discovered files."""
        config_file = tmp_path / "custom.toml"
        config_file.write_text("[lockkeeper]\n", encoding="utf-8")
        (tmp_path / "lockkeeper.toml").write_text("[lockkeeper]\n", encoding="utf-8")

        result = discover_config_file(config_file, tmp_path)

        assert result == config_file.resolve()

    def test_explicit_path_not_found_raises_error(self, tmp_path: Path) -> None:
        non_existent = tmp_path / "nonexistent.toml"

        with pytest.raises(ConfigError) as exc_info:
            discover_config_file(non_existent)

        assert "not found" in str(exc_info.value)
        assert exc_info.value.config_path == str(non_existent)

    def test_discovers_lockkeeper_toml(self, tmp_path: Path) -> None:
        config_file = tmp_path / "lockkeeper.toml"
        config_file.write_text("[lockkeeper]\n", encoding="utf-8")

        with patch("lockkeeper.config.Path.cwd", return_value=tmp_path):
            result = discover_config_file()

        assert result == config_file

    def test_discovers_pyproject_toml_with_section(self, tmp_path: Path) -> None:
        config_file = tmp_path / "pyproject.toml"
        config_file.write_text(
            "[tool.lockkeeper]\nprefer_locked = false\n", encoding="utf-8"
        )

        assert discover_config_file(project_dir=tmp_path) == config_file

    def test_ignores_pyproject_toml_without_section(self, tmp_path: Path) -> None:
        (tmp_path / "pyproject.toml").write_text(
            "[tool.other]\nkey = 1\n", encoding="utf-8"
        )

        assert discover_config_file(project_dir=tmp_path) is None

    def test_precedence_order(self, tmp_path: Path) -> None:
        """Test lockkeeper.toml is preferred over pyproject.toml."""
        lockkeeper_toml = tmp_path / "lockkeeper.toml"
        lockkeeper_toml.write_text("[lockkeeper]\n", encoding="utf-8")
        (tmp_path / "pyproject.toml").write_text(
            "[tool.lockkeeper]\n", encoding="utf-8"
        )

        assert discover_config_file(project_dir=tmp_path) == lockkeeper_toml


@pytest.mark.unit
class TestPyprojectSection:
    """Tests for _pyproject_has_lockkeeper_section."""

    def test_returns_true_when_section_exists(self, tmp_path: Path) -> None:
        config_file = tmp_path / "pyproject.toml"
        config_file.write_text("[tool.lockkeeper]\n", encoding="utf-8")

        assert _pyproject_has_lockkeeper_section(config_file) is True

    def test_returns_false_on_invalid_toml(self, tmp_path: Path) -> None:
        config_file = tmp_path / "pyproject.toml"
        config_file.write_text("[tool.lockkeeper\n", encoding="utf-8")

        assert _pyproject_has_lockkeeper_section(config_file) is False


@pytest.mark.unit
class TestReadToml:
    """Tests for _read_toml."""

    def test_reads_valid_toml(self, tmp_path: Path) -> None:
        toml_file = tmp_path / "test.toml"
        toml_file.write_text('[lockkeeper]\nlockfile_name = "x.json"\n', encoding="utf-8")

        assert _read_toml(toml_file) == {"lockkeeper": {"lockfile_name": "x.json"}}

    def test_raises_error_on_invalid_toml(self, tmp_path: Path) -> None:
        toml_file = tmp_path / "invalid.toml"
        toml_file.write_text("not = [valid", encoding="utf-8")

        with pytest.raises(ConfigError) as exc_info:
            _read_toml(toml_file)

        assert "Invalid TOML" in str(exc_info.value)

    def test_raises_error_when_file_not_found(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError) as exc_info:
            _read_toml(tmp_path / "nonexistent.toml")

        assert "Cannot read" in str(exc_info.value)


@pytest.mark.unit
class TestParseSection:
    """Tests for _parse_section."""

    def test_parses_empty_section(self) -> None:
        assert _parse_section({}, config_path="test.toml") == LockKeeperConfig()

    def test_parses_all_options(self) -> None:
        config = _parse_section(
            {
                "registry_url": "https://npm.example.com",
                "prefer_locked": False,
                "validate_after_install": False,
                "lockfile_name": "npm-shrinkwrap.json",
            },
            config_path="test.toml",
        )

        assert config.registry_url == "https://npm.example.com"
        assert config.prefer_locked is False
        assert config.validate_after_install is False
        assert config.lockfile_name == "npm-shrinkwrap.json"

    def test_raises_error_on_unknown_keys(self) -> None:
        with pytest.raises(ConfigError) as exc_info:
            _parse_section({"check_conflicts": True}, config_path="test.toml")

        assert "Unknown configuration keys: check_conflicts" in str(exc_info.value)

    def test_raises_error_on_wrong_type(self) -> None:
        with pytest.raises(ConfigError) as exc_info:
            _parse_section({"prefer_locked": "yes"}, config_path="test.toml")

        assert exc_info.value.option == "prefer_locked"
        assert "must be a boolean" in str(exc_info.value)

    def test_raises_error_on_empty_string(self) -> None:
        with pytest.raises(ConfigError) as exc_info:
            _parse_section({"registry_url": "  "}, config_path="test.toml")

        assert exc_info.value.option == "registry_url"


@pytest.mark.unit
class TestLoadConfig:
    """Tests for load_config."""

    def test_returns_defaults_when_no_config_found(self, tmp_path: Path) -> None:
        config = load_config(project_dir=tmp_path)

        assert config == LockKeeperConfig()
        assert config.source_path is None

    def test_loads_lockkeeper_toml(self, tmp_path: Path) -> None:
        config_file = tmp_path / "lockkeeper.toml"
        config_file.write_text(
            "[lockkeeper]\nprefer_locked = false\n", encoding="utf-8"
        )

        config = load_config(project_dir=tmp_path)

        assert config.prefer_locked is False
        assert config.source_path == config_file

    def test_loads_pyproject_toml(self, tmp_path: Path) -> None:
        config_file = tmp_path / "pyproject.toml"
        config_file.write_text(
            '[tool.lockkeeper]\nlockfile_name = "npm-shrinkwrap.json"\n',
            encoding="utf-8",
        )

        config = load_config(project_dir=tmp_path)

        assert config.lockfile_name == "npm-shrinkwrap.json"

    def test_empty_section_uses_defaults(self, tmp_path: Path) -> None:
        config_file = tmp_path / "custom.toml"
        config_file.write_text("[other]\n", encoding="utf-8")

        config = load_config(config_file)

        assert config.prefer_locked is True
        assert config.source_path == config_file.resolve()

    def test_invalid_value_raises(self, tmp_path: Path) -> None:
        config_file = tmp_path / "lockkeeper.toml"
        config_file.write_text("[lockkeeper]\nprefer_locked = 1\n", encoding="utf-8")

        with pytest.raises(ConfigError):
            load_config(project_dir=tmp_path)
