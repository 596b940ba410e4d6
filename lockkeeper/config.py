"""Configuration file loader for lockkeeper.

Handles discovery, loading, parsing, and validation of configuration files.
Supports two formats:

- ``lockkeeper.toml`` — settings under ``[lockkeeper]`` table
- ``pyproject.toml`` — settings under ``[tool.lockkeeper]`` table

Discovery order:

1. Explicit path from ``--config`` or ``LOCKKEEPER_CONFIG``
2. ``lockkeeper.toml`` in the project directory
3. ``pyproject.toml`` with ``[tool.lockkeeper]`` section

Configuration precedence: defaults < config file < CLI args.

Example (``lockkeeper.toml``)::

    [lockkeeper]
    registry_url = "https://registry.npmjs.org"
    prefer_locked = true
    validate_after_install = true
    lockfile_name = "package-lock.json"
"""

from __future__ import annotations

import tomli as tomllib
from pathlib import Path
from typing import Any, Dict, Optional
from dataclasses import dataclass, field

from lockkeeper.exceptions import ConfigError
from lockkeeper.utils.logger import get_logger
from lockkeeper.constants import (
    DEFAULT_LOCKFILE_NAME,
    DEFAULT_PREFER_LOCKED,
    DEFAULT_REGISTRY_URL,
    DEFAULT_VALIDATE_AFTER_INSTALL,
)

logger = get_logger("config")

# option name -> expected type
_OPTIONS: Dict[str, type] = {
    "registry_url": str,
    "prefer_locked": bool,
    "validate_after_install": bool,
    "lockfile_name": str,
}


@dataclass
class LockKeeperConfig:
    """Parsed and validated lockkeeper configuration.

    All fields have defaults, so empty config files are valid.

    Attributes:
        registry_url: npm registry used when no ``--registry-file`` is given.
        prefer_locked: Reuse versions and locations from the existing
            lockfile when they still satisfy.
        validate_after_install: Run the clean-install check after
            ``install``. ``update`` always validates.
        lockfile_name: Lockfile file name inside the project directory.
        source_path: Path to loaded config file, or ``None`` if using defaults.
    """

    registry_url: str = DEFAULT_REGISTRY_URL
    prefer_locked: bool = DEFAULT_PREFER_LOCKED
    validate_after_install: bool = DEFAULT_VALIDATE_AFTER_INSTALL
    lockfile_name: str = DEFAULT_LOCKFILE_NAME

    # Metadata (not a user-facing option)
    source_path: Optional[Path] = field(default=None, repr=False)

    def to_log_dict(self) -> Dict[str, Any]:
        """Return configuration as dictionary for debug logging."""
        return {name: getattr(self, name) for name in _OPTIONS}


def discover_config_file(
    explicit_path: Optional[Path] = None,
    project_dir: Optional[Path] = None,
) -> Optional[Path]:
    """Find the configuration file to load.

    Args:
        explicit_path: Explicit config path. If provided, must exist.
        project_dir: Directory searched for ``lockkeeper.toml`` and
            ``pyproject.toml`` (defaults to the current directory).

    Returns:
        Resolved path to config file, or ``None`` if not found.

    Raises:
        ConfigError: Explicit path provided but does not exist.
    """
    if explicit_path is not None:
        resolved = explicit_path.resolve()
        if not resolved.is_file():
            raise ConfigError(
                f"Configuration file not found: {explicit_path}",
                config_path=str(explicit_path),
            )
        logger.debug("Using explicit config: %s", resolved)
        return resolved

    base = project_dir if project_dir is not None else Path.cwd()

    lockkeeper_toml = base / "lockkeeper.toml"
    if lockkeeper_toml.is_file():
        logger.debug("Found lockkeeper.toml: %s", lockkeeper_toml)
        return lockkeeper_toml

    pyproject_toml = base / "pyproject.toml"
    if pyproject_toml.is_file() and _pyproject_has_lockkeeper_section(pyproject_toml):
        logger.debug("Found [tool.lockkeeper] in pyproject.toml: %s", pyproject_toml)
        return pyproject_toml

    logger.debug("No configuration file found")
    return None


def _pyproject_has_lockkeeper_section(path: Path) -> bool:
    """Check if pyproject.toml contains a ``[tool.lockkeeper]`` section.

    An unreadable pyproject.toml is treated as having no section.
    """
    try:
        raw = _read_toml(path)
    except ConfigError as exc:
        logger.debug("Ignoring %s: %s", path, exc)
        return False
    return "lockkeeper" in raw.get("tool", {})


def load_config(
    config_path: Optional[Path] = None,
    project_dir: Optional[Path] = None,
) -> LockKeeperConfig:
    """Load and validate lockkeeper configuration.

    Returns defaults when no configuration file is found.

    Raises:
        ConfigError: File cannot be parsed, has unknown keys, or invalid values.
    """
    resolved = discover_config_file(config_path, project_dir)

    if resolved is None:
        logger.debug("No config file found, using defaults")
        return LockKeeperConfig()

    logger.info("Loading configuration from %s", resolved)
    raw = _read_toml(resolved)

    if resolved.name == "pyproject.toml":
        section = raw.get("tool", {}).get("lockkeeper", {})
    else:
        section = raw.get("lockkeeper", {})

    if not section:
        logger.debug("Config file found but no lockkeeper section, using defaults")
        return LockKeeperConfig(source_path=resolved)

    config = _parse_section(section, config_path=str(resolved))
    config.source_path = resolved

    logger.debug("Loaded configuration: %s", config.to_log_dict())
    return config


def _read_toml(path: Path) -> Dict[str, Any]:
    """Read and parse a TOML file.

    Raises:
        ConfigError: File cannot be read or is not valid TOML.
    """
    try:
        with open(path, "rb") as fh:
            return tomllib.load(fh)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(
            f"Invalid TOML in {path.name}: {exc}",
            config_path=str(path),
        ) from exc
    except OSError as exc:
        raise ConfigError(
            f"Cannot read configuration file {path}: {exc}",
            config_path=str(path),
        ) from exc


def _parse_section(
    section: Dict[str, Any],
    *,
    config_path: str,
) -> LockKeeperConfig:
    """Validate a ``[lockkeeper]`` table and build the config.

    Raises:
        ConfigError: Unknown keys, incorrect types or empty strings.
    """
    unknown = set(section) - set(_OPTIONS)
    if unknown:
        raise ConfigError(
            f"Unknown configuration keys: {', '.join(sorted(unknown))}",
            config_path=config_path,
        )

    values: Dict[str, Any] = {}
    for name, expected in _OPTIONS.items():
        if name not in section:
            continue
        val = section[name]
        if not isinstance(val, expected):
            raise ConfigError(
                f"{name} must be a {'boolean' if expected is bool else 'string'}, "
                f"got {type(val).__name__}",
                config_path=config_path,
                option=name,
            )
        if expected is str and not val.strip():
            raise ConfigError(
                f"{name} must not be empty",
                config_path=config_path,
                option=name,
            )
        values[name] = val

    return LockKeeperConfig(**values)
