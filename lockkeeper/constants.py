"""
Centralized constants for lockkeeper.

This module defines immutable configuration values used across lockkeeper,
including registry settings, lockfile layout, configuration defaults and
logging formats. All values are intended to be treated as read-only.
"""

from typing import Final, Sequence

# ---------------------------------------------------------------------------
# Project metadata
# ---------------------------------------------------------------------------

#: HTTP User-Agent template used for outbound requests.
USER_AGENT_TEMPLATE: Final[str] = (
    "lockkeeper/{version}"
)

# ---------------------------------------------------------------------------
# npm registry
# ---------------------------------------------------------------------------

#: Default registry base URL. Packuments live at ``{registry}/{package}``.
DEFAULT_REGISTRY_URL: Final[str] = "https://registry.npmjs.org"

#: Accept header asking the registry for abbreviated packuments.
NPM_ABBREVIATED_ACCEPT: Final[str] = (
    "application/vnd.npm.install-v1+json; q=1.0, application/json; q=0.8"
)

# ---------------------------------------------------------------------------
# HTTP configuration
# ---------------------------------------------------------------------------

#: Default network timeout in seconds.
DEFAULT_TIMEOUT: Final[int] = 30

#: Maximum number of retries for failed HTTP requests.
DEFAULT_MAX_RETRIES: Final[int] = 3

# ---------------------------------------------------------------------------
# Manifest and lockfile layout
# ---------------------------------------------------------------------------

#: File name of a package manifest.
MANIFEST_FILE: Final[str] = "package.json"

#: Default lockfile name.
DEFAULT_LOCKFILE_NAME: Final[str] = "package-lock.json"

#: Lockfile format version written by lockkeeper.
LOCKFILE_VERSION: Final[int] = 3

#: Lockfile format versions that carry a flat ``packages`` map.
SUPPORTED_LOCKFILE_VERSIONS: Final[Sequence[int]] = (2, 3)

#: Directory segment separating install scopes in lockfile locations.
NODE_MODULES: Final[str] = "node_modules"

#: Spec prefixes that do not resolve through the registry.
NON_REGISTRY_PREFIXES: Final[Sequence[str]] = (
    "file:",
    "link:",
    "git:",
    "git+",
    "github:",
    "http:",
    "https:",
    "workspace:",
    "npm:",
)

# ---------------------------------------------------------------------------
# Configuration defaults
# ---------------------------------------------------------------------------

#: Reuse versions recorded in the existing lockfile when they still satisfy.
DEFAULT_PREFER_LOCKED: Final[bool] = True

#: Run the clean-install check after ``install``.
DEFAULT_VALIDATE_AFTER_INSTALL: Final[bool] = True

# ---------------------------------------------------------------------------
# Security constraints
# ---------------------------------------------------------------------------

#: Maximum allowed file size (in bytes) when reading manifests and lockfiles.
MAX_FILE_SIZE: Final[int] = 50 * 1024 * 1024  # 50 MB

# ---------------------------------------------------------------------------
# Logging configuration
# ---------------------------------------------------------------------------

#: Timestamp format for verbose logging.
LOG_DATE_FORMAT: Final[str] = "%Y-%m-%d %H:%M:%S"

#: Default log format (non-verbose).
LOG_DEFAULT_FORMAT: Final[str] = "%(levelname)s: %(message)s"

#: Verbose log format including timestamp and logger name.
LOG_VERBOSE_FORMAT: Final[str] = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
