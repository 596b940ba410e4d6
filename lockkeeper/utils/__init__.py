"""
Utility helpers for lockkeeper.

This package provides reusable utilities used across lockkeeper, including:

- Console output helpers (Rich-based)
- Logging configuration and retrieval
- Filesystem safety helpers
- Async HTTP client utilities
- npm semver helpers

Only symbols listed in ``__all__`` are considered part of the public API.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Logging utilities
# ---------------------------------------------------------------------------

from lockkeeper.utils.logger import (
    disable_logging,
    get_logger,
    is_logging_configured,
    setup_logging,
)

# ---------------------------------------------------------------------------
# Filesystem utilities
# ---------------------------------------------------------------------------

from lockkeeper.utils.filesystem import (
    create_timestamped_backup,
    read_json_file,
    restore_backup,
    safe_read_file,
    safe_write_file,
)

# ---------------------------------------------------------------------------
# Console utilities
# ---------------------------------------------------------------------------

from lockkeeper.utils.console import (
    change_markup,
    colorize_update_type,
    print_change_table,
    print_error,
    print_info,
    print_success,
    print_warning,
    reconfigure_console,
)

# ---------------------------------------------------------------------------
# HTTP utilities
# ---------------------------------------------------------------------------

from lockkeeper.utils.http import HTTPClient

# ---------------------------------------------------------------------------
# Version utilities
# ---------------------------------------------------------------------------

from lockkeeper.utils.version_utils import (
    get_update_type,
    max_satisfying,
    satisfies,
)

# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

__all__ = [
    # Console
    "print_error",
    "print_info",
    "print_change_table",
    "print_success",
    "print_warning",
    "change_markup",
    "reconfigure_console",
    "colorize_update_type",
    # Logging
    "get_logger",
    "setup_logging",
    "disable_logging",
    "is_logging_configured",
    # Filesystem
    "safe_read_file",
    "safe_write_file",
    "read_json_file",
    "restore_backup",
    "create_timestamped_backup",
    # HTTP
    "HTTPClient",
    # Version utilities
    "get_update_type",
    "max_satisfying",
    "satisfies",
]
