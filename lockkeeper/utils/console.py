"""
Console output for the lockkeeper CLI, rendered with Rich.

Status lines (``[OK]``, ``[ERROR]``, ``[WARNING]``) and the lockfile
change table go through a single lazily created :class:`Console`.
Diagnostics belong in :mod:`lockkeeper.utils.logger` instead.
"""

from __future__ import annotations

import os
import sys
from typing import Dict, List, Optional

from rich.table import Table
from rich.theme import Theme
from rich.console import Console

LOCKKEEPER_THEME = Theme(
    {
        "success": "bold green",
        "error": "bold red",
        "warning": "bold yellow",
        "info": "bold cyan",
        "dim": "dim",
        "added": "green",
        "removed": "red",
        "changed": "yellow",
    }
)

#: Columns of the change table, with their Rich column options.
CHANGE_COLUMNS: Dict[str, Dict[str, str]] = {
    "Location": {"style": "bold cyan", "overflow": "fold"},
    "Change": {"justify": "center"},
    "Old": {"justify": "center", "style": "dim"},
    "New": {"justify": "center"},
    "Type": {"justify": "center"},
    "Details": {"justify": "left", "overflow": "fold"},
}

_UPDATE_TYPE_COLORS: Dict[str, str] = {
    "major": "red",
    "minor": "yellow",
    "patch": "green",
    "new": "cyan",
    "removed": "red",
    "downgrade": "red",
    "update": "yellow",
}

_console: Optional[Console] = None


def _should_use_color() -> bool:
    """Return True if colored output should be enabled."""
    if os.environ.get("NO_COLOR") or os.environ.get("CI"):
        return False
    try:
        return sys.stdout.isatty()
    except (AttributeError, OSError):
        return False


def _get_console() -> Console:
    global _console
    if _console is None:
        _console = Console(
            theme=LOCKKEEPER_THEME,
            no_color=not _should_use_color(),
            highlight=False,
        )
    return _console


def reconfigure_console() -> None:
    """Drop the console so the next print re-reads ``NO_COLOR``/``CI``."""
    global _console
    _console = None


def print_success(message: str, *, prefix: str = "[OK]") -> None:
    _get_console().print(f"{prefix} {message}", style="success", markup=False)


def print_error(message: str, *, prefix: str = "[ERROR]") -> None:
    _get_console().print(f"{prefix} {message}", style="error", markup=False)


def print_warning(message: str, *, prefix: str = "[WARNING]") -> None:
    _get_console().print(f"{prefix} {message}", style="warning", markup=False)


def print_info(message: str) -> None:
    _get_console().print(message, style="info", markup=False)


def print_change_table(
    rows: List[Dict[str, Optional[str]]],
    *,
    title: Optional[str] = None,
    summary: Optional[str] = None,
) -> None:
    """Render lockfile changes, one row per location.

    Args:
        rows: Dicts keyed by the :data:`CHANGE_COLUMNS` headers. Values may
            carry Rich markup. Missing cells print as ``-``.
        title: Table title.
        summary: Line printed under the table, e.g. ``"1 added, 0 removed,
            3 changed"``.
    """
    if not rows:
        return

    table = Table(title=title, show_header=True, header_style="bold")
    for header, options in CHANGE_COLUMNS.items():
        table.add_column(header, **options)  # type: ignore[arg-type]
    for row in rows:
        table.add_row(*(row.get(header) or "-" for header in CHANGE_COLUMNS))

    console = _get_console()
    console.print(table)
    if summary:
        console.print(summary, style="dim", markup=False)


def change_markup(kind: str) -> str:
    """Wrap an ``added``/``removed``/``changed`` label in its theme style."""
    return f"[{kind}]{kind}[/{kind}]"


def colorize_update_type(update_type: str) -> str:
    """Return ``update_type`` as Rich markup (plain when it has no color).

    Examples:
        >>> colorize_update_type("major")
        '[red]major[/red]'
        >>> colorize_update_type("same")
        'same'
    """
    color = _UPDATE_TYPE_COLORS.get(update_type.lower())
    return f"[{color}]{update_type}[/{color}]" if color else update_type
