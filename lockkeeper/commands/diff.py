"""Diff command implementation for lockkeeper.

Compares two lockfiles entry by entry, keyed by install location, and
reports additions, removals, version changes and flag changes.

Typical usage::

    $ lockkeeper diff package-lock.json.orig package-lock.json
    $ lockkeeper diff old.json new.json --json
"""

from __future__ import annotations

import sys
from pathlib import Path

import click

from lockkeeper.core import diff_lockfiles
from lockkeeper.exceptions import LockKeeperError
from lockkeeper.commands.common import display_diff, print_json, read_lockfile
from lockkeeper.utils import get_logger, print_error, print_success

logger = get_logger("commands.diff")


@click.command()
@click.argument("old", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("new", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--json",
    "as_json",
    is_flag=True,
    help="Print the diff as JSON.",
)
def diff(old: Path, new: Path, as_json: bool) -> None:
    """Show what changed between lockfiles OLD and NEW."""
    try:
        changes = diff_lockfiles(read_lockfile(old), read_lockfile(new))

        if as_json:
            print_json(changes.to_json())
        elif changes.is_empty:
            print_success("Lockfiles are identical")
        else:
            display_diff(changes, title=f"{old.name} -> {new.name}")
        sys.exit(0)

    except LockKeeperError as e:
        print_error(f"{e}")
        sys.exit(1)
