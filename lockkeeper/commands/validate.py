"""Validate command implementation for lockkeeper.

Checks that a lockfile is self-consistent: every required edge, walked
with nearest-ancestor lookup, reaches a node whose version satisfies it.
This is the same check a clean install (``npm ci``) performs before it
touches ``node_modules``.

Typical usage::

    $ lockkeeper validate
    $ lockkeeper validate --lockfile other/package-lock.json --json

    # Report the old version as "expected" for edges a change broke
    $ lockkeeper validate --against package-lock.json.orig
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

import click

from lockkeeper.context import LockKeeperContext, pass_context
from lockkeeper.core import ValidationResult, Validator
from lockkeeper.exceptions import LockKeeperError
from lockkeeper.commands.common import lockfile_path, print_json, read_lockfile
from lockkeeper.utils import get_logger, print_error, print_success, print_warning

logger = get_logger("commands.validate")


@click.command()
@click.option(
    "--lockfile",
    "lockfile_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Lockfile to validate (defaults to the configured lockfile).",
)
@click.option(
    "--against",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Previous lockfile, used to report the version that went missing.",
)
@click.option(
    "--json",
    "as_json",
    is_flag=True,
    help="Print the report as JSON.",
)
@pass_context
def validate(
    ctx: LockKeeperContext,
    lockfile_file: Optional[Path],
    against: Optional[Path],
    as_json: bool,
) -> None:
    """Check that a lockfile would pass a clean install.

    Exits:
        0 if the lockfile is valid, 1 otherwise.
    """
    try:
        path = lockfile_file or lockfile_path(Path("."), ctx.get_config())
        graph = read_lockfile(path).to_graph()
        previous = read_lockfile(against).to_graph() if against else None

        result = Validator().validate(graph, previous)

        if as_json:
            print_json(result.to_json())
        else:
            _display_result(path, result)

        sys.exit(0 if result.ok else 1)

    except LockKeeperError as e:
        print_error(f"{e}")
        sys.exit(1)
    except Exception as e:
        print_error(f"Unexpected error: {e}")
        logger.exception("Error in validate command")
        sys.exit(1)


def _display_result(path: Path, result: ValidationResult) -> None:
    for message in result.messages:
        print_error(message)
    for warning in result.warnings:
        print_warning(warning)

    if result.ok:
        print_success(f"{path.name} is valid ({result.checked_edges} edges checked)")
    else:
        print_error(
            f"{path.name} is out of sync: {len(result.unresolved)} unresolved edge(s)"
        )
