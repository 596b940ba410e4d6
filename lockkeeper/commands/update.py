"""Update command implementation for lockkeeper.

Bumps one dependency of one workspace member and rewrites the lockfile
with the smallest change that keeps it installable.

The command is built from the same core components as ``install``:

1. **Lockfile** — the current tree, read from ``package-lock.json``
2. **Metadata provider** — locked versions first, then a registry
   snapshot (``--registry-file``) or the npm registry
3. **PartialUpdater** — re-resolves only what the bump can affect and
   validates the result before it is accepted

Nothing is written when validation fails.

Typical usage::

    # Bump a dependency of one workspace member
    $ lockkeeper update @aws-sdk/client-dynamodb 3.700.0 -w packages/api

    # Preview the lockfile diff without writing anything
    $ lockkeeper update chokidar ^4.0.3 -w web --dry-run
"""

from __future__ import annotations

import sys
import json
from pathlib import Path
from typing import Optional

import click

from lockkeeper.context import LockKeeperContext, pass_context
from lockkeeper.core import PartialUpdater, UpdateResult
from lockkeeper.core.updater import bump_constraint, find_workspace
from lockkeeper.constants import MANIFEST_FILE
from lockkeeper.exceptions import BrokenLockfile, LockKeeperError, ParseError
from lockkeeper.commands.common import (
    build_provider,
    display_diff,
    lockfile_path,
    print_json,
    read_lockfile,
    write_lockfile,
)
from lockkeeper.utils import (
    get_logger,
    print_error,
    print_info,
    print_success,
    print_warning,
    read_json_file,
    safe_write_file,
)

logger = get_logger("commands.update")


@click.command()
@click.argument("package")
@click.argument("version")
@click.option(
    "--workspace",
    "-w",
    default="",
    help="Workspace member (location or package name). Defaults to the root.",
)
@click.option(
    "--project-dir",
    "-C",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=".",
    help="Project directory containing package.json and the lockfile.",
)
@click.option(
    "--registry-file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Read package metadata from a JSON registry snapshot.",
)
@click.option(
    "--dry-run",
    is_flag=True,
    help="Show the lockfile diff without writing anything.",
)
@click.option(
    "--backup",
    is_flag=True,
    help="Create backup files before writing.",
)
@click.option(
    "--json",
    "as_json",
    is_flag=True,
    help="Print the result as JSON.",
)
@pass_context
def update(
    ctx: LockKeeperContext,
    package: str,
    version: str,
    workspace: str,
    project_dir: Path,
    registry_file: Optional[Path],
    dry_run: bool,
    backup: bool,
    as_json: bool,
) -> None:
    """Bump PACKAGE to VERSION in one workspace member.

    VERSION may be a bare version (the existing ``^``/``~`` operator is
    kept) or a full npm range.

    Exits:
        0 if the lockfile was updated (or is already up to date),
        1 if the update was rejected or an error occurred.
    """
    try:
        _update(ctx, package, version, workspace, project_dir, registry_file, dry_run, backup, as_json)
        sys.exit(0)

    except BrokenLockfile as e:
        print_error("Update rejected: the resulting lockfile would not install")
        for unresolved in e.unresolved:
            print_error(unresolved.describe(), prefix="  ")
        sys.exit(1)
    except LockKeeperError as e:
        print_error(f"{e}")
        sys.exit(1)
    except Exception as e:
        print_error(f"Unexpected error: {e}")
        logger.exception("Error in update command")
        sys.exit(1)


def _update(
    ctx: LockKeeperContext,
    package: str,
    version: str,
    workspace: str,
    project_dir: Path,
    registry_file: Optional[Path],
    dry_run: bool,
    backup: bool,
    as_json: bool,
) -> None:
    config = ctx.get_config()
    path = lockfile_path(project_dir, config)

    # ── Step 1: Read the current tree ─────────────────────────────────
    lockfile = read_lockfile(path)
    graph = lockfile.to_graph()

    member = find_workspace(graph, workspace)
    declared = member.package.dependencies.get(package) or member.package.dev_dependencies.get(
        package
    )
    constraint = bump_constraint(declared or "", version)

    # ── Step 2: Metadata ──────────────────────────────────────────────
    provider = build_provider(
        config,
        registry_file=registry_file,
        requests=[(package, constraint)],
        locked=graph,
    )

    # ── Step 3: Partial update (validated) ────────────────────────────
    result = PartialUpdater(provider).update(
        graph, package, member.location, version, lockfile=lockfile
    )

    if as_json:
        print_json(_result_json(result))
    else:
        _display_result(result, dry_run)

    if dry_run or not result.changed:
        return

    # ── Step 4: Write manifest and lockfile ───────────────────────────
    _write_manifest(project_dir, result, backup=backup)
    backup_path = write_lockfile(path, result.lockfile, backup=backup)
    if backup_path:
        logger.info("Created backup: %s", backup_path)

    if not as_json:
        print_success(f"Updated {path.name}: {result.diff.summary()}")


def _display_result(result: UpdateResult, dry_run: bool) -> None:
    where = result.workspace or "(root)"
    print_info(
        f"{result.package_name} in {where}: "
        f"{result.old_constraint} -> {result.new_constraint}"
    )

    if not result.changed:
        print_success("Lockfile already satisfies the new constraint")
        return

    title = "Lockfile Changes (Dry Run)" if dry_run else "Lockfile Changes"
    display_diff(result.diff, title=title)

    for decision in result.retained:
        logger.info("Kept %s: %s", decision.location, decision.detail)
    for location in result.removed:
        logger.info("Removed %s", location)
    for warning in result.warnings:
        print_warning(warning)

    if dry_run:
        print_warning("Dry run mode - no changes applied")


def _result_json(result: UpdateResult) -> dict:
    return {
        "package": result.package_name,
        "workspace": result.workspace,
        "old_constraint": result.old_constraint,
        "new_constraint": result.new_constraint,
        "diff": result.diff.to_json(),
        "removed": result.removed,
        "retained": [decision.to_json() for decision in result.retained],
        "warnings": result.warnings,
    }


def _write_manifest(project_dir: Path, result: UpdateResult, *, backup: bool) -> None:
    """Write the bumped constraint into the member's ``package.json``."""
    manifest_path = project_dir / result.workspace / MANIFEST_FILE
    data = read_json_file(manifest_path)
    if not isinstance(data, dict):
        raise ParseError("Manifest must be a JSON object", file_path=str(manifest_path))

    for field_name in ("dependencies", "devDependencies"):
        deps = data.get(field_name)
        if isinstance(deps, dict) and result.package_name in deps:
            deps[result.package_name] = result.new_constraint
            break
    else:
        raise ParseError(
            f"{manifest_path} does not declare {result.package_name}",
            file_path=str(manifest_path),
            field="dependencies",
        )

    content = json.dumps(data, indent=2, ensure_ascii=False) + "\n"
    safe_write_file(manifest_path, content, create_backup=backup)
    logger.info("Wrote %s", manifest_path)
