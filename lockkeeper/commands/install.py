"""Install command implementation for lockkeeper.

Resolves the root manifest and every workspace member into a complete
install tree and writes it as ``package-lock.json``.

When a lockfile already exists its versions and locations are reused
wherever they still satisfy the manifests, so re-running ``install`` on
an unchanged project produces a byte-identical lockfile.

Typical usage::

    # Resolve and write the lockfile
    $ lockkeeper install

    # Resolve offline against a registry snapshot
    $ lockkeeper install --registry-file registry.json

    # Ignore the existing lockfile and resolve from scratch
    $ lockkeeper install --fresh --dry-run
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import List, Optional, Tuple

import click

from lockkeeper.context import LockKeeperContext, pass_context
from lockkeeper.core import (
    BuildResult,
    GraphBuilder,
    LockfileDiff,
    ManifestLoader,
    Validator,
    diff_lockfiles,
)
from lockkeeper.exceptions import BrokenLockfile, LockKeeperError
from lockkeeper.models import Graph, Lockfile, WorkspaceManifests
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
)

logger = get_logger("commands.install")


@click.command()
@click.option(
    "--project-dir",
    "-C",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=".",
    help="Project directory containing package.json.",
)
@click.option(
    "--registry-file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Read package metadata from a JSON registry snapshot.",
)
@click.option(
    "--fresh",
    is_flag=True,
    help="Ignore the existing lockfile and resolve from scratch.",
)
@click.option(
    "--dry-run",
    is_flag=True,
    help="Show the lockfile diff without writing anything.",
)
@click.option(
    "--backup",
    is_flag=True,
    help="Create a backup of the existing lockfile before writing.",
)
@click.option(
    "--json",
    "as_json",
    is_flag=True,
    help="Print the result as JSON.",
)
@pass_context
def install(
    ctx: LockKeeperContext,
    project_dir: Path,
    registry_file: Optional[Path],
    fresh: bool,
    dry_run: bool,
    backup: bool,
    as_json: bool,
) -> None:
    """Resolve the workspace and write the lockfile.

    Exits:
        0 on success, 1 if resolution or validation failed.
    """
    try:
        _install(ctx, project_dir, registry_file, fresh, dry_run, backup, as_json)
        sys.exit(0)

    except BrokenLockfile as e:
        print_error("Resolved tree would not install cleanly")
        for unresolved in e.unresolved:
            print_error(unresolved.describe(), prefix="  ")
        sys.exit(1)
    except LockKeeperError as e:
        print_error(f"{e}")
        sys.exit(1)
    except Exception as e:
        print_error(f"Unexpected error: {e}")
        logger.exception("Error in install command")
        sys.exit(1)


def _install(
    ctx: LockKeeperContext,
    project_dir: Path,
    registry_file: Optional[Path],
    fresh: bool,
    dry_run: bool,
    backup: bool,
    as_json: bool,
) -> None:
    config = ctx.get_config()
    path = lockfile_path(project_dir, config)

    # ── Step 1: Manifests and the previous lockfile ───────────────────
    manifests = ManifestLoader().load(project_dir)

    previous: Optional[Lockfile] = None
    if path.is_file() and not fresh:
        previous = read_lockfile(path)
        logger.info("Reusing %s", path)
    previous_graph = previous.to_graph() if previous is not None else None

    # ── Step 2: Resolve ───────────────────────────────────────────────
    provider = build_provider(
        config,
        registry_file=registry_file,
        requests=_direct_requests(manifests),
        locked=previous_graph,
    )
    builder = GraphBuilder(provider, prefer_locked=config.prefer_locked)
    result = builder.build(manifests, previous=previous_graph)

    # ── Step 3: Validate ──────────────────────────────────────────────
    if config.validate_after_install:
        Validator().ensure_valid(result.graph, previous_graph)

    lockfile = Lockfile.from_graph(result.graph, previous)
    diff = diff_lockfiles(previous or Lockfile.from_graph(_empty_root(result)), lockfile)

    if as_json:
        print_json(_result_json(result, diff))
    else:
        _display_result(result, diff, dry_run)

    if dry_run:
        return
    if previous is not None and diff.is_empty:
        return

    # ── Step 4: Write ─────────────────────────────────────────────────
    backup_path = write_lockfile(path, lockfile, backup=backup)
    if backup_path:
        logger.info("Created backup: %s", backup_path)
    if not as_json:
        print_success(f"Wrote {path.name} ({len(result.graph)} entries)")


def _direct_requests(manifests: WorkspaceManifests) -> List[Tuple[str, str]]:
    """Registry requests declared by the root and its members.

    Workspace members are resolved locally and are not requested.
    """
    local = {manifest.name for manifest in manifests.all() if manifest.name}
    requests: List[Tuple[str, str]] = []
    for manifest in manifests.all():
        declared = list(manifest.dependencies.items()) + list(
            manifest.dev_dependencies.items()
        )
        for name, constraint in declared:
            if name not in local:
                requests.append((name, constraint))
        for name, peer in manifest.peer_dependencies.items():
            if name not in local and not peer.optional:
                requests.append((name, peer.constraint))
    return requests


def _empty_root(result: BuildResult) -> Graph:
    """Graph holding only the root node, the baseline for a first install."""
    return result.graph.evolve(
        remove=[node.location for node in result.graph if not node.is_root]
    )


def _display_result(result: BuildResult, diff: LockfileDiff, dry_run: bool) -> None:
    if diff.is_empty:
        print_success("Lockfile is up to date")
        return

    title = "Lockfile Changes (Dry Run)" if dry_run else "Lockfile Changes"
    display_diff(diff, title=title)

    sets = result.conflict_sets()
    if sets:
        print_info(f"{len(sets)} package(s) installed at more than one version")
    for warning in result.warnings:
        logger.info(warning)

    if dry_run:
        print_warning("Dry run mode - no changes applied")


def _result_json(result: BuildResult, diff: LockfileDiff) -> dict:
    return {
        "entries": len(result.graph),
        "diff": diff.to_json(),
        "conflicts": [conflict.to_json() for conflict in result.conflicts],
    }
