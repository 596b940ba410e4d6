"""Helpers shared by the lockkeeper CLI commands.

Covers the pieces every command needs: locating and reading the
lockfile, assembling a metadata provider (registry snapshot file or the
npm registry), and rendering a lockfile diff.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

import click

from lockkeeper.config import LockKeeperConfig
from lockkeeper.core import (
    ChainedMetadataProvider,
    GraphMetadataProvider,
    LockfileDiff,
    MetadataProvider,
    NpmDataStore,
    StaticMetadataProvider,
)
from lockkeeper.models import Graph, Lockfile
from lockkeeper.utils import (
    HTTPClient,
    change_markup,
    colorize_update_type,
    get_logger,
    print_change_table,
    safe_read_file,
    safe_write_file,
)

logger = get_logger("commands.common")


def lockfile_path(project_dir: Path, config: LockKeeperConfig) -> Path:
    return project_dir / config.lockfile_name


def read_lockfile(path: Path) -> Lockfile:
    """Read and parse a lockfile.

    Raises:
        FileOperationError: The file cannot be read.
        ParseError: The content is not a supported lockfile.
    """
    return Lockfile.loads(safe_read_file(path), source=str(path))


def write_lockfile(path: Path, lockfile: Lockfile, *, backup: bool = False) -> Optional[Path]:
    """Atomically write ``lockfile``; return the backup path if one was made."""
    backup_path = safe_write_file(path, lockfile.dumps(), create_backup=backup)
    logger.info("Wrote %s", path)
    return backup_path


def build_provider(
    config: LockKeeperConfig,
    *,
    registry_file: Optional[Path],
    requests: Iterable[Tuple[str, str]],
    locked: Optional[Graph] = None,
) -> MetadataProvider:
    """Assemble the metadata provider for a command.

    Metadata comes from ``registry_file`` when given, otherwise from the
    registry in ``config`` (the closure of ``requests`` is fetched up
    front). With ``prefer_locked``, versions recorded in ``locked`` are
    consulted first.
    """
    if registry_file is not None:
        fetched: MetadataProvider = StaticMetadataProvider.from_file(registry_file)
    else:
        fetched = asyncio.run(_prefetch(config.registry_url, list(requests)))

    if config.prefer_locked and locked is not None:
        return ChainedMetadataProvider(GraphMetadataProvider(locked), fetched)
    return fetched


async def _prefetch(
    registry_url: str,
    requests: List[Tuple[str, str]],
) -> StaticMetadataProvider:
    logger.info("Fetching metadata for %d package(s) from %s", len(requests), registry_url)
    async with HTTPClient() as http:
        store = NpmDataStore(http, registry_url)
        return await store.prefetch_closure(requests)


def display_diff(diff: LockfileDiff, *, title: str) -> None:
    """Render a lockfile diff as a Rich table."""
    rows = []
    for kind, change in diff.all_changes():
        flags = ", ".join(
            f"{flag}: {before} -> {after}"
            for flag, (before, after) in change.flag_changes.items()
        )
        rows.append(
            {
                "Location": change.location or "(root)",
                "Change": change_markup(kind),
                "Old": change.old_version,
                "New": change.new_version,
                "Type": colorize_update_type(change.update_type),
                "Details": ", ".join(filter(None, [flags, ", ".join(change.fields)])),
            }
        )

    print_change_table(rows, title=title, summary=diff.summary())


def print_json(data: object) -> None:
    click.echo(json.dumps(data, indent=2))
