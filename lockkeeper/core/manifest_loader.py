"""
Manifest loader for lockkeeper.

This module reads the root ``package.json`` of a project together with
the manifests of its workspace members and returns them as a
:class:`~lockkeeper.models.manifest.WorkspaceManifests`.

Supported workspace declarations:

- ``"workspaces": ["packages/*", "apps/web"]``
- ``"workspaces": {"packages": ["packages/*"]}``
- Negated patterns (``"!packages/legacy"``) exclude matching members.

Dependency constraints must resolve through the registry. Local paths,
git URLs, tarball URLs and ``workspace:`` protocols are rejected with a
:exc:`~lockkeeper.exceptions.ParseError` that names the file and field.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from lockkeeper.constants import MANIFEST_FILE
from lockkeeper.exceptions import ParseError
from lockkeeper.models.manifest import Manifest, WorkspaceManifests
from lockkeeper.utils.filesystem import read_json_file
from lockkeeper.utils.logger import get_logger
from lockkeeper.utils.version_utils import is_registry_constraint

__all__ = ["ManifestLoader", "load_workspace"]

_DEPENDENCY_FIELDS = ("dependencies", "devDependencies", "peerDependencies")


class ManifestLoader:
    """Load a root manifest and its workspace members.

    Example:
        >>> loader = ManifestLoader()
        >>> manifests = loader.load("path/to/project")
        >>> [m.location for m in manifests.all()]
        ['', 'packages/a', 'packages/b']
    """

    def __init__(self) -> None:
        self.logger: logging.Logger = get_logger("manifest_loader")

    def load(self, project_dir: Union[str, Path]) -> WorkspaceManifests:
        """Load ``project_dir/package.json`` and every workspace member.

        Raises:
            FileOperationError: The root manifest cannot be read.
            ParseError: A manifest is malformed, a workspace pattern
                escapes the project, or a constraint is not a registry
                range.
        """
        root_dir = Path(project_dir).resolve()
        root = self.load_manifest(root_dir / MANIFEST_FILE, location="")

        members: Dict[str, Manifest] = {}
        for member_dir in self._expand_workspaces(root_dir, root.workspaces):
            location = member_dir.relative_to(root_dir).as_posix()
            manifest_path = member_dir / MANIFEST_FILE
            if not manifest_path.is_file():
                self.logger.debug("Skipping %s: no %s", location, MANIFEST_FILE)
                continue
            members[location] = self.load_manifest(manifest_path, location=location)

        names: Dict[str, str] = {}
        for location, manifest in members.items():
            if not manifest.name:
                raise ParseError(
                    "Workspace member has no 'name'",
                    file_path=manifest.source,
                    field="name",
                )
            if manifest.name in names:
                raise ParseError(
                    f"Workspace name {manifest.name!r} is used by both "
                    f"{names[manifest.name]} and {location}",
                    file_path=manifest.source,
                    field="name",
                    value=manifest.name,
                )
            names[manifest.name] = location

        self.logger.debug(
            "Loaded root manifest with %d workspace member(s)", len(members)
        )
        return WorkspaceManifests(root=root, members=members)

    def load_manifest(self, path: Union[str, Path], *, location: str) -> Manifest:
        """Load a single ``package.json`` as the manifest at ``location``."""
        data = read_json_file(path)
        if not isinstance(data, dict):
            raise ParseError("Manifest must be a JSON object", file_path=str(path))
        return self.parse_manifest(data, location=location, source=str(path))

    def parse_manifest(
        self,
        data: Mapping[str, Any],
        *,
        location: str,
        source: Optional[str] = None,
    ) -> Manifest:
        """Validate parsed manifest content and build a :class:`Manifest`."""
        for field_name in _DEPENDENCY_FIELDS:
            deps = data.get(field_name) or {}
            if not isinstance(deps, dict):
                raise ParseError(
                    f"'{field_name}' must be an object",
                    file_path=source,
                    field=field_name,
                )
            for name, constraint in deps.items():
                if not isinstance(constraint, str) or not is_registry_constraint(
                    constraint
                ):
                    raise ParseError(
                        f"Unsupported version constraint for {name}: {constraint!r}",
                        file_path=source,
                        field=f"{field_name}.{name}",
                        value=str(constraint),
                    )

        return Manifest.from_json(location, data, source=source)

    # ------------------------------------------------------------------
    # Workspace expansion
    # ------------------------------------------------------------------

    def _expand_workspaces(self, root_dir: Path, patterns: List[str]) -> List[Path]:
        included: Dict[str, Path] = {}
        excluded = set()

        for pattern in patterns:
            negated = pattern.startswith("!")
            cleaned = pattern.lstrip("!").strip().rstrip("/")
            if cleaned.startswith("./"):
                cleaned = cleaned[2:]
            if not cleaned or cleaned.startswith("/") or ".." in Path(cleaned).parts:
                raise ParseError(
                    f"Workspace pattern escapes the project: {pattern!r}",
                    file_path=str(root_dir / MANIFEST_FILE),
                    field="workspaces",
                    value=pattern,
                )

            matches = sorted(p for p in root_dir.glob(cleaned) if p.is_dir())
            if not matches and not negated:
                self.logger.warning("Workspace pattern %r matched nothing", pattern)

            for match in matches:
                key = match.relative_to(root_dir).as_posix()
                if negated:
                    excluded.add(key)
                else:
                    included[key] = match

        return [path for key, path in sorted(included.items()) if key not in excluded]


def load_workspace(project_dir: Union[str, Path]) -> WorkspaceManifests:
    """Shortcut for ``ManifestLoader().load(project_dir)``."""
    return ManifestLoader().load(project_dir)
