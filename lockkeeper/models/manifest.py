"""
Manifest data model for lockkeeper.

This module defines a structured representation of a ``package.json``
file, as used for the project root and for each workspace member.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, Optional

from lockkeeper.models.package import Package, PeerDependency


@dataclass(frozen=True)
class Manifest:
    """
    Represents one ``package.json``.

    Attributes:
        location: Directory relative to the project root (``""`` for the
            root manifest, ``packages/app`` for a workspace member). This is
            also the node's location in the lockfile.
        name: Package name (may be empty for a private root).
        version: Declared version (may be empty).
        dependencies: Runtime dependencies.
        dev_dependencies: Dev dependencies.
        peer_dependencies: Peer dependencies with their optional flag.
        workspaces: Workspace glob patterns (root manifest only).
        source: Path of the file the manifest was read from, if any.
    """

    location: str
    name: str = ""
    version: str = ""
    dependencies: Mapping[str, str] = field(default_factory=dict)
    dev_dependencies: Mapping[str, str] = field(default_factory=dict)
    peer_dependencies: Mapping[str, PeerDependency] = field(default_factory=dict)
    workspaces: List[str] = field(default_factory=list)
    source: Optional[str] = field(default=None, compare=False)

    @property
    def is_root(self) -> bool:
        return self.location == ""

    def declared_constraint(self, name: str) -> Optional[str]:
        """Return the constraint this manifest declares for ``name``."""
        if name in self.dependencies:
            return self.dependencies[name]
        if name in self.dev_dependencies:
            return self.dev_dependencies[name]
        if name in self.peer_dependencies:
            return self.peer_dependencies[name].constraint
        return None

    def with_constraint(self, name: str, constraint: str) -> "Manifest":
        """Return a copy with the declared constraint for ``name`` replaced.

        Runtime declarations take precedence over dev declarations, the
        same order npm uses when both exist.
        """
        if name in self.dependencies:
            deps = dict(self.dependencies)
            deps[name] = constraint
            return replace(self, dependencies=deps)
        if name in self.dev_dependencies:
            deps = dict(self.dev_dependencies)
            deps[name] = constraint
            return replace(self, dev_dependencies=deps)
        raise KeyError(name)

    def to_package(self) -> Package:
        """Convert to the :class:`Package` installed at this location."""
        return Package(
            name=self.name,
            version=self.version,
            dependencies=dict(self.dependencies),
            peer_dependencies=dict(self.peer_dependencies),
            dev_dependencies=dict(self.dev_dependencies),
        )

    @classmethod
    def from_json(
        cls,
        location: str,
        data: Mapping[str, Any],
        *,
        source: Optional[str] = None,
    ) -> "Manifest":
        """Build a manifest from parsed ``package.json`` content."""
        package = Package.from_json(
            str(data.get("name") or ""), str(data.get("version") or ""), data
        )

        workspaces = data.get("workspaces") or []
        if isinstance(workspaces, dict):
            workspaces = workspaces.get("packages") or []

        return cls(
            location=location,
            name=package.name,
            version=package.version,
            dependencies=dict(package.dependencies),
            dev_dependencies=dict(package.dev_dependencies),
            peer_dependencies=dict(package.peer_dependencies),
            workspaces=[str(pattern) for pattern in workspaces],
            source=source,
        )


@dataclass(frozen=True)
class WorkspaceManifests:
    """The root manifest together with its workspace members.

    Attributes:
        root: Root ``package.json``.
        members: Workspace members keyed by location.
    """

    root: Manifest
    members: Mapping[str, Manifest] = field(default_factory=dict)

    def all(self) -> List[Manifest]:
        """Root first, then members in location order."""
        return [self.root] + [self.members[loc] for loc in sorted(self.members)]

    def find_member(self, selector: str) -> Manifest:
        """Find a member by location or package name.

        ``""``, ``"."`` and the root's own name select the root manifest.

        Raises:
            KeyError: No member matches ``selector``.
        """
        if selector in ("", ".") or (self.root.name and selector == self.root.name):
            return self.root
        normalized = selector.strip("/").removeprefix("./")
        if normalized in self.members:
            return self.members[normalized]
        for manifest in self.members.values():
            if manifest.name == selector:
                return manifest
        raise KeyError(selector)

    def by_location(self) -> Dict[str, Manifest]:
        result = {"": self.root}
        result.update(self.members)
        return result
