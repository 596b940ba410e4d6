"""
Lockfile data model for lockkeeper.

This module reads, writes and converts ``package-lock.json`` files
(lockfileVersion 2 and 3, which carry the flat ``packages`` map).

Serialization is stable: an entry whose content did not change is written
back exactly as it was read (same keys, same key order), surviving
locations keep their relative order, and new locations are inserted at
their sorted position. Re-serializing an unchanged graph therefore yields
byte-identical output.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, Optional

from lockkeeper.constants import LOCKFILE_VERSION, SUPPORTED_LOCKFILE_VERSIONS
from lockkeeper.exceptions import ParseError
from lockkeeper.models.graph import (
    Graph,
    InstallNode,
    NodeFlags,
    _last_segment,
    name_from_location,
)
from lockkeeper.models.package import Package

__all__ = ["LockEntry", "Lockfile", "location_sort_key"]

# Keys emitted before the dependency maps, in npm's order.
_HEAD_KEYS = ("name", "version", "resolved", "integrity", "link", "dev", "optional", "peer")
_EXTRA_BEFORE_DEPS = ("inBundle", "hasInstallScript", "hasShrinkwrap", "license")
_KNOWN_KEYS = set(_HEAD_KEYS) | {
    "workspaces",
    "dependencies",
    "devDependencies",
    "peerDependencies",
    "peerDependenciesMeta",
}


def location_sort_key(location: str) -> tuple:
    """Sort key approximating npm's ``localeCompare`` ordering of locations."""
    return (location != "", location.lower(), location)


@dataclass(frozen=True)
class LockEntry:
    """One entry of the lockfile ``packages`` map.

    Attributes:
        version: Locked version (empty for a versionless root).
        name: Package name, recorded for the root and workspace members.
        resolved: Tarball URL, or the target directory for links.
        integrity: Integrity hash.
        link: ``True`` for workspace symlinks.
        dev: Only reachable through dev dependencies.
        optional: Only reachable through optional edges.
        peer: Only reachable through peer edges.
        dependencies: Runtime dependencies.
        dev_dependencies: Dev dependencies.
        peer_dependencies: Peer dependency constraints.
        peer_dependencies_meta: ``peerDependenciesMeta`` map.
        workspaces: Workspace globs (root only).
        extra: Any other keys, carried through unchanged.
        raw: The mapping this entry was read from, used verbatim on output.
    """

    version: str = ""
    name: Optional[str] = None
    resolved: Optional[str] = None
    integrity: Optional[str] = None
    link: bool = False
    dev: bool = False
    optional: bool = False
    peer: bool = False
    dependencies: Mapping[str, str] = field(default_factory=dict)
    dev_dependencies: Mapping[str, str] = field(default_factory=dict)
    peer_dependencies: Mapping[str, str] = field(default_factory=dict)
    peer_dependencies_meta: Mapping[str, Any] = field(default_factory=dict)
    workspaces: List[str] = field(default_factory=list)
    extra: Mapping[str, Any] = field(default_factory=dict)
    raw: Optional[Mapping[str, Any]] = field(default=None, compare=False, repr=False)

    @property
    def flags(self) -> NodeFlags:
        return NodeFlags(dev=self.dev, optional=self.optional, peer=self.peer)

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> "LockEntry":
        return cls(
            version=str(data.get("version") or ""),
            name=data.get("name"),
            resolved=data.get("resolved"),
            integrity=data.get("integrity"),
            link=bool(data.get("link", False)),
            dev=bool(data.get("dev", False)),
            optional=bool(data.get("optional", False)),
            peer=bool(data.get("peer", False)),
            dependencies=dict(data.get("dependencies") or {}),
            dev_dependencies=dict(data.get("devDependencies") or {}),
            peer_dependencies=dict(data.get("peerDependencies") or {}),
            peer_dependencies_meta=dict(data.get("peerDependenciesMeta") or {}),
            workspaces=list(data.get("workspaces") or []),
            extra={k: v for k, v in data.items() if k not in _KNOWN_KEYS},
            raw=data,
        )

    def to_json(self) -> Dict[str, Any]:
        """Return the JSON mapping, reusing the original one when unchanged."""
        if self.raw is not None:
            return dict(self.raw)

        entry: Dict[str, Any] = {}
        if self.name:
            entry["name"] = self.name
        if self.version:
            entry["version"] = self.version
        if self.resolved:
            entry["resolved"] = self.resolved
        if self.integrity:
            entry["integrity"] = self.integrity
        if self.link:
            entry["link"] = True
        if self.dev:
            entry["dev"] = True
        if self.optional:
            entry["optional"] = True
        if self.peer:
            entry["peer"] = True
        for key in _EXTRA_BEFORE_DEPS:
            if key in self.extra:
                entry[key] = self.extra[key]
        if self.workspaces:
            entry["workspaces"] = list(self.workspaces)
        if self.dependencies:
            entry["dependencies"] = dict(self.dependencies)
        if self.dev_dependencies:
            entry["devDependencies"] = dict(self.dev_dependencies)
        if self.peer_dependencies:
            entry["peerDependencies"] = dict(self.peer_dependencies)
        if self.peer_dependencies_meta:
            entry["peerDependenciesMeta"] = dict(self.peer_dependencies_meta)
        for key, value in self.extra.items():
            if key not in entry:
                entry[key] = value
        return entry

    def to_package(self, location: str) -> Package:
        """Convert to the :class:`Package` installed at ``location``."""
        name = self.name or name_from_location(location)
        data: Dict[str, Any] = {
            "dependencies": self.dependencies,
            "devDependencies": self.dev_dependencies,
            "peerDependencies": self.peer_dependencies,
            "peerDependenciesMeta": self.peer_dependencies_meta,
            "resolved": self.resolved,
            "integrity": self.integrity,
        }
        package = Package.from_json(name, self.version, data)
        return replace(package, extra=dict(self.extra))

    @classmethod
    def from_node(
        cls,
        node: InstallNode,
        flags: NodeFlags,
        *,
        workspaces: Optional[List[str]] = None,
    ) -> "LockEntry":
        """Build the entry recorded for ``node``."""
        pkg = node.package
        if node.is_link:
            return cls(resolved=node.link, link=True, extra=dict(pkg.extra))

        peer_meta = {
            name: {"optional": True}
            for name, peer in pkg.peer_dependencies.items()
            if peer.optional
        }
        return cls(
            version=pkg.version,
            name=pkg.name if node.workspace and pkg.name else None,
            resolved=None if node.workspace else pkg.resolved,
            integrity=None if node.workspace else pkg.integrity,
            dev=flags.dev,
            optional=flags.optional,
            peer=flags.peer,
            dependencies=dict(pkg.dependencies),
            dev_dependencies=dict(pkg.dev_dependencies) if node.workspace else {},
            peer_dependencies={
                name: peer.constraint for name, peer in pkg.peer_dependencies.items()
            },
            peer_dependencies_meta=peer_meta,
            workspaces=list(workspaces or []),
            extra=dict(pkg.extra),
        )


@dataclass(frozen=True)
class Lockfile:
    """A parsed ``package-lock.json``.

    Attributes:
        name: Project name.
        version: Project version.
        lockfile_version: Format version (2 or 3).
        packages: Location -> :class:`LockEntry`, in file order.
        requires: Value of the top-level ``requires`` flag.
        source: Path the lockfile was read from, if any.
    """

    name: str
    version: str
    packages: Mapping[str, LockEntry]
    lockfile_version: int = LOCKFILE_VERSION
    requires: bool = True
    source: Optional[str] = field(default=None, compare=False)

    # ------------------------------------------------------------------
    # Parsing & serialization
    # ------------------------------------------------------------------

    @classmethod
    def from_json(cls, data: Mapping[str, Any], *, source: Optional[str] = None) -> "Lockfile":
        """Build a lockfile from parsed JSON.

        Raises:
            ParseError: Unsupported ``lockfileVersion`` or missing
                ``packages`` map.
        """
        lockfile_version = data.get("lockfileVersion", 1)
        if lockfile_version not in SUPPORTED_LOCKFILE_VERSIONS:
            raise ParseError(
                f"Unsupported lockfileVersion {lockfile_version}; "
                "regenerate the lockfile with npm 7 or newer",
                file_path=source,
                field="lockfileVersion",
            )

        packages = data.get("packages")
        if not isinstance(packages, dict) or "" not in packages:
            raise ParseError(
                "Lockfile has no 'packages' map with a root entry",
                file_path=source,
                field="packages",
            )

        entries: Dict[str, LockEntry] = {}
        for location, entry in packages.items():
            if not isinstance(entry, dict):
                raise ParseError(
                    f"Lockfile entry for {location!r} is not an object",
                    file_path=source,
                    field=location,
                )
            entries[location] = LockEntry.from_json(entry)

        root = entries[""]
        return cls(
            name=str(data.get("name") or root.name or ""),
            version=str(data.get("version") or root.version or ""),
            packages=entries,
            lockfile_version=int(lockfile_version),
            requires=bool(data.get("requires", True)),
            source=source,
        )

    @classmethod
    def loads(cls, text: str, *, source: Optional[str] = None) -> "Lockfile":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ParseError(
                f"Invalid JSON in lockfile: {exc}", file_path=source
            ) from exc
        if not isinstance(data, dict):
            raise ParseError("Lockfile must be a JSON object", file_path=source)
        return cls.from_json(data, source=source)

    def to_json(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"name": self.name}
        if self.version:
            data["version"] = self.version
        data["lockfileVersion"] = self.lockfile_version
        data["requires"] = self.requires
        data["packages"] = {loc: entry.to_json() for loc, entry in self.packages.items()}
        return data

    def dumps(self) -> str:
        """Serialize with npm's formatting (two-space indent, trailing newline)."""
        return json.dumps(self.to_json(), indent=2, ensure_ascii=False) + "\n"

    # ------------------------------------------------------------------
    # Graph conversion
    # ------------------------------------------------------------------

    def to_graph(self) -> Graph:
        """Rebuild the typed install graph recorded in this lockfile."""
        nodes: Dict[str, InstallNode] = {}
        link_names: Dict[str, str] = {
            entry.resolved: name_from_location(location)
            for location, entry in self.packages.items()
            if entry.link and entry.resolved
        }

        for location, entry in self.packages.items():
            if entry.link:
                target = self.packages.get(entry.resolved or "")
                package = Package(
                    name=name_from_location(location),
                    version=target.version if target else "",
                    resolved=entry.resolved,
                    extra=dict(entry.extra),
                )
                nodes[location] = InstallNode(location, package, link=entry.resolved)
                continue

            workspace = location == "" or _last_segment(location) == -1
            if workspace and not entry.name:
                name = self.name if location == "" else link_names.get(location, "")
                entry = replace(entry, name=name or name_from_location(location))
            nodes[location] = InstallNode(
                location, entry.to_package(location), workspace=workspace
            )

        return Graph(nodes)

    @classmethod
    def from_graph(cls, graph: Graph, previous: Optional["Lockfile"] = None) -> "Lockfile":
        """Serialize ``graph``, reusing ``previous`` entries that did not change."""
        flags = graph.flags()
        root_workspaces: List[str] = []
        if previous is not None and "" in previous.packages:
            root_workspaces = list(previous.packages[""].workspaces)
        elif graph.workspaces:
            root_workspaces = sorted(node.location for node in graph.workspaces)

        fresh: Dict[str, LockEntry] = {}
        for location, node in graph.nodes.items():
            entry = LockEntry.from_node(
                node,
                flags[location],
                workspaces=root_workspaces if location == "" else None,
            )
            if previous is not None:
                old = previous.packages.get(location)
                if old is not None and _same_entry(old, entry):
                    entry = old
            fresh[location] = entry

        previous_order = list(previous.packages) if previous is not None else []
        ordered = _order_locations(list(fresh), previous_order)

        root = graph.root.package
        return cls(
            name=root.name or (previous.name if previous else ""),
            version=root.version,
            packages={loc: fresh[loc] for loc in ordered},
            lockfile_version=previous.lockfile_version if previous else LOCKFILE_VERSION,
            requires=previous.requires if previous else True,
        )


def _same_entry(old: LockEntry, new: LockEntry) -> bool:
    """Compare entries, ignoring fields lockkeeper does not model for links."""
    if old.link and new.link:
        return old.resolved == new.resolved
    # A root entry without a recorded name still describes the same project
    return replace(old, raw=None, name=old.name or new.name) == new


def _order_locations(locations: List[str], previous_order: List[str]) -> List[str]:
    """Keep the previous relative order and insert new locations sorted."""
    present = set(locations)
    ordered = [loc for loc in previous_order if loc in present]
    known = set(ordered)

    for loc in sorted((l for l in locations if l not in known), key=location_sort_key):
        key = location_sort_key(loc)
        index = len(ordered)
        for i, existing in enumerate(ordered):
            if location_sort_key(existing) > key:
                index = i
                break
        ordered.insert(index, loc)
    return ordered
