"""
Package data model for lockkeeper.

This module defines the metadata of a single published npm package
version: its identity, its declared runtime, peer and dev dependencies,
and the source/integrity information recorded in a lockfile.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Mapping, Optional, Tuple

from lockkeeper.utils.version_utils import parse_version


@dataclass(frozen=True)
class PeerDependency:
    """A peer dependency declaration.

    Attributes:
        constraint: npm range the consumer environment must provide.
        optional: ``True`` when ``peerDependenciesMeta`` marks it optional.
    """

    constraint: str
    optional: bool = False


@dataclass(frozen=True)
class Package:
    """
    Represents one version of an npm package.

    Instances are immutable so they can be shared between graph
    snapshots.

    Attributes:
        name: Package name, including its scope (``@aws-sdk/client-dynamodb``).
        version: Exact version string.
        dependencies: Runtime dependencies (``name -> constraint``).
        peer_dependencies: Peer dependencies (``name -> PeerDependency``).
        dev_dependencies: Dev dependencies; only honored on the project root
            and on workspace members.
        resolved: Tarball URL (or workspace path) the version came from.
        integrity: Subresource-integrity hash of the tarball.
        extra: Additional lockfile fields carried through unchanged
            (``license``, ``engines``, ``bin``, ...).
    """

    name: str
    version: str
    dependencies: Mapping[str, str] = field(default_factory=dict)
    peer_dependencies: Mapping[str, PeerDependency] = field(default_factory=dict)
    dev_dependencies: Mapping[str, str] = field(default_factory=dict)
    resolved: Optional[str] = None
    integrity: Optional[str] = None
    extra: Mapping[str, Any] = field(default_factory=dict, compare=False)

    @property
    def key(self) -> Tuple[str, str]:
        """Identity tuple ``(name, version)``."""
        return self.name, self.version

    @property
    def spec(self) -> str:
        """Human-readable ``name@version`` string."""
        return f"{self.name}@{self.version}"

    @property
    def parsed_version(self):
        """Parsed :class:`semantic_version.Version`, or ``None``."""
        return parse_version(self.version)

    def with_dependency(self, name: str, constraint: str, *, dev: bool = False) -> "Package":
        """Return a copy with one runtime (or dev) dependency replaced."""
        if dev:
            deps = dict(self.dev_dependencies)
            deps[name] = constraint
            return replace(self, dev_dependencies=deps)

        deps = dict(self.dependencies)
        deps[name] = constraint
        return replace(self, dependencies=deps)

    def to_json(self) -> Dict[str, Any]:
        """Return the registry-snapshot representation of this version."""
        entry: Dict[str, Any] = {}
        if self.dependencies:
            entry["dependencies"] = dict(self.dependencies)
        if self.peer_dependencies:
            entry["peerDependencies"] = {
                name: peer.constraint for name, peer in self.peer_dependencies.items()
            }
            meta = {
                name: {"optional": True}
                for name, peer in self.peer_dependencies.items()
                if peer.optional
            }
            if meta:
                entry["peerDependenciesMeta"] = meta
        if self.dev_dependencies:
            entry["devDependencies"] = dict(self.dev_dependencies)
        if self.resolved:
            entry["resolved"] = self.resolved
        if self.integrity:
            entry["integrity"] = self.integrity
        return entry

    @classmethod
    def from_json(cls, name: str, version: str, data: Mapping[str, Any]) -> "Package":
        """Build a package from a packument version or registry snapshot entry.

        Understands both registry shape (``dist.tarball``/``dist.integrity``)
        and lockfile shape (``resolved``/``integrity``).
        """
        peer_meta = data.get("peerDependenciesMeta") or {}
        peers = {
            peer_name: PeerDependency(
                constraint=str(constraint),
                optional=bool((peer_meta.get(peer_name) or {}).get("optional", False)),
            )
            for peer_name, constraint in (data.get("peerDependencies") or {}).items()
        }

        dist = data.get("dist") or {}
        return cls(
            name=name,
            version=version,
            dependencies={k: str(v) for k, v in (data.get("dependencies") or {}).items()},
            peer_dependencies=peers,
            dev_dependencies={
                k: str(v) for k, v in (data.get("devDependencies") or {}).items()
            },
            resolved=data.get("resolved") or dist.get("tarball"),
            integrity=data.get("integrity") or dist.get("integrity"),
        )

    def __str__(self) -> str:
        return self.spec
