"""Package metadata providers for lockkeeper.

The resolver never talks to the network. It asks a
:class:`MetadataProvider` for the best :class:`Package` matching a
constraint, and the provider answers from memory. Providers are
deterministic for a fixed registry state.

Implementations:

- :class:`StaticMetadataProvider`: an in-memory registry, optionally
  loaded from a JSON snapshot (``{name: {version: {...}}}``).
- :class:`GraphMetadataProvider`: the package metadata already recorded
  in an existing lockfile.
- :class:`ChainedMetadataProvider`: asks several providers in order.

The async :class:`~lockkeeper.core.data_store.NpmDataStore` fills a
:class:`StaticMetadataProvider` from the npm registry.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Union

from lockkeeper.exceptions import PackageNotFound, ParseError
from lockkeeper.models.graph import Graph
from lockkeeper.models.package import Package
from lockkeeper.utils.filesystem import read_json_file
from lockkeeper.utils.logger import get_logger
from lockkeeper.utils.version_utils import max_satisfying, sort_versions

logger = get_logger("registry")

__all__ = [
    "MetadataProvider",
    "StaticMetadataProvider",
    "GraphMetadataProvider",
    "ChainedMetadataProvider",
]


class MetadataProvider(Protocol):
    """Anything that maps ``(name, constraint)`` to a :class:`Package`."""

    def resolve(self, name: str, constraint: str) -> Package:
        """Return the highest version of ``name`` satisfying ``constraint``.

        Raises:
            PackageNotFound: No known version satisfies the constraint.
        """
        ...


class StaticMetadataProvider:
    """In-memory registry of package versions.

    Args:
        packages: Optional initial packages.

    Example:
        >>> provider = StaticMetadataProvider()
        >>> provider.add(Package("chokidar", "3.6.0"))
        >>> provider.add(Package("chokidar", "4.0.3"))
        >>> provider.resolve("chokidar", "^3.5.2").version
        '3.6.0'
    """

    def __init__(self, packages: Iterable[Package] = ()) -> None:
        self._packages: Dict[str, Dict[str, Package]] = {}
        for package in packages:
            self.add(package)

    def add(self, package: Package) -> None:
        """Register ``package``, replacing any entry with the same key."""
        self._packages.setdefault(package.name, {})[package.version] = package

    def names(self) -> List[str]:
        return sorted(self._packages)

    def versions(self, name: str) -> List[str]:
        """Known versions of ``name``, oldest first."""
        return sort_versions(self._packages.get(name, {}))

    def get(self, name: str, version: str) -> Optional[Package]:
        return self._packages.get(name, {}).get(version)

    def resolve(self, name: str, constraint: str) -> Package:
        versions = self._packages.get(name, {})
        best = max_satisfying(versions, constraint)
        if best is None:
            raise PackageNotFound(name, constraint, available=self.versions(name))
        return versions[best]

    def __contains__(self, name: object) -> bool:
        return name in self._packages

    def __len__(self) -> int:
        return sum(len(v) for v in self._packages.values())

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def to_json(self) -> Dict[str, Dict[str, Any]]:
        """Return a registry snapshot suitable for :meth:`from_json`."""
        return {
            name: {
                version: self._packages[name][version].to_json()
                for version in self.versions(name)
            }
            for name in self.names()
        }

    @classmethod
    def from_json(
        cls,
        data: Mapping[str, Any],
        *,
        source: Optional[str] = None,
    ) -> "StaticMetadataProvider":
        """Build a provider from a ``{name: {version: metadata}}`` snapshot.

        Each metadata object uses packument version shape
        (``dependencies``, ``peerDependencies``, ``peerDependenciesMeta``,
        ``dist``) or lockfile shape (``resolved``, ``integrity``).
        """
        provider = cls()
        for name, versions in data.items():
            if not isinstance(versions, dict):
                raise ParseError(
                    f"Registry entry for {name} must map versions to metadata",
                    file_path=source,
                    field=name,
                )
            for version, metadata in versions.items():
                if not isinstance(metadata, dict):
                    raise ParseError(
                        f"Metadata for {name}@{version} must be an object",
                        file_path=source,
                        field=f"{name}.{version}",
                    )
                provider.add(Package.from_json(name, version, metadata))

        logger.debug("Loaded %d package version(s) from snapshot", len(provider))
        return provider

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "StaticMetadataProvider":
        data = read_json_file(path)
        if not isinstance(data, dict):
            raise ParseError("Registry snapshot must be a JSON object", file_path=str(path))
        return cls.from_json(data, source=str(path))


class GraphMetadataProvider(StaticMetadataProvider):
    """Metadata recorded in an existing install tree.

    Every installed (non-workspace, non-link) node contributes its package,
    so versions already present in the lockfile can be re-used without a
    registry round-trip.
    """

    def __init__(self, graph: Graph) -> None:
        super().__init__(
            node.package for node in graph if not node.workspace and not node.is_link
        )


class ChainedMetadataProvider:
    """Ask providers in order and return the first match.

    Raises the last :exc:`PackageNotFound` when no provider knows a
    satisfying version.
    """

    def __init__(self, *providers: MetadataProvider) -> None:
        if not providers:
            raise ValueError("ChainedMetadataProvider needs at least one provider")
        self.providers = list(providers)

    def resolve(self, name: str, constraint: str) -> Package:
        error: Optional[PackageNotFound] = None
        for provider in self.providers:
            try:
                return provider.resolve(name, constraint)
            except PackageNotFound as exc:
                error = exc
        assert error is not None
        raise error
