"""Centralized npm registry data store for lockkeeper.

Provides a unified, async-safe cache of npm packuments so that every
package is fetched at most once per process. Resolution itself is
synchronous; the store's job is to warm the cache for the whole
transitive closure up front and hand the resolver a
:class:`~lockkeeper.core.registry.StaticMetadataProvider`.

Typical usage::

    from lockkeeper.utils.http import HTTPClient
    from lockkeeper.core.data_store import NpmDataStore

    async with HTTPClient() as client:
        store = NpmDataStore(client)
        provider = await store.prefetch_closure([("chokidar", "^3.5.2")])
        print(provider.resolve("chokidar", "^3.5.2").version)   # "3.6.0"
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from lockkeeper.constants import DEFAULT_REGISTRY_URL
from lockkeeper.core.registry import StaticMetadataProvider
from lockkeeper.exceptions import RegistryError
from lockkeeper.models.package import Package
from lockkeeper.utils.http import HTTPClient
from lockkeeper.utils.logger import get_logger
from lockkeeper.utils.version_utils import max_satisfying, sort_versions

logger = get_logger("data_store")

# Public API
__all__ = ["NpmDataStore", "NpmPackageData", "packument_url"]


# ---------------------------------------------------------------------------
# Data container
# ---------------------------------------------------------------------------


@dataclass
class NpmPackageData:
    """Immutable-by-convention snapshot of one npm packument.

    Attributes:
        name: Package name, including scope.
        latest_version: Version the ``latest`` dist-tag points at.
        versions: Every published version, parsed into :class:`Package`.
    """

    name: str
    latest_version: Optional[str] = None
    versions: Dict[str, Package] = field(default_factory=dict)

    @property
    def all_versions(self) -> List[str]:
        """Published versions, newest first."""
        return sort_versions(self.versions, reverse=True)

    def best_match(self, constraint: str) -> Optional[Package]:
        """Return the highest version satisfying ``constraint``.

        The ``latest`` dist-tag wins when it satisfies, as npm does.

        Example::

            >>> data.best_match("^3.5.2").version
            '3.6.0'
        """
        if constraint.strip() in ("", "*", "latest") and self.latest_version in self.versions:
            return self.versions[self.latest_version]
        best = max_satisfying(self.versions, constraint)
        return self.versions[best] if best else None


# ---------------------------------------------------------------------------
# Async data store with double-checked locking
# ---------------------------------------------------------------------------


class NpmDataStore:
    """Async-safe, per-process cache for npm packuments.

    Each package name triggers **at most one** request to
    ``{registry}/{name}``. A :class:`asyncio.Semaphore` limits concurrent
    fetches, and a second cache check inside the semaphore prevents
    duplicate requests when several coroutines ask for the same package.

    Args:
        http_client: A pre-configured :class:`HTTPClient`.
        registry_url: Base URL of the registry.
        concurrent_limit: Maximum number of in-flight fetches.
    """

    def __init__(
        self,
        http_client: HTTPClient,
        registry_url: str = DEFAULT_REGISTRY_URL,
        concurrent_limit: int = 10,
    ) -> None:
        self.http_client = http_client
        self.registry_url = registry_url.rstrip("/")
        self._semaphore = asyncio.Semaphore(concurrent_limit)
        self._package_data: Dict[str, NpmPackageData] = {}

    # ------------------------------------------------------------------
    # Public async accessors
    # ------------------------------------------------------------------

    async def get_package_data(self, name: str) -> NpmPackageData:
        """Fetch (or return cached) metadata for ``name``.

        Raises:
            RegistryError: The package does not exist or the registry
                returned an unexpected response.
        """
        if name in self._package_data:
            return self._package_data[name]

        async with self._semaphore:
            if name in self._package_data:
                return self._package_data[name]

            data = await self._fetch_packument(name)
            pkg_data = self._parse_packument(name, data)
            self._package_data[name] = pkg_data
            return pkg_data

    async def prefetch_packages(self, names: Iterable[str]) -> List[str]:
        """Concurrently warm the cache for a batch of packages.

        A failure for one package does not stop the others. Failed names
        are logged and returned.
        """
        unique = sorted(set(names))
        results = await asyncio.gather(
            *(self.get_package_data(name) for name in unique),
            return_exceptions=True,
        )

        failed: List[str] = []
        for name, result in zip(unique, results):
            if isinstance(result, BaseException):
                if not isinstance(result, RegistryError):
                    raise result
                logger.warning("Could not fetch %s: %s", name, result)
                failed.append(name)
        return failed

    async def prefetch_closure(
        self,
        requests: Iterable[Tuple[str, str]],
    ) -> StaticMetadataProvider:
        """Fetch every package reachable from ``requests``.

        ``requests`` are ``(name, constraint)`` pairs, normally the direct
        dependencies of the root and workspace members. The closure
        follows runtime and required peer dependencies of the highest
        satisfying version of each request, level by level.

        Returns:
            A provider holding every published version of every fetched
            package. Names that could not be fetched are simply absent,
            so the resolver reports them as missing.
        """
        pending: Set[Tuple[str, str]] = set(requests)
        visited: Set[Tuple[str, str]] = set()

        while pending:
            batch = sorted(pending - visited)
            visited.update(batch)
            pending = set()
            await self.prefetch_packages(name for name, _ in batch)

            for name, constraint in batch:
                pkg_data = self._package_data.get(name)
                package = pkg_data.best_match(constraint) if pkg_data else None
                if package is None:
                    continue
                for dep, dep_constraint in package.dependencies.items():
                    pending.add((dep, dep_constraint))
                for dep, peer in package.peer_dependencies.items():
                    if not peer.optional:
                        pending.add((dep, peer.constraint))

        logger.debug(
            "Prefetched %d package(s) for %d request(s)",
            len(self._package_data),
            len(visited),
        )
        return self.to_provider()

    # ------------------------------------------------------------------
    # Public synchronous accessors (cache-only, no I/O)
    # ------------------------------------------------------------------

    def get_cached_package(self, name: str) -> Optional[NpmPackageData]:
        """Return cached data for ``name`` without triggering a fetch."""
        return self._package_data.get(name)

    def get_versions(self, name: str) -> List[str]:
        pkg = self.get_cached_package(name)
        return pkg.all_versions if pkg else []

    def to_provider(self) -> StaticMetadataProvider:
        """Snapshot the cache as a synchronous metadata provider."""
        provider = StaticMetadataProvider()
        for pkg_data in self._package_data.values():
            for package in pkg_data.versions.values():
                provider.add(package)
        return provider

    # ------------------------------------------------------------------
    # Network helpers (private)
    # ------------------------------------------------------------------

    async def _fetch_packument(self, name: str) -> Dict[str, Any]:
        url = packument_url(self.registry_url, name)
        try:
            return await self.http_client.get_json(url)
        except RegistryError as exc:
            if exc.status_code == 404:
                raise RegistryError(
                    f"Package '{name}' not found in registry",
                    package_name=name,
                    url=url,
                    status_code=404,
                ) from exc
            raise

    # ------------------------------------------------------------------
    # Parsing helpers (private, synchronous)
    # ------------------------------------------------------------------

    @staticmethod
    def _parse_packument(name: str, data: Dict[str, Any]) -> NpmPackageData:
        """Transform a raw packument into :class:`NpmPackageData`.

        Versions whose metadata is not an object are skipped.
        """
        versions: Dict[str, Package] = {}
        for version, metadata in (data.get("versions") or {}).items():
            if not isinstance(metadata, dict):
                logger.debug("Skipping malformed %s@%s", name, version)
                continue
            versions[version] = Package.from_json(name, version, metadata)

        tags = data.get("dist-tags") or {}
        return NpmPackageData(
            name=name,
            latest_version=tags.get("latest"),
            versions=versions,
        )


# ---------------------------------------------------------------------------
# Module-level helpers
# ---------------------------------------------------------------------------


def packument_url(registry_url: str, name: str) -> str:
    """Return the packument URL of ``name``.

    Scoped names keep their ``@`` and encode the slash.

    Example::

        >>> packument_url("https://registry.npmjs.org", "@aws-sdk/client-dynamodb")
        'https://registry.npmjs.org/@aws-sdk%2fclient-dynamodb'
    """
    return f"{registry_url.rstrip('/')}/{name.replace('/', '%2f')}"
