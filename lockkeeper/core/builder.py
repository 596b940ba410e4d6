"""Install-tree construction for lockkeeper.

This module owns two responsibilities:

1. **Placement** — :class:`Placer` makes a single dependency edge resolve
   to a satisfying install. It hoists the satisfier to the outermost
   scope where it is visible to the consumer and does not change what any
   other consumer resolves to, and nests it closer to the consumer
   otherwise. Placement never leaves an already-satisfied edge broken.
2. **Building** — :class:`GraphBuilder` builds a complete
   :class:`~lockkeeper.models.graph.Graph` from a root manifest and its
   workspace members, processing edges breadth-first in name order so the
   result is deterministic.

When a previous graph is supplied, versions and locations recorded there
are reused whenever they remain valid, so re-resolving an unchanged
project reproduces the same tree.

Typical usage::

    from lockkeeper.core.builder import GraphBuilder
    from lockkeeper.core.registry import StaticMetadataProvider

    provider = StaticMetadataProvider.from_file("registry.json")
    result = GraphBuilder(provider).build(manifests)
    for conflict in result.conflicts:
        print(conflict.to_display_string())
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field, replace
from typing import Deque, Dict, Iterable, List, Mapping, Optional, Set, Tuple

from lockkeeper.core.registry import MetadataProvider
from lockkeeper.exceptions import PackageNotFound, UnsatisfiableConstraint
from lockkeeper.models.conflict import Conflict, ConflictSet
from lockkeeper.models.graph import (
    DependencyEdge,
    EdgeKind,
    Graph,
    InstallNode,
    declared_edges,
    install_location,
    parent_location,
    scope_chain,
)
from lockkeeper.models.manifest import WorkspaceManifests
from lockkeeper.models.package import Package
from lockkeeper.utils.logger import get_logger
from lockkeeper.utils.version_utils import satisfies

logger = get_logger("builder")

# Public API
__all__ = ["GraphBuilder", "BuildResult", "Placer", "workspace_nodes"]

# Maximum number of settle passes before giving up.
_MAX_SETTLE_PASSES: int = 100


# ---------------------------------------------------------------------------
# Result model
# ---------------------------------------------------------------------------


@dataclass
class BuildResult:
    """Outcome of a full build.

    Attributes:
        graph: The resolved install tree.
        conflicts: Nested duplicates created because of version conflicts.
    """

    graph: Graph
    conflicts: List[Conflict] = field(default_factory=list)

    @property
    def warnings(self) -> List[str]:
        return [conflict.to_display_string() for conflict in self.conflicts]

    def conflict_sets(self) -> Dict[str, ConflictSet]:
        """Group conflicts by package name."""
        sets: Dict[str, ConflictSet] = {}
        for conflict in self.conflicts:
            name = conflict.package_name
            sets.setdefault(name, ConflictSet(name)).add_conflict(conflict)
        return sets


# ---------------------------------------------------------------------------
# Placement
# ---------------------------------------------------------------------------


class Placer:
    """Mutable working tree used while resolving edges.

    Args:
        nodes: Initial nodes, keyed by location.
        provider: Metadata provider for versions not already installed.
        previous: Earlier graph whose versions and locations are preferred.
        prefer_locked: Whether to prefer ``previous`` at all.
        sources: Manifest path per workspace location, for error messages.
    """

    def __init__(
        self,
        nodes: Mapping[str, InstallNode],
        provider: MetadataProvider,
        *,
        previous: Optional[Graph] = None,
        prefer_locked: bool = True,
        sources: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.nodes: Dict[str, InstallNode] = dict(nodes)
        self.provider = provider
        self.previous = previous if prefer_locked else None
        self.sources: Dict[str, str] = dict(sources or {})

        self.conflicts: List[Conflict] = []
        self.added: List[str] = []
        self.replaced: Dict[str, InstallNode] = {}

        # dependency name -> locations whose package declares it
        self._consumers: Dict[str, Set[str]] = {}
        self._live: Optional[Set[str]] = None
        for location, node in self.nodes.items():
            self._index(location, node)

    # ------------------------------------------------------------------
    # Tree queries
    # ------------------------------------------------------------------

    def find(self, consumer: str, name: str) -> Tuple[Optional[str], Optional[InstallNode]]:
        """Return ``(scope, node)`` of the first ``name`` visible from ``consumer``."""
        for scope in scope_chain(consumer):
            node = self.nodes.get(install_location(scope, name))
            if node is not None:
                return scope, node
        return None, None

    def resolve(self, consumer: str, name: str) -> Optional[InstallNode]:
        _, node = self.find(consumer, name)
        if node is not None and node.link is not None:
            return self.nodes.get(node.link)
        return node

    def edges_out(self, location: str) -> List[DependencyEdge]:
        node = self.nodes.get(location)
        if node is None or node.is_link:
            return []
        return declared_edges(node)

    def accepts(self, edge: DependencyEdge) -> bool:
        """Whether ``edge`` currently resolves to a satisfying node."""
        return _accepts(edge, self.resolve(edge.consumer, edge.name))

    def snapshot(self) -> Graph:
        return Graph(self.nodes)

    def live(self) -> Set[str]:
        """Locations reachable from the root and the workspace members.

        Placement ignores the edges of every other node.
        """
        if self._live is None:
            self._live = self.snapshot().reachable()
        return self._live

    # ------------------------------------------------------------------
    # Version choice
    # ------------------------------------------------------------------

    def choose(self, edge: DependencyEdge, location: str) -> Package:
        """Pick the package to install at ``location`` for ``edge``.

        A package previously locked at the same location wins when it
        still satisfies the edge.
        """
        if self.previous is not None:
            old = self.previous.get(location)
            if (
                old is not None
                and not old.is_link
                and not old.workspace
                and old.name == edge.name
                and satisfies(old.version, edge.constraint)
            ):
                return old.package
        try:
            return self.provider.resolve(edge.name, edge.constraint)
        except PackageNotFound as exc:
            raise self.unsatisfiable(edge, str(exc)) from exc

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def add(self, location: str, package: Package) -> None:
        """Install ``package`` at ``location`` (replacing any node there)."""
        self.put(InstallNode(location, package))

    def put(self, node: InstallNode) -> None:
        self.nodes[node.location] = node
        self._live = None
        self._index(node.location, node)

    def replace_node(self, location: str, package: Package) -> str:
        """Swap the package installed at ``location`` for ``package``."""
        old = self.nodes[location]
        self.replaced.setdefault(location, old)
        self.add(location, package)
        logger.debug("Replaced %s with %s", old, package.spec)
        return location

    def ensure(self, edge: DependencyEdge) -> Optional[str]:
        """Make ``edge`` resolve to a satisfying node.

        Returns:
            The location of the node that was added or replaced, or
            ``None`` when the edge was already satisfied (or is an
            inactive optional peer).

        Raises:
            UnsatisfiableConstraint: No placement satisfies the edge
                without breaking another edge.
        """
        scope, target = self.find(edge.consumer, edge.name)
        resolved = self.resolve(edge.consumer, edge.name)
        if _accepts(edge, resolved):
            return None
        if target is not None and resolved is None:
            raise self.unsatisfiable(edge, f"link {target.location} has no target")

        chain = scope_chain(edge.consumer)
        if scope is not None:
            chain = chain[: chain.index(scope)]
        candidates = list(reversed(chain))

        preferred = self._previous_scope(edge, candidates)
        if preferred is not None:
            location = install_location(preferred, edge.name)
            package = self.choose(edge, location)
            if not self._breaks(preferred, package):
                return self._place(location, package, edge, resolved)

        if target is not None and not target.is_link:
            package = self.choose(edge, target.location)
            if self._dependents_accept(target.location, package):
                return self.replace_node(target.location, package)

        for candidate in candidates:
            location = install_location(candidate, edge.name)
            package = self.choose(edge, location)
            if self._breaks(candidate, package):
                continue
            return self._place(location, package, edge, resolved)

        shadow = f"; {resolved.package.spec} is in the way" if resolved else ""
        raise self.unsatisfiable(edge, f"no scope can hold a satisfying version{shadow}")

    def settle(
        self,
        queue: Iterable[str],
        *,
        skip: Optional[Set[DependencyEdge]] = None,
    ) -> None:
        """Process edges breadth-first from ``queue`` until nothing changes.

        Edges of every location in ``queue`` are ensured; new or replaced
        nodes are appended to the queue. A final sweep catches edges that
        became unsatisfied after their consumer was processed. Edges in
        ``skip`` and edges of unreachable nodes are never touched.
        """
        pending: Deque[str] = deque(queue)
        skip = skip or set()

        for _ in range(_MAX_SETTLE_PASSES):
            while pending:
                location = pending.popleft()
                if location not in self.live():
                    continue
                for edge in self.edges_out(location):
                    if edge in skip:
                        continue
                    placed = self.ensure(edge)
                    if placed is not None:
                        pending.append(placed)

            for location in sorted(self.live()):
                for edge in self.edges_out(location):
                    if edge not in skip and not self.accepts(edge):
                        pending.append(location)
                        break
            if not pending:
                return

        raise UnsatisfiableConstraint(
            "",
            "(tree)",
            "*",
            reason=f"placement did not settle after {_MAX_SETTLE_PASSES} passes",
        )

    def unsatisfiable(self, edge: DependencyEdge, reason: str) -> UnsatisfiableConstraint:
        manifest = self.sources.get(edge.consumer)
        if manifest is None:
            node = self.nodes.get(edge.consumer)
            manifest = f"{node.package.spec} at {edge.consumer}" if node else None
        return UnsatisfiableConstraint(
            edge.consumer,
            edge.name,
            edge.constraint,
            manifest=manifest,
            reason=reason,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _index(self, location: str, node: InstallNode) -> None:
        if node.is_link:
            return
        for edge in declared_edges(node):
            self._consumers.setdefault(edge.name, set()).add(location)

    def _place(
        self,
        location: str,
        package: Package,
        edge: DependencyEdge,
        shadowed: Optional[InstallNode],
    ) -> str:
        self.add(location, package)
        self.added.append(location)

        scope = parent_location(location)
        if scope:
            conflict = Conflict(
                consumer=edge.consumer,
                package_name=edge.name,
                required_spec=edge.constraint,
                nested_version=package.version,
                nested_location=location,
                shadowed_version=shadowed.version if shadowed else None,
            )
            self.conflicts.append(conflict)
            logger.info("Nested duplicate: %s", conflict.to_display_string())
        else:
            logger.debug("Hoisted %s to %s", package.spec, location)
        return location

    def _previous_scope(
        self,
        edge: DependencyEdge,
        candidates: List[str],
    ) -> Optional[str]:
        """Scope where the previous graph satisfied ``edge``, if still usable."""
        if self.previous is None:
            return None
        old = self.previous.lookup(edge.consumer, edge.name)
        if old is None or old.is_link or old.workspace:
            return None
        scope = parent_location(old.location)
        if scope not in candidates or not satisfies(old.version, edge.constraint):
            return None
        return scope

    def _breaks(self, scope: str, package: Package) -> bool:
        """Whether installing ``package`` in ``scope`` would break an edge.

        Only live consumers inside ``scope`` can see the new node, and only
        those whose current resolution lies further out than ``scope``
        would switch to it. A required edge with nothing visible yet is
        not broken when its consumer can still nest a satisfier below
        ``scope``. An optional peer with nothing visible would become
        active, so it has to accept ``package``.
        """
        live = self.live()
        for consumer in self._consumers.get(package.name, ()):
            chain = scope_chain(consumer)
            if scope not in chain or consumer not in live:
                continue
            depth = chain.index(scope)
            found_scope, _ = self.find(consumer, package.name)
            if found_scope is not None and chain.index(found_scope) < depth:
                continue
            for edge in self.edges_out(consumer):
                if edge.name != package.name:
                    continue
                if found_scope is None and edge.kind.required and depth > 0:
                    continue
                if not satisfies(package.version, edge.constraint):
                    return True
        return False

    def _dependents_accept(self, location: str, package: Package) -> bool:
        """Whether every live edge resolving to ``location`` accepts ``package``."""
        live = self.live()
        for consumer in self._consumers.get(package.name, ()):
            if consumer == location or consumer not in live:
                continue
            _, found = self.find(consumer, package.name)
            if found is None or found.location != location:
                continue
            for edge in self.edges_out(consumer):
                if edge.name == package.name and not satisfies(
                    package.version, edge.constraint
                ):
                    return False
        return True


def _accepts(edge: DependencyEdge, resolved: Optional[InstallNode]) -> bool:
    if resolved is None:
        return not edge.kind.required
    if resolved.workspace:
        return True
    return satisfies(resolved.version, edge.constraint)


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------


def workspace_nodes(
    manifests: WorkspaceManifests,
    previous: Optional[Graph] = None,
) -> Dict[str, InstallNode]:
    """Return the root node, member nodes and member links for ``manifests``.

    Extra lockfile fields recorded for the same locations in ``previous``
    are carried over.
    """

    def carry(location: str, package: Package) -> Package:
        old = previous.get(location) if previous is not None else None
        if old is not None and old.package.extra:
            return replace(package, extra=dict(old.package.extra))
        return package

    nodes: Dict[str, InstallNode] = {
        "": InstallNode("", carry("", manifests.root.to_package()), workspace=True)
    }
    for location in sorted(manifests.members):
        member = manifests.members[location]
        nodes[location] = InstallNode(
            location, carry(location, member.to_package()), workspace=True
        )
        link_location = install_location("", member.name)
        link_package = Package(name=member.name, version=member.version, resolved=location)
        nodes[link_location] = InstallNode(
            link_location, carry(link_location, link_package), link=location
        )
    return nodes


class GraphBuilder:
    """Build an install tree from manifests.

    Args:
        provider: Where package metadata comes from.
        prefer_locked: Reuse versions and locations from the previous
            graph when they remain valid.

    Example::

        >>> builder = GraphBuilder(provider)
        >>> result = builder.build(manifests, previous=old_graph)
        >>> result.graph.resolve("node_modules/b", "chokidar").version
        '3.6.0'
    """

    def __init__(self, provider: MetadataProvider, *, prefer_locked: bool = True) -> None:
        self.provider = provider
        self.prefer_locked = prefer_locked

    def build(
        self,
        manifests: WorkspaceManifests,
        previous: Optional[Graph] = None,
    ) -> BuildResult:
        """Resolve every edge reachable from the root and its members.

        Raises:
            UnsatisfiableConstraint: A required edge cannot be satisfied.
        """
        sources = {
            manifest.location: manifest.source
            for manifest in manifests.all()
            if manifest.source
        }
        placer = Placer(
            workspace_nodes(manifests, previous),
            self.provider,
            previous=previous,
            prefer_locked=self.prefer_locked,
            sources=sources,
        )

        entry_points = [""] + sorted(manifests.members)
        hoisted = self._hoist_direct(placer, entry_points)
        placer.settle(entry_points + hoisted)

        graph = placer.snapshot()
        dead = graph.extraneous()
        if dead:
            logger.debug("Dropping %d unreachable node(s)", len(dead))
            graph = graph.evolve(remove=dead)

        logger.info(
            "Resolved %d node(s) with %d nested duplicate(s)",
            len(graph),
            len(placer.conflicts),
        )
        return BuildResult(graph=graph, conflicts=list(placer.conflicts))

    def _hoist_direct(self, placer: Placer, entry_points: List[str]) -> List[str]:
        """Claim the root scope for direct dependencies.

        The root manifest's own constraint decides when it declares the
        name. Otherwise the previously locked root version is kept when it
        satisfies some direct request, and the newest requested version
        wins when it does not.
        """
        requests: Dict[str, List[DependencyEdge]] = {}
        for location in entry_points:
            for edge in placer.edges_out(location):
                if edge.kind is not EdgeKind.PEER_OPTIONAL:
                    requests.setdefault(edge.name, []).append(edge)

        hoisted: List[str] = []
        for name in sorted(requests):
            location = install_location("", name)
            if location in placer.nodes:
                continue
            placer.add(location, self._root_choice(placer, location, requests[name]))
            hoisted.append(location)
        return hoisted

    def _root_choice(
        self,
        placer: Placer,
        location: str,
        edges: List[DependencyEdge],
    ) -> Package:
        for edge in edges:
            if edge.consumer == "":
                return placer.choose(edge, location)

        if placer.previous is not None:
            old = placer.previous.get(location)
            if (
                old is not None
                and not old.is_link
                and not old.workspace
                and any(satisfies(old.version, e.constraint) for e in edges)
            ):
                return old.package

        best: Optional[Package] = None
        for edge in edges:
            package = placer.choose(edge, location)
            if best is None or (
                package.parsed_version is not None
                and best.parsed_version is not None
                and package.parsed_version > best.parsed_version
            ):
                best = package
        assert best is not None
        return best
