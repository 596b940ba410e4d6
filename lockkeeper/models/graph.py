"""
Install-tree data model for lockkeeper.

A :class:`Graph` is an immutable snapshot of an npm ``node_modules``
tree. Every :class:`InstallNode` sits at a *location* (the key used in
``package-lock.json``): ``""`` is the project root, workspace members
live at their directory (``packages/app``) and installed packages live
under a ``node_modules`` scope, possibly nested below another package
(``node_modules/b/node_modules/chokidar``).

Dependency edges are derived from the packages installed in the tree.
An edge from a consumer is resolved the way Node resolves ``require``:
the consumer's own ``node_modules`` first, then each enclosing scope up
to the root. The first node with the right name wins, whether or not its
version satisfies the edge.

Typical usage::

    graph = Graph(nodes)
    target = graph.resolve("node_modules/b", "chokidar")
    for edge in graph.edges_in(target.location):
        print(edge.describe())
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import (
    Callable,
    Dict,
    Iterable,
    Iterator,
    List,
    Mapping,
    Optional,
    Set,
)

from lockkeeper.constants import NODE_MODULES
from lockkeeper.models.package import Package
from lockkeeper.utils.version_utils import satisfies

__all__ = [
    "EdgeKind",
    "DependencyEdge",
    "InstallNode",
    "NodeFlags",
    "UnresolvedEdge",
    "Graph",
    "install_location",
    "parent_location",
    "scope_chain",
    "name_from_location",
    "is_within",
]

_SEGMENT = f"{NODE_MODULES}/"


# ---------------------------------------------------------------------------
# Location helpers
# ---------------------------------------------------------------------------


def _last_segment(location: str) -> int:
    """Index of the last ``node_modules/`` path segment, or -1."""
    end = len(location)
    while True:
        idx = location.rfind(_SEGMENT, 0, end)
        if idx <= 0 or location[idx - 1] == "/":
            return idx
        end = idx + len(_SEGMENT) - 1


def install_location(scope: str, name: str) -> str:
    """Return the location of ``name`` installed in ``scope``'s ``node_modules``.

    Examples:
        >>> install_location("", "chokidar")
        'node_modules/chokidar'
        >>> install_location("node_modules/b", "chokidar")
        'node_modules/b/node_modules/chokidar'
    """
    if not scope:
        return f"{_SEGMENT}{name}"
    return f"{scope}/{_SEGMENT}{name}"


def parent_location(location: str) -> Optional[str]:
    """Return the location whose ``node_modules`` contains ``location``.

    The root has no parent. Workspace directories hang off the root.

    Examples:
        >>> parent_location("node_modules/b/node_modules/@scope/c")
        'node_modules/b'
        >>> parent_location("packages/app") == ""
        True
    """
    if location == "":
        return None
    idx = _last_segment(location)
    if idx == -1:
        return ""
    return location[:idx].rstrip("/")


def scope_chain(location: str) -> List[str]:
    """Return the scopes searched when ``location`` requires a package.

    The consumer's own scope comes first, the root last.
    """
    chain: List[str] = []
    current: Optional[str] = location
    while current is not None:
        chain.append(current)
        current = parent_location(current)
    return chain


def name_from_location(location: str) -> str:
    """Return the package name encoded in an install location."""
    idx = _last_segment(location)
    if idx == -1:
        return location.rsplit("/", 1)[-1]
    return location[idx + len(_SEGMENT):]


def is_within(location: str, scope: str) -> bool:
    """Return True if ``location`` is ``scope`` or nested anywhere below it."""
    return scope in scope_chain(location)


# ---------------------------------------------------------------------------
# Nodes and edges
# ---------------------------------------------------------------------------


class EdgeKind(Enum):
    """Kind of a dependency edge."""

    RUNTIME = "runtime"
    DEV = "dev"
    PEER = "peer"
    PEER_OPTIONAL = "peer-optional"

    @property
    def required(self) -> bool:
        """Whether the edge must resolve for a clean install to succeed."""
        return self is not EdgeKind.PEER_OPTIONAL

    @property
    def is_peer(self) -> bool:
        return self in (EdgeKind.PEER, EdgeKind.PEER_OPTIONAL)


@dataclass(frozen=True)
class DependencyEdge:
    """A dependency declared by the package installed at ``consumer``.

    Attributes:
        consumer: Location of the declaring package.
        name: Required package name.
        constraint: npm range the satisfier must match.
        kind: Edge kind.
    """

    consumer: str
    name: str
    constraint: str
    kind: EdgeKind

    def describe(self) -> str:
        """Return a human-readable description of the edge."""
        consumer = self.consumer or "(root)"
        return f"{consumer} -> {self.name}@{self.constraint} [{self.kind.value}]"

    def __str__(self) -> str:
        return self.describe()


@dataclass(frozen=True)
class InstallNode:
    """A package installed at a physical location of the tree.

    Attributes:
        location: Lockfile key of the install.
        package: Package metadata installed at this location.
        link: Target location when this node is a workspace symlink.
        workspace: ``True`` for the root and workspace members, whose
            manifests (including dev dependencies) are authoritative.
    """

    location: str
    package: Package
    link: Optional[str] = None
    workspace: bool = False

    @property
    def name(self) -> str:
        return self.package.name

    @property
    def version(self) -> str:
        return self.package.version

    @property
    def is_root(self) -> bool:
        return self.location == ""

    @property
    def is_link(self) -> bool:
        return self.link is not None

    @property
    def parent(self) -> Optional[str]:
        return parent_location(self.location)

    @property
    def depth(self) -> int:
        """Number of scopes between this node and the root."""
        return len(scope_chain(self.location)) - 1

    def __str__(self) -> str:
        where = self.location or "(root)"
        return f"{self.package.spec} at {where}"


@dataclass(frozen=True)
class NodeFlags:
    """Reachability flags recorded for a node in the lockfile."""

    dev: bool = False
    optional: bool = False
    peer: bool = False


@dataclass(frozen=True)
class UnresolvedEdge:
    """An edge without a valid satisfier.

    Attributes:
        edge: The offending edge.
        found: Version visible to the consumer that fails the constraint,
            or ``None`` when nothing is visible at all.
        expected: Version the previous lockfile used to satisfy the edge,
            when known.
    """

    edge: DependencyEdge
    found: Optional[str] = None
    expected: Optional[str] = None

    @property
    def name(self) -> str:
        return self.edge.name

    @property
    def consumer(self) -> str:
        return self.edge.consumer

    @property
    def constraint(self) -> str:
        return self.edge.constraint

    def describe(self) -> str:
        """Return the message ``npm ci`` would print for this edge."""
        if self.expected is not None:
            return f"Missing: {self.name}@{self.expected} from lock file"
        if self.found is not None:
            return (
                f"Invalid: lock file's {self.name}@{self.found} does not "
                f"satisfy {self.name}@{self.constraint}"
            )
        return f"Missing: {self.name}@{self.constraint} from lock file"

    def to_json(self) -> Dict[str, Optional[str]]:
        return {
            "consumer": self.consumer,
            "name": self.name,
            "constraint": self.constraint,
            "kind": self.edge.kind.value,
            "found": self.found,
            "expected": self.expected,
        }

    def __str__(self) -> str:
        return self.describe()


# ---------------------------------------------------------------------------
# Graph
# ---------------------------------------------------------------------------


class Graph:
    """Immutable snapshot of an install tree.

    Args:
        nodes: Mapping of location to :class:`InstallNode`. Must contain
            the root node at location ``""``.

    Raises:
        ValueError: If the root node is missing or a key disagrees with
            its node's location.
    """

    __slots__ = ("_nodes", "_edges_in")

    def __init__(self, nodes: Mapping[str, InstallNode]) -> None:
        if "" not in nodes:
            raise ValueError("Graph requires a root node at location ''")
        for location, node in nodes.items():
            if node.location != location:
                raise ValueError(
                    f"Node {node} is stored under mismatched location {location!r}"
                )
        self._nodes: Mapping[str, InstallNode] = MappingProxyType(dict(nodes))
        self._edges_in: Optional[Dict[str, List[DependencyEdge]]] = None

    # ------------------------------------------------------------------
    # Mapping protocol
    # ------------------------------------------------------------------

    @property
    def nodes(self) -> Mapping[str, InstallNode]:
        return self._nodes

    def __contains__(self, location: object) -> bool:
        return location in self._nodes

    def __getitem__(self, location: str) -> InstallNode:
        return self._nodes[location]

    def __iter__(self) -> Iterator[InstallNode]:
        return iter(self._nodes.values())

    def __len__(self) -> int:
        return len(self._nodes)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Graph):
            return NotImplemented
        return dict(self._nodes) == dict(other._nodes)

    def __repr__(self) -> str:
        return f"Graph(nodes={len(self._nodes)})"

    def get(self, location: str) -> Optional[InstallNode]:
        return self._nodes.get(location)

    @property
    def root(self) -> InstallNode:
        return self._nodes[""]

    @property
    def workspaces(self) -> List[InstallNode]:
        """Workspace member nodes (not the root, not their links)."""
        return [
            node
            for node in self._nodes.values()
            if node.workspace and not node.is_root and not node.is_link
        ]

    def find(self, name: str) -> List[InstallNode]:
        """Return every installed (non-link) node named ``name``."""
        return [
            node
            for node in self._nodes.values()
            if node.name == name and not node.is_link and not node.workspace
        ]

    def children(self, location: str) -> List[InstallNode]:
        """Return nodes installed directly in ``location``'s ``node_modules``."""
        prefix = install_location(location, "")
        return [
            node
            for loc, node in self._nodes.items()
            if loc.startswith(prefix) and parent_location(loc) == location
        ]

    def subtree(self, location: str) -> List[str]:
        """Return ``location`` plus every location nested below it."""
        prefix = install_location(location, "")
        return [location] + sorted(
            loc for loc in self._nodes if loc != location and loc.startswith(prefix)
        )

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def lookup(self, consumer: str, name: str) -> Optional[InstallNode]:
        """Return the first node named ``name`` visible from ``consumer``.

        Link nodes are returned as-is; see :meth:`resolve`.
        """
        for scope in scope_chain(consumer):
            node = self._nodes.get(install_location(scope, name))
            if node is not None:
                return node
        return None

    def follow(self, node: Optional[InstallNode]) -> Optional[InstallNode]:
        """Follow a link node to its target."""
        if node is None or node.link is None:
            return node
        return self._nodes.get(node.link)

    def resolve(self, consumer: str, name: str) -> Optional[InstallNode]:
        """Resolve ``name`` from ``consumer`` (nearest ancestor wins)."""
        return self.follow(self.lookup(consumer, name))

    def resolve_edge(self, edge: DependencyEdge) -> Optional[InstallNode]:
        return self.resolve(edge.consumer, edge.name)

    def is_satisfied(self, edge: DependencyEdge) -> bool:
        """Whether ``edge`` resolves to a node matching its constraint.

        Inactive optional peer edges (nothing visible) count as satisfied.
        """
        target = self.resolve_edge(edge)
        if target is None:
            return not edge.kind.required
        if target.workspace:
            return True
        return satisfies(target.version, edge.constraint)

    # ------------------------------------------------------------------
    # Edges
    # ------------------------------------------------------------------

    def edges_out(self, location: str) -> List[DependencyEdge]:
        """Return the edges declared by the package at ``location``."""
        node = self._nodes.get(location)
        if node is None or node.is_link:
            return []
        return declared_edges(node)

    def edges(self) -> Iterator[DependencyEdge]:
        for location in self._nodes:
            yield from self.edges_out(location)

    def edges_in(self, location: str) -> List[DependencyEdge]:
        """Return every edge that currently resolves to ``location``.

        This is the "required-by" back-reference. An edge through a link
        node counts for both the link and its target.
        """
        if self._edges_in is None:
            index: Dict[str, List[DependencyEdge]] = {}
            for edge in self.edges():
                found = self.lookup(edge.consumer, edge.name)
                if found is None:
                    continue
                index.setdefault(found.location, []).append(edge)
                if found.link is not None:
                    index.setdefault(found.link, []).append(edge)
            self._edges_in = index
        return list(self._edges_in.get(location, []))

    # ------------------------------------------------------------------
    # Reachability
    # ------------------------------------------------------------------

    def _entry_points(self) -> List[str]:
        return [node.location for node in self._nodes.values() if node.workspace]

    def reachable(
        self,
        *,
        edge_filter: Optional[Callable[[DependencyEdge], bool]] = None,
        starts: Optional[Iterable[str]] = None,
    ) -> Set[str]:
        """Return locations reachable through edges accepted by ``edge_filter``.

        Traversal starts at the root and every workspace member unless
        ``starts`` is given. Link nodes whose target is reachable are
        included.
        """
        queue = deque(self._entry_points() if starts is None else starts)
        seen: Set[str] = set(queue)

        while queue:
            location = queue.popleft()
            for edge in self.edges_out(location):
                if edge_filter is not None and not edge_filter(edge):
                    continue
                found = self.lookup(edge.consumer, edge.name)
                if found is None:
                    continue
                for loc in (found.location, found.link):
                    if loc is not None and loc in self._nodes and loc not in seen:
                        seen.add(loc)
                        queue.append(loc)

        for node in self._nodes.values():
            if node.link is not None and node.link in seen:
                seen.add(node.location)
        return seen

    def extraneous(self) -> List[str]:
        """Locations no edge reaches from the root or a workspace."""
        live = self.reachable()
        return sorted(loc for loc in self._nodes if loc not in live)

    def flags(self) -> Dict[str, NodeFlags]:
        """Compute the ``dev``/``optional``/``peer`` flags of every node."""
        prod = self.reachable(edge_filter=lambda e: e.kind is not EdgeKind.DEV)
        required = self.reachable(
            edge_filter=lambda e: e.kind is not EdgeKind.PEER_OPTIONAL
        )
        non_peer = self.reachable(edge_filter=lambda e: not e.kind.is_peer)

        result: Dict[str, NodeFlags] = {}
        for location, node in self._nodes.items():
            if node.workspace:
                result[location] = NodeFlags()
                continue
            result[location] = NodeFlags(
                dev=location not in prod,
                optional=location not in required,
                peer=location not in non_peer,
            )
        return result

    # ------------------------------------------------------------------
    # Snapshot derivation
    # ------------------------------------------------------------------

    def evolve(
        self,
        *,
        add: Optional[Mapping[str, InstallNode]] = None,
        remove: Iterable[str] = (),
    ) -> "Graph":
        """Return a new graph with nodes removed and then added/replaced."""
        nodes = dict(self._nodes)
        for location in remove:
            nodes.pop(location, None)
        if add:
            nodes.update(add)
        return Graph(nodes)


def declared_edges(node: InstallNode) -> List[DependencyEdge]:
    """Return the edges a node declares, in deterministic order.

    Runtime dependencies come first, then peers not already declared as
    runtime dependencies, then (root and workspaces only) dev
    dependencies not already declared elsewhere.
    """
    pkg = node.package
    edges: List[DependencyEdge] = []
    seen: Set[str] = set()

    for name in sorted(pkg.dependencies):
        edges.append(
            DependencyEdge(node.location, name, pkg.dependencies[name], EdgeKind.RUNTIME)
        )
        seen.add(name)

    for name in sorted(pkg.peer_dependencies):
        if name in seen:
            continue
        peer = pkg.peer_dependencies[name]
        kind = EdgeKind.PEER_OPTIONAL if peer.optional else EdgeKind.PEER
        edges.append(DependencyEdge(node.location, name, peer.constraint, kind))
        seen.add(name)

    if node.workspace:
        for name in sorted(pkg.dev_dependencies):
            if name in seen:
                continue
            edges.append(
                DependencyEdge(
                    node.location, name, pkg.dev_dependencies[name], EdgeKind.DEV
                )
            )
    return edges
