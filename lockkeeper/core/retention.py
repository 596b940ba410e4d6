"""Retention rules for nodes touched by a partial update.

After a bump, some installs that used to serve the bumped package may no
longer be needed. :class:`RetentionPolicy` decides, for each candidate
location, whether it stays. The rules:

- A node that still-present edges resolve to stays. In particular a node
  that is the unique satisfier of a peer edge (optional or required) from
  a consumer that survives the update is never removed, even when a newer
  compatible version exists in an outer scope.
- A node is removed when the edge that created the need for it is gone
  (its consumer was removed or no longer declares the dependency), or
  when a closer satisfier now covers every edge that used to reach it.

Removal is mark-and-sweep over reachability from the root and workspace
members, following every edge kind, so a node only reachable through a
removed node is removed with it.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Set, Tuple

from lockkeeper.models.graph import DependencyEdge, EdgeKind, Graph
from lockkeeper.utils.logger import get_logger

logger = get_logger("retention")

__all__ = ["RetentionPolicy", "RetentionDecision", "RetentionReason"]


class RetentionReason(Enum):
    """Why a candidate was kept or removed."""

    REQUIRED = "required"
    PEER_SATISFIER = "peer-satisfier"
    REACHABLE = "reachable"
    EDGE_REMOVED = "edge-removed"
    SHADOWED = "shadowed"
    UNREACHABLE = "unreachable"


@dataclass(frozen=True)
class RetentionDecision:
    """Decision taken for one candidate location.

    Attributes:
        location: Candidate install location.
        spec: ``name@version`` installed there.
        keep: Whether the node stays.
        reason: Rule that decided.
        detail: Human-readable explanation.
    """

    location: str
    spec: str
    keep: bool
    reason: RetentionReason
    detail: str = ""

    def to_json(self) -> Dict[str, object]:
        return {
            "location": self.location,
            "package": self.spec,
            "keep": self.keep,
            "reason": self.reason.value,
            "detail": self.detail,
        }

    def __str__(self) -> str:
        verb = "keep" if self.keep else "remove"
        return f"{verb} {self.spec} at {self.location}: {self.detail or self.reason.value}"


class RetentionPolicy:
    """Decide which candidate nodes survive a partial update."""

    def decide(
        self,
        graph: Graph,
        candidates: Iterable[str],
        *,
        previous: Optional[Graph] = None,
    ) -> List[RetentionDecision]:
        """Return one decision per candidate still present in ``graph``.

        Args:
            graph: The tree after placement, before pruning.
            candidates: Locations eligible for removal.
            previous: The tree before the update, used to explain removals.
        """
        live = graph.reachable()
        decisions: List[RetentionDecision] = []

        for location in sorted(set(candidates)):
            node = graph.get(location)
            if node is None or node.workspace or node.is_link:
                continue
            spec = node.package.spec

            if location in live:
                reason, detail = self._keep_reason(graph, location, live)
                decisions.append(RetentionDecision(location, spec, True, reason, detail))
                continue

            reason, detail = self._removal_reason(graph, location, previous)
            decisions.append(RetentionDecision(location, spec, False, reason, detail))

        for decision in decisions:
            log = logger.info if not decision.keep else logger.debug
            log("Retention: %s", decision)
        return decisions

    def apply(
        self,
        graph: Graph,
        candidates: Iterable[str],
        *,
        previous: Optional[Graph] = None,
    ) -> Tuple[Graph, List[RetentionDecision]]:
        """Decide and return the pruned graph together with the decisions."""
        decisions = self.decide(graph, candidates, previous=previous)
        removed = [d.location for d in decisions if not d.keep]
        if removed:
            graph = graph.evolve(remove=removed)
        return graph, decisions

    # ------------------------------------------------------------------
    # Explanations
    # ------------------------------------------------------------------

    @staticmethod
    def _keep_reason(
        graph: Graph,
        location: str,
        live: Set[str],
    ) -> Tuple[RetentionReason, str]:
        edges = [e for e in graph.edges_in(location) if e.consumer in live]
        peers = [e for e in edges if e.kind.is_peer]
        runtime = [e for e in edges if not e.kind.is_peer]

        if runtime:
            return RetentionReason.REQUIRED, f"required by {_consumers(runtime)}"
        if peers:
            kind = (
                "optional peer"
                if all(e.kind is EdgeKind.PEER_OPTIONAL for e in peers)
                else "peer"
            )
            return (
                RetentionReason.PEER_SATISFIER,
                f"unique satisfier of {kind} edge from {_consumers(peers)}",
            )
        return RetentionReason.REACHABLE, "reachable through a linked workspace"

    @staticmethod
    def _removal_reason(
        graph: Graph,
        location: str,
        previous: Optional[Graph],
    ) -> Tuple[RetentionReason, str]:
        if previous is None or location not in previous:
            return RetentionReason.UNREACHABLE, "nothing depends on it"

        old_edges = previous.edges_in(location)
        if not old_edges:
            return RetentionReason.UNREACHABLE, "nothing depended on it"

        still_declared: List[DependencyEdge] = [
            edge
            for edge in old_edges
            if any(
                e.name == edge.name and e.kind is edge.kind
                for e in graph.edges_out(edge.consumer)
            )
        ]
        if not still_declared:
            return (
                RetentionReason.EDGE_REMOVED,
                f"edge from {_consumers(old_edges)} no longer exists",
            )

        closer = graph.resolve_edge(still_declared[0])
        where = closer.location if closer is not None else "nowhere"
        return (
            RetentionReason.SHADOWED,
            f"{_consumers(still_declared)} now resolve to {where}",
        )


def _consumers(edges: List[DependencyEdge]) -> str:
    names = sorted({edge.consumer or "(root)" for edge in edges})
    return ", ".join(names)
