"""Clean-install consistency check for lockkeeper.

:class:`Validator` replays what ``npm ci`` checks before trusting a
lockfile: every required edge of every reachable node must resolve to a
node whose version satisfies it, and every *active* optional peer edge
(one whose name is visible to the consumer) must be satisfied too.

When the tree before the change is supplied, a missing satisfier is
reported with the version the old tree used, which gives the familiar
``Missing: chokidar@3.6.0 from lock file`` message.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from lockkeeper.exceptions import BrokenLockfile
from lockkeeper.models.graph import Graph, UnresolvedEdge
from lockkeeper.utils.logger import get_logger
from lockkeeper.utils.version_utils import satisfies

logger = get_logger("validator")

__all__ = ["Validator", "ValidationResult"]


@dataclass
class ValidationResult:
    """Outcome of a validation run.

    Attributes:
        unresolved: Edges without a valid satisfier.
        extraneous: Locations nothing reaches (non-fatal).
        checked_edges: Number of edges inspected.
    """

    unresolved: List[UnresolvedEdge] = field(default_factory=list)
    extraneous: List[str] = field(default_factory=list)
    checked_edges: int = 0

    @property
    def ok(self) -> bool:
        return not self.unresolved

    @property
    def messages(self) -> List[str]:
        return [edge.describe() for edge in self.unresolved]

    @property
    def warnings(self) -> List[str]:
        return [f"Extraneous: {location}" for location in self.extraneous]

    def raise_for_errors(self) -> None:
        """Raise :exc:`BrokenLockfile` when any edge is unresolved."""
        if self.unresolved:
            raise BrokenLockfile(self.unresolved)

    def to_json(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "checked_edges": self.checked_edges,
            "unresolved": [edge.to_json() for edge in self.unresolved],
            "extraneous": list(self.extraneous),
        }


class Validator:
    """Check that a graph would pass a clean install."""

    def validate(self, graph: Graph, previous: Optional[Graph] = None) -> ValidationResult:
        """Inspect every edge of every node reachable from the root.

        Args:
            graph: Tree to check.
            previous: Tree before the change, used to name the version a
                missing satisfier used to have.
        """
        result = ValidationResult()
        live = graph.reachable()

        for location in sorted(live):
            for edge in graph.edges_out(location):
                result.checked_edges += 1
                if graph.is_satisfied(edge):
                    continue

                found = graph.resolve_edge(edge)
                expected: Optional[str] = None
                if previous is not None and edge.consumer in previous:
                    old = previous.resolve_edge(edge)
                    if (
                        old is not None
                        and not old.workspace
                        and satisfies(old.version, edge.constraint)
                        and (found is None or found.version != old.version)
                    ):
                        expected = old.version

                result.unresolved.append(
                    UnresolvedEdge(
                        edge,
                        found=found.version if found is not None else None,
                        expected=expected,
                    )
                )

        result.extraneous = sorted(loc for loc in graph.nodes if loc not in live)

        for unresolved in result.unresolved:
            logger.error(
                "%s (required by %s)",
                unresolved.describe(),
                unresolved.consumer or "(root)",
            )
        for warning in result.warnings:
            logger.warning(warning)
        logger.debug(
            "Validated %d edge(s): %d unresolved",
            result.checked_edges,
            len(result.unresolved),
        )
        return result

    def ensure_valid(self, graph: Graph, previous: Optional[Graph] = None) -> ValidationResult:
        """Validate and raise :exc:`BrokenLockfile` on failure."""
        result = self.validate(graph, previous)
        result.raise_for_errors()
        return result
