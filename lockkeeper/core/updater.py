"""Targeted version bumps for lockkeeper.

:class:`PartialUpdater` changes one dependency of one workspace member
and re-resolves only what that change can affect:

1. The member's declared constraint is replaced.
2. If the installed satisfier still satisfies, nothing else moves.
3. Otherwise the new version replaces the old satisfier in place when
   every dependent accepts it, or is nested closer to the member when
   other dependents still need the old version.
4. Transitive requirements of newly placed nodes are resolved with the
   builder's placement rules. Existing nodes are never re-placed.
5. Only the old satisfier's subgraph is considered for removal, and the
   :class:`~lockkeeper.core.retention.RetentionPolicy` decides.
6. The result is validated; a tree that would fail a clean install is
   rejected with :exc:`~lockkeeper.exceptions.BrokenLockfile`.

The whole tree is never rebuilt from manifests, so installs that serve
unrelated consumers (for example a nested optional peer) keep their
presence and scope.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field, replace
from typing import Deque, List, Optional, Set

from lockkeeper.core.builder import Placer
from lockkeeper.core.diff import LockfileDiff, diff_lockfiles
from lockkeeper.core.registry import MetadataProvider
from lockkeeper.core.retention import RetentionDecision, RetentionPolicy
from lockkeeper.core.validator import ValidationResult, Validator
from lockkeeper.exceptions import BrokenLockfile, UpdateError
from lockkeeper.models.conflict import Conflict
from lockkeeper.models.graph import Graph, InstallNode, declared_edges
from lockkeeper.models.lockfile import Lockfile
from lockkeeper.utils.logger import get_logger
from lockkeeper.utils.version_utils import exact_constraint, is_registry_constraint

logger = get_logger("updater")

__all__ = ["PartialUpdater", "UpdateResult", "bump_constraint", "find_workspace"]


@dataclass
class UpdateResult:
    """Outcome of a partial update.

    Attributes:
        graph: The validated tree after the update.
        lockfile: Serialized form of ``graph``.
        diff: Changes relative to the input lockfile.
        removed: Locations pruned by the retention policy.
        retained: Retention decisions that kept a candidate.
        warnings: Non-fatal notes (nested duplicates, extraneous nodes).
        conflicts: Nested duplicates created by the update.
        validation: The validator's report.
        package_name: Bumped package.
        workspace: Location of the member whose manifest changed.
        old_constraint: Constraint before the bump.
        new_constraint: Constraint after the bump.
    """

    graph: Graph
    lockfile: Lockfile
    diff: LockfileDiff
    removed: List[str] = field(default_factory=list)
    retained: List[RetentionDecision] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    conflicts: List[Conflict] = field(default_factory=list)
    validation: Optional[ValidationResult] = None
    package_name: str = ""
    workspace: str = ""
    old_constraint: str = ""
    new_constraint: str = ""

    @property
    def changed(self) -> bool:
        return not self.diff.is_empty


class PartialUpdater:
    """Apply a version bump without rebuilding the whole tree.

    Args:
        provider: Metadata for versions not already installed.
        policy: Retention policy (default :class:`RetentionPolicy`).
        validator: Validator run before accepting a result.

    Example::

        >>> updater = PartialUpdater(provider)
        >>> result = updater.update(
        ...     graph, "@aws-sdk/client-dynamodb", "packages/api", "3.700.0",
        ...     lockfile=lockfile,
        ... )
        >>> result.diff.summary()
        '1 added, 0 removed, 3 changed'
    """

    def __init__(
        self,
        provider: MetadataProvider,
        *,
        policy: Optional[RetentionPolicy] = None,
        validator: Optional[Validator] = None,
    ) -> None:
        self.provider = provider
        self.policy = policy or RetentionPolicy()
        self.validator = validator or Validator()

    def update(
        self,
        graph: Graph,
        package_name: str,
        workspace: str,
        version: str,
        *,
        lockfile: Optional[Lockfile] = None,
    ) -> UpdateResult:
        """Bump ``package_name`` in ``workspace`` to ``version``.

        Args:
            graph: Current tree.
            package_name: Dependency to bump.
            workspace: Member location or package name (``""``/``"."`` for
                the root).
            version: New version (keeps the old range operator) or range.
            lockfile: Lockfile ``graph`` was read from, for stable output.

        Raises:
            UpdateError: Unknown member, undeclared dependency or invalid
                version.
            UnsatisfiableConstraint: The new constraint cannot be placed.
            BrokenLockfile: The resulting tree fails validation.
        """
        member = find_workspace(graph, workspace)
        package = member.package

        if package_name in package.dependencies:
            dev = False
            old_constraint = package.dependencies[package_name]
        elif package_name in package.dev_dependencies:
            dev = True
            old_constraint = package.dev_dependencies[package_name]
        else:
            raise UpdateError(
                f"{member.name or '(root)'} does not depend on {package_name}",
                package_name=package_name,
                workspace=member.location,
            )

        constraint = bump_constraint(old_constraint, version)
        if not is_registry_constraint(constraint):
            raise UpdateError(
                f"Invalid version {version!r} for {package_name}",
                package_name=package_name,
                workspace=member.location,
            )

        logger.info(
            "Updating %s in %s: %s -> %s",
            package_name,
            member.location or "(root)",
            old_constraint,
            constraint,
        )

        broken_before = {edge for edge in graph.edges() if not graph.is_satisfied(edge)}
        old_target = graph.resolve(member.location, package_name)

        placer = Placer(graph.nodes, self.provider, previous=graph)
        placer.put(
            replace(member, package=package.with_dependency(package_name, constraint, dev=dev))
        )

        edge = next(
            e for e in declared_edges(placer.nodes[member.location]) if e.name == package_name
        )
        placed = placer.ensure(edge)
        candidates: Set[str] = set()

        if placed is None:
            logger.debug("%s still satisfies %s; manifest change only", old_target, constraint)
        else:
            placer.settle([placed], skip=broken_before)
            starts = list(placer.replaced)
            if old_target is not None and not old_target.workspace:
                starts.append(old_target.location)
            for start in starts:
                candidates.update(_affected(graph, start))

        new_graph, decisions = self.policy.apply(
            placer.snapshot(), candidates, previous=graph
        )

        validation = self.validator.validate(new_graph, previous=graph)
        if not validation.ok:
            logger.error(
                "Rejecting update of %s: %d unresolved edge(s)",
                package_name,
                len(validation.unresolved),
            )
            raise BrokenLockfile(validation.unresolved)

        base = lockfile if lockfile is not None else Lockfile.from_graph(graph)
        new_lockfile = Lockfile.from_graph(new_graph, previous=base)
        diff = diff_lockfiles(base, new_lockfile)

        warnings = [c.to_display_string() for c in placer.conflicts]
        warnings.extend(validation.warnings)

        return UpdateResult(
            graph=new_graph,
            lockfile=new_lockfile,
            diff=diff,
            removed=[d.location for d in decisions if not d.keep],
            retained=[d for d in decisions if d.keep],
            warnings=warnings,
            conflicts=list(placer.conflicts),
            validation=validation,
            package_name=package_name,
            workspace=member.location,
            old_constraint=old_constraint,
            new_constraint=constraint,
        )


def find_workspace(graph: Graph, selector: str) -> InstallNode:
    """Return the root or workspace node matching ``selector``.

    ``selector`` may be ``""``/``"."``, a member location or a package
    name.

    Raises:
        UpdateError: Nothing matches.
    """
    root = graph.root
    if selector in ("", ".") or (root.name and selector == root.name):
        return root

    normalized = selector.strip("/")
    if normalized.startswith("./"):
        normalized = normalized[2:]
    node = graph.get(normalized)
    if node is not None and node.workspace:
        return node

    for member in graph.workspaces:
        if member.name == selector:
            return member
    raise UpdateError(f"Unknown workspace: {selector}", workspace=selector)


def bump_constraint(old: str, version: str) -> str:
    """Return the constraint to write for a bump to ``version``.

    A bare version keeps the old constraint's ``^``/``~`` operator; a
    range is used as given.

    Examples:
        >>> bump_constraint("^3.600.0", "3.700.0")
        '^3.700.0'
        >>> bump_constraint("3.600.0", "3.700.0")
        '3.700.0'
        >>> bump_constraint("^1.0.0", ">=2 <4")
        '>=2 <4'
    """
    new = version.strip()
    if not exact_constraint(new):
        return new
    operator = old.strip()[:1]
    if operator in ("^", "~"):
        return f"{operator}{new}"
    return new


def _affected(graph: Graph, start: str) -> Set[str]:
    """Nodes reachable from ``start`` plus everything nested below them.

    Traversal stops at workspace members.
    """
    seen: Set[str] = set()
    queue: Deque[str] = deque([start])
    while queue:
        location = queue.popleft()
        if location in seen:
            continue
        node = graph.get(location)
        if node is None or node.workspace:
            continue
        seen.add(location)
        for edge in graph.edges_out(location):
            target = graph.resolve_edge(edge)
            if target is not None and not target.workspace:
                queue.append(target.location)

    affected: Set[str] = set()
    for location in seen:
        affected.update(graph.subtree(location))
    return affected
