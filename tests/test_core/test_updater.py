from __future__ import annotations

import pytest

from lockkeeper.core.builder import GraphBuilder
from lockkeeper.core.registry import (
    ChainedMetadataProvider,
    GraphMetadataProvider,
    StaticMetadataProvider,
)
from lockkeeper.core.retention import RetentionReason
from lockkeeper.core.updater import PartialUpdater, bump_constraint, find_workspace
from lockkeeper.exceptions import BrokenLockfile, UnsatisfiableConstraint, UpdateError
from lockkeeper.models import Graph, Lockfile, Manifest, Package, WorkspaceManifests

NESTED = (
    "node_modules/b/node_modules/chokidar",
    "node_modules/b/node_modules/glob-parent",
    "node_modules/b/node_modules/readdirp",
)


@pytest.fixture
def updater(locked_graph: Graph, new_registry: StaticMetadataProvider) -> PartialUpdater:
    return PartialUpdater(
        ChainedMetadataProvider(GraphMetadataProvider(locked_graph), new_registry)
    )


@pytest.fixture
def chain_registry() -> StaticMetadataProvider:
    """``x@1`` needs ``y``; ``x@2`` does not."""
    return StaticMetadataProvider(
        [
            Package("x", "1.0.0", dependencies={"y": "^1.0.0"}),
            Package("x", "2.0.0"),
            Package("y", "1.0.0"),
        ]
    )


@pytest.fixture
def chain_graph(chain_registry: StaticMetadataProvider) -> Graph:
    manifests = WorkspaceManifests(
        root=Manifest.from_json(
            "", {"name": "app", "version": "1.0.0", "dependencies": {"x": "^1.0.0"}}
        )
    )
    return GraphBuilder(chain_registry).build(manifests).graph


@pytest.mark.integration
class TestUnrelatedBump:
    """Bumping client-dynamodb must not disturb the nested chokidar."""

    @pytest.fixture
    def result(self, updater: PartialUpdater, locked_graph: Graph, lockfile: Lockfile):
        return updater.update(
            locked_graph,
            "@aws-sdk/client-dynamodb",
            "packages/api",
            "3.700.0",
            lockfile=lockfile,
        )

    def test_constraint_bumped(self, result) -> None:
        assert result.old_constraint == "^3.600.0"
        assert result.new_constraint == "^3.700.0"
        assert result.workspace == "packages/api"
        assert result.graph["packages/api"].package.dependencies[
            "@aws-sdk/client-dynamodb"
        ] == "^3.700.0"

    def test_replaced_in_place(self, result) -> None:
        graph = result.graph

        assert graph["node_modules/@aws-sdk/client-dynamodb"].version == "3.700.0"
        assert graph["node_modules/@smithy/types"].version == "3.5.0"
        assert graph["node_modules/@smithy/core"].version == "2.5.0"
        assert result.conflicts == []

    def test_nested_optional_peer_untouched(self, result, lockfile: Lockfile) -> None:
        for location in NESTED:
            assert location in result.graph
            assert (
                result.lockfile.packages[location].to_json()
                == lockfile.packages[location].to_json()
            )

    def test_minimal_diff(self, result) -> None:
        assert result.diff.summary() == "1 added, 0 removed, 3 changed"
        assert [c.location for c in result.diff.added] == ["node_modules/@smithy/core"]
        assert sorted(c.location for c in result.diff.changed) == [
            "node_modules/@aws-sdk/client-dynamodb",
            "node_modules/@smithy/types",
            "packages/api",
        ]
        assert result.changed
        assert result.removed == []

    def test_validated(self, result) -> None:
        assert result.validation.ok
        assert all(result.graph.is_satisfied(edge) for edge in result.graph.edges())

    def test_retained_candidates_explained(self, result) -> None:
        reasons = {d.location: d.reason for d in result.retained}

        assert reasons["node_modules/tslib"] is RetentionReason.REQUIRED

    def test_without_lockfile(self, updater: PartialUpdater, locked_graph: Graph) -> None:
        result = updater.update(
            locked_graph, "@aws-sdk/client-dynamodb", "api", "3.700.0"
        )

        assert result.diff.summary() == "1 added, 0 removed, 3 changed"


@pytest.mark.integration
class TestDowngrade:
    def test_root_replaced_and_dependency_nested(
        self, updater: PartialUpdater, locked_graph: Graph
    ) -> None:
        result = updater.update(locked_graph, "chokidar", "web", "^3.5.2")

        graph = result.graph
        assert graph["node_modules/chokidar"].version == "3.6.0"
        assert graph["node_modules/readdirp"].version == "3.6.0"
        assert graph["node_modules/chokidar/node_modules/glob-parent"].version == "5.1.2"
        assert graph["node_modules/glob-parent"].version == "6.0.2"
        assert [c.nested_location for c in result.conflicts] == [
            "node_modules/chokidar/node_modules/glob-parent"
        ]
        assert all(location in graph for location in NESTED)
        assert result.diff.summary() == "1 added, 0 removed, 3 changed"


@pytest.mark.unit
class TestManifestOnly:
    def test_satisfied_bump_changes_only_manifest(
        self, updater: PartialUpdater, locked_graph: Graph, lockfile: Lockfile
    ) -> None:
        result = updater.update(
            locked_graph, "chokidar", "packages/web", "4.0.3", lockfile=lockfile
        )

        assert result.new_constraint == "^4.0.3"
        assert [c.location for c in result.diff.changed] == ["packages/web"]
        assert result.diff.summary() == "0 added, 0 removed, 1 changed"
        assert result.retained == []


@pytest.mark.unit
class TestPruning:
    def test_orphaned_dependency_removed(
        self, chain_graph: Graph, chain_registry: StaticMetadataProvider
    ) -> None:
        result = PartialUpdater(chain_registry).update(chain_graph, "x", "", "2.0.0")

        assert "node_modules/y" not in result.graph
        assert result.removed == ["node_modules/y"]
        assert result.graph["node_modules/x"].version == "2.0.0"
        assert [c.location for c in result.diff.removed] == ["node_modules/y"]

    def test_survivor_explained(
        self, chain_graph: Graph, chain_registry: StaticMetadataProvider
    ) -> None:
        result = PartialUpdater(chain_registry).update(chain_graph, "x", ".", "^2.0.0")

        decisions = {d.location: d for d in result.retained}
        assert list(decisions) == ["node_modules/x"]
        assert decisions["node_modules/x"].reason is RetentionReason.REQUIRED
        assert decisions["node_modules/x"].detail == "required by (root)"

    def test_unreachable_consumer_does_not_block_hoist(self) -> None:
        provider = StaticMetadataProvider(
            [
                Package("x", "1.0.0", dependencies={"z": "^1.0.0"}),
                Package("x", "2.0.0", dependencies={"y": "^2.0.0"}),
                Package("z", "1.0.0", dependencies={"y": "^1.0.0"}),
                Package("y", "1.0.0"),
                Package("y", "2.0.0"),
            ]
        )
        manifests = WorkspaceManifests(
            root=Manifest.from_json(
                "", {"name": "app", "version": "1.0.0", "dependencies": {"x": "^1.0.0"}}
            )
        )
        graph = GraphBuilder(provider).build(manifests).graph

        result = PartialUpdater(provider).update(graph, "x", "", "2.0.0")

        assert {node.location: node.version for node in result.graph} == {
            "": "1.0.0",
            "node_modules/x": "2.0.0",
            "node_modules/y": "2.0.0",
        }
        assert result.removed == ["node_modules/z"]
        assert result.conflicts == []


@pytest.mark.unit
class TestRejections:
    def test_broken_input_is_rejected(
        self, updater: PartialUpdater, locked_graph: Graph
    ) -> None:
        broken = locked_graph.evolve(remove=NESTED)

        with pytest.raises(BrokenLockfile) as exc_info:
            updater.update(broken, "@aws-sdk/client-dynamodb", "packages/api", "3.700.0")

        assert [edge.describe() for edge in exc_info.value.unresolved] == [
            "Invalid: lock file's chokidar@4.0.3 does not satisfy chokidar@^3.5.2"
        ]

    def test_unpublished_version(self, updater: PartialUpdater, locked_graph: Graph) -> None:
        with pytest.raises(UnsatisfiableConstraint) as exc_info:
            updater.update(locked_graph, "@aws-sdk/client-dynamodb", "api", "9.9.9")

        assert exc_info.value.constraint == "^9.9.9"
        assert exc_info.value.consumer == "packages/api"

    def test_undeclared_dependency(self, updater: PartialUpdater, locked_graph: Graph) -> None:
        with pytest.raises(UpdateError, match="api does not depend on left-pad"):
            updater.update(locked_graph, "left-pad", "api", "1.0.0")

    def test_unknown_workspace(self, updater: PartialUpdater, locked_graph: Graph) -> None:
        with pytest.raises(UpdateError, match="Unknown workspace: docs"):
            updater.update(locked_graph, "chokidar", "docs", "4.0.3")

    def test_non_registry_version(self, updater: PartialUpdater, locked_graph: Graph) -> None:
        with pytest.raises(UpdateError, match="Invalid version"):
            updater.update(locked_graph, "chokidar", "web", "file:../chokidar")


@pytest.mark.unit
class TestHelpers:
    @pytest.mark.parametrize(
        "old,version,expected",
        [
            ("^3.600.0", "3.700.0", "^3.700.0"),
            ("~5.1.2", "5.1.3", "~5.1.3"),
            ("3.600.0", "3.700.0", "3.700.0"),
            (">=1", "2.0.0", "2.0.0"),
            ("^1.0.0", ">=2 <4", ">=2 <4"),
            ("^1.0.0", " 2.0.0 ", "^2.0.0"),
        ],
    )
    def test_bump_constraint(self, old: str, version: str, expected: str) -> None:
        assert bump_constraint(old, version) == expected

    @pytest.mark.parametrize(
        "selector,location",
        [
            ("", ""),
            (".", ""),
            ("monorepo", ""),
            ("packages/api", "packages/api"),
            ("./packages/api/", "packages/api"),
            ("web", "packages/web"),
        ],
    )
    def test_find_workspace(self, locked_graph: Graph, selector: str, location: str) -> None:
        assert find_workspace(locked_graph, selector).location == location

    def test_find_workspace_ignores_installed_packages(self, locked_graph: Graph) -> None:
        with pytest.raises(UpdateError):
            find_workspace(locked_graph, "node_modules/a")
