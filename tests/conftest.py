"""Shared fixtures: a three-package workspace and two registry snapshots.

The workspace reproduces a real-world hoisting trap. ``packages/web``
installs ``chokidar@^4`` at the root while ``b`` carries an optional peer
on ``chokidar@^3.5.2``, so a correct tree nests ``chokidar@3.6.0`` (and
its own ``glob-parent``/``readdirp``) below ``node_modules/b``. A bump of
an unrelated dependency must leave that nested copy alone.
"""

from __future__ import annotations

import copy
import json
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import pytest

from lockkeeper.core.builder import GraphBuilder
from lockkeeper.core.registry import StaticMetadataProvider
from lockkeeper.models import Graph, InstallNode, Lockfile, Manifest, Package, WorkspaceManifests


def _version(
    name: str,
    version: str,
    dependencies: Optional[Dict[str, str]] = None,
    optional_peers: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    tarball_name = name.rsplit("/", 1)[-1]
    entry: Dict[str, Any] = {
        "dist": {
            "tarball": f"https://registry.npmjs.org/{name}/-/{tarball_name}-{version}.tgz",
            "integrity": f"sha512-{tarball_name}-{version}",
        }
    }
    if dependencies:
        entry["dependencies"] = dependencies
    if optional_peers:
        entry["peerDependencies"] = optional_peers
        entry["peerDependenciesMeta"] = {peer: {"optional": True} for peer in optional_peers}
    return entry


OLD_REGISTRY: Dict[str, Dict[str, Any]] = {
    "@aws-sdk/client-dynamodb": {
        "3.600.0": _version(
            "@aws-sdk/client-dynamodb",
            "3.600.0",
            {"@smithy/types": "^3.0.0", "tslib": "^2.6.2"},
        ),
    },
    "@smithy/types": {"3.0.0": _version("@smithy/types", "3.0.0")},
    "tslib": {"2.6.2": _version("tslib", "2.6.2")},
    "a": {
        "1.0.0": _version(
            "a", "1.0.0", {"glob-parent": "^6.0.2"}, optional_peers={"chokidar": ">=3"}
        ),
    },
    "b": {"1.0.0": _version("b", "1.0.0", optional_peers={"chokidar": "^3.5.2"})},
    "chokidar": {
        "3.6.0": _version(
            "chokidar", "3.6.0", {"glob-parent": "~5.1.2", "readdirp": "~3.6.0"}
        ),
        "4.0.3": _version("chokidar", "4.0.3", {"readdirp": "^4.0.1"}),
    },
    "glob-parent": {
        "5.1.2": _version("glob-parent", "5.1.2"),
        "6.0.2": _version("glob-parent", "6.0.2"),
    },
    "readdirp": {
        "3.6.0": _version("readdirp", "3.6.0"),
        "4.0.1": _version("readdirp", "4.0.1"),
    },
}


def _new_registry() -> Dict[str, Dict[str, Any]]:
    data = copy.deepcopy(OLD_REGISTRY)
    data["@aws-sdk/client-dynamodb"]["3.700.0"] = _version(
        "@aws-sdk/client-dynamodb",
        "3.700.0",
        {"@smithy/core": "^2.5.0", "@smithy/types": "^3.5.0", "tslib": "^2.6.2"},
    )
    data["@smithy/types"]["3.5.0"] = _version("@smithy/types", "3.5.0")
    data["@smithy/core"] = {
        "2.5.0": _version("@smithy/core", "2.5.0", {"tslib": "^2.6.2"})
    }
    return data


NEW_REGISTRY: Dict[str, Dict[str, Any]] = _new_registry()

ROOT_MANIFEST: Dict[str, Any] = {
    "name": "monorepo",
    "version": "1.0.0",
    "private": True,
    "workspaces": ["packages/*"],
}
API_MANIFEST: Dict[str, Any] = {
    "name": "api",
    "version": "1.0.0",
    "dependencies": {"@aws-sdk/client-dynamodb": "^3.600.0", "a": "^1.0.0"},
}
WEB_MANIFEST: Dict[str, Any] = {
    "name": "web",
    "version": "1.0.0",
    "dependencies": {"b": "^1.0.0", "chokidar": "^4.0.0"},
}


@pytest.fixture
def old_registry() -> StaticMetadataProvider:
    return StaticMetadataProvider.from_json(OLD_REGISTRY)


@pytest.fixture
def new_registry() -> StaticMetadataProvider:
    return StaticMetadataProvider.from_json(NEW_REGISTRY)


@pytest.fixture
def manifests() -> WorkspaceManifests:
    return WorkspaceManifests(
        root=Manifest.from_json("", ROOT_MANIFEST),
        members={
            "packages/api": Manifest.from_json("packages/api", API_MANIFEST),
            "packages/web": Manifest.from_json("packages/web", WEB_MANIFEST),
        },
    )


@pytest.fixture
def locked_graph(manifests: WorkspaceManifests, old_registry: StaticMetadataProvider) -> Graph:
    """Tree resolved before client-dynamodb 3.700.0 was published."""
    return GraphBuilder(old_registry).build(manifests).graph


@pytest.fixture
def lockfile(locked_graph: Graph) -> Lockfile:
    return Lockfile.loads(Lockfile.from_graph(locked_graph).dumps())


@pytest.fixture
def project_dir(tmp_path: Path, lockfile: Lockfile) -> Path:
    """The workspace on disk, with its lockfile and a registry snapshot."""
    (tmp_path / "package.json").write_text(json.dumps(ROOT_MANIFEST, indent=2) + "\n")
    for location, manifest in (("packages/api", API_MANIFEST), ("packages/web", WEB_MANIFEST)):
        member = tmp_path / location
        member.mkdir(parents=True)
        (member / "package.json").write_text(json.dumps(manifest, indent=2) + "\n")
    (tmp_path / "package-lock.json").write_text(lockfile.dumps())
    (tmp_path / "registry.json").write_text(json.dumps(NEW_REGISTRY, indent=2))
    return tmp_path


@pytest.fixture
def make_graph() -> Callable[..., Graph]:
    """Build a graph from nodes, adding a workspace root when none is given."""

    def build(*nodes: InstallNode, root: Optional[Package] = None) -> Graph:
        all_nodes = {node.location: node for node in nodes}
        if "" not in all_nodes:
            all_nodes[""] = InstallNode("", root or Package("root", "1.0.0"), workspace=True)
        return Graph(all_nodes)

    return build


@pytest.fixture
def build_with_consumer() -> Callable[[str], Graph]:
    """Build the workspace with ``b`` published under another name."""

    def build(name: str) -> Graph:
        registry = copy.deepcopy(OLD_REGISTRY)
        registry[name] = registry.pop("b")
        web = dict(WEB_MANIFEST, dependencies={name: "^1.0.0", "chokidar": "^4.0.0"})
        manifests = WorkspaceManifests(
            root=Manifest.from_json("", ROOT_MANIFEST),
            members={
                "packages/api": Manifest.from_json("packages/api", API_MANIFEST),
                "packages/web": Manifest.from_json("packages/web", web),
            },
        )
        return GraphBuilder(StaticMetadataProvider.from_json(registry)).build(manifests).graph

    return build
