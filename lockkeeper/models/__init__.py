"""
Unified data model exports for lockkeeper.

This module re-exports all core data models to provide a stable and
convenient public API. Users can import models directly from
``lockkeeper.models`` instead of individual submodules.

Example:
    >>> from lockkeeper.models import Graph, Lockfile, Package
"""

from __future__ import annotations

from lockkeeper.models.package import Package, PeerDependency
from lockkeeper.models.conflict import Conflict, ConflictSet
from lockkeeper.models.manifest import Manifest, WorkspaceManifests
from lockkeeper.models.lockfile import LockEntry, Lockfile
from lockkeeper.models.graph import (
    DependencyEdge,
    EdgeKind,
    Graph,
    InstallNode,
    NodeFlags,
    UnresolvedEdge,
)

__all__ = [
    "Package",
    "PeerDependency",
    "Conflict",
    "ConflictSet",
    "Manifest",
    "WorkspaceManifests",
    "LockEntry",
    "Lockfile",
    "DependencyEdge",
    "EdgeKind",
    "Graph",
    "InstallNode",
    "NodeFlags",
    "UnresolvedEdge",
]
