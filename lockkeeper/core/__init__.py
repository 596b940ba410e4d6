"""
Core functionality exports for lockkeeper.

This module provides convenient access to the core subsystems of
lockkeeper. Importing from here keeps user-facing imports clean and
stable:

    from lockkeeper.core import GraphBuilder, PartialUpdater, Validator
"""

from __future__ import annotations

from lockkeeper.core.manifest_loader import ManifestLoader, load_workspace
from lockkeeper.core.registry import (
    ChainedMetadataProvider,
    GraphMetadataProvider,
    MetadataProvider,
    StaticMetadataProvider,
)
from lockkeeper.core.data_store import NpmDataStore, NpmPackageData
from lockkeeper.core.builder import BuildResult, GraphBuilder
from lockkeeper.core.retention import RetentionDecision, RetentionPolicy
from lockkeeper.core.validator import ValidationResult, Validator
from lockkeeper.core.diff import EntryChange, LockfileDiff, diff_lockfiles
from lockkeeper.core.updater import PartialUpdater, UpdateResult

__all__ = [
    "ManifestLoader",
    "load_workspace",
    "MetadataProvider",
    "StaticMetadataProvider",
    "GraphMetadataProvider",
    "ChainedMetadataProvider",
    "NpmDataStore",
    "NpmPackageData",
    "GraphBuilder",
    "BuildResult",
    "RetentionPolicy",
    "RetentionDecision",
    "Validator",
    "ValidationResult",
    "EntryChange",
    "LockfileDiff",
    "diff_lockfiles",
    "PartialUpdater",
    "UpdateResult",
]
