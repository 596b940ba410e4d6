"""
Version comparison utilities for lockkeeper.

This module wraps :mod:`semantic_version` with the npm range semantics
used throughout lockkeeper: constraint parsing, satisfaction checks,
highest-satisfying selection and classification of version changes.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Iterable, Optional, Tuple

import semantic_version

from lockkeeper.constants import NON_REGISTRY_PREFIXES


@lru_cache(maxsize=4096)
def parse_constraint(constraint: str) -> semantic_version.NpmSpec:
    """Parse an npm range expression.

    Empty strings and ``latest`` are treated as ``*``.

    Raises:
        ValueError: The expression is not a valid npm range.
    """
    text = constraint.strip()
    if not text or text == "latest":
        text = "*"
    return semantic_version.NpmSpec(text)


@lru_cache(maxsize=8192)
def parse_version(value: str) -> Optional[semantic_version.Version]:
    """Parse a version string, returning ``None`` when it is not semver."""
    try:
        return semantic_version.Version(value.strip().lstrip("v="))
    except ValueError:
        return None


def is_registry_constraint(constraint: str) -> bool:
    """Return True if ``constraint`` is a plain semver range."""
    text = constraint.strip()
    if text.startswith(tuple(NON_REGISTRY_PREFIXES)):
        return False
    try:
        parse_constraint(text)
    except ValueError:
        return False
    return True


def satisfies(version: Optional[str], constraint: str) -> bool:
    """Check whether ``version`` satisfies the npm range ``constraint``.

    Invalid versions and invalid ranges never satisfy.

    Examples:
        >>> satisfies("3.6.0", "^3.5.2")
        True
        >>> satisfies("4.0.3", "^3.5.2")
        False
    """
    if version is None:
        return False
    parsed = parse_version(version)
    if parsed is None:
        return False
    try:
        spec = parse_constraint(constraint)
    except ValueError:
        return False
    return spec.match(parsed)


def max_satisfying(versions: Iterable[str], constraint: str) -> Optional[str]:
    """Return the highest version in ``versions`` that satisfies ``constraint``."""
    try:
        spec = parse_constraint(constraint)
    except ValueError:
        return None

    best: Optional[Tuple[semantic_version.Version, str]] = None
    for raw in versions:
        parsed = parse_version(raw)
        if parsed is None or not spec.match(parsed):
            continue
        if best is None or parsed > best[0]:
            best = (parsed, raw)
    return best[1] if best else None


def sort_versions(versions: Iterable[str], *, reverse: bool = False) -> list:
    """Sort version strings by semver precedence, dropping invalid ones."""
    parsed = [(parse_version(v), v) for v in versions]
    valid = [(p, v) for p, v in parsed if p is not None]
    valid.sort(key=lambda item: item[0], reverse=reverse)
    return [v for _, v in valid]


def exact_constraint(version: str) -> bool:
    """Return True if ``version`` is a bare version rather than a range."""
    return parse_version(version) is not None and version.strip()[0].isdigit()


def get_update_type(
    current_version: Optional[str],
    target_version: Optional[str],
) -> str:
    """Determine the semantic update type between two versions.

    Args:
        current_version: Previously locked version, or ``None`` if absent.
        target_version: Newly locked version, or ``None`` if removed.

    Returns:
        One of ``"new"``, ``"removed"``, ``"same"``, ``"downgrade"``,
        ``"major"``, ``"minor"``, ``"patch"``, ``"update"`` or
        ``"unknown"``.

    Examples:
        >>> get_update_type("3.600.0", "3.700.0")
        'minor'
        >>> get_update_type(None, "1.0.0")
        'new'
    """
    if current_version is None and target_version is None:
        return "unknown"

    if current_version is None:
        return "new"

    if target_version is None:
        return "removed"

    current = parse_version(current_version)
    target = parse_version(target_version)
    if current is None or target is None:
        return "unknown"

    if target == current:
        return "same"

    if target < current:
        return "downgrade"

    if current.major != target.major:
        return "major"

    if current.minor != target.minor:
        return "minor"

    if current.patch != target.patch:
        return "patch"

    # Pre-release -> release or build metadata only
    return "update"
