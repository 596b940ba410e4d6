"""
Version conflict data models for lockkeeper.

A conflict arises when two consumers visible from the same scope need
mutually incompatible versions of one package. Conflicts are not errors:
the resolver nests a duplicate install below the consumer that needs the
other version and records a :class:`Conflict` so the duplication is
visible in reports.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional

from lockkeeper.utils.version_utils import sort_versions


@dataclass(frozen=True)
class Conflict:
    """A duplicate install nested because of a version conflict.

    Args:
        consumer: Location of the package whose edge needed the duplicate.
        package_name: Name of the duplicated package.
        required_spec: Constraint declared by the consumer.
        nested_version: Version installed for the consumer.
        nested_location: Where that version was installed.
        shadowed_version: Version installed in an outer scope that did not
            satisfy the consumer, if any.
    """

    consumer: str
    package_name: str
    required_spec: str
    nested_version: str
    nested_location: str
    shadowed_version: Optional[str] = None

    def to_display_string(self) -> str:
        """Return a human-readable description of the conflict."""
        consumer = self.consumer or "(root)"
        text = (
            f"{consumer} requires {self.package_name}@{self.required_spec}; "
            f"nested {self.package_name}@{self.nested_version} at {self.nested_location}"
        )
        if self.shadowed_version:
            text += f" (outer scope has {self.shadowed_version})"
        return text

    def to_short_string(self) -> str:
        """Return a compact conflict summary."""
        return f"{self.package_name}@{self.nested_version} nested for {self.consumer or '(root)'}"

    def to_json(self) -> Dict[str, Optional[str]]:
        """Return a JSON-serializable representation."""
        return {
            "consumer": self.consumer,
            "package": self.package_name,
            "required_spec": self.required_spec,
            "nested_version": self.nested_version,
            "nested_location": self.nested_location,
            "shadowed_version": self.shadowed_version,
        }

    def __str__(self) -> str:
        return self.to_display_string()


@dataclass
class ConflictSet:
    """Collection of conflicts affecting a single package.

    Args:
        package_name: Name of the affected package.
        conflicts: Conflicts associated with this package.
    """

    package_name: str
    conflicts: List[Conflict] = field(default_factory=list)

    def add_conflict(self, conflict: Conflict) -> None:
        """Add a conflict to the set, ignoring exact duplicates."""
        if conflict not in self.conflicts:
            self.conflicts.append(conflict)

    def has_conflicts(self) -> bool:
        """Return True if any conflicts exist."""
        return bool(self.conflicts)

    def installed_versions(self) -> List[str]:
        """Return every version involved, lowest first."""
        versions = {c.nested_version for c in self.conflicts}
        versions.update(c.shadowed_version for c in self.conflicts if c.shadowed_version)
        return sort_versions(versions)

    def __len__(self) -> int:
        return len(self.conflicts)

    def __iter__(self) -> Iterator[Conflict]:
        return iter(self.conflicts)
