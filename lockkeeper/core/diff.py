"""Structural diff between two lockfile snapshots.

Typical usage::

    diff = diff_lockfiles(old_lockfile, new_lockfile)
    for change in diff.changed:
        print(change.location, change.old_version, "->", change.new_version)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from lockkeeper.models.graph import name_from_location
from lockkeeper.models.lockfile import LockEntry, Lockfile
from lockkeeper.utils.version_utils import get_update_type

__all__ = ["EntryChange", "LockfileDiff", "diff_lockfiles"]

_FLAGS = ("dev", "optional", "peer")


@dataclass(frozen=True)
class EntryChange:
    """A difference at one install location.

    Attributes:
        location: Lockfile key.
        name: Package name.
        old_version: Version before (``None`` when added).
        new_version: Version after (``None`` when removed).
        update_type: Classification from
            :func:`~lockkeeper.utils.version_utils.get_update_type`.
        flag_changes: ``flag -> (before, after)`` for changed flags.
        fields: Other entry fields whose content changed.
    """

    location: str
    name: str
    old_version: Optional[str]
    new_version: Optional[str]
    update_type: str
    flag_changes: Dict[str, Tuple[bool, bool]] = field(default_factory=dict)
    fields: Tuple[str, ...] = ()

    def to_json(self) -> Dict[str, Any]:
        return {
            "location": self.location,
            "name": self.name,
            "old_version": self.old_version,
            "new_version": self.new_version,
            "update_type": self.update_type,
            "flags": {k: list(v) for k, v in self.flag_changes.items()},
            "fields": list(self.fields),
        }


@dataclass
class LockfileDiff:
    """Added, removed and changed install paths."""

    added: List[EntryChange] = field(default_factory=list)
    removed: List[EntryChange] = field(default_factory=list)
    changed: List[EntryChange] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.removed or self.changed)

    def __len__(self) -> int:
        return len(self.added) + len(self.removed) + len(self.changed)

    def all_changes(self) -> List[Tuple[str, EntryChange]]:
        """Every change tagged ``added``/``removed``/``changed``, in location order."""
        tagged = (
            [("added", c) for c in self.added]
            + [("removed", c) for c in self.removed]
            + [("changed", c) for c in self.changed]
        )
        return sorted(tagged, key=lambda item: item[1].location)

    def summary(self) -> str:
        return (
            f"{len(self.added)} added, {len(self.removed)} removed, "
            f"{len(self.changed)} changed"
        )

    def to_json(self) -> Dict[str, Any]:
        return {
            "added": [c.to_json() for c in self.added],
            "removed": [c.to_json() for c in self.removed],
            "changed": [c.to_json() for c in self.changed],
        }


def diff_lockfiles(old: Lockfile, new: Lockfile) -> LockfileDiff:
    """Compare two lockfiles location by location."""
    diff = LockfileDiff()

    for location, entry in new.packages.items():
        before = old.packages.get(location)
        if before is None:
            diff.added.append(
                EntryChange(
                    location,
                    _entry_name(location, entry),
                    None,
                    entry.version or None,
                    get_update_type(None, entry.version or None),
                )
            )
            continue

        old_json = before.to_json()
        new_json = entry.to_json()
        if old_json == new_json:
            continue

        flag_changes = {
            flag: (getattr(before, flag), getattr(entry, flag))
            for flag in _FLAGS
            if getattr(before, flag) != getattr(entry, flag)
        }
        fields = tuple(
            sorted(
                key
                for key in set(old_json) | set(new_json)
                if key not in _FLAGS + ("version",) and old_json.get(key) != new_json.get(key)
            )
        )
        diff.changed.append(
            EntryChange(
                location,
                _entry_name(location, entry),
                before.version or None,
                entry.version or None,
                get_update_type(before.version or None, entry.version or None),
                flag_changes,
                fields,
            )
        )

    for location, entry in old.packages.items():
        if location not in new.packages:
            diff.removed.append(
                EntryChange(
                    location,
                    _entry_name(location, entry),
                    entry.version or None,
                    None,
                    "removed",
                )
            )

    return diff


def _entry_name(location: str, entry: LockEntry) -> str:
    if entry.name:
        return entry.name
    if location == "":
        return "(root)"
    return name_from_location(location)
