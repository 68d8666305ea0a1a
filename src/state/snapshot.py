"""BGP Sync Agent - Snapshot Diff

A snapshot is the flattened key/value view of the desired configuration at
one poll instant. Values are compared as opaque strings.
"""
from dataclasses import dataclass, field
from typing import Dict, Set

Snapshot = Dict[str, str]


@dataclass
class Delta:
    """Keys of two snapshots partitioned by what happened to them."""
    added: Set[str] = field(default_factory=set)
    updated: Set[str] = field(default_factory=set)
    removed: Set[str] = field(default_factory=set)
    unchanged: Set[str] = field(default_factory=set)

    @property
    def changed(self) -> Set[str]:
        return self.added | self.updated | self.removed

    def is_empty(self) -> bool:
        return not (self.added or self.updated or self.removed)

    def summary(self) -> str:
        return (
            f"+{len(self.added)} ~{len(self.updated)} "
            f"-{len(self.removed)} ={len(self.unchanged)}"
        )


def diff(previous: Snapshot, current: Snapshot) -> Delta:
    delta = Delta()
    for key, last in previous.items():
        if key not in current:
            delta.removed.add(key)
        elif current[key] != last:
            delta.updated.add(key)
        else:
            delta.unchanged.add(key)
    for key in current:
        if key not in previous:
            delta.added.add(key)
    return delta
