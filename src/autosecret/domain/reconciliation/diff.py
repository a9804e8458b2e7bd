"""Compare desired entries with stored tags.

The diff is pure: it reads ``ActualState`` and never mutates it. Only managed
tags (those carrying ``TAG_PREFIX``) are ever considered for removal; foreign
tags and values are invisible here.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from autosecret.domain.generation import content_hash
from autosecret.domain.model import EntryStatus

if TYPE_CHECKING:
    from collections.abc import Mapping

    from autosecret.domain.model import ActualState, DesiredEntry


@dataclass(frozen=True, slots=True)
class PendingWrite:
    entry: DesiredEntry
    status: EntryStatus
    digest: str


@dataclass(frozen=True, slots=True)
class SecretDiff:
    """Three disjoint sets of entry names."""

    to_remove: frozenset[str] = frozenset()
    to_write: Mapping[str, PendingWrite] = field(default_factory=dict["str", "PendingWrite"])
    unchanged: frozenset[str] = frozenset()

    @property
    def is_empty(self) -> bool:
        return not self.to_remove and not self.to_write


def entry_status(entry: DesiredEntry, state: ActualState) -> EntryStatus:
    """Classify one desired entry against the stored tags.

    A managed tag whose value went missing counts as missing: the entry has to
    be regenerated to restore the tag/value pairing.
    """

    stored = state.managed_tags().get(entry.name)
    if stored is None or entry.name not in state.values:
        return EntryStatus.MISSING
    if stored != content_hash(entry.generation_kind):
        return EntryStatus.OUTDATED
    return EntryStatus.MATCHES


def diff_entries(entries: Mapping[str, DesiredEntry], state: ActualState) -> SecretDiff:
    managed = state.managed_tags()
    to_remove = frozenset(name for name in managed if name not in entries)

    to_write: dict[str, PendingWrite] = {}
    unchanged: set[str] = set()
    for name, entry in entries.items():
        status = entry_status(entry, state)
        if status is EntryStatus.MATCHES:
            unchanged.add(name)
            continue
        to_write[name] = PendingWrite(
            entry=entry,
            status=status,
            digest=content_hash(entry.generation_kind),
        )

    return SecretDiff(to_remove=to_remove, to_write=to_write, unchanged=frozenset(unchanged))
