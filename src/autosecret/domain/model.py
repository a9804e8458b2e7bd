"""Desired and actual state of a generated-secret store (pure, dependency-light)."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Final

if TYPE_CHECKING:
    from collections.abc import Mapping

TAG_PREFIX: Final[str] = "autosecrets.webstep.no/"


def tag_key(entry_name: str) -> str:
    """Return the tag key under which the hash for ``entry_name`` is stored."""

    return f"{TAG_PREFIX}{entry_name}"


def managed_entry_name(key: str) -> str | None:
    """Return the entry name for a managed tag key, or ``None`` for foreign keys."""

    if key.startswith(TAG_PREFIX) and len(key) > len(TAG_PREFIX):
        return key[len(TAG_PREFIX) :]
    return None


@dataclass(frozen=True, slots=True)
class ObjectKey:
    """Identity of one desired-state object; the unit of scheduling."""

    namespace: str | None
    name: str

    def __str__(self) -> str:
        return f"{self.namespace or 'NIL'}/{self.name}"


@dataclass(frozen=True, slots=True, kw_only=True)
class OwnerReference:
    api_version: str
    kind: str
    name: str
    uid: str
    controller: bool = True
    block_owner_deletion: bool = True


@dataclass(frozen=True, slots=True)
class DesiredEntry:
    name: str
    generation_kind: str


@dataclass(frozen=True, slots=True, kw_only=True)
class DesiredSpec:
    """Immutable snapshot of what one desired-state object asks for.

    ``namespace``/``name``/``owner`` are optional because they come from object
    metadata the API may omit; the reconciler refuses to act without them.
    """

    namespace: str | None
    name: str | None
    owner: OwnerReference | None
    entries: Mapping[str, DesiredEntry] = field(default_factory=dict["str", "DesiredEntry"])

    @property
    def key(self) -> ObjectKey:
        return ObjectKey(self.namespace, self.name or "")


@dataclass(slots=True, kw_only=True)
class ActualState:
    """Stored content for one desired-state object.

    ``tags`` is keyed by raw tag key (managed keys carry ``TAG_PREFIX``),
    ``values`` by raw entry name. Only entries with a managed tag belong to
    the controller; everything else is foreign and passed through untouched.
    """

    namespace: str
    name: str
    owner_references: list[OwnerReference] = field(default_factory=list["OwnerReference"])
    tags: dict[str, str] = field(default_factory=dict[str, str])
    values: dict[str, bytes] = field(default_factory=dict[str, bytes])
    exists: bool = False

    def managed_tags(self) -> dict[str, str]:
        """Return ``entry name -> hash`` for every managed tag."""

        managed: dict[str, str] = {}
        for key, digest in self.tags.items():
            name = managed_entry_name(key)
            if name is not None:
                managed[name] = digest
        return managed

    def managed_values(self) -> dict[str, bytes]:
        names = self.managed_tags()
        return {name: value for name, value in self.values.items() if name in names}

    def set_entry(self, name: str, *, digest: str, value: bytes) -> None:
        self.tags[tag_key(name)] = digest
        self.values[name] = value

    def remove_entry(self, name: str) -> None:
        self.tags.pop(tag_key(name), None)
        self.values.pop(name, None)

    def is_owned_by(self, owner: OwnerReference) -> bool:
        return any(ref.uid == owner.uid for ref in self.owner_references)


class EntryStatus(StrEnum):
    """How a desired entry compares to what is stored."""

    MISSING = "missing"
    OUTDATED = "outdated"
    MATCHES = "matches"


class WatchEventType(StrEnum):
    APPLIED = "applied"
    DELETED = "deleted"


@dataclass(frozen=True, slots=True)
class DesiredSpecEvent:
    """Change notification for a desired-state object.

    ``spec`` is ``None`` for deletions.
    """

    type: WatchEventType
    key: ObjectKey
    spec: DesiredSpec | None = None
