"""Ports for observing changes to desired-state objects and the records they own."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from autosecret.domain.model import DesiredSpecEvent, ObjectKey


@runtime_checkable
class DesiredSpecSource(Protocol):
    """Stream of create/update/delete notifications for desired-state objects."""

    def events(self) -> AsyncIterator[DesiredSpecEvent]: ...


@runtime_checkable
class OwnedObjectSource(Protocol):
    """Stream of owner keys whose stored record changed."""

    def events(self) -> AsyncIterator[ObjectKey]: ...


__all__ = ["DesiredSpecSource", "OwnedObjectSource"]
