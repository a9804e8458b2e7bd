"""Domain port definitions for adapters."""

from __future__ import annotations

from .state_store import StateStore, StateStoreError
from .watching import DesiredSpecSource, OwnedObjectSource

__all__ = [
    "DesiredSpecSource",
    "OwnedObjectSource",
    "StateStore",
    "StateStoreError",
]
