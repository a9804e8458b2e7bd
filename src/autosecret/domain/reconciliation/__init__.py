"""Reconciliation core for generated secrets.

Flow of one pass:
1) resolve namespace/name/owner from the desired spec
2) fetch the stored record, or start an empty one carrying ownership
3) diff desired entries against managed hash tags
4) drop removed entries, regenerate missing/outdated ones
5) persist everything with a single upsert
"""

from __future__ import annotations

from .action import Action
from .diff import PendingWrite, SecretDiff, diff_entries, entry_status
from .engine import Reconciler, ReconcileOutcome, apply_diff, resolve_identity
from .errors import (
    MissingIdentityError,
    ReconcileError,
    StartupError,
    StateReadError,
    StateWriteError,
)
from .policy import ErrorPolicy, FixedDelayPolicy

__all__ = [
    "Action",
    "ErrorPolicy",
    "FixedDelayPolicy",
    "MissingIdentityError",
    "PendingWrite",
    "ReconcileError",
    "ReconcileOutcome",
    "Reconciler",
    "SecretDiff",
    "StartupError",
    "StateReadError",
    "StateWriteError",
    "apply_diff",
    "diff_entries",
    "entry_status",
    "resolve_identity",
]
