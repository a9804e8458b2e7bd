"""Control loop driving reconciliation from watch events."""

from __future__ import annotations

from .loop import (
    ControlLoop,
    KeyState,
    ReconcileReport,
    SourceFailedError,
    log_reconcile_result,
)
from .triggers import ResyncTrigger, StdinResyncTrigger

__all__ = [
    "ControlLoop",
    "KeyState",
    "ReconcileReport",
    "ResyncTrigger",
    "SourceFailedError",
    "StdinResyncTrigger",
    "log_reconcile_result",
]
