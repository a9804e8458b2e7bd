"""Failures of a single reconcile attempt.

All of them are per-object: the control loop hands them to the error policy and
keeps serving other objects.
"""

from __future__ import annotations


class ReconcileError(RuntimeError):
    """Base class for errors surfaced by one reconcile attempt."""


class MissingIdentityError(ReconcileError):
    """The desired-state object lacks a field needed to address its record."""

    def __init__(self, field: str) -> None:
        super().__init__(f"MissingObjectKey: {field}")
        self.field = field


class StateReadError(ReconcileError):
    def __init__(self, cause: BaseException) -> None:
        super().__init__(f"Failed to get secret: {cause}")
        self.cause = cause


class StateWriteError(ReconcileError):
    def __init__(self, cause: BaseException) -> None:
        super().__init__(f"Failed to apply secret: {cause}")
        self.cause = cause


class StartupError(RuntimeError):
    """The backing store cannot be reached when the process starts."""
