"""Convergence signal returned to the control loop after each attempt."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Action:
    """What the control loop should do next for a key.

    ``requeue_after`` of ``None`` means: stay idle until the next event.
    """

    requeue_after: float | None = None

    @classmethod
    def await_change(cls) -> Action:
        return cls()

    @classmethod
    def requeue(cls, seconds: float) -> Action:
        if seconds < 0:
            raise ValueError("requeue delay must be non-negative")
        return cls(requeue_after=seconds)
