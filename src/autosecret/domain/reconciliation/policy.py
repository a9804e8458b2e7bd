"""Retry policy for failed reconcile attempts."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from autosecret.config.controller import DEFAULT_RETRY_DELAY_SECONDS

from .action import Action

if TYPE_CHECKING:
    from autosecret.domain.model import ObjectKey


class ErrorPolicy(Protocol):
    """Map a failed attempt for ``key`` to the next action."""

    def __call__(self, error: Exception, key: ObjectKey) -> Action: ...


@dataclass(frozen=True, slots=True)
class FixedDelayPolicy:
    """Requeue after the same delay regardless of cause or attempt count."""

    delay_seconds: float = DEFAULT_RETRY_DELAY_SECONDS

    def __call__(self, error: Exception, key: ObjectKey) -> Action:  # noqa: ARG002
        return Action.requeue(self.delay_seconds)
