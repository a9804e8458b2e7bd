"""Port for the durable store holding generated values and their hash tags."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from autosecret.domain.model import ActualState


class StateStoreError(RuntimeError):
    """Base class for failures raised by state store adapters."""


@runtime_checkable
class StateStore(Protocol):
    """Read and upsert the stored record for one desired-state object.

    ``get`` returns ``None`` when nothing is stored yet. ``apply`` must be an
    idempotent upsert that keeps foreign entries it was not given and works the
    same whether or not the record already exists.
    """

    async def get(self, namespace: str, name: str) -> ActualState | None: ...

    async def apply(self, state: ActualState) -> None: ...


__all__ = ["StateStore", "StateStoreError"]
