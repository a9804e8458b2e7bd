"""Errors raised by the Kubernetes adapters."""

from __future__ import annotations

from typing import TYPE_CHECKING

from autosecret.domain.ports.state_store import StateStoreError

from .schema import Status

if TYPE_CHECKING:
    import httpx


class KubernetesAPIError(StateStoreError):
    """Raised when the API server rejects a request or cannot be reached."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    @classmethod
    def from_response(cls, response: httpx.Response) -> KubernetesAPIError:
        detail = response.reason_phrase
        try:
            status = Status.model_validate(response.json())
        except ValueError:
            pass
        else:
            detail = status.message or status.reason or detail
        method = response.request.method
        return cls(
            f"{method} {response.request.url.path} returned {response.status_code}: {detail}",
            status_code=response.status_code,
        )
