"""State store backed by Kubernetes ``Secret`` objects."""

from __future__ import annotations

import json
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

import httpx
from pydantic import ValidationError

from .errors import KubernetesAPIError
from .schema import FIELD_MANAGER, Secret
from .translator import to_actual_state, to_apply_payload

if TYPE_CHECKING:
    from autosecret.adapters.http_resilience import ResilientClient
    from autosecret.domain.model import ActualState
    from autosecret.domain.ports.state_store import StateStore

log = getLogger(__name__)

APPLY_CONTENT_TYPE = "application/apply-patch+yaml"


def secret_path(namespace: str, name: str) -> str:
    return f"/api/v1/namespaces/{namespace}/secrets/{name}"


@dataclass(slots=True)
class KubernetesSecretStore:
    """Read secrets with ``GET`` and write them with forced server-side apply."""

    client: ResilientClient
    field_manager: str = FIELD_MANAGER

    async def get(self, namespace: str, name: str) -> ActualState | None:
        path = secret_path(namespace, name)
        try:
            response = await self.client.get(path)
        except httpx.HTTPError as exc:
            raise KubernetesAPIError(f"GET {path} failed: {exc}") from exc

        if response.status_code == httpx.codes.NOT_FOUND:
            log.debug("secret %s/%s does not exist yet", namespace, name)
            return None
        if response.is_error:
            raise KubernetesAPIError.from_response(response)

        try:
            secret = Secret.model_validate(response.json())
        except (ValidationError, ValueError) as exc:
            raise KubernetesAPIError(f"GET {path} returned an unreadable secret: {exc}") from exc
        return to_actual_state(secret)

    async def apply(self, state: ActualState) -> None:
        path = secret_path(state.namespace, state.name)
        # JSON is valid YAML, so the apply-patch content type accepts it as is
        body = json.dumps(to_apply_payload(state))
        try:
            response = await self.client.patch(
                path,
                params={"fieldManager": self.field_manager, "force": "true"},
                content=body,
                headers={"Content-Type": APPLY_CONTENT_TYPE},
            )
        except httpx.HTTPError as exc:
            raise KubernetesAPIError(f"PATCH {path} failed: {exc}") from exc

        if response.is_error:
            raise KubernetesAPIError.from_response(response)
        log.debug("applied secret %s/%s", state.namespace, state.name)


async def probe(client: ResilientClient) -> str:
    """Return the API server version, raising ``KubernetesAPIError`` if unreachable."""

    try:
        response = await client.get("/version")
    except httpx.HTTPError as exc:
        raise KubernetesAPIError(f"GET /version failed: {exc}") from exc
    if response.is_error:
        raise KubernetesAPIError.from_response(response)
    payload = response.json()
    return str(payload.get("gitVersion", "unknown")) if isinstance(payload, dict) else "unknown"


if TYPE_CHECKING:
    _store_check: StateStore = KubernetesSecretStore(client=...)  # type: ignore[arg-type]
