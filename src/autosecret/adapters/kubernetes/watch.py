"""List-then-watch streams over Kubernetes collections.

A watch resumes from the last seen ``resourceVersion``. When the server reports
the version as expired (HTTP 410) the collection is listed again; objects that
vanished in between are reported as deletions. Transport failures are logged
and retried after a fixed delay; malformed responses are logged and followed by
a relist after the same delay. The streams never end on their own.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING, Final

import httpx
from pydantic import ValidationError

from autosecret.config.errors import UnknownGenerationKindError
from autosecret.domain.generation import GeneratorRegistry, default_registry
from autosecret.domain.model import DesiredSpecEvent, WatchEventType

from .errors import KubernetesAPIError
from .schema import (
    GROUP,
    PLURAL,
    VERSION,
    AutoSecret,
    ObjectMeta,
    RawWatchEvent,
    ResourceList,
    Secret,
    Status,
)
from .translator import object_key, owner_key_of, to_desired_spec

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from autosecret.adapters.http_resilience import ResilientClient
    from autosecret.domain.model import ObjectKey

log = getLogger(__name__)

AUTOSECRETS_PATH: Final[str] = f"/apis/{GROUP}/{VERSION}/{PLURAL}"
SECRETS_PATH: Final[str] = "/api/v1/secrets"
DEFAULT_WATCH_TIMEOUT_SECONDS: Final[int] = 290
DEFAULT_RETRY_DELAY_SECONDS: Final[float] = 5.0


class WatchExpiredError(Exception):
    """The resource version we resumed from is gone; a relist is needed."""


@dataclass(frozen=True, slots=True)
class ResourceEvent:
    type: WatchEventType
    key: ObjectKey
    object: dict[str, object]


@dataclass(slots=True)
class ResourceWatcher:
    client: ResilientClient
    path: str
    watch_timeout_seconds: int = DEFAULT_WATCH_TIMEOUT_SECONDS
    retry_delay_seconds: float = DEFAULT_RETRY_DELAY_SECONDS
    _known: dict[ObjectKey, dict[str, object]] = field(
        default_factory=dict["ObjectKey", "dict[str, object]"]
    )

    async def events(self) -> AsyncIterator[ResourceEvent]:
        resource_version: str | None = None
        while True:
            try:
                if resource_version is None:
                    relisted, resource_version = await self._relist()
                    for event in relisted:
                        yield event
                async for event, version in self._watch(resource_version):
                    resource_version = version
                    if event is not None:
                        yield event
            except WatchExpiredError:
                log.info("watch on %s expired, relisting", self.path)
                resource_version = None
            except (httpx.HTTPError, KubernetesAPIError) as exc:
                log.warning(
                    "watch on %s failed: %s; retrying in %.0fs",
                    self.path,
                    exc,
                    self.retry_delay_seconds,
                )
                await asyncio.sleep(self.retry_delay_seconds)
            except ValueError as exc:
                # undecodable JSON or a payload failing validation (pydantic
                # ValidationError is a ValueError); the stream position is lost
                log.warning(
                    "watch on %s returned malformed data: %s; relisting in %.0fs",
                    self.path,
                    exc,
                    self.retry_delay_seconds,
                )
                resource_version = None
                await asyncio.sleep(self.retry_delay_seconds)

    async def _relist(self) -> tuple[list[ResourceEvent], str | None]:
        response = await self.client.get(self.path)
        if response.is_error:
            raise KubernetesAPIError.from_response(response)
        payload = ResourceList.model_validate_json(response.content)
        pending: list[ResourceEvent] = []
        listed: dict[ObjectKey, dict[str, object]] = {}
        for item in payload.items or []:
            key = object_key(ObjectMeta.model_validate(item.get("metadata") or {}))
            listed[key] = item

        for key in sorted(set(self._known) - set(listed), key=str):
            pending.append(ResourceEvent(WatchEventType.DELETED, key, self._known[key]))
        for key, item in listed.items():
            pending.append(ResourceEvent(WatchEventType.APPLIED, key, item))
        self._known = {key: _metadata_only(item) for key, item in listed.items()}
        return pending, payload.metadata.resource_version

    async def _watch(
        self, resource_version: str | None
    ) -> AsyncIterator[tuple[ResourceEvent | None, str | None]]:
        params: dict[str, str | int] = {
            "watch": "true",
            "allowWatchBookmarks": "true",
            "timeoutSeconds": self.watch_timeout_seconds,
        }
        if resource_version:
            params["resourceVersion"] = resource_version
        timeout = httpx.Timeout(10.0, read=self.watch_timeout_seconds + 15.0)

        async with self.client.stream("GET", self.path, params=params, timeout=timeout) as response:
            if response.status_code == httpx.codes.GONE:
                raise WatchExpiredError
            if response.is_error:
                await response.aread()
                raise KubernetesAPIError.from_response(response)
            async for line in response.aiter_lines():
                if not line.strip():
                    continue
                raw = RawWatchEvent.model_validate_json(line)
                resource_version = self._handle(raw, resource_version)
                yield self._to_event(raw), resource_version

    def _handle(self, raw: RawWatchEvent, resource_version: str | None) -> str | None:
        if raw.type == "ERROR":
            status = Status.model_validate(raw.object)
            if status.code == httpx.codes.GONE:
                raise WatchExpiredError
            raise KubernetesAPIError(
                f"watch on {self.path} returned error: {status.message}", status_code=status.code
            )
        metadata = ObjectMeta.model_validate(raw.object.get("metadata") or {})
        return metadata.resource_version or resource_version

    def _to_event(self, raw: RawWatchEvent) -> ResourceEvent | None:
        if raw.type == "BOOKMARK":
            return None
        key = object_key(ObjectMeta.model_validate(raw.object.get("metadata") or {}))
        if raw.type == "DELETED":
            self._known.pop(key, None)
            return ResourceEvent(WatchEventType.DELETED, key, raw.object)
        self._known[key] = _metadata_only(raw.object)
        return ResourceEvent(WatchEventType.APPLIED, key, raw.object)


def _metadata_only(obj: dict[str, object]) -> dict[str, object]:
    """Keep only metadata of a cached object; Secret data never stays in memory."""

    return {"metadata": obj.get("metadata") or {}}


@dataclass(slots=True)
class AutoSecretWatcher:
    """Desired-spec events from ``AutoSecret`` objects in all namespaces."""

    watcher: ResourceWatcher
    generators: GeneratorRegistry = field(default_factory=default_registry)

    @classmethod
    def for_client(
        cls, client: ResilientClient, *, generators: GeneratorRegistry | None = None
    ) -> AutoSecretWatcher:
        return cls(
            watcher=ResourceWatcher(client=client, path=AUTOSECRETS_PATH),
            generators=generators or default_registry(),
        )

    async def events(self) -> AsyncIterator[DesiredSpecEvent]:
        async for event in self.watcher.events():
            if event.type is WatchEventType.DELETED:
                yield DesiredSpecEvent(WatchEventType.DELETED, event.key)
                continue
            try:
                resource = AutoSecret.model_validate(event.object)
                spec = to_desired_spec(resource, generators=self.generators)
            except (ValidationError, UnknownGenerationKindError) as exc:
                log.warning("ignoring invalid AutoSecret %s: %s", event.key, exc)
                continue
            yield DesiredSpecEvent(WatchEventType.APPLIED, event.key, spec)


@dataclass(slots=True)
class OwnedSecretWatcher:
    """Owner keys of ``Secret`` objects controlled by an ``AutoSecret``."""

    watcher: ResourceWatcher

    @classmethod
    def for_client(cls, client: ResilientClient) -> OwnedSecretWatcher:
        return cls(watcher=ResourceWatcher(client=client, path=SECRETS_PATH))

    async def events(self) -> AsyncIterator[ObjectKey]:
        async for event in self.watcher.events():
            try:
                secret = Secret.model_validate(event.object)
            except ValidationError as exc:
                log.debug("ignoring unreadable secret %s: %s", event.key, exc)
                continue
            owner = owner_key_of(secret)
            if owner is not None:
                yield owner
