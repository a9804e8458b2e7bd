from __future__ import annotations

import asyncio
import base64
import json
import uuid
from typing import TYPE_CHECKING

import httpx
import pytest

from autosecret.adapters.http_resilience import ResilientClient
from autosecret.adapters.kubernetes.watch import AUTOSECRETS_PATH, SECRETS_PATH
from autosecret.app import run_controller
from autosecret.config import ControllerConfig, KubernetesConfig
from autosecret.controller import ResyncTrigger
from autosecret.domain.generation import content_hash
from autosecret.domain.model import tag_key
from autosecret.domain.reconciliation import StartupError
from tests.support.http import BASE_URL
from tests.support.sources import wait_until

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable
    from pathlib import Path

    from autosecret.config import ResilienceConfig


def _factory(
    handler: Callable[[httpx.Request], httpx.Response],
) -> Callable[[ResilienceConfig], ResilientClient]:
    def build(config: ResilienceConfig) -> ResilientClient:
        return ResilientClient(config, transport=httpx.MockTransport(handler))

    return build


async def _idle_stream() -> AsyncIterator[bytes]:
    await asyncio.Event().wait()
    yield b""


class FakeCluster:
    """Just enough API server for one AutoSecret and its Secret."""

    def __init__(self) -> None:
        self.patches: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        watching = request.url.params.get("watch") == "true"
        if path == "/version":
            return httpx.Response(200, json={"gitVersion": "v1.30.0"})
        if path in (AUTOSECRETS_PATH, SECRETS_PATH) and watching:
            return httpx.Response(200, content=_idle_stream())
        if path == AUTOSECRETS_PATH:
            item = {
                "apiVersion": "webstep.no/v1alpha1",
                "kind": "AutoSecret",
                "metadata": {"name": "app", "namespace": "default", "uid": "uid-app"},
                "spec": {"secrets": {"token": "uuid"}},
            }
            return httpx.Response(200, json={"metadata": {"resourceVersion": "1"}, "items": [item]})
        if path == SECRETS_PATH:
            return httpx.Response(200, json={"metadata": {"resourceVersion": "1"}, "items": []})
        if request.method == "GET":
            return httpx.Response(404, json={"kind": "Status", "code": 404})
        self.patches.append(request)
        return httpx.Response(200, json=json.loads(request.content))


def test_missing_configuration_is_a_startup_error(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.setenv("HOME", str(tmp_path))

    with pytest.raises(StartupError, match="No Kubernetes API configuration"):
        asyncio.run(run_controller(handle_signals=False, resync=ResyncTrigger()))


def test_unreachable_api_is_a_startup_error() -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"kind": "Status", "message": "Unauthorized"})

    with pytest.raises(StartupError, match="Cannot reach Kubernetes API"):
        asyncio.run(
            run_controller(
                kube_config=KubernetesConfig(api_url=BASE_URL),
                client_factory=_factory(handler),
                resync=ResyncTrigger(),
                handle_signals=False,
            )
        )


def test_controller_creates_secret_for_listed_autosecret() -> None:
    cluster = FakeCluster()

    async def scenario() -> None:
        task = asyncio.create_task(
            run_controller(
                kube_config=KubernetesConfig(api_url=BASE_URL, token="t"),
                controller_config=ControllerConfig(worker_limit=1),
                client_factory=_factory(cluster),
                resync=ResyncTrigger(),
                handle_signals=False,
            )
        )
        await wait_until(lambda: len(cluster.patches) == 1)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(scenario())

    patch = cluster.patches[0]
    assert patch.url.path == "/api/v1/namespaces/default/secrets/app"
    assert patch.headers["Authorization"] == "Bearer t"
    body = json.loads(patch.content)
    assert body["metadata"]["annotations"] == {tag_key("token"): content_hash("uuid")}
    assert body["metadata"]["ownerReferences"][0]["uid"] == "uid-app"
    assert uuid.UUID(base64.b64decode(body["data"]["token"]).decode()).version == 4
