from __future__ import annotations

import pytest

from autosecret.domain.generation import GeneratorRegistry, default_registry
from tests.support.state_store import InMemoryStateStore


@pytest.fixture
def generators() -> GeneratorRegistry:
    return default_registry()


@pytest.fixture
def store() -> InMemoryStateStore:
    return InMemoryStateStore()


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "AUTOSECRET_LOG",
        "AUTOSECRET_WORKERS",
        "AUTOSECRET_RETRY_SECONDS",
        "AUTOSECRET_KUBE_API_URL",
        "AUTOSECRET_KUBE_TOKEN",
        "AUTOSECRET_KUBE_CA_CERT",
        "AUTOSECRET_KUBE_INSECURE",
        "KUBERNETES_SERVICE_HOST",
        "KUBERNETES_SERVICE_PORT",
        "KUBECONFIG",
    ):
        monkeypatch.delenv(name, raising=False)
