"""Application orchestration entry points."""

from __future__ import annotations

import asyncio
import ssl
from collections.abc import Callable
from logging import getLogger
from typing import TYPE_CHECKING

from autosecret.adapters.http_resilience import ResilientClient
from autosecret.adapters.kubernetes import (
    AutoSecretWatcher,
    KubernetesAPIError,
    KubernetesSecretStore,
    OwnedSecretWatcher,
    probe,
)
from autosecret.config import ConfigurationError, get_controller_config, get_kubernetes_config
from autosecret.controller import ControlLoop, StdinResyncTrigger
from autosecret.domain.generation import default_registry
from autosecret.domain.reconciliation import FixedDelayPolicy, Reconciler, StartupError

if TYPE_CHECKING:
    from autosecret.config import ControllerConfig, KubernetesConfig, ResilienceConfig
    from autosecret.controller import ResyncTrigger

ClientFactory = Callable[["ResilienceConfig"], ResilientClient]

log = getLogger(__name__)


async def run_controller(
    *,
    kube_config: KubernetesConfig | None = None,
    controller_config: ControllerConfig | None = None,
    client_factory: ClientFactory = ResilientClient,
    resync: ResyncTrigger | None = None,
    handle_signals: bool = True,
) -> None:
    """Connect to the API server and reconcile AutoSecrets until shutdown.

    Raises ``StartupError`` when configuration is missing or the API server
    cannot be reached; nothing is reconciled in that case.
    """

    try:
        kube = kube_config or get_kubernetes_config()
        settings = controller_config or get_controller_config()
        client = client_factory(kube.resilience)
    except (ConfigurationError, OSError, ssl.SSLError) as exc:
        raise StartupError(f"Invalid controller configuration: {exc}") from exc

    async with client:
        try:
            version = await probe(client)
        except KubernetesAPIError as exc:
            raise StartupError(f"Cannot reach Kubernetes API at {kube.api_url}: {exc}") from exc
        log.info("connected to Kubernetes %s at %s (%s)", version, kube.api_url, kube.source)

        generators = default_registry()
        reconciler = Reconciler(store=KubernetesSecretStore(client), generators=generators)
        trigger = resync or StdinResyncTrigger(settings.resync_queue_size)
        control_loop = ControlLoop(
            reconciler.reconcile,
            desired=AutoSecretWatcher.for_client(client, generators=generators),
            owned=OwnedSecretWatcher.for_client(client),
            resync=trigger,
            error_policy=FixedDelayPolicy(settings.retry_delay_seconds),
            config=settings,
        )
        if handle_signals:
            control_loop.install_signal_handlers()
        if isinstance(trigger, StdinResyncTrigger):
            trigger.start(asyncio.get_running_loop())

        log.info("starting autosecret-controller")
        log.info("press <enter> to force a reconciliation of all objects")
        await control_loop.run()

    log.info("controller terminated")


def start_controller() -> None:
    """Blocking wrapper around ``run_controller`` for the CLI."""

    asyncio.run(run_controller())
