"""Kubernetes API server connection settings.

Resolution order mirrors what a controller expects when it runs either inside a
cluster or on a developer machine:

1. ``AUTOSECRET_KUBE_API_URL`` and friends (explicit override, e.g. ``kubectl proxy``)
2. the in-cluster service account mounted into the pod
3. the current context of a kubeconfig file (``KUBECONFIG`` or ``~/.kube/config``)
"""

from __future__ import annotations

import base64
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Final

import httpx
import yaml

from .env import env_flag, optional_env
from .errors import ConfigurationError, MissingConfigurationError
from .http_resilience import RateLimit, ResilienceConfig, TlsConfig

if TYPE_CHECKING:
    from collections.abc import Generator

SERVICE_ACCOUNT_DIR: Final[Path] = Path("/var/run/secrets/kubernetes.io/serviceaccount")
DEFAULT_KUBECONFIG: Final[Path] = Path("~/.kube/config")
KUBE_TIMEOUT_SECONDS: Final[float] = 30.0


class BearerTokenFileAuth(httpx.Auth):
    """Send the token currently stored in ``path`` with every request.

    The kubelet rotates projected service account tokens in place, so the file
    is read again for each request instead of once at startup.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        request.headers["Authorization"] = f"Bearer {self.path.read_text().strip()}"
        yield request


@dataclass(frozen=True, slots=True)
class KubernetesConfig:
    """Where the API server lives and how to authenticate against it."""

    api_url: str
    token: str | None = None
    token_path: Path | None = None
    tls: TlsConfig = field(default_factory=TlsConfig)
    source: str = "env"

    @property
    def resilience(self) -> ResilienceConfig:
        headers = {"Accept": "application/json"}
        auth = BearerTokenFileAuth(self.token_path) if self.token_path else None
        if auth is None and self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return ResilienceConfig(
            name="kubernetes",
            base_url=self.api_url.rstrip("/"),
            timeout_seconds=KUBE_TIMEOUT_SECONDS,
            ratelimit=RateLimit(max_calls=50, per_seconds=1.0),
            tls=self.tls,
            default_headers=headers,
            auth=auth,
        )


def get_kubernetes_config(
    *,
    service_account_dir: Path = SERVICE_ACCOUNT_DIR,
    kubeconfig_path: Path | None = None,
) -> KubernetesConfig:
    config = _from_env()
    if config is not None:
        return config

    config = _from_service_account(service_account_dir)
    if config is not None:
        return config

    path = kubeconfig_path or _default_kubeconfig_path()
    if path.is_file():
        return _from_kubeconfig(path)

    raise MissingConfigurationError(
        "No Kubernetes API configuration found: set AUTOSECRET_KUBE_API_URL, "
        "run inside a cluster, or provide a kubeconfig"
    )


def _from_env() -> KubernetesConfig | None:
    api_url = optional_env("AUTOSECRET_KUBE_API_URL")
    if api_url is None:
        return None
    insecure = env_flag("AUTOSECRET_KUBE_INSECURE")
    return KubernetesConfig(
        api_url=api_url,
        token=optional_env("AUTOSECRET_KUBE_TOKEN"),
        tls=TlsConfig(verify=not insecure, ca_cert_path=optional_env("AUTOSECRET_KUBE_CA_CERT")),
        source="env",
    )


def _from_service_account(directory: Path) -> KubernetesConfig | None:
    host = optional_env("KUBERNETES_SERVICE_HOST")
    port = optional_env("KUBERNETES_SERVICE_PORT")
    token_path = directory / "token"
    if host is None or port is None or not token_path.is_file():
        return None

    if ":" in host and not host.startswith("["):
        host = f"[{host}]"
    ca_path = directory / "ca.crt"
    return KubernetesConfig(
        api_url=f"https://{host}:{port}",
        token_path=token_path,
        tls=TlsConfig(ca_cert_path=str(ca_path) if ca_path.is_file() else None),
        source="in-cluster",
    )


def _default_kubeconfig_path() -> Path:
    env_value = optional_env("KUBECONFIG")
    if env_value:
        # only the first entry of a merged KUBECONFIG list is honoured
        return Path(env_value.split(os.pathsep)[0]).expanduser()
    return DEFAULT_KUBECONFIG.expanduser()


def _from_kubeconfig(path: Path) -> KubernetesConfig:
    try:
        document = yaml.safe_load(path.read_text()) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"Unable to read kubeconfig {path}: {exc}") from exc

    context_name = document.get("current-context")
    if not context_name:
        raise ConfigurationError(f"kubeconfig {path} has no current-context")

    context = _named(document, "contexts", context_name, "context")
    cluster = _named(document, "clusters", context.get("cluster"), "cluster")
    user = _named(document, "users", context.get("user"), "user") if context.get("user") else {}

    server = cluster.get("server")
    if not server:
        raise ConfigurationError(f"cluster {context.get('cluster')!r} in {path} has no server")

    base_dir = path.parent
    ca_data = cluster.get("certificate-authority-data")
    tls = TlsConfig(
        verify=not cluster.get("insecure-skip-tls-verify", False),
        ca_cert_path=_resolve(base_dir, cluster.get("certificate-authority")),
        ca_cert_data=base64.b64decode(ca_data).decode() if ca_data else None,
        client_cert_path=_resolve(base_dir, user.get("client-certificate"))
        or _materialize(user.get("client-certificate-data"), suffix=".crt"),
        client_key_path=_resolve(base_dir, user.get("client-key"))
        or _materialize(user.get("client-key-data"), suffix=".key"),
    )

    token = user.get("token")
    token_file = _resolve(base_dir, user.get("tokenFile"))

    return KubernetesConfig(
        api_url=server,
        token=token,
        token_path=Path(token_file) if token is None and token_file is not None else None,
        tls=tls,
        source=f"kubeconfig:{path}",
    )


def _named(document: dict[str, Any], section: str, name: object, key: str) -> dict[str, Any]:
    for item in document.get(section) or []:
        if item.get("name") == name:
            return item.get(key) or {}
    raise ConfigurationError(f"kubeconfig has no {key} named {name!r}")


def _resolve(base_dir: Path, value: str | None) -> str | None:
    if not value:
        return None
    candidate = Path(value).expanduser()
    if not candidate.is_absolute():
        candidate = base_dir / candidate
    return str(candidate)


def _materialize(data: str | None, *, suffix: str) -> str | None:
    # the ssl module can only load client credentials from files
    if not data:
        return None
    with tempfile.NamedTemporaryFile("wb", suffix=suffix, delete=False) as handle:
        handle.write(base64.b64decode(data))
    os.chmod(handle.name, 0o600)
    return handle.name
