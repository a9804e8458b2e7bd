"""Public interface for the Kubernetes adapters."""

from __future__ import annotations

from .crd import build_crd_manifest, render_crd_yaml
from .errors import KubernetesAPIError
from .schema import AutoSecret, AutoSecretSpec, Secret
from .store import KubernetesSecretStore, probe
from .translator import owner_key_of, to_actual_state, to_apply_payload, to_desired_spec
from .watch import AutoSecretWatcher, OwnedSecretWatcher, ResourceWatcher

__all__ = [
    "AutoSecret",
    "AutoSecretSpec",
    "AutoSecretWatcher",
    "KubernetesAPIError",
    "KubernetesSecretStore",
    "OwnedSecretWatcher",
    "ResourceWatcher",
    "Secret",
    "build_crd_manifest",
    "owner_key_of",
    "probe",
    "render_crd_yaml",
    "to_actual_state",
    "to_apply_payload",
    "to_desired_spec",
]
