"""Application configuration helpers."""

from __future__ import annotations

from .controller import ControllerConfig, get_controller_config
from .env import optional_env, require_env_var, require_env_vars
from .errors import ConfigurationError, MissingConfigurationError, UnknownGenerationKindError
from .http_resilience import RateLimit, ResilienceConfig, RetryPolicy, TlsConfig
from .kubernetes import KubernetesConfig, get_kubernetes_config

__all__ = [
    "ConfigurationError",
    "ControllerConfig",
    "KubernetesConfig",
    "MissingConfigurationError",
    "RateLimit",
    "ResilienceConfig",
    "RetryPolicy",
    "TlsConfig",
    "UnknownGenerationKindError",
    "get_controller_config",
    "get_kubernetes_config",
    "optional_env",
    "require_env_var",
    "require_env_vars",
]
