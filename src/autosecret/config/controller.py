"""Control loop tuning values."""

from __future__ import annotations

from dataclasses import dataclass

from .env import env_positive_float, env_positive_int

DEFAULT_WORKER_LIMIT = 4
DEFAULT_RETRY_DELAY_SECONDS = 15.0
DEFAULT_RESYNC_QUEUE_SIZE = 1


@dataclass(frozen=True, slots=True)
class ControllerConfig:
    """How many reconciles may run at once and how failures are retried."""

    worker_limit: int = DEFAULT_WORKER_LIMIT
    retry_delay_seconds: float = DEFAULT_RETRY_DELAY_SECONDS
    resync_queue_size: int = DEFAULT_RESYNC_QUEUE_SIZE

    def __post_init__(self) -> None:
        if self.worker_limit <= 0:
            raise ValueError("worker_limit must be positive")
        if self.retry_delay_seconds <= 0:
            raise ValueError("retry_delay_seconds must be positive")
        if self.resync_queue_size <= 0:
            raise ValueError("resync_queue_size must be positive")


def get_controller_config() -> ControllerConfig:
    return ControllerConfig(
        worker_limit=env_positive_int("AUTOSECRET_WORKERS", DEFAULT_WORKER_LIMIT),
        retry_delay_seconds=env_positive_float(
            "AUTOSECRET_RETRY_SECONDS", DEFAULT_RETRY_DELAY_SECONDS
        ),
    )
