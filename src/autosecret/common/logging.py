"""Shared logging helpers for the controller."""

from __future__ import annotations

import logging
import os

LOG_FILTER_ENV = "AUTOSECRET_LOG"
DEFAULT_LOG_FILTER = "autosecret=info"

_LEVELS = {
    "trace": logging.DEBUG,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "off": logging.CRITICAL + 10,
}


def parse_log_filter(spec: str) -> tuple[int, dict[str, int], list[str]]:
    """Split ``"warn,autosecret=debug"`` into a root level and per-logger levels.

    Returns ``(root_level, levels_by_logger, rejected_directives)``. A bare level
    sets the root logger; ``name=level`` targets one logger. Anything else is
    rejected rather than raised so a typo cannot keep the controller from starting.
    """

    root_level = logging.WARNING
    levels: dict[str, int] = {}
    rejected: list[str] = []
    for raw in spec.split(","):
        directive = raw.strip()
        if not directive:
            continue
        target, sep, level_name = directive.rpartition("=")
        level = _LEVELS.get(level_name.strip().lower())
        if level is None or (sep and not target.strip()):
            rejected.append(directive)
            continue
        if sep:
            levels[target.strip().replace("-", "_")] = level
        else:
            root_level = level
    return root_level, levels, rejected


def configure_logging(filter_spec: str | None = None, *, force: bool = False) -> None:
    """Initialise the root logger once with sensible defaults.

    ``filter_spec`` falls back to ``$AUTOSECRET_LOG`` and then to
    ``autosecret=info``. Records go to stderr; stdout stays reserved for
    manifest output. Pass ``force=True`` to reconfigure during tests.
    """

    spec = filter_spec or os.getenv(LOG_FILTER_ENV) or DEFAULT_LOG_FILTER
    root_level, levels, rejected = parse_log_filter(spec)

    logging.basicConfig(
        level=root_level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
        force=force,
    )
    for name, level in levels.items():
        logging.getLogger(name).setLevel(level)

    if rejected:
        logging.getLogger(__name__).warning(
            "Ignoring malformed log directives: %s", ", ".join(rejected)
        )
