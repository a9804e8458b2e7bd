from __future__ import annotations

from .logging import configure_logging, parse_log_filter

__all__ = ["configure_logging", "parse_log_filter"]
