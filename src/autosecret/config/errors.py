"""Configuration error definitions."""

from __future__ import annotations


class ConfigurationError(RuntimeError):
    """Raised when configuration values are invalid."""


class MissingConfigurationError(ConfigurationError):
    """Raised when required configuration values are absent or blank."""


class UnknownGenerationKindError(ConfigurationError):
    """Raised when a desired entry names a generation kind nobody registered."""

    def __init__(self, kind: str, *, known: tuple[str, ...] = ()) -> None:
        expected = ", ".join(repr(value) for value in known) or "nothing"
        super().__init__(f"Unknown generation kind {kind!r}, expected one of {expected}")
        self.kind = kind
        self.known = known
