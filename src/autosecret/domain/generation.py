"""Value generators for secret entries.

Each generation kind maps to a producer returning a fresh opaque value on every
call. Built-in kinds are ``uuid`` and ``ulid``; further kinds are added by
registering a producer. Desired specs are validated against the registry when
they are ingested, so reconciliation never meets an unknown kind.
"""

from __future__ import annotations

import hashlib
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum

from ulid import ULID

from autosecret.config.errors import UnknownGenerationKindError

Producer = Callable[[], bytes]

CONTENT_HASH_BYTES = 8


class GenerationKind(StrEnum):
    UUID = "uuid"
    ULID = "ulid"


def produce_uuid() -> bytes:
    """Random (version 4) UUID in canonical hyphenated form."""

    return str(uuid.uuid4()).encode()


def produce_ulid() -> bytes:
    """Lexicographically sortable, time-based identifier (26 chars, Crockford base32)."""

    return str(ULID()).encode()


def content_hash(kind: str) -> str:
    """Fixed-width hex digest of a generation kind descriptor.

    The digest covers the kind only, never the generated value: equal hashes
    mean "kind unchanged", not "value unchanged".
    """

    return hashlib.blake2b(kind.encode(), digest_size=CONTENT_HASH_BYTES).hexdigest()


@dataclass(slots=True)
class GeneratorRegistry:
    _producers: dict[str, Producer] = field(default_factory=dict[str, Producer])

    def register(self, kind: str, producer: Producer) -> None:
        if not kind or kind != kind.strip():
            raise ValueError(f"Invalid generation kind name: {kind!r}")
        if kind in self._producers:
            raise ValueError(f"Generation kind {kind!r} is already registered")
        self._producers[str(kind)] = producer

    @property
    def kinds(self) -> tuple[str, ...]:
        return tuple(sorted(self._producers))

    def __contains__(self, kind: object) -> bool:
        return kind in self._producers

    def validate(self, kind: str) -> str:
        """Return ``kind`` unchanged or raise ``UnknownGenerationKindError``."""

        if kind not in self._producers:
            raise UnknownGenerationKindError(kind, known=self.kinds)
        return kind

    def produce(self, kind: str) -> bytes:
        return self._producers[self.validate(kind)]()


def default_registry() -> GeneratorRegistry:
    registry = GeneratorRegistry()
    registry.register(GenerationKind.UUID, produce_uuid)
    registry.register(GenerationKind.ULID, produce_ulid)
    return registry
