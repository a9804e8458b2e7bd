"""One reconcile pass: fetch stored state, diff, regenerate, persist once."""

from __future__ import annotations

from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

from autosecret.domain.generation import GeneratorRegistry, default_registry
from autosecret.domain.model import ActualState, EntryStatus
from autosecret.domain.ports.state_store import StateStoreError

from .action import Action
from .diff import SecretDiff, diff_entries
from .errors import MissingIdentityError, StateReadError, StateWriteError

if TYPE_CHECKING:
    from autosecret.domain.model import DesiredSpec, OwnerReference
    from autosecret.domain.ports.state_store import StateStore

log = getLogger(__name__)


@dataclass(slots=True)
class ReconcileOutcome:
    """Summary of what one pass changed."""

    created: list[str] = field(default_factory=list[str])
    updated: list[str] = field(default_factory=list[str])
    removed: list[str] = field(default_factory=list[str])
    unchanged: list[str] = field(default_factory=list[str])
    written: bool = False


def resolve_identity(spec: DesiredSpec) -> tuple[str, str, OwnerReference]:
    if not spec.namespace:
        raise MissingIdentityError(".metadata.namespace")
    if not spec.name:
        raise MissingIdentityError(".metadata.name")
    if spec.owner is None:
        raise MissingIdentityError(".metadata.uid")
    return spec.namespace, spec.name, spec.owner


def apply_diff(
    state: ActualState,
    diff: SecretDiff,
    *,
    generators: GeneratorRegistry,
) -> ReconcileOutcome:
    """Mutate ``state`` in memory: removals first, then creates/updates."""

    outcome = ReconcileOutcome(unchanged=sorted(diff.unchanged))
    for name in sorted(diff.unchanged):
        log.debug("skipping secret %s due to same hash", name)

    for name in sorted(diff.to_remove):
        log.info("removing secret %s", name)
        state.remove_entry(name)
        outcome.removed.append(name)

    for name, pending in sorted(diff.to_write.items()):
        if pending.status is EntryStatus.MISSING:
            log.info("creating new secret %s", name)
            outcome.created.append(name)
        else:
            log.info("updating secret %s due to hash change", name)
            outcome.updated.append(name)
        value = generators.produce(pending.entry.generation_kind)
        state.set_entry(name, digest=pending.digest, value=value)

    return outcome


@dataclass(slots=True)
class Reconciler:
    """Drive one desired-state object's stored record towards its spec.

    Every pass issues at most one ``StateStore.apply``; removals and writes are
    merged into that single upsert.
    """

    store: StateStore
    generators: GeneratorRegistry = field(default_factory=default_registry)

    async def reconcile(self, spec: DesiredSpec) -> Action:
        await self.run(spec)
        return Action.await_change()

    async def run(self, spec: DesiredSpec) -> ReconcileOutcome:
        namespace, name, owner = resolve_identity(spec)
        state = await self._fetch_or_default(namespace, name, owner)
        adopted = not state.is_owned_by(owner)
        if adopted:
            _take_ownership(state, owner)

        diff = diff_entries(spec.entries, state)
        outcome = apply_diff(state, diff, generators=self.generators)

        if state.exists and diff.is_empty and not adopted:
            log.debug("secret %s/%s already converged", namespace, name)
            return outcome

        try:
            await self.store.apply(state)
        except StateStoreError as exc:
            raise StateWriteError(exc) from exc
        outcome.written = True
        return outcome

    async def _fetch_or_default(
        self, namespace: str, name: str, owner: OwnerReference
    ) -> ActualState:
        try:
            existing = await self.store.get(namespace, name)
        except StateStoreError as exc:
            raise StateReadError(exc) from exc

        if existing is None:
            return ActualState(namespace=namespace, name=name, owner_references=[owner])
        return existing


def _take_ownership(state: ActualState, owner: OwnerReference) -> None:
    # a record has at most one controller reference
    state.owner_references = [ref for ref in state.owner_references if not ref.controller]
    state.owner_references.append(owner)
