"""Translate between Kubernetes payloads and domain state."""

from __future__ import annotations

import base64
from typing import TYPE_CHECKING

from autosecret.domain.model import (
    ActualState,
    DesiredEntry,
    DesiredSpec,
    ObjectKey,
    OwnerReference,
    tag_key,
)

from .schema import (
    API_VERSION,
    GROUP,
    KIND,
    AutoSecret,
    ObjectMeta,
    OwnerReferencePayload,
    Secret,
)

if TYPE_CHECKING:
    from autosecret.domain.generation import GeneratorRegistry


def object_key(metadata: ObjectMeta) -> ObjectKey:
    return ObjectKey(metadata.namespace, metadata.name or "")


def owner_reference_for(resource: AutoSecret) -> OwnerReference | None:
    """Controller owner reference pointing at ``resource``, if it is addressable."""

    metadata = resource.metadata
    if not metadata.name or not metadata.uid:
        return None
    return OwnerReference(
        api_version=resource.api_version or API_VERSION,
        kind=KIND,
        name=metadata.name,
        uid=metadata.uid,
    )


def to_desired_spec(resource: AutoSecret, *, generators: GeneratorRegistry) -> DesiredSpec:
    """Build the desired spec, rejecting generation kinds nobody registered."""

    entries = {
        name: DesiredEntry(name=name, generation_kind=generators.validate(kind))
        for name, kind in resource.spec.secrets.items()
    }
    return DesiredSpec(
        namespace=resource.metadata.namespace,
        name=resource.metadata.name,
        owner=owner_reference_for(resource),
        entries=entries,
    )


def _to_owner_reference(payload: OwnerReferencePayload) -> OwnerReference:
    return OwnerReference(
        api_version=payload.api_version,
        kind=payload.kind,
        name=payload.name,
        uid=payload.uid,
        controller=bool(payload.controller),
        block_owner_deletion=bool(payload.block_owner_deletion),
    )


def to_actual_state(secret: Secret) -> ActualState:
    metadata = secret.metadata
    return ActualState(
        namespace=metadata.namespace or "",
        name=metadata.name or "",
        owner_references=[_to_owner_reference(ref) for ref in metadata.owner_references],
        tags=dict(metadata.annotations),
        values={name: base64.b64decode(value) for name, value in secret.data.items()},
        exists=True,
    )


def to_apply_payload(state: ActualState) -> dict[str, object]:
    """Server-side apply body carrying only what the controller manages.

    Foreign annotations and data keys are left out on purpose: fields owned by
    other field managers survive the apply untouched, while managed entries
    omitted here are pruned by the API server.
    """

    managed = state.managed_tags()
    values = state.managed_values()
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": {
            "name": state.name,
            "namespace": state.namespace,
            "ownerReferences": [
                {
                    "apiVersion": ref.api_version,
                    "kind": ref.kind,
                    "name": ref.name,
                    "uid": ref.uid,
                    "controller": ref.controller,
                    "blockOwnerDeletion": ref.block_owner_deletion,
                }
                for ref in state.owner_references
                if ref.controller
            ],
            "annotations": {tag_key(name): digest for name, digest in sorted(managed.items())},
        },
        "data": {
            name: base64.b64encode(value).decode("ascii") for name, value in sorted(values.items())
        },
    }


def owner_key_of(secret: Secret) -> ObjectKey | None:
    """Key of the AutoSecret controlling ``secret``, or ``None`` if unowned."""

    for ref in secret.metadata.owner_references:
        if ref.controller and ref.kind == KIND and ref.api_version.split("/")[0] == GROUP:
            return ObjectKey(secret.metadata.namespace, ref.name)
    return None
