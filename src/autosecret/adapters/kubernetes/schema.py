"""Pydantic models for the Kubernetes payloads the controller reads and writes."""

from __future__ import annotations

from typing import Final, Literal

from pydantic import BaseModel, ConfigDict, Field

GROUP: Final[str] = "webstep.no"
VERSION: Final[str] = "v1alpha1"
KIND: Final[str] = "AutoSecret"
PLURAL: Final[str] = "autosecrets"
SINGULAR: Final[str] = "autosecret"
SHORT_NAMES: Final[tuple[str, ...]] = ("as",)
API_VERSION: Final[str] = f"{GROUP}/{VERSION}"
FIELD_MANAGER: Final[str] = "autosecrets.webstep.no"


class KubeBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class OwnerReferencePayload(KubeBaseModel):
    api_version: str = Field(alias="apiVersion")
    kind: str
    name: str
    uid: str
    controller: bool | None = None
    block_owner_deletion: bool | None = Field(default=None, alias="blockOwnerDeletion")


class ObjectMeta(KubeBaseModel):
    name: str | None = None
    namespace: str | None = None
    uid: str | None = None
    resource_version: str | None = Field(default=None, alias="resourceVersion")
    annotations: dict[str, str] = Field(default_factory=dict)
    labels: dict[str, str] = Field(default_factory=dict)
    owner_references: list[OwnerReferencePayload] = Field(
        default_factory=list, alias="ownerReferences"
    )


class ListMeta(KubeBaseModel):
    resource_version: str | None = Field(default=None, alias="resourceVersion")


class AutoSecretSpec(KubeBaseModel):
    secrets: dict[str, str] = Field(default_factory=dict)


class AutoSecret(KubeBaseModel):
    api_version: str = Field(default=API_VERSION, alias="apiVersion")
    kind: Literal["AutoSecret"] = KIND
    metadata: ObjectMeta = Field(default_factory=ObjectMeta)
    spec: AutoSecretSpec = Field(default_factory=AutoSecretSpec)


class Secret(KubeBaseModel):
    api_version: str = Field(default="v1", alias="apiVersion")
    kind: Literal["Secret"] = "Secret"
    metadata: ObjectMeta = Field(default_factory=ObjectMeta)
    type: str | None = None
    data: dict[str, str] = Field(default_factory=dict)


class ResourceList(KubeBaseModel):
    """Any list response; items stay raw until a watcher knows their kind."""

    metadata: ListMeta = Field(default_factory=ListMeta)
    items: list[dict[str, object]] | None = None


class Status(KubeBaseModel):
    """``metav1.Status`` as returned with API errors and ``ERROR`` watch events."""

    status: str | None = None
    message: str | None = None
    reason: str | None = None
    code: int | None = None


WatchEventKind = Literal["ADDED", "MODIFIED", "DELETED", "BOOKMARK", "ERROR"]


class RawWatchEvent(KubeBaseModel):
    type: WatchEventKind
    object: dict[str, object]
