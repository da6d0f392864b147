"""Control-plane object model: kinds, keys, metadata and the Resource base."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, ClassVar

from pydantic import Field
from typing_extensions import Self

from fanout.domain.shared.model.value import SchemaModel, ValueObject

GROUP = "fanout.io"
VERSION = "v1alpha1"


class Kind(ValueObject):
    """A resource kind and where it lives in the API server."""

    group: str  # "" for the core group
    version: str
    kind: str
    plural: str

    @property
    def api_version(self) -> str:
        return f"{self.group}/{self.version}" if self.group else self.version

    def path(
        self,
        namespace: str | None = None,
        name: str | None = None,
        subresource: str | None = None,
    ) -> str:
        """REST path for a collection or a single object."""
        path = f"/apis/{self.group}/{self.version}" if self.group else f"/api/{self.version}"
        if namespace:
            path += f"/namespaces/{namespace}"
        path += f"/{self.plural}"
        if name:
            path += f"/{name}"
            if subresource:
                path += f"/{subresource}"
        return path

    def __str__(self) -> str:
        return f"{self.kind}.{self.api_version}"


CONFIG_MAP = Kind(group="", version="v1", kind="ConfigMap", plural="configmaps")
SECRET = Kind(group="", version="v1", kind="Secret", plural="secrets")
EVENT = Kind(group="", version="v1", kind="Event", plural="events")
JOB = Kind(group="batch", version="v1", kind="Job", plural="jobs")
CRON_JOB = Kind(group="batch", version="v1", kind="CronJob", plural="cronjobs")


@dataclass(frozen=True, order=True)
class ObjectKey:
    """Namespace and name of an object; also the work-queue key."""

    namespace: str
    name: str

    @classmethod
    def of(cls, obj: dict[str, Any]) -> "ObjectKey":
        meta = obj.get("metadata", {})
        return cls(namespace=meta.get("namespace", ""), name=meta["name"])

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


class OwnerReference(SchemaModel):
    api_version: str
    kind: str
    name: str
    uid: str
    controller: bool | None = None
    block_owner_deletion: bool | None = None


class ObjectMeta(SchemaModel):
    name: str
    namespace: str = ""
    uid: str | None = None
    resource_version: str | None = None
    generation: int | None = None
    creation_timestamp: datetime | None = None
    deletion_timestamp: datetime | None = None
    finalizers: list[str] = Field(default_factory=list)
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)
    owner_references: list[OwnerReference] = Field(default_factory=list)


class Resource(SchemaModel):
    """Base for custom resources handled by the reconcilers.

    Subclasses set ``__kind__`` and declare typed ``spec`` and ``status``.
    """

    __kind__: ClassVar[Kind]

    api_version: str | None = None
    kind: str | None = None
    metadata: ObjectMeta

    @classmethod
    def from_object(cls, obj: dict[str, Any]) -> Self:
        return cls.model_validate(obj)

    def to_object(self) -> dict[str, Any]:
        obj = self.to_wire()
        obj["apiVersion"] = self.__kind__.api_version
        obj["kind"] = self.__kind__.kind
        return obj

    @property
    def key(self) -> ObjectKey:
        return ObjectKey(namespace=self.metadata.namespace, name=self.metadata.name)

    @property
    def is_being_deleted(self) -> bool:
        return self.metadata.deletion_timestamp is not None

    def has_finalizer(self, token: str) -> bool:
        return token in self.metadata.finalizers

    def add_finalizer(self, token: str) -> bool:
        """Add the token; returns True if the object changed."""
        if self.has_finalizer(token):
            return False
        self.metadata.finalizers.append(token)
        return True

    def remove_finalizer(self, token: str) -> bool:
        """Remove the token; returns True if the object changed."""
        if not self.has_finalizer(token):
            return False
        self.metadata.finalizers = [f for f in self.metadata.finalizers if f != token]
        return True

    def owner_reference(self) -> dict[str, Any]:
        """Controller owner reference pointing at this object."""
        return OwnerReference(
            api_version=self.__kind__.api_version,
            kind=self.__kind__.kind,
            name=self.metadata.name,
            uid=self.metadata.uid or "",
            controller=True,
            block_owner_deletion=True,
        ).to_wire()


def owner_keys(obj: dict[str, Any], kind: Kind) -> list[ObjectKey]:
    """Keys of the owners of ``obj`` that are of ``kind``."""
    meta = obj.get("metadata", {})
    return [
        ObjectKey(namespace=meta.get("namespace", ""), name=ref["name"])
        for ref in meta.get("ownerReferences") or []
        if ref.get("kind") == kind.kind and ref.get("apiVersion") == kind.api_version
    ]
