"""ControlPlane port: the orchestration platform's object store."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, AsyncIterator, Literal, Protocol

from fanout.domain.shared.model.resource import Kind, ObjectKey

WatchEventType = Literal["ADDED", "MODIFIED", "DELETED"]


@dataclass(frozen=True)
class WatchEvent:
    """A change notification for one object."""

    type: WatchEventType
    object: dict[str, Any]


class ControlPlane(Protocol):
    """CRUD and watch over named, namespaced, versioned objects.

    Objects are exchanged as plain JSON-shaped dicts. Errors:
        NotFoundError: get/update/delete of a missing object.
        AlreadyExistsError: create of an existing object.
        PlatformConflict: update with a stale resourceVersion.
        ControlPlaneError: anything else the platform rejects.
    """

    async def get(self, kind: Kind, key: ObjectKey) -> dict[str, Any]: ...

    async def list(
        self,
        kind: Kind,
        namespace: str | None = None,
        label_selector: str | None = None,
    ) -> list[dict[str, Any]]: ...

    async def create(self, kind: Kind, obj: dict[str, Any]) -> dict[str, Any]: ...

    async def update(self, kind: Kind, obj: dict[str, Any]) -> dict[str, Any]: ...

    async def update_status(self, kind: Kind, obj: dict[str, Any]) -> dict[str, Any]: ...

    async def delete(
        self,
        kind: Kind,
        key: ObjectKey,
        propagation: str = "Background",
    ) -> None: ...

    def watch(
        self,
        kind: Kind,
        namespace: str | None = None,
        label_selector: str | None = None,
    ) -> AsyncIterator[WatchEvent]:
        """Stream changes, starting with ADDED for every existing object."""
        ...
