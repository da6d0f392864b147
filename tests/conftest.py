"""Global test fixtures.

FakeControlPlane models the parts of the API server the reconcilers rely
on: resource versions, generations, finalizers, owner-reference cascading,
label selectors and watch streams.
"""

from __future__ import annotations

import asyncio
import copy
from datetime import UTC, datetime
from typing import Any, AsyncIterator
from unittest.mock import AsyncMock

import pytest

from fanout.domain.shared.error import AlreadyExistsError, NotFoundError, PlatformConflict
from fanout.domain.shared.model.resource import GROUP, Kind, ObjectKey
from fanout.domain.shared.port.control_plane import WatchEvent
from fanout.domain.shared.port.event_recorder import EventRecorder

# Metadata owned by the server; client values are ignored on update
_SERVER_FIELDS = ("uid", "creationTimestamp", "deletionTimestamp", "generation")


def _now() -> str:
    return datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def _matches(labels: dict[str, str], selector: str | None) -> bool:
    if not selector:
        return True
    for term in selector.split(","):
        term = term.strip()
        if "!=" in term:
            key, value = term.split("!=", 1)
            if labels.get(key) == value:
                return False
        elif "=" in term:
            key, value = term.replace("==", "=").split("=", 1)
            if labels.get(key) != value:
                return False
        elif term.startswith("!"):
            if term[1:] in labels:
                return False
        elif term not in labels:
            return False
    return True


class FakeControlPlane:
    def __init__(self) -> None:
        self.objects: dict[tuple[Kind, ObjectKey], dict[str, Any]] = {}
        self.actions: list[tuple[str, str, str]] = []
        self._resource_version = 0
        self._uid = 0
        self._watchers: list[tuple[Kind, str | None, str | None, asyncio.Queue]] = []

    # -- helpers for tests ---------------------------------------------------

    def seed(self, kind: Kind, obj: dict[str, Any]) -> dict[str, Any]:
        """Store ``obj`` directly, keeping any server fields it already has."""
        obj = copy.deepcopy(obj)
        meta = obj.setdefault("metadata", {})
        meta.setdefault("namespace", "default")
        meta.setdefault("uid", self._next_uid())
        meta.setdefault("creationTimestamp", _now())
        meta.setdefault("generation", 1)
        meta["resourceVersion"] = self._next_resource_version()
        obj.setdefault("apiVersion", kind.api_version)
        obj.setdefault("kind", kind.kind)
        self.objects[(kind, ObjectKey.of(obj))] = obj
        return copy.deepcopy(obj)

    def stored(self, kind: Kind, namespace: str, name: str) -> dict[str, Any] | None:
        obj = self.objects.get((kind, ObjectKey(namespace, name)))
        return copy.deepcopy(obj) if obj is not None else None

    def count(self, verb: str, kind: Kind | None = None) -> int:
        return sum(
            1 for v, k, _ in self.actions if v == verb and (kind is None or k == kind.kind)
        )

    # -- ControlPlane --------------------------------------------------------

    async def get(self, kind: Kind, key: ObjectKey) -> dict[str, Any]:
        self.actions.append(("get", kind.kind, str(key)))
        obj = self.objects.get((kind, key))
        if obj is None:
            raise NotFoundError(f"{kind.kind} {key} not found")
        return copy.deepcopy(obj)

    async def list(
        self,
        kind: Kind,
        namespace: str | None = None,
        label_selector: str | None = None,
    ) -> list[dict[str, Any]]:
        self.actions.append(("list", kind.kind, namespace or ""))
        return [
            copy.deepcopy(obj)
            for (k, key), obj in sorted(self.objects.items(), key=lambda i: i[0][1])
            if k == kind
            and (not namespace or key.namespace == namespace)
            and _matches(obj["metadata"].get("labels") or {}, label_selector)
        ]

    async def create(self, kind: Kind, obj: dict[str, Any]) -> dict[str, Any]:
        key = ObjectKey.of(obj)
        self.actions.append(("create", kind.kind, str(key)))
        if (kind, key) in self.objects:
            raise AlreadyExistsError(f"{kind.kind} {key} already exists")

        obj = copy.deepcopy(obj)
        meta = obj["metadata"]
        meta["uid"] = self._next_uid()
        meta["creationTimestamp"] = _now()
        meta["generation"] = 1
        meta["resourceVersion"] = self._next_resource_version()
        meta.pop("deletionTimestamp", None)
        obj["apiVersion"] = kind.api_version
        obj["kind"] = kind.kind
        self.objects[(kind, key)] = obj
        self._notify(kind, "ADDED", obj)
        return copy.deepcopy(obj)

    async def update(self, kind: Kind, obj: dict[str, Any]) -> dict[str, Any]:
        key = ObjectKey.of(obj)
        self.actions.append(("update", kind.kind, str(key)))
        live = self._live_for_write(kind, obj)

        new = copy.deepcopy(obj)
        new["apiVersion"] = kind.api_version
        new["kind"] = kind.kind
        for name in _SERVER_FIELDS:
            if name in live["metadata"]:
                new["metadata"][name] = live["metadata"][name]
            else:
                new["metadata"].pop(name, None)
        if kind.group == GROUP:
            # Status is only written through the status subresource
            if "status" in live:
                new["status"] = copy.deepcopy(live["status"])
            else:
                new.pop("status", None)
        if new.get("spec") != live.get("spec"):
            new["metadata"]["generation"] = live["metadata"].get("generation", 1) + 1

        if live["metadata"].get("deletionTimestamp") and not new["metadata"].get("finalizers"):
            self._remove(kind, key)
            return new
        return self._store_if_changed(kind, key, live, new)

    async def update_status(self, kind: Kind, obj: dict[str, Any]) -> dict[str, Any]:
        key = ObjectKey.of(obj)
        self.actions.append(("update_status", kind.kind, str(key)))
        live = self._live_for_write(kind, obj)

        new = copy.deepcopy(live)
        if "status" in obj:
            new["status"] = copy.deepcopy(obj["status"])
        else:
            new.pop("status", None)
        return self._store_if_changed(kind, key, live, new)

    async def delete(
        self,
        kind: Kind,
        key: ObjectKey,
        propagation: str = "Background",
    ) -> None:
        self.actions.append(("delete", kind.kind, str(key)))
        live = self.objects.get((kind, key))
        if live is None:
            raise NotFoundError(f"{kind.kind} {key} not found")

        meta = live["metadata"]
        if meta.get("finalizers"):
            if not meta.get("deletionTimestamp"):
                meta["deletionTimestamp"] = _now()
                meta["generation"] = meta.get("generation", 1) + 1
                meta["resourceVersion"] = self._next_resource_version()
                self._notify(kind, "MODIFIED", live)
            return
        self._remove(kind, key)

    async def watch(
        self,
        kind: Kind,
        namespace: str | None = None,
        label_selector: str | None = None,
    ) -> AsyncIterator[WatchEvent]:
        queue: asyncio.Queue[WatchEvent] = asyncio.Queue()
        entry = (kind, namespace, label_selector, queue)
        for obj in await self.list(kind, namespace, label_selector):
            queue.put_nowait(WatchEvent(type="ADDED", object=obj))
        self._watchers.append(entry)
        try:
            while True:
                yield await queue.get()
        finally:
            self._watchers.remove(entry)

    # -- internals -----------------------------------------------------------

    def _live_for_write(self, kind: Kind, obj: dict[str, Any]) -> dict[str, Any]:
        key = ObjectKey.of(obj)
        live = self.objects.get((kind, key))
        if live is None:
            raise NotFoundError(f"{kind.kind} {key} not found")
        sent = obj["metadata"].get("resourceVersion")
        if sent and sent != live["metadata"]["resourceVersion"]:
            raise PlatformConflict(f"{kind.kind} {key} has been modified")
        return live

    def _store_if_changed(
        self, kind: Kind, key: ObjectKey, live: dict[str, Any], new: dict[str, Any]
    ) -> dict[str, Any]:
        new["metadata"]["resourceVersion"] = live["metadata"]["resourceVersion"]
        if new == live:
            return copy.deepcopy(live)
        new["metadata"]["resourceVersion"] = self._next_resource_version()
        self.objects[(kind, key)] = new
        self._notify(kind, "MODIFIED", new)
        return copy.deepcopy(new)

    def _remove(self, kind: Kind, key: ObjectKey) -> None:
        obj = self.objects.pop((kind, key))
        self._notify(kind, "DELETED", obj)
        uid = obj["metadata"].get("uid")
        dependents = [
            (k, dep_key)
            for (k, dep_key), dep in self.objects.items()
            if any(ref.get("uid") == uid for ref in dep["metadata"].get("ownerReferences") or [])
        ]
        for dep in dependents:
            if dep in self.objects:
                self._remove(*dep)

    def _notify(self, kind: Kind, event_type: str, obj: dict[str, Any]) -> None:
        for watched, namespace, selector, queue in self._watchers:
            if watched != kind:
                continue
            if namespace and obj["metadata"].get("namespace") != namespace:
                continue
            if not _matches(obj["metadata"].get("labels") or {}, selector):
                continue
            queue.put_nowait(WatchEvent(type=event_type, object=copy.deepcopy(obj)))

    def _next_resource_version(self) -> str:
        self._resource_version += 1
        return str(self._resource_version)

    def _next_uid(self) -> str:
        self._uid += 1
        return f"uid-{self._uid:04d}"


@pytest.fixture
def control_plane() -> FakeControlPlane:
    return FakeControlPlane()


@pytest.fixture
def events() -> AsyncMock:
    return AsyncMock(spec=EventRecorder)
