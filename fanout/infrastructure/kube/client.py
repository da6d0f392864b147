"""KubeControlPlane - the ControlPlane port over the Kubernetes REST API."""

import json
import logging
from collections.abc import AsyncIterator
from typing import Any, Literal

import httpx
import logfire

from fanout.domain.shared.error import (
    AlreadyExistsError,
    ControlPlaneError,
    NotFoundError,
    PlatformConflict,
)
from fanout.domain.shared.model.resource import Kind, ObjectKey
from fanout.domain.shared.port.control_plane import ControlPlane, WatchEvent

logger = logging.getLogger(__name__)

Verb = Literal["get", "list", "create", "update", "delete", "watch"]

_WATCH_EVENT_TYPES = {"ADDED", "MODIFIED", "DELETED"}


class _Expired(Exception):
    """The watch resource version is too old; a fresh list is needed."""


class KubeControlPlane(ControlPlane):
    """Talks to the API server through a pre-configured ``httpx.AsyncClient``.

    The client carries the base URL, bearer token and CA bundle; this class
    only builds paths and maps responses onto the error hierarchy:

        404              NotFoundError
        409 on create    AlreadyExistsError
        409 otherwise    PlatformConflict
        other non-2xx    ControlPlaneError
    """

    def __init__(self, client: httpx.AsyncClient, watch_timeout_seconds: int = 300) -> None:
        self._client = client
        self._watch_timeout = watch_timeout_seconds

    async def get(self, kind: Kind, key: ObjectKey) -> dict[str, Any]:
        response = await self._send("get", kind, "GET", kind.path(key.namespace, key.name))
        return response.json()

    async def list(
        self,
        kind: Kind,
        namespace: str | None = None,
        label_selector: str | None = None,
    ) -> list[dict[str, Any]]:
        listing = await self._list(kind, namespace, label_selector)
        return listing["items"]

    async def create(self, kind: Kind, obj: dict[str, Any]) -> dict[str, Any]:
        namespace = obj["metadata"].get("namespace")
        response = await self._send("create", kind, "POST", kind.path(namespace), json=obj)
        return response.json()

    async def update(self, kind: Kind, obj: dict[str, Any]) -> dict[str, Any]:
        meta = obj["metadata"]
        path = kind.path(meta.get("namespace"), meta["name"])
        response = await self._send("update", kind, "PUT", path, json=obj)
        return response.json()

    async def update_status(self, kind: Kind, obj: dict[str, Any]) -> dict[str, Any]:
        meta = obj["metadata"]
        path = kind.path(meta.get("namespace"), meta["name"], "status")
        response = await self._send("update", kind, "PUT", path, json=obj)
        return response.json()

    async def delete(
        self,
        kind: Kind,
        key: ObjectKey,
        propagation: str = "Background",
    ) -> None:
        body = {"apiVersion": "v1", "kind": "DeleteOptions", "propagationPolicy": propagation}
        await self._send("delete", kind, "DELETE", kind.path(key.namespace, key.name), json=body)

    async def watch(
        self,
        kind: Kind,
        namespace: str | None = None,
        label_selector: str | None = None,
    ) -> AsyncIterator[WatchEvent]:
        """List, then stream changes from the list's resource version.

        Streams that end on the server-side timeout are resumed from the
        last seen resource version; an expired version triggers a relist,
        which replays every object as ADDED.
        """
        while True:
            listing = await self._list(kind, namespace, label_selector)
            for item in listing["items"]:
                yield WatchEvent(type="ADDED", object=item)
            resource_version = listing.get("metadata", {}).get("resourceVersion")

            try:
                while True:
                    async for event_type, obj in self._stream(
                        kind, namespace, label_selector, resource_version
                    ):
                        resource_version = (
                            obj.get("metadata", {}).get("resourceVersion") or resource_version
                        )
                        if event_type in _WATCH_EVENT_TYPES:
                            yield WatchEvent(type=event_type, object=obj)
            except _Expired:
                logger.debug(f"Watch on {kind} expired at {resource_version}, relisting")

    async def _list(
        self, kind: Kind, namespace: str | None, label_selector: str | None
    ) -> dict[str, Any]:
        params = {"labelSelector": label_selector} if label_selector else None
        response = await self._send("list", kind, "GET", kind.path(namespace), params=params)
        listing = response.json()
        # List items omit apiVersion and kind
        for item in listing.get("items") or []:
            item.setdefault("apiVersion", kind.api_version)
            item.setdefault("kind", kind.kind)
        listing["items"] = listing.get("items") or []
        return listing

    async def _stream(
        self,
        kind: Kind,
        namespace: str | None,
        label_selector: str | None,
        resource_version: str | None,
    ) -> AsyncIterator[tuple[str, dict[str, Any]]]:
        params: dict[str, str] = {
            "watch": "1",
            "allowWatchBookmarks": "true",
            "timeoutSeconds": str(self._watch_timeout),
        }
        if resource_version:
            params["resourceVersion"] = resource_version
        if label_selector:
            params["labelSelector"] = label_selector

        timeout = httpx.Timeout(10.0, read=self._watch_timeout + 30.0)
        try:
            async with self._client.stream(
                "GET", kind.path(namespace), params=params, timeout=timeout
            ) as response:
                if response.status_code == 410:
                    raise _Expired()
                if not response.is_success:
                    await response.aread()
                    self._raise_for_status("watch", kind, response)

                async for line in response.aiter_lines():
                    if not line.strip():
                        continue
                    event = json.loads(line)
                    event_type = event.get("type")
                    obj = event.get("object") or {}
                    if event_type == "ERROR":
                        if obj.get("code") == 410:
                            raise _Expired()
                        raise ControlPlaneError(
                            f"watch on {kind} failed: {obj.get('message', obj)}",
                            status_code=obj.get("code"),
                        )
                    obj.setdefault("apiVersion", kind.api_version)
                    obj.setdefault("kind", kind.kind)
                    yield event_type, obj
        except httpx.HTTPError as e:
            raise ControlPlaneError(f"watch on {kind} failed: {e}") from e

    async def _send(
        self,
        verb: Verb,
        kind: Kind,
        method: str,
        path: str,
        **kwargs: Any,
    ) -> httpx.Response:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logfire.warn("API server request failed", method=method, path=path, error=str(e))
            raise ControlPlaneError(f"{method} {path} failed: {e}") from e
        self._raise_for_status(verb, kind, response)
        return response

    @staticmethod
    def _raise_for_status(verb: Verb, kind: Kind, response: httpx.Response) -> None:
        if response.is_success:
            return

        status = response.status_code
        try:
            body = response.json()
        except ValueError:
            body = None
        message = body.get("message") if isinstance(body, dict) else None
        message = message or response.text
        path = response.request.url.path

        if status == 404:
            raise NotFoundError(f"{kind.kind} not found at {path}")
        if status == 409:
            if verb == "create":
                raise AlreadyExistsError(f"{kind.kind} already exists at {path}: {message}")
            raise PlatformConflict(f"conflict on {kind.kind} at {path}: {message}")

        logfire.warn(
            "API server rejected request",
            verb=verb,
            kind=kind.kind,
            path=path,
            status_code=status,
        )
        raise ControlPlaneError(
            f"{verb} {kind.kind} at {path} failed with status {status}: {message}",
            status_code=status,
        )
