"""Unit tests for KubeControlPlane over a mocked API server."""

import json
from typing import Any

import httpx
import pytest

from fanout.domain.fanout.model import FANOUT_JOB
from fanout.domain.shared.error import (
    AlreadyExistsError,
    ControlPlaneError,
    NotFoundError,
    PlatformConflict,
)
from fanout.domain.shared.model.resource import CONFIG_MAP, JOB, ObjectKey
from fanout.infrastructure.kube.client import KubeControlPlane


def _make_control_plane(handler) -> KubeControlPlane:
    client = httpx.AsyncClient(
        base_url="https://kube.local", transport=httpx.MockTransport(handler)
    )
    return KubeControlPlane(client, watch_timeout_seconds=5)


def _status(code: int, message: str) -> httpx.Response:
    return httpx.Response(code, json={"kind": "Status", "code": code, "message": message})


def _config_map(name: str, rv: str = "1") -> dict[str, Any]:
    return {"metadata": {"name": name, "namespace": "default", "resourceVersion": rv}}


class TestKindPaths:
    def test_core_and_group_paths(self):
        assert CONFIG_MAP.path("default", "x") == "/api/v1/namespaces/default/configmaps/x"
        assert JOB.path() == "/apis/batch/v1/jobs"
        assert FANOUT_JOB.path("ns", "j", "status") == (
            "/apis/fanout.io/v1alpha1/namespaces/ns/fanoutjobs/j/status"
        )


class TestKubeControlPlane:
    @pytest.mark.asyncio
    async def test_get(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "GET"
            assert request.url.path == "/api/v1/namespaces/default/configmaps/a"
            return httpx.Response(200, json=_config_map("a"))

        obj = await _make_control_plane(handler).get(CONFIG_MAP, ObjectKey("default", "a"))

        assert obj["metadata"]["name"] == "a"

    @pytest.mark.asyncio
    async def test_list_fills_kind_and_selector(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["labelSelector"] == "fanout.io/list-source"
            return httpx.Response(200, json={"items": [_config_map("a"), _config_map("b")]})

        items = await _make_control_plane(handler).list(
            CONFIG_MAP, "default", label_selector="fanout.io/list-source"
        )

        assert [i["metadata"]["name"] for i in items] == ["a", "b"]
        assert all(i["kind"] == "ConfigMap" and i["apiVersion"] == "v1" for i in items)

    @pytest.mark.asyncio
    async def test_update_status_uses_subresource(self):
        paths: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            paths.append(request.url.path)
            return httpx.Response(200, json=json.loads(request.content))

        obj = {"metadata": {"name": "j", "namespace": "ns"}, "status": {"itemCount": 2}}
        await _make_control_plane(handler).update_status(FANOUT_JOB, obj)

        assert paths == ["/apis/fanout.io/v1alpha1/namespaces/ns/fanoutjobs/j/status"]

    @pytest.mark.asyncio
    async def test_delete_sends_propagation_policy(self):
        bodies: list[dict[str, Any]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "DELETE"
            bodies.append(json.loads(request.content))
            return _status(200, "deleted")

        await _make_control_plane(handler).delete(JOB, ObjectKey("ns", "j"))

        assert bodies[0]["propagationPolicy"] == "Background"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("call", "code", "error"),
        [
            ("get", 404, NotFoundError),
            ("create", 409, AlreadyExistsError),
            ("update", 409, PlatformConflict),
            ("update", 422, ControlPlaneError),
            ("get", 500, ControlPlaneError),
        ],
    )
    async def test_error_mapping(self, call, code, error):
        def handler(request: httpx.Request) -> httpx.Response:
            return _status(code, "rejected")

        control_plane = _make_control_plane(handler)
        with pytest.raises(error):
            if call == "get":
                await control_plane.get(CONFIG_MAP, ObjectKey("default", "a"))
            elif call == "create":
                await control_plane.create(CONFIG_MAP, _config_map("a"))
            else:
                await control_plane.update(CONFIG_MAP, _config_map("a"))

    @pytest.mark.asyncio
    async def test_conflict_on_update_is_not_already_exists(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return _status(409, "the object has been modified")

        with pytest.raises(PlatformConflict) as exc_info:
            await _make_control_plane(handler).update(CONFIG_MAP, _config_map("a"))

        assert not isinstance(exc_info.value, AlreadyExistsError)

    @pytest.mark.asyncio
    async def test_transport_error_is_control_plane_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(ControlPlaneError):
            await _make_control_plane(handler).get(CONFIG_MAP, ObjectKey("default", "a"))

    @pytest.mark.asyncio
    async def test_error_body_may_be_plain_text(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, text="upstream unavailable")

        with pytest.raises(ControlPlaneError, match="upstream unavailable") as exc_info:
            await _make_control_plane(handler).get(CONFIG_MAP, ObjectKey("default", "a"))

        assert exc_info.value.status_code == 503


class TestKubeControlPlaneWatch:
    @pytest.mark.asyncio
    async def test_lists_then_streams(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if "watch" not in request.url.params:
                return httpx.Response(
                    200,
                    json={"metadata": {"resourceVersion": "10"}, "items": [_config_map("a", "9")]},
                )
            assert request.url.params["resourceVersion"] == "10"
            lines = [
                {"type": "BOOKMARK", "object": {"metadata": {"resourceVersion": "11"}}},
                {"type": "MODIFIED", "object": _config_map("a", "12")},
                {"type": "DELETED", "object": _config_map("a", "13")},
            ]
            return httpx.Response(200, text="\n".join(json.dumps(line) for line in lines) + "\n")

        events = []
        async for event in _make_control_plane(handler).watch(CONFIG_MAP, "default"):
            events.append(event)
            if len(events) == 3:
                break

        assert [e.type for e in events] == ["ADDED", "MODIFIED", "DELETED"]
        assert events[1].object["kind"] == "ConfigMap"

    @pytest.mark.asyncio
    async def test_expired_resource_version_relists(self):
        lists = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal lists
            if "watch" not in request.url.params:
                lists += 1
                return httpx.Response(
                    200,
                    json={
                        "metadata": {"resourceVersion": str(lists)},
                        "items": [_config_map(f"item-{lists}")],
                    },
                )
            error = {"type": "ERROR", "object": {"kind": "Status", "code": 410}}
            return httpx.Response(200, text=json.dumps(error) + "\n")

        names = []
        async for event in _make_control_plane(handler).watch(CONFIG_MAP, "default"):
            names.append(event.object["metadata"]["name"])
            if len(names) == 2:
                break

        assert names == ["item-1", "item-2"]
        assert lists == 2

    @pytest.mark.asyncio
    async def test_gone_status_relists(self):
        lists = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal lists
            if "watch" not in request.url.params:
                lists += 1
                return httpx.Response(200, json={"items": [_config_map(f"item-{lists}")]})
            return _status(410, "too old resource version")

        names = []
        async for event in _make_control_plane(handler).watch(CONFIG_MAP):
            names.append(event.object["metadata"]["name"])
            if len(names) == 2:
                break

        assert names == ["item-1", "item-2"]
