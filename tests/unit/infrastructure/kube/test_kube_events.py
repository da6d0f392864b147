"""Unit tests for KubeEventRecorder."""

from unittest.mock import AsyncMock

import pytest

from fanout.domain.fanout.model import FanOutJob
from fanout.domain.shared.error import ControlPlaneError
from fanout.domain.shared.model.resource import EVENT
from fanout.domain.shared.port.control_plane import ControlPlane
from fanout.infrastructure.kube.events import KubeEventRecorder


def _make_job() -> FanOutJob:
    return FanOutJob.model_validate(
        {
            "metadata": {"name": "crawl", "namespace": "default", "uid": "uid-7"},
            "spec": {"staticList": ["a"], "template": {"image": "busybox"}},
        }
    )


class TestKubeEventRecorder:
    @pytest.mark.asyncio
    async def test_event_references_the_resource(self, control_plane):
        recorder = KubeEventRecorder(control_plane)

        await recorder.record(_make_job(), "Warning", "InvalidSpec", "bad template")

        ((_, _), event) = next(iter(control_plane.objects.items()))
        assert event["metadata"]["name"].startswith("crawl.")
        assert event["involvedObject"]["kind"] == "FanOutJob"
        assert event["involvedObject"]["uid"] == "uid-7"
        assert event["type"] == "Warning"
        assert event["reason"] == "InvalidSpec"
        assert event["message"] == "bad template"
        assert event["source"] == {"component": "fanout-operator"}

    @pytest.mark.asyncio
    async def test_event_names_are_unique(self, control_plane):
        recorder = KubeEventRecorder(control_plane)

        await recorder.record(_make_job(), "Normal", "Created", "one")
        await recorder.record(_make_job(), "Normal", "Created", "two")

        assert len([k for k, _ in control_plane.objects if k == EVENT]) == 2

    @pytest.mark.asyncio
    async def test_failures_are_swallowed(self):
        control_plane = AsyncMock(spec=ControlPlane)
        control_plane.create.side_effect = ControlPlaneError("forbidden", status_code=403)
        recorder = KubeEventRecorder(control_plane)

        await recorder.record(_make_job(), "Normal", "Created", "one")

        control_plane.create.assert_awaited_once()
