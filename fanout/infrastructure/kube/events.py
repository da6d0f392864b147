"""KubeEventRecorder - posts core/v1 Events about custom resources."""

import logging
from datetime import UTC, datetime
from uuid import uuid4

from fanout.domain.shared.error import FanoutError
from fanout.domain.shared.model.resource import EVENT, Resource
from fanout.domain.shared.port.control_plane import ControlPlane
from fanout.domain.shared.port.event_recorder import EventRecorder, EventType

logger = logging.getLogger(__name__)

COMPONENT = "fanout-operator"


class KubeEventRecorder(EventRecorder):
    def __init__(self, control_plane: ControlPlane, component: str = COMPONENT) -> None:
        self._control_plane = control_plane
        self._component = component

    async def record(
        self,
        resource: Resource,
        type: EventType,
        reason: str,
        message: str,
    ) -> None:
        meta = resource.metadata
        now = datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")
        event = {
            "apiVersion": EVENT.api_version,
            "kind": EVENT.kind,
            "metadata": {
                "name": f"{meta.name}.{uuid4().hex[:16]}",
                "namespace": meta.namespace,
            },
            "involvedObject": {
                "apiVersion": resource.__kind__.api_version,
                "kind": resource.__kind__.kind,
                "name": meta.name,
                "namespace": meta.namespace,
                "uid": meta.uid,
                "resourceVersion": meta.resource_version,
            },
            "type": type,
            "reason": reason,
            "message": message,
            "source": {"component": self._component},
            "reportingComponent": self._component,
            "firstTimestamp": now,
            "lastTimestamp": now,
            "count": 1,
        }
        try:
            await self._control_plane.create(EVENT, event)
        except FanoutError as e:
            logger.warning(f"Failed to record event {reason} for {resource.key}: {e}")
