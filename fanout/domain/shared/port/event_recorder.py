"""EventRecorder port: user-visible events attached to an object."""

from typing import Literal, Protocol

from fanout.domain.shared.model.resource import Resource

EventType = Literal["Normal", "Warning"]


class EventRecorder(Protocol):
    async def record(
        self,
        resource: Resource,
        type: EventType,
        reason: str,
        message: str,
    ) -> None:
        """Record an event. Never raises."""
        ...
