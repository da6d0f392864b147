"""Finalizer handling shared by the fan-out reconcilers."""

import logging

from fanout.domain.shared.error import FanoutError, NotFoundError
from fanout.domain.shared.model.resource import Kind, ObjectKey, Resource
from fanout.domain.shared.port.control_plane import ControlPlane

logger = logging.getLogger(__name__)


async def ensure_finalizer(control_plane: ControlPlane, resource: Resource, token: str) -> bool:
    """Attach ``token``; returns True if the resource had to be updated."""
    if not resource.add_finalizer(token):
        return False
    await control_plane.update(resource.__kind__, resource.to_object())
    logger.debug(f"Added finalizer {token} to {resource.__kind__.kind} {resource.key}")
    return True


async def finalize(
    control_plane: ControlPlane,
    resource: Resource,
    token: str,
    owned: list[tuple[Kind, ObjectKey]],
) -> None:
    """Second phase of deletion: remove owned objects, then release the finalizer.

    Deleting owned objects is best-effort. Owner references still let the
    garbage collector remove anything left behind.
    """
    if not resource.has_finalizer(token):
        return

    for kind, key in owned:
        try:
            await control_plane.delete(kind, key, propagation="Background")
            logger.info(f"Deleted {kind.kind} {key} owned by {resource.key}")
        except NotFoundError:
            pass
        except FanoutError as e:
            logger.warning(f"Failed to delete {kind.kind} {key} during cleanup: {e}")

    resource.remove_finalizer(token)
    await control_plane.update(resource.__kind__, resource.to_object())
    logger.info(f"Released finalizer on {resource.__kind__.kind} {resource.key}")
