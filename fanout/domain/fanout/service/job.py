"""FanOutJobReconciler - one-shot fan-out with finalizer-guarded cleanup."""

import logging
from datetime import UTC, datetime
from typing import Any

from fanout.domain.fanout.model.fanout_job import FANOUT_JOB, FANOUT_JOB_FINALIZER, FanOutJob
from fanout.domain.fanout.service.items import resolve_items
from fanout.domain.fanout.service.lifecycle import ensure_finalizer, finalize
from fanout.domain.fanout.service.render import (
    OWNER_LABEL,
    RenderSettings,
    list_config_map_name,
    render_job,
    render_list_config_map,
)
from fanout.domain.ledger.service import ItemLedger
from fanout.domain.shared.error import AlreadyExistsError, ConfigInvalid, NotFoundError
from fanout.domain.shared.model.resource import CONFIG_MAP, JOB, Kind, ObjectKey
from fanout.domain.shared.port.control_plane import ControlPlane
from fanout.domain.shared.port.event_recorder import EventRecorder
from fanout.domain.shared.reconcile import Reconciler, Request, Result, load_resource

logger = logging.getLogger(__name__)


class FanOutJobReconciler(Reconciler[FanOutJob]):
    """Drives a FanOutJob through Initializing, Active and Terminating.

    Initializing: attach the cleanup finalizer and requeue, so no owned
    object ever exists without it.

    Active: delete the FanOutJob once ``deleteAfter`` has passed;
    otherwise render the list ConfigMap and the indexed Job. Both creates
    treat "already exists" as success.

    Terminating: delete the Job and ConfigMap, then drop the finalizer so
    the API server can finish the deletion.
    """

    __owns__ = (CONFIG_MAP, JOB)
    __owns_selector__ = OWNER_LABEL

    control_plane: ControlPlane
    ledger: ItemLedger
    events: EventRecorder
    settings: RenderSettings

    async def reconcile(self, request: Request) -> Result:
        job = await load_resource(self.control_plane, FanOutJob, request)
        if job is None:
            logger.debug(f"FanOutJob {request} not found, likely deleted")
            return Result()

        if job.is_being_deleted:
            await finalize(
                self.control_plane,
                job,
                FANOUT_JOB_FINALIZER,
                owned=[
                    (JOB, job.key),
                    (CONFIG_MAP, ObjectKey(request.namespace, list_config_map_name(request.name))),
                ],
            )
            return Result()

        if await ensure_finalizer(self.control_plane, job, FANOUT_JOB_FINALIZER):
            return Result(requeue_after=0.0)

        try:
            expires_at = job.expires_at()
            now = datetime.now(UTC)
            if expires_at is not None and now >= expires_at:
                logger.info(f"FanOutJob {request} expired at {expires_at.isoformat()}, deleting")
                await self._delete_self(job)
                return Result()

            items = await resolve_items(job.spec, request.namespace, self.ledger)
            config_map = render_list_config_map(job, items)
            unit = render_job(job, items, self.settings)
        except ConfigInvalid as e:
            await self._record_error(job, e)
            return Result()

        await self._create(CONFIG_MAP, config_map)
        if await self._create(JOB, unit):
            item_count = len(items)
            await self.events.record(
                job, "Normal", "Created", f"Created Job {request.name} with {item_count} items"
            )
        else:
            # The Job keeps the list it was created with
            item_count = await self._live_completions(job.key, len(items))

        before = job.status.to_wire()
        job.status.job_name = request.name
        job.status.item_count = item_count
        job.status.error = None
        if job.status.to_wire() != before:
            await self.control_plane.update_status(FANOUT_JOB, job.to_object())

        if expires_at is not None:
            return Result(requeue_after=max((expires_at - now).total_seconds(), 0.0))
        return Result()

    async def _create(self, kind: Kind, obj: dict[str, Any]) -> bool:
        """Create ``obj``; returns False if it already existed."""
        try:
            await self.control_plane.create(kind, obj)
        except AlreadyExistsError:
            return False
        logger.info(f"Created {kind.kind} {obj['metadata']['namespace']}/{obj['metadata']['name']}")
        return True

    async def _live_completions(self, key: ObjectKey, default: int) -> int:
        try:
            live = await self.control_plane.get(JOB, key)
        except NotFoundError:
            return default
        return (live.get("spec") or {}).get("completions", default)

    async def _delete_self(self, job: FanOutJob) -> None:
        try:
            await self.control_plane.delete(FANOUT_JOB, job.key)
        except NotFoundError:
            return
        await self.events.record(job, "Normal", "Expired", "deleteAfter elapsed")

    async def _record_error(self, job: FanOutJob, error: ConfigInvalid) -> None:
        logger.warning(f"FanOutJob {job.key} is invalid: {error}")
        if job.status.error != str(error):
            job.status.error = str(error)
            await self.control_plane.update_status(FANOUT_JOB, job.to_object())
            await self.events.record(job, "Warning", "InvalidSpec", str(error))
