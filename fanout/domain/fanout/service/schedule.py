"""FanOutScheduleReconciler - recurring fan-out kept current with its ledger."""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any

from typing_extensions import Self

from fanout.domain.fanout.model.fanout_schedule import (
    FANOUT_SCHEDULE,
    FANOUT_SCHEDULE_FINALIZER,
    FanOutSchedule,
    FanOutScheduleStatus,
)
from fanout.domain.fanout.service.items import resolve_items
from fanout.domain.fanout.service.lifecycle import ensure_finalizer, finalize
from fanout.domain.fanout.service.render import (
    OWNER_LABEL,
    RenderSettings,
    contains,
    list_config_map_name,
    render_cron_job,
    render_list_config_map,
)
from fanout.domain.ledger.model import LEDGER_LABEL
from fanout.domain.ledger.service import ItemLedger
from fanout.domain.shared.error import AlreadyExistsError, ConfigInvalid, NotFoundError
from fanout.domain.shared.model.resource import CONFIG_MAP, CRON_JOB, ObjectKey
from fanout.domain.shared.port.control_plane import ControlPlane
from fanout.domain.shared.port.event_recorder import EventRecorder
from fanout.domain.shared.reconcile import (
    Reconciler,
    Request,
    Result,
    SecondaryWatch,
    load_resource,
)

logger = logging.getLogger(__name__)

LEDGER_WATCH = SecondaryWatch(kind=CONFIG_MAP, label_selector=LEDGER_LABEL)


@dataclass
class ScheduleLedgerIndex:
    """Ledger key to the keys of the FanOutSchedules that read it.

    Built from one list query per lookup rather than kept as a cache.
    """

    dependents: dict[ObjectKey, set[ObjectKey]] = field(default_factory=dict)

    @classmethod
    async def build(cls, control_plane: ControlPlane, namespace: str) -> Self:
        dependents: dict[ObjectKey, set[ObjectKey]] = defaultdict(set)
        for obj in await control_plane.list(FANOUT_SCHEDULE, namespace=namespace):
            ref = (obj.get("spec") or {}).get("listSourceRef")
            if ref:
                dependents[ObjectKey(namespace, ref)].add(ObjectKey.of(obj))
        return cls(dependents=dict(dependents))

    def lookup(self, ledger: ObjectKey) -> list[ObjectKey]:
        return sorted(self.dependents.get(ledger, ()))


class FanOutScheduleReconciler(Reconciler[FanOutSchedule]):
    """Keeps a CronJob and its list ConfigMap in step with a FanOutSchedule.

    Unlike the one-shot reconciler both objects are upserted: the ConfigMap
    is rewritten when the items change, and the CronJob is updated when the
    desired spec is no longer contained in the live one. The pod template
    carries the ConfigMap's resource version, so an item change always
    produces a new template revision.

    Ledger ConfigMaps are watched; a change re-enqueues every schedule that
    references the ledger.
    """

    __owns__ = (CRON_JOB,)
    __owns_selector__ = OWNER_LABEL
    __watches__ = (LEDGER_WATCH,)

    control_plane: ControlPlane
    ledger: ItemLedger
    events: EventRecorder
    settings: RenderSettings

    async def reconcile(self, request: Request) -> Result:
        schedule = await load_resource(self.control_plane, FanOutSchedule, request)
        if schedule is None:
            logger.debug(f"FanOutSchedule {request} not found, likely deleted")
            return Result()

        if schedule.is_being_deleted:
            await finalize(
                self.control_plane,
                schedule,
                FANOUT_SCHEDULE_FINALIZER,
                owned=[
                    (CRON_JOB, schedule.key),
                    (CONFIG_MAP, ObjectKey(request.namespace, list_config_map_name(request.name))),
                ],
            )
            return Result()

        if await ensure_finalizer(self.control_plane, schedule, FANOUT_SCHEDULE_FINALIZER):
            return Result(requeue_after=0.0)

        try:
            schedule.spec.validate_schedule()
            items = await resolve_items(schedule.spec, request.namespace, self.ledger)
            desired_config_map = render_list_config_map(schedule, items)
            # Validates the template before anything is written
            render_cron_job(schedule, items, self.settings)
        except ConfigInvalid as e:
            await self._record_error(schedule, e)
            return Result()

        config_map = await self._upsert_config_map(desired_config_map)
        items_version = config_map["metadata"].get("resourceVersion")
        cron_job = await self._upsert_cron_job(
            render_cron_job(schedule, items, self.settings, items_version=items_version)
        )

        before = schedule.status.to_wire()
        self._mirror_status(schedule, cron_job, len(items))
        if schedule.status.to_wire() != before:
            await self.control_plane.update_status(FANOUT_SCHEDULE, schedule.to_object())
        return Result()

    async def map_secondary(self, watch: SecondaryWatch, obj: dict[str, Any]) -> list[Request]:
        meta = obj.get("metadata") or {}
        namespace = meta.get("namespace", "")
        source = (meta.get("labels") or {}).get(LEDGER_LABEL) or meta.get("name")
        index = await ScheduleLedgerIndex.build(self.control_plane, namespace)
        return index.lookup(ObjectKey(namespace, source))

    async def _upsert_config_map(self, desired: dict[str, Any]) -> dict[str, Any]:
        key = ObjectKey.of(desired)
        try:
            live = await self.control_plane.get(CONFIG_MAP, key)
        except NotFoundError:
            try:
                created = await self.control_plane.create(CONFIG_MAP, desired)
                logger.info(f"Created ConfigMap {key}")
                return created
            except AlreadyExistsError:
                live = await self.control_plane.get(CONFIG_MAP, key)

        if (live.get("data") or {}) == desired["data"]:
            return live
        live["data"] = desired["data"]
        updated = await self.control_plane.update(CONFIG_MAP, live)
        logger.info(f"Updated ConfigMap {key}")
        return updated

    async def _upsert_cron_job(self, desired: dict[str, Any]) -> dict[str, Any]:
        key = ObjectKey.of(desired)
        try:
            live = await self.control_plane.get(CRON_JOB, key)
        except NotFoundError:
            try:
                created = await self.control_plane.create(CRON_JOB, desired)
                logger.info(f"Created CronJob {key}")
                return created
            except AlreadyExistsError:
                live = await self.control_plane.get(CRON_JOB, key)

        if contains(live.get("spec"), desired["spec"]):
            return live

        live["spec"] = desired["spec"]
        meta = live.setdefault("metadata", {})
        meta["labels"] = {**(meta.get("labels") or {}), **desired["metadata"]["labels"]}
        if not meta.get("ownerReferences"):
            meta["ownerReferences"] = desired["metadata"]["ownerReferences"]
        updated = await self.control_plane.update(CRON_JOB, live)
        logger.info(f"Updated CronJob {key}")
        return updated

    @staticmethod
    def _mirror_status(schedule: FanOutSchedule, cron_job: dict[str, Any], item_count: int) -> None:
        live = cron_job.get("status") or {}
        schedule.status = FanOutScheduleStatus(
            cron_job_name=cron_job["metadata"]["name"],
            item_count=item_count,
            active=list(live.get("active") or []),
            last_schedule_time=live.get("lastScheduleTime"),
            last_successful_time=live.get("lastSuccessfulTime"),
        )

    async def _record_error(self, schedule: FanOutSchedule, error: ConfigInvalid) -> None:
        logger.warning(f"FanOutSchedule {schedule.key} is invalid: {error}")
        if schedule.status.error != str(error):
            schedule.status.error = str(error)
            await self.control_plane.update_status(FANOUT_SCHEDULE, schedule.to_object())
            await self.events.record(schedule, "Warning", "InvalidSpec", str(error))
