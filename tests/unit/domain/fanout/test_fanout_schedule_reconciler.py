"""Unit tests for FanOutScheduleReconciler and ScheduleLedgerIndex."""

from typing import Any

import pytest

from fanout.domain.fanout.model import (
    FANOUT_SCHEDULE,
    FANOUT_SCHEDULE_FINALIZER,
    FanOutSchedule,
)
from fanout.domain.fanout.service.render import ITEMS_VERSION_ANNOTATION, RenderSettings
from fanout.domain.fanout.service.schedule import (
    LEDGER_WATCH,
    FanOutScheduleReconciler,
    ScheduleLedgerIndex,
)
from fanout.domain.ledger.model import LEDGER_LABEL
from fanout.domain.ledger.service import ItemLedger
from fanout.domain.shared.model.resource import CONFIG_MAP, CRON_JOB, ObjectKey

KEY = ObjectKey("default", "nightly")


def _make_schedule(
    name: str = "nightly",
    spec: dict[str, Any] | None = None,
    finalizers: list[str] | None = None,
) -> dict[str, Any]:
    return FanOutSchedule.model_validate(
        {
            "metadata": {
                "name": name,
                "namespace": "default",
                "finalizers": finalizers or [FANOUT_SCHEDULE_FINALIZER],
            },
            "spec": spec
            or {
                "schedule": "0 3 * * *",
                "staticList": ["a", "b"],
                "template": {"image": "busybox", "command": ["echo"]},
            },
        }
    ).to_object()


def _ledger_spec(ref: str = "regions") -> dict[str, Any]:
    return {"schedule": "@hourly", "listSourceRef": ref, "template": {"image": "busybox"}}


def _seed_ledger(control_plane, items: str, name: str = "regions") -> None:
    control_plane.seed(
        CONFIG_MAP,
        {
            "metadata": {
                "name": name,
                "namespace": "default",
                "labels": {LEDGER_LABEL: name},
            },
            "data": {"items": items},
        },
    )


def _make_reconciler(control_plane, events) -> FanOutScheduleReconciler:
    return FanOutScheduleReconciler(
        control_plane=control_plane,
        ledger=ItemLedger(control_plane),
        events=events,
        settings=RenderSettings(),
    )


def _pod_annotations(cron_job: dict[str, Any]) -> dict[str, str]:
    return cron_job["spec"]["jobTemplate"]["spec"]["template"]["metadata"]["annotations"]


class TestFanOutScheduleReconciler:
    @pytest.mark.asyncio
    async def test_creates_cron_job_stamped_with_items_version(self, control_plane, events):
        control_plane.seed(FANOUT_SCHEDULE, _make_schedule())
        reconciler = _make_reconciler(control_plane, events)

        result = await reconciler.reconcile(KEY)

        cron_job = control_plane.stored(CRON_JOB, "default", "nightly")
        config_map = control_plane.stored(CONFIG_MAP, "default", "nightly-list")
        schedule = control_plane.stored(FANOUT_SCHEDULE, "default", "nightly")
        assert cron_job["spec"]["schedule"] == "0 3 * * *"
        assert cron_job["spec"]["jobTemplate"]["spec"]["completions"] == 2
        assert _pod_annotations(cron_job) == {
            ITEMS_VERSION_ANNOTATION: config_map["metadata"]["resourceVersion"]
        }
        assert schedule["status"]["cronJobName"] == "nightly"
        assert schedule["status"]["itemCount"] == 2
        assert result.requeue_after is None

    @pytest.mark.asyncio
    async def test_first_pass_only_attaches_finalizer(self, control_plane, events):
        obj = _make_schedule()
        obj["metadata"]["finalizers"] = []
        control_plane.seed(FANOUT_SCHEDULE, obj)
        reconciler = _make_reconciler(control_plane, events)

        result = await reconciler.reconcile(KEY)

        stored = control_plane.stored(FANOUT_SCHEDULE, "default", "nightly")
        assert stored["metadata"]["finalizers"] == [FANOUT_SCHEDULE_FINALIZER]
        assert result.requeue_after == 0.0
        assert control_plane.stored(CRON_JOB, "default", "nightly") is None

    @pytest.mark.asyncio
    async def test_reconcile_is_idempotent(self, control_plane, events):
        control_plane.seed(FANOUT_SCHEDULE, _make_schedule())
        reconciler = _make_reconciler(control_plane, events)

        await reconciler.reconcile(KEY)
        await reconciler.reconcile(KEY)

        assert control_plane.count("update", CRON_JOB) == 0
        assert control_plane.count("update", CONFIG_MAP) == 0
        assert control_plane.count("update_status", FANOUT_SCHEDULE) == 1

    @pytest.mark.asyncio
    async def test_ledger_change_rolls_the_template(self, control_plane, events):
        _seed_ledger(control_plane, "x,y")
        control_plane.seed(FANOUT_SCHEDULE, _make_schedule(spec=_ledger_spec()))
        reconciler = _make_reconciler(control_plane, events)
        await reconciler.reconcile(KEY)
        before = _pod_annotations(control_plane.stored(CRON_JOB, "default", "nightly"))

        ledger = control_plane.stored(CONFIG_MAP, "default", "regions")
        ledger["data"]["items"] = "x,y,z"
        await control_plane.update(CONFIG_MAP, ledger)
        await reconciler.reconcile(KEY)

        cron_job = control_plane.stored(CRON_JOB, "default", "nightly")
        config_map = control_plane.stored(CONFIG_MAP, "default", "nightly-list")
        schedule = control_plane.stored(FANOUT_SCHEDULE, "default", "nightly")
        assert config_map["data"]["items"] == "x,y,z"
        assert cron_job["spec"]["jobTemplate"]["spec"]["completions"] == 3
        assert _pod_annotations(cron_job) != before
        assert _pod_annotations(cron_job)[ITEMS_VERSION_ANNOTATION] == (
            config_map["metadata"]["resourceVersion"]
        )
        assert schedule["status"]["itemCount"] == 3

    @pytest.mark.asyncio
    async def test_cron_job_status_is_mirrored(self, control_plane, events):
        control_plane.seed(FANOUT_SCHEDULE, _make_schedule())
        reconciler = _make_reconciler(control_plane, events)
        await reconciler.reconcile(KEY)

        cron_job = control_plane.stored(CRON_JOB, "default", "nightly")
        cron_job["status"] = {
            "active": [{"kind": "Job", "name": "nightly-29000000"}],
            "lastScheduleTime": "2026-01-01T03:00:00Z",
        }
        await control_plane.update_status(CRON_JOB, cron_job)
        await reconciler.reconcile(KEY)

        status = control_plane.stored(FANOUT_SCHEDULE, "default", "nightly")["status"]
        assert status["active"] == [{"kind": "Job", "name": "nightly-29000000"}]
        assert status["lastScheduleTime"] == "2026-01-01T03:00:00Z"
        assert "lastSuccessfulTime" not in status

    @pytest.mark.asyncio
    async def test_invalid_schedule_creates_nothing(self, control_plane, events):
        control_plane.seed(
            FANOUT_SCHEDULE,
            _make_schedule(
                spec={"schedule": "every day", "staticList": ["a"], "template": {"image": "x"}}
            ),
        )
        reconciler = _make_reconciler(control_plane, events)

        result = await reconciler.reconcile(KEY)

        schedule = control_plane.stored(FANOUT_SCHEDULE, "default", "nightly")
        assert "invalid cron schedule" in schedule["status"]["error"]
        assert control_plane.stored(CRON_JOB, "default", "nightly") is None
        assert control_plane.stored(CONFIG_MAP, "default", "nightly-list") is None
        assert result.requeue_after is None
        assert events.record.await_args.args[1:3] == ("Warning", "InvalidSpec")

    @pytest.mark.asyncio
    async def test_deletion_removes_owned_objects(self, control_plane, events):
        control_plane.seed(FANOUT_SCHEDULE, _make_schedule())
        reconciler = _make_reconciler(control_plane, events)
        await reconciler.reconcile(KEY)

        await control_plane.delete(FANOUT_SCHEDULE, KEY)
        await reconciler.reconcile(KEY)

        assert control_plane.stored(CRON_JOB, "default", "nightly") is None
        assert control_plane.stored(CONFIG_MAP, "default", "nightly-list") is None
        assert control_plane.stored(FANOUT_SCHEDULE, "default", "nightly") is None

    @pytest.mark.asyncio
    async def test_ledger_event_maps_to_dependent_schedules(self, control_plane, events):
        control_plane.seed(FANOUT_SCHEDULE, _make_schedule("b-sched", spec=_ledger_spec()))
        control_plane.seed(FANOUT_SCHEDULE, _make_schedule("a-sched", spec=_ledger_spec()))
        control_plane.seed(FANOUT_SCHEDULE, _make_schedule("other", spec=_ledger_spec("zones")))
        reconciler = _make_reconciler(control_plane, events)
        ledger = {
            "metadata": {
                "name": "regions",
                "namespace": "default",
                "labels": {LEDGER_LABEL: "regions"},
            }
        }

        keys = await reconciler.map_secondary(LEDGER_WATCH, ledger)

        assert keys == [ObjectKey("default", "a-sched"), ObjectKey("default", "b-sched")]


class TestScheduleLedgerIndex:
    @pytest.mark.asyncio
    async def test_index_is_namespace_scoped(self, control_plane):
        control_plane.seed(FANOUT_SCHEDULE, _make_schedule("nightly", spec=_ledger_spec()))
        other = _make_schedule("nightly", spec=_ledger_spec())
        other["metadata"]["namespace"] = "team-b"
        control_plane.seed(FANOUT_SCHEDULE, other)

        index = await ScheduleLedgerIndex.build(control_plane, "default")

        assert index.lookup(ObjectKey("default", "regions")) == [KEY]
        assert index.lookup(ObjectKey("team-b", "regions")) == []

    @pytest.mark.asyncio
    async def test_static_schedules_are_not_indexed(self, control_plane):
        control_plane.seed(FANOUT_SCHEDULE, _make_schedule())

        index = await ScheduleLedgerIndex.build(control_plane, "default")

        assert index.dependents == {}
