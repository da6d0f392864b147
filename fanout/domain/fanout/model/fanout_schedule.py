"""FanOutSchedule - recurring fan-out rendered into a CronJob."""

from datetime import datetime
from enum import StrEnum
from typing import Any, ClassVar

from apscheduler.triggers.cron import CronTrigger
from pydantic import Field

from fanout.domain.fanout.model.template import FanOutSpec
from fanout.domain.shared.error import ConfigInvalid
from fanout.domain.shared.model.resource import GROUP, VERSION, Kind, Resource
from fanout.domain.shared.model.value import SchemaModel

FANOUT_SCHEDULE = Kind(
    group=GROUP, version=VERSION, kind="FanOutSchedule", plural="fanoutschedules"
)

FANOUT_SCHEDULE_FINALIZER = "fanout.io/fanoutschedule-cleanup"

# Macros accepted by the CronJob controller, expanded for validation only
_CRON_MACROS = {
    "@yearly": "0 0 1 1 *",
    "@annually": "0 0 1 1 *",
    "@monthly": "0 0 1 * *",
    "@weekly": "0 0 * * 0",
    "@daily": "0 0 * * *",
    "@midnight": "0 0 * * *",
    "@hourly": "0 * * * *",
}


class ConcurrencyPolicy(StrEnum):
    ALLOW = "Allow"
    FORBID = "Forbid"
    REPLACE = "Replace"


class FanOutScheduleSpec(FanOutSpec):
    schedule: str
    concurrency_policy: ConcurrencyPolicy = ConcurrencyPolicy.ALLOW
    starting_deadline_seconds: int | None = Field(default=None, ge=0)
    successful_jobs_history_limit: int | None = Field(default=None, ge=0)
    failed_jobs_history_limit: int | None = Field(default=None, ge=0)
    suspend: bool = False

    def validate_schedule(self) -> None:
        """Check ``schedule`` is a five-field cron expression or macro.

        Raises:
            ConfigInvalid: If the expression does not parse.
        """
        expression = _CRON_MACROS.get(self.schedule.strip(), self.schedule)
        try:
            CronTrigger.from_crontab(expression, timezone="UTC")
        except ValueError as e:
            raise ConfigInvalid(
                f"invalid cron schedule {self.schedule!r}: {e}", field="schedule"
            ) from e


class FanOutScheduleStatus(SchemaModel):
    cron_job_name: str | None = None
    item_count: int | None = None
    error: str | None = None
    active: list[dict[str, Any]] = Field(default_factory=list)
    last_schedule_time: datetime | None = None
    last_successful_time: datetime | None = None


class FanOutSchedule(Resource):
    __kind__: ClassVar[Kind] = FANOUT_SCHEDULE

    spec: FanOutScheduleSpec
    status: FanOutScheduleStatus = Field(default_factory=FanOutScheduleStatus)
