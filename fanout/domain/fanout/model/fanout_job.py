"""FanOutJob - one-shot fan-out of a list into an indexed batch Job."""

import re
from datetime import datetime, timedelta
from typing import ClassVar

from pydantic import Field, TypeAdapter, ValidationError

from fanout.domain.fanout.model.template import FanOutSpec
from fanout.domain.shared.error import ConfigInvalid
from fanout.domain.shared.model.resource import GROUP, VERSION, Kind, Resource
from fanout.domain.shared.model.value import SchemaModel

FANOUT_JOB = Kind(group=GROUP, version=VERSION, kind="FanOutJob", plural="fanoutjobs")

FANOUT_JOB_FINALIZER = "fanout.io/fanoutjob-cleanup"

_GO_DURATION = re.compile(r"^(?:\d+(?:\.\d+)?(?:ns|us|µs|ms|s|m|h))+$")
_GO_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ns|us|µs|ms|s|m|h)")
_GO_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

_timedelta_adapter = TypeAdapter(timedelta)


def parse_duration(value: str | int | float) -> timedelta:
    """Parse seconds, ISO-8601 (``PT1H30M``) or Go-style (``1h30m``) durations.

    Raises:
        ValueError: If the value is none of these, or negative.
    """
    if isinstance(value, str) and value.isdigit():
        value = int(value)
    if isinstance(value, str) and _GO_DURATION.match(value):
        seconds = sum(
            float(amount) * _GO_UNITS[unit] for amount, unit in _GO_DURATION_PART.findall(value)
        )
        return timedelta(seconds=seconds)

    try:
        duration = _timedelta_adapter.validate_python(value)
    except ValidationError as e:
        raise ValueError(f"invalid duration {value!r}") from e
    if duration < timedelta(0):
        raise ValueError(f"duration {value!r} is negative")
    return duration


class FanOutJobSpec(FanOutSpec):
    delete_after: str | int | None = None  # Expiry measured from creationTimestamp

    def delete_after_duration(self) -> timedelta | None:
        """Parsed ``deleteAfter``.

        Raises:
            ConfigInvalid: If the duration cannot be parsed.
        """
        if self.delete_after is None:
            return None
        try:
            return parse_duration(self.delete_after)
        except ValueError as e:
            raise ConfigInvalid(str(e), field="deleteAfter") from e


class FanOutJobStatus(SchemaModel):
    job_name: str | None = None
    item_count: int | None = None
    error: str | None = None


class FanOutJob(Resource):
    __kind__: ClassVar[Kind] = FANOUT_JOB

    spec: FanOutJobSpec
    status: FanOutJobStatus = Field(default_factory=FanOutJobStatus)

    def expires_at(self) -> datetime | None:
        """Absolute expiry, or None when the job never expires."""
        duration = self.spec.delete_after_duration()
        if duration is None or self.metadata.creation_timestamp is None:
            return None
        return self.metadata.creation_timestamp + duration
