"""Fan-out domain models."""

from .fanout_job import FANOUT_JOB, FANOUT_JOB_FINALIZER, FanOutJob, FanOutJobSpec
from .fanout_schedule import (
    FANOUT_SCHEDULE,
    FANOUT_SCHEDULE_FINALIZER,
    ConcurrencyPolicy,
    FanOutSchedule,
    FanOutScheduleSpec,
)
from .template import ExecutionTemplate, FanOutSpec, ResourceRequirements, canonical_quantity

__all__ = [
    "FANOUT_JOB",
    "FANOUT_JOB_FINALIZER",
    "FANOUT_SCHEDULE",
    "FANOUT_SCHEDULE_FINALIZER",
    "ConcurrencyPolicy",
    "ExecutionTemplate",
    "FanOutJob",
    "FanOutJobSpec",
    "FanOutSchedule",
    "FanOutScheduleSpec",
    "FanOutSpec",
    "ResourceRequirements",
    "canonical_quantity",
]
