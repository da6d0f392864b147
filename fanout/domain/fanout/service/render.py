"""Rendering of fan-out resources into ConfigMaps, Jobs and CronJobs.

Every function here is pure: same inputs, same manifest. The reconcilers
and the ``fanout render`` command share them.

Pod layout of an execution unit::

    init container "index-resolution"
        reads /list/items, picks the entry at JOB_COMPLETION_INDEX,
        writes "export NAME='value'" to /shared/env.sh
    container "main"
        sh -c ". /shared/env.sh && <command>"
"""

from dataclasses import dataclass
from typing import Any

from fanout.domain.fanout.model.fanout_job import FanOutJob
from fanout.domain.fanout.model.fanout_schedule import FanOutSchedule
from fanout.domain.fanout.model.template import (
    ExecutionTemplate,
    FanOutSpec,
    canonical_quantity,
)
from fanout.domain.ledger.model import ITEMS_KEY, encode_items
from fanout.domain.shared.model.resource import CONFIG_MAP, CRON_JOB, JOB, Resource

OWNER_LABEL = "fanout.io/owner"
ITEMS_VERSION_ANNOTATION = "fanout.io/items-version"
COMPLETION_INDEX_ANNOTATION = "batch.kubernetes.io/job-completion-index"
COMPLETION_INDEX_ENV = "JOB_COMPLETION_INDEX"

INIT_CONTAINER_NAME = "index-resolution"
MAIN_CONTAINER_NAME = "main"
LIST_VOLUME = "list"
SHARED_VOLUME = "shared"
LIST_MOUNT = "/list"
SHARED_MOUNT = "/shared"
ENV_FILE = f"{SHARED_MOUNT}/env.sh"


@dataclass(frozen=True)
class RenderSettings:
    """Operator-wide rendering defaults."""

    shim_image: str = "ghcr.io/fanout-operator/fanout:latest"
    default_env_name: str = "ITEM"


def list_config_map_name(owner_name: str) -> str:
    return f"{owner_name}-list"


def _metadata(owner: Resource, name: str) -> dict[str, Any]:
    return {
        "name": name,
        "namespace": owner.metadata.namespace,
        "labels": {OWNER_LABEL: owner.metadata.name},
        "ownerReferences": [owner.owner_reference()],
    }


def render_list_config_map(owner: Resource, items: list[str]) -> dict[str, Any]:
    """ConfigMap mounted read-only into every pod of the execution unit."""
    return {
        "apiVersion": CONFIG_MAP.api_version,
        "kind": CONFIG_MAP.kind,
        "metadata": _metadata(owner, list_config_map_name(owner.metadata.name)),
        "data": {ITEMS_KEY: encode_items(items)},
    }


def _resources(template: ExecutionTemplate) -> dict[str, Any]:
    if template.resources is None:
        return {}
    # The API server hands quantities back in canonical form
    out: dict[str, Any] = {}
    if template.resources.requests:
        out["requests"] = {
            k: canonical_quantity(v) for k, v in template.resources.requests.items()
        }
    if template.resources.limits:
        out["limits"] = {k: canonical_quantity(v) for k, v in template.resources.limits.items()}
    return out


def render_pod_template(
    spec: FanOutSpec,
    config_map_name: str,
    settings: RenderSettings,
    annotations: dict[str, str] | None = None,
    labels: dict[str, str] | None = None,
) -> dict[str, Any]:
    """Pod template with the index-resolution init container and the workload.

    Raises:
        ConfigInvalid: If the template's env name is not a shell identifier.
    """
    env_name = spec.template.resolved_env_name(settings.default_env_name)

    main: dict[str, Any] = {
        "name": MAIN_CONTAINER_NAME,
        "image": spec.template.image,
        "command": ["sh", "-c", f". {ENV_FILE} && " + " ".join(spec.template.command)],
        "volumeMounts": [{"name": SHARED_VOLUME, "mountPath": SHARED_MOUNT}],
    }
    resources = _resources(spec.template)
    if resources:
        main["resources"] = resources

    metadata: dict[str, Any] = {}
    if labels:
        metadata["labels"] = dict(labels)
    if annotations:
        metadata["annotations"] = dict(annotations)

    return {
        "metadata": metadata,
        "spec": {
            "restartPolicy": "Never",
            "volumes": [
                {"name": LIST_VOLUME, "configMap": {"name": config_map_name}},
                {"name": SHARED_VOLUME, "emptyDir": {}},
            ],
            "initContainers": [
                {
                    "name": INIT_CONTAINER_NAME,
                    "image": settings.shim_image,
                    "command": [
                        "fanout",
                        "shim",
                        "--items-file",
                        f"{LIST_MOUNT}/{ITEMS_KEY}",
                        "--output",
                        ENV_FILE,
                        "--env-name",
                        env_name,
                    ],
                    "env": [
                        {
                            "name": COMPLETION_INDEX_ENV,
                            "valueFrom": {
                                "fieldRef": {
                                    "fieldPath": (
                                        f"metadata.annotations['{COMPLETION_INDEX_ANNOTATION}']"
                                    )
                                }
                            },
                        }
                    ],
                    "volumeMounts": [
                        {"name": LIST_VOLUME, "mountPath": LIST_MOUNT, "readOnly": True},
                        {"name": SHARED_VOLUME, "mountPath": SHARED_MOUNT},
                    ],
                }
            ],
            "containers": [main],
        },
    }


def render_job_spec(
    spec: FanOutSpec,
    item_count: int,
    config_map_name: str,
    settings: RenderSettings,
    owner_name: str,
    annotations: dict[str, str] | None = None,
) -> dict[str, Any]:
    """Indexed-completion Job spec: one completion per item."""
    job_spec: dict[str, Any] = {
        "completionMode": "Indexed",
        "completions": item_count,
        "parallelism": spec.parallelism,
        "template": render_pod_template(
            spec,
            config_map_name,
            settings,
            annotations=annotations,
            labels={OWNER_LABEL: owner_name},
        ),
    }
    if spec.ttl_seconds_after_finished is not None:
        job_spec["ttlSecondsAfterFinished"] = spec.ttl_seconds_after_finished
    return job_spec


def render_job(job: FanOutJob, items: list[str], settings: RenderSettings) -> dict[str, Any]:
    """Execution unit of a FanOutJob, named after it."""
    return {
        "apiVersion": JOB.api_version,
        "kind": JOB.kind,
        "metadata": _metadata(job, job.metadata.name),
        "spec": render_job_spec(
            job.spec,
            len(items),
            list_config_map_name(job.metadata.name),
            settings,
            owner_name=job.metadata.name,
        ),
    }


def render_cron_job(
    schedule: FanOutSchedule,
    items: list[str],
    settings: RenderSettings,
    items_version: str | None = None,
) -> dict[str, Any]:
    """CronJob of a FanOutSchedule.

    ``items_version`` is the resource version of the rendered list
    ConfigMap. Stamping it on the pod template gives the CronJob a new
    template revision whenever the items change.
    """
    annotations = {ITEMS_VERSION_ANNOTATION: items_version} if items_version else None
    name = schedule.metadata.name

    spec: dict[str, Any] = {
        "schedule": schedule.spec.schedule,
        "concurrencyPolicy": schedule.spec.concurrency_policy.value,
        "suspend": schedule.spec.suspend,
        "jobTemplate": {
            "metadata": {"labels": {OWNER_LABEL: name}},
            "spec": render_job_spec(
                schedule.spec,
                len(items),
                list_config_map_name(name),
                settings,
                owner_name=name,
                annotations=annotations,
            ),
        },
    }
    if schedule.spec.starting_deadline_seconds is not None:
        spec["startingDeadlineSeconds"] = schedule.spec.starting_deadline_seconds
    if schedule.spec.successful_jobs_history_limit is not None:
        spec["successfulJobsHistoryLimit"] = schedule.spec.successful_jobs_history_limit
    if schedule.spec.failed_jobs_history_limit is not None:
        spec["failedJobsHistoryLimit"] = schedule.spec.failed_jobs_history_limit

    return {
        "apiVersion": CRON_JOB.api_version,
        "kind": CRON_JOB.kind,
        "metadata": _metadata(schedule, name),
        "spec": spec,
    }


def contains(live: Any, desired: Any) -> bool:
    """True when every field set in ``desired`` has the same value in ``live``.

    Fields the API server defaults on its side are ignored. Lists must
    match element-wise and in length.
    """
    if isinstance(desired, dict):
        if not isinstance(live, dict):
            return False
        return all(k in live and contains(live[k], v) for k, v in desired.items())
    if isinstance(desired, list):
        if not isinstance(live, list) or len(live) != len(desired):
            return False
        return all(contains(lv, dv) for lv, dv in zip(live, desired))
    return live == desired
