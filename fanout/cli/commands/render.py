"""Offline rendering of FanOutJob and FanOutSchedule manifests."""

import sys
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from fanout.config import Config
from fanout.domain.fanout.model.fanout_job import FANOUT_JOB, FanOutJob
from fanout.domain.fanout.model.fanout_schedule import FANOUT_SCHEDULE, FanOutSchedule
from fanout.domain.fanout.service.render import (
    RenderSettings,
    render_cron_job,
    render_job,
    render_list_config_map,
)
from fanout.domain.shared.error import ConfigInvalid


def render_manifest(manifest: Any, settings: RenderSettings) -> list[dict[str, Any]]:
    """ConfigMap plus Job or CronJob for one manifest with an inline list.

    Raises:
        ConfigInvalid: If the manifest is not renderable offline.
    """
    if not isinstance(manifest, dict):
        raise ConfigInvalid("manifest must be a single YAML mapping")
    kind = manifest.get("kind")
    manifest.setdefault("metadata", {}).setdefault("namespace", "default")
    try:
        if kind == FANOUT_JOB.kind:
            resource: FanOutJob | FanOutSchedule = FanOutJob.from_object(manifest)
        elif kind == FANOUT_SCHEDULE.kind:
            resource = FanOutSchedule.from_object(manifest)
        else:
            raise ConfigInvalid(f"cannot render kind {kind!r}", field="kind")
    except ValidationError as e:
        raise ConfigInvalid(f"invalid {kind}: {e}") from e

    items = list(resource.spec.static_list or [])
    if not items:
        raise ConfigInvalid(
            "offline rendering needs a non-empty staticList", field="staticList"
        )

    documents = [render_list_config_map(resource, items)]
    if isinstance(resource, FanOutSchedule):
        resource.spec.validate_schedule()
        documents.append(render_cron_job(resource, items, settings))
    else:
        resource.spec.delete_after_duration()
        documents.append(render_job(resource, items, settings))
    return documents


def render(manifest: Path, /) -> None:
    """Print the objects the operator would create for a manifest.

    Args:
        manifest: YAML file holding a FanOutJob or FanOutSchedule.
    """
    if not manifest.exists():
        print(f"Error: {manifest} not found", file=sys.stderr)
        sys.exit(1)

    config = Config()  # type: ignore[call-arg]
    settings = RenderSettings(
        shim_image=config.shim.image,
        default_env_name=config.shim.default_env_name,
    )

    try:
        documents = render_manifest(yaml.safe_load(manifest.read_text()) or {}, settings)
    except ConfigInvalid as e:
        print(f"Error: {e.message}", file=sys.stderr)
        sys.exit(1)
    print(yaml.safe_dump_all(documents, sort_keys=False), end="")
