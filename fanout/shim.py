"""Index Resolution Shim.

Runs as the init container of every execution-unit pod. Reads the rendered
item list, takes the item at this pod's completion index and writes a
shell snippet exporting it for the main container.
"""

import os
import shlex
from collections.abc import Mapping
from pathlib import Path

from fanout.domain.fanout.service.render import COMPLETION_INDEX_ENV
from fanout.domain.ledger.model import decode_items
from fanout.domain.shared.error import FanoutError


class IndexResolutionError(FanoutError):
    """The pod cannot find its item; the instance must fail."""

    retryable = False


def completion_index(environ: Mapping[str, str]) -> int:
    raw = environ.get(COMPLETION_INDEX_ENV)
    if raw is None or raw == "":
        raise IndexResolutionError(f"{COMPLETION_INDEX_ENV} is not set")
    try:
        index = int(raw)
    except ValueError as e:
        raise IndexResolutionError(f"{COMPLETION_INDEX_ENV}={raw!r} is not an integer") from e
    if index < 0:
        raise IndexResolutionError(f"{COMPLETION_INDEX_ENV}={index} is negative")
    return index


def select_item(items: list[str], index: int) -> str:
    if index >= len(items):
        raise IndexResolutionError(f"index {index} is out of range for {len(items)} items")
    return items[index]


def export_line(env_name: str, value: str) -> str:
    return f"export {env_name}={shlex.quote(value)}\n"


def resolve(
    items_file: Path,
    output: Path,
    env_name: str,
    environ: Mapping[str, str] | None = None,
) -> str:
    """Write the export script for this pod and return the selected item.

    Raises:
        IndexResolutionError: If the index is missing or out of range, or
            the list cannot be read.
    """
    environ = os.environ if environ is None else environ
    try:
        items = decode_items(items_file.read_text(encoding="utf-8"))
    except OSError as e:
        raise IndexResolutionError(f"cannot read {items_file}: {e}") from e

    item = select_item(items, completion_index(environ))
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(export_line(env_name, item), encoding="utf-8")
    return item
