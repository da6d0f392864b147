"""Index Resolution Shim command, run as the pod's init container."""

import sys
from pathlib import Path

from fanout import shim as index_shim
from fanout.domain.ledger.model import ITEMS_KEY


def shim(
    *,
    items_file: Path = Path("/list") / ITEMS_KEY,
    output: Path = Path("/shared/env.sh"),
    env_name: str = "ITEM",
) -> None:
    """Export this pod's item for the main container.

    Args:
        items_file: Comma-joined item list mounted from the ConfigMap.
        output: Script the main container sources before its command.
        env_name: Variable that receives the item.
    """
    try:
        item = index_shim.resolve(items_file, output, env_name)
    except index_shim.IndexResolutionError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        sys.exit(1)
    print(f"{env_name}={item}")
