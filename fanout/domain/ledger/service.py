"""ItemLedger - keyed store of the last resolved items of each ListSource."""

import logging
from dataclasses import dataclass
from typing import Any

from fanout.domain.ledger.model import ITEMS_KEY, LEDGER_LABEL, decode_items, encode_items
from fanout.domain.shared.error import AlreadyExistsError, DependencyNotReady, NotFoundError
from fanout.domain.shared.model.resource import CONFIG_MAP, ObjectKey
from fanout.domain.shared.port.control_plane import ControlPlane
from fanout.domain.source.model.list_source import ListSource

logger = logging.getLogger(__name__)


@dataclass
class ItemLedger:
    """Ledger entries persisted as ConfigMaps named after their ListSource.

    Single writer (the source resolution reconciler), many readers. Writes
    replace the whole value, so readers see either the old or the new list.
    """

    control_plane: ControlPlane

    async def read(self, namespace: str, name: str) -> list[str]:
        """Return the items published for ``namespace/name``.

        Raises:
            DependencyNotReady: If nothing has been published yet.
        """
        try:
            obj = await self.control_plane.get(CONFIG_MAP, ObjectKey(namespace, name))
        except NotFoundError as e:
            raise DependencyNotReady(
                f"item ledger {namespace}/{name} does not exist yet"
            ) from e

        items = decode_items((obj.get("data") or {}).get(ITEMS_KEY))
        if not items:
            raise DependencyNotReady(f"item ledger {namespace}/{name} holds no items")
        return items

    async def publish(self, source: ListSource, items: list[str]) -> bool:
        """Write ``items`` as the ledger of ``source``.

        Creates the ConfigMap when absent. An existing ConfigMap with the
        same content is left alone so its resource version only moves when
        the items change.

        Returns:
            True if the ledger was created or rewritten.
        """
        desired = self._render(source, items)
        key = source.key

        try:
            live = await self.control_plane.get(CONFIG_MAP, key)
        except NotFoundError:
            try:
                await self.control_plane.create(CONFIG_MAP, desired)
                logger.info(f"Created item ledger {key} with {len(items)} items")
                return True
            except AlreadyExistsError:
                # Lost a create race; fall through to compare and overwrite
                live = await self.control_plane.get(CONFIG_MAP, key)

        if not self._differs(live, desired):
            return False

        live["data"] = desired["data"]
        meta = live.setdefault("metadata", {})
        meta["labels"] = {**(meta.get("labels") or {}), **desired["metadata"]["labels"]}
        if not meta.get("ownerReferences"):
            meta["ownerReferences"] = desired["metadata"]["ownerReferences"]
        await self.control_plane.update(CONFIG_MAP, live)
        logger.info(f"Updated item ledger {key} with {len(items)} items")
        return True

    def _render(self, source: ListSource, items: list[str]) -> dict[str, Any]:
        return {
            "apiVersion": CONFIG_MAP.api_version,
            "kind": CONFIG_MAP.kind,
            "metadata": {
                "name": source.metadata.name,
                "namespace": source.metadata.namespace,
                "labels": {LEDGER_LABEL: source.metadata.name},
                "ownerReferences": [source.owner_reference()],
            },
            "data": {ITEMS_KEY: encode_items(items)},
        }

    @staticmethod
    def _differs(live: dict[str, Any], desired: dict[str, Any]) -> bool:
        if (live.get("data") or {}) != desired["data"]:
            return True
        labels = (live.get("metadata") or {}).get("labels") or {}
        return any(labels.get(k) != v for k, v in desired["metadata"]["labels"].items())
