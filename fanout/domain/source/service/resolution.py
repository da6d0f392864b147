"""ListSourceReconciler - polls a source and publishes its Item Ledger."""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from fanout.domain.ledger.service import ItemLedger
from fanout.domain.shared.error import ConfigInvalid, DependencyNotReady, FetchFailed
from fanout.domain.shared.port.control_plane import ControlPlane
from fanout.domain.shared.port.event_recorder import EventRecorder
from fanout.domain.shared.port.secret_resolver import SecretResolver
from fanout.domain.shared.reconcile import Reconciler, Request, Result, load_resource
from fanout.domain.source.model.list_source import LIST_SOURCE, ListSource
from fanout.domain.source.model.registry import AdaptorRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolutionSettings:
    """Polling cadence shared by every ListSource."""

    default_interval_seconds: float = 300.0
    dependency_retry_seconds: float = 10.0


class ListSourceReconciler(Reconciler[ListSource]):
    """Resolves a ListSource on every poll and keeps its ledger current.

    A failed resolution records ``lastError`` and leaves the previously
    published ledger in place, so readers keep the last good list.

    Requeue policy:
        success, FetchFailed: after the poll interval
        DependencyNotReady: after min(interval, dependency retry)
        ConfigInvalid: never; the next spec change triggers a new pass
    """

    control_plane: ControlPlane
    registry: AdaptorRegistry
    secrets: SecretResolver
    ledger: ItemLedger
    events: EventRecorder
    settings: ResolutionSettings

    async def reconcile(self, request: Request) -> Result:
        source = await load_resource(self.control_plane, ListSource, request)
        if source is None:
            logger.debug(f"ListSource {request} is gone, nothing to resolve")
            return Result()
        if source.is_being_deleted:
            return Result()

        interval = float(source.spec.interval_seconds or self.settings.default_interval_seconds)

        try:
            adaptor = self.registry.select(source.spec)
            items = await adaptor.resolve(source, self.secrets)
        except ConfigInvalid as e:
            await self._record_failure(source, e)
            return Result()
        except DependencyNotReady as e:
            await self._record_failure(source, e)
            return Result(requeue_after=min(interval, self.settings.dependency_retry_seconds))
        except FetchFailed as e:
            await self._record_failure(source, e)
            return Result(requeue_after=interval)

        changed = await self.ledger.publish(source, items)
        changed = changed or source.status.resolved_item_count != len(items)

        source.status.resolved_item_count = len(items)
        source.status.last_error = None
        source.status.last_resolution_time = datetime.now(UTC)
        source.status.observed_generation = source.metadata.generation
        await self.control_plane.update_status(LIST_SOURCE, source.to_object())

        if changed:
            logger.info(f"Resolved {len(items)} items for ListSource {request}")
            await self.events.record(
                source, "Normal", "Resolved", f"Resolved {len(items)} items"
            )
        return Result(requeue_after=interval)

    async def _record_failure(self, source: ListSource, error: Exception) -> None:
        message = str(error)
        logger.warning(f"Resolution of ListSource {source.key} failed: {message}")

        repeated = source.status.last_error == message
        source.status.last_error = message
        source.status.observed_generation = source.metadata.generation
        await self.control_plane.update_status(LIST_SOURCE, source.to_object())
        if not repeated:
            await self.events.record(source, "Warning", "ResolutionFailed", message)
