"""Controller and ControllerManager - watch-driven reconcile loops."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import logfire
from dishka import AsyncContainer

from fanout.domain.shared.error import ConfigInvalid, DependencyNotReady
from fanout.domain.shared.model.resource import Kind, ObjectKey, owner_keys
from fanout.domain.shared.port.control_plane import ControlPlane, WatchEvent
from fanout.domain.shared.reconcile import Reconciler, Result, SecondaryWatch
from fanout.infrastructure.runtime.queue import WorkQueue
from fanout.util.di.scope import Scope

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ControllerSettings:
    workers: int | None = None  # None: the reconciler's __max_concurrent__
    backoff_base_seconds: float = 0.5
    backoff_max_seconds: float = 300.0
    dependency_retry_seconds: float = 10.0
    watch_restart_seconds: float = 5.0
    namespace: str | None = None  # None: all namespaces


class Controller:
    """Runs one reconciler type against its own work queue.

    Watch pumps feed the queue:
        primary kind   the object's own key, on creation, deletion, spec
                       (generation) change or deletion request
        owned kinds    the key from the controller owner reference
        __watches__    the keys returned by ``map_secondary``

    Workers pop keys and reconcile each one in a fresh ``Scope.RECONCILE``
    container. The outcome decides the requeue:
        Result.requeue_after   forget, then add_after
        Result.requeue         add_rate_limited
        DependencyNotReady     add_after(dependency_retry_seconds)
        ConfigInvalid          forget; waits for the next spec change
        any other error        add_rate_limited
    """

    def __init__(
        self,
        reconciler_type: type[Reconciler[Any]],
        container: AsyncContainer,
        control_plane: ControlPlane,
        settings: ControllerSettings | None = None,
    ) -> None:
        self._reconciler_type = reconciler_type
        self._container = container
        self._control_plane = control_plane
        self._settings = settings or ControllerSettings()
        self._kind = reconciler_type.primary_kind()
        self.queue: WorkQueue[ObjectKey] = WorkQueue(
            backoff_base=self._settings.backoff_base_seconds,
            backoff_max=self._settings.backoff_max_seconds,
        )
        self._seen: dict[ObjectKey, tuple[int | None, bool]] = {}
        self._workers: list[asyncio.Task] = []
        self._pumps: list[asyncio.Task] = []

    @property
    def name(self) -> str:
        return self._reconciler_type.__name__

    @property
    def worker_count(self) -> int:
        return self._settings.workers or self._reconciler_type.__max_concurrent__

    def start(self) -> None:
        pumps: list[tuple[Kind, str | None, Callable[[WatchEvent], Awaitable[None]]]] = [
            (self._kind, None, self._on_primary)
        ]
        for kind in self._reconciler_type.__owns__:
            pumps.append((kind, self._reconciler_type.__owns_selector__, self._on_owned))
        for watch in self._reconciler_type.__watches__:
            pumps.append((watch.kind, watch.label_selector, self._secondary_handler(watch)))

        for kind, selector, handler in pumps:
            self._pumps.append(
                asyncio.create_task(
                    self._pump(kind, selector, handler), name=f"{self.name}-watch-{kind.plural}"
                )
            )
        for i in range(self.worker_count):
            self._workers.append(
                asyncio.create_task(self._work(), name=f"{self.name}-worker-{i}")
            )
        logger.info(
            f"Controller '{self.name}' started with {self.worker_count} workers, "
            f"{len(self._pumps)} watches"
        )

    async def stop(self, timeout: float = 30.0) -> None:
        """Stop watches, let in-flight reconciles finish, then cancel leftovers."""
        self.queue.shutdown()
        for task in self._pumps:
            task.cancel()
        await asyncio.gather(*self._pumps, return_exceptions=True)

        if self._workers:
            _, pending = await asyncio.wait(self._workers, timeout=timeout)
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
        self._pumps.clear()
        self._workers.clear()
        logger.info(f"Controller '{self.name}' stopped")

    # -------------------------------------------------------------------------
    # Watch pumps
    # -------------------------------------------------------------------------

    async def _pump(
        self,
        kind: Kind,
        label_selector: str | None,
        handler: Callable[[WatchEvent], Awaitable[None]],
    ) -> None:
        while True:
            try:
                async for event in self._control_plane.watch(
                    kind, namespace=self._settings.namespace, label_selector=label_selector
                ):
                    await handler(event)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"Controller '{self.name}' watch on {kind} failed: {e}")
            await asyncio.sleep(self._settings.watch_restart_seconds)

    async def _on_primary(self, event: WatchEvent) -> None:
        key = ObjectKey.of(event.object)
        if event.type == "DELETED":
            self._seen.pop(key, None)
            self.queue.add(key)
            return

        meta = event.object.get("metadata", {})
        fingerprint = (meta.get("generation"), meta.get("deletionTimestamp") is not None)
        previous = self._seen.get(key)
        self._seen[key] = fingerprint
        # Status-only writes leave the generation alone and are not re-reconciled
        if event.type == "MODIFIED" and previous == fingerprint:
            return
        self.queue.add(key)

    async def _on_owned(self, event: WatchEvent) -> None:
        for key in owner_keys(event.object, self._kind):
            self.queue.add(key)

    def _secondary_handler(self, watch: SecondaryWatch) -> Callable[[WatchEvent], Awaitable[None]]:
        async def handle(event: WatchEvent) -> None:
            async with self._container(scope=Scope.RECONCILE) as scope:
                reconciler = await scope.get(self._reconciler_type)
                keys = await reconciler.map_secondary(watch, event.object)
            for key in keys:
                logger.debug(f"{watch.kind.kind} {ObjectKey.of(event.object)} -> {key}")
                self.queue.add(key)

        return handle

    # -------------------------------------------------------------------------
    # Workers
    # -------------------------------------------------------------------------

    async def _work(self) -> None:
        while True:
            key = await self.queue.get()
            if key is None:
                return
            try:
                await self.process(key)
            finally:
                self.queue.done(key)

    async def process(self, key: ObjectKey) -> None:
        """Reconcile ``key`` once and requeue according to the outcome."""
        with logfire.span("reconcile {kind} {key}", kind=self._kind.kind, key=str(key)):
            try:
                async with self._container(scope=Scope.RECONCILE) as scope:
                    reconciler = await scope.get(self._reconciler_type)
                    result: Result = await reconciler.reconcile(key)
            except DependencyNotReady as e:
                logger.info(f"{self._kind.kind} {key} waiting on a dependency: {e}")
                self.queue.forget(key)
                self.queue.add_after(key, self._settings.dependency_retry_seconds)
                return
            except ConfigInvalid as e:
                logger.error(f"{self._kind.kind} {key} is invalid, not retrying: {e}")
                self.queue.forget(key)
                return
            except Exception as e:
                delay = self.queue.add_rate_limited(key)
                logger.error(
                    f"Reconcile of {self._kind.kind} {key} failed, retrying in {delay:.1f}s: {e}"
                )
                return

        if result.requeue_after is not None:
            self.queue.forget(key)
            self.queue.add_after(key, result.requeue_after)
        elif result.requeue:
            self.queue.add_rate_limited(key)
        else:
            self.queue.forget(key)


class ControllerManager:
    """Owns every Controller of the process.

    Usage:
        manager = ControllerManager(container, control_plane, settings)
        manager.register(ListSourceReconciler)
        manager.register(FanOutJobReconciler)

        async with manager:
            await stop_event.wait()
    """

    def __init__(
        self,
        container: AsyncContainer,
        control_plane: ControlPlane,
        settings: ControllerSettings | None = None,
        shutdown_timeout: float = 30.0,
    ) -> None:
        self._container = container
        self._control_plane = control_plane
        self._settings = settings or ControllerSettings()
        self._shutdown_timeout = shutdown_timeout
        self._controllers: list[Controller] = []

    @property
    def controllers(self) -> list[Controller]:
        return self._controllers

    def register(self, reconciler_type: type[Reconciler[Any]]) -> Controller:
        controller = Controller(
            reconciler_type, self._container, self._control_plane, self._settings
        )
        self._controllers.append(controller)
        logger.debug(f"Registered reconciler '{reconciler_type.__name__}'")
        return controller

    async def start(self) -> None:
        for controller in self._controllers:
            controller.start()
        logger.info(f"ControllerManager started with {len(self._controllers)} controllers")

    async def stop(self) -> None:
        await asyncio.gather(
            *(c.stop(timeout=self._shutdown_timeout) for c in self._controllers)
        )
        logger.info("ControllerManager stopped")

    async def __aenter__(self) -> "ControllerManager":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()
