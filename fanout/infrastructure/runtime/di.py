"""Dependency injection provider for the reconcilers and their runtime."""

import logging
from typing import Any, NewType

from dishka import AsyncContainer, Provider, provide

from fanout.config import Config
from fanout.domain.fanout.service.job import FanOutJobReconciler
from fanout.domain.fanout.service.render import RenderSettings
from fanout.domain.fanout.service.schedule import FanOutScheduleReconciler
from fanout.domain.ledger.service import ItemLedger
from fanout.domain.shared.port.control_plane import ControlPlane
from fanout.domain.shared.reconcile import Reconciler
from fanout.domain.source.service.resolution import ListSourceReconciler, ResolutionSettings
from fanout.infrastructure.runtime.controller import ControllerManager, ControllerSettings
from fanout.util.di.scope import Scope

logger = logging.getLogger(__name__)

ReconcilerTypes = NewType("ReconcilerTypes", list[type[Reconciler[Any]]])

# Every reconciler registered with the ControllerManager
RECONCILERS: ReconcilerTypes = ReconcilerTypes(
    [
        ListSourceReconciler,
        FanOutJobReconciler,
        FanOutScheduleReconciler,
    ]
)


class RuntimeProvider(Provider):
    """Reconcilers and the ledger are RECONCILE-scoped (fresh per pass).

    Settings and the ControllerManager are APP-scoped singletons.
    """

    ledger = provide(ItemLedger, scope=Scope.RECONCILE)

    for _reconciler_type in RECONCILERS:
        locals()[_reconciler_type.__name__] = provide(_reconciler_type, scope=Scope.RECONCILE)

    @provide(scope=Scope.APP)
    def get_resolution_settings(self, config: Config) -> ResolutionSettings:
        return ResolutionSettings(
            default_interval_seconds=config.sources.default_interval_seconds,
            dependency_retry_seconds=config.controller.dependency_retry_seconds,
        )

    @provide(scope=Scope.APP)
    def get_render_settings(self, config: Config) -> RenderSettings:
        return RenderSettings(
            shim_image=config.shim.image,
            default_env_name=config.shim.default_env_name,
        )

    @provide(scope=Scope.APP)
    def get_controller_settings(self, config: Config) -> ControllerSettings:
        return ControllerSettings(
            workers=config.controller.workers,
            backoff_base_seconds=config.controller.backoff_base_seconds,
            backoff_max_seconds=config.controller.backoff_max_seconds,
            dependency_retry_seconds=config.controller.dependency_retry_seconds,
            watch_restart_seconds=config.controller.watch_restart_seconds,
            namespace=config.kube.namespace or None,
        )

    @provide(scope=Scope.APP)
    def get_reconciler_types(self) -> ReconcilerTypes:
        return RECONCILERS

    @provide(scope=Scope.APP)
    def get_controller_manager(
        self,
        container: AsyncContainer,
        control_plane: ControlPlane,
        settings: ControllerSettings,
        reconciler_types: ReconcilerTypes,
        config: Config,
    ) -> ControllerManager:
        manager = ControllerManager(
            container,
            control_plane,
            settings,
            shutdown_timeout=config.controller.shutdown_timeout,
        )
        for reconciler_type in reconciler_types:
            manager.register(reconciler_type)
        logger.info(f"ControllerManager created with {len(manager.controllers)} controllers")
        return manager
