from dishka import AsyncContainer, Provider, from_context, make_async_container

from fanout.config import Config
from fanout.infrastructure.kube.di import KubeProvider
from fanout.infrastructure.runtime.di import RuntimeProvider
from fanout.infrastructure.source.di import SourceProvider
from fanout.util.di.scope import Scope


class ConfigProvider(Provider):
    config = from_context(provides=Config, scope=Scope.APP)


def create_container(config: Config | None = None) -> AsyncContainer:
    # Pydantic Settings populates from env vars at runtime
    config = config or Config()  # type: ignore[call-arg]

    return make_async_container(
        ConfigProvider(),
        KubeProvider(),
        SourceProvider(),
        RuntimeProvider(),
        context={Config: config},
        scopes=Scope,  # type: ignore[arg-type]  # Custom scope class
    )
