"""DI provider for source adaptors."""

from typing import AsyncIterable, NewType

import httpx
from dishka import Provider, provide

from fanout.config import Config
from fanout.domain.source.model.list_source import SourceType
from fanout.domain.source.model.registry import AdaptorRegistry
from fanout.infrastructure.source.api import HttpApiSourceAdaptor
from fanout.infrastructure.source.sql import SqlQuerySourceAdaptor
from fanout.infrastructure.source.static import StaticSourceAdaptor
from fanout.util.di.scope import Scope

# Disambiguate from the API server httpx.AsyncClient
SourceHttpClient = NewType("SourceHttpClient", httpx.AsyncClient)


class SourceProvider(Provider):
    """Provides the adaptor registry used by the ListSource reconciler."""

    @provide(scope=Scope.APP)
    async def get_source_http_client(self, config: Config) -> AsyncIterable[SourceHttpClient]:
        client = httpx.AsyncClient(timeout=httpx.Timeout(config.sources.http_timeout_seconds))
        yield SourceHttpClient(client)
        await client.aclose()

    @provide(scope=Scope.APP)
    def get_adaptor_registry(self, client: SourceHttpClient, config: Config) -> AdaptorRegistry:
        return AdaptorRegistry(
            {
                SourceType.STATIC: StaticSourceAdaptor(),
                SourceType.API: HttpApiSourceAdaptor(client),
                SourceType.SQL: SqlQuerySourceAdaptor(
                    timeout_seconds=config.sources.sql_timeout_seconds
                ),
            }
        )
