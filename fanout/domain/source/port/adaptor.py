"""SourceAdaptor port: interface shared by static, API and SQL sources."""

from __future__ import annotations

from typing import Protocol

from fanout.domain.shared.port.secret_resolver import SecretResolver
from fanout.domain.source.model.list_source import ListSource


class SourceAdaptor(Protocol):
    """Resolve a ListSource into its ordered items.

    Order is whatever the upstream yields; nothing is sorted afterwards.

    Raises:
        ConfigInvalid: The source config can never succeed.
        FetchFailed: Upstream failure; retry on the next poll.
        DependencyNotReady: A referenced secret or key is missing.
    """

    async def resolve(self, source: ListSource, secrets: SecretResolver) -> list[str]: ...
