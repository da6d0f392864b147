"""Static source: items embedded in the ListSource spec."""

from fanout.domain.shared.port.secret_resolver import SecretResolver
from fanout.domain.source.model.list_source import ListSource
from fanout.domain.source.port.adaptor import SourceAdaptor


class StaticSourceAdaptor(SourceAdaptor):
    """Returns ``staticList`` verbatim."""

    async def resolve(self, source: ListSource, secrets: SecretResolver) -> list[str]:
        return list(source.spec.static_list or [])
