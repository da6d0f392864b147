"""Item selection for fan-out resources."""

from fanout.domain.fanout.model.template import FanOutSpec
from fanout.domain.ledger.service import ItemLedger
from fanout.domain.shared.error import ConfigInvalid


async def resolve_items(spec: FanOutSpec, namespace: str, ledger: ItemLedger) -> list[str]:
    """Items to fan out: the inline list if non-empty, else the referenced ledger.

    Raises:
        ConfigInvalid: If neither source is given.
        DependencyNotReady: If the referenced ledger has not been published.
    """
    if spec.static_list:
        return list(spec.static_list)
    if spec.list_source_ref:
        return await ledger.read(namespace, spec.list_source_ref)
    raise ConfigInvalid(
        "one of staticList or listSourceRef must be set", field="staticList"
    )
