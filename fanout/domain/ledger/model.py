"""Item Ledger encoding: ordered items stored as one comma-joined string."""

ITEMS_KEY = "items"
ITEM_SEPARATOR = ","

# Marks a ConfigMap as the ledger of the named ListSource
LEDGER_LABEL = "fanout.io/list-source"


def encode_items(items: list[str]) -> str:
    """Join items for storage. Items must not contain the separator."""
    return ITEM_SEPARATOR.join(items)


def decode_items(value: str | None) -> list[str]:
    """Split a stored value back into items; empty means no items."""
    if not value:
        return []
    return value.split(ITEM_SEPARATOR)
