from fanout.domain.shared.model.value import SchemaModel


class SecretRef(SchemaModel):
    """Reference to a secret, optionally in another namespace."""

    name: str
    key: str | None = None
    namespace: str | None = None
