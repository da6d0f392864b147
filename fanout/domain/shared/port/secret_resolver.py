"""SecretResolver port: credential lookup for authenticated sources."""

from __future__ import annotations

from typing import Protocol

from fanout.domain.shared.model.secret import SecretRef


class SecretResolver(Protocol):
    async def read(self, namespace: str, ref: SecretRef) -> dict[str, bytes]:
        """Return every decoded key of the referenced secret.

        ``ref.namespace`` takes precedence over ``namespace``.

        Raises:
            SecretNotFound: If the secret does not exist.
        """
        ...

    async def resolve(self, namespace: str, ref: SecretRef, key: str | None = None) -> bytes:
        """Return one decoded value; ``key`` defaults to ``ref.key``.

        Raises:
            SecretNotFound: If the secret does not exist.
            DependencyNotReady: If the key is absent from the secret.
        """
        ...
