"""KubeSecretResolver - reads credentials from core/v1 Secrets."""

import base64
import binascii

from fanout.domain.shared.error import (
    ConfigInvalid,
    DependencyNotReady,
    NotFoundError,
    SecretNotFound,
)
from fanout.domain.shared.model.resource import SECRET, ObjectKey
from fanout.domain.shared.model.secret import SecretRef
from fanout.domain.shared.port.control_plane import ControlPlane
from fanout.domain.shared.port.secret_resolver import SecretResolver


class KubeSecretResolver(SecretResolver):
    """Decodes ``data`` (base64) and ``stringData`` (plain text) of a Secret.

    ``stringData`` is normally folded into ``data`` by the API server; it
    is read as well so objects built by hand resolve the same way.
    """

    def __init__(self, control_plane: ControlPlane) -> None:
        self._control_plane = control_plane

    async def read(self, namespace: str, ref: SecretRef) -> dict[str, bytes]:
        key = ObjectKey(ref.namespace or namespace, ref.name)
        try:
            obj = await self._control_plane.get(SECRET, key)
        except NotFoundError as e:
            raise SecretNotFound(f"secret {key} not found") from e

        values: dict[str, bytes] = {}
        for name, encoded in (obj.get("data") or {}).items():
            try:
                values[name] = base64.b64decode(encoded, validate=True)
            except (binascii.Error, ValueError) as e:
                raise ConfigInvalid(f"secret {key} key {name!r} is not valid base64") from e
        for name, text in (obj.get("stringData") or {}).items():
            values[name] = text.encode("utf-8")
        return values

    async def resolve(self, namespace: str, ref: SecretRef, key: str | None = None) -> bytes:
        wanted = key or ref.key
        if not wanted:
            raise ConfigInvalid(f"no key given for secret {ref.name!r}", field="secretRef.key")

        values = await self.read(namespace, ref)
        if wanted not in values:
            raise DependencyNotReady(
                f"secret {ref.namespace or namespace}/{ref.name} has no key {wanted!r}"
            )
        return values[wanted]
