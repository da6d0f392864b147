"""HTTP API source using httpx and JSONPath extraction."""

import json
from typing import Any

import httpx
import logfire
from jsonpath_ng.exceptions import JsonPathLexerError, JsonPathParserError
from jsonpath_ng.ext import parse as parse_jsonpath

from fanout.domain.shared.error import ConfigInvalid, FetchFailed
from fanout.domain.shared.port.secret_resolver import SecretResolver
from fanout.domain.source.model.list_source import APIAuthType, APIConfig, ListSource
from fanout.domain.source.port.adaptor import SourceAdaptor


def stringify(value: Any) -> str:
    """Render one matched JSON value as an item string."""
    if isinstance(value, str):
        return value
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


class HttpApiSourceAdaptor(SourceAdaptor):
    """Fetches items from a JSON API.

    Issues one GET with the configured headers, then evaluates the
    configured JSONPath against the decoded body. Each match becomes one
    item, in document order.

    Basic auth resolves ``usernameKey`` and ``passwordKey`` from the
    referenced secret. Bearer auth resolves nothing: callers put the
    ``Authorization`` header in ``headers`` themselves.
    """

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def resolve(self, source: ListSource, secrets: SecretResolver) -> list[str]:
        config = source.spec.api
        if config is None:
            raise ConfigInvalid("api configuration is required", field="api")

        # Parse before any I/O so a bad expression never costs a request
        expression = self._parse_path(config.path_expression)
        auth = await self._basic_auth(config, source.metadata.namespace, secrets)

        try:
            response = await self._client.get(config.url, headers=config.headers, auth=auth)
        except httpx.HTTPError as e:
            logfire.warn("API source request failed", url=config.url, error=str(e))
            raise FetchFailed(f"API request to {config.url} failed: {e}") from e

        if not response.is_success:
            logfire.warn(
                "API source returned error status",
                url=config.url,
                status_code=response.status_code,
            )
            raise FetchFailed(
                f"API request failed with status {response.status_code}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as e:
            raise FetchFailed(f"API response from {config.url} is not valid JSON: {e}") from e

        return [stringify(match.value) for match in expression.find(body)]

    def _parse_path(self, path: str):
        try:
            return parse_jsonpath(path)
        except (JsonPathLexerError, JsonPathParserError) as e:
            raise ConfigInvalid(
                f"failed to parse JSONPath expression {path!r}: {e}", field="api.jsonPath"
            ) from e

    async def _basic_auth(
        self, config: APIConfig, namespace: str, secrets: SecretResolver
    ) -> httpx.BasicAuth | None:
        if config.auth is None or config.auth.type != APIAuthType.BASIC:
            return None

        auth = config.auth
        if not auth.username_key or not auth.password_key:
            raise ConfigInvalid(
                "basic auth requires usernameKey and passwordKey", field="api.auth"
            )
        username = await secrets.resolve(namespace, auth.secret_ref, auth.username_key)
        password = await secrets.resolve(namespace, auth.secret_ref, auth.password_key)
        return httpx.BasicAuth(username.decode("utf-8"), password.decode("utf-8"))
