"""ListSource: a named list of work items resolved from a pluggable source."""

from datetime import datetime
from enum import StrEnum
from typing import ClassVar

from pydantic import Field

from fanout.domain.shared.model.resource import GROUP, VERSION, Kind, Resource
from fanout.domain.shared.model.secret import SecretRef
from fanout.domain.shared.model.value import SchemaModel

LIST_SOURCE = Kind(group=GROUP, version=VERSION, kind="ListSource", plural="listsources")

DEFAULT_JSON_PATH = "$[*]"


class SourceType(StrEnum):
    STATIC = "static"
    API = "api"
    SQL = "sql"


class APIAuthType(StrEnum):
    BASIC = "basic"
    BEARER = "bearer"


class APIAuth(SchemaModel):
    """Credentials for an API source.

    Basic auth reads ``usernameKey`` and ``passwordKey`` from ``secretRef``.
    Bearer auth resolves nothing: the token is expected in ``headers``.
    """

    type: APIAuthType
    secret_ref: SecretRef
    username_key: str | None = None
    password_key: str | None = None


class APIConfig(SchemaModel):
    url: str
    headers: dict[str, str] = Field(default_factory=dict)
    json_path: str | None = None
    auth: APIAuth | None = None

    @property
    def path_expression(self) -> str:
        return self.json_path or DEFAULT_JSON_PATH


class SQLAuth(SchemaModel):
    secret_ref: SecretRef
    password_key: str


class SQLConfig(SchemaModel):
    connection_string: str
    query: str
    auth: SQLAuth | None = None


class ListSourceSpec(SchemaModel):
    source_type: SourceType
    static_list: list[str] | None = None
    api: APIConfig | None = None
    sql: SQLConfig | None = None
    interval_seconds: int | None = Field(default=None, ge=1)

    def populated_variants(self) -> set[SourceType]:
        """Variants whose configuration block is present."""
        populated = set()
        if self.static_list is not None:
            populated.add(SourceType.STATIC)
        if self.api is not None:
            populated.add(SourceType.API)
        if self.sql is not None:
            populated.add(SourceType.SQL)
        return populated


class ListSourceStatus(SchemaModel):
    resolved_item_count: int = 0
    last_resolution_time: datetime | None = None
    last_error: str | None = None
    observed_generation: int | None = None


class ListSource(Resource):
    __kind__: ClassVar[Kind] = LIST_SOURCE

    spec: ListSourceSpec
    status: ListSourceStatus = Field(default_factory=ListSourceStatus)
