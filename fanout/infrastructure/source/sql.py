"""SQL query source using SQLAlchemy's async engine."""

import asyncio
import shlex

import logfire
from sqlalchemy import text
from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import ArgumentError, InvalidRequestError, SQLAlchemyError
from sqlalchemy.ext.asyncio import create_async_engine

from fanout.domain.shared.error import ConfigInvalid, FetchFailed
from fanout.domain.shared.port.secret_resolver import SecretResolver
from fanout.domain.source.model.list_source import ListSource
from fanout.domain.source.port.adaptor import SourceAdaptor

# Async drivers substituted for bare dialect names
_ASYNC_DRIVERS = {
    "postgresql": "postgresql+asyncpg",
    "postgres": "postgresql+asyncpg",
    "sqlite": "sqlite+aiosqlite",
}

# libpq keyword names mapped onto URL components
_LIBPQ_KEYWORDS = {"host", "port", "user", "password", "dbname"}


def parse_connection_string(connection_string: str) -> URL:
    """Parse a URL or libpq ``key=value`` connection string into an async URL.

    Raises:
        ConfigInvalid: If the string cannot be parsed.
    """
    try:
        if "://" in connection_string:
            url = make_url(connection_string)
        else:
            url = _url_from_keywords(connection_string)
    except (ArgumentError, ValueError) as e:
        raise ConfigInvalid(
            f"invalid connection string: {e}", field="sql.connectionString"
        ) from e

    driver = _ASYNC_DRIVERS.get(url.drivername)
    if driver is not None:
        url = url.set(drivername=driver)
    return url


def _url_from_keywords(connection_string: str) -> URL:
    params: dict[str, str] = {}
    for token in shlex.split(connection_string):
        key, sep, value = token.partition("=")
        if not sep or not key:
            raise ValueError(f"expected key=value, got {token!r}")
        params[key] = value

    port = params.get("port")
    return URL.create(
        "postgresql+asyncpg",
        username=params.get("user"),
        password=params.get("password"),
        host=params.get("host"),
        port=int(port) if port else None,
        database=params.get("dbname"),
        query={k: v for k, v in params.items() if k not in _LIBPQ_KEYWORDS},
    )


class SqlQuerySourceAdaptor(SourceAdaptor):
    """Runs one read query and collects the first column of every row.

    Items keep the row order returned by the database, so queries should
    carry an ORDER BY when index assignment must be stable across polls.
    A NULL first column becomes an empty item.
    """

    def __init__(self, timeout_seconds: float = 30.0) -> None:
        self._timeout = timeout_seconds

    async def resolve(self, source: ListSource, secrets: SecretResolver) -> list[str]:
        config = source.spec.sql
        if config is None:
            raise ConfigInvalid("sql configuration is required", field="sql")

        url = parse_connection_string(config.connection_string)
        if config.auth is not None:
            password = await secrets.resolve(
                source.metadata.namespace, config.auth.secret_ref, config.auth.password_key
            )
            url = url.set(password=password.decode("utf-8"))

        try:
            engine = create_async_engine(url)
        except (ArgumentError, InvalidRequestError, ImportError) as e:
            # Unknown dialect, missing or synchronous driver
            raise ConfigInvalid(
                f"unusable connection string: {e}", field="sql.connectionString"
            ) from e

        try:
            async with asyncio.timeout(self._timeout):
                async with engine.connect() as conn:
                    result = await conn.execute(text(config.query))
                    rows = result.fetchall()
        except (SQLAlchemyError, OSError, TimeoutError) as e:
            logfire.warn(
                "SQL source query failed",
                host=url.host,
                database=url.database,
                error=str(e),
            )
            raise FetchFailed(f"SQL query failed: {e}") from e
        finally:
            await engine.dispose()

        return ["" if row[0] is None else str(row[0]) for row in rows]
