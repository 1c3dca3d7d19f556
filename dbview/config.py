"""Configuration models, defaults resolution and the TOML loader."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Annotated, Any, Literal, Union

import tomllib
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PositiveFloat,
    PositiveInt,
    ValidationError,
    field_validator,
    model_validator,
)

from .errors import ConfigError

CONFIG_FILE = Path.home() / ".config" / "dbview" / "config.toml"

_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")


class Defaults(BaseModel):
    """Operational settings applied to databases that do not override them."""

    max_rows: PositiveInt = 100
    lazy_connection: bool = True
    query_timeout: PositiveFloat = 30.0


class _DatabaseSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(min_length=1)
    description: str | None = None
    lazy_connection: bool | None = None
    max_rows: PositiveInt | None = None
    query_timeout: PositiveFloat | None = None


class PostgresSettings(_DatabaseSettings):
    """Connection parameters for a PostgreSQL database."""

    kind: Literal["postgresql"] = "postgresql"
    dsn: str | None = None
    host: str | None = None
    port: int = 5432
    database: str | None = None
    user: str | None = None
    password: str = ""
    ssl: bool = False

    @model_validator(mode="after")
    def _require_target(self) -> PostgresSettings:
        if not self.dsn and not (self.host and self.database and self.user):
            raise ValueError("Either 'dsn' or 'host' + 'database' + 'user' must be provided")
        return self


class ClickHouseSettings(_DatabaseSettings):
    """Connection parameters for a ClickHouse database (native protocol)."""

    kind: Literal["clickhouse"] = "clickhouse"
    host: str = "localhost"
    port: int = 9000
    database: str = "default"
    user: str = "default"
    password: str = ""
    secure: bool = False
    verify: bool = True
    ca_certs: str | None = None


DatabaseSettings = Annotated[
    Union[PostgresSettings, ClickHouseSettings],
    Field(discriminator="kind"),
]


class DatabaseConfig(BaseModel):
    """Fully resolved, immutable description of one database."""

    model_config = ConfigDict(frozen=True)

    id: str
    connection: DatabaseSettings
    lazy_connection: bool
    max_rows: PositiveInt
    query_timeout: PositiveFloat
    description: str | None = None

    @property
    def kind(self) -> str:
        return self.connection.kind


class AppConfig(BaseModel):
    """Shape of the configuration file."""

    defaults: Defaults = Field(default_factory=Defaults)
    databases: list[DatabaseSettings] = Field(min_length=1)

    @field_validator("databases")
    @classmethod
    def _unique_ids(cls, databases: list[Any]) -> list[Any]:
        seen: set[str] = set()
        for database in databases:
            if database.id in seen:
                raise ValueError(f"Duplicate database id '{database.id}'")
            seen.add(database.id)
        return databases

    def resolved_databases(self) -> list[DatabaseConfig]:
        """Return every database with the defaults merged in, in file order."""

        return [resolve_database(database, self.defaults) for database in self.databases]


def resolve_database(settings: PostgresSettings | ClickHouseSettings, defaults: Defaults) -> DatabaseConfig:
    """Merge per-database overrides over the shared defaults."""

    return DatabaseConfig(
        id=settings.id,
        connection=settings,
        lazy_connection=(
            settings.lazy_connection if settings.lazy_connection is not None else defaults.lazy_connection
        ),
        max_rows=settings.max_rows if settings.max_rows is not None else defaults.max_rows,
        query_timeout=(
            settings.query_timeout if settings.query_timeout is not None else defaults.query_timeout
        ),
        description=settings.description,
    )


def resolve_env_variables(value: Any) -> Any:
    """Replace ``${NAME}`` references in every string with environment values."""

    if isinstance(value, str):

        def _substitute(match: re.Match[str]) -> str:
            name = match.group(1)
            resolved = os.environ.get(name)
            if resolved is None:
                raise ConfigError(
                    f"Environment variable '{name}' is not defined (referenced as '{match.group(0)}')"
                )
            return resolved

        return _ENV_VAR_PATTERN.sub(_substitute, value)
    if isinstance(value, list):
        return [resolve_env_variables(item) for item in value]
    if isinstance(value, dict):
        return {key: resolve_env_variables(item) for key, item in value.items()}
    return value


def load_config(path: Path | str | None = None) -> AppConfig:
    """Load and validate the configuration file."""

    config_path = Path(path) if path is not None else CONFIG_FILE
    try:
        with config_path.open("rb") as handle:
            raw = tomllib.load(handle)
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise ConfigError(f"Failed to read config '{config_path}': {exc}") from exc
    try:
        return AppConfig.model_validate(resolve_env_variables(raw))
    except ValidationError as exc:
        raise ConfigError(f"Invalid config '{config_path}': {exc}") from exc


__all__ = [
    "AppConfig",
    "CONFIG_FILE",
    "ClickHouseSettings",
    "DatabaseConfig",
    "DatabaseSettings",
    "Defaults",
    "PostgresSettings",
    "load_config",
    "resolve_database",
    "resolve_env_variables",
]
