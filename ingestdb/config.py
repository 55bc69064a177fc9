"""Configuration loading helpers."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Literal, Mapping

import tomllib

from pydantic import BaseModel, ConfigDict, Field, ValidationError

LOG = logging.getLogger(__name__)

CONFIG_FILE = Path.home() / ".config" / "ingestdb" / "config.toml"
CONFIG_ENV = "INGESTDB_CONFIG"

SslMode = Literal["disable", "allow", "prefer", "require", "verify-ca", "verify-full"]

# Environment variable -> DatabaseConfig field.
ENV_OVERRIDES: Mapping[str, str] = {
    "INGESTDB_DB_HOST": "host",
    "INGESTDB_DB_PORT": "port",
    "INGESTDB_DB_USER": "user",
    "INGESTDB_DB_PASSWORD": "password",
    "INGESTDB_DB_DATABASE": "database",
    "INGESTDB_DB_SSLMODE": "sslmode",
    "INGESTDB_DB_CACERT": "ca_cert",
    "INGESTDB_DB_CLIENTCERT": "client_cert",
    "INGESTDB_DB_CLIENTKEY": "client_key",
}


class ConfigError(ValueError):
    """Raised when the configuration file cannot be parsed or validated."""


class DatabaseConfig(BaseModel):
    """How to reach the relational backend."""

    model_config = ConfigDict(frozen=True)

    host: str = "localhost"
    port: int = Field(default=5432, ge=1, le=65535)
    user: str = ""
    password: str = Field(default="", repr=False)
    database: str = ""
    sslmode: SslMode = "verify-full"
    ca_cert: str = ""
    client_cert: str = ""
    client_key: str = ""

    @property
    def tls_enabled(self) -> bool:
        return self.sslmode != "disable"

    def connect_string(self, *, redact: bool = False) -> str:
        """Return the libpq keyword/value connect string for this config.

        The supervisor logs the redacted form; the full form is meant for
        libpq based tools such as ``psql``.
        """

        password = "****" if redact and self.password else self.password
        conn_info = (
            f"host={self.host} port={self.port} user={self.user} password={password} "
            f"dbname={self.database} sslmode={self.sslmode}"
        )
        if not self.tls_enabled:
            return conn_info
        if self.ca_cert:
            conn_info += f" sslrootcert={self.ca_cert}"
        if self.client_cert:
            conn_info += f" sslcert={self.client_cert}"
        if self.client_key:
            conn_info += f" sslkey={self.client_key}"
        return conn_info


class RetryPolicy(BaseModel):
    """Reconnect schedule, all values in seconds.

    ``connect_timeout`` is the total budget of a single ``connect()`` call; a
    value ``<= 0`` retries forever. Attempts made within the first
    ``fast_connect_timeout`` seconds are spaced by ``fast_connect_rate``,
    later ones by ``slow_connect_rate``.
    """

    model_config = ConfigDict(frozen=True)

    connect_timeout: float = 3600.0
    fast_connect_timeout: float = Field(default=120.0, ge=0)
    fast_connect_rate: float = Field(default=5.0, ge=0)
    slow_connect_rate: float = Field(default=60.0, ge=0)

    @property
    def unbounded(self) -> bool:
        return self.connect_timeout <= 0


class AppConfig(BaseModel):
    """Shape of the configuration file."""

    backend: str = "postgres"
    log_level: str = "INFO"
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    retry: RetryPolicy = Field(default_factory=RetryPolicy)

    def with_database(self, **updates: object) -> AppConfig:
        """Return a copy with database settings changed."""

        database = self.database.model_copy(update=updates)
        return self.model_copy(update={"database": database})

    def with_retry(self, **updates: object) -> AppConfig:
        """Return a copy with retry settings changed."""

        retry = self.retry.model_copy(update=updates)
        return self.model_copy(update={"retry": retry})


def config_path() -> Path:
    """Location of the config file, honouring ``INGESTDB_CONFIG``."""

    override = os.environ.get(CONFIG_ENV)
    if override:
        return Path(override).expanduser()
    return CONFIG_FILE


def load_config(path: Path | None = None, *, environ: Mapping[str, str] | None = None) -> AppConfig:
    """Load configuration from disk and apply environment overrides.

    A missing file yields defaults; a file that cannot be parsed or holds
    invalid values raises :class:`ConfigError`.
    """

    target = path or config_path()
    try:
        data = _read_config_file(target)
    except FileNotFoundError:
        LOG.debug("No config file found, using defaults", extra={"path": str(target)})
        data = {}
    except (tomllib.TOMLDecodeError, OSError) as exc:
        raise ConfigError(f"Failed to read config file '{target}': {exc}") from exc

    overrides = _env_overrides(os.environ if environ is None else environ)
    if overrides:
        database = dict(data.get("database") or {})
        database.update(overrides)
        data["database"] = database

    try:
        return AppConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration in '{target}': {exc}") from exc


def _read_config_file(path: Path) -> dict[str, object]:
    with path.open("rb") as handle:
        raw = tomllib.load(handle)
    data: dict[str, object] = {}
    for key in ("backend", "log_level"):
        value = raw.get(key)
        if isinstance(value, str):
            data[key] = value
    for table in ("database", "retry"):
        value = raw.get(table)
        if isinstance(value, dict):
            data[table] = dict(value)
    return data


def _env_overrides(environ: Mapping[str, str]) -> dict[str, str]:
    overrides: dict[str, str] = {}
    for variable, field in ENV_OVERRIDES.items():
        value = environ.get(variable)
        if value is not None:
            overrides[field] = value
    return overrides


__all__ = [
    "AppConfig",
    "CONFIG_FILE",
    "ConfigError",
    "DatabaseConfig",
    "RetryPolicy",
    "SslMode",
    "config_path",
    "load_config",
]
