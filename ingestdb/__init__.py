"""Self-healing database connections for ingestion services."""

from __future__ import annotations

__version__ = "0.1.0"

from .config import AppConfig, ConfigError, DatabaseConfig, RetryPolicy, load_config
from .database import (
    REQUIRED_SCHEMA_VERSION,
    UNKNOWN_SCHEMA_VERSION,
    IngestDatabase,
    SchemaRequirementError,
)
from .drivers import (
    AsyncpgDriver,
    ConnectionBackendError,
    ConnectionHandle,
    Driver,
    DriverRegistry,
    QueryExecutionError,
    UnknownBackendError,
    default_registry,
)
from .supervisor import ConnectionSupervisor, ConnectTimeoutError, SchemaVersionError, SupervisorState
from .tls import TLSConfigError

__all__ = [
    "AppConfig",
    "AsyncpgDriver",
    "ConfigError",
    "ConnectTimeoutError",
    "ConnectionBackendError",
    "ConnectionHandle",
    "ConnectionSupervisor",
    "DatabaseConfig",
    "Driver",
    "DriverRegistry",
    "IngestDatabase",
    "QueryExecutionError",
    "REQUIRED_SCHEMA_VERSION",
    "RetryPolicy",
    "SchemaRequirementError",
    "SchemaVersionError",
    "SupervisorState",
    "TLSConfigError",
    "UNKNOWN_SCHEMA_VERSION",
    "UnknownBackendError",
    "__version__",
    "default_registry",
    "load_config",
]
