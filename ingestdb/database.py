"""Schema-gated operations used by the ingestion services."""

from __future__ import annotations

import logging

from .config import DatabaseConfig, RetryPolicy
from .drivers import DEFAULT_BACKEND, DriverRegistry, QueryExecutionError
from .supervisor import ConnectionSupervisor

LOG = logging.getLogger(__name__)

UNKNOWN_SCHEMA_VERSION = -1
REQUIRED_SCHEMA_VERSION = 4

REGISTER_FILE_QUERY = "SELECT sda.register_file($1, $2)"
MARK_UPLOADED_QUERY = (
    "INSERT INTO sda.file_event_log(file_id, event, user_id, message) VALUES ($1, 'uploaded', $2, $3)"
)


class SchemaRequirementError(RuntimeError):
    """Raised when the detected schema is too old for an operation."""

    def __init__(self, operation: str, required: int, found: int) -> None:
        super().__init__(f"database schema v{required} required for {operation}()")
        self.operation = operation
        self.required = required
        self.found = found


class IngestDatabase:
    """File bookkeeping on top of a :class:`ConnectionSupervisor`.

    The schema version is read once, when the database is opened, and cached
    for the lifetime of the instance.
    """

    def __init__(self, supervisor: ConnectionSupervisor, *, version: int = UNKNOWN_SCHEMA_VERSION) -> None:
        self._supervisor = supervisor
        self._version = version

    @classmethod
    def open(
        cls,
        config: DatabaseConfig,
        *,
        policy: RetryPolicy | None = None,
        backend: str = DEFAULT_BACKEND,
        registry: DriverRegistry | None = None,
    ) -> IngestDatabase:
        """Connect and read the schema version."""

        supervisor = ConnectionSupervisor(config, policy=policy, backend=backend, registry=registry)
        try:
            supervisor.connect()
            version = supervisor.fetch_schema_version()
        except Exception:
            supervisor.shutdown()
            raise
        LOG.info("Database schema version detected", extra={"schema_version": version})
        return cls(supervisor, version=version)

    @property
    def version(self) -> int:
        """Cached schema version; ``-1`` when unknown."""

        return self._version

    @property
    def supervisor(self) -> ConnectionSupervisor:
        return self._supervisor

    def supports(self, required: int = REQUIRED_SCHEMA_VERSION) -> bool:
        return self._version >= required

    def register_file(self, upload_path: str, upload_user: str) -> str:
        """Register an uploaded file and return its id.

        An existing entry for the same path and user is updated; a
        "registered" event is appended either way.
        """

        self._prepare("register_file")
        file_id = self._supervisor.fetchval(REGISTER_FILE_QUERY, upload_path, upload_user)
        if file_id is None:
            raise QueryExecutionError("register_file returned no file id")
        return str(file_id)

    def mark_file_as_uploaded(self, file_id: str, user_id: str, message: str) -> None:
        """Record that a registered file finished uploading.

        ``message`` is the upload notification as received from the broker.
        """

        self._prepare("mark_file_as_uploaded")
        self._supervisor.execute(MARK_UPLOADED_QUERY, file_id, user_id, message)

    def close(self) -> None:
        """Close the connection and stop the driver."""

        self._supervisor.shutdown()

    def __enter__(self) -> IngestDatabase:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _prepare(self, operation: str, required: int = REQUIRED_SCHEMA_VERSION) -> None:
        self._supervisor.check_and_reconnect()
        if self._version < required:
            raise SchemaRequirementError(operation, required, self._version)


__all__ = [
    "IngestDatabase",
    "MARK_UPLOADED_QUERY",
    "REGISTER_FILE_QUERY",
    "REQUIRED_SCHEMA_VERSION",
    "SchemaRequirementError",
    "UNKNOWN_SCHEMA_VERSION",
]
