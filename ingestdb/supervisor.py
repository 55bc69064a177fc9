"""Connection supervisor: one self-healing handle per backend."""

from __future__ import annotations

import logging
import threading
import time
from enum import Enum
from typing import Any, Callable

from .config import DatabaseConfig, RetryPolicy
from .drivers import (
    DEFAULT_BACKEND,
    ConnectionBackendError,
    ConnectionHandle,
    DriverRegistry,
    QueryExecutionError,
    default_registry,
)
from .tls import TLSConfigError

LOG = logging.getLogger(__name__)

SCHEMA_VERSION_QUERY = "SELECT MAX(version) FROM local_ega.dbschema_version"


class ConnectTimeoutError(ConnectionBackendError):
    """Raised when no connection could be made within the retry budget."""


class SchemaVersionError(RuntimeError):
    """Raised when the schema version catalog cannot be read."""


class SupervisorState(str, Enum):
    """Lifecycle states of a :class:`ConnectionSupervisor`."""

    UNCONNECTED = "unconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    TIMED_OUT = "timed_out"
    CLOSED = "closed"


class ConnectionSupervisor:
    """Owns a single connection handle and keeps it alive.

    ``connect()`` retries according to the :class:`RetryPolicy`: attempts are
    spaced by the fast rate until the fast window has elapsed, then by the
    slow rate until the total budget runs out. Handle replacement is guarded
    by a re-entrant lock, so concurrent callers wait for an in-flight connect
    instead of opening handles of their own.

    The lock does not cover statements. A handle runs one statement at a
    time, and a liveness ping sent while another thread's statement is in
    flight reports the handle as dead, so callers sharing a supervisor
    across threads must serialize their own calls.
    """

    def __init__(
        self,
        config: DatabaseConfig,
        *,
        policy: RetryPolicy | None = None,
        backend: str = DEFAULT_BACKEND,
        registry: DriverRegistry | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._config = config
        self._policy = policy or RetryPolicy()
        self._backend = backend
        self._driver = (registry if registry is not None else default_registry()).create(backend)
        self._clock = clock
        self._sleep = sleep
        self._handle: ConnectionHandle | None = None
        self._state = SupervisorState.UNCONNECTED
        self._lock = threading.RLock()
        self._shut_down = False

    @property
    def config(self) -> DatabaseConfig:
        return self._config

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    @property
    def backend(self) -> str:
        return self._backend

    @property
    def state(self) -> SupervisorState:
        """Current lifecycle state."""

        return self._state

    def is_alive(self) -> bool:
        """Probe the current handle; ``False`` when there is none."""

        handle = self._handle
        return handle is not None and handle.ping()

    def connect(self) -> None:
        """Ensure a live handle exists, retrying until the budget runs out."""

        with self._lock:
            if self.is_alive():
                LOG.info("Already connected to database")
                self._state = SupervisorState.CONNECTED
                return

            if self._shut_down:
                raise ConnectionBackendError("connection supervisor has been shut down")

            reconnecting = self._handle is not None
            self._discard_handle()
            self._state = SupervisorState.RECONNECTING if reconnecting else SupervisorState.CONNECTING

            LOG.info("Connecting to database")
            LOG.debug("connect string: %s", self._config.connect_string(redact=True))

            policy = self._policy
            started = self._clock()
            last_error: ConnectionBackendError | None = None
            try:
                while policy.unbounded or self._clock() - started < policy.connect_timeout:
                    try:
                        handle = self._driver.open(self._config)
                    except ConnectionBackendError as exc:
                        last_error = exc
                        LOG.debug("Connection attempt failed: %s", exc)
                    else:
                        self._handle = handle
                        self._state = SupervisorState.CONNECTED
                        LOG.info("Connected to database")
                        return

                    elapsed = self._clock() - started
                    if elapsed < policy.fast_connect_timeout:
                        LOG.debug("Fast reconnect")
                        delay = policy.fast_connect_rate
                    else:
                        LOG.debug("Slow reconnect")
                        delay = policy.slow_connect_rate
                    if not policy.unbounded:
                        delay = min(delay, max(policy.connect_timeout - elapsed, 0.0))
                    self._sleep(delay)
            except Exception:
                # Errors that retrying cannot fix end the attempt as well.
                self._state = SupervisorState.TIMED_OUT
                raise

            self._state = SupervisorState.TIMED_OUT
            LOG.error(
                "Giving up on database connection",
                extra={"host": self._config.host, "connect_timeout": policy.connect_timeout},
            )
            raise ConnectTimeoutError("failed to connect within reconnect time") from last_error

    def check_and_reconnect(self) -> None:
        """Reconnect if the liveness probe fails.

        Connection and TLS errors from the reconnect are logged, not raised;
        the next statement on the supervisor reports them.
        """

        if self.is_alive():
            return
        LOG.error("Database connection problem, reconnecting", extra={"state": self._state.value})
        try:
            self.connect()
        except (ConnectionBackendError, TLSConfigError) as exc:
            LOG.error("Database reconnect failed: %s", exc)

    def fetch_schema_version(self) -> int:
        """Return the highest version recorded in the schema version catalog."""

        self.check_and_reconnect()
        LOG.debug("Fetching database schema version")
        try:
            version = self.fetchval(SCHEMA_VERSION_QUERY)
        except (ConnectionBackendError, QueryExecutionError) as exc:
            raise SchemaVersionError(f"failed to fetch database schema version: {exc}") from exc
        if version is None:
            raise SchemaVersionError("database schema version catalog is empty")
        return int(version)

    def fetchval(self, query: str, *args: object) -> Any:
        """Run one statement and return its scalar result."""

        return self._require_handle().fetchval(query, *args)

    def execute(self, query: str, *args: object) -> str:
        """Run one statement and return its status tag."""

        return self._require_handle().execute(query, *args)

    def close(self) -> None:
        """Release a live handle; a no-op when there is nothing to close."""

        with self._lock:
            if not self.is_alive():
                return
            LOG.info("Closing database connection")
            handle, self._handle = self._handle, None
            self._state = SupervisorState.CLOSED
            handle.close()

    def shutdown(self) -> None:
        """Close the connection and release the driver for good.

        Unlike :meth:`close`, a shut down supervisor cannot connect again.
        """

        with self._lock:
            if self._shut_down:
                return
            self.close()
            self._discard_handle()
            self._shut_down = True
            self._state = SupervisorState.CLOSED
            self._driver.shutdown()

    def __enter__(self) -> ConnectionSupervisor:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _require_handle(self) -> ConnectionHandle:
        handle = self._handle
        if handle is None:
            raise ConnectionBackendError("not connected to database")
        return handle

    def _discard_handle(self) -> None:
        handle, self._handle = self._handle, None
        if handle is None:
            return
        try:
            handle.close()
        except ConnectionBackendError as exc:  # pragma: no cover - best effort
            LOG.debug("Discarding stale handle failed: %s", exc)


__all__ = [
    "ConnectTimeoutError",
    "ConnectionSupervisor",
    "SCHEMA_VERSION_QUERY",
    "SchemaVersionError",
    "SupervisorState",
]
