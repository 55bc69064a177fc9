"""Connection drivers and the registry that selects them by backend name."""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Callable, Coroutine, Protocol, TypeVar, runtime_checkable

import asyncpg

from .config import DatabaseConfig
from .tls import ssl_argument

LOG = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_BACKEND = "postgres"


class ConnectionBackendError(RuntimeError):
    """Raised when a driver cannot open or use a connection."""


class QueryExecutionError(RuntimeError):
    """Raised when a statement fails; carries the backend's message verbatim."""


class UnknownBackendError(LookupError):
    """Raised when no driver is registered for a backend name."""


@runtime_checkable
class ConnectionHandle(Protocol):
    """A single live backend session."""

    def ping(self) -> bool:
        """Return ``True`` when the session answers a round-trip."""

    def fetchval(self, query: str, *args: object) -> Any:
        """Run a statement and return the first column of the first row."""

    def execute(self, query: str, *args: object) -> str:
        """Run a statement and return its status tag."""

    def close(self) -> None:
        """Release the session."""


@runtime_checkable
class Driver(Protocol):
    """Opens connection handles for one backend type."""

    name: str

    def open(self, config: DatabaseConfig) -> ConnectionHandle:
        """Open a new handle or raise :class:`ConnectionBackendError`."""

    def shutdown(self) -> None:
        """Release driver resources; no handles are opened afterwards."""


DriverFactory = Callable[[], Driver]


class DriverRegistry:
    """Maps backend names to driver factories."""

    def __init__(self) -> None:
        self._factories: dict[str, DriverFactory] = {}

    def register(self, name: str, factory: DriverFactory) -> None:
        """Register a driver factory under ``name``."""

        if name in self._factories:
            raise ValueError(f"Driver '{name}' is already registered")
        self._factories[name] = factory

    def create(self, name: str) -> Driver:
        """Instantiate the driver registered under ``name``."""

        try:
            factory = self._factories[name]
        except KeyError:
            known = ", ".join(sorted(self._factories)) or "none"
            raise UnknownBackendError(f"No driver registered for backend '{name}' (known: {known})") from None
        return factory()

    def names(self) -> tuple[str, ...]:
        return tuple(sorted(self._factories))

    def __contains__(self, name: object) -> bool:
        return name in self._factories


class AsyncpgDriver:
    """Synchronous driver that talks to PostgreSQL via asyncpg.

    asyncpg is coroutine based, so the driver keeps a private event loop on a
    daemon thread and blocks the caller on each call.
    """

    name = DEFAULT_BACKEND

    def __init__(self, *, connect_timeout: float = 5.0, ping_timeout: float = 2.0) -> None:
        self._connect_timeout = connect_timeout
        self._ping_timeout = ping_timeout
        self._stopped = False
        self._loop = asyncio.new_event_loop()
        self._loop_thread = threading.Thread(
            target=self._loop.run_forever,
            name="ingestdb-asyncpg-driver",
            daemon=True,
        )
        self._loop_thread.start()

    def open(self, config: DatabaseConfig) -> AsyncpgHandle:
        ssl_arg = ssl_argument(config)
        try:
            conn = self.run(
                asyncpg.connect(
                    host=config.host,
                    port=config.port,
                    user=config.user or None,
                    password=config.password or None,
                    database=config.database or None,
                    ssl=ssl_arg,
                    timeout=self._connect_timeout,
                )
            )
        except Exception as exc:
            raise ConnectionBackendError(
                f"Failed to connect to {config.host}:{config.port}/{config.database}: {exc}"
            ) from exc
        return AsyncpgHandle(self, conn, ping_timeout=self._ping_timeout)

    def run(self, coro: Coroutine[Any, Any, T]) -> T:
        """Run a coroutine on the driver loop and wait for its result."""

        if self._stopped:
            coro.close()
            raise ConnectionBackendError("asyncpg driver has been shut down")
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        return future.result()

    def shutdown(self) -> None:
        """Stop the background event loop."""

        if self._stopped:
            return
        self._stopped = True
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._loop_thread.join(timeout=1)

    def __del__(self) -> None:  # pragma: no cover - best effort cleanup
        try:
            self.shutdown()
        except Exception:
            pass


class AsyncpgHandle:
    """Blocking wrapper around a single ``asyncpg.Connection``."""

    _PING_QUERY = "SELECT 1"

    def __init__(self, driver: AsyncpgDriver, conn: asyncpg.Connection, *, ping_timeout: float) -> None:
        self._driver = driver
        self._conn = conn
        self._ping_timeout = ping_timeout

    def ping(self) -> bool:
        if self._conn.is_closed():
            return False
        try:
            self._driver.run(self._conn.fetchval(self._PING_QUERY, timeout=self._ping_timeout))
        except Exception as exc:
            LOG.debug("Liveness probe failed: %s", exc)
            return False
        return True

    def fetchval(self, query: str, *args: object) -> Any:
        try:
            return self._driver.run(self._conn.fetchval(query, *args))
        except Exception as exc:
            raise QueryExecutionError(str(exc)) from exc

    def execute(self, query: str, *args: object) -> str:
        try:
            return self._driver.run(self._conn.execute(query, *args))
        except Exception as exc:
            raise QueryExecutionError(str(exc)) from exc

    def close(self) -> None:
        if self._conn.is_closed():
            return
        self._driver.run(self._close())

    async def _close(self) -> None:
        try:
            await self._conn.close(timeout=self._ping_timeout)
        except Exception as exc:
            LOG.debug("Graceful close failed, terminating connection: %s", exc)
            self._conn.terminate()


def default_registry() -> DriverRegistry:
    """Registry with the drivers shipped by ingestdb."""

    registry = DriverRegistry()
    registry.register(DEFAULT_BACKEND, AsyncpgDriver)
    return registry


__all__ = [
    "AsyncpgDriver",
    "AsyncpgHandle",
    "ConnectionBackendError",
    "ConnectionHandle",
    "DEFAULT_BACKEND",
    "Driver",
    "DriverFactory",
    "DriverRegistry",
    "QueryExecutionError",
    "UnknownBackendError",
    "default_registry",
]
