"""Fakes shared by the supervisor and database tests."""

from __future__ import annotations

from typing import Any

import pytest

from ingestdb.config import DatabaseConfig, RetryPolicy
from ingestdb.drivers import ConnectionBackendError, DriverRegistry, QueryExecutionError
from ingestdb.supervisor import SCHEMA_VERSION_QUERY


class FakeClock:
    """Monotonic clock that only moves when the code under test sleeps."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeHandle:
    def __init__(self, backend: "FakeBackend") -> None:
        self._backend = backend
        self.alive = True
        self.closed = False
        self.pings = 0

    def ping(self) -> bool:
        self.pings += 1
        return self.alive and not self.closed

    def fetchval(self, query: str, *args: object) -> Any:
        self._backend.statements.append((query, args))
        if self.closed or not self.alive:
            raise QueryExecutionError("connection is closed")
        result = self._backend.results.get(query)
        if isinstance(result, Exception):
            raise result
        return result

    def execute(self, query: str, *args: object) -> str:
        self._backend.statements.append((query, args))
        if self.closed or not self.alive:
            raise QueryExecutionError("connection is closed")
        result = self._backend.results.get(query, "INSERT 0 1")
        if isinstance(result, Exception):
            raise result
        return result

    def close(self) -> None:
        self.closed = True


class FakeBackend:
    """Scriptable backend: fails the first ``failures`` opens, then succeeds."""

    def __init__(self) -> None:
        self.failures = 0
        self.reachable = True
        self.opens = 0
        self.attempts = 0
        self.handles: list[FakeHandle] = []
        self.statements: list[tuple[str, tuple[object, ...]]] = []
        self.results: dict[str, Any] = {SCHEMA_VERSION_QUERY: 4}
        self.shut_down = False

    @property
    def handle(self) -> FakeHandle:
        return self.handles[-1]

    def open(self) -> FakeHandle:
        self.attempts += 1
        if not self.reachable or self.failures > 0:
            self.failures = max(self.failures - 1, 0)
            raise ConnectionBackendError("connection refused")
        self.opens += 1
        handle = FakeHandle(self)
        self.handles.append(handle)
        return handle


class FakeDriver:
    name = "fake"

    def __init__(self, backend: FakeBackend) -> None:
        self._backend = backend
        self.configs: list[DatabaseConfig] = []

    def open(self, config: DatabaseConfig) -> FakeHandle:
        self.configs.append(config)
        return self._backend.open()

    def shutdown(self) -> None:
        self._backend.shut_down = True


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def registry(backend: FakeBackend) -> DriverRegistry:
    registry = DriverRegistry()
    registry.register("fake", lambda: FakeDriver(backend))
    return registry


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def db_config() -> DatabaseConfig:
    return DatabaseConfig(
        host="localhost",
        port=5432,
        user="lega_in",
        password="lega_in",
        database="lega",
        sslmode="disable",
    )


@pytest.fixture
def policy() -> RetryPolicy:
    return RetryPolicy(
        connect_timeout=30,
        fast_connect_timeout=10,
        fast_connect_rate=1,
        slow_connect_rate=5,
    )
