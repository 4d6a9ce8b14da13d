"""
Pytest configuration for the query gateway.

Provides fixtures for:
- A sample resource registry (active, inactive and discovery-mode servers)
- An in-memory stand-in for psycopg_pool / psycopg connections
- Settings for integration tests against a real PostgreSQL
"""

from __future__ import annotations

import os
import time
from contextlib import contextmanager
from types import SimpleNamespace
from typing import Any, Callable, ClassVar, Dict, Iterator, List, Optional, Sequence, Tuple

import pytest
from psycopg_pool import PoolClosed

from query_gateway.infrastructure import pool_manager
from query_gateway.infrastructure.pool_manager import PoolManager
from query_gateway.query.executor import QueryExecutor
from query_gateway.registry import ResourceRegistry

SERVER_RECORDS: List[Dict[str, Any]] = [
    {
        "id": "prod",
        "name": "Production",
        "host": "prod.db.example.com",
        "username": "reader",
        "password": "s3cret-pw",
        "databases": [
            {"name": "orders", "description": "Order history"},
            {"name": "archive", "active": False},
        ],
    },
    {
        "id": "legacy",
        "host": "legacy.db.example.com",
        "active": False,
        "username": "reader",
        "password": "old-pw",
        "databases": [{"name": "old"}],
    },
    {
        "id": "lake",
        "name": "Data lake",
        "host": "lake.db.example.com",
        "username": "analyst",
        "password": "lake-pw",
    },
]


Response = Tuple[Optional[List[str]], List[Tuple[Any, ...]]]


class FakeCursor:
    def __init__(self, connection: "FakeConnection") -> None:
        self._connection = connection
        self.description: Optional[List[SimpleNamespace]] = None
        self._rows: List[Tuple[Any, ...]] = []

    def __enter__(self) -> "FakeCursor":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        del exc_type, exc, tb

    def execute(self, query: str, params: Optional[Dict[str, Any]] = None) -> None:
        db = self._connection.db
        db.executed.append((self._connection.pool.name, query, params))
        columns, rows = db.respond(query, params)
        self.description = None if columns is None else [SimpleNamespace(name=c) for c in columns]
        self._rows = list(rows)

    def fetchall(self) -> List[Tuple[Any, ...]]:
        return self._rows


class FakeConnection:
    def __init__(self, db: "FakeDatabase", pool: "FakeConnectionPool") -> None:
        self.db = db
        self.pool = pool
        self.closed = False
        self.commits = 0

    def __enter__(self) -> "FakeConnection":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        del exc_type, exc, tb

    def cursor(self) -> FakeCursor:
        return FakeCursor(self)

    def execute(self, query: str, params: Optional[Dict[str, Any]] = None) -> FakeCursor:
        cursor = self.cursor()
        cursor.execute(query, params)
        return cursor

    def commit(self) -> None:
        self.commits += 1

    def close(self) -> None:
        self.closed = True
        self.db.closed_connections.append(self)


class FakeConnectionPool:
    """Mimics the subset of `psycopg_pool.ConnectionPool` the gateway uses."""

    instances: ClassVar[List["FakeConnectionPool"]] = []

    def __init__(
        self,
        db: "FakeDatabase",
        conninfo: str,
        kwargs: Optional[Dict[str, Any]] = None,
        connection_class: Any = None,
        min_size: int = 4,
        max_size: Optional[int] = None,
        timeout: float = 30.0,
        max_idle: float = 600.0,
        reset: Optional[Callable[[Any], None]] = None,
        name: Optional[str] = None,
        open: Optional[bool] = None,
    ) -> None:
        self.db = db
        self.conninfo = conninfo
        self.kwargs = kwargs or {}
        self.connection_class = connection_class
        self.min_size = min_size
        self.max_size = max_size
        self.timeout = timeout
        self.max_idle = max_idle
        self.reset = reset
        self.name = name
        self.closed = True
        self.close_error: Optional[Exception] = None
        FakeConnectionPool.instances.append(self)

    def open(self, wait: bool = False, timeout: float = 30.0) -> None:
        del wait, timeout
        if self.db.open_error is not None:
            raise self.db.open_error
        self.closed = False

    def close(self, timeout: float = 5.0) -> None:
        del timeout
        self.closed = True
        if self.close_error is not None:
            raise self.close_error

    @contextmanager
    def connection(self, timeout: Optional[float] = None) -> Iterator[FakeConnection]:
        del timeout
        if self.closed:
            raise PoolClosed(f"the pool {self.name!r} is already closed")
        if self.db.checkout_error is not None:
            raise self.db.checkout_error
        yield FakeConnection(self.db, self)


class FakeConnectionClass:
    """Stands in for `psycopg.Connection` during the pre-open probe."""

    def __init__(self, db: "FakeDatabase") -> None:
        self.db = db

    def connect(self, conninfo: str = "", **kwargs: Any) -> FakeConnection:
        self.db.probes.append((conninfo, kwargs))
        if self.db.connect_delay:
            time.sleep(self.db.connect_delay)
        if self.db.connect_error is not None:
            raise self.db.connect_error
        return FakeConnection(self.db, SimpleNamespace(name="probe"))


class FakeDatabase:
    """
    Scripted responses keyed by a query fragment. The most recently
    registered matching fragment wins; unmatched queries return `(1,)`.
    """

    def __init__(self) -> None:
        self._handlers: List[Tuple[str, Callable[[str, Any], Response]]] = []
        self.executed: List[Tuple[Optional[str], str, Any]] = []
        self.probes: List[Tuple[str, Dict[str, Any]]] = []
        self.closed_connections: List[FakeConnection] = []
        self.connect_error: Optional[Exception] = None
        self.open_error: Optional[Exception] = None
        self.checkout_error: Optional[Exception] = None
        self.connect_delay = 0.0
        self.pools: List[FakeConnectionPool] = []

    def on(
        self,
        fragment: str,
        columns: Optional[Sequence[str]] = None,
        rows: Sequence[Tuple[Any, ...]] = (),
        error: Optional[Exception] = None,
    ) -> None:
        def handler(query: str, params: Any) -> Response:
            del query, params
            if error is not None:
                raise error
            return (None if columns is None else list(columns)), list(rows)

        self._handlers.append((fragment, handler))

    def respond(self, query: str, params: Any) -> Response:
        for fragment, handler in reversed(self._handlers):
            if fragment in query:
                return handler(query, params)
        return ["?column?"], [(1,)]

    def make_pool(self, *args: Any, **kwargs: Any) -> FakeConnectionPool:
        pool = FakeConnectionPool(self, *args, **kwargs)
        self.pools.append(pool)
        return pool

    def queries(self) -> List[str]:
        return [query for _, query, _ in self.executed]


@pytest.fixture
def registry() -> ResourceRegistry:
    return ResourceRegistry.from_records(SERVER_RECORDS)


@pytest.fixture
def fake_db(monkeypatch) -> FakeDatabase:
    """Route pool creation and the connection probe to an in-memory database."""
    db = FakeDatabase()
    connection_class = FakeConnectionClass(db)
    FakeConnectionPool.instances.clear()
    monkeypatch.setattr(pool_manager, "ConnectionPool", db.make_pool)
    monkeypatch.setattr(pool_manager, "connection_class", lambda server: connection_class)
    return db


@pytest.fixture
def manager(registry: ResourceRegistry, fake_db: FakeDatabase) -> Iterator[PoolManager]:
    pools = PoolManager(registry, pool_min=1, pool_max=2, connect_timeout_s=5, query_timeout_ms=2_000)
    yield pools
    pools.close()


@pytest.fixture
def executor() -> QueryExecutor:
    return QueryExecutor(max_rows=3, max_response_bytes=1024, query_timeout_ms=2_000)


@pytest.fixture(scope="session")
def integration_records() -> List[Dict[str, Any]]:
    """
    Single-server registry pointing at the database used for integration tests.

    Can be overridden via environment variables in CI or local testing.
    """
    return [
        {
            "id": "it",
            "name": "Integration",
            "host": os.getenv("DB_HOST", "localhost"),
            "port": int(os.getenv("DB_PORT", "5432")),
            "username": os.getenv("DB_USER", "postgres"),
            "password": os.getenv("DB_PASSWORD", "postgres"),
            "databases": [{"name": os.getenv("DB_NAME", "postgres")}],
        }
    ]
