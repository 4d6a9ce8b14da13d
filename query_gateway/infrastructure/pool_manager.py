"""
Connection pool management for the query gateway.

One psycopg `ConnectionPool` is kept per `(server_id, database)` key. Pools
are created lazily on first use, reused while connected and healthy, and
evicted (then recreated on the next access) once marked unhealthy. Creation
for a given key is serialized by a per-key lock so concurrent first requests
open exactly one pool.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Dict, Generator, List, Optional

import psycopg
from psycopg.conninfo import make_conninfo
from psycopg_pool import ConnectionPool

from query_gateway.config import Settings
from query_gateway.domain.errors import GatewayConnectionError
from query_gateway.domain.models import PoolKey, ServerResource, utcnow
from query_gateway.infrastructure.auth import connection_class, connection_kwargs
from query_gateway.registry import ResourceRegistry
from query_gateway.utils.logging import get_logger
from query_gateway.utils.sanitizer import sanitize

log = get_logger(__name__)


def reset_session(conn: psycopg.Connection) -> None:
    """
    Check-in hook: drop any run-time setting a request changed, so the next
    request starts from the startup options (read-only, statement timeout).
    """
    conn.execute("RESET ALL")
    conn.commit()


class _KeyLock:
    """Creation lock for one pool key, counted so idle entries can be dropped."""

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.waiters = 0


class PooledConnection:
    """
    A psycopg pool for one pool key, plus the health state the manager uses
    to decide whether to reuse it.

    Callers get it from `PoolManager.acquire` per request and must not keep
    it across requests.
    """

    def __init__(self, key: PoolKey, pool: ConnectionPool) -> None:
        self.key = key
        self.pool = pool
        self.created_at = utcnow()
        self.unhealthy_reason: Optional[str] = None
        self._healthy = True

    @property
    def connected(self) -> bool:
        return not self.pool.closed

    @property
    def healthy(self) -> bool:
        return self._healthy

    def mark_unhealthy(self, reason: str) -> None:
        """Flag the pool for eviction on the next acquire."""
        self._healthy = False
        self.unhealthy_reason = sanitize(reason)
        log.warning(
            f"Pool {self.key} marked unhealthy",
            extra={"pool_key": str(self.key), "reason": self.unhealthy_reason},
        )

    @contextmanager
    def connection(self, timeout: Optional[float] = None) -> Generator[psycopg.Connection, None, None]:
        """
        Check a connection out of the inner pool for the duration of the block.

        A connection closed inside the block is discarded by the pool instead
        of being returned to it.
        """
        with self.pool.connection(timeout=timeout) as conn:
            yield conn

    def close(self) -> None:
        self.pool.close()


class PoolManager:
    """
    Thread-safe owner of every `PooledConnection`.

    Parameters
    ----------
    registry : ResourceRegistry
        Resolves servers and databases; its errors propagate unchanged.
    pool_min, pool_max : int
        Bounds of each inner pool.
    connect_timeout_s : int
        libpq connect timeout, also used for opening a pool and checking out
        a connection.
    query_timeout_ms : int
        Server-side `statement_timeout` applied to every session.
    idle_timeout_s : float
        Idle connections above `pool_min` are closed after this long.
    ssl_mode : str
        libpq `sslmode`; always an encrypting mode.
    read_only : bool
        Open sessions with `default_transaction_read_only=on`.
    """

    def __init__(
        self,
        registry: ResourceRegistry,
        pool_min: int = 1,
        pool_max: int = 10,
        connect_timeout_s: int = 15,
        query_timeout_ms: int = 30_000,
        idle_timeout_s: float = 30.0,
        ssl_mode: str = "require",
        read_only: bool = True,
        application_name: str = "query-gateway",
    ) -> None:
        self.registry = registry
        self.pool_min = pool_min
        self.pool_max = pool_max
        self.connect_timeout_s = connect_timeout_s
        self.query_timeout_ms = query_timeout_ms
        self.idle_timeout_s = idle_timeout_s
        self.ssl_mode = ssl_mode
        self.read_only = read_only
        self.application_name = application_name

        self._pools: Dict[PoolKey, PooledConnection] = {}
        self._key_locks: Dict[PoolKey, _KeyLock] = {}
        self._lock = threading.Lock()
        self._closed = False

    @classmethod
    def from_settings(cls, registry: ResourceRegistry, settings: Settings) -> "PoolManager":
        return cls(
            registry,
            pool_min=settings.pool_min,
            pool_max=settings.pool_max,
            connect_timeout_s=settings.connect_timeout_seconds,
            query_timeout_ms=settings.query_timeout_ms,
            idle_timeout_s=settings.pool_idle_timeout_s,
            ssl_mode=settings.ssl_mode,
            read_only=settings.read_only_sessions,
        )

    @property
    def closed(self) -> bool:
        return self._closed

    def pool_keys(self) -> List[str]:
        with self._lock:
            return [str(key) for key in self._pools]

    @contextmanager
    def _key_lock(self, key: PoolKey) -> Generator[None, None, None]:
        """
        Serialize pool creation for `key`. The entry lives only while some
        caller holds or waits on it, so failed or one-off keys leave nothing
        behind.
        """
        with self._lock:
            entry = self._key_locks.get(key)
            if entry is None:
                entry = self._key_locks[key] = _KeyLock()
            entry.waiters += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._lock:
                entry.waiters -= 1
                if entry.waiters == 0 and self._key_locks.get(key) is entry:
                    del self._key_locks[key]

    def pending_keys(self) -> int:
        """Number of keys with a creation lock currently held or awaited."""
        with self._lock:
            return len(self._key_locks)

    def acquire(self, server_id: str, database: str) -> PooledConnection:
        """
        Return a connected, healthy pool for `(server_id, database)`.

        Raises
        ------
        NotFoundError, InactiveError
            From the registry, unchanged.
        GatewayConnectionError
            If the pool cannot be opened or the manager is shut down.
        """
        key = PoolKey(server_id=server_id, database=database)
        with self._key_lock(key):
            with self._lock:
                if self._closed:
                    raise GatewayConnectionError("Gateway is shut down; no new connections are accepted.")
                existing = self._pools.get(key)

            if existing is not None:
                if existing.connected and existing.healthy:
                    return existing
                self._evict(key, existing)

            pooled = self._create(key)
            with self._lock:
                shut_down = self._closed
                if not shut_down:
                    self._pools[key] = pooled
            if shut_down:
                self._close_quietly(pooled)
                raise GatewayConnectionError("Gateway is shut down; no new connections are accepted.")
            return pooled

    def _evict(self, key: PoolKey, pooled: PooledConnection) -> None:
        with self._lock:
            if self._pools.get(key) is pooled:
                del self._pools[key]
        log.info(
            f"Evicting pool {key}",
            extra={"pool_key": str(key), "reason": pooled.unhealthy_reason or "disconnected"},
        )
        self._close_quietly(pooled)

    def _close_quietly(self, pooled: PooledConnection) -> None:
        try:
            pooled.close()
        except Exception as exc:  # noqa: BLE001 - cleanup must never raise
            log.error(
                f"Error closing pool {pooled.key}",
                extra={"pool_key": str(pooled.key), "error": sanitize(str(exc))},
            )

    def _session_options(self) -> str:
        options = [f"-c statement_timeout={self.query_timeout_ms}"]
        if self.read_only:
            options.append("-c default_transaction_read_only=on")
        return " ".join(options)

    def conninfo(self, server: ServerResource, database: str) -> str:
        """Connection string without credentials; those travel as pool kwargs."""
        return make_conninfo(
            host=server.host,
            port=server.port,
            dbname=database,
            sslmode=self.ssl_mode,
            connect_timeout=self.connect_timeout_s,
            application_name=self.application_name,
            options=self._session_options(),
        )

    def _create(self, key: PoolKey) -> PooledConnection:
        server = self.registry.resolve_server(key.server_id)
        self.registry.resolve_database(server, key.database)

        pool: Optional[ConnectionPool] = None
        try:
            conninfo = self.conninfo(server, key.database)
            kwargs = connection_kwargs(server)
            conn_class = connection_class(server)
            # psycopg_pool reports only a timeout when connections fail; probe
            # once so the server error (e.g. unknown database) is kept.
            with conn_class.connect(conninfo, **kwargs):
                pass
            pool = ConnectionPool(
                conninfo=conninfo,
                kwargs=kwargs,
                connection_class=conn_class,
                min_size=self.pool_min,
                max_size=self.pool_max,
                timeout=self.connect_timeout_s,
                max_idle=self.idle_timeout_s,
                reset=reset_session,
                name=str(key),
                open=False,
            )
            pool.open(wait=True, timeout=self.connect_timeout_s)
        except Exception as exc:  # noqa: BLE001 - every creation failure becomes a connection error
            message = sanitize(str(exc))
            log.error(
                f"Failed to open pool {key}",
                extra={"pool_key": str(key), "host": server.host, "error": message},
            )
            if pool is not None:
                try:
                    pool.close()
                except Exception:  # noqa: BLE001
                    log.debug(f"Ignoring close failure for half-open pool {key}")
            raise GatewayConnectionError(
                f"Database connection failed for '{key.server_id}/{key.database}': {message}"
            ) from None

        log.info(
            f"Connection pool established: {key}",
            extra={"pool_key": str(key), "min_size": self.pool_min, "max_size": self.pool_max},
        )
        return PooledConnection(key, pool)

    def close(self) -> List[str]:
        """
        Stop accepting new acquisitions and close every pool.

        Each pool is closed independently; failures are collected, logged and
        returned rather than raised. Idempotent.
        """
        with self._lock:
            self._closed = True
            pools = list(self._pools.items())
            self._pools.clear()
            self._key_locks.clear()

        closed: List[str] = []
        errors: List[str] = []
        for key, pooled in pools:
            try:
                pooled.close()
                closed.append(str(key))
            except Exception as exc:  # noqa: BLE001 - keep closing the remaining pools
                errors.append(f"{key}: {sanitize(str(exc))}")

        if closed:
            log.info(f"Connection pools closed: {', '.join(closed)}", extra={"pools": closed})
        if errors:
            log.error(f"Errors closing pools: {'; '.join(errors)}", extra={"errors": errors})
        return errors


__all__ = ["PoolManager", "PooledConnection", "reset_session"]
