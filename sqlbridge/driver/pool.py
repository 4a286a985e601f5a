"""Bounded pool of physical connections."""

import itertools
import logging
import threading
import time
from collections import deque
from typing import TYPE_CHECKING, Final, Optional

from sqlbridge.driver.connection import Connection
from sqlbridge.exceptions import (
    DatabaseConnectionError,
    ImproperConfigurationError,
    PoolDisposedError,
    PoolTimeoutError,
    wrap_native_exceptions,
)
from sqlbridge.utils.logging import POOL_LOGGER_NAME, get_logger, log_with_context

if TYPE_CHECKING:
    from types import TracebackType

    from sqlbridge.config import PoolConfig
    from sqlbridge.protocols import NativeConnection, NativeDriver

__all__ = ("DEFAULT_IDLE_TIMEOUT", "DEFAULT_MAX_CONNECTIONS", "ConnectionPool")

logger = get_logger(POOL_LOGGER_NAME)

DEFAULT_MAX_CONNECTIONS: Final = 10
DEFAULT_IDLE_TIMEOUT: Final = 2.0


class ConnectionPool:
    """Pools physical connections so that applications opening and closing logical
    connections rapidly reuse a small number of expensive native connections.

    Physical connections are created on demand up to ``max_connections``. When the
    pool is at capacity and nothing is idle, :meth:`acquire` blocks until another
    caller releases a connection. Once every created connection is idle, one of them
    is closed per ``idle_timeout`` interval until the pool is empty or a caller
    acquires again.

    Args:
        connection_string: Passed to the native driver for every new connection
        driver: Native driver creating physical connections
        username: Default user for :meth:`acquire`
        password: Default password for :meth:`acquire`
        max_connections: Maximum number of physical connections open at once
        idle_timeout: Seconds a fully idle pool waits before closing a connection
        acquire_timeout: Seconds :meth:`acquire` may block; ``None`` waits forever
    """

    __slots__ = (
        "_acquire_generation",
        "_acquire_timeout",
        "_available",
        "_connection_string",
        "_disposed",
        "_driver",
        "_idle",
        "_idle_timeout",
        "_lock",
        "_max_connections",
        "_password",
        "_pool_id",
        "_sweep_armed",
        "_sweep_generation",
        "_sweep_signal",
        "_sweeper",
        "_total_created",
        "_username",
    )

    _pool_ids = itertools.count(1)

    def __init__(
        self,
        connection_string: str,
        driver: "NativeDriver",
        username: Optional[str] = None,
        password: Optional[str] = None,
        *,
        max_connections: int = DEFAULT_MAX_CONNECTIONS,
        idle_timeout: float = DEFAULT_IDLE_TIMEOUT,
        acquire_timeout: Optional[float] = None,
    ) -> None:
        if max_connections < 0:
            msg = f"max_connections must be >= 0, got {max_connections}"
            raise ImproperConfigurationError(msg)
        if idle_timeout <= 0:
            msg = f"idle_timeout must be > 0 seconds, got {idle_timeout}"
            raise ImproperConfigurationError(msg)
        if acquire_timeout is not None and acquire_timeout < 0:
            msg = f"acquire_timeout must be >= 0 seconds or None, got {acquire_timeout}"
            raise ImproperConfigurationError(msg)

        self._connection_string = connection_string
        self._driver = driver
        self._username = username
        self._password = password
        self._max_connections = max_connections
        self._idle_timeout = idle_timeout
        self._acquire_timeout = acquire_timeout

        self._lock = threading.Lock()
        self._available = threading.Condition(self._lock)
        self._sweep_signal = threading.Condition(self._lock)
        self._idle: deque[NativeConnection] = deque()
        self._total_created = 0
        self._disposed = False
        self._acquire_generation = 0
        self._sweep_generation = 0
        self._sweep_armed = False
        self._sweeper: Optional[threading.Thread] = None

        self._pool_id = f"pool-{next(ConnectionPool._pool_ids)}"

    @classmethod
    def from_config(
        cls,
        connection_string: str,
        driver: "NativeDriver",
        config: "Optional[PoolConfig]" = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
    ) -> "ConnectionPool":
        return cls(connection_string, driver, username, password, **(config or {}))

    def __enter__(self) -> "ConnectionPool":
        return self

    def __exit__(
        self,
        exc_type: "Optional[type[BaseException]]",
        exc_val: "Optional[BaseException]",
        exc_tb: "Optional[TracebackType]",
    ) -> None:
        self.dispose()

    def __repr__(self) -> str:
        return (
            f"ConnectionPool(id={self._pool_id!r}, total_created={self._total_created}, "
            f"idle={len(self._idle)}, max_connections={self._max_connections}, disposed={self._disposed})"
        )

    @property
    def pool_id(self) -> str:
        return self._pool_id

    @property
    def max_connections(self) -> int:
        return self._max_connections

    @property
    def idle_timeout(self) -> float:
        return self._idle_timeout

    @property
    def total_created(self) -> int:
        """Physical connections currently open (idle plus issued)."""
        return self._total_created

    @property
    def idle_count(self) -> int:
        return len(self._idle)

    @property
    def in_use(self) -> int:
        return self._total_created - len(self._idle)

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    def create_connection(self) -> Connection:
        """Create a logical connection that opens from this pool."""
        return Connection(self._connection_string, pool=self)

    def acquire(self, username: Optional[str] = None, password: Optional[str] = None) -> "NativeConnection":
        """Take a physical connection from the pool.

        Reuses an idle connection when one exists, creates one while below
        ``max_connections`` and otherwise waits for a release.

        Raises:
            PoolDisposedError: The pool was disposed, before or while waiting.
            PoolTimeoutError: ``acquire_timeout`` elapsed while waiting.
            DatabaseConnectionError: The native driver failed to connect.

        Returns:
            A physical connection owned by the caller until :meth:`release`
        """
        with self._lock:
            self._check_not_disposed()
            self._acquire_generation += 1
            self._sweep_signal.notify()

            if not self._idle and self._total_created >= self._max_connections:
                log_with_context(
                    logger,
                    logging.DEBUG,
                    "pool.acquire.wait",
                    pool_id=self._pool_id,
                    total_created=self._total_created,
                    max_connections=self._max_connections,
                )
                ready = self._available.wait_for(
                    lambda: self._disposed or bool(self._idle) or self._total_created < self._max_connections,
                    timeout=self._acquire_timeout,
                )
                if self._disposed:
                    msg = "Connection pool was disposed while waiting for a connection"
                    raise PoolDisposedError(msg)
                if not ready:
                    msg = f"Timed out after {self._acquire_timeout}s waiting for a pooled connection"
                    raise PoolTimeoutError(msg)

            if self._idle:
                return self._idle.popleft()

            # reserve the slot so concurrent callers cannot exceed max_connections
            self._total_created += 1

        return self._open_physical(username, password)

    def release(self, connection: "NativeConnection") -> None:
        """Give a physical connection back to the pool.

        After :meth:`dispose`, the connection is closed instead of pooled.
        """
        with self._lock:
            if self._disposed:
                self._total_created -= 1
                self._close_physical(connection, reason="pool_disposed")
                return

            try:
                with wrap_native_exceptions():
                    connection.clear_session_state()
            except Exception as exc:
                log_with_context(
                    logger, logging.WARNING, "pool.connection.reset.error", pool_id=self._pool_id, error=str(exc)
                )
                self._total_created -= 1
                self._close_physical(connection, reason="reset_failed")
                self._available.notify()
                self._arm_sweep()
                return

            self._idle.append(connection)
            self._available.notify()
            self._arm_sweep()

    def dispose(self) -> None:
        """Close the pool and its idle connections. Idempotent.

        Connections currently issued are closed when they are released.
        """
        with self._lock:
            if self._disposed:
                return
            self._disposed = True
            self._available.notify_all()
            self._sweep_signal.notify_all()

            closed = 0
            while self._idle:
                self._close_physical(self._idle.popleft(), reason="pool_disposed")
                self._total_created -= 1
                closed += 1
            sweeper = self._sweeper
            self._username = None
            self._password = None

        log_with_context(
            logger,
            logging.DEBUG,
            "pool.dispose",
            pool_id=self._pool_id,
            closed_connections=closed,
            outstanding_connections=self._total_created,
        )
        if sweeper is not None and sweeper is not threading.current_thread():
            sweeper.join(timeout=1.0)

    close = dispose

    def _check_not_disposed(self) -> None:
        if self._disposed:
            msg = "Cannot acquire a connection from a disposed pool"
            raise PoolDisposedError(msg)

    def _open_physical(self, username: Optional[str], password: Optional[str]) -> "NativeConnection":
        user = self._username if username is None else username
        secret = self._password if password is None else password
        try:
            with wrap_native_exceptions(DatabaseConnectionError):
                connection = self._driver.connect(self._connection_string, user, secret)
        except Exception:
            with self._lock:
                self._total_created -= 1
                self._available.notify()
                self._arm_sweep()
            log_with_context(
                logger,
                logging.WARNING,
                "pool.connection.create.error",
                pool_id=self._pool_id,
                total_created=self._total_created,
                max_connections=self._max_connections,
            )
            raise

        log_with_context(
            logger,
            logging.DEBUG,
            "pool.connection.create",
            pool_id=self._pool_id,
            total_created=self._total_created,
            max_connections=self._max_connections,
        )
        return connection

    def _close_physical(self, connection: "NativeConnection", *, reason: str) -> None:
        try:
            connection.close()
        except Exception as exc:
            log_with_context(
                logger,
                logging.WARNING,
                "pool.connection.close.error",
                pool_id=self._pool_id,
                reason=reason,
                error=str(exc),
            )
        else:
            log_with_context(logger, logging.DEBUG, "pool.connection.close", pool_id=self._pool_id, reason=reason)

    def _arm_sweep(self) -> None:
        """Schedule an idle sweep if every created connection is idle. Lock must be held."""
        if self._sweep_armed or self._disposed:
            return
        if self._total_created > 0 and len(self._idle) == self._total_created:
            self._sweep_armed = True
            self._sweep_generation = self._acquire_generation
            if self._sweeper is None:
                self._sweeper = threading.Thread(
                    target=self._sweep_loop, name=f"sqlbridge-{self._pool_id}-sweeper", daemon=True
                )
                self._sweeper.start()
            self._sweep_signal.notify()

    def _sweep_loop(self) -> None:
        with self._lock:
            while not self._disposed:
                if not self._sweep_armed:
                    self._sweep_signal.wait()
                    continue

                generation = self._sweep_generation
                deadline = time.monotonic() + self._idle_timeout
                interrupted = False
                while not self._disposed:
                    if self._acquire_generation != generation:
                        interrupted = True
                        break
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        break
                    self._sweep_signal.wait(remaining)

                self._sweep_armed = False
                if self._disposed:
                    break
                if interrupted or not self._idle:
                    # a release may have happened while this sweep was still armed
                    self._arm_sweep()
                    continue

                connection = self._idle.popleft()
                self._total_created -= 1
                self._close_physical(connection, reason="idle_timeout")
                log_with_context(
                    logger,
                    logging.DEBUG,
                    "pool.sweep.evict",
                    pool_id=self._pool_id,
                    total_created=self._total_created,
                    idle=len(self._idle),
                )
                self._available.notify()
                self._arm_sweep()
