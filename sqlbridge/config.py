"""Configuration objects for pools, the template cache and databases."""

import threading
from collections.abc import Generator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Optional, TypedDict

from typing_extensions import NotRequired

from sqlbridge.driver.connection import Connection
from sqlbridge.driver.pool import ConnectionPool
from sqlbridge.exceptions import ImproperConfigurationError
from sqlbridge.utils.logging import get_logger

if TYPE_CHECKING:
    from sqlbridge.protocols import NativeDriver

__all__ = ("DatabaseConfig", "PoolConfig", "TemplateCacheConfig")

logger = get_logger("config")


class PoolConfig(TypedDict, total=False):
    """Keyword arguments accepted by :class:`~sqlbridge.driver.pool.ConnectionPool`."""

    max_connections: NotRequired[int]
    """Maximum number of physical connections open at once."""
    idle_timeout: NotRequired[float]
    """Seconds a fully idle pool waits before closing one connection."""
    acquire_timeout: "NotRequired[Optional[float]]"
    """Seconds an acquire may block; None waits forever."""


class TemplateCacheConfig:
    """Process-wide template cache configuration."""

    __slots__ = ("max_size",)

    def __init__(self, *, max_size: Optional[int] = None) -> None:
        """Initialize template cache configuration.

        Args:
            max_size: Maximum cached templates (least recently used evicted first);
                None keeps every template
        """
        self.max_size = max_size

    def __repr__(self) -> str:
        return f"TemplateCacheConfig(max_size={self.max_size!r})"


class DatabaseConfig:
    """Everything needed to hand out pooled connections to one database."""

    __slots__ = ("_pool_lock", "connection_string", "driver", "password", "pool_config", "pool_instance", "username")

    def __init__(
        self,
        connection_string: str,
        driver: "NativeDriver",
        *,
        username: Optional[str] = None,
        password: Optional[str] = None,
        pool_config: "Optional[PoolConfig]" = None,
        pool_instance: "Optional[ConnectionPool]" = None,
    ) -> None:
        if not connection_string:
            msg = "A connection string is required"
            raise ImproperConfigurationError(msg)
        self.connection_string = connection_string
        self.driver = driver
        self.username = username
        self.password = password
        self.pool_config: PoolConfig = pool_config or {}
        self.pool_instance = pool_instance
        self._pool_lock = threading.Lock()

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(connection_string={self.connection_string!r}, "
            f"pool_config={self.pool_config!r}, pool_instance={self.pool_instance!r})"
        )

    def create_pool(self) -> ConnectionPool:
        """Create the pool, or return the one already created.

        Safe to call from several threads at once; exactly one pool is created.
        """
        with self._pool_lock:
            pool = self.pool_instance
            if pool is None or pool.is_disposed:
                pool = ConnectionPool.from_config(
                    self.connection_string, self.driver, self.pool_config, self.username, self.password
                )
                self.pool_instance = pool
                logger.debug("Created connection pool %s for %s", pool.pool_id, self.connection_string)
            return pool

    def provide_pool(self, *args: Any, **kwargs: Any) -> ConnectionPool:
        """Provide pool instance."""
        return self.create_pool()

    def close_pool(self) -> None:
        with self._pool_lock:
            pool, self.pool_instance = self.pool_instance, None
        if pool is not None:
            pool.dispose()

    def create_connection(self) -> Connection:
        """Create an unopened logical connection backed by the pool."""
        return self.create_pool().create_connection()

    @contextmanager
    def provide_connection(self, *args: Any, **kwargs: Any) -> Generator[Connection, None, None]:
        """Open a pooled connection for the duration of the block."""
        connection = self.create_connection()
        connection.open()
        try:
            yield connection
        finally:
            connection.close()
