"""sqlbridge: a portable data-access layer over statement-oriented database drivers."""

from sqlbridge import adapters, core, driver, exceptions, utils
from sqlbridge.__metadata__ import __version__
from sqlbridge.config import DatabaseConfig, PoolConfig, TemplateCacheConfig
from sqlbridge.core.cache import CacheStats, TemplateCache, configure_template_cache, get_template_cache
from sqlbridge.core.types import DBNull, IsolationLevel, NativeType, PortableType
from sqlbridge.driver import (
    Command,
    CommandState,
    Connection,
    ConnectionPool,
    ConnectionState,
    DataReader,
    Parameter,
    ParameterCollection,
    Transaction,
)
from sqlbridge.exceptions import (
    CompileError,
    DatabaseConnectionError,
    DriverError,
    ImproperConfigurationError,
    InvalidStateError,
    MissingParameterError,
    ParameterError,
    PoolDisposedError,
    PoolTimeoutError,
    SQLBridgeError,
    UnsupportedTypeError,
)

__all__ = (
    "CacheStats",
    "Command",
    "CommandState",
    "CompileError",
    "Connection",
    "ConnectionPool",
    "ConnectionState",
    "DBNull",
    "DataReader",
    "DatabaseConfig",
    "DatabaseConnectionError",
    "DriverError",
    "ImproperConfigurationError",
    "InvalidStateError",
    "IsolationLevel",
    "MissingParameterError",
    "NativeType",
    "Parameter",
    "ParameterCollection",
    "ParameterError",
    "PoolConfig",
    "PoolDisposedError",
    "PoolTimeoutError",
    "PortableType",
    "SQLBridgeError",
    "TemplateCache",
    "TemplateCacheConfig",
    "Transaction",
    "UnsupportedTypeError",
    "__version__",
    "adapters",
    "configure_template_cache",
    "core",
    "driver",
    "exceptions",
    "get_template_cache",
    "utils",
)
