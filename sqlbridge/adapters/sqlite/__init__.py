"""SQLite native driver for sqlbridge."""

from sqlbridge.adapters.sqlite.driver import (
    SqliteConnectionParams,
    SqliteNativeConnection,
    SqliteNativeDriver,
    SqliteNativeStatement,
    SqliteRowCursor,
)

__all__ = (
    "SqliteConnectionParams",
    "SqliteNativeConnection",
    "SqliteNativeDriver",
    "SqliteNativeStatement",
    "SqliteRowCursor",
)
