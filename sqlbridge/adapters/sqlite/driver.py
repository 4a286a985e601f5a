"""Native driver over the standard library ``sqlite3`` module.

Connections are opened in autocommit mode and transactions are driven with
explicit ``BEGIN`` / ``COMMIT`` / ``ROLLBACK`` so that the isolation and
transaction calls of :class:`~sqlbridge.protocols.NativeConnection` map one to one.
"""

import datetime
import logging
import sqlite3
import time
from collections.abc import Callable, Generator
from contextlib import contextmanager
from decimal import Decimal
from typing import Any, Final, Optional, TypedDict
from uuid import UUID

from typing_extensions import NotRequired

from sqlbridge.core.types import IsolationLevel, NativeType, to_native_isolation
from sqlbridge.exceptions import CompileError, DatabaseConnectionError, DriverError
from sqlbridge.utils.logging import get_logger, log_with_context

__all__ = (
    "SqliteConnectionParams",
    "SqliteNativeConnection",
    "SqliteNativeDriver",
    "SqliteNativeStatement",
    "SqliteRowCursor",
    "sqlite_type_coercion_map",
)

logger = get_logger("adapters.sqlite")

sqlite_type_coercion_map: Final[dict[type, Callable[[Any], Any]]] = {
    bool: int,
    datetime.datetime: lambda v: v.isoformat(),
    datetime.date: lambda v: v.isoformat(),
    datetime.time: lambda v: v.isoformat(),
    Decimal: str,
    UUID: str,
}

_DEFAULT_ISOLATION: Final = to_native_isolation(IsolationLevel.SERIALIZABLE)
_READ_UNCOMMITTED: Final = to_native_isolation(IsolationLevel.READ_UNCOMMITTED)


class SqliteConnectionParams(TypedDict, total=False):
    """Extra keyword arguments passed to :func:`sqlite3.connect`."""

    timeout: NotRequired[float]
    detect_types: NotRequired[int]
    cached_statements: NotRequired[int]
    uri: NotRequired[bool]


@contextmanager
def _handle_sqlite_exceptions(sql: Optional[str] = None) -> Generator[None, None, None]:
    try:
        yield
    except sqlite3.Error as exc:
        text = str(exc).lower()
        if "syntax error" in text or "incomplete input" in text:
            raise CompileError.from_native(exc, sql) from exc
        raise DriverError.from_native(exc, sql) from exc


def _coerce(value: Any) -> Any:
    converter = sqlite_type_coercion_map.get(type(value))
    if converter is not None:
        return converter(value)
    return value


def _native_type_of(value: Any) -> NativeType:
    if value is None:
        return NativeType.JAVA_OBJECT
    if isinstance(value, int):
        return NativeType.BIGINT
    if isinstance(value, float):
        return NativeType.DOUBLE
    if isinstance(value, str):
        return NativeType.VARCHAR
    if isinstance(value, (bytes, bytearray, memoryview)):
        return NativeType.LONGVARBINARY
    return NativeType.JAVA_OBJECT


class SqliteRowCursor:
    """Row-at-a-time cursor over a :class:`sqlite3.Cursor`.

    SQLite columns are dynamically typed, so the native type of a column is
    taken from the value in the current row.
    """

    __slots__ = ("_cursor", "_row")

    def __init__(self, cursor: sqlite3.Cursor) -> None:
        self._cursor = cursor
        self._row: Optional[tuple[Any, ...]] = None

    @property
    def column_count(self) -> int:
        return len(self._cursor.description or ())

    def next(self) -> bool:
        with _handle_sqlite_exceptions():
            self._row = self._cursor.fetchone()
        return self._row is not None

    def get_object(self, ordinal: int) -> Any:
        if self._row is None:
            msg = "The cursor is not positioned on a row"
            raise sqlite3.ProgrammingError(msg)
        return self._row[ordinal - 1]

    def column_name(self, ordinal: int) -> str:
        return str(self._cursor.description[ordinal - 1][0])

    def column_type(self, ordinal: int) -> int:
        if self._row is None:
            return int(NativeType.JAVA_OBJECT)
        return int(_native_type_of(self._row[ordinal - 1]))

    def close(self) -> None:
        self._row = None
        self._cursor.close()


class SqliteNativeStatement:
    """A statement text with positionally bound values.

    ``sqlite3`` compiles statements internally and keeps them in its own
    statement cache, so preparing only records the text.
    """

    __slots__ = ("_closed", "_connection", "_timeout", "_values", "sql")

    def __init__(self, connection: "SqliteNativeConnection", sql: str) -> None:
        self._connection = connection
        self.sql = sql
        self._values: dict[int, Any] = {}
        self._timeout: Optional[float] = None
        self._closed = False

    def bind(self, ordinal: int, value: Any, native_type: Optional[int] = None) -> None:
        self._check_open()
        self._values[ordinal] = _coerce(value)

    def clear_parameters(self) -> None:
        self._check_open()
        self._values.clear()

    def set_query_timeout(self, seconds: float) -> None:
        self._timeout = seconds if seconds > 0 else None

    def execute_query(self) -> SqliteRowCursor:
        with self._executing() as raw:
            cursor = raw.execute(self.sql, self._parameters())
        return SqliteRowCursor(cursor)

    def execute_update(self) -> int:
        with self._executing() as raw:
            cursor = raw.execute(self.sql, self._parameters())
        try:
            return max(cursor.rowcount, 0)
        finally:
            cursor.close()

    def cancel(self) -> None:
        self._connection.interrupt()

    def close(self) -> None:
        self._closed = True
        self._values.clear()

    def _check_open(self) -> None:
        if self._closed:
            msg = "Cannot operate on a closed statement"
            raise sqlite3.ProgrammingError(msg)

    def _parameters(self) -> tuple[Any, ...]:
        if not self._values:
            return ()
        missing = [ordinal for ordinal in range(1, max(self._values) + 1) if ordinal not in self._values]
        if missing:
            msg = f"No value bound for parameter ordinal(s) {missing}"
            raise sqlite3.ProgrammingError(msg)
        return tuple(self._values[ordinal] for ordinal in range(1, len(self._values) + 1))

    @contextmanager
    def _executing(self) -> Generator[sqlite3.Connection, None, None]:
        self._check_open()
        raw = self._connection.raw
        timeout = self._timeout
        if timeout is not None:
            deadline = time.monotonic() + timeout
            raw.set_progress_handler(lambda: int(time.monotonic() > deadline), 1000)
        try:
            with _handle_sqlite_exceptions(self.sql):
                yield raw
        finally:
            if timeout is not None:
                raw.set_progress_handler(None, 0)


class SqliteNativeConnection:
    """Physical sqlite connection usable from any thread, one at a time."""

    __slots__ = ("_isolation", "raw")

    def __init__(self, raw: sqlite3.Connection) -> None:
        self.raw = raw
        self._isolation = _DEFAULT_ISOLATION

    def prepare_statement(self, sql: str) -> SqliteNativeStatement:
        if not sql.strip():
            msg = "Cannot prepare an empty statement"
            raise CompileError(msg, sql=sql)
        return SqliteNativeStatement(self, sql)

    def clear_session_state(self) -> None:
        with _handle_sqlite_exceptions():
            if self.raw.in_transaction:
                self.raw.rollback()
            if self._isolation != _DEFAULT_ISOLATION:
                self.set_transaction_isolation(_DEFAULT_ISOLATION)

    def get_transaction_isolation(self) -> int:
        return self._isolation

    def set_transaction_isolation(self, level: int) -> None:
        with _handle_sqlite_exceptions():
            self.raw.execute(f"PRAGMA read_uncommitted = {int(level == _READ_UNCOMMITTED)}")
        self._isolation = level

    def begin(self) -> None:
        with _handle_sqlite_exceptions("BEGIN"):
            self.raw.execute("BEGIN")

    def commit(self) -> None:
        with _handle_sqlite_exceptions("COMMIT"):
            self.raw.commit()

    def rollback(self) -> None:
        with _handle_sqlite_exceptions("ROLLBACK"):
            self.raw.rollback()

    def interrupt(self) -> None:
        self.raw.interrupt()

    def close(self) -> None:
        self.raw.close()


class SqliteNativeDriver:
    """Opens :class:`SqliteNativeConnection` objects.

    The connection string is a database path, ``:memory:`` or a ``file:`` URI.
    SQLite has no authentication, so user names and passwords are ignored.

    Args:
        **connection_params: Extra :func:`sqlite3.connect` arguments
    """

    __slots__ = ("connection_params",)

    def __init__(self, **connection_params: Any) -> None:
        self.connection_params: SqliteConnectionParams = connection_params  # type: ignore[assignment]

    def connect(
        self, connection_string: str, username: Optional[str] = None, password: Optional[str] = None
    ) -> SqliteNativeConnection:
        params: dict[str, Any] = dict(self.connection_params)
        if connection_string.startswith("file:") and not params.get("uri"):
            params["uri"] = True
        try:
            raw = sqlite3.connect(connection_string, isolation_level=None, check_same_thread=False, **params)
        except sqlite3.Error as exc:
            raise DatabaseConnectionError.from_native(exc) from exc
        log_with_context(logger, logging.DEBUG, "sqlite.connect", database=connection_string, uri=params.get("uri"))
        return SqliteNativeConnection(raw)
