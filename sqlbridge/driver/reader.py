"""Forward-only data reader over a native row cursor."""

from collections.abc import Iterator
from typing import TYPE_CHECKING, Any, Optional, Union

from sqlbridge.core.types import DBNull, converter_to_portable, python_type
from sqlbridge.exceptions import InvalidStateError, wrap_native_exceptions

if TYPE_CHECKING:
    from types import TracebackType

    from sqlbridge.driver.connection import Connection
    from sqlbridge.protocols import RowCursor

__all__ = ("DataReader",)


class DataReader:
    """Reads the rows of a query one at a time.

    Column ordinals are 0-based here; the native cursor is 1-based. Values are
    converted to portable Python values and SQL NULL is returned as ``DBNull``.
    """

    __slots__ = ("_closed", "_column_names", "_connection", "_cursor", "_has_row", "_sql")

    def __init__(
        self, cursor: "RowCursor", connection: "Optional[Connection]" = None, sql: Optional[str] = None
    ) -> None:
        self._cursor = cursor
        self._connection = connection
        self._sql = sql
        self._has_row = False
        self._closed = False
        self._column_names: Optional[tuple[str, ...]] = None

    def __enter__(self) -> "DataReader":
        return self

    def __exit__(
        self,
        exc_type: "Optional[type[BaseException]]",
        exc_val: "Optional[BaseException]",
        exc_tb: "Optional[TracebackType]",
    ) -> None:
        self.close()

    def __iter__(self) -> Iterator[tuple[Any, ...]]:
        while self.read():
            yield self.get_values()

    def __getitem__(self, key: Union[int, str]) -> Any:
        if isinstance(key, str):
            key = self.get_ordinal(key)
        return self.get_value(key)

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def connection(self) -> "Optional[Connection]":
        return self._connection

    @property
    def field_count(self) -> int:
        self._check_open()
        with wrap_native_exceptions(sql=self._sql):
            return self._cursor.column_count

    def read(self) -> bool:
        """Advance to the next row.

        Returns:
            False once every row has been read
        """
        self._check_open()
        with wrap_native_exceptions(sql=self._sql):
            self._has_row = bool(self._cursor.next())
        return self._has_row

    def get_name(self, ordinal: int) -> str:
        return self._names()[ordinal]

    def get_ordinal(self, name: str) -> int:
        """Ordinal of the column called ``name``; exact match first, then case-insensitive."""
        names = self._names()
        if name in names:
            return names.index(name)
        lowered = name.lower()
        for ordinal, column in enumerate(names):
            if column.lower() == lowered:
                return ordinal
        msg = f"No column named {name!r}"
        raise IndexError(msg)

    def get_field_type(self, ordinal: int) -> type:
        self._check_open()
        with wrap_native_exceptions(sql=self._sql):
            native_type = self._cursor.column_type(ordinal + 1)
        return python_type(native_type)

    def get_value(self, ordinal: int) -> Any:
        self._check_row()
        with wrap_native_exceptions(sql=self._sql):
            value = self._cursor.get_object(ordinal + 1)
            if value is None:
                return DBNull
            native_type = self._cursor.column_type(ordinal + 1)
            return converter_to_portable(native_type)(value)

    def get_values(self) -> tuple[Any, ...]:
        return tuple(self.get_value(ordinal) for ordinal in range(self.field_count))

    def is_db_null(self, ordinal: int) -> bool:
        self._check_row()
        with wrap_native_exceptions(sql=self._sql):
            return self._cursor.get_object(ordinal + 1) is None

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._has_row = False
        with wrap_native_exceptions(sql=self._sql):
            self._cursor.close()

    def _names(self) -> tuple[str, ...]:
        if self._column_names is None:
            self._check_open()
            with wrap_native_exceptions(sql=self._sql):
                self._column_names = tuple(
                    self._cursor.column_name(ordinal) for ordinal in range(1, self._cursor.column_count + 1)
                )
        return self._column_names

    def _check_open(self) -> None:
        if self._closed:
            msg = "The data reader is closed"
            raise InvalidStateError(msg)

    def _check_row(self) -> None:
        self._check_open()
        if not self._has_row:
            msg = "No current row; call read() first"
            raise InvalidStateError(msg)
