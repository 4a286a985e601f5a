"""Logical connections and transactions.

A :class:`Connection` is the application-facing handle. It is either bound to a
:class:`~sqlbridge.driver.pool.ConnectionPool`, in which case opening and closing
borrow and return a physical connection, or to a native driver directly.
"""

import logging
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlbridge.core.types import IsolationLevel, to_native_isolation, to_portable_isolation
from sqlbridge.exceptions import DatabaseConnectionError, InvalidStateError, wrap_native_exceptions
from sqlbridge.utils.logging import get_logger, log_with_context

if TYPE_CHECKING:
    from types import TracebackType

    from sqlbridge.driver.command import Command
    from sqlbridge.driver.pool import ConnectionPool
    from sqlbridge.protocols import NativeConnection, NativeDriver

__all__ = ("Connection", "ConnectionState", "Transaction")

logger = get_logger("driver.connection")


class ConnectionState(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class Transaction:
    """An explicit transaction on an open connection.

    Used as a context manager the transaction commits when the block exits
    normally and rolls back when it raises.
    """

    __slots__ = ("_connection", "_isolation_level")

    def __init__(self, connection: "Connection", isolation_level: IsolationLevel) -> None:
        self._connection: Optional[Connection] = connection
        self._isolation_level = isolation_level

    def __enter__(self) -> "Transaction":
        return self

    def __exit__(
        self,
        exc_type: "Optional[type[BaseException]]",
        exc_val: "Optional[BaseException]",
        exc_tb: "Optional[TracebackType]",
    ) -> None:
        if self._connection is None:
            return
        if exc_type is None:
            self.commit()
        else:
            self.rollback()

    def __repr__(self) -> str:
        return f"Transaction(isolation_level={self._isolation_level.value}, active={self.is_active})"

    @property
    def connection(self) -> "Optional[Connection]":
        """Owning connection; None once the transaction has finished."""
        return self._connection

    @property
    def isolation_level(self) -> IsolationLevel:
        return self._isolation_level

    @property
    def is_active(self) -> bool:
        return self._connection is not None

    def commit(self) -> None:
        native = self._finish()
        with wrap_native_exceptions():
            native.commit()

    def rollback(self) -> None:
        native = self._finish()
        with wrap_native_exceptions():
            native.rollback()

    def _finish(self) -> "NativeConnection":
        connection = self._connection
        if connection is None:
            msg = "The transaction has already been committed or rolled back"
            raise InvalidStateError(msg)
        native = connection.native_connection
        self._connection = None
        connection._transaction = None  # noqa: SLF001
        return native


class Connection:
    """Application-facing database connection.

    Args:
        connection_string: Passed to the native driver when opening
        username: User for :meth:`open` when none is given there
        password: Password for :meth:`open` when none is given there
        driver: Native driver used when the connection is not pooled
        pool: Pool to borrow physical connections from
    """

    __slots__ = ("_connection_string", "_driver", "_native", "_password", "_pool", "_transaction", "_username")

    def __init__(
        self,
        connection_string: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        *,
        driver: "Optional[NativeDriver]" = None,
        pool: "Optional[ConnectionPool]" = None,
    ) -> None:
        self._connection_string = connection_string
        self._username = username
        self._password = password
        self._driver = driver
        self._pool = pool
        self._native: Optional[NativeConnection] = None
        self._transaction: Optional[Transaction] = None

    def __enter__(self) -> "Connection":
        if not self.is_open:
            self.open()
        return self

    def __exit__(
        self,
        exc_type: "Optional[type[BaseException]]",
        exc_val: "Optional[BaseException]",
        exc_tb: "Optional[TracebackType]",
    ) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"Connection(connection_string={self._connection_string!r}, state={self.state.value})"

    @property
    def connection_string(self) -> Optional[str]:
        return self._connection_string

    @connection_string.setter
    def connection_string(self, value: Optional[str]) -> None:
        self._check_closed("connection_string")
        self._connection_string = value

    @property
    def username(self) -> Optional[str]:
        return self._username

    @username.setter
    def username(self, value: Optional[str]) -> None:
        self._check_closed("username")
        self._username = value

    @property
    def password(self) -> Optional[str]:
        return self._password

    @password.setter
    def password(self, value: Optional[str]) -> None:
        self._check_closed("password")
        self._password = value

    @property
    def pool(self) -> "Optional[ConnectionPool]":
        return self._pool

    @property
    def is_open(self) -> bool:
        return self._native is not None

    @property
    def state(self) -> ConnectionState:
        return ConnectionState.OPEN if self._native is not None else ConnectionState.CLOSED

    @property
    def transaction(self) -> Optional[Transaction]:
        """The active transaction, if one was begun and not yet finished."""
        return self._transaction

    @property
    def native_connection(self) -> "NativeConnection":
        """The physical connection backing this connection.

        Raises:
            InvalidStateError: The connection is not open.
        """
        if self._native is None:
            msg = "The connection must be opened first"
            raise InvalidStateError(msg)
        return self._native

    def open(self, username: Optional[str] = None, password: Optional[str] = None) -> None:
        """Open the connection, borrowing from the pool when there is one.

        Raises:
            InvalidStateError: Already open, or neither a pool nor a driver is set.
            DatabaseConnectionError: The native driver could not connect.
        """
        if self._native is not None:
            msg = "The connection is already open"
            raise InvalidStateError(msg)
        user = self._username if username is None else username
        secret = self._password if password is None else password

        if self._pool is not None:
            self._native = self._pool.acquire(user, secret)
            return
        if self._driver is None:
            msg = "Cannot open a connection without a pool or a native driver"
            raise InvalidStateError(msg)
        if self._connection_string is None:
            msg = "Cannot open a connection without a connection string"
            raise InvalidStateError(msg)
        with wrap_native_exceptions(DatabaseConnectionError):
            self._native = self._driver.connect(self._connection_string, user, secret)
        log_with_context(logger, logging.DEBUG, "connection.open", pooled=False)

    def close(self) -> None:
        """Close the connection. Idempotent.

        An unfinished transaction is rolled back. Pooled physical connections go
        back to the pool; others are closed.
        """
        native = self._native
        if native is None:
            return
        try:
            if self._transaction is not None:
                self._transaction.rollback()
        finally:
            self._native = None
            self._transaction = None
            if self._pool is not None:
                self._pool.release(native)
            else:
                with wrap_native_exceptions():
                    native.close()

    def create_command(self, sql: Optional[str] = None) -> "Command":
        from sqlbridge.driver.command import Command

        return Command(sql, self)

    def begin_transaction(self, isolation_level: IsolationLevel = IsolationLevel.READ_COMMITTED) -> Transaction:
        """Start a transaction.

        ``IsolationLevel.UNSPECIFIED`` is treated as ``READ_COMMITTED``.

        Raises:
            InvalidStateError: Not open, or a transaction is already active.
            UnsupportedTypeError: The isolation level has no native equivalent.
        """
        native = self.native_connection
        if isolation_level is IsolationLevel.UNSPECIFIED:
            isolation_level = IsolationLevel.READ_COMMITTED
        if self._transaction is not None:
            msg = "A transaction is already active on this connection"
            raise InvalidStateError(msg)
        code = to_native_isolation(isolation_level)
        with wrap_native_exceptions():
            native.set_transaction_isolation(code)
            native.begin()
        self._transaction = Transaction(self, isolation_level)
        return self._transaction

    def get_isolation_level(self) -> IsolationLevel:
        native = self.native_connection
        with wrap_native_exceptions():
            code = native.get_transaction_isolation()
        return to_portable_isolation(code)

    def _check_closed(self, attribute: str) -> None:
        if self._native is not None:
            msg = f"Cannot change {attribute} while the connection is open"
            raise InvalidStateError(msg)
