"""Runtime-checkable protocols describing the native driver boundary.

sqlbridge does not talk to a database itself. It drives a lower, statement oriented
driver through the protocols below; :mod:`sqlbridge.adapters.sqlite` provides one
implementation and tests supply in-memory fakes.

Ordinals passed to ``NativeStatement.bind`` and ``RowCursor`` accessors are 1-based.
"""

from typing import Any, Optional, Protocol, runtime_checkable

__all__ = ("NativeConnection", "NativeDriver", "NativeStatement", "RowCursor")


@runtime_checkable
class RowCursor(Protocol):
    """Forward-only cursor over the rows produced by a query."""

    @property
    def column_count(self) -> int:
        """Number of columns in each row."""
        ...

    def next(self) -> bool:
        """Advance to the next row; False when the rows are exhausted."""
        ...

    def get_object(self, ordinal: int) -> Any:
        """Native value of column ``ordinal`` in the current row."""
        ...

    def column_name(self, ordinal: int) -> str:
        """Name of column ``ordinal``."""
        ...

    def column_type(self, ordinal: int) -> int:
        """Native type code of column ``ordinal``."""
        ...

    def close(self) -> None:
        """Release the cursor."""
        ...


@runtime_checkable
class NativeStatement(Protocol):
    """A prepared, ready-to-bind statement."""

    def bind(self, ordinal: int, value: Any, native_type: Optional[int] = None) -> None:
        """Bind ``value`` at ``ordinal``, typed when ``native_type`` is given."""
        ...

    def clear_parameters(self) -> None:
        """Forget every bound value."""
        ...

    def execute_query(self) -> RowCursor:
        """Run the statement and return its rows."""
        ...

    def execute_update(self) -> int:
        """Run the statement and return the affected row count."""
        ...

    def set_query_timeout(self, seconds: float) -> None:
        """Abort executions running longer than ``seconds``."""
        ...

    def cancel(self) -> None:
        """Ask an in-flight execution to abort."""
        ...

    def close(self) -> None:
        """Release the statement."""
        ...


@runtime_checkable
class NativeConnection(Protocol):
    """A physical database connection."""

    def prepare_statement(self, sql: str) -> NativeStatement:
        """Prepare ``sql`` (positional ``?`` placeholders)."""
        ...

    def clear_session_state(self) -> None:
        """Reset per-session state before the connection is reused."""
        ...

    def get_transaction_isolation(self) -> int:
        """Current native isolation code."""
        ...

    def set_transaction_isolation(self, level: int) -> None:
        """Set the native isolation code used by the next transaction."""
        ...

    def begin(self) -> None:
        """Start a transaction."""
        ...

    def commit(self) -> None:
        """Commit the current transaction."""
        ...

    def rollback(self) -> None:
        """Roll back the current transaction."""
        ...

    def close(self) -> None:
        """Close the physical connection."""
        ...


@runtime_checkable
class NativeDriver(Protocol):
    """Factory for physical connections."""

    def connect(
        self, connection_string: str, username: Optional[str] = None, password: Optional[str] = None
    ) -> NativeConnection:
        """Open a new physical connection."""
        ...
