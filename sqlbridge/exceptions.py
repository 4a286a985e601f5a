from collections.abc import Generator
from contextlib import contextmanager
from typing import Any, Optional

__all__ = (
    "CompileError",
    "DatabaseConnectionError",
    "DriverError",
    "ImproperConfigurationError",
    "InvalidStateError",
    "MissingParameterError",
    "ParameterError",
    "PoolDisposedError",
    "PoolTimeoutError",
    "SQLBridgeError",
    "UnsupportedTypeError",
    "native_error_code",
    "wrap_native_exceptions",
)

_NATIVE_CODE_ATTRIBUTES = ("sqlite_errorcode", "error_code", "errno", "pgcode", "sqlstate", "code")


class SQLBridgeError(Exception):
    """Base exception class from which all sqlbridge exceptions inherit."""

    detail: str

    def __init__(self, *args: Any, detail: str = "") -> None:
        """Initialize ``SQLBridgeError``.

        Args:
            *args: args are converted to :class:`str` before passing to :class:`Exception`
            detail: detail of the exception.
        """
        str_args = [str(arg) for arg in args if arg]
        if not detail:
            if str_args:
                detail, *str_args = str_args
            elif hasattr(self, "detail"):
                detail = self.detail
        self.detail = detail
        super().__init__(*str_args)

    def __repr__(self) -> str:
        if self.detail:
            return f"{self.__class__.__name__} - {self.detail}"
        return self.__class__.__name__

    def __str__(self) -> str:
        return " ".join((*self.args, self.detail)).strip()


class ImproperConfigurationError(SQLBridgeError):
    """Improper Configuration error.

    Raised when pools, caches or the type registry are set up with values that cannot work.
    """


class InvalidStateError(SQLBridgeError):
    """An operation was attempted on an object in the wrong state.

    Examples are executing a command with no connection, with a closed connection or
    with no SQL text, and opening a connection twice.
    """


class UnsupportedTypeError(SQLBridgeError):
    """No mapping is registered for the requested portable or native type."""


class PoolDisposedError(SQLBridgeError):
    """The connection pool has been disposed and can no longer hand out connections."""


class PoolTimeoutError(SQLBridgeError):
    """A connection could not be acquired within the configured acquire timeout."""


# -- Parameter Errors --
class ParameterError(SQLBridgeError):
    """Base class for parameter-related errors."""

    sql: Optional[str]

    def __init__(self, message: str, sql: Optional[str] = None) -> None:
        """Initialize with optional SQL context."""
        detail_message = message
        if sql:
            detail_message = f"{message}\nSQL: {sql}"
        super().__init__(detail=detail_message)
        self.sql = sql


class MissingParameterError(ParameterError):
    """Raised when a placeholder references a parameter the command does not have."""

    parameter: Optional[str]

    def __init__(self, message: str, sql: Optional[str] = None, parameter: Optional[str] = None) -> None:
        super().__init__(message, sql)
        self.parameter = parameter


# -- Native Driver Errors --
class DriverError(SQLBridgeError):
    """A failure reported by the underlying native driver.

    The original exception is kept as ``native_error`` (and as ``__cause__`` when raised
    through :func:`wrap_native_exceptions`) together with its diagnostic code.
    """

    native_error: Optional[BaseException]
    code: Any
    sql: Optional[str]

    def __init__(
        self,
        message: str,
        *,
        native_error: Optional[BaseException] = None,
        code: Any = None,
        sql: Optional[str] = None,
    ) -> None:
        detail_message = message
        if code is not None:
            detail_message = f"{detail_message} [code {code}]"
        if sql:
            detail_message = f"{detail_message}\nSQL: {sql}"
        super().__init__(detail=detail_message)
        self.native_error = native_error
        self.code = code
        self.sql = sql

    @classmethod
    def from_native(cls, error: BaseException, sql: Optional[str] = None) -> "DriverError":
        """Build a wrapped error from a native driver exception.

        Args:
            error: Exception raised by the native layer
            sql: SQL text being processed, if any

        Returns:
            A new instance of ``cls`` carrying the native diagnostic
        """
        message = str(error) or error.__class__.__name__
        return cls(message, native_error=error, code=native_error_code(error), sql=sql)


class DatabaseConnectionError(DriverError):
    """A physical connection could not be opened."""


class CompileError(DriverError):
    """The native layer rejected a statement while preparing it."""


def native_error_code(error: BaseException) -> Any:
    """Extract the driver specific error code from a native exception, if it carries one."""
    for attribute in _NATIVE_CODE_ATTRIBUTES:
        code = getattr(error, attribute, None)
        if code is not None:
            return code
    return None


@contextmanager
def wrap_native_exceptions(
    error_class: "type[DriverError]" = DriverError, sql: Optional[str] = None
) -> Generator[None, None, None]:
    """Translate foreign exceptions raised inside the block into sqlbridge errors.

    sqlbridge errors pass through untouched so that errors raised by this package's own
    checks keep their type.

    Args:
        error_class: The ``DriverError`` subclass to raise
        sql: SQL text attached to the raised error
    """
    try:
        yield
    except SQLBridgeError:
        raise
    except Exception as exc:
        raise error_class.from_native(exc, sql) from exc
