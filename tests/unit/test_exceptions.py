import pytest

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
    native_error_code,
    wrap_native_exceptions,
)


def test_exception_hierarchy() -> None:
    """All errors derive from SQLBridgeError; native failures from DriverError."""
    for error_class in (
        ImproperConfigurationError,
        InvalidStateError,
        UnsupportedTypeError,
        PoolDisposedError,
        PoolTimeoutError,
        ParameterError,
        DriverError,
    ):
        assert issubclass(error_class, SQLBridgeError)

    assert issubclass(MissingParameterError, ParameterError)
    assert issubclass(DatabaseConnectionError, DriverError)
    assert issubclass(CompileError, DriverError)


def test_exception_message_and_repr() -> None:
    exc = InvalidStateError("connection is closed")

    assert str(exc) == "connection is closed"
    assert exc.detail == "connection is closed"
    assert repr(exc) == "InvalidStateError - connection is closed"


def test_parameter_error_includes_sql() -> None:
    exc = MissingParameterError("Missing parameter: x", sql="SELECT @x", parameter="x")

    assert "Missing parameter: x" in str(exc)
    assert "SQL: SELECT @x" in str(exc)
    assert exc.sql == "SELECT @x"
    assert exc.parameter == "x"


def test_driver_error_carries_native_details() -> None:
    native = RuntimeError("no such table: t")
    native.error_code = 1  # type: ignore[attr-defined]

    exc = DriverError.from_native(native, "SELECT * FROM t")

    assert exc.native_error is native
    assert exc.code == 1
    assert exc.sql == "SELECT * FROM t"
    assert "no such table: t [code 1]" in str(exc)
    assert "SQL: SELECT * FROM t" in str(exc)


def test_native_error_code_missing() -> None:
    assert native_error_code(ValueError("boom")) is None


def test_wrap_native_exceptions_translates_and_chains() -> None:
    with pytest.raises(CompileError) as exc_info:
        with wrap_native_exceptions(CompileError, sql="SELEC 1"):
            raise RuntimeError("syntax error")

    assert isinstance(exc_info.value.__cause__, RuntimeError)
    assert exc_info.value.sql == "SELEC 1"


def test_wrap_native_exceptions_passes_own_errors_through() -> None:
    with pytest.raises(InvalidStateError):
        with wrap_native_exceptions():
            raise InvalidStateError("not open")


def test_wrap_native_exceptions_uses_class_name_for_empty_message() -> None:
    with pytest.raises(DriverError, match="KeyError"):
        with wrap_native_exceptions():
            raise KeyError
