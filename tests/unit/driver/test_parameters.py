import datetime
from decimal import Decimal

import pytest

from sqlbridge.core.types import DBNull, NativeType, PortableType
from sqlbridge.driver.parameters import Parameter, ParameterCollection, ParameterDirection
from sqlbridge.exceptions import ParameterError, UnsupportedTypeError


class _RecordingStatement:
    def __init__(self) -> None:
        self.binds: list[tuple[int, object, "int | None"]] = []

    def bind(self, ordinal: int, value: object, native_type: "int | None" = None) -> None:
        self.binds.append((ordinal, value, native_type))


def test_untyped_parameter_binds_value_as_is() -> None:
    parameter = Parameter("a", 42)
    statement = _RecordingStatement()

    parameter.bind(statement, 1)  # type: ignore[arg-type]

    assert parameter.portable_type is PortableType.OBJECT
    assert not parameter.is_type_set
    assert statement.binds == [(1, 42, None)]


def test_typed_parameter_binds_with_native_type() -> None:
    parameter = Parameter("d", "2024-01-31", PortableType.DATE)
    statement = _RecordingStatement()

    parameter.bind(statement, 3)  # type: ignore[arg-type]

    assert parameter.native_type is NativeType.DATE
    assert statement.binds == [(3, datetime.date(2024, 1, 31), int(NativeType.DATE))]


def test_null_values_bind_as_none() -> None:
    assert Parameter("a", None, PortableType.INT32).native_value is None
    assert Parameter("a", DBNull, PortableType.INT32).native_value is None


def test_native_value_is_cached_until_value_changes() -> None:
    parameter = Parameter("n", "1.50", PortableType.DECIMAL)

    first = parameter.native_value
    assert first == Decimal("1.50")
    assert parameter.native_value is first

    parameter.value = "2.25"
    assert parameter.native_value == Decimal("2.25")


def test_changing_type_invalidates_native_value() -> None:
    parameter = Parameter("n", "7", PortableType.STRING)
    assert parameter.native_value == "7"

    parameter.portable_type = PortableType.INT32
    assert parameter.native_value == 7

    parameter.reset_portable_type()
    assert parameter.native_type is None
    assert parameter.native_value == "7"


def test_unmapped_type_is_rejected_when_declared() -> None:
    with pytest.raises(UnsupportedTypeError):
        Parameter("g", "x", PortableType.GUID)


def test_conversion_failure_is_a_parameter_error() -> None:
    parameter = Parameter("i", 1 << 40, PortableType.INT16)

    with pytest.raises(ParameterError, match="Cannot convert value"):
        _ = parameter.native_value


def test_only_input_direction_is_supported() -> None:
    parameter = Parameter("a")
    parameter.direction = ParameterDirection.INPUT

    with pytest.raises(ParameterError):
        parameter.direction = ParameterDirection.OUTPUT


def test_collection_lookup_by_name_ignores_prefix() -> None:
    parameters = ParameterCollection()
    parameters.add_with_value("@a", 1)
    parameters.add_with_value("b", 2)

    assert parameters.index_of("a") == 0
    assert parameters.index_of("@b") == 1
    assert parameters.index_of("c") == -1
    assert parameters["b"].value == 2
    assert "a" in parameters
    assert parameters.contains("@a")
    assert not parameters.contains("A")


def test_collection_add_returns_index_and_wraps_values() -> None:
    parameters = ParameterCollection()

    assert parameters.add(Parameter("a", 1)) == 0
    assert parameters.add(5) == 1
    assert parameters[1].value == 5
    assert parameters[1].name is None
    assert parameters.names() == ("a", "")


def test_collection_mutation() -> None:
    parameters = ParameterCollection([Parameter("a", 1), Parameter("b", 2), Parameter("c", 3)])

    parameters["b"] = Parameter("b", 20)
    parameters.insert(0, Parameter("z", 0))
    parameters.remove_by_name("c")
    del parameters[0]

    assert [p.value for p in parameters] == [1, 20]
    assert parameters.find_index(lambda p: p.value == 20) == 1
    assert parameters.find_index(lambda p: p.value == 1, start=1) == -1

    with pytest.raises(KeyError):
        parameters["missing"]

    parameters.clear()
    assert len(parameters) == 0
