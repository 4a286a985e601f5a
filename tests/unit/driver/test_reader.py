import datetime
from typing import Any

import pytest

from sqlbridge.core.types import DBNull, NativeType
from sqlbridge.driver.reader import DataReader
from sqlbridge.exceptions import DriverError, InvalidStateError

pytestmark = pytest.mark.xdist_group("driver")


@pytest.fixture
def reader(fake_cursor_factory: Any) -> DataReader:
    cursor = fake_cursor_factory(
        ("id", "Name", "born"),
        [(1, "ada", "1815-12-10"), (2, None, None)],
        (int(NativeType.INTEGER), int(NativeType.VARCHAR), int(NativeType.DATE)),
    )
    return DataReader(cursor, sql="SELECT id, Name, born FROM people")


def test_reads_rows_with_portable_values(reader: DataReader) -> None:
    assert reader.field_count == 3
    assert reader.read()
    assert reader.get_value(0) == 1
    assert reader["name"] == "ada"
    assert reader["born"] == datetime.date(1815, 12, 10)

    assert reader.read()
    assert reader.is_db_null(1)
    assert reader.get_value(1) is DBNull
    assert reader.get_values() == (2, DBNull, DBNull)

    assert not reader.read()


def test_column_metadata(reader: DataReader) -> None:
    assert reader.get_name(1) == "Name"
    assert reader.get_ordinal("Name") == 1
    assert reader.get_ordinal("NAME") == 1
    assert reader.get_field_type(0) is int
    with pytest.raises(IndexError):
        reader.get_ordinal("missing")


def test_value_access_requires_current_row(reader: DataReader) -> None:
    with pytest.raises(InvalidStateError):
        reader.get_value(0)


def test_iteration_yields_tuples(reader: DataReader) -> None:
    rows = list(reader)

    assert rows == [(1, "ada", datetime.date(1815, 12, 10)), (2, DBNull, DBNull)]


def test_close_is_idempotent_and_blocks_reads(fake_cursor_factory: Any) -> None:
    cursor = fake_cursor_factory(("a",), [(1,)])

    with DataReader(cursor) as reader:
        assert reader.read()

    assert cursor.closed
    assert reader.is_closed
    reader.close()
    with pytest.raises(InvalidStateError):
        reader.read()


def test_conversion_failure_is_a_driver_error(fake_cursor_factory: Any) -> None:
    cursor = fake_cursor_factory(("d",), [("not a date",)], (int(NativeType.DATE),))
    reader = DataReader(cursor)
    reader.read()

    with pytest.raises(DriverError):
        reader.get_value(0)
