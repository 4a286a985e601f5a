"""Unit tests for the command state machine."""

from typing import Any

import pytest

from sqlbridge.core.cache import TemplateCache, get_template_cache
from sqlbridge.core.types import DBNull, NativeType, PortableType
from sqlbridge.driver.command import DEFAULT_COMMAND_TIMEOUT, Command, CommandState
from sqlbridge.driver.connection import Connection
from sqlbridge.driver.reader import DataReader
from sqlbridge.exceptions import (
    CompileError,
    DriverError,
    ImproperConfigurationError,
    InvalidStateError,
    MissingParameterError,
    ParameterError,
)

pytestmark = pytest.mark.xdist_group("driver")


def test_repeated_execution_prepares_once(connection: Connection, fake_driver: Any) -> None:
    command = Command("SELECT * FROM t WHERE a = @a", connection)
    parameter = command.parameters.add_with_value("a", 1)

    command.execute_reader()
    parameter.value = 2
    command.execute_reader()
    parameter.value = 3
    command.execute_reader()

    assert fake_driver.prepared == ["SELECT * FROM t WHERE a = ?"]
    assert [values for _, _, values in fake_driver.executions] == [(1,), (2,), (3,)]
    assert command.state is CommandState.PREPARED


def test_fast_path_clears_and_rebinds(connection: Connection) -> None:
    command = Command("SELECT ?", connection)
    command.parameters.add(10)

    command.prepare()
    statement = connection.native_connection.statements[0]  # type: ignore[attr-defined]
    command.parameters[0].value = 11
    command.prepare()

    assert statement.clear_count == 2
    assert statement.bindings == {1: (11, None)}


def test_named_parameters_bind_by_slot(connection: Connection, fake_driver: Any) -> None:
    command = Command("SELECT * FROM t WHERE a=@x AND b=@y AND c=@x", connection)
    command.parameters.add_with_value("y", "why")
    command.parameters.add_with_value("x", "ex", PortableType.STRING)

    command.prepare()

    statement = connection.native_connection.statements[0]  # type: ignore[attr-defined]
    assert fake_driver.prepared == ["SELECT * FROM t WHERE a=? AND b=? AND c=?"]
    assert statement.bindings == {
        1: ("ex", int(NativeType.NVARCHAR)),
        2: ("why", None),
        3: ("ex", int(NativeType.NVARCHAR)),
    }


def test_changing_sql_reprepares(connection: Connection, fake_driver: Any) -> None:
    command = Command("SELECT 1", connection)
    command.execute_scalar()

    command.sql = "SELECT 2"
    assert command.state is CommandState.UNPREPARED
    command.execute_scalar()

    command.sql = "SELECT 2"
    assert command.state is CommandState.PREPARED
    command.execute_scalar()

    assert fake_driver.prepared == ["SELECT 1", "SELECT 2"]
    assert connection.native_connection.statements[0].closed  # type: ignore[attr-defined]


def test_changing_parameter_layout_recompiles(connection: Connection, fake_driver: Any) -> None:
    command = Command("SELECT @x, @y", connection)
    command.parameters.add_with_value("x", 1)
    command.parameters.add_with_value("y", 2)
    command.prepare()

    command.parameters.clear()
    command.parameters.add_with_value("y", 2)
    command.parameters.add_with_value("x", 1)
    command.prepare()

    statement = connection.native_connection.statements[0]  # type: ignore[attr-defined]
    assert fake_driver.prepared == ["SELECT ?, ?"]
    assert command.template is not None
    assert command.template.slot_to_param_index == (1, 0)
    assert statement.bindings == {1: (1, None), 2: (2, None)}


def test_missing_parameter_fails_before_native_prepare(connection: Connection, fake_driver: Any) -> None:
    command = Command("SELECT * FROM t WHERE a=@q", connection)
    command.parameters.add_with_value("x", 1)

    with pytest.raises(MissingParameterError):
        command.execute_reader()

    assert fake_driver.prepared == []
    assert command.state is CommandState.UNPREPARED


def test_positional_placeholders_need_enough_parameters(connection: Connection, fake_driver: Any) -> None:
    command = Command("SELECT ?, ?", connection)
    command.parameters.add(1)

    with pytest.raises(MissingParameterError):
        command.prepare()

    assert fake_driver.prepared == []


def test_prepare_failure_is_a_compile_error_and_not_cached(connection: Connection, fake_driver: Any) -> None:
    fake_driver.rejected_sql.add("SELEC ?")
    command = Command("SELEC @a", connection)
    command.parameters.add_with_value("a", 1)

    with pytest.raises(CompileError) as exc_info:
        command.prepare()

    assert exc_info.value.sql == "SELEC ?"
    assert isinstance(exc_info.value.__cause__, RuntimeError)
    assert len(get_template_cache()) == 0
    assert command.state is CommandState.UNPREPARED


def test_compile_error_during_execution_discards_template(connection: Connection, fake_driver: Any) -> None:
    command = Command("SELEC @a", connection)
    command.parameters.add_with_value("a", 1)
    fake_driver.execute_error = CompileError("near \"SELEC\": syntax error")

    with pytest.raises(CompileError):
        command.execute_non_query()

    statement = connection.native_connection.statements[0]  # type: ignore[attr-defined]
    assert statement.closed
    assert len(get_template_cache()) == 0
    assert command.state is CommandState.UNPREPARED
    assert command.template is None

    fake_driver.execute_error = None
    command.execute_non_query()
    assert fake_driver.prepared == ["SELEC ?", "SELEC ?"]
    assert command.state is CommandState.PREPARED


def test_conversion_failure_surfaces_as_parameter_error(connection: Connection) -> None:
    command = Command("SELECT @a", connection)
    command.parameters.add_with_value("a", "not a number", PortableType.INT32)

    with pytest.raises(ParameterError):
        command.prepare()


def test_execute_reader_classifies_updates(connection: Connection, fake_driver: Any) -> None:
    command = Command("INSERT INTO t VALUES (@a)", connection)
    command.parameters.add_with_value("a", 1)

    assert command.execute_reader() is None
    assert fake_driver.executions == [("update", "INSERT INTO t VALUES (?)", (1,))]


def test_execute_reader_returns_reader_for_queries(connection: Connection, fake_driver: Any) -> None:
    fake_driver.results["SELECT a FROM t"] = (("a",), [(1,), (2,)], (int(NativeType.INTEGER),))
    command = Command("SELECT a FROM t", connection)

    reader = command.execute_reader()

    assert isinstance(reader, DataReader)
    assert reader.connection is connection
    assert list(reader) == [(1,), (2,)]


def test_execute_non_query_returns_affected_rows(connection: Connection, fake_driver: Any) -> None:
    fake_driver.update_counts["DELETE FROM t"] = 3

    assert Command("DELETE FROM t", connection).execute_non_query() == 3


def test_execute_scalar_converts_first_value(connection: Connection, fake_driver: Any) -> None:
    fake_driver.results["SELECT d"] = (("d",), [("2024-05-01",)], (int(NativeType.DATE),))

    value = Command("SELECT d", connection).execute_scalar()

    assert str(value) == "2024-05-01"
    assert fake_driver.connections[0].statements[0].cursors[0].closed


@pytest.mark.parametrize("rows", [[], [(None,)]])
def test_execute_scalar_returns_dbnull(connection: Connection, fake_driver: Any, rows: list[Any]) -> None:
    fake_driver.results["SELECT v"] = (("v",), rows, (int(NativeType.INTEGER),))

    assert Command("SELECT v", connection).execute_scalar() is DBNull
    assert fake_driver.connections[0].statements[0].cursors[0].closed


def test_native_execution_failure_is_wrapped(connection: Connection, fake_driver: Any) -> None:
    fake_driver.execute_error = RuntimeError("deadlock detected")

    with pytest.raises(DriverError, match="deadlock detected") as exc_info:
        Command("UPDATE t SET a = 1", connection).execute_non_query()

    assert exc_info.value.sql == "UPDATE t SET a = 1"


def test_prepare_requires_open_connection_and_sql(fake_driver: Any) -> None:
    with pytest.raises(InvalidStateError):
        Command("SELECT 1").prepare()

    closed = Connection("fake://db", driver=fake_driver)
    with pytest.raises(InvalidStateError):
        Command("SELECT 1", closed).prepare()

    closed.open()
    with pytest.raises(InvalidStateError):
        Command(None, closed).prepare()
    closed.close()


def test_new_native_connection_reprepares(fake_driver: Any) -> None:
    connection = Connection("fake://db", driver=fake_driver)
    command = Command("SELECT 1", connection)

    connection.open()
    command.execute_scalar()
    connection.close()
    connection.open()
    command.execute_scalar()
    connection.close()

    assert fake_driver.prepared == ["SELECT 1", "SELECT 1"]


def test_command_timeout_applied_only_when_set(connection: Connection) -> None:
    command = Command("SELECT 1", connection)
    assert command.command_timeout == DEFAULT_COMMAND_TIMEOUT

    command.prepare()
    statement = connection.native_connection.statements[0]  # type: ignore[attr-defined]
    assert statement.timeout is None

    command.command_timeout = 5
    assert statement.timeout == 5

    with pytest.raises(ImproperConfigurationError):
        command.command_timeout = -1


def test_disable_named_parameters(connection: Connection, fake_driver: Any) -> None:
    command = Command("SELECT @@rowcount", connection)
    command.disable_named_parameters = True

    command.prepare()

    assert fake_driver.prepared == ["SELECT @@rowcount"]


def test_injected_cache_is_used(connection: Connection, template_cache: TemplateCache) -> None:
    command = Command("SELECT @a", connection, template_cache=template_cache)
    command.parameters.add_with_value("a", 1)

    command.prepare()

    assert len(template_cache) == 1
    assert len(get_template_cache()) == 0


def test_cancel_requires_open_connection(fake_driver: Any) -> None:
    connection = Connection("fake://db", driver=fake_driver)
    command = Command("SELECT 1", connection)

    with pytest.raises(InvalidStateError):
        command.cancel()

    connection.open()
    command.cancel()
    command.prepare()
    command.cancel()
    assert connection.native_connection.statements[0].cancelled  # type: ignore[attr-defined]
    connection.close()


def test_close_releases_statement(connection: Connection) -> None:
    with Command("SELECT 1", connection) as command:
        command.prepare()
        statement = connection.native_connection.statements[0]  # type: ignore[attr-defined]

    assert statement.closed
    assert command.state is CommandState.UNPREPARED
    command.close()


def test_transaction_property_follows_connection(connection: Connection, fake_driver: Any) -> None:
    command = Command("SELECT 1")
    assert command.transaction is None

    transaction = connection.begin_transaction()
    command.transaction = transaction

    assert command.connection is connection
    assert command.transaction is transaction
    transaction.rollback()
    assert command.transaction is None
    assert command.create_parameter().value is None
