from __future__ import annotations

from collections.abc import Generator
from pathlib import Path
from typing import Any

import pytest

from sqlbridge.core.cache import TemplateCache, reset_template_cache
from sqlbridge.core.types import NativeType
from sqlbridge.driver.connection import Connection

here = Path(__file__).parent
root_path = here.parent

FAKE_CONNECTION_STRING = "fake://db"


class FakeCursor:
    """In-memory ``RowCursor``; ordinals are 1-based."""

    def __init__(
        self, columns: tuple[str, ...], rows: list[tuple[Any, ...]], types: tuple[int, ...] | None = None
    ) -> None:
        self.columns = columns
        self.rows = list(rows)
        self.types = types or tuple(int(NativeType.JAVA_OBJECT) for _ in columns)
        self.position = -1
        self.closed = False

    @property
    def column_count(self) -> int:
        return len(self.columns)

    def next(self) -> bool:
        self.position += 1
        return self.position < len(self.rows)

    def get_object(self, ordinal: int) -> Any:
        return self.rows[self.position][ordinal - 1]

    def column_name(self, ordinal: int) -> str:
        return self.columns[ordinal - 1]

    def column_type(self, ordinal: int) -> int:
        return self.types[ordinal - 1]

    def close(self) -> None:
        self.closed = True


class FakeStatement:
    """Records binds and executions instead of talking to a database."""

    def __init__(self, connection: FakeConnection, sql: str) -> None:
        self.connection = connection
        self.sql = sql
        self.bindings: dict[int, tuple[Any, int | None]] = {}
        self.clear_count = 0
        self.timeout: float | None = None
        self.cancelled = False
        self.closed = False
        self.cursors: list[FakeCursor] = []

    def bind(self, ordinal: int, value: Any, native_type: int | None = None) -> None:
        self.bindings[ordinal] = (value, native_type)

    def clear_parameters(self) -> None:
        self.clear_count += 1
        self.bindings.clear()

    def values(self) -> tuple[Any, ...]:
        return tuple(self.bindings[ordinal][0] for ordinal in sorted(self.bindings))

    def execute_query(self) -> FakeCursor:
        driver = self.connection.driver
        driver.executions.append(("query", self.sql, self.values()))
        if driver.execute_error is not None:
            raise driver.execute_error
        columns, rows, types = driver.results.get(self.sql, (("value",), [], None))
        cursor = FakeCursor(columns, rows, types)
        self.cursors.append(cursor)
        return cursor

    def execute_update(self) -> int:
        driver = self.connection.driver
        driver.executions.append(("update", self.sql, self.values()))
        if driver.execute_error is not None:
            raise driver.execute_error
        return driver.update_counts.get(self.sql, 1)

    def set_query_timeout(self, seconds: float) -> None:
        self.timeout = seconds

    def cancel(self) -> None:
        self.cancelled = True

    def close(self) -> None:
        self.closed = True


class FakeConnection:
    def __init__(self, driver: FakeDriver, connection_string: str, username: str | None, password: str | None) -> None:
        self.driver = driver
        self.connection_string = connection_string
        self.username = username
        self.password = password
        self.statements: list[FakeStatement] = []
        self.closed = False
        self.session_resets = 0
        self.isolation = 2
        self.calls: list[str] = []

    def prepare_statement(self, sql: str) -> FakeStatement:
        self.driver.prepared.append(sql)
        if sql in self.driver.rejected_sql:
            msg = f"Syntax error in SQL statement {sql!r}"
            raise RuntimeError(msg)
        statement = FakeStatement(self, sql)
        self.statements.append(statement)
        return statement

    def clear_session_state(self) -> None:
        self.session_resets += 1
        if self.driver.reset_error is not None:
            raise self.driver.reset_error

    def get_transaction_isolation(self) -> int:
        return self.isolation

    def set_transaction_isolation(self, level: int) -> None:
        self.isolation = level
        self.calls.append(f"isolation:{level}")

    def begin(self) -> None:
        self.calls.append("begin")

    def commit(self) -> None:
        self.calls.append("commit")

    def rollback(self) -> None:
        self.calls.append("rollback")

    def close(self) -> None:
        self.closed = True


class FakeDriver:
    """``NativeDriver`` test double counting connects and prepares."""

    def __init__(self) -> None:
        self.connections: list[FakeConnection] = []
        self.prepared: list[str] = []
        self.executions: list[tuple[str, str, tuple[Any, ...]]] = []
        self.results: dict[str, tuple[tuple[str, ...], list[tuple[Any, ...]], tuple[int, ...] | None]] = {}
        self.update_counts: dict[str, int] = {}
        self.rejected_sql: set[str] = set()
        self.connect_error: Exception | None = None
        self.execute_error: Exception | None = None
        self.reset_error: Exception | None = None

    @property
    def connects(self) -> int:
        return len(self.connections)

    def connect(
        self, connection_string: str, username: str | None = None, password: str | None = None
    ) -> FakeConnection:
        if self.connect_error is not None:
            raise self.connect_error
        connection = FakeConnection(self, connection_string, username, password)
        self.connections.append(connection)
        return connection


@pytest.fixture(autouse=True)
def _isolated_template_cache() -> Generator[None, None, None]:
    reset_template_cache()
    yield
    reset_template_cache()


@pytest.fixture
def fake_driver() -> FakeDriver:
    return FakeDriver()


@pytest.fixture
def fake_cursor_factory() -> type[FakeCursor]:
    return FakeCursor


@pytest.fixture
def template_cache() -> TemplateCache:
    return TemplateCache()


@pytest.fixture
def connection(fake_driver: FakeDriver) -> Generator[Connection, None, None]:
    conn = Connection(FAKE_CONNECTION_STRING, driver=fake_driver)
    conn.open()
    yield conn
    conn.close()
