"""Executable commands.

A :class:`Command` turns application SQL into a prepared native statement through
the template cache and binds its parameters into the template's slots. Repeated
execution of the same SQL on the same connection reuses the prepared statement
and only rebinds values.
"""

import logging
from collections.abc import Generator
from contextlib import contextmanager
from enum import Enum
from typing import TYPE_CHECKING, Any, Final, Optional, cast

from sqlbridge.core.cache import get_template_cache
from sqlbridge.core.template import StatementKind, classify_statement
from sqlbridge.core.types import DBNull, converter_to_portable
from sqlbridge.driver.parameters import Parameter, ParameterCollection
from sqlbridge.driver.reader import DataReader
from sqlbridge.exceptions import (
    CompileError,
    ImproperConfigurationError,
    InvalidStateError,
    MissingParameterError,
    wrap_native_exceptions,
)
from sqlbridge.utils.logging import COMMAND_LOGGER_NAME, get_logger, log_with_context

if TYPE_CHECKING:
    from types import TracebackType

    from sqlbridge.core.cache import TemplateCache
    from sqlbridge.core.template import StatementTemplate
    from sqlbridge.driver.connection import Connection, Transaction
    from sqlbridge.protocols import NativeConnection, NativeStatement

__all__ = ("DEFAULT_COMMAND_TIMEOUT", "Command", "CommandState")

logger = get_logger(COMMAND_LOGGER_NAME)

DEFAULT_COMMAND_TIMEOUT: Final = 30


class CommandState(str, Enum):
    UNPREPARED = "unprepared"
    PREPARED = "prepared"


class Command:
    """A SQL statement bound to a connection and a parameter list.

    Args:
        sql: Statement text, using ``@name`` or ``?`` placeholders
        connection: Connection the command executes on
        template_cache: Cache resolving statement templates; the process-wide
            cache when omitted
    """

    __slots__ = (
        "_cache",
        "_command_timeout",
        "_connection",
        "_named_parameters",
        "_parameters",
        "_prepared_connection",
        "_prepared_names",
        "_sql",
        "_state",
        "_statement",
        "_template",
    )

    def __init__(
        self,
        sql: Optional[str] = None,
        connection: "Optional[Connection]" = None,
        *,
        template_cache: "Optional[TemplateCache]" = None,
    ) -> None:
        self._sql = sql
        self._connection = connection
        self._cache = template_cache
        self._parameters = ParameterCollection()
        self._command_timeout: Optional[float] = None
        self._named_parameters = True
        self._state = CommandState.UNPREPARED
        self._template: Optional[StatementTemplate] = None
        self._statement: Optional[NativeStatement] = None
        self._prepared_connection: Optional[NativeConnection] = None
        self._prepared_names: tuple[str, ...] = ()

    def __enter__(self) -> "Command":
        return self

    def __exit__(
        self,
        exc_type: "Optional[type[BaseException]]",
        exc_val: "Optional[BaseException]",
        exc_tb: "Optional[TracebackType]",
    ) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"Command(sql={self._sql!r}, state={self._state.value}, parameters={len(self._parameters)})"

    @property
    def sql(self) -> Optional[str]:
        return self._sql

    @sql.setter
    def sql(self, value: Optional[str]) -> None:
        if self._template is None or self._template.source_sql != value:
            self._state = CommandState.UNPREPARED
        self._sql = value

    @property
    def connection(self) -> "Optional[Connection]":
        return self._connection

    @connection.setter
    def connection(self, value: "Optional[Connection]") -> None:
        self._connection = value

    @property
    def transaction(self) -> "Optional[Transaction]":
        """The active transaction of the command's connection."""
        if self._connection is None:
            return None
        return self._connection.transaction

    @transaction.setter
    def transaction(self, value: "Optional[Transaction]") -> None:
        if value is None or value.connection is None:
            return
        self._connection = value.connection

    @property
    def parameters(self) -> ParameterCollection:
        return self._parameters

    @property
    def state(self) -> CommandState:
        return self._state

    @property
    def template(self) -> "Optional[StatementTemplate]":
        return self._template

    @property
    def template_cache(self) -> "TemplateCache":
        return self._cache if self._cache is not None else get_template_cache()

    @property
    def command_timeout(self) -> float:
        """Query timeout in seconds. Applied to the native statement only once set."""
        return DEFAULT_COMMAND_TIMEOUT if self._command_timeout is None else self._command_timeout

    @command_timeout.setter
    def command_timeout(self, seconds: float) -> None:
        if seconds < 0:
            msg = f"command_timeout must be >= 0 seconds, got {seconds}"
            raise ImproperConfigurationError(msg)
        self._command_timeout = seconds
        if self._statement is not None:
            with wrap_native_exceptions(sql=self._sql):
                self._statement.set_query_timeout(seconds)

    @property
    def disable_named_parameters(self) -> bool:
        """When True, ``@`` is never treated as a parameter marker."""
        return not self._named_parameters

    @disable_named_parameters.setter
    def disable_named_parameters(self, value: bool) -> None:
        if self._named_parameters == value:
            self._state = CommandState.UNPREPARED
        self._named_parameters = not value

    def create_parameter(self) -> Parameter:
        return Parameter()

    def prepare(self) -> None:
        """Make the native statement ready and bind the current parameter values.

        Raises:
            InvalidStateError: No open connection, or no SQL set.
            MissingParameterError: A placeholder has no matching parameter.
            CompileError: The native layer rejected the rewritten SQL.
        """
        native_connection = self._open_native_connection()
        sql = self._sql
        if not sql:
            msg = "SQL must be set before the command can be prepared"
            raise InvalidStateError(msg)

        names = self._parameters.names()
        template = self._template
        statement = self._statement
        reuse = (
            self._state is CommandState.PREPARED
            and template is not None
            and statement is not None
            and template.source_sql == sql
            and self._prepared_connection is native_connection
            and self._prepared_names == names
        )
        if not reuse or template is None or statement is None:
            template, statement = self._resolve_statement(native_connection, sql, names)

        with wrap_native_exceptions(sql=template.rewritten_sql):
            statement.clear_parameters()
            for slot, parameter_index in enumerate(template.slot_to_param_index):
                self._parameters[parameter_index].bind(statement, slot + 1)

    def execute_reader(self) -> Optional[DataReader]:
        """Execute and return a reader over the rows.

        Statements classified as updates are executed for their row count and
        return None.
        """
        self.prepare()
        statement = self._require_statement()
        sql = cast("str", self._sql)
        if classify_statement(sql) is StatementKind.UPDATE_COUNT:
            with self._executing():
                statement.execute_update()
            return None
        with self._executing():
            cursor = statement.execute_query()
        return DataReader(cursor, self._connection, sql)

    def execute_non_query(self) -> int:
        """Execute and return the number of affected rows."""
        self.prepare()
        statement = self._require_statement()
        with self._executing():
            return statement.execute_update()

    def execute_scalar(self) -> Any:
        """Execute and return the first column of the first row.

        Returns:
            The converted value, or ``DBNull`` when it is NULL or there are no rows
        """
        self.prepare()
        statement = self._require_statement()
        with self._executing():
            cursor = statement.execute_query()
        try:
            with wrap_native_exceptions(sql=self._sql):
                if not cursor.next():
                    return DBNull
                value = cursor.get_object(1)
                if value is None:
                    return DBNull
                return converter_to_portable(cursor.column_type(1))(value)
        finally:
            with wrap_native_exceptions(sql=self._sql):
                cursor.close()

    def cancel(self) -> None:
        """Ask the running statement to stop. Best effort."""
        self._open_native_connection()
        if self._statement is None:
            return
        with wrap_native_exceptions(sql=self._sql):
            self._statement.cancel()

    def close(self) -> None:
        """Release the native statement. Idempotent."""
        statement = self._statement
        self._statement = None
        self._prepared_connection = None
        self._state = CommandState.UNPREPARED
        if statement is not None:
            with wrap_native_exceptions(sql=self._sql):
                statement.close()

    def _open_native_connection(self) -> "NativeConnection":
        if self._connection is None:
            msg = "A connection must be set on the command"
            raise InvalidStateError(msg)
        return self._connection.native_connection

    def _require_statement(self) -> "NativeStatement":
        if self._statement is None:
            msg = "The command has no prepared statement"
            raise InvalidStateError(msg)
        return self._statement

    def _resolve_statement(
        self, native_connection: "NativeConnection", sql: str, names: tuple[str, ...]
    ) -> "tuple[StatementTemplate, NativeStatement]":
        template = self.template_cache.resolve(sql, names, named_parameters=self._named_parameters)
        self._check_slots(template)

        statement = self._statement
        previous = self._template
        if (
            statement is None
            or previous is None
            or self._prepared_connection is not native_connection
            or previous.rewritten_sql != template.rewritten_sql
        ):
            statement = self._prepare_native(native_connection, template, names)
            log_with_context(logger, logging.DEBUG, "command.prepare", slot_count=template.slot_count)

        self._template = template
        self._prepared_connection = native_connection
        self._prepared_names = names
        self._state = CommandState.PREPARED
        return template, statement

    def _check_slots(self, template: "StatementTemplate") -> None:
        count = len(self._parameters)
        for slot, parameter_index in enumerate(template.slot_to_param_index):
            if parameter_index >= count:
                msg = f"Placeholder {slot + 1} refers to parameter {parameter_index} but only {count} are set"
                raise MissingParameterError(msg, sql=template.source_sql)

    def _prepare_native(
        self,
        native_connection: "NativeConnection",
        template: "StatementTemplate",
        names: tuple[str, ...],
    ) -> "NativeStatement":
        old = self._statement
        self._statement = None
        self._state = CommandState.UNPREPARED
        if old is not None:
            with wrap_native_exceptions(sql=self._sql):
                old.close()
        try:
            with wrap_native_exceptions(CompileError, sql=template.rewritten_sql):
                statement = native_connection.prepare_statement(template.rewritten_sql)
        except CompileError:
            self._discard_template(template, names)
            raise
        if self._command_timeout is not None:
            with wrap_native_exceptions(sql=template.rewritten_sql):
                statement.set_query_timeout(self._command_timeout)
        self._statement = statement
        return statement

    @contextmanager
    def _executing(self) -> Generator[None, None, None]:
        """Run a native execution, dropping the template when the native layer rejects its SQL."""
        try:
            with wrap_native_exceptions(sql=self._sql):
                yield
        except CompileError:
            if self._template is not None:
                self._discard_template(self._template, self._prepared_names)
            raise

    def _discard_template(self, template: "StatementTemplate", names: tuple[str, ...]) -> None:
        """Remove a rejected template from the cache and release the statement built from it."""
        self.template_cache.discard(template.source_sql, names, named_parameters=self._named_parameters)
        statement = self._statement
        self._statement = None
        self._template = None
        self._prepared_connection = None
        self._state = CommandState.UNPREPARED
        if statement is None:
            return
        try:
            statement.close()
        except Exception as exc:
            log_with_context(logger, logging.WARNING, "command.statement.close.error", error=str(exc))
