"""Statement templates: SQL rewritten into the driver's positional form.

A template is compiled once per distinct SQL text (see :mod:`sqlbridge.core.cache`)
and then reused for every execution. Two placeholder dialects are understood:

- named: ``@name`` references outside single-quoted literals, rewritten to ``?``
- positional: ``?`` placeholders already present, used unchanged

Named mode is chosen when the text contains an ``@`` outside of a quoted literal,
unless named detection is switched off by the caller.
"""

from collections.abc import Sequence
from enum import Enum
from typing import Final, NamedTuple

from sqlbridge.exceptions import MissingParameterError

__all__ = (
    "NAMED_PREFIX",
    "POSITIONAL_PLACEHOLDER",
    "StatementKind",
    "StatementTemplate",
    "classify_statement",
    "compile_template",
    "has_named_parameters",
)

NAMED_PREFIX: Final = "@"
POSITIONAL_PLACEHOLDER: Final = "?"
QUOTE: Final = "'"

_UPDATE_PREFIXES: Final = ("insert", "update")


class StatementKind(str, Enum):
    """How ``Command.execute_reader`` dispatches a statement to the native layer."""

    QUERY = "query"
    UPDATE_COUNT = "update_count"


class StatementTemplate(NamedTuple):
    """Compiled, immutable form of one SQL text.

    Attributes:
        source_sql: SQL exactly as supplied by the application
        rewritten_sql: SQL handed to the native driver
        slot_to_param_index: for each ``?`` in ``rewritten_sql`` (left to right), the
            index of the parameter bound into it
    """

    source_sql: str
    rewritten_sql: str
    slot_to_param_index: tuple[int, ...]

    @property
    def slot_count(self) -> int:
        return len(self.slot_to_param_index)


def has_named_parameters(sql: str) -> bool:
    """Return True when ``sql`` holds an ``@`` outside of single-quoted literals."""
    in_quote = False
    for char in sql:
        if not in_quote and char == NAMED_PREFIX:
            return True
        if char == QUOTE:
            in_quote = not in_quote
    return False


def _is_name_char(char: str) -> bool:
    return char.isalnum() or char == "_"


def _compile_named(sql: str, parameter_names: Sequence[str]) -> StatementTemplate:
    index_by_name: dict[str, int] = {}
    for index, name in enumerate(parameter_names):
        if name:
            index_by_name.setdefault(name.removeprefix(NAMED_PREFIX), index)

    pieces: list[str] = []
    slots: list[int] = []
    in_quote = False
    position = 0
    length = len(sql)

    while position < length:
        char = sql[position]
        if in_quote or char != NAMED_PREFIX:
            if char == QUOTE:
                in_quote = not in_quote
            pieces.append(char)
            position += 1
            continue

        end = position + 1
        while end < length and _is_name_char(sql[end]):
            end += 1
        if end == position + 1:
            # lone "@", not a parameter reference
            pieces.append(char)
            position += 1
            continue

        name = sql[position + 1 : end]
        index = index_by_name.get(name)
        if index is None:
            msg = f"Missing parameter: {name}"
            raise MissingParameterError(msg, sql=sql, parameter=name)
        pieces.append(POSITIONAL_PLACEHOLDER)
        slots.append(index)
        position = end

    return StatementTemplate(sql, "".join(pieces), tuple(slots))


def _compile_positional(sql: str) -> StatementTemplate:
    return StatementTemplate(sql, sql, tuple(range(sql.count(POSITIONAL_PLACEHOLDER))))


def compile_template(
    sql: str, parameter_names: "Sequence[str]" = (), *, named_parameters: bool = True
) -> StatementTemplate:
    """Compile ``sql`` into a statement template.

    Args:
        sql: SQL text as written by the application
        parameter_names: Names of the issuing command's parameters, in list order.
            Unnamed parameters may be given as empty strings.
        named_parameters: When False, ``@`` references are never rewritten.

    Raises:
        MissingParameterError: A named reference has no parameter with that name.

    Returns:
        The compiled template
    """
    if named_parameters and has_named_parameters(sql):
        return _compile_named(sql, parameter_names)
    return _compile_positional(sql)


def classify_statement(sql: str) -> StatementKind:
    """Decide whether ``execute_reader`` runs ``sql`` as an update or as a query.

    Text starting with ``insert`` or ``update`` (case-insensitive, after trimming)
    that contains no ``;`` other than one trailing semicolon is an update; anything
    else is a query. This is a prefix heuristic: ``UPDATE ... RETURNING`` runs as an
    update and its rows are dropped, and an ``INSERT`` batch with several statements
    runs as a query.
    """
    lowered = sql.lower().strip()
    semicolon = lowered.find(";")
    if lowered.startswith(_UPDATE_PREFIXES) and (semicolon < 0 or semicolon == len(lowered) - 1):
        return StatementKind.UPDATE_COUNT
    return StatementKind.QUERY
