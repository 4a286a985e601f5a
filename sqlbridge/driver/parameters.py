"""Command parameters.

A :class:`Parameter` holds an application value and, optionally, a declared
portable type. The native form of the value is computed on first bind and kept
until the value or the declared type changes.
"""

from collections.abc import Callable, Iterable, Iterator, MutableSequence
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional, Union, overload

from sqlbridge.core.types import DBNull, PortableType, converter_to_native, to_native
from sqlbridge.exceptions import ParameterError, SQLBridgeError

if TYPE_CHECKING:
    from sqlbridge.core.types import NativeType
    from sqlbridge.protocols import NativeStatement

__all__ = ("Parameter", "ParameterCollection", "ParameterDirection")

_UNSET = object()


class ParameterDirection(str, Enum):
    """Parameter directions. Only input parameters are supported."""

    INPUT = "input"
    OUTPUT = "output"
    INPUT_OUTPUT = "input_output"
    RETURN_VALUE = "return_value"


class Parameter:
    """A single input parameter of a command.

    Args:
        name: Parameter name, with or without the leading ``@``
        value: Application value; ``None`` and ``DBNull`` bind as SQL NULL
        portable_type: Declared type; when omitted the value is bound untyped
        size: Declared size, informational only
    """

    __slots__ = (
        "_direction",
        "_native_type",
        "_native_value",
        "_portable_type",
        "_value",
        "is_nullable",
        "name",
        "size",
        "source_column",
    )

    def __init__(
        self,
        name: Optional[str] = None,
        value: Any = None,
        portable_type: Optional[PortableType] = None,
        *,
        size: int = 0,
        is_nullable: bool = False,
        source_column: Optional[str] = None,
    ) -> None:
        self.name = name
        self.size = size
        self.is_nullable = is_nullable
        self.source_column = source_column
        self._direction = ParameterDirection.INPUT
        self._portable_type: Optional[PortableType] = None
        self._native_type: "Optional[NativeType]" = None
        self._value = value
        self._native_value: Any = _UNSET
        if portable_type is not None:
            self.portable_type = portable_type

    def __repr__(self) -> str:
        return f"Parameter(name={self.name!r}, value={self._value!r}, portable_type={self._portable_type})"

    @property
    def value(self) -> Any:
        return self._value

    @value.setter
    def value(self, value: Any) -> None:
        self._value = value
        self._native_value = _UNSET

    @property
    def portable_type(self) -> PortableType:
        """Declared portable type, ``PortableType.OBJECT`` when none was declared."""
        return self._portable_type or PortableType.OBJECT

    @portable_type.setter
    def portable_type(self, portable_type: PortableType) -> None:
        self._native_type = to_native(portable_type)
        self._portable_type = portable_type
        self._native_value = _UNSET

    @property
    def is_type_set(self) -> bool:
        return self._portable_type is not None

    @property
    def native_type(self) -> "Optional[NativeType]":
        return self._native_type

    def reset_portable_type(self) -> None:
        """Forget the declared type; the value is bound untyped again."""
        self._portable_type = None
        self._native_type = None
        self._native_value = _UNSET

    @property
    def direction(self) -> ParameterDirection:
        return self._direction

    @direction.setter
    def direction(self, direction: ParameterDirection) -> None:
        if direction is not ParameterDirection.INPUT:
            msg = f"Only input parameters are supported, got {direction.value}"
            raise ParameterError(msg)
        self._direction = direction

    @property
    def native_value(self) -> Any:
        """The value converted for the native driver (cached)."""
        if self._native_value is _UNSET:
            self._native_value = self._convert()
        return self._native_value

    def _convert(self) -> Any:
        value = self._value
        if value is None or value is DBNull:
            return None
        converter = converter_to_native(self.portable_type)
        try:
            return converter(value)
        except SQLBridgeError:
            raise
        except (TypeError, ValueError, ArithmeticError) as exc:
            msg = f"Cannot convert value {value!r} of parameter {self.name!r} to {self.portable_type.name}: {exc}"
            raise ParameterError(msg) from exc

    def bind(self, statement: "NativeStatement", ordinal: int) -> None:
        """Bind this parameter's native value at ``ordinal`` (1-based)."""
        if self._native_type is not None:
            statement.bind(ordinal, self.native_value, int(self._native_type))
        else:
            statement.bind(ordinal, self.native_value)


def _normalize(name: Optional[str]) -> Optional[str]:
    if name is None:
        return None
    return name.removeprefix("@")


class ParameterCollection(MutableSequence[Parameter]):
    """Ordered parameter list of a command with lookup by name.

    Names compare case-sensitively and ignore a leading ``@``.
    """

    __slots__ = ("_parameters",)

    def __init__(self, parameters: "Optional[Iterable[Parameter]]" = None) -> None:
        self._parameters: list[Parameter] = list(parameters or ())

    def __repr__(self) -> str:
        return f"ParameterCollection({self._parameters!r})"

    def __len__(self) -> int:
        return len(self._parameters)

    def __iter__(self) -> Iterator[Parameter]:
        return iter(self._parameters)

    @overload
    def __getitem__(self, key: Union[int, str]) -> Parameter: ...

    @overload
    def __getitem__(self, key: slice) -> "list[Parameter]": ...

    def __getitem__(self, key: Union[int, str, slice]) -> Any:
        if isinstance(key, str):
            index = self.index_of(key)
            if index < 0:
                msg = f"No parameter named {key!r}"
                raise KeyError(msg)
            return self._parameters[index]
        return self._parameters[key]

    def __setitem__(self, key: Any, value: Any) -> None:
        if isinstance(key, str):
            index = self.index_of(key)
            if index < 0:
                msg = f"No parameter named {key!r}"
                raise KeyError(msg)
            self._parameters[index] = _coerce(value)
            return
        if isinstance(key, slice):
            self._parameters[key] = [_coerce(item) for item in value]
            return
        self._parameters[key] = _coerce(value)

    def __delitem__(self, key: Any) -> None:
        if isinstance(key, str):
            self.remove_by_name(key)
            return
        del self._parameters[key]

    def __contains__(self, item: object) -> bool:
        if isinstance(item, str):
            return self.index_of(item) >= 0
        return item in self._parameters

    def insert(self, index: int, value: Any) -> None:
        self._parameters.insert(index, _coerce(value))

    def add(self, value: Any) -> int:
        """Append a parameter (or a bare value wrapped in an unnamed parameter).

        Returns:
            Index of the new parameter
        """
        self._parameters.append(_coerce(value))
        return len(self._parameters) - 1

    def add_with_value(self, name: str, value: Any, portable_type: Optional[PortableType] = None) -> Parameter:
        parameter = Parameter(name, value, portable_type)
        self._parameters.append(parameter)
        return parameter

    def index_of(self, name: str) -> int:
        """Index of the first parameter called ``name``, or -1."""
        wanted = _normalize(name)
        for index, parameter in enumerate(self._parameters):
            if _normalize(parameter.name) == wanted:
                return index
        return -1

    def contains(self, name: str) -> bool:
        return self.index_of(name) >= 0

    def find_index(self, predicate: "Callable[[Parameter], bool]", start: int = 0) -> int:
        for index in range(start, len(self._parameters)):
            if predicate(self._parameters[index]):
                return index
        return -1

    def remove_by_name(self, name: str) -> None:
        index = self.index_of(name)
        if index >= 0:
            del self._parameters[index]

    def clear(self) -> None:
        self._parameters.clear()

    def names(self) -> tuple[str, ...]:
        """Parameter names in list order (empty string for unnamed parameters)."""
        return tuple(_normalize(parameter.name) or "" for parameter in self._parameters)


def _coerce(value: Any) -> Parameter:
    if isinstance(value, Parameter):
        return value
    return Parameter(value=value)
