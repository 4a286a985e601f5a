"""Bridge between portable parameter types and native driver type codes.

Components:
- PortableType: driver-agnostic parameter/column type enumeration
- NativeType: native type codes (``java.sql.Types`` numbering)
- TypeMapping: one row of the registration table
- TypeRegistry: first-registration-wins lookup tables built from the ordered table
- IsolationLevel: portable transaction isolation levels and their native codes
- DBNull: marker returned for SQL NULL values

The registration table is many-to-one in both directions: ``INT32`` and ``UINT32``
both bind as ``INTEGER``, and ``INTEGER`` always reads back as ``INT32``. Order in
``DEFAULT_TYPE_MAPPINGS`` is therefore significant.
"""

import datetime
import uuid
from collections.abc import Callable, Iterable
from decimal import Decimal
from enum import Enum, IntEnum
from typing import Any, Final, NamedTuple, Optional

from mypy_extensions import mypyc_attr

from sqlbridge.exceptions import ImproperConfigurationError, UnsupportedTypeError

__all__ = (
    "DEFAULT_TYPE_MAPPINGS",
    "DBNull",
    "DBNullType",
    "IsolationLevel",
    "NativeType",
    "PortableType",
    "TypeMapping",
    "TypeRegistry",
    "converter_to_native",
    "converter_to_portable",
    "get_type_registry",
    "python_type",
    "to_native",
    "to_native_isolation",
    "to_portable",
    "to_portable_isolation",
)

Converter = Callable[[Any], Any]


class DBNullType:
    """Singleton marker for a SQL NULL value."""

    __slots__ = ()
    _instance: "Optional[DBNullType]" = None

    def __new__(cls) -> "DBNullType":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "DBNull"

    def __bool__(self) -> bool:
        return False

    def __reduce__(self) -> str:
        return "DBNull"


DBNull: Final = DBNullType()


class PortableType(str, Enum):
    """Portable parameter and column types exposed to application code."""

    ANSI_STRING = "ansi_string"
    ANSI_STRING_FIXED_LENGTH = "ansi_string_fixed_length"
    BINARY = "binary"
    BOOLEAN = "boolean"
    BYTE = "byte"
    CURRENCY = "currency"
    DATE = "date"
    DATETIME = "datetime"
    DATETIME2 = "datetime2"
    DATETIME_OFFSET = "datetime_offset"
    DECIMAL = "decimal"
    DOUBLE = "double"
    GUID = "guid"
    INT16 = "int16"
    INT32 = "int32"
    INT64 = "int64"
    OBJECT = "object"
    SBYTE = "sbyte"
    SINGLE = "single"
    STRING = "string"
    STRING_FIXED_LENGTH = "string_fixed_length"
    TIME = "time"
    UINT16 = "uint16"
    UINT32 = "uint32"
    UINT64 = "uint64"
    VAR_NUMERIC = "var_numeric"
    XML = "xml"


class NativeType(IntEnum):
    """Native type codes understood by the driver layer."""

    ARRAY = 2003
    BIGINT = -5
    BINARY = -2
    BOOLEAN = 16
    CHAR = 1
    DATE = 91
    DECIMAL = 3
    DOUBLE = 8
    FLOAT = 6
    INTEGER = 4
    JAVA_OBJECT = 2000
    LONGVARBINARY = -4
    NCHAR = -15
    NULL = 0
    NVARCHAR = -9
    OTHER = 1111
    SMALLINT = 5
    TIME = 92
    TIMESTAMP = 93
    TINYINT = -6
    VARCHAR = 12


class IsolationLevel(str, Enum):
    """Portable transaction isolation levels."""

    UNSPECIFIED = "unspecified"
    READ_UNCOMMITTED = "read_uncommitted"
    READ_COMMITTED = "read_committed"
    REPEATABLE_READ = "repeatable_read"
    SERIALIZABLE = "serializable"
    SNAPSHOT = "snapshot"
    CHAOS = "chaos"


_ISOLATION_TO_NATIVE: Final[dict[IsolationLevel, int]] = {
    IsolationLevel.UNSPECIFIED: 0,
    IsolationLevel.READ_UNCOMMITTED: 1,
    IsolationLevel.READ_COMMITTED: 2,
    IsolationLevel.REPEATABLE_READ: 4,
    IsolationLevel.SERIALIZABLE: 8,
}
_ISOLATION_TO_PORTABLE: Final[dict[int, IsolationLevel]] = {code: level for level, code in _ISOLATION_TO_NATIVE.items()}


def to_native_isolation(level: IsolationLevel) -> int:
    """Map a portable isolation level to the native isolation code."""
    try:
        return _ISOLATION_TO_NATIVE[level]
    except KeyError:
        msg = f"Unsupported transaction isolation level: {level}"
        raise UnsupportedTypeError(msg) from None


def to_portable_isolation(code: int) -> IsolationLevel:
    """Map a native isolation code back to a portable isolation level."""
    try:
        return _ISOLATION_TO_PORTABLE[code]
    except KeyError:
        msg = f"Unsupported native transaction isolation code: {code}"
        raise UnsupportedTypeError(msg) from None


class TypeMapping(NamedTuple):
    """One registration: native code, portable type, Python type and both converters."""

    native: NativeType
    portable: PortableType
    python_type: "Optional[type]"
    to_native: Converter
    to_portable: Converter


@mypyc_attr(allow_interpreted_subclasses=False)
class TypeRegistry:
    """Lookup tables for the portable/native type bridge.

    Each direction keeps the first registration it sees; later registrations for an
    already populated slot are ignored. Registering the exact same
    ``(native, portable)`` pair twice is treated as a configuration mistake.
    """

    __slots__ = (
        "_native_to_portable",
        "_portable_to_native",
        "_python_types",
        "_registered",
        "_to_native",
        "_to_portable",
    )

    def __init__(self, mappings: "Iterable[TypeMapping]" = ()) -> None:
        self._native_to_portable: dict[NativeType, PortableType] = {}
        self._portable_to_native: dict[PortableType, NativeType] = {}
        self._python_types: dict[NativeType, type] = {}
        self._to_native: dict[PortableType, Converter] = {}
        self._to_portable: dict[NativeType, Converter] = {}
        self._registered: set[tuple[NativeType, PortableType]] = set()
        for mapping in mappings:
            self.register(mapping)

    def register(self, mapping: TypeMapping) -> None:
        pair = (mapping.native, mapping.portable)
        if pair in self._registered:
            msg = f"Duplicate type mapping registered for {mapping.portable.name} <-> {mapping.native.name}"
            raise ImproperConfigurationError(msg)
        self._registered.add(pair)

        self._native_to_portable.setdefault(mapping.native, mapping.portable)
        self._portable_to_native.setdefault(mapping.portable, mapping.native)
        if mapping.python_type is not None:
            self._python_types.setdefault(mapping.native, mapping.python_type)
        self._to_native.setdefault(mapping.portable, mapping.to_native)
        self._to_portable.setdefault(mapping.native, mapping.to_portable)

    def to_native(self, portable: PortableType) -> NativeType:
        try:
            return self._portable_to_native[portable]
        except KeyError:
            msg = f"Cannot convert the portable type {_name(portable)} to a native type"
            raise UnsupportedTypeError(msg) from None

    def to_portable(self, native: int) -> PortableType:
        try:
            return self._native_to_portable[native]  # type: ignore[index]
        except KeyError:
            msg = f"Cannot convert native type {_name(native)} to a portable type"
            raise UnsupportedTypeError(msg) from None

    def converter_to_native(self, portable: PortableType) -> Converter:
        try:
            return self._to_native[portable]
        except KeyError:
            msg = f"Cannot find a converter from the portable type {_name(portable)} to a native type"
            raise UnsupportedTypeError(msg) from None

    def converter_to_portable(self, native: int) -> Converter:
        try:
            return self._to_portable[native]  # type: ignore[index]
        except KeyError:
            msg = f"Cannot find a converter from native type {_name(native)} to a portable type"
            raise UnsupportedTypeError(msg) from None

    def python_type(self, native: int) -> type:
        try:
            return self._python_types[native]  # type: ignore[index]
        except KeyError:
            msg = f"Cannot convert native type {_name(native)} to a Python type"
            raise UnsupportedTypeError(msg) from None


def _name(value: Any) -> str:
    return getattr(value, "name", None) or repr(value)


# -- converters --


def _identity(value: Any) -> Any:
    return value


def _to_bool(value: Any) -> bool:
    return bool(value)


def _integer_converter(bits: int) -> Converter:
    low = -(1 << (bits - 1))
    high = (1 << (bits - 1)) - 1

    def convert(value: Any) -> int:
        number = int(value)
        if not low <= number <= high:
            msg = f"Value {number} does not fit in a signed {bits}-bit integer"
            raise ValueError(msg)
        return number

    return convert


def _unsigned_to_native(bits: int) -> Converter:
    limit = 1 << bits

    def convert(value: Any) -> int:
        number = int(value)
        if not 0 <= number < limit:
            msg = f"Value {number} does not fit in an unsigned {bits}-bit integer"
            raise ValueError(msg)
        return number - limit if number >= limit >> 1 else number

    return convert


def _unsigned_to_portable(bits: int) -> Converter:
    mask = (1 << bits) - 1

    def convert(value: Any) -> int:
        return int(value) & mask

    return convert


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _to_float(value: Any) -> float:
    return float(value)


def _to_date(value: Any) -> datetime.date:
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    if isinstance(value, str):
        return datetime.date.fromisoformat(value[:10])
    msg = f"Cannot convert {type(value).__name__} to a date"
    raise TypeError(msg)


def _to_datetime(value: Any) -> datetime.datetime:
    if isinstance(value, datetime.datetime):
        return value
    if isinstance(value, datetime.date):
        return datetime.datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        return datetime.datetime.fromisoformat(value)
    msg = f"Cannot convert {type(value).__name__} to a datetime"
    raise TypeError(msg)


def _to_time(value: Any) -> datetime.time:
    if isinstance(value, datetime.datetime):
        return value.time()
    if isinstance(value, datetime.time):
        return value
    if isinstance(value, str):
        return datetime.time.fromisoformat(value)
    msg = f"Cannot convert {type(value).__name__} to a time"
    raise TypeError(msg)


def _to_bytes(value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, uuid.UUID):
        return value.bytes
    msg = f"Cannot convert {type(value).__name__} to bytes"
    raise TypeError(msg)


_int8 = _integer_converter(8)
_int16 = _integer_converter(16)
_int32 = _integer_converter(32)
_int64 = _integer_converter(64)

DEFAULT_TYPE_MAPPINGS: Final[tuple[TypeMapping, ...]] = (
    TypeMapping(NativeType.VARCHAR, PortableType.ANSI_STRING, str, _identity, _identity),
    TypeMapping(NativeType.CHAR, PortableType.ANSI_STRING_FIXED_LENGTH, str, _identity, _identity),
    TypeMapping(NativeType.LONGVARBINARY, PortableType.BINARY, bytes, _to_bytes, _to_bytes),
    TypeMapping(NativeType.BINARY, PortableType.BINARY, bytes, _to_bytes, _to_bytes),
    TypeMapping(NativeType.BOOLEAN, PortableType.BOOLEAN, bool, _to_bool, _to_bool),
    TypeMapping(NativeType.TINYINT, PortableType.BYTE, int, _unsigned_to_native(8), _unsigned_to_portable(8)),
    TypeMapping(NativeType.DATE, PortableType.DATE, datetime.date, _to_date, _to_date),
    TypeMapping(NativeType.TIMESTAMP, PortableType.DATETIME, datetime.datetime, _to_datetime, _to_datetime),
    TypeMapping(NativeType.TIMESTAMP, PortableType.DATETIME2, datetime.datetime, _to_datetime, _to_datetime),
    TypeMapping(NativeType.TIMESTAMP, PortableType.DATETIME_OFFSET, datetime.datetime, _to_datetime, _to_datetime),
    TypeMapping(NativeType.DECIMAL, PortableType.DECIMAL, Decimal, _to_decimal, _to_decimal),
    TypeMapping(NativeType.DOUBLE, PortableType.DOUBLE, float, _to_float, _to_float),
    TypeMapping(NativeType.SMALLINT, PortableType.INT16, int, _int16, _int16),
    TypeMapping(NativeType.INTEGER, PortableType.INT32, int, _int32, _int32),
    TypeMapping(NativeType.BIGINT, PortableType.INT64, int, _int64, _int64),
    TypeMapping(NativeType.SMALLINT, PortableType.UINT16, int, _unsigned_to_native(16), _unsigned_to_portable(16)),
    TypeMapping(NativeType.INTEGER, PortableType.UINT32, int, _unsigned_to_native(32), _unsigned_to_portable(32)),
    TypeMapping(NativeType.BIGINT, PortableType.UINT64, int, _unsigned_to_native(64), _unsigned_to_portable(64)),
    TypeMapping(NativeType.JAVA_OBJECT, PortableType.OBJECT, object, _identity, _identity),
    TypeMapping(NativeType.TINYINT, PortableType.SBYTE, int, _int8, _int8),
    TypeMapping(NativeType.FLOAT, PortableType.SINGLE, float, _to_float, _to_float),
    TypeMapping(NativeType.NVARCHAR, PortableType.STRING, str, _identity, _identity),
    TypeMapping(NativeType.NCHAR, PortableType.STRING_FIXED_LENGTH, str, _identity, _identity),
    TypeMapping(NativeType.TIME, PortableType.TIME, datetime.time, _to_time, _to_time),
    TypeMapping(NativeType.ARRAY, PortableType.VAR_NUMERIC, None, _identity, _identity),
)

_default_registry: Final = TypeRegistry(DEFAULT_TYPE_MAPPINGS)


def get_type_registry() -> TypeRegistry:
    """Get the process-wide type registry."""
    return _default_registry


def to_native(portable: PortableType) -> NativeType:
    """Native type code used to bind values of ``portable`` type."""
    return _default_registry.to_native(portable)


def to_portable(native: int) -> PortableType:
    """Portable type reported for columns of the ``native`` type code."""
    return _default_registry.to_portable(native)


def converter_to_native(portable: PortableType) -> Converter:
    """Function converting application values of ``portable`` type to native values."""
    return _default_registry.converter_to_native(portable)


def converter_to_portable(native: int) -> Converter:
    """Function converting native values of the ``native`` type code to portable values."""
    return _default_registry.converter_to_portable(native)


def python_type(native: int) -> type:
    """Python type produced for columns of the ``native`` type code."""
    return _default_registry.python_type(native)
