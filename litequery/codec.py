"""Conversion between Python values and the engine's dynamic value model.

SQLite stores exactly one of five kinds per value: integer, float, text,
blob or null.  Python has a native type for each, so decoding is mostly
a type check; encoding narrows the accepted Python types and enforces
the 64-bit integer range before anything reaches the engine.
"""

import enum
from typing import Any, Optional, Sequence, Tuple, Union

from litequery.errors import BindError

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1

EngineValue = Union[None, int, float, str, bytes]


class ColumnKind(enum.IntEnum):
    """Fundamental datatypes, numbered as in the engine's C API."""

    INTEGER = 1
    FLOAT = 2
    TEXT = 3
    BLOB = 4
    NULL = 5


def _label(name: Union[int, str, None]) -> str:
    if name is None:
        return "parameter"
    if isinstance(name, int):
        return f"parameter #{name}"
    return f"parameter {name!r}"


def to_engine(value: Any, name: Union[int, str, None] = None) -> EngineValue:
    """Convert a Python value into something the engine can bind.

    ``name`` is the 1-based position or the placeholder name and is only
    used to point at the offending parameter in error messages.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        if not INT64_MIN <= value <= INT64_MAX:
            raise BindError(f"Integer out of range for {_label(name)}: {value}")
        return value
    if isinstance(value, float):
        return value
    if isinstance(value, str):
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    raise BindError(
        f"Cannot bind {_label(name)}: unsupported type {type(value).__name__}"
    )


def kind_of(raw: Any) -> ColumnKind:
    if raw is None:
        return ColumnKind.NULL
    if isinstance(raw, int):
        return ColumnKind.INTEGER
    if isinstance(raw, float):
        return ColumnKind.FLOAT
    if isinstance(raw, str):
        return ColumnKind.TEXT
    return ColumnKind.BLOB


def from_engine(kind: ColumnKind, raw: Any) -> Optional[Any]:
    """Convert a column value read from the engine into its Python form."""
    if kind is ColumnKind.NULL:
        return None
    if kind is ColumnKind.INTEGER:
        return int(raw)
    if kind is ColumnKind.FLOAT:
        return float(raw)
    if kind is ColumnKind.TEXT:
        if isinstance(raw, (bytes, bytearray, memoryview)):
            return bytes(raw).decode("utf-8")
        return raw
    return bytes(raw)


def decode_row(row: Sequence[Any]) -> Tuple[Any, ...]:
    return tuple(from_engine(kind_of(raw), raw) for raw in row)
