"""Binding of positional and named parameter sets onto statements."""

import re
from collections.abc import Mapping as MappingABC
from typing import Any, Dict, Iterator, Mapping, Optional, Sequence, Tuple, Union

from litequery.codec import EngineValue, to_engine
from litequery.errors import BindError

# Placeholder markers for named parameters, in fallback lookup order.
NAME_PREFIXES = (":", "@", "$")

_MISSING = object()

Parameters = Union[Sequence[Any], Mapping[Any, Any], None]

# Literals, quoted identifiers and comments are matched first so that
# marker-like text inside them is skipped.
_TOKENS = re.compile(
    r"'(?:[^']|'')*'"
    r'|"(?:[^"]|"")*"'
    r"|`[^`]*`"
    r"|\[[^\]]*\]"
    r"|--[^\n]*"
    r"|/\*.*?(?:\*/|\Z)"
    r"|([:@$])(\w+)",
    re.DOTALL,
)


def placeholder_markers(sql: str) -> Dict[str, str]:
    """Map each named placeholder in ``sql`` to the marker it is written with.

    A name written with several markers keeps the first one.
    """
    markers: Dict[str, str] = {}
    for match in _TOKENS.finditer(sql):
        marker, name = match.group(1, 2)
        if marker:
            markers.setdefault(name, marker)
    return markers


def resolve_named(
    mapping: Mapping[Any, Any], name: str, marker: Optional[str] = None
) -> Any:
    """Look up the value for the placeholder ``name`` (marker stripped).

    Lookups happen in a fixed order and the first match wins: the name
    with the marker it is written with in the SQL, the name with the
    other markers (``":x"``, ``"@x"``, ``"$x"``), the bare name as a
    key, then any non-string key whose ``str()`` is the bare name.  A
    placeholder with no match binds null.
    """
    prefixes = NAME_PREFIXES
    if marker is not None:
        prefixes = (marker,) + tuple(p for p in NAME_PREFIXES if p != marker)
    for prefix in prefixes:
        value = mapping.get(prefix + name, _MISSING)
        if value is not _MISSING:
            return value
    value = mapping.get(name, _MISSING)
    if value is not _MISSING:
        return value
    for key, value in mapping.items():
        if not isinstance(key, str) and str(key) == name:
            return value
    return None


class NamedParameters(MappingABC):
    """Mapping handed to the engine for statements with named placeholders.

    The engine asks for every placeholder of the statement by its bare
    name; unmatched names resolve to null instead of raising.
    """

    def __init__(self, mapping: Mapping[Any, Any], sql: Optional[str] = None) -> None:
        self._mapping = mapping
        self._markers = placeholder_markers(sql) if sql else {}

    def for_sql(self, sql: str) -> "NamedParameters":
        """Return these parameters keyed to the placeholders of ``sql``."""
        return NamedParameters(self._mapping, sql)

    def __getitem__(self, name: str) -> EngineValue:
        value = resolve_named(self._mapping, name, self._markers.get(name))
        return to_engine(value, name)

    def __contains__(self, name: object) -> bool:
        return True

    def __iter__(self) -> Iterator[Any]:
        return iter(self._mapping)

    def __len__(self) -> int:
        return len(self._mapping)


def bind_parameters(
    parameters: Parameters,
    sql: Optional[str] = None,
) -> Union[Tuple[EngineValue, ...], NamedParameters]:
    """Turn a parameter set into engine bindings.

    Sequences bind by 1-based position; the engine rejects a sequence
    whose length differs from the placeholder count.  Mappings look up
    names using the markers found in ``sql``.
    """
    if parameters is None:
        return ()
    if isinstance(parameters, MappingABC):
        return NamedParameters(parameters, sql)
    if isinstance(parameters, (str, bytes, bytearray, memoryview)):
        raise BindError(
            "Parameters must be a sequence or a mapping, "
            f"not {type(parameters).__name__}"
        )
    try:
        values = list(parameters)
    except TypeError:
        raise BindError(
            "Parameters must be a sequence or a mapping, "
            f"not {type(parameters).__name__}"
        ) from None
    return tuple(to_engine(value, index) for index, value in enumerate(values, 1))

