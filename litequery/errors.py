"""Exception classes for litequery and translation of engine errors."""

import contextlib
import functools
from types import MappingProxyType
from typing import Iterator, Mapping, Optional, Type

import apsw


class Error(Exception):
    """Base exception class for litequery errors."""

    def __init__(
        self,
        message: str,
        *,
        code: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.offset = offset


class OpenError(Error):
    """Exception raised when a database cannot be opened or configured."""


class CloseError(Error):
    """Exception raised when the engine refuses to close a database."""


class SQLError(Error):
    """Exception raised for compile-time or run-time SQL failures."""


class BindError(Error):
    """Exception raised for parameter count, type or name mismatches."""


class BusyError(Error):
    """Exception raised when lock contention outlasts the busy timeout."""


class InterruptError(Error):
    """Exception raised when an operation is cancelled by an interrupt."""


class BackupError(Error):
    """Exception raised when a backup fails to start, step or finish."""


class UseAfterCloseError(Error):
    """Exception raised on use of a closed connection or finalized statement."""


@functools.lru_cache(maxsize=None)
def _engine_errors() -> Mapping[Type[BaseException], Type[Error]]:
    return MappingProxyType(
        {
            apsw.BusyError: BusyError,
            apsw.LockedError: BusyError,
            apsw.InterruptError: InterruptError,
            apsw.BindingsError: BindError,
            apsw.CantOpenError: OpenError,
            apsw.ConnectionClosedError: UseAfterCloseError,
            apsw.CursorClosedError: UseAfterCloseError,
        }
    )


def translate(exc: BaseException, default: Type[Error] = SQLError) -> Error:
    """Map an engine exception onto the litequery taxonomy.

    The engine's extended result code and error offset travel along when
    the engine reports them.
    """
    table = _engine_errors()
    kind = default
    for klass in type(exc).__mro__:
        if klass in table:
            kind = table[klass]
            break
    code = getattr(exc, "extendedresult", None)
    if code is None:
        code = getattr(exc, "result", None)
    offset = getattr(exc, "error_offset", None)
    if offset is not None and offset < 0:
        offset = None
    return kind(str(exc), code=code, offset=offset)


@contextlib.contextmanager
def engine_errors(default: Type[Error] = SQLError) -> Iterator[None]:
    """Re-raise engine exceptions raised in the block as litequery errors."""
    try:
        yield
    except apsw.Error as exc:
        raise translate(exc, default) from exc
