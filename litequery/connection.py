"""Async connection to an SQLite database."""

import asyncio
import concurrent.futures
import functools
import logging
import os
from typing import Any, Callable, Iterable, List, Optional, Tuple, TypeVar, Union

import apsw

from litequery.binding import Parameters
from litequery.errors import (
    CloseError,
    Error,
    OpenError,
    UseAfterCloseError,
    engine_errors,
)
from litequery.results import RowConsumer, Shape
from litequery.statement import Statement

logger = logging.getLogger(__name__)

T = TypeVar("T")

TraceCallback = Callable[[str], Any]

_NOT_AN_ERROR = "not an error"


class Connection:
    """Async SQLite connection.

    Engine calls that may block (compiling and stepping statements,
    backup steps, closing) run on a single worker thread owned by the
    connection, so the event loop keeps serving other tasks meanwhile.
    Calls on one connection are strictly sequential; driving the same
    connection from several tasks at once is the caller's responsibility
    to avoid.  :meth:`interrupt` is the exception and may be called from
    any thread while a query is running.
    """

    def __init__(
        self,
        path: Union[str, "os.PathLike[str]"],
        *,
        busy_timeout: Optional[float] = None,
        load_extensions: bool = False,
    ) -> None:
        self._path = os.fspath(path)
        self._trace: Optional[TraceCallback] = None
        self._busy_timeout: Optional[float] = None
        self._last_error: Optional[Error] = None
        try:
            self._db: Optional[apsw.Connection] = apsw.Connection(self._path)
        except apsw.Error as exc:
            raise OpenError(str(exc), code=getattr(exc, "extendedresult", None)) from exc
        try:
            if load_extensions:
                with engine_errors(OpenError):
                    self._db.enable_load_extension(True)
            if busy_timeout is not None:
                self.busy_timeout = busy_timeout
        except Exception:
            self._db.close(True)
            self._db = None
            raise
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="litequery"
        )
        logger.debug("Opened database %s", self._path)

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"<Connection path={self._path!r} {state}>"

    async def __aenter__(self) -> "Connection":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    @property
    def closed(self) -> bool:
        return self._db is None

    def _check_open(self) -> None:
        if self._db is None:
            raise UseAfterCloseError("Database is closed")

    async def _blocking(self, func: Callable[..., T], *args: Any) -> T:
        """Run ``func`` on the worker thread and wait for it.

        Cancelling the awaiting task interrupts the engine call in flight;
        the worker finishes it before running anything else.
        """
        self._check_open()
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(
                self._executor, functools.partial(func, *args)
            )
        except asyncio.CancelledError:
            if self._db is not None:
                self._db.interrupt()
            raise
        except Error as exc:
            if exc.code is not None:
                self._last_error = exc
            raise

    def _emit_trace(self, sql: str) -> None:
        callback = self._trace
        if callback is not None:
            callback(sql)

    async def close(self) -> None:
        """Close the database.  Closing a closed database does nothing."""
        if self._db is None:
            return
        db = self._db
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(self._executor, db.close)
        except apsw.Error as exc:
            raise CloseError(str(exc), code=getattr(exc, "extendedresult", None)) from exc
        self._db = None
        self._executor.shutdown(wait=False)
        logger.debug("Closed database %s", self._path)

    # -- queries --

    async def _perform(
        self,
        sql: str,
        parameters: Parameters,
        shape: Shape,
        consumer: Optional[RowConsumer] = None,
    ) -> Any:
        self._check_open()
        if not sql.strip():
            return None
        statement = Statement(self, sql, multi=True, ephemeral=True)
        return await statement._run(parameters, shape, consumer)

    async def query(
        self,
        sql: str,
        parameters: Parameters = None,
        *,
        on_row: Optional[RowConsumer] = None,
    ) -> Any:
        """Run a query, returning rows as dicts keyed by column name.

        ``sql`` may hold several statements separated by semicolons; they
        run in order and only the last one's rows are returned.
        Parameters are bound to the last statement, either as a sequence
        for ``?`` placeholders or as a mapping for named ones.  Mapping
        keys may carry the placeholder marker or omit it::

            await db.query("select * from foo where x = :bar", {"bar": 42})
            await db.query("select * from foo where x = :bar", {":bar": 42})

        With ``on_row`` each row is passed to the callable (or awaited
        coroutine function) as soon as it is read and the number of rows
        delivered is returned instead of a list.
        """
        return await self._perform(sql, parameters, Shape.MAPPING, on_row)

    query_hash = query

    async def query_ary(
        self,
        sql: str,
        parameters: Parameters = None,
        *,
        on_row: Optional[RowConsumer] = None,
    ) -> Any:
        """Run a query, returning rows as lists of values."""
        return await self._perform(sql, parameters, Shape.SEQUENCE, on_row)

    async def query_single_row(self, sql: str, parameters: Parameters = None) -> Any:
        """Run a query, returning the first row as a dict or None."""
        return await self._perform(sql, parameters, Shape.SINGLE_ROW)

    async def query_single_column(
        self,
        sql: str,
        parameters: Parameters = None,
        *,
        on_row: Optional[RowConsumer] = None,
    ) -> Any:
        """Run a query, returning the first column of every row."""
        return await self._perform(sql, parameters, Shape.COLUMN, on_row)

    async def query_single_value(self, sql: str, parameters: Parameters = None) -> Any:
        """Run a query, returning the first column of the first row or None."""
        return await self._perform(sql, parameters, Shape.SINGLE_VALUE)

    async def execute(self, sql: str, parameters: Parameters = None) -> Optional[int]:
        """Run SQL for its effect and return the number of changed rows."""
        self._check_open()
        if not sql.strip():
            return None
        statement = Statement(self, sql, multi=True, ephemeral=True)
        return await statement.execute(parameters)

    async def execute_many(
        self, sql: str, parameter_sets: Iterable[Parameters]
    ) -> Optional[int]:
        """Run a single statement once for each parameter set.

        Designed for inserting many records::

            records = [[1, 2, 3], [4, 5, 6]]
            await db.execute_many("insert into foo values (?, ?, ?)", records)

        Returns the total number of rows changed.
        """
        self._check_open()
        if not sql.strip():
            return None
        statement = Statement(self, sql, ephemeral=True)
        return await statement.execute_many(parameter_sets)

    execute_multi = execute_many

    async def columns(self, sql: str) -> Optional[List[str]]:
        """Return the column names of a query without running it."""
        self._check_open()
        if not sql.strip():
            return None
        statement = Statement(self, sql, multi=True, ephemeral=True)
        return await statement.columns()

    async def prepare(self, sql: str) -> Statement:
        """Create a reusable statement for the first statement in ``sql``."""
        self._check_open()
        statement = Statement(self, sql)
        if statement._body is not None:
            # compile once up front so SQL errors surface here
            await statement.columns()
        return statement

    async def backup(
        self,
        destination: Union["Connection", str, "os.PathLike[str]"],
        *,
        source_name: str = "main",
        destination_name: str = "main",
        progress: Optional[Callable[[int, int], Any]] = None,
    ) -> "Connection":
        """Copy this database into ``destination``.

        ``destination`` is either an open connection or a path; a path is
        opened for the duration of the backup and closed afterwards.
        ``progress`` is called with ``(remaining, total)`` page counts after
        every step and once more with ``(total, total)`` at the end.
        """
        from litequery.backup import run_backup

        await run_backup(
            self,
            destination,
            source_name=source_name,
            destination_name=destination_name,
            progress=progress,
        )
        return self

    async def load_extension(self, path: Union[str, "os.PathLike[str]"]) -> "Connection":
        """Load an SQLite extension from ``path``."""
        db = self._require_db()

        def load() -> None:
            with engine_errors(Error):
                db.load_extension(os.fspath(path))

        await self._blocking(load)
        return self

    # -- introspection and settings --

    def _require_db(self) -> apsw.Connection:
        self._check_open()
        return self._db

    def filename(self, db_name: str = "main") -> Optional[str]:
        """Return the filename of the named database, if it has one."""
        with engine_errors(Error):
            return self._require_db().db_filename(db_name) or None

    def last_insert_rowid(self) -> int:
        return self._require_db().last_insert_rowid()

    def changes(self) -> int:
        """Return the number of rows changed by the most recent statement."""
        return self._require_db().changes()

    def total_changes(self) -> int:
        """Return the number of rows changed since the database was opened."""
        return self._require_db().total_changes()

    def errcode(self) -> int:
        """Return the result code of the last failed operation, or 0."""
        self._check_open()
        if self._last_error is None:
            return apsw.SQLITE_OK
        return self._last_error.code

    def errmsg(self) -> str:
        self._check_open()
        if self._last_error is None:
            return _NOT_AN_ERROR
        return self._last_error.message

    def error_offset(self) -> int:
        """Return the byte offset of the last SQL error, or -1."""
        self._check_open()
        if self._last_error is None or self._last_error.offset is None:
            return -1
        return self._last_error.offset

    def transaction_active(self) -> bool:
        return not self._require_db().get_autocommit()

    def status(self, op: int, reset: bool = False) -> Tuple[int, int]:
        """Return ``(current, highwater)`` for a database status counter."""
        db = self._require_db()
        with engine_errors(Error):
            return db.status(op, reset)

    def limit(self, category: int, new_value: Optional[int] = None) -> int:
        """Return the limit for ``category``, setting ``new_value`` if given.

        When a new value is set the previous one is returned.
        """
        db = self._require_db()
        with engine_errors(Error):
            value = db.limit(category, -1 if new_value is None else new_value)
        if value == -1:
            raise Error("Invalid limit category")
        return value

    @property
    def busy_timeout(self) -> Optional[float]:
        """Seconds to wait on a locked database; None when disabled."""
        return self._busy_timeout

    @busy_timeout.setter
    def busy_timeout(self, value: Optional[float]) -> None:
        db = self._require_db()
        if value is not None:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise TypeError("busy_timeout must be a number or None")
            if value < 0:
                raise ValueError("busy_timeout must be >= 0")
        milliseconds = 0 if value is None else int(value * 1000)
        with engine_errors(Error):
            db.set_busy_timeout(milliseconds)
        self._busy_timeout = value if milliseconds else None

    def interrupt(self) -> "Connection":
        """Interrupt the query running on this connection.

        Meant to be called from another thread, or from another task while
        a query is awaited.  The running query stops at its next step and
        raises :class:`litequery.InterruptError`.  Calling this while the
        connection is being closed is not safe.
        """
        self._require_db().interrupt()
        return self

    def trace(self, callback: Optional[TraceCallback] = None) -> "Connection":
        """Install or remove a callback receiving the SQL of each statement.

        The callback runs on the connection's worker thread right before
        the statement executes.
        """
        self._check_open()
        self._trace = callback
        return self

    set_trace_callback = trace


def connect(
    path: Union[str, "os.PathLike[str]"],
    *,
    busy_timeout: Optional[float] = None,
    load_extensions: bool = False,
) -> Connection:
    """Open a connection; use it with ``async with`` to close it on exit."""
    return Connection(path, busy_timeout=busy_timeout, load_extensions=load_extensions)


def runtime_status(op: int, reset: bool = False) -> Tuple[int, int]:
    """Return ``(current, highwater)`` for a process-wide status counter."""
    with engine_errors(Error):
        return apsw.status(op, reset)


def sqlite3_version() -> str:
    return apsw.sqlite_lib_version()
