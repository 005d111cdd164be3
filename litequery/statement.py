"""Statement lifecycle: prepare, bind, step and finalize.

The engine compiles, binds and runs the first step of a statement in a
single call, and its execution tracer fires after compile and bind but
before that first step.  Column names are read and the connection's
trace callback is invoked from that tracer, so both happen exactly once
per execution and before any row is produced.

Every engine call made here runs inside the owning connection's
blocking region (see :meth:`litequery.Connection._blocking`).
"""

import contextlib
import enum
import logging
from typing import TYPE_CHECKING, Any, AsyncIterator, Iterable, List, Optional, Tuple

import apsw

from litequery.binding import NamedParameters, Parameters, bind_parameters
from litequery.errors import SQLError, UseAfterCloseError, engine_errors, translate
from litequery.results import RowConsumer, Shape, column_names, make_sink

if TYPE_CHECKING:
    from litequery.connection import Connection

logger = logging.getLogger(__name__)

_DONE = object()


class StatementState(enum.Enum):
    UNPREPARED = "unprepared"
    PREPARED = "prepared"
    ROW = "row"
    DONE = "done"
    FINALIZED = "finalized"


def split_statements(sql: str) -> List[str]:
    """Split ``sql`` into individual statements.

    A semicolon ends a statement only where the engine's completeness
    check agrees, so semicolons inside literals, comments and trigger
    bodies are left alone.  Blank pieces are dropped; trailing text
    without a semicolon forms the last statement.
    """
    statements: List[str] = []
    start = 0
    for index, char in enumerate(sql):
        if char == ";" and apsw.complete(sql[start:index + 1]):
            _append_statement(statements, sql[start:index + 1])
            start = index + 1
    _append_statement(statements, sql[start:])
    return statements


def _append_statement(statements: List[str], piece: str) -> None:
    text = piece.strip()
    if text and text != ";":
        statements.append(text)


def _may_be_comment_only(piece: str) -> bool:
    return "--" in piece or "/*" in piece


class Statement:
    """A compiled SQL statement tied to one connection.

    Statements created by the connection's query helpers are ephemeral
    and finalized at the end of the call that created them.  Statements
    returned by :meth:`litequery.Connection.prepare` are reusable: each
    call binds fresh parameters and resets the statement afterwards,
    until :meth:`close` finalizes it.

    A statement is driven by one logical operation at a time; using the
    same statement concurrently from several tasks is not supported.
    """

    def __init__(
        self,
        connection: "Connection",
        sql: str,
        *,
        multi: bool = False,
        ephemeral: bool = False,
    ) -> None:
        self._connection = connection
        self._ephemeral = ephemeral
        self._cursor: Optional[apsw.Cursor] = None
        self._columns: Tuple[str, ...] = ()
        self.sql = sql
        self.state = StatementState.UNPREPARED
        statements = split_statements(sql)
        if not multi:
            statements = statements[:1]
        self._preamble = statements[:-1]
        self._body: Optional[str] = statements[-1] if statements else None
        if len(statements) > 1:
            logger.debug("Split SQL into %d statements", len(statements))

    def __repr__(self) -> str:
        return f"<Statement sql={self.sql!r} state={self.state.value}>"

    async def __aenter__(self) -> "Statement":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    @property
    def closed(self) -> bool:
        return self.state is StatementState.FINALIZED or self._connection.closed

    def _check_usable(self) -> None:
        self._connection._check_open()
        if self.state is StatementState.FINALIZED:
            raise UseAfterCloseError("Statement is closed")
        self._connection._last_error = None

    # -- engine side, always called on the connection's worker thread --

    def _open_cursor(self) -> apsw.Cursor:
        if self._cursor is None:
            self._cursor = self._connection._db.cursor()
        return self._cursor

    def _trace_only(self, cursor: apsw.Cursor, sql: str, bindings: Any) -> bool:
        self._connection._emit_trace(sql)
        return True

    def _drain(self, cursor: apsw.Cursor, sql: str) -> None:
        cursor.exec_trace = self._trace_only
        with engine_errors():
            for _ in cursor.execute(sql, ()):
                pass

    def _holds_statement(self, cursor: apsw.Cursor, sql: str) -> bool:
        found = False

        def on_prepared(cursor: apsw.Cursor, sql: str, bindings: Any) -> bool:
            nonlocal found
            found = cursor.has_vdbe
            return False

        cursor.exec_trace = on_prepared
        try:
            cursor.execute(sql, ())
        except apsw.ExecTraceAbort:
            pass
        except apsw.Error:
            # compile errors only come from real statements
            return True
        return found

    def _trim_comment_tail(self, cursor: apsw.Cursor) -> None:
        while (
            self._body is not None
            and _may_be_comment_only(self._body)
            and not self._holds_statement(cursor, self._body)
        ):
            self._body = self._preamble.pop() if self._preamble else None

    def _prepare_blocking(
        self,
        bindings: Any,
        describe_only: bool = False,
        require_columns: bool = False,
    ) -> None:
        cursor = self._open_cursor()
        self._trim_comment_tail(cursor)
        preamble, self._preamble = self._preamble, []
        for sql in preamble:
            self._drain(cursor, sql)
        self._columns = ()
        self.state = StatementState.PREPARED
        if self._body is None:
            self.state = StatementState.DONE
            return
        if isinstance(bindings, NamedParameters):
            bindings = bindings.for_sql(self._body)

        def on_prepared(cursor: apsw.Cursor, sql: str, bound: Any) -> bool:
            self._columns = tuple(column_names(cursor.get_description()))
            if describe_only:
                return False
            self._connection._emit_trace(sql)
            return not (require_columns and not self._columns)

        cursor.exec_trace = on_prepared
        try:
            cursor.execute(self._body, bindings)
        except apsw.ExecTraceAbort:
            if describe_only:
                return
            raise SQLError("Expected query with at least one column") from None
        except apsw.Error as exc:
            raise translate(exc) from exc

    def _step_blocking(self) -> Any:
        with engine_errors():
            row = next(self._cursor, _DONE)
        self.state = StatementState.DONE if row is _DONE else StatementState.ROW
        return row

    def _batch_blocking(self, parameter_sets: Iterable[Parameters]) -> int:
        cursor = self._open_cursor()
        cursor.exec_trace = None
        self.state = StatementState.PREPARED
        changes = 0
        traced = False
        for parameters in parameter_sets:
            bindings = bind_parameters(parameters, self._body)
            if not traced:
                self._connection._emit_trace(self._body)
                traced = True
            with engine_errors():
                for _ in cursor.execute(self._body, bindings):
                    pass
                changes += self._connection._db.changes()
        self.state = StatementState.DONE
        return changes

    def _release_blocking(self) -> None:
        cursor, self._cursor = self._cursor, None
        if cursor is not None:
            cursor.close(True)

    # -- event loop side --

    @contextlib.asynccontextmanager
    async def _scope(self) -> AsyncIterator[None]:
        try:
            yield
        finally:
            if self._ephemeral:
                await self.finalize()
            else:
                await self._reset()

    async def _reset(self) -> None:
        if self._cursor is not None and not self._connection.closed:
            await self._connection._blocking(self._release_blocking)
        self._cursor = None
        self.state = StatementState.UNPREPARED

    async def _step(self) -> Any:
        return await self._connection._blocking(self._step_blocking)

    async def _run(
        self,
        parameters: Parameters,
        shape: Shape,
        consumer: Optional[RowConsumer] = None,
    ) -> Any:
        self._check_usable()
        if self._body is None:
            return None
        bindings = bind_parameters(parameters)
        async with self._scope():
            await self._connection._blocking(
                self._prepare_blocking, bindings, False, shape is Shape.COLUMN
            )
            if self._body is None:
                return None
            names = self._columns
            if shape.single:
                row = await self._step()
                if row is _DONE:
                    return None
                return shape.convert(names, row)
            sink = make_sink(consumer)
            while True:
                row = await self._step()
                if row is _DONE:
                    break
                await sink.push(shape.convert(names, row))
            return sink.result()

    async def finalize(self) -> None:
        """Release the compiled statement; later calls are no-ops."""
        if self.state is StatementState.FINALIZED:
            return
        if self._cursor is not None and not self._connection.closed:
            await self._connection._blocking(self._release_blocking)
        self._cursor = None
        self.state = StatementState.FINALIZED

    close = finalize

    async def query(
        self, parameters: Parameters = None, *, on_row: Optional[RowConsumer] = None
    ) -> Any:
        """Run the statement, returning rows as dicts keyed by column name.

        With ``on_row`` each row is handed to the callable as soon as it is
        read and the number of rows delivered is returned instead.
        """
        return await self._run(parameters, Shape.MAPPING, on_row)

    query_hash = query

    async def query_ary(
        self, parameters: Parameters = None, *, on_row: Optional[RowConsumer] = None
    ) -> Any:
        """Run the statement, returning rows as lists of values."""
        return await self._run(parameters, Shape.SEQUENCE, on_row)

    async def query_single_row(self, parameters: Parameters = None) -> Any:
        """Return the first row as a dict, or None when there are no rows."""
        return await self._run(parameters, Shape.SINGLE_ROW)

    async def query_single_column(
        self, parameters: Parameters = None, *, on_row: Optional[RowConsumer] = None
    ) -> Any:
        """Return the first column of every row."""
        return await self._run(parameters, Shape.COLUMN, on_row)

    async def query_single_value(self, parameters: Parameters = None) -> Any:
        """Return the first column of the first row, or None."""
        return await self._run(parameters, Shape.SINGLE_VALUE)

    async def execute(self, parameters: Parameters = None) -> Optional[int]:
        """Run the statement for its effect and return the change count."""
        if await self._run(parameters, Shape.SEQUENCE, _discard) is None:
            return None
        return self._connection.changes()

    async def execute_many(self, parameter_sets: Iterable[Parameters]) -> Optional[int]:
        """Run the statement once per parameter set.

        Returns the total number of rows changed.  The first failing
        parameter set stops the batch.
        """
        self._check_usable()
        if self._body is None:
            return None
        async with self._scope():
            return await self._connection._blocking(
                self._batch_blocking, parameter_sets
            )

    async def columns(self) -> Optional[List[str]]:
        """Return the column names without stepping the statement."""
        self._check_usable()
        if self._body is None:
            return None
        async with self._scope():
            await self._connection._blocking(
                self._prepare_blocking, apsw._null_bindings, True
            )
            if self._body is None:
                return None
            return list(self._columns)


def _discard(row: Any) -> None:
    pass
