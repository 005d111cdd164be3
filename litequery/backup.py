"""Online backup between two databases."""

import asyncio
import contextlib
import inspect
import logging
import os
from typing import Any, AsyncIterator, Callable, Optional, Union

import apsw

from litequery.connection import Connection
from litequery.errors import BackupError, Error, translate

logger = logging.getLogger(__name__)

# Pages copied per step, small enough that a step never holds the
# worker thread for long.
BACKUP_STEP_PAGES = 16

# Seconds to wait before retrying a step that found the destination busy.
BACKUP_RETRY_DELAY = 0.1

ProgressCallback = Callable[[int, int], Any]

_RETRY = object()


def _backup_error(exc: apsw.Error) -> BackupError:
    error = translate(exc)
    return BackupError(error.message, code=error.code)


class BackupSession:
    """One incremental copy from ``source`` into ``destination``.

    ``owns_destination`` is fixed at creation: an owned destination was
    opened for this session and is closed when the session is cleaned up,
    a borrowed one is left open.
    """

    def __init__(
        self,
        source: Connection,
        destination: Connection,
        owns_destination: bool,
        handle: apsw.Backup,
    ) -> None:
        self.source = source
        self.destination = destination
        self.owns_destination = owns_destination
        self.handle = handle
        self.remaining = 0
        self.total = 0
        self.done = False

    def _step_blocking(self) -> Any:
        try:
            done = self.handle.step(BACKUP_STEP_PAGES)
        except (apsw.BusyError, apsw.LockedError):
            return _RETRY
        except apsw.Error as exc:
            raise _backup_error(exc) from exc
        self.remaining = self.handle.remaining
        self.total = self.handle.page_count
        return done

    async def copy(self, progress: Optional[ProgressCallback] = None) -> None:
        while not self.done:
            outcome = await self.source._blocking(self._step_blocking)
            if outcome is _RETRY:
                logger.debug("Backup destination busy, retrying")
                await asyncio.sleep(BACKUP_RETRY_DELAY)
                continue
            if outcome:
                self.done = True
                await _report(progress, self.total, self.total)
            else:
                await _report(progress, self.remaining, self.total)

    def _finish_blocking(self) -> None:
        try:
            self.handle.finish()
        except apsw.Error as exc:
            raise _backup_error(exc) from exc

    async def cleanup(self) -> None:
        """Finish the engine backup and close an owned destination."""
        try:
            if not self.source.closed:
                await self.source._blocking(self._finish_blocking)
            else:
                self._finish_blocking()
        finally:
            if self.owns_destination:
                await self.destination.close()


async def _report(progress: Optional[ProgressCallback], remaining: int, total: int) -> None:
    if progress is None:
        return
    outcome = progress(remaining, total)
    if inspect.isawaitable(outcome):
        await outcome


@contextlib.asynccontextmanager
async def open_session(
    source: Connection,
    destination: Union[Connection, str, "os.PathLike[str]"],
    source_name: str = "main",
    destination_name: str = "main",
) -> AsyncIterator[BackupSession]:
    """Start a backup session, cleaning it up however the block exits."""
    source._check_open()
    owns_destination = not isinstance(destination, Connection)
    if owns_destination:
        try:
            target = await source._blocking(Connection, destination)
        except Error as exc:
            raise BackupError(exc.message, code=exc.code) from exc
    else:
        target = destination
        target._check_open()

    def init() -> apsw.Backup:
        try:
            return target._db.backup(destination_name, source._db, source_name)
        except apsw.Error as exc:
            raise _backup_error(exc) from exc

    try:
        handle = await source._blocking(init)
    except BaseException:
        if owns_destination:
            await target.close()
        raise

    session = BackupSession(source, target, owns_destination, handle)
    logger.debug("Started backup of %s into %r", source_name, target)
    failed = False
    try:
        yield session
    except BaseException:
        failed = True
        raise
    finally:
        try:
            await session.cleanup()
        except Exception:
            if not failed:
                raise
            logger.warning("Backup cleanup failed after an earlier error", exc_info=True)
    logger.debug("Finished backup into %r", target)


async def run_backup(
    source: Connection,
    destination: Union[Connection, str, "os.PathLike[str]"],
    *,
    source_name: str = "main",
    destination_name: str = "main",
    progress: Optional[ProgressCallback] = None,
) -> None:
    async with open_session(source, destination, source_name, destination_name) as session:
        await session.copy(progress)
