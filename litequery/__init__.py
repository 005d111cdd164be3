"""Async SQLite queries on a worker thread, without stalling the event loop."""

from typing import List

from litequery.backup import BACKUP_RETRY_DELAY, BACKUP_STEP_PAGES
from litequery.connection import Connection, connect, runtime_status, sqlite3_version
from litequery.errors import (
    BackupError,
    BindError,
    BusyError,
    CloseError,
    Error,
    InterruptError,
    OpenError,
    SQLError,
    UseAfterCloseError,
)
from litequery.statement import Statement, StatementState

__version__: str = "0.1.0"
__all__: List[str] = [
    "BACKUP_RETRY_DELAY",
    "BACKUP_STEP_PAGES",
    "BackupError",
    "BindError",
    "BusyError",
    "CloseError",
    "Connection",
    "Error",
    "InterruptError",
    "OpenError",
    "SQLError",
    "Statement",
    "StatementState",
    "UseAfterCloseError",
    "connect",
    "runtime_status",
    "sqlite3_version",
]
