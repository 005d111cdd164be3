"""Tests for connection settings and introspection."""

import os
import re

import apsw
import pytest

import litequery
from litequery import connect


# ---- busy_timeout ----


@pytest.mark.asyncio
async def test_busy_timeout_defaults_to_none(test_db):
    async with connect(test_db) as db:
        assert db.busy_timeout is None


@pytest.mark.asyncio
async def test_busy_timeout_rejects_negative(test_db):
    """Setting busy_timeout to a negative value raises ValueError."""
    async with connect(test_db) as db:
        with pytest.raises(ValueError, match="busy_timeout must be >= 0"):
            db.busy_timeout = -1
        assert db.busy_timeout is None


@pytest.mark.asyncio
async def test_busy_timeout_rejects_non_number(test_db):
    """Setting busy_timeout to a non-number (e.g. str) raises TypeError."""
    async with connect(test_db) as db:
        with pytest.raises(TypeError):
            db.busy_timeout = "30"


@pytest.mark.asyncio
async def test_busy_timeout_set_and_disable(test_db):
    async with connect(test_db) as db:
        db.busy_timeout = 1.5
        assert db.busy_timeout == 1.5
        db.busy_timeout = 0
        assert db.busy_timeout is None
        db.busy_timeout = 2
        db.busy_timeout = None
        assert db.busy_timeout is None


def test_busy_timeout_option_is_validated(test_db):
    with pytest.raises(ValueError):
        litequery.Connection(test_db, busy_timeout=-5)


@pytest.mark.asyncio
async def test_busy_timeout_option(test_db):
    async with connect(test_db, busy_timeout=3) as db:
        assert db.busy_timeout == 3


# ---- limit / status ----


@pytest.mark.asyncio
async def test_limit_get_and_set(test_db):
    async with connect(test_db) as db:
        original = db.limit(apsw.SQLITE_LIMIT_ATTACHED)
        assert original > 1
        assert db.limit(apsw.SQLITE_LIMIT_ATTACHED, 1) == original
        assert db.limit(apsw.SQLITE_LIMIT_ATTACHED) == 1


@pytest.mark.asyncio
async def test_limit_invalid_category(test_db):
    async with connect(test_db) as db:
        with pytest.raises(litequery.Error, match="Invalid limit category"):
            db.limit(-1)


@pytest.mark.asyncio
async def test_status(test_db):
    async with connect(test_db) as db:
        await db.query("SELECT 1")
        current, highwater = db.status(apsw.SQLITE_DBSTATUS_SCHEMA_USED)
        assert isinstance(current, int)
        assert isinstance(highwater, int)


def test_runtime_status():
    current, highwater = litequery.runtime_status(apsw.SQLITE_STATUS_MEMORY_USED)
    assert 0 <= current <= highwater


def test_sqlite3_version():
    assert re.match(r"\d+\.\d+\.\d+", litequery.sqlite3_version())


# ---- introspection ----


@pytest.mark.asyncio
async def test_filename(test_db):
    async with connect(test_db) as db:
        assert os.path.basename(db.filename()) == os.path.basename(test_db)
        assert db.filename("temp") is None
    async with connect(":memory:") as db:
        assert db.filename() is None


@pytest.mark.asyncio
async def test_changes_and_rowid(test_db):
    async with connect(test_db) as db:
        await db.execute("CREATE TABLE t (id INTEGER PRIMARY KEY, v TEXT)")
        await db.execute("INSERT INTO t (v) VALUES ('a'), ('b'), ('c')")
        assert db.changes() == 3
        assert db.last_insert_rowid() == 3
        await db.execute("DELETE FROM t WHERE id = 1")
        assert db.changes() == 1
        assert db.total_changes() == 4


@pytest.mark.asyncio
async def test_transaction_active(test_db):
    async with connect(test_db) as db:
        assert not db.transaction_active()
        await db.execute("BEGIN")
        assert db.transaction_active()
        await db.execute("COMMIT")
        assert not db.transaction_active()


@pytest.mark.asyncio
async def test_repr(test_db):
    db = connect(test_db)
    assert "open" in repr(db)
    await db.close()
    assert "closed" in repr(db)
