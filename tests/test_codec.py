"""Tests for value conversion, name resolution and statement splitting."""

import apsw
import pytest

from litequery import BindError, BusyError, InterruptError, SQLError
from litequery.binding import (
    NamedParameters,
    bind_parameters,
    placeholder_markers,
    resolve_named,
)
from litequery.codec import (
    INT64_MAX,
    INT64_MIN,
    ColumnKind,
    decode_row,
    from_engine,
    kind_of,
    to_engine,
)
from litequery.errors import translate
from litequery.statement import split_statements


@pytest.mark.parametrize(
    "value, expected",
    [
        (None, None),
        (True, 1),
        (False, 0),
        (INT64_MAX, INT64_MAX),
        (INT64_MIN, INT64_MIN),
        (1.5, 1.5),
        ("text", "text"),
        (b"\x00\x01", b"\x00\x01"),
        (bytearray(b"ab"), b"ab"),
        (memoryview(b"cd"), b"cd"),
    ],
)
def test_to_engine(value, expected):
    converted = to_engine(value)
    assert converted == expected
    assert type(converted) is type(expected)


def test_to_engine_range_names_parameter():
    with pytest.raises(BindError, match="parameter #3"):
        to_engine(INT64_MAX + 1, 3)
    with pytest.raises(BindError, match="parameter 'x'"):
        to_engine(INT64_MIN - 1, "x")


def test_to_engine_rejects_other_types():
    with pytest.raises(BindError, match="unsupported type dict"):
        to_engine({}, 1)


@pytest.mark.parametrize(
    "raw, kind",
    [
        (None, ColumnKind.NULL),
        (7, ColumnKind.INTEGER),
        (7.0, ColumnKind.FLOAT),
        ("7", ColumnKind.TEXT),
        (b"7", ColumnKind.BLOB),
    ],
)
def test_kind_of(raw, kind):
    assert kind_of(raw) is kind


def test_from_engine_text_from_bytes():
    assert from_engine(ColumnKind.TEXT, "é".encode("utf-8")) == "é"
    assert from_engine(ColumnKind.BLOB, memoryview(b"z")) == b"z"
    assert decode_row((1, None, "a")) == (1, None, "a")


def test_resolve_named_order():
    mapping = {":x": 1, "@x": 2, "x": 3}
    assert resolve_named(mapping, "x") == 1
    assert resolve_named({"@x": 2, "x": 3}, "x") == 2
    assert resolve_named({"x": 3}, "x") == 3
    assert resolve_named({5: "five"}, "5") == "five"
    assert resolve_named({}, "x") is None
    assert resolve_named(mapping, "x", "@") == 2
    assert resolve_named({":x": 1, "x": 3}, "x", "$") == 1


def test_placeholder_markers_skip_literals_and_comments():
    sql = (
        "SELECT @a, ':b', \"$c\", [:d] /* :e */ "
        "FROM t WHERE f = $f -- :g\n"
        "AND :a"
    )
    assert placeholder_markers(sql) == {"a": "@", "f": "$"}


def test_named_parameters_answers_every_name():
    named = NamedParameters({"a": 1})
    assert "anything" in named
    assert named["anything"] is None
    assert named["a"] == 1
    assert len(named) == 1


def test_bind_parameters():
    assert bind_parameters(None) == ()
    assert bind_parameters((x for x in (1, True))) == (1, 1)
    assert isinstance(bind_parameters({"a": 1}), NamedParameters)
    with pytest.raises(BindError, match="not str"):
        bind_parameters("abc")
    with pytest.raises(BindError, match="not int"):
        bind_parameters(42)


@pytest.mark.parametrize(
    "sql, expected",
    [
        ("select 1", ["select 1"]),
        ("select 1; select 2;", ["select 1;", "select 2;"]),
        ("select ';'; select 2", ["select ';';", "select 2"]),
        ("  ;; ;", []),
        ("", []),
        (
            "create trigger t after insert on a begin delete from b; end; select 3",
            [
                "create trigger t after insert on a begin delete from b; end;",
                "select 3",
            ],
        ),
    ],
)
def test_split_statements(sql, expected):
    assert split_statements(sql) == expected


def test_translate_engine_errors():
    busy = translate(apsw.BusyError("database is locked"))
    assert isinstance(busy, BusyError)
    assert busy.message == "database is locked"
    assert isinstance(translate(apsw.LockedError("locked")), BusyError)
    assert isinstance(translate(apsw.InterruptError("interrupted")), InterruptError)
    assert isinstance(translate(apsw.SQLError("bad")), SQLError)
