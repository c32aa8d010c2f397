"""Tests for the prepared statement lifecycle and binding."""

import gc
import logging

import pytest

from sqlitekit import (
    Command,
    EngineError,
    Ownership,
    Query,
    Statement,
    StatementState,
    UsageFault,
)
from sqlitekit import native


def test_prepare_then_finish_matches_fresh_statement(table):
    fresh = Statement(table)
    stmt = Statement(table, "SELECT a FROM t")
    assert stmt.state == StatementState.PREPARED
    stmt.finish()
    stmt.finish()  # idempotent

    assert stmt.state == fresh.state == StatementState.UNPREPARED
    assert stmt.is_prepared is fresh.is_prepared is False
    assert stmt.sql == fresh.sql
    assert stmt.tail == fresh.tail
    assert stmt.parameter_count() == fresh.parameter_count() == 0


def test_prepare_rejects_bad_sql(db):
    with pytest.raises(EngineError, match="syntax error") as exc_info:
        Statement(db, "SELEC 1")
    assert exc_info.value.code == native.SQLITE_ERROR


def test_prepare_rejects_unknown_table(db):
    with pytest.raises(EngineError, match="no such table"):
        Statement(db, "SELECT * FROM missing")


def test_reprepare_replaces_plan(table):
    query = Query(table, "SELECT a FROM t")
    query.prepare("SELECT b FROM t ORDER BY rowid")
    assert query.sql == "SELECT b FROM t ORDER BY rowid"
    assert query.fetchone().get(0) == "x"


def test_tail_records_remaining_statements(db):
    stmt = Statement(db, "SELECT 1; SELECT 2;")
    assert stmt.tail == " SELECT 2;"
    assert Statement(db, "SELECT 1").tail == ""


def test_step_reports_raw_status(table):
    query = Query(table, "SELECT a FROM t WHERE a = 1")
    assert query.step() == native.SQLITE_ROW
    assert query.state == StatementState.HAS_ROW
    assert query.step() == native.SQLITE_DONE
    assert query.state == StatementState.COMPLETED
    query.reset()
    assert query.state == StatementState.PREPARED


def test_failed_step_is_not_completed(db):
    db.execute("CREATE TABLE u (a INTEGER NOT NULL)")
    cmd = Command(db, "INSERT INTO u VALUES (NULL)")
    assert cmd.step() == native.SQLITE_CONSTRAINT
    assert cmd.state == StatementState.PREPARED
    with pytest.raises(EngineError):
        cmd.reset()
    assert cmd.state == StatementState.PREPARED


def test_step_without_plan_is_misuse(db):
    assert Statement(db).step() == native.SQLITE_MISUSE


def test_bind_reset_rebind_sees_latest_value(db):
    db.execute("CREATE TABLE t (a INTEGER)")
    cmd = Command(db, "INSERT INTO t VALUES (?)")
    cmd.bind(1, 10)
    cmd.execute()
    cmd.reset()
    cmd.bind(1, 20)
    cmd.execute()

    query = Query(db, "SELECT a FROM t ORDER BY rowid")
    assert [row.get(0) for row in query] == [10, 20]


def test_reset_keeps_bound_values(db):
    query = Query(db, "SELECT ?1, ?2")
    query.bind_values("kept", 5)
    assert query.fetchone().values() == ("kept", 5)
    query.reset()
    query.bind(2, 6)
    assert query.fetchone().values() == ("kept", 6)


def test_clear_bindings_sets_null(db):
    query = Query(db, "SELECT ?")
    query.bind(1, 3)
    query.clear_bindings()
    assert query.fetchone().get(0) is None


class TestNamedBinding:
    def test_bind_with_prefix(self, db):
        query = Query(db, "SELECT :name")
        query.bind(":name", "alice")
        assert query.fetchone().get(0) == "alice"

    def test_bind_without_prefix(self, db):
        query = Query(db, "SELECT @who, $what")
        query.bind_named({"who": "bob", "what": 2})
        assert query.fetchone().values() == ("bob", 2)

    def test_unknown_name_faults(self, db):
        query = Query(db, "SELECT :name")
        with pytest.raises(UsageFault, match="missing"):
            query.bind("missing", 1)

    def test_unknown_name_never_binds_index_zero(self, db):
        query = Query(db, "SELECT ?")
        with pytest.raises(UsageFault):
            query.bind(":nope", 1)
        assert query.fetchone().get(0) is None

    def test_parameter_introspection(self, db):
        query = Query(db, "SELECT :a, ?, :b")
        assert query.parameter_count() == 3
        assert query.parameter_name(1) == ":a"
        assert query.parameter_name(2) is None
        assert query.parameter_index("b") == 3


class TestValueKinds:
    def test_integers(self, db):
        query = Query(db, "SELECT ?, ?, typeof(?)")
        query.bind_values(-(2**63), 2**63 - 1, True)
        assert query.fetchone().values() == (-(2**63), 2**63 - 1, "integer")

    def test_unsigned_64_bit_keeps_bit_pattern(self, db):
        query = Query(db, "SELECT ?")
        query.bind(1, 2**64 - 1)
        assert query.fetchone().get(0) == -1

    def test_too_wide_integer_overflows(self, db):
        query = Query(db, "SELECT ?")
        with pytest.raises(OverflowError):
            query.bind(1, 2**64)
        with pytest.raises(OverflowError):
            query.bind(1, -(2**63) - 1)

    def test_float(self, db):
        query = Query(db, "SELECT ?")
        query.bind(1, 2.5)
        assert query.fetchone().get(0) == 2.5

    def test_text_and_blob(self, db):
        query = Query(db, "SELECT ?, typeof(?2), ?3")
        query.bind_values("héllo", b"\x00\x01", bytearray(b"ab"))
        assert query.fetchone().values() == ("héllo", "blob", b"ab")

    def test_null(self, db):
        query = Query(db, "SELECT ? IS NULL")
        query.bind(1, None)
        assert query.fetchone().get(0) == 1

    def test_unsupported_type(self, db):
        query = Query(db, "SELECT ?")
        with pytest.raises(TypeError, match="list"):
            query.bind(1, [1, 2])

    def test_index_out_of_range(self, db):
        query = Query(db, "SELECT ?")
        with pytest.raises(EngineError) as exc_info:
            query.bind(2, 1)
        assert exc_info.value.code == native.SQLITE_RANGE

    def test_raw_bind_returns_status(self, db):
        query = Query(db, "SELECT ?")
        assert query.raw_bind(1, 1) == native.SQLITE_OK
        assert query.raw_bind(5, 1) == native.SQLITE_RANGE


class TestOwnership:
    def test_static_text_is_read_in_place(self, db):
        query = Query(db, "SELECT ?, ?")
        query.bind(1, "borrowed", Ownership.STATIC)
        query.bind(2, b"raw", Ownership.STATIC)
        assert query.fetchone().values() == ("borrowed", b"raw")

    def test_static_buffer_survives_caller_dropping_it(self, db):
        query = Query(db, "SELECT ?")
        payload = bytes(range(256)) * 4
        query.bind(1, payload, Ownership.STATIC)
        expected = bytes(range(256)) * 4
        del payload
        assert query.fetchone().get(0) == expected

    def test_static_buffer_survives_reset(self, db):
        query = Query(db, "SELECT ?")
        query.bind(1, "again", Ownership.STATIC)
        assert query.fetchone().get(0) == "again"
        query.reset()
        assert query.fetchone().get(0) == "again"


def test_context_manager_finalizes(table):
    with Query(table, "SELECT a FROM t") as query:
        assert query.is_prepared
    assert not query.is_prepared


def test_implicit_finalize_failure_is_logged(db, caplog):
    db.execute("CREATE TABLE u (a INTEGER UNIQUE); INSERT INTO u VALUES (1)")
    cmd = Command(db, "INSERT INTO u VALUES (1)")
    with pytest.raises(EngineError, match="UNIQUE"):
        cmd.execute()

    with caplog.at_level(logging.WARNING, logger="sqlitekit.statement"):
        del cmd
        gc.collect()
    assert "sqlite3_finalize returned an error" in caplog.text
    assert "INSERT INTO u VALUES (1)" in caplog.text


def test_explicit_finish_after_failure_raises(db):
    db.execute("CREATE TABLE u (a INTEGER NOT NULL)")
    cmd = Command(db, "INSERT INTO u VALUES (NULL)")
    with pytest.raises(EngineError):
        cmd.execute()
    with pytest.raises(EngineError, match="constraint"):
        cmd.finish()
    assert not cmd.is_prepared


def test_prepare_after_failure_discards_old_plan(db):
    db.execute("CREATE TABLE u (a INTEGER NOT NULL)")
    cmd = Command(db, "INSERT INTO u VALUES (NULL)")
    with pytest.raises(EngineError):
        cmd.execute()
    cmd.prepare("INSERT INTO u VALUES (1)")
    cmd.execute()
    assert db.changes() == 1
