"""Tests for the read-only SQL guard."""

from __future__ import annotations

import pytest

from dbview.guard import EMPTY_STATEMENT, MULTIPLE_STATEMENTS, SqlGuard, validate_readonly_sql


@pytest.mark.parametrize(
    "sql",
    [
        "SELECT * FROM users",
        "select id, email from accounts where id = $1",
        "SELECT status FROM t WHERE status='INSERT'",
        "SELECT updated_at, created_by, deleted FROM t",
        'SELECT "update" FROM t',
        "WITH recent AS (SELECT * FROM orders) SELECT count(*) FROM recent",
        "SELECT 1;",
        "SELECT 1;   \n  ",
        "SELECT 1; -- trailing note",
        "SELECT $$DROP TABLE users$$ AS text",
        "SELECT $body$ DELETE FROM x; $body$",
        "SELECT 'a;b' AS semi",
        "SELECT 'it''s; INSERT' AS quoted",
        "/* DELETE everything */ SELECT 1",
        "SELECT 1 -- DROP TABLE users",
        "EXPLAIN SELECT * FROM t",
        "SHOW TABLES",
    ],
)
def test_accepts_read_statements(sql: str) -> None:
    verdict = validate_readonly_sql(sql)

    assert verdict.valid is True, verdict.reason
    assert verdict.violating_keyword is None


@pytest.mark.parametrize(
    ("sql", "keyword"),
    [
        ("INSERT INTO t VALUES (1)", "INSERT"),
        ("update t set a = 1", "UPDATE"),
        ("DELETE FROM t", "DELETE"),
        ("SELECT 1; DROP TABLE users", "DROP"),
        ("SELECT 1; -- x\nINSERT INTO t VALUES (1)", "INSERT"),
        ("WITH gone AS (DELETE FROM t RETURNING *) SELECT * FROM gone", "DELETE"),
        ("ALTER TABLE t ADD COLUMN c int", "ALTER"),
        ("TRUNCATE t", "TRUNCATE"),
        ("CREATE TABLE t (id int)", "CREATE"),
        ("GRANT SELECT ON t TO bob", "GRANT"),
        ("REVOKE SELECT ON t FROM bob", "REVOKE"),
        ("REPLACE INTO t VALUES (1)", "REPLACE"),
        ("MERGE INTO t USING s ON t.id = s.id WHEN MATCHED THEN DO NOTHING", "MERGE"),
        ("COPY t TO '/tmp/out'", "COPY"),
        ("CALL do_things()", "CALL"),
        ("SELECT 1 /* comment */ ; /* */ DROP TABLE t", "DROP"),
        ("SELECT 1 -- it's\nDELETE FROM t WHERE x = 'a'", "DELETE"),
        ("SELECT 'unterminated; DROP TABLE t", "DROP"),
        ("SELECT '\\' AS a; DELETE FROM t; SELECT '", "DELETE"),
        ("WITH x$a$ AS (SELECT 1), d AS (DELETE FROM users RETURNING 1) SELECT 1 AS y$a$ FROM d", "DELETE"),
        ("SELECT col$$ FROM t; UPDATE t SET a = 1 -- $$", "UPDATE"),
    ],
)
def test_rejects_write_keywords(sql: str, keyword: str) -> None:
    verdict = validate_readonly_sql(sql)

    assert verdict.valid is False
    assert verdict.violating_keyword == keyword
    assert keyword in (verdict.reason or "")


@pytest.mark.parametrize(
    "sql",
    [
        "SELECT 1; SELECT 2",
        "SELECT 1;;",
        "SELECT 'a;b'; SELECT 2",
        "SELECT 1; /* hidden */ SELECT pg_sleep(10)",
    ],
)
def test_rejects_multiple_statements(sql: str) -> None:
    verdict = validate_readonly_sql(sql)

    assert verdict.valid is False
    assert verdict.reason == MULTIPLE_STATEMENTS


@pytest.mark.parametrize("sql", ["", "   ", "\n\t"])
def test_rejects_empty_input(sql: str) -> None:
    verdict = validate_readonly_sql(sql)

    assert verdict.valid is False
    assert verdict.reason == EMPTY_STATEMENT


def test_sql_guard_object_delegates() -> None:
    guard = SqlGuard()

    assert guard.validate("SELECT 1").valid is True
    assert guard.validate("DROP TABLE t").violating_keyword == "DROP"
    assert "MERGE" in guard.keywords
