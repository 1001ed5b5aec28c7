"""Tests for splitting scripts into statements."""

from schemaledger.statements import split_statements


def test_splits_on_semicolons() -> None:
    sql = "CREATE TABLE a (id INTEGER);\nCREATE TABLE b (id INTEGER);\n"
    assert split_statements(sql) == [
        "CREATE TABLE a (id INTEGER);",
        "CREATE TABLE b (id INTEGER);",
    ]


def test_comment_only_script_has_no_statements() -> None:
    sql = "-- Migration: 001_x.sql\n-- Description: x\n\n-- Your migration SQL here\n"
    assert split_statements(sql) == []


def test_empty_script() -> None:
    assert split_statements("") == []
    assert split_statements("   \n") == []


def test_semicolon_inside_string_literal() -> None:
    sql = "INSERT INTO notes (body) VALUES ('a; b');\nSELECT 1;"
    statements = split_statements(sql)
    assert len(statements) == 2
    assert "'a; b'" in statements[0]


def test_trigger_body_stays_whole() -> None:
    sql = """
CREATE TABLE companies (id INTEGER PRIMARY KEY, updated_at DATETIME);

CREATE TRIGGER update_companies_updated_at
AFTER UPDATE ON companies
FOR EACH ROW
BEGIN
    UPDATE companies SET updated_at = CURRENT_TIMESTAMP WHERE id = NEW.id;
END;
"""
    statements = split_statements(sql)
    assert len(statements) == 2
    assert statements[1].startswith("CREATE TRIGGER")
    assert statements[1].rstrip().endswith("END;")


def test_trailing_comment_kept_with_statement() -> None:
    sql = "SELECT 1;\n-- done\n"
    statements = split_statements(sql)
    assert len(statements) == 1
    assert statements[0].startswith("SELECT 1;")
