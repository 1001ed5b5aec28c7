"""Split SQL scripts into individual statements.

DB-API drivers execute one statement per call, and the multi-statement
helpers some drivers offer (``sqlite3.executescript``) commit on their own.
Splitting keeps a whole script inside the caller's transaction.
"""

from __future__ import annotations

import sqlparse


def split_statements(sql: str) -> list[str]:
    """Split a script into statements, dropping comment-only fragments.

    Args:
        sql: Full script text.

    Returns:
        Statements in script order, each with its trailing semicolon.
    """
    statements = []
    for statement in sqlparse.split(sql):
        if not sqlparse.format(statement, strip_comments=True).strip():
            continue
        statements.append(statement)
    return statements
