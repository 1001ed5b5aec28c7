"""Pytest configuration and shared fixtures."""

from collections.abc import Callable
from pathlib import Path

import pytest
from click.testing import CliRunner

from schemaledger.catalog import MigrationCatalog
from schemaledger.config import Config
from schemaledger.database import get_engine
from schemaledger.executor import MigrationExecutor
from schemaledger.ledger import VersionLedger

WriteMigration = Callable[..., Path]


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def temp_data_dir(tmp_path):
    """Provide a temporary data directory for tests."""
    data_dir = tmp_path / "data"
    data_dir.mkdir()
    return data_dir


@pytest.fixture
def migrations_dir(tmp_path: Path) -> Path:
    """Directory for migration scripts (created on first use by the catalog)."""
    return tmp_path / "migrations"


@pytest.fixture
def test_config(temp_data_dir: Path, migrations_dir: Path) -> Config:
    """Create a test configuration with temp database and migrations dir."""
    return Config(
        data_dir=temp_data_dir,
        log_json=False,
        migrations={"directory": migrations_dir},
    )


@pytest.fixture
def engine(test_config: Config):
    """Create a test database engine (no tables yet)."""
    eng = get_engine(test_config)
    yield eng
    eng.dispose()


@pytest.fixture
def catalog(migrations_dir: Path) -> MigrationCatalog:
    return MigrationCatalog(migrations_dir)


@pytest.fixture
def ledger(engine) -> VersionLedger:
    return VersionLedger(engine)


@pytest.fixture
def executor(engine, test_config: Config) -> MigrationExecutor:
    """Executor wired exactly as the CLI wires it."""
    return MigrationExecutor.from_config(engine, test_config)


@pytest.fixture
def write_migration(migrations_dir: Path) -> WriteMigration:
    """Write a forward script and, optionally, its rollback script.

    Usage:
        write_migration("001_init.sql", "CREATE TABLE t (id INTEGER);", "DROP TABLE t;")
    """

    def _write(filename: str, sql: str, rollback: str | None = None) -> Path:
        migrations_dir.mkdir(parents=True, exist_ok=True)
        path = migrations_dir / filename
        path.write_text(sql)
        if rollback is not None:
            rollback_dir = migrations_dir / "rollback"
            rollback_dir.mkdir(exist_ok=True)
            (rollback_dir / filename.replace(".sql", ".rollback.sql")).write_text(rollback)
        return path

    return _write


# =============================================================================
# Sample scripts
# =============================================================================

INIT_SQL = """\
-- Migration: 001_init.sql
CREATE TABLE users (
    id INTEGER PRIMARY KEY,
    email TEXT NOT NULL
);

CREATE TABLE companies (
    id INTEGER PRIMARY KEY,
    name TEXT NOT NULL,
    updated_at DATETIME
);
"""

INIT_ROLLBACK = """\
-- Rollback for: 001_init.sql
DROP TABLE companies;
DROP TABLE users;
"""

ADD_INDEX_SQL = """\
-- Migration: 002_add_col.sql
CREATE UNIQUE INDEX idx_users_email ON users(email);
"""

ADD_INDEX_ROLLBACK = """\
DROP INDEX idx_users_email;
"""

ADD_TASKS_SQL = """\
CREATE TABLE tasks (
    id INTEGER PRIMARY KEY,
    user_id INTEGER NOT NULL REFERENCES users(id),
    title TEXT NOT NULL
);
"""

ADD_TASKS_ROLLBACK = "DROP TABLE tasks;\n"


@pytest.fixture
def three_migrations(write_migration: WriteMigration) -> None:
    """Versions 1-3, each with a rollback script."""
    write_migration("001_init.sql", INIT_SQL, INIT_ROLLBACK)
    write_migration("002_add_col.sql", ADD_INDEX_SQL, ADD_INDEX_ROLLBACK)
    write_migration("003_add_tasks.sql", ADD_TASKS_SQL, ADD_TASKS_ROLLBACK)
