"""Tests for the startup hook and structured logging setup."""

import logging

from sqlalchemy import inspect

from conftest import INIT_SQL
from schemaledger.config import Config
from schemaledger.database import get_engine
from schemaledger.executor import run_startup_migrations
from schemaledger.logging import get_logger, setup_logging


def test_startup_hook_applies_pending(test_config: Config, write_migration) -> None:
    write_migration("001_init.sql", INIT_SQL)

    result = run_startup_migrations(test_config)

    assert [e.version for e in result.applied] == [1]

    engine = get_engine(test_config)
    try:
        assert "users" in inspect(engine).get_table_names()
    finally:
        engine.dispose()


def test_startup_hook_is_idempotent(test_config: Config, write_migration) -> None:
    write_migration("001_init.sql", INIT_SQL)

    run_startup_migrations(test_config)
    result = run_startup_migrations(test_config)

    assert result.up_to_date


def test_get_logger_prefixes_name() -> None:
    setup_logging(json_output=True, level="INFO")
    log = get_logger("executor")
    assert log.name == "schemaledger.executor"


def test_setup_logging_sets_level() -> None:
    setup_logging(json_output=False, level="warning")
    assert logging.getLogger().level == logging.WARNING
    setup_logging(json_output=True, level="INFO")
