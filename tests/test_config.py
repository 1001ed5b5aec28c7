"""Tests for the configuration module."""

from datetime import timedelta
from pathlib import Path

import pytest
import yaml

from schemaledger.config import Config, LockConfig, MigrationsConfig


@pytest.fixture
def sample_config_yaml(tmp_path: Path) -> Path:
    """Create a sample config file for testing."""
    config = {
        "data_dir": str(tmp_path / "data"),
        "log_level": "debug",
        "log_json": False,
        "database": {"path": "app.db"},
        "migrations": {"directory": str(tmp_path / "sql"), "rollback_subdir": "down"},
        "lock": {"enabled": False, "stale_after_seconds": 30},
    }
    config_path = tmp_path / "config.yaml"
    with open(config_path, "w") as f:
        yaml.dump(config, f)
    return config_path


def test_config_defaults() -> None:
    config = Config()

    assert config.data_dir == Path("./data")
    assert config.log_level == "INFO"
    assert config.log_json is True
    assert config.database.path == "database.db"
    assert config.database.url is None
    assert config.migrations.directory == Path("migrations")
    assert config.migrations.rollback_directory == Path("migrations/rollback")
    assert config.lock.enabled is True
    assert config.lock.stale_after == timedelta(minutes=10)


def test_config_load(sample_config_yaml: Path, tmp_path: Path) -> None:
    config = Config.load(sample_config_yaml)

    assert config.log_level == "DEBUG"
    assert config.log_json is False
    assert config.database_path == tmp_path / "data" / "app.db"
    assert config.database_url == f"sqlite:///{tmp_path / 'data' / 'app.db'}"
    assert config.migrations_dir == tmp_path / "sql"
    assert config.migrations.rollback_directory == tmp_path / "sql" / "down"
    assert config.lock.enabled is False
    assert config.lock.stale_after_seconds == 30


def test_config_load_not_found() -> None:
    with pytest.raises(FileNotFoundError):
        Config.load(Path("/nonexistent/config.yaml"))


def test_config_load_or_default_missing() -> None:
    config = Config.load_or_default(Path("/nonexistent/config.yaml"))
    assert config.log_level == "INFO"


def test_empty_file_gives_defaults(tmp_path: Path) -> None:
    config_path = tmp_path / "empty.yaml"
    config_path.write_text("")

    assert Config.load(config_path).log_level == "INFO"


def test_invalid_log_level() -> None:
    with pytest.raises(ValueError):
        Config(log_level="LOUD")


def test_invalid_rollback_subdir() -> None:
    with pytest.raises(ValueError):
        MigrationsConfig(rollback_subdir="../elsewhere")


def test_stale_after_must_be_positive() -> None:
    with pytest.raises(ValueError):
        LockConfig(stale_after_seconds=0)


def test_database_url_wins_over_path() -> None:
    config = Config(database={"url": "postgresql+psycopg://localhost/app"})
    assert config.database_url == "postgresql+psycopg://localhost/app"


def test_env_overrides(sample_config_yaml: Path, tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("SCHEMALEDGER_LOG_LEVEL", "ERROR")
    monkeypatch.setenv("SCHEMALEDGER_LOG_JSON", "true")
    monkeypatch.setenv("SCHEMALEDGER_DATABASE_URL", "sqlite:///" + str(tmp_path / "env.db"))
    monkeypatch.setenv("SCHEMALEDGER_MIGRATIONS_DIR", str(tmp_path / "env-migrations"))

    config = Config.load(sample_config_yaml)

    assert config.log_level == "ERROR"
    assert config.log_json is True
    assert config.database_url.endswith("env.db")
    assert config.migrations_dir == tmp_path / "env-migrations"
    # Untouched keys from the file survive
    assert config.migrations.rollback_subdir == "down"


def test_env_overrides_without_file(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SCHEMALEDGER_DATA_DIR", str(tmp_path / "elsewhere"))

    config = Config.load_or_default()

    assert config.data_dir == tmp_path / "elsewhere"
