"""Configuration loading and validation for schemaledger."""

from __future__ import annotations

import os
from datetime import timedelta
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator


class DatabaseConfig(BaseModel):
    """Database configuration.

    ``url`` takes precedence; otherwise a SQLite file at ``data_dir / path``.
    """

    path: str = "database.db"
    url: str | None = None
    echo: bool = False


class MigrationsConfig(BaseModel):
    """Where migration and rollback scripts live."""

    directory: Path = Path("migrations")
    rollback_subdir: str = "rollback"

    @field_validator("rollback_subdir")
    @classmethod
    def validate_rollback_subdir(cls, v: str) -> str:
        """Rollback scripts must live in a direct subdirectory."""
        if not v or "/" in v or "\\" in v or v in {".", ".."}:
            raise ValueError("rollback_subdir must be a plain directory name")
        return v

    @property
    def rollback_directory(self) -> Path:
        return self.directory / self.rollback_subdir


class LockConfig(BaseModel):
    """Migration lock configuration."""

    enabled: bool = True
    stale_after_seconds: int = Field(600, gt=0)

    @property
    def stale_after(self) -> timedelta:
        return timedelta(seconds=self.stale_after_seconds)


class Config(BaseModel):
    """Root configuration for schemaledger."""

    data_dir: Path = Path("./data")
    log_level: str = "INFO"
    log_json: bool = True

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    migrations: MigrationsConfig = Field(default_factory=MigrationsConfig)
    lock: LockConfig = Field(default_factory=LockConfig)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log_level is valid."""
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR"}
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"log_level must be one of: {allowed}")
        return v_upper

    @property
    def database_path(self) -> Path:
        """Get full path to the SQLite database file."""
        return self.data_dir / self.database.path

    @property
    def database_url(self) -> str:
        """Get the SQLAlchemy URL for the target datastore."""
        if self.database.url:
            return self.database.url
        return f"sqlite:///{self.database_path}"

    @property
    def migrations_dir(self) -> Path:
        return self.migrations.directory

    @classmethod
    def load(cls, config_path: Path | str = Path("config.yaml")) -> "Config":
        """Load configuration from YAML file with env var overlay.

        Args:
            config_path: Path to YAML configuration file.

        Returns:
            Validated Config instance.

        Raises:
            FileNotFoundError: If config file doesn't exist.
            ValueError: If config is invalid.
        """
        config_path = Path(config_path)

        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path) as f:
            yaml_config = yaml.safe_load(f) or {}

        if not isinstance(yaml_config, dict):
            raise ValueError(f"Configuration must be a mapping: {config_path}")

        return cls.model_validate(apply_env_overrides(yaml_config))

    @classmethod
    def load_or_default(cls, config_path: Path | str | None = None) -> "Config":
        """Load configuration, falling back to defaults if file not found.

        Args:
            config_path: Optional path to YAML configuration file.

        Returns:
            Config instance (from file or defaults).
        """
        if config_path is None:
            # Try default locations
            for path in [Path("config.yaml"), Path("config.yml")]:
                if path.exists():
                    return cls.load(path)
            return cls.model_validate(apply_env_overrides({}))

        try:
            return cls.load(config_path)
        except FileNotFoundError:
            return cls.model_validate(apply_env_overrides({}))


def apply_env_overrides(raw: dict) -> dict:
    """Overlay SCHEMALEDGER_* environment variables onto raw config data."""
    if "SCHEMALEDGER_DATA_DIR" in os.environ:
        raw["data_dir"] = os.environ["SCHEMALEDGER_DATA_DIR"]
    if "SCHEMALEDGER_LOG_LEVEL" in os.environ:
        raw["log_level"] = os.environ["SCHEMALEDGER_LOG_LEVEL"]
    if "SCHEMALEDGER_LOG_JSON" in os.environ:
        raw["log_json"] = os.environ["SCHEMALEDGER_LOG_JSON"].lower() == "true"
    if "SCHEMALEDGER_DATABASE_URL" in os.environ:
        raw["database"] = {
            **(raw.get("database") or {}),
            "url": os.environ["SCHEMALEDGER_DATABASE_URL"],
        }
    if "SCHEMALEDGER_MIGRATIONS_DIR" in os.environ:
        raw["migrations"] = {
            **(raw.get("migrations") or {}),
            "directory": os.environ["SCHEMALEDGER_MIGRATIONS_DIR"],
        }
    return raw
