"""Command-line interface for schemaledger."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING

import click
from sqlalchemy.exc import SQLAlchemyError

from schemaledger import __version__
from schemaledger.config import Config
from schemaledger.logging import get_logger, setup_logging

if TYPE_CHECKING:
    from schemaledger.executor import MigrationExecutor

log = get_logger("cli")


@click.group(invoke_without_command=True)
@click.option(
    "-c",
    "--config-file",
    type=click.Path(exists=False, path_type=Path),
    default=None,
    help="Path to configuration file.",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Set logging level (overrides config).",
)
@click.option(
    "--log-json/--no-log-json",
    default=None,
    help="Output logs as JSON or human-readable format (overrides config).",
)
@click.option(
    "--database-url",
    default=None,
    help="SQLAlchemy URL of the target database (overrides config).",
)
@click.option(
    "--migrations-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory containing migration scripts (overrides config).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    config_file: Path | None,
    log_level: str | None,
    log_json: bool | None,
    database_url: str | None,
    migrations_dir: Path | None,
) -> None:
    """schemaledger - versioned SQL migrations with a checksummed ledger.

    Runs pending migrations when invoked without a command.
    """
    ctx.ensure_object(dict)

    try:
        config = Config.load_or_default(config_file)
    except ValueError as e:
        click.echo(f"Configuration error: {e}", err=True)
        raise SystemExit(1)

    if database_url:
        config.database.url = database_url
    if migrations_dir:
        config.migrations.directory = migrations_dir

    ctx.obj["config"] = config
    ctx.obj["config_file"] = config_file

    # Determine logging settings (CLI overrides config)
    effective_log_level = log_level or config.log_level
    effective_log_json = log_json if log_json is not None else config.log_json
    setup_logging(json_output=effective_log_json, level=effective_log_level)

    if ctx.invoked_subcommand is None:
        ctx.invoke(up)


@contextmanager
def open_executor(config: Config) -> Iterator[MigrationExecutor]:
    """Yield an executor for the configured database, failing the command on errors."""
    from schemaledger.database import get_engine
    from schemaledger.errors import MigrationError
    from schemaledger.executor import MigrationExecutor

    engine = get_engine(config)
    try:
        yield MigrationExecutor.from_config(engine, config)
    except (MigrationError, SQLAlchemyError) as e:
        log.error("command_failed", error=str(e))
        click.echo(f"\nMigration error: {e}", err=True)
        raise SystemExit(1)
    finally:
        engine.dispose()


@cli.command()
def version() -> None:
    """Print version information."""
    click.echo(f"schemaledger {__version__}")


@cli.command()
@click.pass_context
def up(ctx: click.Context) -> None:
    """Apply all pending migrations."""
    config = ctx.obj["config"]

    with open_executor(config) as executor:
        result = executor.apply_pending()

    if result.up_to_date:
        click.echo("✓ All migrations are up to date")
        return

    for entry in result.applied:
        click.echo(f"✓ Applied {entry.name} ({entry.execution_time_ms}ms)")
    click.echo(f"\n✓ {len(result.applied)} migration(s) applied successfully")


@cli.command()
@click.option(
    "--version",
    "target_version",
    type=int,
    default=None,
    help="Specific version to roll back (default: latest).",
)
@click.pass_context
def down(ctx: click.Context, target_version: int | None) -> None:
    """Roll back the latest migration, or a specific version."""
    config = ctx.obj["config"]

    with open_executor(config) as executor:
        entry = executor.rollback(target_version)

    if entry is None:
        click.echo("No migrations to rollback")
    else:
        click.echo(f"✓ Rolled back migration: {entry.name}")


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show applied and pending migrations."""
    config = ctx.obj["config"]

    with open_executor(config) as executor:
        state = executor.status()

    click.echo(f"Database: {config.database_url}")
    click.echo(f"Migrations: {config.migrations_dir}")
    click.echo("\n=== Migration Status ===\n")

    if state.applied:
        click.echo("Applied migrations:")
        for entry in state.applied:
            applied_at = entry.applied_at.strftime("%Y-%m-%d %H:%M:%S")
            click.echo(
                f"  ✓ {entry.name} (v{entry.version}) - {applied_at} "
                f"[{entry.execution_time_ms}ms]"
            )
    else:
        click.echo("No migrations applied yet")

    if state.pending:
        click.echo("\nPending migrations:")
        for migration in state.pending:
            click.echo(f"  ○ {migration.filename} (v{migration.version})")
    else:
        click.echo("\nNo pending migrations")

    click.echo(f"\nCurrent version: {state.current_version}")
    click.echo(f"Applied: {len(state.applied)}, Pending: {len(state.pending)}")


@cli.command()
@click.pass_context
def validate(ctx: click.Context) -> None:
    """Check applied migrations against the scripts on disk."""
    from schemaledger.validator import IntegrityValidator

    config = ctx.obj["config"]

    with open_executor(config) as executor:
        report = IntegrityValidator(executor.catalog, executor.ledger).validate()

    click.echo("Validating migrations...")
    for entry in report.checked:
        violation = report.violation_for(entry.version)
        if violation is None:
            click.echo(f"✓ {entry.name} is valid")
        else:
            click.echo(f"✗ {violation.describe()}", err=True)

    if not report.valid:
        click.echo(f"\nMigration validation failed: {len(report.violations)} problem(s)", err=True)
        raise SystemExit(1)

    click.echo("\n✓ All migrations are valid")


@cli.command()
@click.option("--name", default=None, help="Name for the new migration.")
@click.pass_context
def create(ctx: click.Context, name: str | None) -> None:
    """Create the next migration script and its rollback stub."""
    from schemaledger.catalog import MigrationCatalog
    from schemaledger.errors import MigrationError

    config = ctx.obj["config"]

    if not name or not name.strip():
        click.echo("Error: --name option is required for create command", err=True)
        raise SystemExit(1)

    catalog = MigrationCatalog(
        config.migrations.directory,
        rollback_subdir=config.migrations.rollback_subdir,
    )

    try:
        migration_path, rollback_path = catalog.create(name)
    except (ValueError, FileExistsError, MigrationError) as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)

    click.echo(f"✓ Created migration: {migration_path}")
    click.echo(f"✓ Created rollback: {rollback_path}")


@cli.command()
@click.pass_context
def reset(ctx: click.Context) -> None:
    """Roll back all migrations, then re-apply them."""
    config = ctx.obj["config"]

    click.echo("Resetting database...")
    with open_executor(config) as executor:
        result = executor.reset()

    for entry in result.rolled_back:
        click.echo(f"✓ Rolled back migration: {entry.name}")
    click.echo("\nRe-applying all migrations...")
    for entry in result.applied:
        click.echo(f"✓ Applied {entry.name} ({entry.execution_time_ms}ms)")
    click.echo(
        f"\n✓ Reset complete: {len(result.rolled_back)} rolled back, "
        f"{len(result.applied)} applied"
    )


@cli.command()
@click.pass_context
def unlock(ctx: click.Context) -> None:
    """Force-release the migration lock left behind by a crashed process."""
    from schemaledger.lock import MigrationLock

    config = ctx.obj["config"]

    with open_executor(config) as executor:
        previous = MigrationLock(executor.engine).force_release()

    if previous is None:
        click.echo("Migration lock is not held")
    else:
        click.echo(f"✓ Released migration lock held by {previous}")


@cli.group()
def config() -> None:
    """Configuration management commands."""
    pass


@config.command(name="check")
@click.option(
    "-c",
    "--config-file",
    type=click.Path(exists=True, path_type=Path),
    default="config.yaml",
    help="Path to configuration file.",
)
def config_check(config_file: Path) -> None:
    """Validate configuration file."""
    try:
        cfg = Config.load(config_file)
        click.echo(f"Configuration valid: {config_file}")
        click.echo(f"  Data directory: {cfg.data_dir}")
        click.echo(f"  Database: {cfg.database_url}")
        click.echo(f"  Migrations directory: {cfg.migrations_dir}")
        click.echo(f"  Log level: {cfg.log_level}")
        click.echo(f"  Lock: {'enabled' if cfg.lock.enabled else 'disabled'}")
    except FileNotFoundError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)
    except Exception as e:
        click.echo(f"Configuration error: {e}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    cli()
