"""Migration executor for schemaledger.

The executor is the only component that mutates the target datastore:
- Applying pending migrations in ascending version order
- Rolling back the latest (or a specific) applied migration
- Resetting: rolling everything back, then re-applying

Every step runs in its own transaction that covers both the script and the
ledger write, so the ledger never disagrees with the actual schema. Errors are
fail-fast: the first failing step stops the run.
"""

from __future__ import annotations

import contextlib
import time
from collections.abc import Iterator
from dataclasses import dataclass, field

from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from schemaledger.catalog import Migration, MigrationCatalog, compute_checksum
from schemaledger.config import Config
from schemaledger.database import get_engine
from schemaledger.errors import (
    ChecksumMismatchError,
    ExecutionError,
    LockError,
    MissingRollbackScriptError,
    NotFoundError,
)
from schemaledger.ledger import VersionLedger
from schemaledger.lock import MigrationLock
from schemaledger.logging import get_logger
from schemaledger.models import ExecutorState, LedgerEntry, utcnow
from schemaledger.statements import split_statements

log = get_logger("executor")


# =============================================================================
# Results
# =============================================================================


@dataclass
class ApplyResult:
    """Outcome of ``apply_pending``.

    Attributes:
        applied: Ledger entries written during this run, in order.
        skipped: Versions found already applied with a matching checksum.
    """

    applied: list[LedgerEntry] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)

    @property
    def up_to_date(self) -> bool:
        return not self.applied


@dataclass
class ResetResult:
    """Outcome of ``reset``."""

    rolled_back: list[LedgerEntry] = field(default_factory=list)
    applied: list[LedgerEntry] = field(default_factory=list)


@dataclass
class MigrationStatus:
    """Applied and pending migrations at a point in time."""

    applied: list[LedgerEntry]
    pending: list[Migration]

    @property
    def current_version(self) -> int:
        return self.applied[-1].version if self.applied else 0


# =============================================================================
# Migration Executor
# =============================================================================


class MigrationExecutor:
    """Applies and rolls back migrations against one datastore.

    Attributes:
        engine: SQLAlchemy engine for the target datastore.
        catalog: Source of migration scripts.
        ledger: Record of applied migrations.
        lock: Optional lease lock held for the duration of each command.
        state: Current executor state.
    """

    def __init__(
        self,
        engine: Engine,
        catalog: MigrationCatalog,
        ledger: VersionLedger | None = None,
        lock: MigrationLock | None = None,
    ) -> None:
        self.engine = engine
        self.catalog = catalog
        self.ledger = ledger or VersionLedger(engine)
        self.lock = lock
        self.state = ExecutorState.IDLE

    @classmethod
    def from_config(cls, engine: Engine, config: Config) -> "MigrationExecutor":
        """Build an executor with catalog, ledger and lock from configuration."""
        catalog = MigrationCatalog(
            config.migrations.directory,
            rollback_subdir=config.migrations.rollback_subdir,
        )
        lock = None
        if config.lock.enabled:
            lock = MigrationLock(engine, stale_after=config.lock.stale_after)
        return cls(engine, catalog, VersionLedger(engine), lock)

    # -------------------------------------------------------------------------
    # Public operations
    # -------------------------------------------------------------------------

    def apply_pending(self) -> ApplyResult:
        """Apply every pending migration in ascending version order.

        Returns:
            ApplyResult listing what was applied.

        Raises:
            ChecksumMismatchError: If an applied script changed on disk.
            ExecutionError: If a script fails; earlier versions stay applied.
            MalformedVersionError: If a script filename cannot be parsed.
        """
        self.ledger.ensure_schema()
        with self._locked():
            return self._apply_pending()

    def rollback(self, target_version: int | None = None) -> LedgerEntry | None:
        """Roll back the latest applied migration, or a specific version.

        Args:
            target_version: Version to roll back. Defaults to the highest
                applied version.

        Returns:
            The ledger entry that was removed, or None if nothing was applied.

        Raises:
            NotFoundError: If ``target_version`` is not in the ledger.
            MissingRollbackScriptError: If the paired rollback script is absent.
            ExecutionError: If the rollback script fails.
        """
        self.ledger.ensure_schema()
        with self._locked():
            return self._rollback(target_version)

    def reset(self) -> ResetResult:
        """Roll back every applied migration (newest first), then re-apply all.

        Each rollback is its own transaction, so a failure partway leaves
        the ledger consistent with what was actually undone.
        """
        self.ledger.ensure_schema()
        result = ResetResult()

        with self._locked():
            log.info("reset_started")
            for entry in reversed(self.ledger.list_applied()):
                self._rollback_entry(entry)
                result.rolled_back.append(entry)

            result.applied = self._apply_pending().applied

        log.info(
            "reset_complete",
            rolled_back=len(result.rolled_back),
            applied=len(result.applied),
        )
        return result

    def status(self) -> MigrationStatus:
        """Report applied and pending migrations without changing anything."""
        applied = self.ledger.list_applied() if self.ledger.exists() else []
        applied_versions = {entry.version for entry in applied}
        pending = [m for m in self.catalog.list_all() if m.version not in applied_versions]
        return MigrationStatus(applied=applied, pending=pending)

    def pending(self) -> list[Migration]:
        """Migrations present in the catalog but absent from the ledger."""
        return self.status().pending

    # -------------------------------------------------------------------------
    # Apply
    # -------------------------------------------------------------------------

    def _apply_pending(self) -> ApplyResult:
        catalog = self.catalog.list_all()
        applied = self.ledger.list_applied()

        self._check_applied_checksums(catalog, applied)

        applied_versions = {entry.version for entry in applied}
        pending = [m for m in catalog if m.version not in applied_versions]
        result = ApplyResult()

        if not pending:
            log.info("migrations_up_to_date", current_version=max(applied_versions, default=0))
            return result

        log.info("pending_migrations_found", count=len(pending))

        for migration in pending:
            entry = self._apply_one(migration)
            if entry is None:
                result.skipped.append(migration.version)
            else:
                result.applied.append(entry)

        log.info("migrations_complete", count=len(result.applied))
        return result

    def _check_applied_checksums(
        self, catalog: list[Migration], applied: list[LedgerEntry]
    ) -> None:
        """Refuse to run if any applied script was edited after the fact."""
        by_version = {m.version: m for m in catalog}
        for entry in applied:
            migration = by_version.get(entry.version)
            if migration is None:
                continue
            actual = migration.checksum()
            if actual != entry.checksum:
                log.error(
                    "checksum_mismatch",
                    version=entry.version,
                    name=entry.name,
                    expected=entry.checksum,
                    actual=actual,
                )
                self.state = ExecutorState.FAILED
                raise ChecksumMismatchError(entry.version, entry.name, entry.checksum, actual)

    def _apply_one(self, migration: Migration) -> LedgerEntry | None:
        """Apply a single migration in its own transaction.

        Returns:
            The new ledger entry, or None if the version was already applied.
        """
        self._refresh_lock()
        content = migration.read()
        checksum = compute_checksum(content)

        # Another process may have applied it since the pending list was built
        existing = self.ledger.get(migration.version)
        if existing is not None:
            if existing.checksum != checksum:
                log.error(
                    "checksum_mismatch",
                    version=migration.version,
                    name=migration.filename,
                    expected=existing.checksum,
                    actual=checksum,
                )
                self.state = ExecutorState.FAILED
                raise ChecksumMismatchError(
                    migration.version, migration.filename, existing.checksum, checksum
                )
            log.info("migration_already_applied", version=migration.version)
            return None

        self.state = ExecutorState.APPLYING
        log.info("applying_migration", version=migration.version, name=migration.filename)
        started = time.monotonic()

        try:
            sql = content.decode("utf-8")
            with self.engine.begin() as conn:
                self._execute_script(conn, sql)
                entry = LedgerEntry(
                    version=migration.version,
                    name=migration.filename,
                    checksum=checksum,
                    applied_at=utcnow(),
                    execution_time_ms=_elapsed_ms(started),
                )
                self.ledger.insert(conn, entry)
        except (SQLAlchemyError, UnicodeDecodeError) as e:
            self.state = ExecutorState.FAILED
            log.error(
                "migration_failed",
                version=migration.version,
                name=migration.filename,
                error=str(e),
            )
            raise ExecutionError(migration.version, migration.filename, e) from e

        self.state = ExecutorState.IDLE
        log.info(
            "migration_applied",
            version=migration.version,
            name=migration.filename,
            duration_ms=entry.execution_time_ms,
        )
        return entry

    # -------------------------------------------------------------------------
    # Rollback
    # -------------------------------------------------------------------------

    def _rollback(self, target_version: int | None) -> LedgerEntry | None:
        latest = self.ledger.latest()
        if latest is None:
            log.info("no_migrations_to_rollback")
            return None

        if target_version is None:
            entry = latest
        else:
            entry = self.ledger.get(target_version)
            if entry is None:
                log.error("rollback_target_not_found", version=target_version)
                raise NotFoundError(target_version)

        self._rollback_entry(entry)
        return entry

    def _rollback_entry(self, entry: LedgerEntry) -> None:
        """Run the paired rollback script and delete the ledger row atomically."""
        path = self.catalog.rollback_path_for(entry.name)
        if not path.is_file():
            log.error("rollback_script_missing", version=entry.version, path=str(path))
            raise MissingRollbackScriptError(entry.version, entry.name, path)

        self._refresh_lock()
        self.state = ExecutorState.ROLLING_BACK
        log.info("rolling_back_migration", version=entry.version, name=entry.name)
        started = time.monotonic()

        try:
            sql = path.read_bytes().decode("utf-8")
            with self.engine.begin() as conn:
                self._execute_script(conn, sql)
                if self.ledger.delete_by_version(conn, entry.version) != 1:
                    # Raising inside the block undoes the rollback script too
                    raise NotFoundError(entry.version)
        except (SQLAlchemyError, UnicodeDecodeError) as e:
            self.state = ExecutorState.FAILED
            log.error("rollback_failed", version=entry.version, name=entry.name, error=str(e))
            raise ExecutionError(entry.version, entry.name, e) from e
        except NotFoundError:
            self.state = ExecutorState.FAILED
            log.error("rollback_target_vanished", version=entry.version)
            raise

        self.state = ExecutorState.IDLE
        log.info(
            "rollback_applied",
            version=entry.version,
            name=entry.name,
            duration_ms=_elapsed_ms(started),
        )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _execute_script(self, conn: Connection, sql: str) -> None:
        for statement in split_statements(sql):
            # Scripts are verbatim SQL; a literal % must not be read as a bind marker
            conn.exec_driver_sql(statement, execution_options={"no_parameters": True})

    def _refresh_lock(self) -> None:
        """Renew the lease before each step so long runs keep the lock."""
        if self.lock is None or not self.lock.held:
            return
        try:
            self.lock.refresh()
        except LockError:
            self.state = ExecutorState.FAILED
            raise

    @contextlib.contextmanager
    def _locked(self) -> Iterator[None]:
        if self.lock is None:
            yield
            return
        with self.lock:
            yield


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def run_startup_migrations(config: Config) -> ApplyResult:
    """Apply all pending migrations before an application starts serving.

    Opens an engine from ``config``, applies pending migrations and disposes
    the engine again, whatever the outcome.

    Args:
        config: Application configuration.

    Returns:
        ApplyResult for the run.
    """
    engine = get_engine(config)
    try:
        return MigrationExecutor.from_config(engine, config).apply_pending()
    finally:
        engine.dispose()
