"""Version ledger access.

The ledger is a table inside the target datastore and is the single source
of truth for which migrations have been applied. Writes (``insert`` and
``delete_by_version``) take the caller's open connection and never manage a
transaction themselves: they are only ever issued inside the transaction that
also runs the migration or rollback script.
"""

from __future__ import annotations

from sqlalchemy import delete, func, inspect, select
from sqlalchemy.engine import Connection, Engine

from schemaledger.database import LEDGER_TABLE, create_tables, migrations
from schemaledger.logging import get_logger
from schemaledger.models import LedgerEntry, model_to_dict, row_to_model

log = get_logger("ledger")


class VersionLedger:
    """Reads and writes the ``migrations`` ledger table."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def ensure_schema(self) -> None:
        """Create the ledger table and its unique version index if absent."""
        create_tables(self.engine)

    def exists(self) -> bool:
        """Check whether the ledger table has been created."""
        return inspect(self.engine).has_table(LEDGER_TABLE)

    def list_applied(self, conn: Connection | None = None) -> list[LedgerEntry]:
        """All applied migrations, ordered by version ascending."""
        query = select(migrations).order_by(migrations.c.version)
        if conn is not None:
            return [row_to_model(row, LedgerEntry) for row in conn.execute(query)]
        with self.engine.connect() as c:
            return [row_to_model(row, LedgerEntry) for row in c.execute(query)]

    def get(self, version: int, conn: Connection | None = None) -> LedgerEntry | None:
        """Get the ledger entry for a version, if applied."""
        query = select(migrations).where(migrations.c.version == version)
        if conn is not None:
            row = conn.execute(query).first()
        else:
            with self.engine.connect() as c:
                row = c.execute(query).first()
        return row_to_model(row, LedgerEntry) if row is not None else None

    def latest(self, conn: Connection | None = None) -> LedgerEntry | None:
        """The highest-version applied migration, if any."""
        applied = self.list_applied(conn)
        return applied[-1] if applied else None

    def current_version(self) -> int:
        """Highest applied version, or 0 if nothing has been applied."""
        if not self.exists():
            return 0
        with self.engine.connect() as conn:
            result = conn.execute(select(func.max(migrations.c.version))).scalar()
        return result or 0

    def insert(self, conn: Connection, entry: LedgerEntry) -> None:
        """Record an applied migration inside the caller's transaction."""
        conn.execute(migrations.insert().values(**model_to_dict(entry, exclude_none=True)))
        log.debug("ledger_entry_inserted", version=entry.version, name=entry.name)

    def delete_by_version(self, conn: Connection, version: int) -> int:
        """Remove a ledger entry inside the caller's transaction.

        Returns:
            Number of rows deleted (0 or 1).
        """
        result = conn.execute(delete(migrations).where(migrations.c.version == version))
        log.debug("ledger_entry_deleted", version=version, rows=result.rowcount)
        return result.rowcount
