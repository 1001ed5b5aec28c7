"""Ledger schema and connection management for schemaledger.

Uses SQLAlchemy Core (not ORM) for explicit SQL control. The only tables the
engine owns are the ledger itself and the migration lock row; everything else
in the target datastore belongs to user migrations.
"""

from sqlalchemy import (
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    create_engine,
    event,
)
from sqlalchemy.engine import Engine

from schemaledger.config import Config
from schemaledger.logging import get_logger

log = get_logger("database")

LEDGER_TABLE = "migrations"
LOCK_TABLE = "migrations_lock"

# Shared metadata for engine-owned tables
metadata = MetaData()


# =============================================================================
# Version Ledger
# =============================================================================

migrations = Table(
    LEDGER_TABLE,
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("version", Integer, nullable=False),
    Column("name", String, nullable=False),  # Script filename, e.g. 002_add_col.sql
    Column("checksum", String(64), nullable=False),  # SHA-256 hex of script bytes
    Column("applied_at", DateTime(timezone=True), nullable=False),
    Column("execution_time_ms", Integer, nullable=False),
    Index("idx_migrations_version", "version", unique=True),
)


# =============================================================================
# Migration Lock
# =============================================================================

migrations_lock = Table(
    LOCK_TABLE,
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=False),  # Always 1
    Column("locked_by", String, nullable=True),
    Column("locked_at", DateTime(timezone=True), nullable=True),
)


# =============================================================================
# Helper Functions
# =============================================================================


def get_engine(config: Config) -> Engine:
    """Create SQLAlchemy engine from config.

    For SQLite the pysqlite driver's own transaction handling is switched
    off and an explicit BEGIN is emitted instead, so DDL statements take part
    in the same transaction as the ledger write.

    Args:
        config: Application configuration.

    Returns:
        SQLAlchemy Engine instance.
    """
    url = config.database_url

    if config.database.url is None:
        # Ensure data directory exists
        config.database_path.parent.mkdir(parents=True, exist_ok=True)

    engine = create_engine(url, echo=config.database.echo)

    if engine.dialect.name == "sqlite":
        enable_sqlite_transactional_ddl(engine)

    log.debug("engine_created", dialect=engine.dialect.name, database=engine.url.database)
    return engine


def enable_sqlite_transactional_ddl(engine: Engine) -> None:
    """Make pysqlite run DDL inside explicit transactions.

    Args:
        engine: Engine using the SQLite dialect.
    """
    database = engine.url.database
    file_backed = bool(database) and database != ":memory:"

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Stop pysqlite from emitting BEGIN/COMMIT around statements itself
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        if file_backed:
            cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_tables(engine: Engine) -> None:
    """Create the ledger and lock tables if they don't exist.

    Args:
        engine: SQLAlchemy Engine instance.
    """
    metadata.create_all(engine, checkfirst=True)
