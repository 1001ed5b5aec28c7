"""Lease lock guarding against two processes migrating at once.

A single row in ``migrations_lock`` records who holds the lock and since when.
Acquiring is one conditional UPDATE, so two processes racing for a free lock
cannot both win. A lease older than ``stale_after`` is assumed to belong to a
crashed process and is taken over.
"""

from __future__ import annotations

import os
import socket
from datetime import timedelta

from sqlalchemy import or_, select, update
from sqlalchemy.engine import Engine

from schemaledger.database import create_tables, migrations_lock
from schemaledger.errors import LockError
from schemaledger.logging import get_logger
from schemaledger.models import utcnow

log = get_logger("lock")

LOCK_ROW_ID = 1
DEFAULT_STALE_AFTER = timedelta(minutes=10)


def default_owner() -> str:
    return f"{socket.gethostname()}:{os.getpid()}"


class MigrationLock:
    """Datastore-level lease lock for the migration executor.

    Usage:
        with MigrationLock(engine):
            ...
    """

    def __init__(
        self,
        engine: Engine,
        owner: str | None = None,
        stale_after: timedelta = DEFAULT_STALE_AFTER,
    ) -> None:
        self.engine = engine
        self.owner = owner or default_owner()
        self.stale_after = stale_after
        self._held = False

    @property
    def held(self) -> bool:
        return self._held

    def acquire(self) -> None:
        """Take the lock or fail immediately.

        Raises:
            LockError: If another owner holds a lease that is not stale.
        """
        create_tables(self.engine)
        now = utcnow()
        cutoff = now - self.stale_after

        with self.engine.begin() as conn:
            row = conn.execute(
                select(migrations_lock).where(migrations_lock.c.id == LOCK_ROW_ID)
            ).first()
            if row is None:
                conn.execute(migrations_lock.insert().values(id=LOCK_ROW_ID))
            elif row.locked_by is not None and row.locked_by != self.owner:
                log.debug("lock_currently_held", holder=row.locked_by, locked_at=str(row.locked_at))

            result = conn.execute(
                update(migrations_lock)
                .where(migrations_lock.c.id == LOCK_ROW_ID)
                .where(
                    or_(
                        migrations_lock.c.locked_by.is_(None),
                        migrations_lock.c.locked_by == self.owner,
                        migrations_lock.c.locked_at < cutoff,
                    )
                )
                .values(locked_by=self.owner, locked_at=now)
            )

        if result.rowcount != 1:
            holder = row.locked_by if row is not None else None
            locked_at = row.locked_at if row is not None else None
            log.error("lock_acquire_failed", holder=holder, locked_at=str(locked_at))
            raise LockError(holder, locked_at)

        if row is not None and row.locked_by not in (None, self.owner):
            log.warning("stale_lock_taken_over", previous_holder=row.locked_by)

        self._held = True
        log.debug("lock_acquired", owner=self.owner)

    def refresh(self) -> None:
        """Extend the lease so a long run is not mistaken for a crashed one.

        Raises:
            LockError: If this owner no longer holds the lock.
        """
        with self.engine.begin() as conn:
            result = conn.execute(
                update(migrations_lock)
                .where(migrations_lock.c.id == LOCK_ROW_ID)
                .where(migrations_lock.c.locked_by == self.owner)
                .values(locked_at=utcnow())
            )
            if result.rowcount != 1:
                row = conn.execute(
                    select(migrations_lock).where(migrations_lock.c.id == LOCK_ROW_ID)
                ).first()

        if result.rowcount != 1:
            self._held = False
            holder = row.locked_by if row is not None else None
            locked_at = row.locked_at if row is not None else None
            log.error("lock_lost", owner=self.owner, holder=holder)
            raise LockError(holder, locked_at)

        log.debug("lock_refreshed", owner=self.owner)

    def release(self) -> None:
        """Release the lock if this owner holds it."""
        if not self._held:
            return
        with self.engine.begin() as conn:
            conn.execute(
                update(migrations_lock)
                .where(migrations_lock.c.id == LOCK_ROW_ID)
                .where(migrations_lock.c.locked_by == self.owner)
                .values(locked_by=None, locked_at=None)
            )
        self._held = False
        log.debug("lock_released", owner=self.owner)

    def force_release(self) -> str | None:
        """Clear the lock regardless of owner.

        Returns:
            The previous holder, or None if the lock was free.
        """
        create_tables(self.engine)
        with self.engine.begin() as conn:
            row = conn.execute(
                select(migrations_lock).where(migrations_lock.c.id == LOCK_ROW_ID)
            ).first()
            if row is None or row.locked_by is None:
                return None
            conn.execute(
                update(migrations_lock)
                .where(migrations_lock.c.id == LOCK_ROW_ID)
                .values(locked_by=None, locked_at=None)
            )
        self._held = False
        log.warning("lock_force_released", previous_holder=row.locked_by)
        return row.locked_by

    def __enter__(self) -> "MigrationLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
