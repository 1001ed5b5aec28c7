"""Exceptions raised by the migration engine.

Every error is fatal to the command that raised it. None of them are retried:
schema changes need a human to decide what happens next.
"""

from __future__ import annotations

from pathlib import Path


class MigrationError(Exception):
    """Base class for all migration engine errors."""


class MalformedVersionError(MigrationError):
    """A script identifier has no leading integer version."""

    def __init__(self, identifier: str) -> None:
        self.identifier = identifier
        super().__init__(
            f"Invalid migration filename: {identifier} "
            "(expected <version>_<name>.sql)"
        )


class DuplicateVersionError(MigrationError):
    """Two scripts in the catalog share the same version."""

    def __init__(self, version: int, filenames: list[str]) -> None:
        self.version = version
        self.filenames = filenames
        super().__init__(
            f"Duplicate migration version {version}: {', '.join(filenames)}"
        )


class ChecksumMismatchError(MigrationError):
    """An applied script was modified after it was recorded in the ledger."""

    def __init__(self, version: int, name: str, expected: str, actual: str) -> None:
        self.version = version
        self.name = name
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Migration {name} has been modified since it was applied. "
            f"Expected checksum: {expected}, got: {actual}"
        )


class MissingRollbackScriptError(MigrationError):
    """Rollback was requested but the paired rollback script does not exist."""

    def __init__(self, version: int, name: str, path: Path) -> None:
        self.version = version
        self.name = name
        self.path = path
        super().__init__(f"No rollback file found for migration {name} (expected {path})")


class ExecutionError(MigrationError):
    """A script failed against the datastore; its transaction was rolled back."""

    def __init__(self, version: int, name: str, cause: BaseException) -> None:
        self.version = version
        self.name = name
        self.cause = cause
        super().__init__(f"Migration {name} (v{version}) failed: {cause}")


class NotFoundError(MigrationError):
    """The requested version is not recorded in the ledger."""

    def __init__(self, version: int) -> None:
        self.version = version
        super().__init__(f"Migration version {version} not found")


class LockError(MigrationError):
    """Another process holds the migration lock."""

    def __init__(self, holder: str | None, locked_at: object = None) -> None:
        self.holder = holder
        self.locked_at = locked_at
        super().__init__(
            f"Migration lock is held by {holder or 'unknown'} since {locked_at}"
        )
