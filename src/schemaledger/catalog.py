"""Migration script discovery for schemaledger.

Forward scripts live directly in the migrations directory and are named
``<version>_<name>.sql``. Each may have a paired rollback script in the
``rollback`` subdirectory named ``<version>_<name>.rollback.sql``.
"""

from __future__ import annotations

import hashlib
import os
import re
from dataclasses import dataclass
from datetime import date
from pathlib import Path

from schemaledger.errors import DuplicateVersionError, MalformedVersionError
from schemaledger.logging import get_logger

log = get_logger("catalog")

SCRIPT_SUFFIX = ".sql"
ROLLBACK_SUFFIX = ".rollback.sql"
VERSION_PAD = 3

_VERSION_RE = re.compile(r"^(\d+)")
_FILENAME_RE = re.compile(r"^(\d+)_(.+)\.sql$")
_UNSAFE_NAME_RE = re.compile(r"[^a-z0-9_]+")

MIGRATION_TEMPLATE = """\
-- Migration: {filename}
-- Description: {description}
-- Author: {author}
-- Date: {date}

-- Your migration SQL here
"""

ROLLBACK_TEMPLATE = """\
-- Rollback for: {filename}
-- Description: Rollback {description}

-- Your rollback SQL here
"""


def compute_checksum(content: bytes) -> str:
    """SHA-256 hex digest of a script's exact bytes."""
    return hashlib.sha256(content).hexdigest()


def parse_version(identifier: str) -> int:
    """Parse the leading integer version of a script identifier.

    Args:
        identifier: Script filename, e.g. ``010_add_index.sql``.

    Returns:
        The numeric version (``10`` for the example above).

    Raises:
        MalformedVersionError: If the identifier has no leading integer.
    """
    match = _VERSION_RE.match(identifier)
    if not match:
        raise MalformedVersionError(identifier)
    return int(match.group(1))


def rollback_filename(filename: str) -> str:
    """Map ``001_init.sql`` to ``001_init.rollback.sql``."""
    return filename.removesuffix(SCRIPT_SUFFIX) + ROLLBACK_SUFFIX


@dataclass(frozen=True)
class Migration:
    """A forward migration script discovered on disk.

    Attributes:
        version: Numeric version parsed from the filename prefix.
        name: Descriptive part of the filename (``add_col``).
        filename: Full script filename (``002_add_col.sql``).
        path: Location of the forward script.
        rollback_path: Location of the paired rollback script, if it exists.
    """

    version: int
    name: str
    filename: str
    path: Path
    rollback_path: Path | None = None

    def read(self) -> bytes:
        return self.path.read_bytes()

    def checksum(self) -> str:
        return compute_checksum(self.read())


class MigrationCatalog:
    """Discovers migration scripts and exposes them in version order.

    The catalog is recomputed from disk on every call; nothing is cached so
    that scripts added or edited between commands are always seen.

    Attributes:
        migrations_dir: Directory holding forward scripts.
        rollback_dir: Directory holding rollback scripts.
    """

    def __init__(self, migrations_dir: Path, rollback_subdir: str = "rollback") -> None:
        self.migrations_dir = Path(migrations_dir)
        self.rollback_dir = self.migrations_dir / rollback_subdir

    def list_all(self) -> list[Migration]:
        """List all forward migrations in ascending numeric version order.

        Creates the migrations directory if it does not exist yet.

        Returns:
            Migrations sorted by version (9 before 10, padding irrelevant).

        Raises:
            MalformedVersionError: If a script name lacks a version prefix.
            DuplicateVersionError: If two scripts share a version.
        """
        if not self.migrations_dir.exists():
            self.migrations_dir.mkdir(parents=True, exist_ok=True)
            log.info("migrations_dir_created", path=str(self.migrations_dir))
            return []

        by_version: dict[int, Migration] = {}

        for path in self.migrations_dir.iterdir():
            filename = path.name
            if not path.is_file() or not filename.endswith(SCRIPT_SUFFIX):
                continue
            if filename.endswith(ROLLBACK_SUFFIX):
                continue

            migration = self._describe(path)

            existing = by_version.get(migration.version)
            if existing is not None:
                filenames = sorted([existing.filename, migration.filename])
                log.error("duplicate_migration_version", version=migration.version, files=filenames)
                raise DuplicateVersionError(migration.version, filenames)
            by_version[migration.version] = migration

        return [by_version[v] for v in sorted(by_version)]

    def get(self, version: int) -> Migration | None:
        """Get the migration with the given version, if present on disk."""
        for migration in self.list_all():
            if migration.version == version:
                return migration
        return None

    def script_path_for(self, filename: str) -> Path:
        return self.migrations_dir / filename

    def rollback_path_for(self, filename: str) -> Path:
        """Where the rollback script for ``filename`` lives (may not exist)."""
        return self.rollback_dir / rollback_filename(filename)

    def next_version(self) -> int:
        migrations = self.list_all()
        return migrations[-1].version + 1 if migrations else 1

    def create(
        self,
        name: str,
        author: str | None = None,
        today: date | None = None,
    ) -> tuple[Path, Path]:
        """Scaffold the next migration script and its rollback stub.

        Args:
            name: Free-form migration name; normalised to ``[a-z0-9_]``.
            author: Author for the header comment. Defaults to ``$USER``.
            today: Date for the header comment. Defaults to today.

        Returns:
            Tuple of (migration path, rollback path).

        Raises:
            ValueError: If the name is empty after normalisation.
            FileExistsError: If either file already exists.
        """
        safe_name = _UNSAFE_NAME_RE.sub("_", name.strip().lower())
        if not safe_name.strip("_"):
            raise ValueError(f"Invalid migration name: {name!r}")

        version = self.next_version()
        filename = f"{version:0{VERSION_PAD}d}_{safe_name}{SCRIPT_SUFFIX}"
        migration_path = self.script_path_for(filename)
        rollback_path = self.rollback_path_for(filename)

        description = safe_name.replace("_", " ").strip()
        author = author or os.environ.get("USER") or "Unknown"
        today = today or date.today()

        for path in (migration_path, rollback_path):
            if path.exists():
                raise FileExistsError(f"Migration file already exists: {path}")

        self.rollback_dir.mkdir(parents=True, exist_ok=True)

        with open(migration_path, "x") as f:
            f.write(
                MIGRATION_TEMPLATE.format(
                    filename=filename,
                    description=description,
                    author=author,
                    date=today.isoformat(),
                )
            )
        with open(rollback_path, "x") as f:
            f.write(ROLLBACK_TEMPLATE.format(filename=filename, description=description))

        log.info("migration_created", version=version, path=str(migration_path))
        return migration_path, rollback_path

    def _describe(self, path: Path) -> Migration:
        filename = path.name
        version = parse_version(filename)

        match = _FILENAME_RE.match(filename)
        if not match:
            raise MalformedVersionError(filename)

        rollback_path = self.rollback_path_for(filename)
        return Migration(
            version=version,
            name=match.group(2),
            filename=filename,
            path=path,
            rollback_path=rollback_path if rollback_path.is_file() else None,
        )
