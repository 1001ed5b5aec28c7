"""Integrity validation of applied migrations.

Recomputes the checksum of every script recorded in the ledger and compares it
with the stored value. Read-only: nothing is created, repaired or deleted.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from schemaledger.catalog import MigrationCatalog, compute_checksum
from schemaledger.ledger import VersionLedger
from schemaledger.logging import get_logger
from schemaledger.models import LedgerEntry

log = get_logger("validator")


@dataclass(frozen=True)
class ChecksumViolation:
    """An applied script whose on-disk content no longer matches the ledger."""

    version: int
    name: str
    expected_checksum: str
    actual_checksum: str

    def describe(self) -> str:
        return (
            f"Migration {self.name} has been modified after being applied\n"
            f"  Expected: {self.expected_checksum}\n"
            f"  Current:  {self.actual_checksum}"
        )


@dataclass(frozen=True)
class MissingFileViolation:
    """An applied script that is no longer on disk."""

    version: int
    name: str
    expected_checksum: str

    def describe(self) -> str:
        return f"Migration file missing: {self.name}"


Violation = ChecksumViolation | MissingFileViolation


@dataclass
class ValidationReport:
    """Result of validating every ledger entry.

    Attributes:
        checked: Ledger entries that were examined, in version order.
        violations: Problems found, in version order.
    """

    checked: list[LedgerEntry] = field(default_factory=list)
    violations: list[Violation] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.violations

    def violation_for(self, version: int) -> Violation | None:
        for violation in self.violations:
            if violation.version == version:
                return violation
        return None


class IntegrityValidator:
    """Detects drift between the ledger and the scripts on disk."""

    def __init__(self, catalog: MigrationCatalog, ledger: VersionLedger) -> None:
        self.catalog = catalog
        self.ledger = ledger

    def validate(self) -> ValidationReport:
        """Check every applied migration against its script on disk.

        Returns:
            ValidationReport; ``valid`` is False if any violation was found.
        """
        report = ValidationReport()

        if not self.ledger.exists():
            log.info("validation_skipped_no_ledger")
            return report

        for entry in self.ledger.list_applied():
            report.checked.append(entry)
            path = self.catalog.script_path_for(entry.name)

            if not path.is_file():
                log.warning("migration_file_missing", version=entry.version, name=entry.name)
                report.violations.append(
                    MissingFileViolation(
                        version=entry.version,
                        name=entry.name,
                        expected_checksum=entry.checksum,
                    )
                )
                continue

            actual = compute_checksum(path.read_bytes())
            if actual != entry.checksum:
                log.warning(
                    "checksum_mismatch",
                    version=entry.version,
                    name=entry.name,
                    expected=entry.checksum,
                    actual=actual,
                )
                report.violations.append(
                    ChecksumViolation(
                        version=entry.version,
                        name=entry.name,
                        expected_checksum=entry.checksum,
                        actual_checksum=actual,
                    )
                )

        log.info(
            "validation_complete",
            checked=len(report.checked),
            violations=len(report.violations),
        )
        return report
