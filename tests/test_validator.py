"""Tests for integrity validation of applied migrations."""

from pathlib import Path

from conftest import ADD_INDEX_SQL, INIT_SQL
from schemaledger.catalog import compute_checksum
from schemaledger.validator import (
    ChecksumViolation,
    IntegrityValidator,
    MissingFileViolation,
)


def make_validator(executor) -> IntegrityValidator:
    return IntegrityValidator(executor.catalog, executor.ledger)


def test_no_ledger_is_valid(executor, ledger) -> None:
    report = make_validator(executor).validate()

    assert report.valid
    assert report.checked == []
    # Validation never creates the ledger
    assert not ledger.exists()


def test_untouched_scripts_are_valid(executor, write_migration) -> None:
    write_migration("001_init.sql", INIT_SQL)
    write_migration("002_add_col.sql", ADD_INDEX_SQL)
    executor.apply_pending()

    report = make_validator(executor).validate()

    assert report.valid
    assert [e.version for e in report.checked] == [1, 2]


def test_edited_script_reports_one_checksum_violation(executor, write_migration) -> None:
    write_migration("001_init.sql", INIT_SQL)
    path = write_migration("002_add_col.sql", ADD_INDEX_SQL)
    executor.apply_pending()

    edited = ADD_INDEX_SQL.replace("UNIQUE ", "")
    path.write_text(edited)

    report = make_validator(executor).validate()

    assert not report.valid
    assert report.violations == [
        ChecksumViolation(
            version=2,
            name="002_add_col.sql",
            expected_checksum=compute_checksum(ADD_INDEX_SQL.encode()),
            actual_checksum=compute_checksum(edited.encode()),
        )
    ]
    assert report.violation_for(1) is None
    assert "has been modified" in report.violation_for(2).describe()


def test_deleted_script_reports_missing_file(executor, write_migration, migrations_dir: Path) -> None:
    write_migration("001_init.sql", INIT_SQL)
    executor.apply_pending()

    (migrations_dir / "001_init.sql").unlink()

    report = make_validator(executor).validate()

    assert not report.valid
    [violation] = report.violations
    assert isinstance(violation, MissingFileViolation)
    assert violation.version == 1
    assert violation.expected_checksum == compute_checksum(INIT_SQL.encode())
    assert "missing" in violation.describe()


def test_validate_does_not_mutate(executor, ledger, write_migration) -> None:
    path = write_migration("001_init.sql", INIT_SQL)
    executor.apply_pending()
    path.write_text("-- changed\n")
    before = ledger.list_applied()

    make_validator(executor).validate()

    assert ledger.list_applied() == before
