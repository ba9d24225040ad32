"""Tests for SchemaMigrator against in-memory DuckDB.

Covers the inspect -> diagnose -> alter -> apply protocol, idempotence and
rollback when existing data violates a constraint.
"""

from unittest.mock import MagicMock

import pytest

from clinireport.domain.models import ColumnInfo
from clinireport.domain.ports import ClinicalStorePort, Result, StorageError
from clinireport.domain.schema import ConstraintKind
from clinireport.domain.services import QualityChecker, SchemaMigrator

from tests.conftest import load_frames


class TestDiagnosis:
    """Test suite for type mismatch diagnosis."""

    def test_detects_text_patient_id(self, raw_store):
        """A VARCHAR treatments.patient_id against an integer patients.patient_id is reported."""
        mismatches = SchemaMigrator(raw_store).diagnose()

        assert len(mismatches) == 1
        mismatch = mismatches[0]
        assert mismatch.constraint == "fk_treatments_patients"
        assert mismatch.table == "treatments"
        assert mismatch.column_type == "VARCHAR"
        assert mismatch.referenced_type == "BIGINT"
        assert "treatments.patient_id is VARCHAR" in mismatch.describe()

    def test_restricted_to_table(self, raw_store):
        assert SchemaMigrator(raw_store).diagnose("samples") == []

    def test_missing_table_skipped(self, store, frames):
        """Foreign keys whose tables are not imported are skipped, not failed."""
        store.load_table(frames["patients"], "patients")
        assert SchemaMigrator(store).diagnose() == []

    def test_describe_lists_columns(self, raw_store):
        columns = SchemaMigrator(raw_store).describe("treatments")
        assert [c.name for c in columns] == ["treatment_id", "patient_id", "treatment", "outcome"]

    def test_pending_constraints_before_migration(self, raw_store):
        pending = SchemaMigrator(raw_store).pending_constraints("patients")
        assert [spec.name for spec in pending] == ["pk_patients", "uq_patients_patient_code"]


class TestMigration:
    """Test suite for the migration run."""

    def test_migrate_applies_all_constraints(self, raw_store):
        result = SchemaMigrator(raw_store).migrate()

        assert result.is_success()
        report = result.value
        assert report.applied_tables == ["patients", "samples", "tests", "treatments"]
        assert raw_store.existing_constraints("patients") == {
            (ConstraintKind.PRIMARY_KEY, "patient_id"),
            (ConstraintKind.UNIQUE, "patient_code"),
        }
        assert (ConstraintKind.FOREIGN_KEY, "patient_id") in raw_store.existing_constraints("treatments")
        assert (ConstraintKind.FOREIGN_KEY, "sample_id") in raw_store.existing_constraints("tests")

    def test_migrate_aligns_key_types(self, raw_store):
        """Every key column ends up INTEGER NOT NULL."""
        report = SchemaMigrator(raw_store).migrate().value

        assert "treatments.patient_id: VARCHAR -> INTEGER" in report.altered_columns
        for table, column in [("patients", "patient_id"), ("samples", "patient_id"), ("tests", "sample_id"),
                              ("treatments", "patient_id")]:
            info = {c.name: c for c in raw_store.describe_columns(table)}[column]
            assert info.is_integer
            assert not info.nullable

    def test_migrate_records_mismatches(self, raw_store):
        report = SchemaMigrator(raw_store).migrate().value
        assert any(m.table == "treatments" and m.column_type == "VARCHAR" for m in report.mismatches)

    def test_rows_preserved(self, raw_store):
        before = {t: raw_store.count_rows(t) for t in ("patients", "samples", "tests", "treatments")}
        SchemaMigrator(raw_store).migrate()
        assert {t: raw_store.count_rows(t) for t in before} == before

    def test_second_run_is_noop(self, migrated_store):
        """Re-running a completed migration alters nothing and applies nothing."""
        result = SchemaMigrator(migrated_store).migrate()

        assert result.is_success()
        assert result.value.is_noop
        assert result.value.altered_columns == []
        assert result.value.applied_tables == []
        assert result.value.mismatches == []

    def test_referential_integrity_after_migration(self, migrated_store):
        issues = QualityChecker(migrated_store).referential_issues()
        assert all(issue.orphans == 0 and issue.missing_keys == 0 for issue in issues)

    def test_enforced_after_migration(self, migrated_store):
        """Inserting an orphan sample is rejected once the foreign key exists."""
        with pytest.raises(StorageError, match="foreign key"):
            migrated_store.fetch_all("INSERT INTO samples VALUES (99, 42, 'Blood')")


class TestMigrationFailures:
    """Test suite for constraint violations surfaced by the migration."""

    def test_duplicate_patient_code_rolls_back(self, store, frames):
        frames["patients"].loc[2, "patient_code"] = "P001"
        load_frames(store, frames)

        result = SchemaMigrator(store).migrate()

        assert result.is_failure()
        assert result.error_type == "ConstraintViolationError"
        assert result.error_details["table"] == "patients"
        assert result.error_details["report"].applied_tables == []
        # Table left as it was: rows intact, no constraint added
        assert store.count_rows("patients") == 3
        assert store.existing_constraints("patients") == set()

    def test_orphan_treatment_stops_at_treatments(self, store, frames):
        frames["treatments"].loc[2, "patient_id"] = "99"
        load_frames(store, frames)

        result = SchemaMigrator(store).migrate()

        assert result.is_failure()
        assert result.error_type == "ConstraintViolationError"
        assert result.error_details["table"] == "treatments"
        assert result.error_details["report"].applied_tables == ["patients", "samples", "tests"]
        assert store.count_rows("treatments") == 3
        assert store.existing_constraints("treatments") == set()

    def test_null_key_reported(self, store, frames):
        frames["treatments"].loc[0, "patient_id"] = None
        load_frames(store, frames)

        result = SchemaMigrator(store).migrate()

        assert result.is_failure()
        assert result.error_type in ("ConstraintViolationError", "StorageError")
        assert result.error_details["table"] == "treatments"

    def test_missing_key_column(self, store, frames):
        load_frames(store, {"patients": frames["patients"].drop(columns=["patient_id"])})

        result = SchemaMigrator(store, tables=["patients"]).migrate()

        assert result.is_failure()
        assert result.error_type == "StorageError"
        assert "does not exist" in result.error

    def test_store_failure_propagated(self):
        """A failing alter stops the run before any constraint is applied."""
        store = MagicMock(spec=ClinicalStorePort)
        store.existing_constraints.return_value = set()
        store.describe_columns.return_value = [
            ColumnInfo(table="patients", name="patient_id", data_type="VARCHAR"),
            ColumnInfo(table="patients", name="patient_code", data_type="VARCHAR"),
        ]
        store.alter_column_type.return_value = Result.failure_result(
            "cannot cast 'abc' to INTEGER", error_type="StorageError"
        )

        result = SchemaMigrator(store, tables=["patients"]).migrate()

        assert result.is_failure()
        assert result.error_type == "StorageError"
        store.apply_constraints.assert_not_called()
