"""Tests for the clinical report export and logging setup."""

import io
import json
import logging
from unittest.mock import MagicMock, patch

from clinireport.domain.ports import ClinicalStorePort, StorageError
from clinireport.domain.services import QualityChecker, ReportingService, SchemaMigrator
from clinireport.infrastructure.logging_config import StructuredFormatter, setup_logging
from clinireport.infrastructure.report_export import default_report_path, generate_clinical_report

from tests.conftest import AS_OF


class TestGenerateClinicalReport:
    """Test suite for generate_clinical_report."""

    def test_report_document(self, migrated_store):
        result = generate_clinical_report(migrated_store, as_of=AS_OF)

        assert result.is_success()
        report = result.value
        assert report["reports"]["as_of"] == "2025-06-01"
        assert [t["table"] for t in report["tables"]] == ["patients", "samples", "tests", "treatments"]
        assert report["quality"]["null_results"] == 1
        assert report["quality"]["has_issues"] is True
        assert "migration" not in report
        assert "saved_to" not in report

    def test_undefined_rate_serialized_as_null(self, migrated_store):
        report = generate_clinical_report(migrated_store, as_of=AS_OF).value
        older = [g for g in report["reports"]["age_groups"] if g["age_group"] == ">50"][0]
        assert older["success_rate_percent"] is None

    def test_saved_to_file(self, raw_store, tmp_path):
        migration = SchemaMigrator(raw_store).migrate().value
        output = tmp_path / "nested" / "report.json"

        result = generate_clinical_report(
            raw_store, output_path=str(output), as_of=AS_OF, preview_rows=2, migration_report=migration
        )

        assert result.is_success()
        assert result.value["saved_to"] == str(output)
        saved = json.loads(output.read_text())
        assert saved["migration"]["actions"][0]["table"] == "patients"
        assert len(saved["tables"][0]["preview"]) == 2
        assert saved["tables"][0]["preview"][0]["dob"] == "1990-01-01"

    def test_without_quality(self, migrated_store):
        report = generate_clinical_report(migrated_store, as_of=AS_OF, include_quality=False).value
        assert "quality" not in report

    def test_storage_failure(self):
        store = MagicMock(spec=ClinicalStorePort)
        store.placeholder = "?"
        store.fetch_all.side_effect = StorageError("Query failed: no such table", operation="fetch_all")

        result = generate_clinical_report(store, as_of=AS_OF)

        assert result.is_failure()
        assert result.error_type == "StorageError"

    def test_default_report_path(self):
        assert str(default_report_path("reports", AS_OF)) == "reports/clinical_report_2025-06-01.json"


class TestLogging:
    """Test suite for logging configuration."""

    def test_structured_formatter(self):
        record = logging.LogRecord("clinireport.test", logging.WARNING, __file__, 10, "Type mismatch on %s", ("x",), None)

        data = json.loads(StructuredFormatter().format(record))

        assert data["level"] == "WARNING"
        assert data["logger"] == "clinireport.test"
        assert data["message"] == "Type mismatch on x"
        assert data["timestamp"].endswith("Z")

    def test_setup_logging_json(self):
        setup_logging(use_json=True, log_level="debug")

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert isinstance(root.handlers[0].formatter, StructuredFormatter)
        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING

        setup_logging()
        assert not isinstance(root.handlers[0].formatter, StructuredFormatter)

    def test_context_fields_emitted(self):
        record = logging.LogRecord("clinireport.test", logging.ERROR, __file__, 10, "Migration stopped", (), None)
        record.table = "samples"
        record.operation = "apply_constraints"

        data = json.loads(StructuredFormatter().format(record))

        assert data["table"] == "samples"
        assert data["operation"] == "apply_constraints"
        assert "constraint" not in data

    def test_migration_failure_logged_with_table(self, raw_store, frames):
        stream = io.StringIO()
        frames["patients"]["patient_code"] = ["P001", "P001", "P003"]
        raw_store.load_table(frames["patients"], "patients")
        setup_logging(use_json=True, log_level="ERROR", stream=stream)
        try:
            assert SchemaMigrator(raw_store).migrate().is_failure()
        finally:
            setup_logging()

        lines = [json.loads(line) for line in stream.getvalue().splitlines()]
        stopped = [line for line in lines if line["message"].startswith("Migration stopped")]
        assert stopped[0]["table"] == "patients"


class TestExportReuse:
    """Test suite for exporting reports that were already computed."""

    def test_precomputed_reports_not_requeried(self, migrated_store):
        clinical = ReportingService(migrated_store).run_all(as_of=AS_OF)
        quality = QualityChecker(migrated_store).run()

        with patch("clinireport.infrastructure.report_export.ReportingService") as reporting, \
                patch("clinireport.infrastructure.report_export.QualityChecker") as checker:
            result = generate_clinical_report(migrated_store, as_of=AS_OF, clinical=clinical, quality=quality)

        assert result.is_success()
        reporting.assert_not_called()
        checker.assert_not_called()
        assert result.value["quality"]["null_results"] == 1
