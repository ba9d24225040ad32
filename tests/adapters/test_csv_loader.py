"""Tests for CSVTableLoader."""

import pandas as pd
import pytest

from clinireport.adapters.ingesters import CSVTableLoader
from clinireport.domain.ports import SourceNotFoundError, UnsupportedSourceError


class TestFindSources:
    """Test suite for locating the source files."""

    def test_case_insensitive_names(self, store, csv_dir):
        sources = CSVTableLoader(store).find_sources(csv_dir)

        assert list(sources) == ["patients", "samples", "tests", "treatments"]
        assert sources["tests"].name == "TESTS.csv"
        assert sources["treatments"].name == "treatments.CSV"

    def test_missing_file(self, store, csv_dir):
        (csv_dir / "Samples.csv").unlink()

        with pytest.raises(SourceNotFoundError, match="samples"):
            CSVTableLoader(store).find_sources(csv_dir)

    def test_missing_directory(self, store, tmp_path):
        with pytest.raises(SourceNotFoundError):
            CSVTableLoader(store).find_sources(tmp_path / "nowhere")


class TestReadCsv:
    """Test suite for reading a single file."""

    def test_headers_normalized(self, store, tmp_path):
        path = tmp_path / "Patients.csv"
        path.write_text("Patient_ID, Patient_Code ,DOB\n1,P001,1990-01-01\n")

        df = CSVTableLoader(store).read_csv(path)

        assert list(df.columns) == ["patient_id", "patient_code", "dob"]

    def test_dob_parsed_as_date(self, store, tmp_path):
        path = tmp_path / "Patients.csv"
        path.write_text("patient_id,patient_code,dob\n1,P001,1990-01-01\n2,P002,not a date\n")

        df = CSVTableLoader(store).read_csv(path)

        assert str(df.loc[0, "dob"]) == "1990-01-01"
        assert df.loc[1, "dob"] is None

    def test_empty_text_becomes_none(self, store, tmp_path):
        path = tmp_path / "Tests.csv"
        path.write_text("test_id,sample_id,test_name,result\n1,1,CBC,Positive\n2,1,CBC,\n")

        df = CSVTableLoader(store).read_csv(path)

        assert df.loc[1, "result"] is None

    def test_empty_text_becomes_none_with_string_dtype(self, store, tmp_path):
        path = tmp_path / "Tests.csv"
        path.write_text("test_id,sample_id,test_name,result\n1,1,CBC,Positive\n2,1,CBC,\n")

        with pd.option_context("future.infer_string", True):
            df = CSVTableLoader(store).read_csv(path)

        assert df.loc[1, "result"] is None
        assert df.loc[0, "result"] == "Positive"

    def test_rejects_non_csv(self, store, tmp_path):
        path = tmp_path / "patients.json"
        path.write_text("[]")

        with pytest.raises(UnsupportedSourceError):
            CSVTableLoader(store).read_csv(path)

    def test_rejects_empty_file(self, store, tmp_path):
        path = tmp_path / "patients.csv"
        path.write_text("")

        with pytest.raises(UnsupportedSourceError, match="Cannot parse"):
            CSVTableLoader(store).read_csv(path)

    def test_missing_file(self, store, tmp_path):
        with pytest.raises(SourceNotFoundError):
            CSVTableLoader(store).read_csv(tmp_path / "patients.csv")


class TestLoad:
    """Test suite for loading into the store."""

    def test_load_directory(self, store, csv_dir):
        result = CSVTableLoader(store).load_directory(csv_dir)

        assert result.is_success()
        assert result.value == {"patients": 3, "samples": 4, "tests": 5, "treatments": 3}
        assert store.count_rows("tests") == 5

    def test_keeps_inferred_types(self, store, csv_dir):
        """Identifier columns keep pandas' inference; alignment is the migrator's job."""
        CSVTableLoader(store).load_directory(csv_dir)

        types = {c.name: c.data_type for c in store.describe_columns("samples")}
        assert types["sample_id"] == "BIGINT"

    def test_reload_replaces_migrated_tables(self, store, csv_dir):
        """A second import drops constrained tables children-first and reloads them."""
        from clinireport.domain.services import SchemaMigrator

        loader = CSVTableLoader(store)
        loader.load_directory(csv_dir)
        assert SchemaMigrator(store).migrate().is_success()

        result = loader.load_directory(csv_dir)

        assert result.is_success()
        assert store.existing_constraints("samples") == set()

    def test_load_directory_missing_file(self, store, csv_dir):
        (csv_dir / "treatments.CSV").unlink()

        result = CSVTableLoader(store).load_directory(csv_dir)

        assert result.is_failure()
        assert result.error_type == "SourceNotFoundError"
        assert not store.table_exists("patients")

    def test_load_csv(self, store, csv_dir):
        result = CSVTableLoader(store).load_csv(csv_dir / "Patients.csv")

        assert result.is_success()
        assert store.table_exists("patients")

    def test_load_csv_unsupported(self, store, tmp_path):
        path = tmp_path / "patients.txt"
        path.write_text("patient_id\n1\n")

        result = CSVTableLoader(store).load_csv(path)

        assert result.is_failure()
        assert result.error_type == "UnsupportedSourceError"
