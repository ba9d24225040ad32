"""Shared fixtures: a small clinical data set loaded into in-memory DuckDB.

Data set (as of 2025-06-01):
    P001 (id 1, born 1990) -> 35, group 30-50, treatments Successful + Failed
    P002 (id 2, born 1960) -> 65, group >50, no treatments
    P003 (id 3, born 2001) -> 24, group <30, one Successful treatment

    Sample 1 (patient 1) carries two Positive tests. Sample 4 (patient 3)
    carries one NULL and one out-of-enumeration result.

treatments.patient_id is loaded as text, the way a sloppy CSV export leaves
it, so the migration has a real type mismatch to fix.
"""

from datetime import date

import pandas as pd
import pytest

from clinireport.adapters.storage.duckdb_adapter import DuckDBAdapter

AS_OF = date(2025, 6, 1)


def clinical_frames() -> dict[str, pd.DataFrame]:
    return {
        "patients": pd.DataFrame({
            "patient_id": [1, 2, 3],
            "patient_code": ["P001", "P002", "P003"],
            "dob": [date(1990, 1, 1), date(1960, 5, 10), date(2001, 3, 15)],
        }),
        "samples": pd.DataFrame({
            "sample_id": [1, 2, 3, 4],
            "patient_id": [1, 1, 2, 3],
            "sample_type": ["Blood", "Urine", "Blood", "Saliva"],
        }),
        "tests": pd.DataFrame({
            "test_id": [1, 2, 3, 4, 5],
            "sample_id": [1, 1, 3, 4, 4],
            "test_name": ["CBC", "Glucose", "CBC", "CBC", "PCR"],
            "result": ["Positive", "Positive", "Negative", None, "Inconclusive"],
        }),
        "treatments": pd.DataFrame({
            "treatment_id": [1, 2, 3],
            "patient_id": ["1", "1", "3"],
            "treatment": ["Chemotherapy", "Radiation", "Surgery"],
            "outcome": ["Successful", "Failed", "Successful"],
        }),
    }


def load_frames(store: DuckDBAdapter, frames: dict[str, pd.DataFrame]) -> DuckDBAdapter:
    for table, df in frames.items():
        result = store.load_table(df, table)
        assert result.is_success(), result.error
    return store


@pytest.fixture
def frames():
    """Fresh copies of the clinical frames, safe to modify per test."""
    return clinical_frames()


@pytest.fixture
def store():
    """Empty in-memory DuckDB store."""
    adapter = DuckDBAdapter(db_path=":memory:")
    yield adapter
    adapter.close()


@pytest.fixture
def raw_store(store, frames):
    """Store with the four raw (unconstrained) tables."""
    return load_frames(store, frames)


@pytest.fixture
def migrated_store(raw_store):
    """Store after a successful schema migration."""
    from clinireport.domain.services import SchemaMigrator

    result = SchemaMigrator(raw_store).migrate()
    assert result.is_success(), result.error
    return raw_store


@pytest.fixture
def csv_dir(tmp_path, frames):
    """Directory with the four CSV files, mixed-case names as exported."""
    names = {
        "patients": "Patients.csv",
        "samples": "Samples.csv",
        "tests": "TESTS.csv",
        "treatments": "treatments.CSV",
    }
    for table, df in frames.items():
        df.to_csv(tmp_path / names[table], index=False)
    return tmp_path
