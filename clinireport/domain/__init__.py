"""Domain layer for CliniReport.

This module contains the schema plan, the report models and the domain
services. All domain code is pure Python with no engine dependencies beyond
Pydantic and the pandas type used by the storage port.
"""

from .models import (
    AgeGroupOutcome,
    ClinicalReport,
    ColumnInfo,
    MigrationReport,
    PatientOutcomeCount,
    PatientTestCount,
    QualityReport,
    TableSummary,
    TypeMismatch,
)

__all__ = [
    "AgeGroupOutcome",
    "ClinicalReport",
    "ColumnInfo",
    "MigrationReport",
    "PatientOutcomeCount",
    "PatientTestCount",
    "QualityReport",
    "TableSummary",
    "TypeMismatch",
]
