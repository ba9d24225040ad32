"""Clinical Report Models.

This module defines the typed result objects returned by the migrator,
the data quality checks and the reporting queries. Rows coming back from the
engine are validated into these models so callers never handle raw tuples.

Architecture:
    - Pure domain models with zero infrastructure dependencies
    - Validated at runtime via Pydantic V2
    - JSON-serializable via model_dump(mode="json") for report export
"""

from datetime import date, datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from clinireport.domain.schema import AGE_GROUP_ORDER, is_integer_type


class ColumnInfo(BaseModel):
    """Column metadata for a table (name, engine type, nullability)."""

    model_config = ConfigDict(frozen=True)

    table: str
    name: str
    data_type: str
    nullable: bool = True
    position: int = Field(0, description="1-based ordinal position in the table")

    @property
    def is_integer(self) -> bool:
        return is_integer_type(self.data_type)


class TypeMismatch(BaseModel):
    """A foreign key whose referencing and referenced column types differ.

    Engines refuse to create such a foreign key; the migrator aligns both
    columns to the canonical key type before applying the constraint.
    """

    model_config = ConfigDict(frozen=True)

    constraint: str
    table: str
    column: str
    column_type: str
    referenced_table: str
    referenced_column: str
    referenced_type: str

    def describe(self) -> str:
        return (
            f"{self.constraint}: {self.table}.{self.column} is {self.column_type} "
            f"but {self.referenced_table}.{self.referenced_column} is {self.referenced_type}"
        )


class MigrationAction(BaseModel):
    """One step taken (or skipped) while migrating a table."""

    table: str
    action: Literal["aligned_type", "applied_constraints", "skipped"]
    detail: str


class MigrationReport(BaseModel):
    """Summary of a migration run."""

    mismatches: list[TypeMismatch] = Field(default_factory=list)
    actions: list[MigrationAction] = Field(default_factory=list)

    @property
    def altered_columns(self) -> list[str]:
        return [a.detail for a in self.actions if a.action == "aligned_type"]

    @property
    def applied_tables(self) -> list[str]:
        return [a.table for a in self.actions if a.action == "applied_constraints"]

    @property
    def is_noop(self) -> bool:
        return all(a.action == "skipped" for a in self.actions)


class TableSummary(BaseModel):
    """Initial inspection of an imported table."""

    table: str
    exists: bool = True
    row_count: int = 0
    columns: list[ColumnInfo] = Field(default_factory=list)
    preview: list[dict[str, Any]] = Field(default_factory=list)


class DuplicateCode(BaseModel):
    patient_code: Optional[str]
    occurrences: int

    @field_validator("patient_code", mode="before")
    @classmethod
    def code_as_text(cls, v):
        # numeric codes come back as integers when the column was read as BIGINT
        return None if v is None else str(v)


class ReferentialIssue(BaseModel):
    """Integrity diagnostics for one foreign key."""

    constraint: str
    table: str
    column: str
    missing_keys: int = Field(0, description="Referencing rows with a null key")
    orphans: int = Field(0, description="Referencing rows whose key has no parent row")

    @property
    def is_clean(self) -> bool:
        return self.missing_keys == 0 and self.orphans == 0


class QualityReport(BaseModel):
    """Output of the read-only data quality checks.

    Issues are reported for human review; nothing is corrected.
    """

    null_results: int
    invalid_results: list[dict[str, Any]] = Field(default_factory=list)
    duplicate_patient_codes: list[DuplicateCode] = Field(default_factory=list)
    referential_issues: list[ReferentialIssue] = Field(default_factory=list)

    @property
    def invalid_result_count(self) -> int:
        return len(self.invalid_results)

    @property
    def has_issues(self) -> bool:
        return bool(
            self.null_results
            or self.invalid_results
            or self.duplicate_patient_codes
            or any(not issue.is_clean for issue in self.referential_issues)
        )


class PatientTestCount(BaseModel):
    """Row of the tests-per-patient report.

    patient_id is None for tests whose sample has no patient key, which
    only happens before migration.
    """

    patient_id: Optional[int]
    total_tests: int = Field(..., ge=0)


class PatientOutcomeCount(BaseModel):
    """Row of the positive/negative outcome report."""

    patient_id: Optional[int]
    positive_count: int = Field(0, ge=0)
    negative_count: int = Field(0, ge=0)

    @field_validator("positive_count", "negative_count", mode="before")
    @classmethod
    def null_sum_is_zero(cls, v):
        return 0 if v is None else v


class AgeGroupOutcome(BaseModel):
    """Row of the age-group treatment success report.

    success_rate_percent is None when the group has no treatments.
    """

    age_group: str
    total_patients: int = Field(..., ge=0)
    total_treatments: int = Field(..., ge=0)
    successful_treatments: int = Field(0, ge=0)
    success_rate_percent: Optional[float] = None

    @field_validator("age_group")
    @classmethod
    def validate_age_group(cls, v: str) -> str:
        if v not in AGE_GROUP_ORDER:
            raise ValueError(f"Unknown age group: {v}")
        return v

    @field_validator("successful_treatments", mode="before")
    @classmethod
    def null_sum_is_zero(cls, v):
        return 0 if v is None else v

    @field_validator("success_rate_percent", mode="before")
    @classmethod
    def round_rate(cls, v):
        if v is None:
            return None
        return round(float(v), 2)


class ClinicalReport(BaseModel):
    """Bundle of the three aggregate reports."""

    as_of: date
    generated_at: datetime = Field(default_factory=datetime.now)
    tests_per_patient: list[PatientTestCount] = Field(default_factory=list)
    outcome_counts: list[PatientOutcomeCount] = Field(default_factory=list)
    age_groups: list[AgeGroupOutcome] = Field(default_factory=list)
