"""Clinical Schema Plan.

This module describes the four clinical tables, their key columns and the
constraints that turn the imported raw tables into a referentially sound
schema. It is the single source of truth used by the migrator, the quality
checks and the storage adapters.

Architecture:
    - Pure domain definitions with zero infrastructure dependencies
    - Constraints are listed in dependency order (parents before children)
    - Adapters translate ConstraintSpec into engine-specific DDL
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

# Table names
PATIENTS = "patients"
SAMPLES = "samples"
TESTS = "tests"
TREATMENTS = "treatments"

# Parents before children; drop in reverse
TABLE_ORDER = (PATIENTS, SAMPLES, TESTS, TREATMENTS)

# Canonical type for every primary and foreign key column
KEY_COLUMN_TYPE = "INTEGER"

# Type names engines report for a 32-bit integer column
INTEGER_TYPE_ALIASES = frozenset({"INTEGER", "INT", "INT4", "SIGNED"})

SUCCESSFUL_OUTCOME = "Successful"


class ResultValue(str, Enum):
    """Enumerated values allowed in tests.result."""
    POSITIVE = "Positive"
    NEGATIVE = "Negative"


VALID_RESULTS = tuple(r.value for r in ResultValue)


class AgeGroup(str, Enum):
    """Age buckets used by the treatment outcome report."""
    UNDER_30 = "<30"
    FROM_30_TO_50 = "30-50"
    OVER_50 = ">50"
    UNKNOWN = "unknown"


AGE_GROUP_ORDER = tuple(g.value for g in AgeGroup)


class ConstraintKind(str, Enum):
    """Constraint kinds, valued as the engines spell them in metadata."""
    PRIMARY_KEY = "PRIMARY KEY"
    UNIQUE = "UNIQUE"
    FOREIGN_KEY = "FOREIGN KEY"


@dataclass(frozen=True)
class ConstraintSpec:
    """A single-column constraint to be enforced on a table.

    Attributes:
        name: Constraint name (used by engines that support named constraints)
        kind: Constraint kind
        table: Table carrying the constraint
        column: Constrained column
        referenced_table: Parent table (foreign keys only)
        referenced_column: Parent column (foreign keys only)
    """

    name: str
    kind: ConstraintKind
    table: str
    column: str
    referenced_table: Optional[str] = None
    referenced_column: Optional[str] = None

    def __post_init__(self):
        if self.kind == ConstraintKind.FOREIGN_KEY and not (self.referenced_table and self.referenced_column):
            raise ValueError(f"Foreign key '{self.name}' requires a referenced table and column")

    @property
    def is_foreign_key(self) -> bool:
        return self.kind == ConstraintKind.FOREIGN_KEY

    @property
    def key(self) -> tuple[ConstraintKind, str]:
        """Identity used to detect whether the constraint already exists."""
        return (self.kind, self.column)

    def describe(self) -> str:
        if self.is_foreign_key:
            return f"{self.table}.{self.column} -> {self.referenced_table}.{self.referenced_column}"
        return f"{self.kind.value} {self.table}.{self.column}"


CLINICAL_CONSTRAINTS: tuple[ConstraintSpec, ...] = (
    ConstraintSpec("pk_patients", ConstraintKind.PRIMARY_KEY, PATIENTS, "patient_id"),
    ConstraintSpec("uq_patients_patient_code", ConstraintKind.UNIQUE, PATIENTS, "patient_code"),
    ConstraintSpec("pk_samples", ConstraintKind.PRIMARY_KEY, SAMPLES, "sample_id"),
    ConstraintSpec(
        "fk_samples_patients", ConstraintKind.FOREIGN_KEY, SAMPLES, "patient_id",
        referenced_table=PATIENTS, referenced_column="patient_id",
    ),
    ConstraintSpec("pk_tests", ConstraintKind.PRIMARY_KEY, TESTS, "test_id"),
    ConstraintSpec(
        "fk_tests_samples", ConstraintKind.FOREIGN_KEY, TESTS, "sample_id",
        referenced_table=SAMPLES, referenced_column="sample_id",
    ),
    ConstraintSpec(
        "fk_treatments_patients", ConstraintKind.FOREIGN_KEY, TREATMENTS, "patient_id",
        referenced_table=PATIENTS, referenced_column="patient_id",
    ),
)


def constraints_for(table: str) -> list[ConstraintSpec]:
    """Return the planned constraints of a table, in plan order."""
    return [c for c in CLINICAL_CONSTRAINTS if c.table == table]


def foreign_keys() -> list[ConstraintSpec]:
    return [c for c in CLINICAL_CONSTRAINTS if c.is_foreign_key]


def key_columns(table: str) -> list[str]:
    """Return the primary and foreign key columns of a table.

    These are the columns normalized to KEY_COLUMN_TYPE before constraints
    are applied. UNIQUE business identifiers (patient_code) are not keys.
    """
    columns = []
    for spec in constraints_for(table):
        if spec.kind in (ConstraintKind.PRIMARY_KEY, ConstraintKind.FOREIGN_KEY) and spec.column not in columns:
            columns.append(spec.column)
    return columns


def is_integer_type(data_type: str) -> bool:
    """Check whether an engine-reported type name is the canonical key type."""
    return data_type.strip().upper() in INTEGER_TYPE_ALIASES
