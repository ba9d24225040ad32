"""Domain Ports - Abstract Contracts for Clinical Storage.

This module defines the Port interface (abstract contract) that storage
adapters must implement, the Result type used to communicate expected
failures, and the exception hierarchy of the project.

Architecture:
    - Pure abstract interfaces with zero infrastructure dependencies
    - DuckDB and PostgreSQL adapters implement ClinicalStorePort
    - Domain services (migrator, quality checks, reporting) only see the port
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Generic, Optional, Sequence, TypeVar, Union

import pandas as pd

from clinireport.domain.models import ColumnInfo
from clinireport.domain.schema import ConstraintKind, ConstraintSpec

# Type variable for Result generic
T = TypeVar('T')


# ============================================================================
# Result Type for Success/Failure Communication
# ============================================================================

@dataclass(frozen=True)
class Result(Generic[T]):
    """Result type for communicating success or failure without exceptions.

    DDL and load operations return a Result so a failed constraint can be
    reported to the operator together with its context instead of unwinding
    the whole workflow.

    Attributes:
        success: True if the operation succeeded, False otherwise
        value: The successful result value (only present if success=True)
        error: Error message (only present if success=False)
        error_type: Type of error (StorageError, ConstraintViolationError, etc.)
        error_details: Additional error context (table, constraint, etc.)

    Example:
        ```python
        result = store.apply_constraints("samples", constraints_for("samples"))
        if not result.success:
            log_error(result.error, result.error_details)
        ```
    """

    success: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    error_details: Optional[dict] = None

    @classmethod
    def success_result(cls, value: T) -> 'Result[T]':
        """Create a successful result."""
        return cls(
            success=True,
            value=value,
            error=None,
            error_type=None,
            error_details=None
        )

    @classmethod
    def failure_result(
        cls,
        error: Union[str, Exception],
        error_type: Optional[str] = None,
        error_details: Optional[dict] = None
    ) -> 'Result[T]':
        """Create a failure result.

        Parameters:
            error: Error message or exception
            error_type: Type of error; defaults to the exception class name
            error_details: Additional context. When error is a StorageError
                its details are merged in.

        Returns:
            Result: Failure result with error information
        """
        error_message = str(error) if isinstance(error, Exception) else error
        error_type_name = error_type or (type(error).__name__ if isinstance(error, Exception) else "UnknownError")

        details = {}
        if isinstance(error, StorageError):
            details.update(error.details)
        details.update(error_details or {})

        return cls(
            success=False,
            value=None,
            error=error_message,
            error_type=error_type_name,
            error_details=details
        )

    def is_success(self) -> bool:
        """Check if result is successful."""
        return self.success

    def is_failure(self) -> bool:
        """Check if result is a failure."""
        return not self.success


# ============================================================================
# Custom Exception Hierarchy
# ============================================================================

class ClinicalReportError(Exception):
    """Base exception for all clinireport errors."""
    pass


class StorageError(ClinicalReportError):
    """Raised when the relational engine rejects or fails an operation.

    Attributes:
        operation: The store operation that failed (e.g. 'apply_constraints')
        details: Additional error context
    """

    def __init__(self, message: str, operation: Optional[str] = None, details: Optional[dict] = None):
        super().__init__(message)
        self.operation = operation
        self.details = details or {}


class ConstraintViolationError(StorageError):
    """Raised when existing data violates a constraint being added.

    Surfaced to the operator; never auto-corrected.

    Attributes:
        constraint: Name of the offending constraint (if known)
        table: Table the constraint was being added to
    """

    def __init__(
        self,
        message: str,
        constraint: Optional[str] = None,
        table: Optional[str] = None,
        operation: Optional[str] = None,
        details: Optional[dict] = None
    ):
        details = dict(details or {})
        if constraint:
            details.setdefault("constraint", constraint)
        if table:
            details.setdefault("table", table)
        super().__init__(message, operation=operation, details=details)
        self.constraint = constraint
        self.table = table


class TypeMismatchError(ConstraintViolationError):
    """Raised when a foreign key joins columns of incompatible types."""
    pass


class SourceNotFoundError(ClinicalReportError):
    """Raised when an input file or directory cannot be found."""

    def __init__(self, message: str, source: Optional[str] = None):
        super().__init__(message)
        self.source = source


class UnsupportedSourceError(ClinicalReportError):
    """Raised when an input source is not in a supported format."""

    def __init__(self, message: str, source: Optional[str] = None):
        super().__init__(message)
        self.source = source


# ============================================================================
# Storage Port
# ============================================================================

class ClinicalStorePort(ABC):
    """Abstract contract for the relational engine holding the clinical tables.

    The engine owns storage, transactions and constraint enforcement; this
    port only exposes what the clinical workflow needs: raw table loads,
    metadata introspection, the handful of DDL statements of the migration
    and read queries.

    Key Principles:
        - DDL and loads report expected failures through Result
        - Reads raise StorageError (they are diagnostics, a failure is fatal)
        - Queries are engine-neutral SQL; `placeholder` is the bind marker

    Example Usage:
        ```python
        store = DuckDBAdapter(db_path=":memory:")
        store.load_table(patients_df, "patients")
        columns = store.describe_columns("patients")
        rows = store.fetch_all("SELECT COUNT(*) AS n FROM patients")
        ```
    """

    #: Bind parameter marker understood by the engine's driver
    placeholder: str = "?"

    @abstractmethod
    def load_table(self, df: pd.DataFrame, table_name: str) -> Result[int]:
        """Create (or replace) a raw table from a DataFrame.

        Column types are inferred from the DataFrame dtypes; no constraints
        are created.

        Returns:
            Result[int]: Number of rows loaded or error
        """
        pass

    @abstractmethod
    def drop_table(self, table_name: str) -> Result[None]:
        """Drop a table if it exists."""
        pass

    @abstractmethod
    def table_exists(self, table_name: str) -> bool:
        pass

    @abstractmethod
    def describe_columns(self, table_name: str) -> list[ColumnInfo]:
        """List column name, type and nullability of a table.

        Returns:
            list[ColumnInfo]: Columns in ordinal order (empty if the table is missing)

        Raises:
            StorageError: If metadata cannot be read
        """
        pass

    @abstractmethod
    def existing_constraints(self, table_name: str) -> set[tuple[ConstraintKind, str]]:
        """Return the (kind, column) pairs of constraints present on a table.

        Raises:
            StorageError: If metadata cannot be read
        """
        pass

    @abstractmethod
    def alter_column_type(
        self,
        table_name: str,
        column: str,
        sql_type: str,
        not_null: bool = True
    ) -> Result[None]:
        """Change a column's type, casting existing values.

        Parameters:
            table_name: Table to alter
            column: Column to alter
            sql_type: Target SQL type (e.g. 'INTEGER')
            not_null: Also mark the column NOT NULL
        """
        pass

    @abstractmethod
    def apply_constraints(self, table_name: str, constraints: Sequence[ConstraintSpec]) -> Result[int]:
        """Ensure a table carries the given constraints.

        Constraints already present are left alone. Application is atomic per
        table: either all missing constraints are added or none are.

        Returns:
            Result[int]: Number of constraints added, or a failure with
            error_type ConstraintViolationError / TypeMismatchError / StorageError
        """
        pass

    @abstractmethod
    def fetch_all(self, query: Any, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        """Run a read query and return rows as dictionaries keyed by column name.

        Raises:
            StorageError: If the query fails
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """Release connections. Never raises."""
        pass

    def count_rows(self, table_name: str) -> int:
        rows = self.fetch_all(f"SELECT COUNT(*) AS row_count FROM {quote_identifier(table_name)}")
        return int(rows[0]["row_count"]) if rows else 0

    def preview(self, table_name: str, limit: int = 10) -> list[dict[str, Any]]:
        """Return the first rows of a table (the initial inspection step)."""
        return self.fetch_all(
            f"SELECT * FROM {quote_identifier(table_name)} LIMIT {int(limit)}"
        )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


def quote_identifier(name: str) -> str:
    """Quote a SQL identifier using standard double-quote escaping."""
    return '"' + name.replace('"', '""') + '"'
