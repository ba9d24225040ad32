"""Schema Migrator.

Turns the imported raw tables into the constrained clinical schema. CSV
imports routinely leave key columns with inconsistent types (a VARCHAR
patient_id in treatments against an integer one in patients), and engines
refuse to create a foreign key across such columns. The migrator follows the
inspect -> diagnose -> alter -> apply protocol for every table:

    1. Inspect the table's constraints; if all are present, skip the table
    2. Diagnose type mismatches on the table's foreign keys
    3. Alter every key column not already INTEGER to INTEGER NOT NULL
    4. Apply the table's missing constraints

Each step checks current state before acting, so re-running a completed
migration changes nothing.

Architecture:
    - Domain service: depends only on ClinicalStorePort and the schema plan
    - Tables are processed parents-first (TABLE_ORDER)
    - Failures stop the run and are returned as Result, never auto-repaired
"""

import logging
from typing import Optional, Sequence

from clinireport.domain.models import (
    ColumnInfo,
    MigrationAction,
    MigrationReport,
    TypeMismatch,
)
from clinireport.domain.ports import ClinicalStorePort, Result, StorageError
from clinireport.domain.schema import (
    KEY_COLUMN_TYPE,
    TABLE_ORDER,
    ConstraintSpec,
    constraints_for,
    foreign_keys,
    key_columns,
)

logger = logging.getLogger(__name__)


class SchemaMigrator:
    """Idempotent constraint migration over a ClinicalStorePort.

    Parameters:
        store: Storage adapter holding the clinical tables
        tables: Tables to migrate, in dependency order (defaults to all four)

    Example Usage:
        ```python
        migrator = SchemaMigrator(store)
        for mismatch in migrator.diagnose():
            print(mismatch.describe())

        result = migrator.migrate()
        if result.is_success():
            print(result.value.applied_tables)
        ```
    """

    def __init__(self, store: ClinicalStorePort, tables: Sequence[str] = TABLE_ORDER):
        self.store = store
        self.tables = tuple(tables)

    def describe(self, table: str) -> list[ColumnInfo]:
        """Column name/type listing for a table."""
        return self.store.describe_columns(table)

    def diagnose(self, table: Optional[str] = None) -> list[TypeMismatch]:
        """Compare referencing and referenced column types for each foreign key.

        Parameters:
            table: Restrict the diagnosis to foreign keys declared on this table

        Returns:
            list[TypeMismatch]: One entry per foreign key whose column types differ.
            Foreign keys whose columns are missing are skipped.

        Raises:
            StorageError: If column metadata cannot be read
        """
        mismatches = []
        column_cache: dict[str, dict[str, ColumnInfo]] = {}

        def columns_of(name: str) -> dict[str, ColumnInfo]:
            if name not in column_cache:
                column_cache[name] = {c.name: c for c in self.store.describe_columns(name)}
            return column_cache[name]

        for fk in foreign_keys():
            if table is not None and fk.table != table:
                continue
            column = columns_of(fk.table).get(fk.column)
            referenced = columns_of(fk.referenced_table).get(fk.referenced_column)
            if column is None or referenced is None:
                logger.debug(f"Skipping diagnosis of {fk.name}: column metadata unavailable")
                continue
            if column.data_type.upper() != referenced.data_type.upper():
                mismatches.append(TypeMismatch(
                    constraint=fk.name,
                    table=fk.table,
                    column=fk.column,
                    column_type=column.data_type,
                    referenced_table=fk.referenced_table,
                    referenced_column=fk.referenced_column,
                    referenced_type=referenced.data_type,
                ))
        return mismatches

    def pending_constraints(self, table: str) -> list[ConstraintSpec]:
        """Planned constraints not yet present on a table."""
        existing = self.store.existing_constraints(table)
        return [spec for spec in constraints_for(table) if spec.key not in existing]

    def migrate(self) -> Result[MigrationReport]:
        """Apply the constraint plan table by table.

        Returns:
            Result[MigrationReport]: Report of aligned columns, applied and
            skipped tables. On failure, error_details carries the partial
            report under 'report' and the failing table under 'table'.
        """
        report = MigrationReport()

        for table in self.tables:
            try:
                pending = self.pending_constraints(table)
            except StorageError as e:
                return self._fail(report, table, e)

            if not pending:
                logger.info(f"Constraints on '{table}' already in place, skipping")
                report.actions.append(MigrationAction(
                    table=table, action="skipped", detail="all constraints present"
                ))
                continue

            try:
                mismatches = self.diagnose(table)
            except StorageError as e:
                return self._fail(report, table, e)
            for mismatch in mismatches:
                logger.warning(
                    f"Type mismatch detected - {mismatch.describe()}",
                    extra={"table": table, "constraint": mismatch.constraint}
                )
            report.mismatches.extend(mismatches)

            align_result = self._align_key_columns(table, report)
            if not align_result.is_success():
                return self._fail(report, table, align_result)

            apply_result = self.store.apply_constraints(table, constraints_for(table))
            if not apply_result.is_success():
                return self._fail(report, table, apply_result)

            names = ", ".join(spec.name for spec in pending)
            logger.info(f"Applied constraints on '{table}': {names}")
            report.actions.append(MigrationAction(
                table=table, action="applied_constraints", detail=names
            ))

        return Result.success_result(report)

    def _align_key_columns(self, table: str, report: MigrationReport) -> Result[None]:
        """Alter key columns to the canonical key type where they differ."""
        try:
            columns = {c.name: c for c in self.store.describe_columns(table)}
        except StorageError as e:
            return Result.failure_result(e)

        for column_name in key_columns(table):
            column = columns.get(column_name)
            if column is None:
                return Result.failure_result(
                    StorageError(
                        f"Key column '{table}.{column_name}' does not exist",
                        operation="align_key_columns",
                        details={"table": table, "column": column_name},
                    )
                )
            if column.is_integer and not column.nullable:
                continue

            logger.info(
                f"Normalizing {table}.{column_name} from {column.data_type} to {KEY_COLUMN_TYPE} NOT NULL"
            )
            result = self.store.alter_column_type(table, column_name, KEY_COLUMN_TYPE, not_null=True)
            if not result.is_success():
                return result
            report.actions.append(MigrationAction(
                table=table,
                action="aligned_type",
                detail=f"{table}.{column_name}: {column.data_type} -> {KEY_COLUMN_TYPE}",
            ))
        return Result.success_result(None)

    @staticmethod
    def _fail(report: MigrationReport, table: str, cause) -> Result[MigrationReport]:
        if isinstance(cause, Result):
            error, error_type, details = cause.error, cause.error_type, dict(cause.error_details or {})
        else:
            error, error_type, details = str(cause), type(cause).__name__, dict(getattr(cause, "details", {}))
        logger.error(
            f"Migration stopped at '{table}': {error}",
            extra={"table": table, "operation": details.get("operation", "migrate")}
        )
        details.update({"table": table, "report": report})
        return Result.failure_result(error, error_type=error_type, error_details=details)
