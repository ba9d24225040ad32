"""DuckDB Storage Adapter.

This adapter implements the ClinicalStorePort contract on DuckDB, an
in-process analytical database. It is the default engine: an in-memory
database for ad-hoc runs, or a file for a persistent clinical workspace.

DuckDB cannot add PRIMARY KEY, UNIQUE or FOREIGN KEY constraints to an
existing table, so apply_constraints rebuilds the table inside a single
transaction: rows are copied aside, the table is re-created with its column
definitions plus the constraints, and the rows are inserted back. A
violation rolls the whole rebuild back and leaves the original table intact.

Architecture:
    - Implements ClinicalStorePort (Hexagonal Architecture)
    - Single lazily created connection
    - Metadata from information_schema.columns and duckdb_constraints()
"""

import logging
from pathlib import Path
from typing import Any, Optional, Sequence

import duckdb
import pandas as pd

from clinireport.domain.models import ColumnInfo
from clinireport.domain.ports import (
    ClinicalStorePort,
    ConstraintViolationError,
    Result,
    StorageError,
    TypeMismatchError,
    quote_identifier,
)
from clinireport.domain.schema import ConstraintKind, ConstraintSpec
from clinireport.infrastructure.config_manager import DatabaseConfig

logger = logging.getLogger(__name__)

_CONSTRAINT_KINDS = {kind.value: kind for kind in ConstraintKind}


class DuckDBAdapter(ClinicalStorePort):
    """DuckDB implementation of ClinicalStorePort.

    Parameters:
        db_config: DatabaseConfig from configuration manager (preferred)
        db_path: Path to DuckDB database file (or ':memory:' for in-memory)

    Example Usage:
        ```python
        from clinireport.infrastructure.config_manager import get_database_config

        adapter = DuckDBAdapter(db_config=get_database_config())

        # Or using db_path directly
        adapter = DuckDBAdapter(db_path="data/clinical.duckdb")
        ```
    """

    placeholder = "?"

    def __init__(
        self,
        db_config: Optional[DatabaseConfig] = None,
        db_path: Optional[str] = None
    ):
        """Initialize DuckDB adapter.

        If both db_config and db_path are provided, db_config takes precedence.
        If neither is provided, defaults to an in-memory database.

        Raises:
            StorageError: If db_config is not a DuckDB config, or the database
                directory does not exist
        """
        if db_config:
            if db_config.db_type != "duckdb":
                raise StorageError(
                    f"DatabaseConfig type '{db_config.db_type}' does not match DuckDB adapter",
                    operation="__init__"
                )
            self.db_path = db_config.db_path or ":memory:"
        else:
            self.db_path = db_path or ":memory:"

        self._connection: Optional[duckdb.DuckDBPyConnection] = None

        if self.db_path != ":memory:":
            db_path_obj = Path(self.db_path)
            if not db_path_obj.parent.exists():
                raise StorageError(
                    f"Database directory does not exist: {db_path_obj.parent}",
                    operation="__init__"
                )

    def _get_connection(self) -> duckdb.DuckDBPyConnection:
        """Get or create the DuckDB connection."""
        if self._connection is None:
            try:
                self._connection = duckdb.connect(self.db_path)
                logger.info(f"Connected to DuckDB database: {self.db_path}")
            except duckdb.Error as e:
                raise StorageError(
                    f"Failed to connect to DuckDB: {str(e)}",
                    operation="connect",
                    details={"db_path": self.db_path}
                )
        return self._connection

    # ------------------------------------------------------------------
    # Raw table management
    # ------------------------------------------------------------------

    def load_table(self, df: pd.DataFrame, table_name: str) -> Result[int]:
        """Create or replace a raw table from a DataFrame (no constraints)."""
        try:
            conn = self._get_connection()
            conn.register('df_temp', df)
            try:
                conn.execute(f"CREATE OR REPLACE TABLE {quote_identifier(table_name)} AS SELECT * FROM df_temp")
            finally:
                conn.unregister('df_temp')

            row_count = len(df)
            logger.info(f"Loaded {row_count} rows into table '{table_name}'")
            return Result.success_result(row_count)

        except (duckdb.Error, StorageError) as e:
            error_msg = f"Failed to load table '{table_name}': {str(e)}"
            logger.error(error_msg, exc_info=True)
            return Result.failure_result(
                StorageError(error_msg, operation="load_table", details={"table": table_name}),
                error_type="StorageError"
            )

    def drop_table(self, table_name: str) -> Result[None]:
        try:
            self._get_connection().execute(f"DROP TABLE IF EXISTS {quote_identifier(table_name)}")
            logger.debug(f"Dropped table '{table_name}'")
            return Result.success_result(None)
        except (duckdb.Error, StorageError) as e:
            error_msg = f"Failed to drop table '{table_name}': {str(e)}"
            logger.error(error_msg)
            return Result.failure_result(
                StorageError(error_msg, operation="drop_table", details={"table": table_name}),
                error_type="StorageError"
            )

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    def table_exists(self, table_name: str) -> bool:
        rows = self.fetch_all(
            "SELECT COUNT(*) AS n FROM information_schema.tables WHERE table_name = ?",
            (table_name,)
        )
        return bool(rows and rows[0]["n"])

    def describe_columns(self, table_name: str) -> list[ColumnInfo]:
        rows = self.fetch_all(
            """
            SELECT column_name, data_type, is_nullable, ordinal_position
            FROM information_schema.columns
            WHERE table_name = ?
            ORDER BY ordinal_position
            """,
            (table_name,)
        )
        return [
            ColumnInfo(
                table=table_name,
                name=row["column_name"],
                data_type=row["data_type"],
                nullable=str(row["is_nullable"]).upper() == "YES",
                position=int(row["ordinal_position"]),
            )
            for row in rows
        ]

    def existing_constraints(self, table_name: str) -> set[tuple[ConstraintKind, str]]:
        rows = self.fetch_all(
            """
            SELECT constraint_type, constraint_column_names
            FROM duckdb_constraints()
            WHERE table_name = ?
            """,
            (table_name,)
        )
        existing = set()
        for row in rows:
            kind = _CONSTRAINT_KINDS.get(row["constraint_type"])
            if kind is None:
                continue
            for column in row["constraint_column_names"] or []:
                existing.add((kind, column))
        return existing

    # ------------------------------------------------------------------
    # DDL
    # ------------------------------------------------------------------

    def alter_column_type(
        self,
        table_name: str,
        column: str,
        sql_type: str,
        not_null: bool = True
    ) -> Result[None]:
        table, col = quote_identifier(table_name), quote_identifier(column)
        try:
            conn = self._get_connection()
            conn.execute(f"ALTER TABLE {table} ALTER COLUMN {col} SET DATA TYPE {sql_type} USING CAST({col} AS {sql_type})")
            if not_null:
                conn.execute(f"ALTER TABLE {table} ALTER COLUMN {col} SET NOT NULL")
            logger.info(f"Altered {table_name}.{column} to {sql_type}{' NOT NULL' if not_null else ''}")
            return Result.success_result(None)

        except duckdb.ConstraintException as e:
            error_msg = f"Cannot make {table_name}.{column} NOT NULL: {str(e)}"
            logger.error(error_msg)
            return Result.failure_result(
                ConstraintViolationError(error_msg, table=table_name, operation="alter_column_type",
                                         details={"column": column}),
                error_type="ConstraintViolationError"
            )
        except (duckdb.Error, StorageError) as e:
            error_msg = f"Failed to alter {table_name}.{column} to {sql_type}: {str(e)}"
            logger.error(error_msg)
            return Result.failure_result(
                StorageError(error_msg, operation="alter_column_type",
                             details={"table": table_name, "column": column, "sql_type": sql_type}),
                error_type="StorageError"
            )

    def apply_constraints(self, table_name: str, constraints: Sequence[ConstraintSpec]) -> Result[int]:
        """Rebuild the table so it carries the given constraints.

        The rebuild declares every constraint in `constraints`; constraints on
        the table outside that list are not carried over. Tables referenced
        by another table's foreign key cannot be rebuilt, so callers apply
        constraints parents-first.
        """
        try:
            existing = self.existing_constraints(table_name)
        except StorageError as e:
            return Result.failure_result(e)

        missing = [spec for spec in constraints if spec.key not in existing]
        if not missing:
            logger.debug(f"All constraints already present on '{table_name}'")
            return Result.success_result(0)

        try:
            columns = self.describe_columns(table_name)
        except StorageError as e:
            return Result.failure_result(e)
        if not columns:
            return Result.failure_result(
                StorageError(f"Table '{table_name}' does not exist", operation="apply_constraints",
                             details={"table": table_name}),
                error_type="StorageError"
            )

        table = quote_identifier(table_name)
        staging = quote_identifier(f"{table_name}__rebuild")
        definitions = [
            f"{quote_identifier(c.name)} {c.data_type}{'' if c.nullable else ' NOT NULL'}"
            for c in columns
        ]
        definitions.extend(self._constraint_clause(spec) for spec in constraints)

        conn = self._get_connection()
        conn.begin()
        try:
            conn.execute(f"CREATE TABLE {staging} AS SELECT * FROM {table}")
            conn.execute(f"DROP TABLE {table}")
            conn.execute(f"CREATE TABLE {table} ({', '.join(definitions)})")
            conn.execute(f"INSERT INTO {table} SELECT * FROM {staging}")
            conn.execute(f"DROP TABLE {staging}")
            conn.commit()

        except duckdb.ConstraintException as e:
            conn.rollback()
            names = [spec.name for spec in missing]
            error_msg = f"Existing data in '{table_name}' violates constraints {names}: {str(e)}"
            logger.error(error_msg)
            return Result.failure_result(
                ConstraintViolationError(error_msg, constraint=", ".join(names), table=table_name,
                                         operation="apply_constraints"),
                error_type="ConstraintViolationError"
            )
        except duckdb.Error as e:
            conn.rollback()
            message = str(e)
            if "type" in message.lower() and any(spec.is_foreign_key for spec in missing):
                error_cls, error_type = TypeMismatchError, "TypeMismatchError"
            else:
                error_cls, error_type = ConstraintViolationError, "ConstraintViolationError"
            error_msg = f"Failed to apply constraints on '{table_name}': {message}"
            logger.error(error_msg, exc_info=True)
            return Result.failure_result(
                error_cls(error_msg, table=table_name, operation="apply_constraints"),
                error_type=error_type
            )

        logger.info(f"Rebuilt '{table_name}' with {len(missing)} new constraint(s)")
        return Result.success_result(len(missing))

    @staticmethod
    def _constraint_clause(spec: ConstraintSpec) -> str:
        column = quote_identifier(spec.column)
        if spec.kind == ConstraintKind.PRIMARY_KEY:
            return f"PRIMARY KEY ({column})"
        if spec.kind == ConstraintKind.UNIQUE:
            return f"UNIQUE ({column})"
        return (
            f"FOREIGN KEY ({column}) REFERENCES "
            f"{quote_identifier(spec.referenced_table)}({quote_identifier(spec.referenced_column)})"
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def fetch_all(self, query: Any, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        try:
            cursor = self._get_connection().execute(query, list(params))
            rows = cursor.fetchall()
            columns = [desc[0] for desc in cursor.description]
        except duckdb.Error as e:
            raise StorageError(
                f"Query failed: {str(e)}",
                operation="fetch_all"
            )
        return [dict(zip(columns, row)) for row in rows]

    def close(self) -> None:
        """Close storage connection and release resources."""
        if self._connection is not None:
            try:
                self._connection.close()
                self._connection = None
                logger.info("Closed DuckDB connection")
            except duckdb.Error as e:
                logger.warning(f"Error closing connection: {str(e)}")
