"""CSV Table Loader.

Imports the four clinical source files (Patients, Samples, Tests,
Treatments) into a store as raw, unconstrained tables.

Columns keep pandas' own type inference, so identifier columns arrive as
whatever pandas guessed (BIGINT, DOUBLE when a value is missing, VARCHAR
when a value is malformed). Aligning those types is the job of the schema
migration step, not of the loader. Only `dob` is parsed as a date, because
the age-group report depends on it.

Architecture:
    - Talks to the store only through ClinicalStorePort
    - Whole-file loads; each table is replaced on every run
"""

import logging
from pathlib import Path
from typing import Optional, Sequence, Union

import pandas as pd

from clinireport.domain.ports import (
    ClinicalStorePort,
    Result,
    SourceNotFoundError,
    StorageError,
    UnsupportedSourceError,
)
from clinireport.domain.schema import TABLE_ORDER

logger = logging.getLogger(__name__)

DATE_COLUMNS = ("dob",)


class CSVTableLoader:
    """Loads the clinical CSV files into a store.

    Parameters:
        store: Target store
        delimiter: CSV delimiter (default: ',')
        tables: Tables to load, in dependency order

    Example Usage:
        ```python
        with DuckDBAdapter() as store:
            loader = CSVTableLoader(store)
            result = loader.load_directory("data/")
            print(result.value)  # {"patients": 3, "samples": 4, ...}
        ```
    """

    def __init__(
        self,
        store: ClinicalStorePort,
        delimiter: str = ",",
        tables: Sequence[str] = TABLE_ORDER
    ):
        self.store = store
        self.delimiter = delimiter
        self.tables = tuple(tables)

    def find_sources(self, directory: Union[str, Path]) -> dict[str, Path]:
        """Map each table name to its CSV file in `directory`.

        File names are matched case-insensitively on the stem, so both
        `Patients.csv` and `patients.CSV` resolve to the `patients` table.

        Raises:
            SourceNotFoundError: If the directory or any table's file is missing
        """
        directory = Path(directory)
        if not directory.is_dir():
            raise SourceNotFoundError(f"Source directory not found: {directory}", source=str(directory))

        candidates = {
            path.stem.lower(): path
            for path in directory.iterdir()
            if path.is_file() and path.suffix.lower() == ".csv"
        }

        missing = [table for table in self.tables if table not in candidates]
        if missing:
            raise SourceNotFoundError(
                f"Missing CSV file(s) for table(s) {missing} in {directory}",
                source=str(directory)
            )
        return {table: candidates[table] for table in self.tables}

    def read_csv(self, path: Union[str, Path]) -> pd.DataFrame:
        """Read one CSV file into a DataFrame.

        Raises:
            SourceNotFoundError: If the file does not exist
            UnsupportedSourceError: If the file is not a CSV file or cannot be parsed
        """
        path = Path(path)
        if not path.exists():
            raise SourceNotFoundError(f"CSV file not found: {path}", source=str(path))
        if path.suffix.lower() != ".csv":
            raise UnsupportedSourceError(f"Not a CSV file: {path}", source=str(path))

        try:
            df = pd.read_csv(path, sep=self.delimiter, skipinitialspace=True)
        except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
            raise UnsupportedSourceError(f"Cannot parse CSV file {path}: {str(e)}", source=str(path))

        df.columns = [str(column).strip().lower() for column in df.columns]

        for column in DATE_COLUMNS:
            if column in df.columns:
                df[column] = pd.to_datetime(df[column], errors="coerce").dt.date

        # Text columns: NaN becomes SQL NULL instead of the string 'nan'
        for column in df.select_dtypes(include=["object", "string"]).columns:
            df[column] = df[column].astype(object).where(df[column].notna(), None)

        return df

    def load_csv(self, path: Union[str, Path], table_name: Optional[str] = None) -> Result[int]:
        """Load a single CSV file into a table named after the file stem."""
        path = Path(path)
        table_name = table_name or path.stem.lower()
        try:
            df = self.read_csv(path)
        except (SourceNotFoundError, UnsupportedSourceError) as e:
            logger.error(str(e))
            return Result.failure_result(e)

        logger.info(f"Read {len(df)} rows from {path.name}")
        return self.store.load_table(df, table_name)

    def load_directory(self, directory: Union[str, Path]) -> Result[dict[str, int]]:
        """Replace all clinical tables from the CSV files in `directory`.

        Existing tables are dropped children-first so no foreign key blocks the
        drop, then re-created parents-first.

        Returns:
            Result with a table -> row count mapping; stops at the first failure
        """
        try:
            sources = self.find_sources(directory)
            frames = {table: self.read_csv(path) for table, path in sources.items()}
        except (SourceNotFoundError, UnsupportedSourceError) as e:
            logger.error(str(e))
            return Result.failure_result(e)

        for table in reversed(self.tables):
            dropped = self.store.drop_table(table)
            if dropped.is_failure():
                return dropped

        loaded: dict[str, int] = {}
        for table in self.tables:
            result = self.store.load_table(frames[table], table)
            if result.is_failure():
                return Result.failure_result(
                    StorageError(
                        result.error or f"Failed to load table '{table}'",
                        operation="load_directory",
                        details={"table": table, "loaded": loaded}
                    )
                )
            loaded[table] = result.value

        logger.info(f"Loaded {sum(loaded.values())} rows across {len(loaded)} tables from {directory}")
        return Result.success_result(loaded)
