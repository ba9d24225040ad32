"""Storage adapters implementing ClinicalStorePort."""

from clinireport.adapters.storage.duckdb_adapter import DuckDBAdapter
from clinireport.adapters.storage.postgresql_adapter import PostgreSQLAdapter

__all__ = ["DuckDBAdapter", "PostgreSQLAdapter"]
