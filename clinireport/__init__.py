"""CliniReport - clinical reporting schema and query set.

Applies integrity constraints to the Patients/Samples/Tests/Treatments tables,
runs data quality checks and computes aggregate clinical reports against a
relational engine (DuckDB or PostgreSQL).
"""

__version__ = "1.0.0"
