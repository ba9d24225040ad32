"""Main entry point for the CliniReport workflow.

This module wires the configured store to the workflow steps: import the
raw CSV tables, migrate the schema (type alignment plus constraints), run
the data quality checks and produce the clinical report.

Architecture:
    - Follows Hexagonal Architecture principles
    - Storage adapter is selected via the configuration manager
    - Domain services only see ClinicalStorePort
"""

import argparse
import logging
import sys
from datetime import date
from pathlib import Path
from typing import Optional

from clinireport.adapters.ingesters import CSVTableLoader
from clinireport.adapters.storage import DuckDBAdapter, PostgreSQLAdapter
from clinireport.domain.models import MigrationReport
from clinireport.domain.ports import ClinicalStorePort, Result
from clinireport.domain.services import SchemaMigrator
from clinireport.infrastructure.config_manager import get_database_config
from clinireport.infrastructure.logging_config import setup_logging
from clinireport.infrastructure.report_export import default_report_path, generate_clinical_report
from clinireport.infrastructure.settings import settings

logger = logging.getLogger(__name__)


def create_storage_adapter() -> ClinicalStorePort:
    """Create storage adapter based on configuration.

    Returns:
        ClinicalStorePort: Configured storage adapter instance

    Raises:
        ValueError: If database type is unsupported
    """
    db_config = get_database_config()

    if db_config.db_type == "duckdb":
        logger.info(f"Initializing DuckDB adapter with path: {db_config.db_path or ':memory:'}")
        return DuckDBAdapter(db_config=db_config)
    elif db_config.db_type == "postgresql":
        logger.info(f"Initializing PostgreSQL adapter with host: {db_config.host}")
        return PostgreSQLAdapter(db_config=db_config)
    else:
        raise ValueError(f"Unsupported database type: {db_config.db_type}")


def summarize_migration(report: MigrationReport) -> str:
    if report.is_noop:
        return "schema already migrated, nothing to do"
    parts = []
    if report.altered_columns:
        parts.append(f"aligned {', '.join(report.altered_columns)}")
    if report.applied_tables:
        parts.append(f"constrained {', '.join(report.applied_tables)}")
    return "; ".join(parts)


def run_workflow(
    source_dir: str,
    storage: ClinicalStorePort,
    as_of: Optional[date] = None,
    output_path: Optional[str] = None
) -> Result[dict]:
    """Run load -> migrate -> check -> report against one store.

    Quality issues do not stop the workflow; they are part of the report.
    A failed load or migration does.

    Returns:
        Result[dict]: The clinical report document
    """
    load_result = CSVTableLoader(storage).load_directory(source_dir)
    if load_result.is_failure():
        logger.error(f"Import failed: {load_result.error}")
        return load_result

    migration = SchemaMigrator(storage).migrate()
    if migration.is_failure():
        logger.error(f"Migration failed: {migration.error}")
        return migration
    logger.info(f"Migration: {summarize_migration(migration.value)}")

    report = generate_clinical_report(
        storage,
        output_path=output_path,
        as_of=as_of,
        migration_report=migration.value
    )
    if report.is_success() and report.value["quality"]["has_issues"]:
        logger.warning("Data quality issues found; see the 'quality' section of the report")
    return report


def main():
    """Main entry point for the CliniReport workflow."""
    parser = argparse.ArgumentParser(
        description=f"{settings.app_name} - clinical schema migration and reporting",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run the full workflow on an in-memory DuckDB database
  python -m clinireport.main --input data/

  # Persist to a DuckDB file and save the report
  export CR_DB_PATH=clinical.duckdb
  python -m clinireport.main --input data/ --output reports/clinical.json
        """
    )

    parser.add_argument(
        "--input", "-i",
        required=True,
        type=str,
        help="Directory containing Patients.csv, Samples.csv, Tests.csv and Treatments.csv"
    )

    parser.add_argument(
        "--output", "-o",
        type=str,
        default=None,
        help="Path of the JSON report (default: none, or CR_REPORT_DIR when CR_SAVE_REPORT=true)"
    )

    parser.add_argument(
        "--as-of",
        type=date.fromisoformat,
        default=None,
        help="Reference date for age groups, YYYY-MM-DD (default: today)"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging"
    )

    args = parser.parse_args()

    setup_logging(use_json=settings.log_json, log_level="DEBUG" if args.verbose else settings.log_level)

    if not Path(args.input).is_dir():
        logger.error(f"Input directory not found: {args.input}")
        sys.exit(1)

    as_of = args.as_of or date.today()
    output_path = args.output
    if output_path is None and settings.save_report:
        output_path = str(default_report_path(settings.report_dir, as_of))

    logger.info(f"Starting {settings.app_name}...")
    logger.info(f"Database type: {settings.db_config.db_type}")

    try:
        storage = create_storage_adapter()
    except Exception as e:
        logger.error(f"Failed to create storage adapter: {str(e)}")
        sys.exit(1)

    try:
        result = run_workflow(args.input, storage, as_of=as_of, output_path=output_path)
    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        sys.exit(130)
    finally:
        storage.close()

    if result.is_failure():
        logger.error(f"Workflow failed: {result.error}")
        sys.exit(1)

    for group in result.value["reports"]["age_groups"]:
        logger.info(
            f"Age group {group['age_group']}: {group['total_patients']} patients, "
            f"{group['successful_treatments']}/{group['total_treatments']} successful treatments"
        )
    if "saved_to" in result.value:
        logger.info(f"Report saved to {result.value['saved_to']}")
    logger.info("Workflow completed successfully")


if __name__ == "__main__":
    main()
