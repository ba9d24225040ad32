"""Clinical Report Export.

Assembles the inspection summaries, data quality findings and the three
aggregate reports into one JSON document, optionally saved to disk for
review or archiving.
"""

import json
import logging
from datetime import date, datetime
from pathlib import Path
from typing import Optional

from pydantic_core import PydanticSerializationError

from clinireport import __version__
from clinireport.domain.models import ClinicalReport, MigrationReport, QualityReport
from clinireport.domain.ports import ClinicalStorePort, Result, StorageError
from clinireport.domain.services import QualityChecker, ReportingService, inspect_tables

logger = logging.getLogger(__name__)


def default_report_path(report_dir: str, as_of: date) -> Path:
    """Build the file name used when a report is saved without an explicit path."""
    return Path(report_dir) / f"clinical_report_{as_of.isoformat()}.json"


def generate_clinical_report(
    store: ClinicalStorePort,
    output_path: Optional[str] = None,
    as_of: Optional[date] = None,
    preview_rows: int = 0,
    include_quality: bool = True,
    migration_report: Optional[MigrationReport] = None,
    clinical: Optional[ClinicalReport] = None,
    quality: Optional[QualityReport] = None
) -> Result[dict]:
    """Generate the clinical report document.

    Parameters:
        store: Store holding the (migrated) clinical tables
        output_path: Optional path to save the report as a JSON file
        as_of: Reference date for age bucketing (defaults to today)
        preview_rows: Rows of each table to embed; 0 embeds column metadata only
        include_quality: Run the data quality checks and embed their findings
        migration_report: Embed the outcome of a migration run
        clinical: Already computed reports to export instead of querying again
        quality: Already computed quality findings to export instead of checking again

    Returns:
        Result[dict]: The report document, with "saved_to" when written to disk
    """
    as_of = as_of or date.today()

    try:
        if clinical is None:
            clinical = ReportingService(store).run_all(as_of=as_of)
        report = {
            "application": "clinireport",
            "version": __version__,
            "generated_at": datetime.now().isoformat(),
            "tables": [s.model_dump(mode="json") for s in inspect_tables(store, preview_rows=preview_rows)],
            "reports": clinical.model_dump(mode="json", exclude={"generated_at"}),
        }
        if include_quality:
            if quality is None:
                quality = QualityChecker(store).run()
            report["quality"] = {
                **quality.model_dump(mode="json"),
                "invalid_result_count": quality.invalid_result_count,
                "has_issues": quality.has_issues,
            }
        if migration_report is not None:
            report["migration"] = migration_report.model_dump(mode="json")

    except StorageError as e:
        logger.error(f"Failed to generate clinical report: {str(e)}")
        return Result.failure_result(e)
    except PydanticSerializationError as e:
        logger.error(f"Failed to serialize clinical report: {str(e)}")
        return Result.failure_result(e, error_type="SerializationError")

    if not output_path:
        return Result.success_result(report)

    try:
        output_file = Path(output_path)
        output_file.parent.mkdir(parents=True, exist_ok=True)

        with open(output_file, 'w', encoding='utf-8') as f:
            json.dump(report, f, indent=2, default=str)

        logger.info(f"Saved clinical report to {output_file}")
        return Result.success_result({**report, "saved_to": str(output_file)})
    except OSError as e:
        return Result.failure_result(
            ValueError(f"Failed to save report to {output_path}: {str(e)}"),
            error_type="ValueError"
        )
