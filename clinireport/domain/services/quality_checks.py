"""Data quality checks for the clinical tables.

All checks are read-only diagnostics: they report null or out-of-enumeration
test results, duplicate patient codes and broken references, and never
mutate or repair data.
"""

import logging

from pydantic import ValidationError

from clinireport.domain import queries
from clinireport.domain.models import DuplicateCode, QualityReport, ReferentialIssue
from clinireport.domain.ports import ClinicalStorePort, StorageError
from clinireport.domain.schema import foreign_keys

logger = logging.getLogger(__name__)


class QualityChecker:
    """Runs the data quality checks against a store.

    Parameters:
        store: Storage adapter holding the clinical tables
    """

    def __init__(self, store: ClinicalStorePort):
        self.store = store

    def count_null_results(self) -> int:
        """Number of tests rows with a null result."""
        rows = self.store.fetch_all(queries.NULL_RESULT_COUNT)
        return int(rows[0]["null_results"]) if rows else 0

    def invalid_results(self) -> list[dict]:
        """Full rows of tests whose result is null or not Positive/Negative."""
        return self.store.fetch_all(queries.INVALID_RESULTS)

    def duplicate_patient_codes(self) -> list[DuplicateCode]:
        rows = self.store.fetch_all(queries.DUPLICATE_PATIENT_CODES)
        try:
            return [DuplicateCode(**row) for row in rows]
        except ValidationError as e:
            raise StorageError(
                f"Unexpected duplicate code row: {e.errors()[0]['msg']}",
                operation="duplicate_patient_codes"
            )

    def referential_issues(self) -> list[ReferentialIssue]:
        """Null and orphaned foreign key values, one entry per foreign key.

        Keys are compared as stored, so run this after the key columns have
        been aligned by the migrator.
        """
        issues = []
        for fk in foreign_keys():
            query = queries.REFERENTIAL_ISSUES.format(
                table=fk.table,
                column=fk.column,
                referenced_table=fk.referenced_table,
                referenced_column=fk.referenced_column,
            )
            rows = self.store.fetch_all(query)
            row = rows[0] if rows else {}
            issues.append(ReferentialIssue(
                constraint=fk.name,
                table=fk.table,
                column=fk.column,
                missing_keys=int(row.get("missing_keys") or 0),
                orphans=int(row.get("orphans") or 0),
            ))
        return issues

    def run(self, include_referential: bool = True) -> QualityReport:
        """Run every check and bundle the results.

        Parameters:
            include_referential: Also run the foreign key diagnostics

        Raises:
            StorageError: If a check query fails
        """
        report = QualityReport(
            null_results=self.count_null_results(),
            invalid_results=self.invalid_results(),
            duplicate_patient_codes=self.duplicate_patient_codes(),
            referential_issues=self.referential_issues() if include_referential else [],
        )

        if report.has_issues:
            logger.warning(
                f"Data quality issues found: {report.null_results} null results, "
                f"{report.invalid_result_count} invalid results, "
                f"{len(report.duplicate_patient_codes)} duplicate patient codes"
            )
        else:
            logger.info("Data quality checks passed")
        return report
