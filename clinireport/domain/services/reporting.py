"""Aggregate clinical reports.

Three read-only reports computed by the relational engine:

    - tests per patient (tests joined to samples)
    - positive/negative outcome counts per patient
    - treatment success rate per age group

Age is the calendar-year difference between the reference date and the date
of birth, so a patient born 1990-12-31 counts as 30 on 2020-01-01.
"""

import logging
from datetime import date
from typing import Optional

from pydantic import ValidationError

from clinireport.domain import queries
from clinireport.domain.models import (
    AgeGroupOutcome,
    ClinicalReport,
    PatientOutcomeCount,
    PatientTestCount,
)
from clinireport.domain.ports import ClinicalStorePort, StorageError
from clinireport.domain.schema import AGE_GROUP_ORDER

logger = logging.getLogger(__name__)


class ReportingService:
    """Runs the aggregate reporting queries.

    Parameters:
        store: Storage adapter holding the clinical tables

    Example Usage:
        ```python
        reporting = ReportingService(store)
        report = reporting.run_all(as_of=date(2025, 6, 1))
        for row in report.age_groups:
            print(row.age_group, row.success_rate_percent)
        ```
    """

    def __init__(self, store: ClinicalStorePort):
        self.store = store

    @staticmethod
    def _validate(model, rows: list[dict]) -> list:
        """Validate report rows, surfacing malformed rows as a StorageError."""
        try:
            return [model(**row) for row in rows]
        except ValidationError as e:
            raise StorageError(
                f"Unexpected {model.__name__} row: {e.errors()[0]['msg']}",
                operation="report",
                details={"model": model.__name__, "errors": e.error_count()}
            )

    def tests_per_patient(self) -> list[PatientTestCount]:
        """Number of tests per patient with at least one tested sample."""
        return self._validate(PatientTestCount, self.store.fetch_all(queries.TESTS_PER_PATIENT))

    def outcome_counts(self) -> list[PatientOutcomeCount]:
        """Positive and negative result counts per tested patient."""
        return self._validate(PatientOutcomeCount, self.store.fetch_all(queries.OUTCOME_COUNTS))

    def age_group_outcomes(self, as_of: Optional[date] = None) -> list[AgeGroupOutcome]:
        """Treatment success per age bucket.

        Every patient appears in a bucket, including patients without
        treatments. A bucket whose patients have no treatments reports
        total_treatments=0 and success_rate_percent=None.

        Parameters:
            as_of: Reference date for the age computation (defaults to today)
        """
        as_of = as_of or date.today()
        query = queries.bind(queries.AGE_GROUP_OUTCOMES, self.store.placeholder)
        rows = self.store.fetch_all(query, (as_of.year,))
        outcomes = self._validate(AgeGroupOutcome, rows)
        return sorted(outcomes, key=lambda o: AGE_GROUP_ORDER.index(o.age_group))

    def run_all(self, as_of: Optional[date] = None) -> ClinicalReport:
        as_of = as_of or date.today()
        report = ClinicalReport(
            as_of=as_of,
            tests_per_patient=self.tests_per_patient(),
            outcome_counts=self.outcome_counts(),
            age_groups=self.age_group_outcomes(as_of),
        )
        logger.info(
            f"Reports computed as of {as_of}: {len(report.tests_per_patient)} tested patients, "
            f"{len(report.age_groups)} age groups"
        )
        return report
