"""Initial inspection of the imported tables."""

import logging
from typing import Sequence

from clinireport.domain.models import TableSummary
from clinireport.domain.ports import ClinicalStorePort
from clinireport.domain.schema import TABLE_ORDER

logger = logging.getLogger(__name__)


def inspect_tables(
    store: ClinicalStorePort,
    preview_rows: int = 5,
    tables: Sequence[str] = TABLE_ORDER
) -> list[TableSummary]:
    """Summarize each table: row count, column metadata and a row preview.

    Missing tables are reported with exists=False instead of raising, so an
    incomplete import is visible at a glance.

    Raises:
        StorageError: If an existing table cannot be read
    """
    summaries = []
    for table in tables:
        if not store.table_exists(table):
            logger.warning(f"Table '{table}' has not been imported")
            summaries.append(TableSummary(table=table, exists=False))
            continue
        summaries.append(TableSummary(
            table=table,
            row_count=store.count_rows(table),
            columns=store.describe_columns(table),
            preview=store.preview(table, preview_rows) if preview_rows > 0 else [],
        ))
    return summaries
