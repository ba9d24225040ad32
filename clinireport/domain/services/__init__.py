"""Domain services for CliniReport."""

from clinireport.domain.services.schema_migrator import SchemaMigrator
from clinireport.domain.services.quality_checks import QualityChecker
from clinireport.domain.services.reporting import ReportingService
from clinireport.domain.services.inspection import inspect_tables

__all__ = ["SchemaMigrator", "QualityChecker", "ReportingService", "inspect_tables"]
