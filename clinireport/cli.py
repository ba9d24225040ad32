"""Command Line Interface for CliniReport.

This module provides a Typer CLI over the clinical workflow: import the raw
CSV tables, inspect them, migrate the schema, run the data quality checks
and produce the aggregate reports.

With the default in-memory DuckDB database every command starts from an
empty store; set CR_DB_PATH to share one database file between commands,
or use `run` for the whole workflow in one process.
"""

import logging
from datetime import date, datetime
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from clinireport import __version__
from clinireport.adapters.ingesters import CSVTableLoader
from clinireport.domain.models import ClinicalReport, MigrationReport, QualityReport, TableSummary
from clinireport.domain.ports import ClinicalReportError, ClinicalStorePort
from clinireport.domain.services import QualityChecker, ReportingService, SchemaMigrator, inspect_tables
from clinireport.infrastructure.logging_config import setup_logging
from clinireport.infrastructure.report_export import default_report_path, generate_clinical_report
from clinireport.infrastructure.settings import settings

# Initialize Typer app and Rich console
app = typer.Typer(
    name="clinireport",
    help="CliniReport: clinical schema migration, data quality checks and reporting",
    add_completion=False
)
console = Console()


def create_storage_adapter_cli() -> ClinicalStorePort:
    """Create storage adapter based on configuration (CLI wrapper)."""
    try:
        from clinireport.main import create_storage_adapter
        return create_storage_adapter()
    except (ClinicalReportError, ValueError) as e:
        console.print(f"[red]✗[/red] Failed to create storage adapter: {str(e)}")
        raise typer.Exit(code=1)


# ----------------------------------------------------------------------
# Rendering
# ----------------------------------------------------------------------

def print_table_summaries(summaries: list[TableSummary], show_preview: bool = True) -> None:
    for summary in summaries:
        if not summary.exists:
            console.print(f"[yellow]⚠[/yellow] Table [bold]{summary.table}[/bold] has not been imported")
            continue

        console.print(f"\n[bold]{summary.table}[/bold] [dim]({summary.row_count:,} rows)[/dim]")
        columns_table = Table(show_header=True, header_style="bold")
        columns_table.add_column("Column")
        columns_table.add_column("Type")
        columns_table.add_column("Nullable")
        for column in summary.columns:
            columns_table.add_row(column.name, column.data_type, "yes" if column.nullable else "no")
        console.print(columns_table)

        if show_preview and summary.preview:
            preview_table = Table(show_header=True, header_style="dim")
            for name in summary.preview[0]:
                preview_table.add_column(str(name))
            for row in summary.preview:
                preview_table.add_row(*("" if v is None else str(v) for v in row.values()))
            console.print(preview_table)


def print_migration_report(report: MigrationReport) -> None:
    for mismatch in report.mismatches:
        console.print(f"[yellow]⚠[/yellow] {mismatch.describe()}")

    migration_table = Table(show_header=True, header_style="bold")
    migration_table.add_column("Table")
    migration_table.add_column("Action")
    migration_table.add_column("Detail")
    for action in report.actions:
        style = "dim" if action.action == "skipped" else "green"
        migration_table.add_row(action.table, f"[{style}]{action.action}[/{style}]", action.detail)
    console.print(migration_table)


def print_quality_report(report: QualityReport, show_rows: bool = False) -> None:
    quality_table = Table(show_header=False, box=None, padding=(0, 2))
    quality_table.add_row("Null test results:", _count(report.null_results))
    quality_table.add_row("Invalid test results:", _count(report.invalid_result_count))
    quality_table.add_row("Duplicate patient codes:", _count(len(report.duplicate_patient_codes)))
    for issue in report.referential_issues:
        quality_table.add_row(
            f"{issue.constraint}:",
            f"{_count(issue.missing_keys)} missing keys, {_count(issue.orphans)} orphans"
        )
    console.print(quality_table)

    if show_rows and report.invalid_results:
        console.print("\n[bold]Invalid test results:[/bold]")
        rows_table = Table(show_header=True, header_style="bold")
        for name in report.invalid_results[0]:
            rows_table.add_column(str(name))
        for row in report.invalid_results:
            rows_table.add_row(*("NULL" if v is None else str(v) for v in row.values()))
        console.print(rows_table)

    if show_rows and report.duplicate_patient_codes:
        console.print("\n[bold]Duplicate patient codes:[/bold]")
        for duplicate in report.duplicate_patient_codes:
            console.print(f"  • {duplicate.patient_code}: {duplicate.occurrences} patients")


def print_clinical_report(report: ClinicalReport) -> None:
    console.print(f"\n[bold]Tests per patient[/bold] [dim](as of {report.as_of})[/dim]")
    tests_table = Table(show_header=True, header_style="bold")
    tests_table.add_column("Patient", justify="right")
    tests_table.add_column("Tests", justify="right")
    for row in report.tests_per_patient:
        tests_table.add_row(_patient(row.patient_id), str(row.total_tests))
    console.print(tests_table)

    console.print("\n[bold]Outcomes per patient[/bold]")
    outcome_table = Table(show_header=True, header_style="bold")
    outcome_table.add_column("Patient", justify="right")
    outcome_table.add_column("Positive", justify="right")
    outcome_table.add_column("Negative", justify="right")
    for row in report.outcome_counts:
        outcome_table.add_row(_patient(row.patient_id), str(row.positive_count), str(row.negative_count))
    console.print(outcome_table)

    console.print("\n[bold]Treatment success by age group[/bold]")
    age_table = Table(show_header=True, header_style="bold")
    age_table.add_column("Age group")
    age_table.add_column("Patients", justify="right")
    age_table.add_column("Treatments", justify="right")
    age_table.add_column("Successful", justify="right")
    age_table.add_column("Success rate", justify="right")
    for row in report.age_groups:
        rate = "n/a" if row.success_rate_percent is None else f"{row.success_rate_percent:.2f}%"
        age_table.add_row(
            row.age_group,
            str(row.total_patients),
            str(row.total_treatments),
            str(row.successful_treatments),
            rate,
        )
    console.print(age_table)


def _count(value: int) -> str:
    return f"[red]{value:,}[/red]" if value else f"{value:,}"


def _patient(patient_id: Optional[int]) -> str:
    return "[dim]no key[/dim]" if patient_id is None else str(patient_id)


def _fail(message: str) -> None:
    console.print(f"\n[red]✗[/red] {escape(message)}")
    raise typer.Exit(code=1)


def _load(storage: ClinicalStorePort, directory: Path) -> None:
    result = CSVTableLoader(storage).load_directory(directory)
    if result.is_failure():
        _fail(f"Import failed: {result.error}")

    load_table = Table(show_header=False, box=None, padding=(0, 2))
    for table, rows in result.value.items():
        load_table.add_row(f"{table}:", f"{rows:,} rows")
    console.print(load_table)


def _migrate(storage: ClinicalStorePort) -> MigrationReport:
    result = SchemaMigrator(storage).migrate()
    details = result.error_details or {}
    report = result.value if result.is_success() else details.get("report")
    if report is not None:
        print_migration_report(report)
    if result.is_failure():
        _fail(f"Migration failed on '{details.get('table')}' ({result.error_type}): {result.error}")
    return report


def _export_path(output: Optional[Path], as_of: date) -> Optional[str]:
    if output is not None:
        return str(output)
    if settings.save_report:
        return str(default_report_path(settings.report_dir, as_of))
    return None


# ----------------------------------------------------------------------
# Commands
# ----------------------------------------------------------------------

@app.command()
def load(
    directory: Path = typer.Argument(..., help="Directory with Patients, Samples, Tests and Treatments CSV files",
                                     exists=True, file_okay=False),
) -> None:
    """Import the four clinical CSV files as raw tables.

    Examples:
        clinireport load data/
    """
    storage = create_storage_adapter_cli()
    try:
        console.print(f"\n[bold blue]Importing[/bold blue] {directory}")
        _load(storage, directory)
    except KeyboardInterrupt:
        console.print("\n[yellow]⚠[/yellow] Import interrupted by user")
        raise typer.Exit(code=130)
    finally:
        storage.close()
    console.print("\n[green]✓[/green] Import completed successfully")


@app.command()
def inspect(
    rows: int = typer.Option(settings.preview_rows, "--rows", "-n", min=0, help="Preview rows per table"),
) -> None:
    """Show each table's columns and first rows, and diagnose key type mismatches."""
    storage = create_storage_adapter_cli()
    try:
        summaries = inspect_tables(storage, preview_rows=rows)
        print_table_summaries(summaries)
        mismatches = SchemaMigrator(storage).diagnose() if all(s.exists for s in summaries) else []
    except ClinicalReportError as e:
        _fail(f"Inspection failed: {str(e)}")
    finally:
        storage.close()

    console.print("\n[bold]Key type diagnosis:[/bold]")
    if not mismatches:
        console.print("[green]✓[/green] No foreign key type mismatches")
    for mismatch in mismatches:
        console.print(f"[yellow]⚠[/yellow] {mismatch.describe()}")


@app.command()
def migrate() -> None:
    """Align key column types and apply the primary, unique and foreign key constraints.

    Safe to re-run: tables that already carry their constraints are skipped.
    """
    storage = create_storage_adapter_cli()
    try:
        report = _migrate(storage)
    finally:
        storage.close()

    if report.is_noop:
        console.print("\n[green]✓[/green] Schema already migrated, nothing to do")
    else:
        console.print("\n[green]✓[/green] Migration completed successfully")


@app.command()
def check(
    show_rows: bool = typer.Option(False, "--show-rows", help="List the offending rows"),
    strict: bool = typer.Option(False, "--strict", help="Exit with code 1 when issues are found"),
) -> None:
    """Run the data quality checks (reported, never corrected)."""
    storage = create_storage_adapter_cli()
    try:
        report = QualityChecker(storage).run()
    except ClinicalReportError as e:
        _fail(f"Quality checks failed: {str(e)}")
    finally:
        storage.close()

    console.print("\n[bold]Data Quality:[/bold]")
    print_quality_report(report, show_rows=show_rows)

    if not report.has_issues:
        console.print("\n[green]✓[/green] No data quality issues found")
        return
    console.print("\n[yellow]⚠[/yellow] Data quality issues found")
    if strict:
        raise typer.Exit(code=1)


@app.command()
def report(
    as_of: Optional[datetime] = typer.Option(None, "--as-of", formats=["%Y-%m-%d"],
                                             help="Reference date for age groups (default: today)"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Save the report as JSON"),
) -> None:
    """Compute tests per patient, outcomes per patient and treatment success by age group."""
    reference = as_of.date() if as_of else date.today()
    storage = create_storage_adapter_cli()
    try:
        clinical = ReportingService(storage).run_all(as_of=reference)
        export_path = _export_path(output, reference)
        saved = generate_clinical_report(
            storage, output_path=export_path, as_of=reference, clinical=clinical
        ) if export_path else None
    except ClinicalReportError as e:
        _fail(f"Report failed: {str(e)}")
    finally:
        storage.close()

    print_clinical_report(clinical)
    if saved is not None:
        if saved.is_failure():
            _fail(f"Failed to save report: {saved.error}")
        console.print(f"\n[green]✓[/green] Report saved: {saved.value['saved_to']}")


@app.command()
def run(
    directory: Path = typer.Argument(..., help="Directory with Patients, Samples, Tests and Treatments CSV files",
                                     exists=True, file_okay=False),
    as_of: Optional[datetime] = typer.Option(None, "--as-of", formats=["%Y-%m-%d"],
                                             help="Reference date for age groups (default: today)"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Save the report as JSON"),
    show_rows: bool = typer.Option(False, "--show-rows", help="List the offending rows of the quality checks"),
) -> None:
    """Run the whole workflow: load, inspect, migrate, check, report.

    Examples:
        clinireport run data/
        clinireport run data/ --as-of 2025-01-01 --output reports/clinical.json
    """
    reference = as_of.date() if as_of else date.today()
    console.print(f"\n[bold blue]{settings.app_name}[/bold blue]")
    console.print(f"[dim]Source:[/dim] {directory}")
    console.print(f"[dim]Database:[/dim] {settings.db_config.db_type}")

    storage = create_storage_adapter_cli()
    try:
        console.print("\n[bold]1. Import[/bold]")
        _load(storage, directory)

        console.print("\n[bold]2. Inspection[/bold]")
        print_table_summaries(inspect_tables(storage, preview_rows=settings.preview_rows), show_preview=False)

        console.print("\n[bold]3. Migration[/bold]")
        migration = _migrate(storage)

        console.print("\n[bold]4. Data Quality[/bold]")
        quality = QualityChecker(storage).run()
        print_quality_report(quality, show_rows=show_rows)

        console.print("\n[bold]5. Reports[/bold]")
        clinical = ReportingService(storage).run_all(as_of=reference)
        print_clinical_report(clinical)

        export_path = _export_path(output, reference)
        saved = None
        if export_path:
            saved = generate_clinical_report(storage, output_path=export_path, as_of=reference,
                                             migration_report=migration, clinical=clinical, quality=quality)
    except KeyboardInterrupt:
        console.print("\n[yellow]⚠[/yellow] Workflow interrupted by user")
        raise typer.Exit(code=130)
    except ClinicalReportError as e:
        _fail(f"Workflow failed: {str(e)}")
    finally:
        storage.close()

    if saved is not None:
        if saved.is_failure():
            _fail(f"Failed to save report: {saved.error}")
        console.print(f"\n[green]✓[/green] Report saved: {saved.value['saved_to']}")
    console.print("\n[green]✓[/green] Workflow completed successfully")


@app.command()
def info() -> None:
    """Display configuration."""
    console.print("[bold blue]System Information[/bold blue]\n")

    info_table = Table(show_header=False, box=None, padding=(0, 2))
    info_table.add_row("Application:", f"{settings.app_name} v{__version__}")
    info_table.add_row("Database Type:", settings.db_config.db_type)

    if settings.db_config.db_type == "duckdb":
        info_table.add_row("Database Path:", settings.get_db_path())
    elif settings.db_config.db_type == "postgresql":
        info_table.add_row("Database Host:", str(settings.db_config.host))
        info_table.add_row("Database Name:", str(settings.db_config.database))

    info_table.add_row("Log Level:", settings.log_level)
    info_table.add_row("Preview Rows:", str(settings.preview_rows))
    info_table.add_row("Save Reports:", f"Enabled ({settings.report_dir})" if settings.save_report else "Disabled")

    console.print(info_table)


def version_callback(value: bool) -> None:
    if value:
        console.print(f"CliniReport v{__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: bool = typer.Option(False, "--version", callback=version_callback, is_eager=True,
                                 help="Show version information"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """CliniReport: clinical schema migration, data quality checks and reporting."""
    setup_logging(use_json=settings.log_json, log_level="DEBUG" if verbose else settings.log_level)
    if verbose:
        logging.getLogger().debug("Verbose logging enabled")


if __name__ == "__main__":
    app()
