"""
Command-line interface for the GEDCOM importer.

Parses, validates and imports GEDCOM files into a local SQLite database.
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from genealogy_importer import __version__
from genealogy_importer.config import ImporterSettings, load_settings
from genealogy_importer.core.gedcom import ParseError, parse
from genealogy_importer.core.models import Actor, ValidationIssue, ValidationReport
from genealogy_importer.importer.gedcom_import import GedcomImporter, GedcomImportError
from genealogy_importer.preflight import check_text_field, check_upload
from genealogy_importer.storage.database import GenealogyDatabase, StorageError
from genealogy_importer.validation.signatures import ContentScanner
from genealogy_importer.validation.validator import GedcomValidator

console = Console()
err_console = Console(stderr=True)

MAX_LISTED = 20

SEVERITY_STYLES = {
    "error": "red",
    "warning": "yellow",
    "info": "cyan",
}


def _configure_logging(verbosity: int) -> None:
    """Send package logs to stderr through rich."""
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity > 1:
        level = logging.DEBUG

    package_logger = logging.getLogger("genealogy_importer")
    package_logger.setLevel(level)
    if not any(isinstance(h, RichHandler) for h in package_logger.handlers):
        handler = RichHandler(console=err_console, show_path=False)
        handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
        package_logger.addHandler(handler)


@click.group()
@click.version_option(version=__version__, prog_name="gedcom-importer")
@click.option("--verbose", "-v", count=True, help="Log progress (-v) or debug detail (-vv)")
@click.option(
    "--settings", "settings_path",
    envvar="GEDCOM_IMPORTER_SETTINGS",
    type=click.Path(dir_okay=False),
    help="YAML file overriding the default validation settings",
)
@click.pass_context
def cli(ctx, verbose: int, settings_path: Optional[str]):
    """
    GEDCOM genealogy file importer.

    Parse and validate GEDCOM files, then import them into isolated
    workspaces of people and family unions.
    """
    _configure_logging(verbose)
    ctx.ensure_object(dict)
    try:
        ctx.obj["settings"] = load_settings(settings_path)
    except FileNotFoundError as e:
        err_console.print(f"[red]Error: {e}[/red]")
        sys.exit(2)


# =============================================================================
# Parse
# =============================================================================

@cli.command("parse")
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
def parse_command(file: str):
    """Display header metadata, record counts and parser diagnostics."""
    try:
        tree = parse(file)
    except ParseError as e:
        err_console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    header = tree.header
    table = Table(title=f"GEDCOM: {Path(file).name}")
    table.add_column("Field", style="bold")
    table.add_column("Value", justify="right")

    table.add_row("Version", header.version or "-")
    table.add_row("Source", header.source or "-")
    table.add_row("Declared charset", header.encoding or "-")
    table.add_row("Decoded as", tree.encoding or "-")
    table.add_row("Lines", str(tree.line_count))
    table.add_row("Records", str(len(tree.records)))
    table.add_row("Individuals", str(len(tree.individuals)))
    table.add_row("Families", str(len(tree.families)))
    console.print(table)

    if tree.diagnostics:
        console.print(f"\n[yellow]Diagnostics ({len(tree.diagnostics)}):[/yellow]")
        for diagnostic in tree.diagnostics[:MAX_LISTED]:
            where = f"line {diagnostic.line_number}" if diagnostic.line_number else "file"
            console.print(f"  {where}: [{diagnostic.kind}] {diagnostic.message}",
                          markup=False, soft_wrap=True)
        if len(tree.diagnostics) > MAX_LISTED:
            console.print(f"  ... and {len(tree.diagnostics) - MAX_LISTED} more")


# =============================================================================
# Validate
# =============================================================================

def _issue_table(title: str, items: list[ValidationIssue]) -> Table:
    table = Table(title=title)
    table.add_column("Severity")
    table.add_column("Category")
    table.add_column("Location")
    table.add_column("Message")
    for item in items[:MAX_LISTED]:
        style = SEVERITY_STYLES.get(item.severity.value, "")
        table.add_row(
            f"[{style}]{item.severity.value}[/{style}]" if style else item.severity.value,
            item.category,
            item.location,
            item.message,
        )
    return table


def print_report(report: ValidationReport) -> None:
    """Render a validation report to the console."""
    stats = report.stats
    status = "[green]Valid[/green]" if report.valid else "[red]Invalid[/red]"
    console.print(Panel(
        f"{status}: {len(report.issues)} issues, {len(report.warnings)} warnings\n"
        f"Version: {stats.version or '-'}   Source: {stats.source or '-'}   "
        f"Charset: {stats.encoding or '-'}\n"
        f"Individuals: {stats.individuals}   Families: {stats.families}",
        title="GEDCOM Validation",
    ))

    for title, items in (("Issues", report.issues), ("Warnings", report.warnings)):
        if not items:
            continue
        console.print(_issue_table(f"{title} ({len(items)})", items))
        if len(items) > MAX_LISTED:
            console.print(f"  ... and {len(items) - MAX_LISTED} more")

    if report.recommendations:
        console.print("\n[bold]Recommendations:[/bold]")
        for i, recommendation in enumerate(report.recommendations, 1):
            console.print(f"  {i}. {recommendation}", soft_wrap=True)


@cli.command("validate")
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--json", "as_json", is_flag=True, help="Print the report as JSON")
@click.pass_context
def validate_command(ctx, file: str, as_json: bool):
    """Validate a GEDCOM file. Exits with status 1 when it cannot be imported."""
    settings: ImporterSettings = ctx.obj["settings"]
    try:
        report = GedcomValidator(settings).validate(file)
    except ParseError as e:
        err_console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
    else:
        print_report(report)

    if not report.valid:
        sys.exit(1)


# =============================================================================
# Import
# =============================================================================

@cli.command("import")
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--name", "-n", "workspace_name", required=True, help="Name of the new workspace")
@click.option("--description", "-d", help="Workspace description")
@click.option("--db", "db_path", default="genealogy.db", show_default=True,
              type=click.Path(dir_okay=False), help="SQLite database file")
@click.option("--actor", "actor_id", required=True, envvar="GEDCOM_IMPORTER_ACTOR",
              help="ID of the user who owns the new workspace")
@click.option("--actor-name", help="Display name of the importing user")
@click.option("--require-valid/--no-require-valid", default=True,
              help="Refuse to import files the validator rejects")
@click.pass_context
def import_command(ctx, file: str, workspace_name: str, description: Optional[str],
                   db_path: str, actor_id: str, actor_name: Optional[str], require_valid: bool):
    """Import a GEDCOM file into a new workspace."""
    settings: ImporterSettings = ctx.obj["settings"]
    path = Path(file)

    scanner = ContentScanner(settings.signatures)
    problems = check_upload(path, settings)
    problems += check_text_field("workspace name", workspace_name, scanner)
    problems += check_text_field("description", description, scanner)
    if problems:
        err_console.print("[red]The file cannot be imported:[/red]")
        for problem in problems:
            err_console.print(f"  - {problem}", markup=False, soft_wrap=True)
        sys.exit(1)

    if require_valid:
        try:
            report = GedcomValidator(settings).validate(path)
        except ParseError as e:
            err_console.print(f"[red]Error: {e}[/red]")
            sys.exit(1)
        if not report.can_import:
            print_report(report)
            err_console.print(
                "[red]Import refused: fix the issues above or pass --no-require-valid[/red]"
            )
            sys.exit(1)

    actor = Actor(id=actor_id, name=actor_name)
    try:
        with GenealogyDatabase(db_path) as database:
            database.initialize()
            importer = GedcomImporter(database)
            result = importer.import_file(workspace_name, description, path.name, actor, path)
    except (GedcomImportError, StorageError) as e:
        err_console.print(f"[red]Import failed: {e}[/red]")
        sys.exit(1)

    stats = result.statistics
    message = (
        f"Your GEDCOM file has been imported successfully! "
        f"Imported {stats.individuals} individuals and {stats.families} families."
    )
    if stats.errors:
        message += f" {stats.errors} records had errors and were skipped."

    table = Table(title=f"Workspace #{result.workspace.id}: {result.workspace.name}")
    table.add_column("Metric", style="bold")
    table.add_column("Count", justify="right")
    table.add_row("Individuals", str(stats.individuals))
    table.add_row("Families", str(stats.families))
    table.add_row("Errors", str(stats.errors))

    console.print(table)
    console.print(f"[green]{message}[/green]", soft_wrap=True)


# =============================================================================
# Main Entry Point
# =============================================================================

def main():
    """Main entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
