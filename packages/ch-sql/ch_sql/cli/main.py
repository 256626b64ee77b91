"""ch-sql CLI.

Command-line interface for ClickHouse query generation and migration.

Commands:
    ch-sql generate <options.json>         Render SQL for builder options
    ch-sql inject <file.sql>               Inject the dashboard time filter
    ch-sql migrate <query.json>            Migrate a persisted query document
    ch-sql locate <file.sql> <CLAUSE>      Find a top-level clause
    ch-sql validate <file.sql>             Check SQL syntax
"""

import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from ch_sql import __version__
from ch_sql.config import get_settings
from ch_sql.migration import migrate_query
from ch_sql.schema_lookup import StaticSchemaProvider, mark_custom_columns
from ch_sql.schemas import AutoTimeFilterOptions, QueryBuilderOptions
from ch_sql.sql_generator import generate_sql
from ch_sql.sql_utils import find_main_clause_position
from ch_sql.time_filter import inject_time_filter
from ch_sql.validation import validate as validate_sql

console = Console()
logger = logging.getLogger(__name__)


def read_sql_file(file_path: str) -> str:
    """Read SQL from file."""
    path = Path(file_path)
    if not path.exists():
        raise click.ClickException(f"File not found: {file_path}")
    if path.suffix.lower() not in (".sql", ".txt"):
        raise click.ClickException(f"Expected .sql file, got: {path.suffix}")
    return path.read_text(encoding="utf-8")


def read_json_file(file_path: str) -> Any:
    """Read a JSON document from file."""
    path = Path(file_path)
    if not path.exists():
        raise click.ClickException(f"File not found: {file_path}")
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise click.ClickException(f"Invalid JSON in {file_path}: {e}")


def display_sql(sql: str, title: str) -> None:
    """Display SQL with syntax highlighting."""
    console.print(Panel(Syntax(sql, "sql", word_wrap=True), title=title, border_style="blue"))


def _builder_options_from_document(document: Any) -> QueryBuilderOptions:
    if not isinstance(document, dict):
        raise click.ClickException("Expected a JSON object")

    # Full query documents are migrated first; bare builder options are used as is
    if "rawSql" in document or "builderOptions" in document:
        document = migrate_query(document)
        options = document.get("builderOptions")
        if not isinstance(options, dict):
            # SQL editor documents keep the last builder state in meta
            meta = document.get("meta")
            options = meta.get("builderOptions") if isinstance(meta, dict) else None
        if not isinstance(options, dict):
            raise click.ClickException("Query document has no builder options")
        return QueryBuilderOptions.from_dict(options)
    return QueryBuilderOptions.from_dict(document)


@click.group()
@click.version_option(version=__version__, prog_name="ch-sql")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
def cli(verbose: bool) -> None:
    """ch-sql - ClickHouse query generation and migration CLI."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s %(message)s")
    else:
        logging.basicConfig(level=get_settings().log_level.upper())


@cli.command()
@click.argument("file", type=click.Path(exists=True))
@click.option("--schema", type=click.Path(exists=True), help="JSON schema {database: {table: {column: type}}}")
@click.option("--pretty", is_flag=True, help="Show highlighted SQL")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
def generate(file: str, schema: Optional[str], pretty: bool, output_json: bool):
    """Render SQL for builder options or a full query document.

    Examples:
        ch-sql generate options.json
        ch-sql generate panel_query.json --schema schema.json --json
    """
    options = _builder_options_from_document(read_json_file(file))

    if schema:
        provider = StaticSchemaProvider(read_json_file(schema))
        options = mark_custom_columns(options, provider)

    sql = generate_sql(options)

    if output_json:
        console.print_json(json.dumps({"sql": sql, "builderOptions": options.to_dict()}))
        return

    if pretty:
        display_sql(sql, f"{options.query_type.value} query")
        return

    click.echo(sql)


@cli.command()
@click.argument("file", type=click.Path(exists=True))
@click.option("--time-column", default=None, help="Column to filter on (default from settings)")
@click.option(
    "--time-column-type",
    type=click.Choice(["DateTime", "DateTime64"]),
    default=None,
    help="Time column type (default from settings)",
)
@click.option("--disabled", is_flag=True, help="Disable injection")
def inject(file: str, time_column: Optional[str], time_column_type: Optional[str], disabled: bool):
    """Inject the dashboard time filter into a raw SQL query.

    Examples:
        ch-sql inject query.sql --time-column timestamp
        CHSQL_AUTO_TIME_FILTER_ENABLED=true CHSQL_AUTO_TIME_FILTER_COLUMN=ts ch-sql inject query.sql
    """
    sql = read_sql_file(file)

    options = AutoTimeFilterOptions.from_settings()
    if time_column:
        options.time_column = time_column
        options.enabled = True
    if time_column_type:
        options.time_column_type = time_column_type
    if disabled:
        options.enabled = False

    click.echo(inject_time_filter(sql, options))


@cli.command()
@click.argument("file", type=click.Path(exists=True))
@click.option("--output", "-o", type=click.Path(), help="Output file for the migrated document")
def migrate(file: str, output: Optional[str]):
    """Migrate a persisted query document to the current schema.

    Examples:
        ch-sql migrate legacy_query.json
        ch-sql migrate legacy_query.json -o query.json
    """
    document = read_json_file(file)
    migrated = migrate_query(document)

    if migrated is document:
        logger.info("Document %s is already current", file)

    text = json.dumps(migrated, indent=2)
    if output:
        Path(output).write_text(text + "\n", encoding="utf-8")
        console.print(f"[green]Migrated query written to {output}[/green]")
        return

    click.echo(text)


@cli.command()
@click.argument("file", type=click.Path(exists=True))
@click.argument("clause")
def locate(file: str, clause: str):
    """Print the position of a top-level clause, or -1 if absent.

    Examples:
        ch-sql locate query.sql WHERE
        ch-sql locate query.sql "GROUP BY"
    """
    sql = read_sql_file(file)
    click.echo(find_main_clause_position(sql, clause.upper()))


@cli.command()
@click.argument("file", type=click.Path(exists=True))
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
def validate(file: str, output_json: bool):
    """Check SQL syntax. Exits 1 when the SQL does not parse.

    Examples:
        ch-sql validate query.sql
        ch-sql validate query.sql --json
    """
    sql = read_sql_file(file)
    result = validate_sql(sql)

    if output_json:
        console.print_json(json.dumps(result.to_dict()))
    elif result.valid:
        console.print("[green]Valid SQL[/green]")
    else:
        error = result.error
        table = Table(title="Syntax Error", show_header=True, header_style="bold")
        table.add_column("Line", justify="right")
        table.add_column("Column", justify="right")
        table.add_column("Expected")
        table.add_row(
            f"{error.start_line}-{error.end_line}",
            f"{error.start_col}-{error.end_col}",
            error.expected,
        )
        console.print(table)
        console.print(error.message, style="red", markup=False, highlight=False)

    if not result.valid:
        sys.exit(1)


if __name__ == "__main__":
    cli()
