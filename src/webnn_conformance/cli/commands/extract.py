"""
Extract command: show the cases a fixture file yields.

Useful when a fixture fails with FILE_PARSE and the sandbox is suspect.
"""

import json
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from ...core.errors import ExtractionError

console = Console()


@click.command()
@click.argument("fixture", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--json", "as_json", is_flag=True, help="Print the raw extracted cases")
@click.option("--time-limit", default=5.0, type=float, show_default=True,
              help="Evaluation budget in seconds")
def extract(fixture, as_json, time_limit):
    """Extract test cases from one WPT fixture file."""
    from ...fixtures.extractor import extract_tests_from_source

    source = fixture.read_text(encoding="utf-8")
    try:
        tests = extract_tests_from_source(source, fixture.name, time_limit_s=time_limit)
    except ExtractionError as e:
        console.print(f"\n[red]Extraction failed:[/red] {e}\n")
        sys.exit(int(e.exit_code))

    if as_json:
        click.echo(json.dumps(tests, indent=2))
        return

    table = Table(title=f"{fixture.name} ({len(tests)} cases)")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Operators", style="green")
    for index, test in enumerate(tests):
        graph = test.get("graph") if isinstance(test, dict) else None
        operators = [op.get("name", "?") for op in (graph or {}).get("operators") or []]
        name = test.get("name", "") if isinstance(test, dict) else ""
        table.add_row(str(index), str(name), ", ".join(operators))
    console.print(table)
