"""List command: show which fixture files a run would select."""

import json
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from ...config import default_wpt_dir
from ...core.errors import InvalidInvocationError
from ...fixtures.discovery import discover_files

console = Console()


@click.command("list")
@click.option("--wpt-dir", type=click.Path(file_okay=False, path_type=Path),
              help="WPT checkout (default: $WPT_DIR or .cache/wpt)")
@click.option("--op", help="Only files for this operator")
@click.option("--file", "file_filter", help="Only files whose path ends with this")
@click.option("--limit-files", type=click.IntRange(min=1), help="Max files")
@click.option("--json", "as_json", is_flag=True)
def list_files(wpt_dir, op, file_filter, limit_files, as_json):
    """List matched conformance fixture files."""
    wpt_dir = wpt_dir or default_wpt_dir()
    try:
        files = discover_files(
            wpt_dir,
            file=file_filter,
            op=op,
            limit_files=limit_files if limit_files else float("inf"),
        )
    except InvalidInvocationError as e:
        console.print(f"\n[red]Error:[/red] {e}\n")
        sys.exit(int(e.exit_code))

    if as_json:
        click.echo(json.dumps([str(f) for f in files], indent=2))
        return

    table = Table(title=f"Conformance fixtures ({len(files)} files)")
    table.add_column("#", justify="right", style="dim")
    table.add_column("File", style="cyan")
    for index, path in enumerate(files, start=1):
        table.add_row(str(index), path.name)
    console.print(table)
