"""
webnn-conformance CLI entry point.

Design: command modules import their heavy dependencies (numpy, the V8
isolate) inside the command body so `--help` stays fast and an import
problem in one command does not break the others.
"""

import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from .. import __version__
from .commands.extract import extract
from .commands.fixtures import list_files
from .commands.run import run

console = Console()


def configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logger = logging.getLogger("webnn_conformance")
    logger.handlers.clear()

    handler = RichHandler(
        console=Console(stderr=True),
        show_time=False,
        show_path=verbose,
        markup=False,
        rich_tracebacks=True,
    )
    handler.setLevel(level)
    logger.addHandler(handler)
    logger.setLevel(level)


@click.group()
@click.version_option(version=__version__, prog_name="webnn-conformance")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose):
    """
    webnn-conformance - run WPT WebNN conformance tests against a graph backend.

    Exit codes: 0 all executed cases passed, 1 failures, 2 invalid invocation.
    """
    configure_logging(verbose)


cli.add_command(run)
cli.add_command(list_files)
cli.add_command(extract)


if __name__ == "__main__":
    cli()
