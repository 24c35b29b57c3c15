"""
Run command: execute WPT conformance fixtures against the backend.

Exit code 0 = all executed cases passed, 1 = failures or fatal error,
2 = invalid invocation (for CI integration).
"""

import asyncio
import sys
from pathlib import Path

import click
from rich.console import Console

from ...config import build_run_options, load_config_file, parse_variants, resolve_runner_config
from ...core.errors import ExitCode, InvalidInvocationError

console = Console()


@click.command()
@click.option("--wpt-dir", type=click.Path(file_okay=False, path_type=Path),
              help="WPT checkout (default: $WPT_DIR or .cache/wpt)")
@click.option("--op", help="Only files for this operator, e.g. 'add' or 'reduce_sum'")
@click.option("--file", "file_filter", help="Only files whose path ends with this")
@click.option("--limit-tests", type=click.IntRange(min=1), help="Max cases per file")
@click.option("--limit-files", type=click.IntRange(min=1), help="Max files")
@click.option("--variants", help="Comma-separated device variants, e.g. cpu,gpu,npu")
@click.option("--skip-unimplemented", is_flag=True, help="Skip cases using operators the backend lacks")
@click.option("--stop-on-fail", is_flag=True, help="Halt at the first failing case")
@click.option("--report-json", type=click.Path(dir_okay=False, path_type=Path), help="Write the JSON report here")
@click.option("--report-html", type=click.Path(dir_okay=False, path_type=Path), help="Write the HTML report here")
@click.option("--exit-zero", is_flag=True, help="Exit 0 even when cases fail")
@click.option("--config", "config_path", type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help="YAML config file")
@click.option("--runner-cmd", help="Backend command line (overrides $WEBNN_RUNNER_CMD)")
def run(
    wpt_dir,
    op,
    file_filter,
    limit_tests,
    limit_files,
    variants,
    skip_unimplemented,
    stop_on_fail,
    report_json,
    report_html,
    exit_zero,
    config_path,
    runner_cmd,
):
    """
    Run conformance fixtures.

    Examples:
        webnn-conformance run --op add --limit-tests 5
        webnn-conformance run --variants cpu,gpu --report-json out/report.json
    """
    from ...bridge.client import ExecutionBridge
    from ...conformance.orchestrator import ConformanceRunner
    from ...conformance.report import render_summary, write_html_report, write_json_report
    from ...fixtures.discovery import discover_files

    try:
        config = load_config_file(config_path) if config_path else None
        options = build_run_options(
            {
                "wpt_dir": wpt_dir,
                "op": op,
                "file": file_filter,
                "limit_tests": limit_tests,
                "limit_files": limit_files,
                "variants": parse_variants(variants) if variants else None,
                # Unset flags must not mask config-file defaults.
                "skip_unimplemented": True if skip_unimplemented else None,
                "stop_on_fail": True if stop_on_fail else None,
                "report_json": report_json,
                "report_html": report_html,
                "exit_zero": True if exit_zero else None,
            },
            config,
        )
        runner_config = resolve_runner_config(config, runner_cmd)
        files = discover_files(
            options.wpt_dir, file=options.file, op=options.op, limit_files=options.limit_files
        )
    except InvalidInvocationError as e:
        console.print(f"\n[red]Error:[/red] {e}\n")
        sys.exit(int(e.exit_code))

    console.print(f"[bold]WebNN conformance[/bold]: {len(files)} file(s), variants {', '.join(options.variants)}")

    runner = ConformanceRunner(options, lambda: ExecutionBridge.from_config(runner_config))
    report = asyncio.run(runner.run(files))

    render_summary(report, console)

    if options.report_json:
        write_json_report(report, options.report_json)
        console.print(f"JSON report written: {options.report_json}")
    if options.report_html:
        write_html_report(report, options.report_html)
        console.print(f"HTML report written: {options.report_html}")

    if report.succeeded or options.exit_zero:
        sys.exit(int(ExitCode.OK))
    sys.exit(int(ExitCode.FAILURES))
