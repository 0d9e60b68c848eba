"""Command line entry point for stack health verification."""

import json
import logging
import sys

import click

from stackcheck.config import load_settings
from stackcheck.errors import ConfigurationError
from stackcheck.formatting import format_report, format_settings
from stackcheck.persistence import run_workspace
from stackcheck.runner import RunContext, run_suite
from stackcheck.suite import describe_checks, filter_phases, load_suite

logger = logging.getLogger(__name__)

EXIT_CONFIG_ERROR = 2


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _progress(done: int) -> None:
    click.echo(".", nl=False, err=True)


def _config_error(exc: ConfigurationError) -> None:
    click.echo(f"Error: {exc}", err=True)
    sys.exit(EXIT_CONFIG_ERROR)


@click.group()
def main():
    """Verify a service stack: health, correlation IDs, latency and boundaries."""


@main.command()
@click.argument("suite", required=False)
@click.option(
    "--phase",
    "phases",
    multiple=True,
    help="Only run checks in this phase (repeatable).",
)
@click.option("--requests", "num_requests", type=int, default=None, help="Requests per latency check (NUM_REQUESTS).")
@click.option("--concurrency", type=int, default=None, help="Workers for concurrent load (CONCURRENCY).")
@click.option("--p95-threshold", "p95_threshold_ms", type=float, default=None, help="P95 latency bound in ms (P95_THRESHOLD_MS).")
@click.option("--duration", "sustained_duration_s", type=float, default=None, help="Sustained traffic duration in seconds (SUSTAINED_DURATION_S).")
@click.option("--wait/--no-wait", default=False, help="Wait up to MAX_WAIT_S for the preflight target.")
@click.option("--json", "as_json", is_flag=True, help="Print the report as JSON.")
@click.option(
    "--samples-out",
    default=None,
    type=click.Path(dir_okay=False),
    help="Optional path to export raw samples (JSONL) before the run workspace is removed.",
)
def run(suite, phases, num_requests, concurrency, p95_threshold_ms, sustained_duration_s, wait, as_json, samples_out):
    """Run a suite (built-in name or YAML file; default: all) and exit 0 only if it passes."""
    try:
        settings = load_settings(
            num_requests=num_requests,
            concurrency=concurrency,
            p95_threshold_ms=p95_threshold_ms,
            sustained_duration_s=sustained_duration_s,
        )
        _configure_logging(settings.log_level)
        selected = load_suite(suite or settings.suite_path or "all", settings)
        selected = filter_phases(selected, phases)
    except ConfigurationError as exc:
        _config_error(exc)

    with run_workspace() as ws:
        ctx = RunContext.for_suite(
            settings,
            selected,
            spool=ws.spool,
            progress=None if as_json else _progress,
            wait=wait,
        )
        report = run_suite(selected, ctx)
        if not as_json and ws.spool.count():
            click.echo("", err=True)
        if samples_out:
            written = ws.spool.export_jsonl(samples_out)
            click.echo(f"{written} samples written to {samples_out}", err=True)

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
    else:
        click.echo(format_report(report, color=sys.stdout.isatty()))

    sys.exit(0 if report.passed else 1)


@main.command()
@click.argument("suite", required=False)
def checks(suite):
    """List the checks of a suite with defaults applied."""
    try:
        settings = load_settings()
        selected = load_suite(suite or settings.suite_path or "all", settings)
    except ConfigurationError as exc:
        _config_error(exc)

    click.echo(json.dumps(describe_checks(selected), indent=2))


@main.command()
def config():
    """Show the effective settings."""
    try:
        settings = load_settings()
    except ConfigurationError as exc:
        _config_error(exc)

    click.echo(format_settings(settings.to_dict()))


if __name__ == "__main__":
    main()
