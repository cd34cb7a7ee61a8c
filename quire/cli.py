"""Command-line interface for Quire.

Commands:
- build: Build a source tree into a destination directory.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import click

from . import __version__

LOG_LEVEL_ENV = "QUIRE_LOG_LEVEL"


@click.group()
@click.version_option(version=__version__, prog_name="quire")
def cli():
    """Quire static blog generator."""


@cli.command()
@click.argument(
    "source",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
)
@click.argument("destination", type=click.Path(path_type=Path))
@click.option("--url", help="Site url (overrides the config file)")
@click.option(
    "--workers",
    type=click.IntRange(min=1),
    required=False,
    help="Number of render threads (overrides the config file)",
)
def build(source: Path, destination: Path, url: str | None, workers: int | None):
    """Build SOURCE into DESTINATION."""
    from .build import build_site
    from .errors import BuildError

    overrides = {}
    if url is not None:
        overrides["url"] = url
    if workers is not None:
        overrides["workers"] = workers

    try:
        result = build_site(source, destination, overrides)
    except BuildError as exc:
        click.echo(click.style("Build failed:", fg="red", bold=True), err=True)
        click.echo(click.style(f"  File: {exc.source_path}", fg="yellow"), err=True)
        click.echo(click.style(f"  Error: {exc.message}", fg="white"), err=True)
        raise SystemExit(1) from None

    _print_warnings(result.warnings)
    click.echo(f"Built {len(result.pages)} pages into {result.output_dir}")


def _print_warnings(warnings) -> None:
    """Print build warnings grouped by kind."""
    from .errors import BuildReport

    if not warnings:
        return
    report = BuildReport()
    report.extend(warnings)
    click.echo(
        click.style(f"{len(warnings)} warning(s):", fg="yellow", bold=True), err=True
    )
    for kind, items in report.by_kind().items():
        click.echo(click.style(f"  {kind}:", fg="yellow"), err=True)
        for warning in items:
            click.echo(f"    {warning}", err=True)


def main():
    """Entry point for the CLI application."""
    level = os.environ.get(LOG_LEVEL_ENV, "ERROR").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.ERROR),
        format="%(levelname)s %(name)s: %(message)s",
    )
    cli()
