"""Command-line interface for Pressroom.

This module defines the CLI commands using the Click framework.

Commands:
- build: Build the site into the publish directory.
- config: Validate and summarize the site configuration.

Exit codes: 0 on success (also with warnings, unless ``--strict``), 1 when
the build failed, 2 for warnings under ``--strict``, 130 when cancelled.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path

import click

from . import __version__
from .config import load_config
from .errors import ConfigError
from .report import BuildOutcome

EXIT_FAILED = 1
EXIT_WARNINGS = 2
EXIT_CANCELLED = 130


@click.group()
@click.version_option(version=__version__, prog_name="pressroom")
@click.option("-v", "--verbose", is_flag=True, help="Show debug logging")
@click.option("-q", "--quiet", is_flag=True, help="Only log errors")
def cli(verbose: bool, quiet: bool):
    """Pressroom static site builder."""
    level = logging.DEBUG if verbose else logging.ERROR if quiet else logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


_source_option = click.option(
    "-s",
    "--source",
    type=click.Path(file_okay=False, path_type=Path),
    default=".",
    show_default=True,
    help="Project root directory",
)
_config_option = click.option(
    "-c",
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Configuration file (default: hugo.toml, config.toml, ... in the project root)",
)


@cli.command()
@_source_option
@_config_option
@click.option(
    "-d",
    "--destination",
    type=click.Path(file_okay=False, path_type=Path),
    help="Publish directory (overrides publishDir)",
)
@click.option("--dry-run", is_flag=True, help="Validate content without writing output")
@click.option("--drafts", is_flag=True, help="Include draft content")
@click.option("-w", "--workers", type=click.IntRange(min=1), help="Render worker threads")
@click.option("--strict", is_flag=True, help="Exit with status 2 when there are warnings")
def build(
    source: Path,
    config_path: Path | None,
    destination: Path | None,
    dry_run: bool,
    drafts: bool,
    workers: int | None,
    strict: bool,
):
    """Build the site into the publish directory."""
    from .build import build_site

    project_root = source.resolve()
    cancel_event = threading.Event()
    outcome: dict = {}

    def run() -> None:
        outcome["result"] = build_site(
            project_root,
            config_path=config_path,
            output_dir=destination,
            dry_run=dry_run,
            include_drafts=True if drafts else None,
            workers=workers,
            cancel_event=cancel_event,
        )

    worker = threading.Thread(target=run, name="pressroom-build")
    worker.start()
    while worker.is_alive():
        try:
            worker.join(0.1)
        except KeyboardInterrupt:
            click.echo("Cancelling; waiting for running renders to finish...", err=True)
            cancel_event.set()
    if "result" not in outcome:
        raise click.ClickException("Build crashed; rerun with --verbose for details")
    result = outcome["result"]
    report = result.report

    for warning in report.warnings:
        click.echo(click.style(f"Warning: {warning}", fg="yellow"), err=True)

    if report.outcome is BuildOutcome.FAILED:
        click.echo(click.style("Build failed:", fg="red", bold=True), err=True)
        for error in report.errors:
            click.echo(click.style(f"  {error}", fg="white"), err=True)
        raise SystemExit(EXIT_FAILED)
    if report.outcome is BuildOutcome.CANCELLED:
        click.echo(click.style("Build cancelled; previous output left in place", fg="yellow"), err=True)
        raise SystemExit(EXIT_CANCELLED)

    if dry_run:
        click.echo(f"Validated {len(result.documents)} documents")
    else:
        click.echo(
            f"Built {len(result.documents)} documents ({len(result.written)} files) "
            f"into {result.output_dir}"
        )
    if report.warnings:
        click.echo(f"{len(report.warnings)} warning(s)")
        if strict:
            raise SystemExit(EXIT_WARNINGS)


@cli.command(name="config")
@_source_option
@_config_option
def show_config(source: Path, config_path: Path | None):
    """Validate and summarize the site configuration."""
    try:
        config = load_config(source.resolve(), config_path)
    except ConfigError as exc:
        click.echo(click.style("Invalid configuration:", fg="red", bold=True), err=True)
        click.echo(f"  {exc}", err=True)
        raise SystemExit(EXIT_FAILED) from None
    click.echo(f"title: {config.title}")
    click.echo(f"baseURL: {config.base_url}")
    click.echo(f"languageCode: {config.language_code}")
    click.echo(f"theme: {config.theme or '-'}")
    for key, pattern in config.permalinks.items():
        click.echo(f"permalinks.{key}: {pattern}")
    for singular, plural in config.taxonomies.items():
        click.echo(f"taxonomies.{singular}: {plural}")
    for scope, names in config.outputs.items():
        files = ", ".join(config.output_formats[name].filename for name in names)
        click.echo(f"outputs.{scope}: {', '.join(names)} ({files})")
    for name, entries in config.menus.items():
        click.echo(f"menu.{name}: {len(entries)} entries")
    if config.ignore_errors:
        click.echo(f"ignoreErrors: {', '.join(sorted(config.ignore_errors))}")


def main():
    """Entry point for the CLI application."""
    cli()
