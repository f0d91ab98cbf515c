"""Command-line interface for Stele.

This module defines the CLI commands using Click framework.

Commands:
- build: Build a project into its output directory.
- query: Run a content query against a project and print matching slugs.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path

import click

from . import __version__
from .errors import BuildError


@click.group()
@click.version_option(version=__version__, prog_name="stele")
@click.option("-v", "--verbose", is_flag=True, help="Show debug logging")
def cli(verbose: bool):
    """Stele static site generator."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@cli.command()
@click.argument(
    "project",
    required=False,
    default=".",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
)
@click.option("--base-url", help="Base URL (overrides stele.yaml)")
@click.option(
    "--output",
    type=click.Path(file_okay=False, path_type=Path),
    help="Output directory (overrides stele.yaml)",
)
@click.option("--no-clean", is_flag=True, help="Keep existing files in the output directory")
def build(project: Path, base_url: str | None, output: Path | None, no_clean: bool):
    """Build the site into the output directory."""
    project_root = project.resolve()
    from .build import build_site

    try:
        result = build_site(
            project_root,
            base_url=base_url,
            output_dir_override=output,
            clean_output=not no_clean,
        )
    except BuildError as exc:
        _report(exc, project_root)
        raise SystemExit(1) from None
    click.echo(f"Built {len(result.files)} files into {result.output_dir}")


@cli.command()
@click.argument("query_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--project",
    default=".",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Project folder",
)
def query(query_file: Path, project: Path):
    """Run a YAML or JSON query file and print the matching slugs."""
    project_root = project.resolve()
    from .build import load_project
    from .extractors import load_yaml_mapping
    from .query import Query, run

    try:
        loaded = load_project(project_root)
        data = load_yaml_mapping(query_file.read_text(encoding="utf-8"), query_file)
        parsed = Query.from_dict(data)
    except BuildError as exc:
        _report(exc, project_root)
        raise SystemExit(1) from None
    except (KeyError, TypeError, ValueError) as exc:
        raise click.ClickException(f"Invalid query: {exc}") from exc

    now = datetime.now(timezone.utc).timestamp()
    for content in run(loaded.contents, parsed, now):
        click.echo(json.dumps({"id": content.id, "slug": content.slug}))


def _report(exc: BuildError, project_root: Path) -> None:
    """Display a user-friendly build error."""
    try:
        rel_path = exc.source_path.relative_to(project_root)
    except ValueError:
        rel_path = exc.source_path
    click.echo(click.style("Build failed:", fg="red", bold=True), err=True)
    click.echo(click.style(f"  File: {rel_path}", fg="yellow"), err=True)
    click.echo(click.style(f"  Error: {exc.message}", fg="white"), err=True)


def main():
    """Entry point for the CLI application."""
    cli()
