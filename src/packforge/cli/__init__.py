"""Command-line interface for packforge.

This module provides the main CLI entry point and assembles all commands.

Commands:
- run: Run a profile once
- watch: Re-run a profile whenever the sources change
- install-all: Install every remote filter
- clean: Remove the workspace and cached file states
"""

from __future__ import annotations

import click

from packforge.cli.config import (
    fail,
    get_paths,
    load_project_or_exit,
    setup_logging,
)
from packforge.cli.install import clean, install_all
from packforge.cli.run import run, watch


@click.group()
@click.version_option(package_name="packforge")
@click.option(
    "--project",
    "-C",
    "project_dir",
    type=click.Path(file_okay=False),
    default=".",
    show_default=True,
    help="Project directory containing config.json.",
)
@click.option("--verbose", "-v", is_flag=True, help="Show debug output.")
@click.pass_context
def cli(ctx: click.Context, project_dir: str, verbose: bool) -> None:
    """packforge - Incremental build pipelines for content packs."""
    setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["project_dir"] = project_dir


# Run commands
cli.add_command(run)
cli.add_command(watch)

# Dependency commands
cli.add_command(install_all)
cli.add_command(clean)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    # Main entry points
    "cli",
    "main",
    # Config utilities
    "fail",
    "get_paths",
    "load_project_or_exit",
    "setup_logging",
]
