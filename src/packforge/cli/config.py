"""Configuration utilities for the packforge CLI.

This module provides shared functions used across CLI commands.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import NoReturn

import click

from packforge.build.project import Project, load_project
from packforge.core.config import WorkspacePaths
from packforge.core.errors import PackforgeError

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(verbose: bool = False) -> None:
    """Configure the packforge logger to output to stdout.

    Args:
        verbose: Log DEBUG messages instead of INFO and above.
    """
    root_logger = logging.getLogger("packforge")
    root_logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root_logger.addHandler(stdout_handler)
    root_logger.propagate = False


def get_paths(ctx: click.Context) -> WorkspacePaths:
    """Get the workspace layout of the project selected on the command line."""
    return WorkspacePaths(Path(ctx.obj["project_dir"]).resolve())


def load_project_or_exit(paths: WorkspacePaths) -> Project:
    """Load config.json, exiting with an error message if it is invalid."""
    if not paths.config_file.exists():
        click.echo(f"Error: No {paths.config_file.name} found in {paths.project_root}.", err=True)
        sys.exit(1)
    try:
        return load_project(paths.config_file)
    except PackforgeError as e:
        fail(e)


def fail(error: PackforgeError) -> NoReturn:
    """Print an error with its kind tag and exit with status 1."""
    click.echo(f"Error [{error.kind.value}]: {error}", err=True)
    sys.exit(1)
