"""Dependency and maintenance commands for the packforge CLI.

Commands:
- install-all: Install every remote filter referenced by the project
- clean: Remove the workspace and cached file states
"""

from __future__ import annotations

import shutil

import click

from packforge.build.cache import ContentHashCache
from packforge.build.fetch import GitHubArchiveFetcher
from packforge.build.installer import DependencyInstaller
from packforge.cli.config import fail, get_paths, load_project_or_exit
from packforge.core.errors import PackforgeError


@click.command("install-all")
@click.pass_context
def install_all(ctx: click.Context) -> None:
    """Install every remote filter used by the project's profiles.

    Filters that are already in the cache are not downloaded again.
    """
    paths = get_paths(ctx)
    project = load_project_or_exit(paths)
    fetcher = GitHubArchiveFetcher()
    try:
        installer = DependencyInstaller(project, paths.cache_path, fetcher)
        fetched = installer.install_all()
    except PackforgeError as e:
        fail(e)
    finally:
        fetcher.close()
    for locator in fetched:
        click.echo(f"  + {locator}")
    click.echo(f"Installed {len(fetched)} filter(s).")


@click.command()
@click.option("--cache", "remove_cache", is_flag=True, help="Also remove installed filters.")
@click.pass_context
def clean(ctx: click.Context, remove_cache: bool) -> None:
    """Remove the workspace and all cached file states."""
    paths = get_paths(ctx)
    try:
        with ContentHashCache(paths.hash_db_path) as cache:
            cache.clear_cached_states()
    except PackforgeError as e:
        fail(e)

    targets = [paths.tmp_path]
    if remove_cache:
        targets.append(paths.cache_path)
    for target in targets:
        if target.exists():
            try:
                shutil.rmtree(target)
            except OSError as e:
                click.echo(f"Error deleting {target}: {e}", err=True)
                raise SystemExit(1) from e
            click.echo(f"Removed {target}")
    click.echo("Cleaned.")
