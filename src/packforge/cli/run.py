"""Run commands for the packforge CLI.

Commands:
- run: Run a profile once
- watch: Run a profile, then re-run it whenever a source tree changes
"""

from __future__ import annotations

import logging

import click

from packforge.build.cache import ContentHashCache
from packforge.build.context import InterruptionSignal, RunContext
from packforge.build.runner import ProfileRunner
from packforge.cli.config import fail, get_paths, load_project_or_exit
from packforge.core.errors import PackforgeError

logger = logging.getLogger(__name__)


@click.command()
@click.argument("profile", default="default")
@click.pass_context
def run(ctx: click.Context, profile: str) -> None:
    """Run PROFILE once and export the result."""
    paths = get_paths(ctx)
    project = load_project_or_exit(paths)
    context = RunContext(project=project, profile_name=profile, dot_path=paths.dot_path)

    with ContentHashCache(paths.hash_db_path) as cache:
        try:
            ProfileRunner(context, cache, recycled=False).run()
        except PackforgeError as e:
            fail(e)
    click.echo(f"Profile \"{profile}\" finished.")


@click.command()
@click.argument("profile", default="default")
@click.pass_context
def watch(ctx: click.Context, profile: str) -> None:
    """Run PROFILE and re-run it when the project sources change.

    Unchanged files are not copied again between runs. Press Ctrl+C to stop.
    """
    from packforge.build.watcher import ProjectWatcher

    paths = get_paths(ctx)
    project = load_project_or_exit(paths)
    signal = InterruptionSignal()
    context = RunContext(
        project=project,
        profile_name=profile,
        dot_path=paths.dot_path,
        interruption=signal,
    )

    with ContentHashCache(paths.hash_db_path) as cache, ProjectWatcher(project, signal):
        try:
            while True:
                try:
                    stats = ProfileRunner(context, cache, recycled=True).run()
                    click.echo(
                        f"Profile \"{profile}\" finished ({stats.copied_files} file(s) copied)."
                    )
                except PackforgeError as e:
                    click.echo(f"Error [{e.kind.value}]: {e}", err=True)
                click.echo("Watching for changes...")
                signal.wait()
                # The restart itself answers this change
                signal.is_interrupted()
        except KeyboardInterrupt:
            click.echo("\nStopped watching.")
