"""sync command: reconcile thread positions with the pull request on GitHub."""

from __future__ import annotations

import click
from rich.console import Console

from prthreads_cli.commands.common import parse_key, source_factory
from prthreads_core.errors import PRThreadsError
from prthreads_core.events import Channel, ThreadMoved, ThreadOutdated
from prthreads_core.models import Review
from prthreads_core.reconciler import reconcile_pull_request

console = Console()


@click.command("sync")
@click.option("--repo", required=True, help="GitHub repository in owner/name format.")
@click.option("--pr", "pr_number", type=int, required=True, help="Pull request number.")
@click.option("--force", is_flag=True, help="Re-examine every thread even if nothing moved.")
@click.pass_context
def sync_cmd(ctx, repo: str, pr_number: int, force: bool):
    """Move threads to follow new commits on a pull request.

    Starts tracking the pull request if it is not tracked yet.
    """
    store = ctx.obj["store"]
    key = parse_key(repo, pr_number)
    channel = Channel()

    try:
        source = source_factory(ctx)(key.owner, key.repo, None)
        if store.get_review(key) is None:
            store.save_review(Review(metadata=source.fetch_metadata(key.number)))
            console.print(f"Tracking [bold]{key}[/bold]")
        report = reconcile_pull_request(store, source, key, force=force, channel=channel)
    except PRThreadsError as e:
        raise click.ClickException(str(e)) from e

    if report.stale:
        console.print("[yellow]Stored pull request data is newer than GitHub's; nothing to do.[/yellow]")
        return

    for message in channel.drain():
        if isinstance(message, ThreadOutdated):
            before = message.before
            console.print(f"  [red]outdated[/red] {message.thread_id[:8]}  {before.file}:{before.line}")
        elif isinstance(message, ThreadMoved):
            before, after = message.before, message.after
            console.print(
                f"  [cyan]moved[/cyan]    {message.thread_id[:8]}  "
                f"{before.file}:{before.line} → {after.file}:{after.line}"
            )

    console.print(
        f"[green]✓[/green] {key}: {report.moved} moved, {report.outdated} outdated, "
        f"{report.unchanged} unchanged"
        + (f", [yellow]{report.conflicts} skipped (concurrent write)[/yellow]" if report.conflicts else "")
    )
