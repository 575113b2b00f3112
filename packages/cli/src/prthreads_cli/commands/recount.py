"""recount command: repair a drifted unresolved counter."""

from __future__ import annotations

import click
from rich.console import Console

from prthreads_cli.commands.common import parse_key
from prthreads_core.counter import recompute_status, recount_unresolved
from prthreads_core.errors import PRThreadsError
from prthreads_core.status import describe_status

console = Console()


@click.command("recount")
@click.option("--repo", required=True, help="GitHub repository in owner/name format.")
@click.option("--pr", "pr_number", type=int, default=None, help="Pull request number. Omit for every open review.")
@click.pass_context
def recount_cmd(ctx, repo: str, pr_number: int | None):
    """Recount unresolved threads from scratch and re-derive status.

    The counter is maintained incrementally; duplicated or lost events can
    make it drift. Run this to bring it back in line with the threads.
    """
    store = ctx.obj["store"]
    if pr_number is None:
        owner, _, name = repo.partition("/")
        keys = [r.key for r in store.list_reviews(owner, name, open_only=True)]
    else:
        keys = [parse_key(repo, pr_number)]

    for key in keys:
        try:
            stored, actual = recount_unresolved(store, key)
            before, after = recompute_status(store, key)
        except PRThreadsError as e:
            raise click.ClickException(str(e)) from e

        if stored == actual:
            console.print(f"[green]✓[/green] {key}: {actual} unresolved")
        else:
            console.print(f"[yellow]![/yellow] {key}: counter was {stored}, corrected to {actual}")
        if before.status != after.status:
            console.print(f"  status {describe_status(before.status)} → {describe_status(after.status)}")
