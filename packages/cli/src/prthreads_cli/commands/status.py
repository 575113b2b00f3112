"""status command: show a review's status and its threads."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

from prthreads_cli.commands.common import parse_key
from prthreads_core.status import describe_status
from prthreads_core.views import ReviewSnapshot, comments_for_thread, estimate_status, threads_by_file

console = Console()


def _list_reviews(store, repo: str) -> None:
    owner, _, name = repo.partition("/")
    reviews = store.list_reviews(owner, name)
    if not reviews:
        console.print("[yellow]No tracked pull requests.[/yellow]")
        return

    table = Table(title=f"Reviews for {repo}", show_header=True, header_style="bold cyan")
    table.add_column("PR", style="bold", width=6)
    table.add_column("Title", max_width=40)
    table.add_column("Author")
    table.add_column("Status")
    table.add_column("Unresolved", justify="right")
    for review in reviews:
        table.add_row(
            f"#{review.metadata.number}",
            review.metadata.title[:40],
            review.metadata.author,
            describe_status(review.state.status),
            str(review.state.unresolved),
        )
    console.print(table)


@click.command("status")
@click.option("--repo", required=True, help="GitHub repository in owner/name format.")
@click.option("--pr", "pr_number", type=int, default=None, help="Pull request number. Omit to list all.")
@click.option("--drafts/--no-drafts", default=False, help="Include draft threads.")
@click.pass_context
def status_cmd(ctx, repo: str, pr_number: int | None, drafts: bool):
    """Show the stored status of a review and where its threads sit."""
    store = ctx.obj["store"]
    if pr_number is None:
        _list_reviews(store, repo)
        return

    key = parse_key(repo, pr_number)
    snapshot = ReviewSnapshot.load(store, key)
    if snapshot is None:
        raise click.ClickException(f"No such review: {key}. Run `prthreads sync` first.")

    state = snapshot.review.state
    console.print(f"[bold]{key}[/bold] {snapshot.review.metadata.title}")
    console.print(f"Status: {describe_status(state.status)}  (unresolved: {state.unresolved})")
    estimate = estimate_status(snapshot)
    if estimate != state.status:
        console.print(f"[yellow]Threads suggest {describe_status(estimate)}; run `prthreads recount`.[/yellow]")
    if state.reviewers:
        approved = ", ".join(f"[green]{r}[/green]" if r in state.approvers else r for r in state.reviewers)
        console.print(f"Reviewers: {approved}")

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Thread", width=8)
    table.add_column("File")
    table.add_column("Line", justify="right")
    table.add_column("Side")
    table.add_column("State")
    table.add_column("Comments", justify="right")

    for path, threads in threads_by_file(snapshot).items():
        for thread in threads:
            if thread.draft and not drafts:
                continue
            args = thread.current_args
            if thread.draft:
                label = "[dim]draft[/dim]"
            elif thread.resolved:
                label = "[green]resolved[/green]"
            else:
                label = "[red]unresolved[/red]"
            table.add_row(
                thread.id[:8],
                path,
                "outdated" if args.is_outdated else str(args.line),
                args.side,
                label,
                str(len(comments_for_thread(snapshot, thread.id))),
            )

    console.print(table)
