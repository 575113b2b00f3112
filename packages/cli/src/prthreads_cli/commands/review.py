"""review command: manage who reviews a pull request and who approved it."""

from __future__ import annotations

import click
from rich.console import Console

from prthreads_cli.commands.common import parse_key, source_factory, summary_publisher
from prthreads_core.counter import on_review_write, record_review, request_review, withdraw_reviewer
from prthreads_core.errors import PRThreadsError
from prthreads_core.status import describe_status

console = Console()


@click.command("review")
@click.option("--repo", required=True, help="GitHub repository in owner/name format.")
@click.option("--pr", "pr_number", type=int, required=True, help="Pull request number.")
@click.option("--user", required=True, help="GitHub login of the reviewer.")
@click.option("--request", "change", flag_value="request", default=True, help="Add the user as a reviewer (default).")
@click.option("--approve", "change", flag_value="approve", help="Record the user's approval.")
@click.option("--unapprove", "change", flag_value="unapprove", help="Withdraw the user's approval.")
@click.option("--remove", "change", flag_value="remove", help="Remove the user from the reviewers.")
@click.pass_context
def review_cmd(ctx, repo: str, pr_number: int, user: str, change: str):
    """Add or remove a reviewer, or record their approval, and re-derive status."""
    store = ctx.obj["store"]
    key = parse_key(repo, pr_number)

    try:
        if change == "request":
            before, after = request_review(store, key, user)
        elif change == "remove":
            before, after = withdraw_reviewer(store, key, user)
        else:
            before, after = record_review(store, key, user, approved=change == "approve")

        publisher = None
        if ctx.obj["config"].get("post_summary", True):
            publisher = summary_publisher(ctx, source_factory(ctx)(key.owner, key.repo, None))
        new_status = on_review_write(
            store, publisher, key, before, after, base_url=ctx.obj["config"].get("base_url", "")
        )
    except PRThreadsError as e:
        raise click.ClickException(str(e)) from e

    state = store.get_review(key).state
    console.print(
        f"[green]✓[/green] {key}: reviewers {', '.join(state.reviewers) or 'none'}; "
        f"approved by {', '.join(state.approvers) or 'nobody'}"
    )
    if new_status is not None:
        console.print(f"Status is now {describe_status(new_status)}")
