"""comment / publish commands: write review threads."""

from __future__ import annotations

import time

import click
from rich.console import Console

from prthreads_cli.commands.common import parse_key, source_factory, summary_publisher
from prthreads_core.counter import add_comment, on_review_write, publish_drafts
from prthreads_core.errors import PRThreadsError, ReviewNotFound
from prthreads_core.models import ThreadArgs
from prthreads_core.status import describe_status

console = Console()


def _now_millis() -> int:
    return int(time.time() * 1000)


def _after_send(ctx, store, source, key, before) -> None:
    """Recompute status after comments went out and mirror it to GitHub."""
    after = store.get_review(key).state
    new_status = on_review_write(
        store,
        summary_publisher(ctx, source),
        key,
        before,
        after,
        new_comment=True,
        base_url=ctx.obj["config"].get("base_url", ""),
    )
    if new_status is not None:
        console.print(f"Status is now {describe_status(new_status)}")


@click.command("comment")
@click.option("--repo", required=True, help="GitHub repository in owner/name format.")
@click.option("--pr", "pr_number", type=int, required=True, help="Pull request number.")
@click.option("--author", required=True, help="GitHub login of the commenter.")
@click.option("--file", "path", required=True, help="File path the comment is anchored to.")
@click.option("--line", type=int, required=True, help="1-based line number.")
@click.option(
    "--side",
    type=click.Choice(["left", "right"]),
    default="right",
    show_default=True,
    help="right = the pull request's head, left = its base.",
)
@click.option("--text", required=True, help="Comment body (Markdown).")
@click.option("--resolve/--unresolve", default=None, help="Mark the thread resolved or unresolved.")
@click.option("--send", is_flag=True, help="Send immediately instead of saving a draft.")
@click.pass_context
def comment_cmd(ctx, repo, pr_number, author, path, line, side, text, resolve, send):
    """Comment on a line of a pull request, starting a thread if needed."""
    store = ctx.obj["store"]
    key = parse_key(repo, pr_number)

    try:
        review = store.get_review(key)
        if review is None:
            raise ReviewNotFound(key)
        metadata = review.metadata
        sha = metadata.head.sha if side == "right" else metadata.base.sha
        source = source_factory(ctx)(key.owner, key.repo, None)
        args = ThreadArgs(
            file=path,
            sha=sha,
            line=line,
            side=side,
            line_content=source.get_line_content(path, sha, line),
        )
        thread, _ = add_comment(
            store, key, author, args, text, _now_millis(), draft=not send, resolve=resolve
        )
        if send:
            _after_send(ctx, store, source, key, review.state)
    except PRThreadsError as e:
        raise click.ClickException(str(e)) from e

    kind = "Sent" if send else "Saved draft"
    console.print(f"[green]✓[/green] {kind} on {path}:{line} (thread {thread.id[:8]})")


@click.command("publish")
@click.option("--repo", required=True, help="GitHub repository in owner/name format.")
@click.option("--pr", "pr_number", type=int, required=True, help="Pull request number.")
@click.option("--author", required=True, help="GitHub login whose drafts are sent.")
@click.pass_context
def publish_cmd(ctx, repo, pr_number, author):
    """Send every draft comment an author has on a pull request."""
    store = ctx.obj["store"]
    key = parse_key(repo, pr_number)

    try:
        review = store.get_review(key)
        if review is None:
            raise ReviewNotFound(key)
        sent = publish_drafts(store, key, author, _now_millis())
        if sent:
            source = source_factory(ctx)(key.owner, key.repo, None)
            _after_send(ctx, store, source, key, review.state)
    except PRThreadsError as e:
        raise click.ClickException(str(e)) from e

    if not sent:
        console.print("[yellow]No drafts to send.[/yellow]")
        return
    console.print(f"[green]✓[/green] Sent {sent} comment(s)")
