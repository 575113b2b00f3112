"""event command: process a saved GitHub webhook delivery."""

from __future__ import annotations

import json

import click
from rich.console import Console

from prthreads_cli.commands.common import source_factory
from prthreads_core.errors import PRThreadsError
from prthreads_core.webhooks import handle_event

console = Console()


@click.command("event")
@click.argument("name")
@click.argument("payload", type=click.File("r"))
@click.pass_context
def event_cmd(ctx, name: str, payload):
    """Handle webhook event NAME with the JSON body in PAYLOAD ("-" for stdin).

    NAME is the X-GitHub-Event header value, e.g. pull_request or push.
    """
    try:
        body = json.load(payload)
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"not valid JSON: {e}", param_hint="PAYLOAD") from e

    config = ctx.obj["config"]
    try:
        reports = handle_event(
            name,
            body,
            ctx.obj["store"],
            source_factory(ctx),
            base_url=config.get("base_url", ""),
            post_summary=config.get("post_summary", True),
        )
    except PRThreadsError as e:
        raise click.ClickException(str(e)) from e

    for report in reports:
        if report.stale:
            console.print(f"[yellow]{report.key}: skipped, stored data is newer[/yellow]")
        else:
            console.print(f"[green]✓[/green] {report.key}: {report.moved} moved, {report.outdated} outdated")
    if not reports:
        console.print(f"[green]✓[/green] Handled {name}")
