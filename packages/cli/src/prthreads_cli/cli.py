"""CLI entry point for prthreads.

Commands:
  sync    : reconcile thread positions of a pull request with GitHub
  status  : show a review's status and its threads
  comment : comment on a line of a pull request
  publish : send an author's draft comments
  review  : add or remove a reviewer, or record an approval
  recount : recount unresolved threads and repair the stored counter
  event   : process a saved GitHub webhook delivery
"""

from __future__ import annotations

import importlib.metadata
import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from prthreads_cli.commands.comment import comment_cmd, publish_cmd
from prthreads_cli.commands.event import event_cmd
from prthreads_cli.commands.recount import recount_cmd
from prthreads_cli.commands.review import review_cmd
from prthreads_cli.commands.status import status_cmd
from prthreads_cli.commands.sync import sync_cmd

console = Console()


def _build_store(config: dict):
    """Instantiate the configured store from .prthreads.yml settings.

      store: sqlite → SQLiteStore (store_path, default .prthreads.db)
      store: memory → MemoryStore (nothing survives the process)

    This factory lives in cli.py so neither prthreads_core nor
    prthreads_store know about the CLI config format.
    """
    if config.get("store") == "memory":
        from prthreads_store.memory import MemoryStore

        return MemoryStore()

    from prthreads_store.sqlite import SQLiteStore

    return SQLiteStore(db_path=config.get("store_path") or ".prthreads.db")


def _configure_logging(level: str) -> None:
    root = logging.getLogger()
    if not any(isinstance(h, RichHandler) for h in root.handlers):
        root.addHandler(RichHandler(console=Console(stderr=True), show_path=False))
    root.setLevel(level.upper())


@click.group()
@click.version_option(
    version=importlib.metadata.version("prthreads"),
    prog_name="prthreads",
)
@click.option(
    "--config",
    "config_path",
    default=".prthreads.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="PRTHREADS_CONFIG",
)
@click.option(
    "--store",
    type=click.Choice(["sqlite", "memory"]),
    default=None,
    help="Storage backend. Overrides config file.",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Logging verbosity. Overrides config file.",
)
@click.pass_context
def main(ctx: click.Context, config_path: str, store: str | None, log_level: str | None):
    """Line-anchored review threads that follow a pull request as it changes."""
    from prthreads_cli.auth import resolve_github_token
    from prthreads_core.config import load_config

    ctx.ensure_object(dict)

    try:
        config = load_config(config_path, cli_overrides={"store": store, "log_level": log_level})
    except ValueError as e:
        raise click.UsageError(str(e)) from e
    _configure_logging(config["log_level"])

    # Resolve token early so all subcommands share the same resolution.
    token = resolve_github_token()
    if token:
        config["github_token"] = token

    # A store already on the context object (tests, embedding callers) wins.
    review_store = ctx.obj.get("store") or _build_store(config)
    ctx.obj["store"] = review_store
    ctx.obj["config"] = config
    ctx.call_on_close(review_store.close)


main.add_command(sync_cmd)
main.add_command(status_cmd)
main.add_command(comment_cmd)
main.add_command(publish_cmd)
main.add_command(review_cmd)
main.add_command(recount_cmd)
main.add_command(event_cmd)
