"""Helpers shared by the subcommands."""

from __future__ import annotations

import click

from prthreads_core.models import ReviewKey
from prthreads_core.source import ReviewPublisher


def parse_key(repo: str, pr_number: int) -> ReviewKey:
    """Turn ``--repo owner/name --pr N`` into a ReviewKey."""
    owner, sep, name = repo.partition("/")
    if not sep or not owner or not name or "/" in name:
        raise click.BadParameter(f"expected owner/name, got {repo!r}", param_hint="--repo")
    return ReviewKey(owner, name, pr_number)


def source_factory(ctx: click.Context):
    """The factory stored on the context (tests inject one), else one built from config."""
    factory = ctx.obj.get("source_factory")
    if factory is None:
        from prthreads_cli.auth import make_source_factory

        factory = make_source_factory(ctx.obj["config"])
        ctx.obj["source_factory"] = factory
    return factory


def summary_publisher(ctx: click.Context, source):
    """The source as a summary publisher, or None when posting summaries is off."""
    if not ctx.obj["config"].get("post_summary", True):
        return None
    return source if isinstance(source, ReviewPublisher) else None
