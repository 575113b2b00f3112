"""GitHub credential resolution with gh CLI fallback.

Two ways to talk to GitHub:
- A personal token. Resolution order (stops at first success):
    1. GITHUB_TOKEN environment variable (CI / explicit override)
    2. `gh auth token` (GitHub CLI session, works after `gh auth login`)
- A GitHub App (PRTHREADS_APP_ID plus a private key). Webhook deliveries
  carry an installation id, and each installation gets its own short-lived
  token minted on demand.
"""

from __future__ import annotations

import logging
import os
import subprocess

import click

from prthreads_core.config import load_private_key
from prthreads_core.credentials import CredentialStore, app_installation_refresher, static_credential
from prthreads_core.gh.pull_request import GithubSource, get_repo

logger = logging.getLogger(__name__)


def resolve_github_token() -> str | None:
    """Return a GitHub token or None if no valid source is available.

    Never raises; callers should check for None and emit a UsageError.
    """
    token = os.environ.get("GITHUB_TOKEN")
    if token:
        return token

    try:
        result = subprocess.run(
            ["gh", "auth", "token"],
            capture_output=True,
            text=True,
            timeout=5,
        )
        if result.returncode == 0:
            gh_token = result.stdout.strip()
            if gh_token:
                logger.debug("Resolved GitHub token via gh CLI session.")
                return gh_token
    except (FileNotFoundError, subprocess.TimeoutExpired):
        # gh is not installed or timed out; fall through.
        pass

    return None


def build_credentials(config: dict) -> tuple[CredentialStore | None, CredentialStore | None]:
    """Return ``(app_credentials, token_credentials)``; either may be None."""
    app_store = None
    private_key = load_private_key(config)
    if config.get("app_id") and private_key:
        app_store = CredentialStore(app_installation_refresher(config["app_id"], private_key))

    token_store = None
    if config.get("github_token"):
        token_store = CredentialStore(static_credential(config["github_token"]))

    return app_store, token_store


def make_source_factory(config: dict):
    """Build the ``(owner, repo, installation_id) -> GithubSource`` factory used by the commands."""
    app_store, token_store = build_credentials(config)

    def _factory(owner: str, repo: str, installation_id: int | None = None) -> GithubSource:
        if installation_id is not None and app_store is not None:
            credential = app_store.get(installation_id)
        elif token_store is not None:
            credential = token_store.get(0)
        else:
            raise click.UsageError("No GitHub credentials configured. Set GITHUB_TOKEN or run `gh auth login` first.")
        return GithubSource(get_repo(f"{owner}/{repo}", credential.token))

    return _factory
