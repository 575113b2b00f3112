from __future__ import annotations

import logging

from github import Auth, Github, GithubException

from prthreads_core.errors import DiffSourceUnavailable, PRThreadsError
from prthreads_core.models import ReviewMetadata
from prthreads_core.source import Ancestry, DiffSource, ReviewPublisher
from prthreads_core.summary import SUMMARY_MARKER

logger = logging.getLogger(__name__)


def get_repo(repo_name: str, token: str):
    return Github(auth=Auth.Token(token)).get_repo(repo_name)


def file_patch_header(file) -> str:
    """The ``---``/``+++`` header for one file of a compare response."""
    old_path = file.previous_filename or file.filename
    new_path = file.filename
    source = "/dev/null" if file.status == "added" else f"a/{old_path}"
    target = "/dev/null" if file.status == "removed" else f"b/{new_path}"
    return f"--- {source}\n+++ {target}\n"


def build_diff_text(files) -> str:
    """Reassemble unified diff text from the per-file patches of a comparison.

    Binary and oversized files come back without a patch; they are left out
    unless they were renamed, since a rename alone still moves threads.
    """
    parts = []
    for file in files:
        if not file.patch and file.status != "renamed":
            logger.debug("Skipping %s: no patch in compare response", file.filename)
            continue
        patch = file.patch or ""
        if patch and not patch.endswith("\n"):
            patch += "\n"
        parts.append(file_patch_header(file) + patch)
    return "".join(parts)


class GithubSource(DiffSource, ReviewPublisher):
    """DiffSource and summary publisher backed by one PyGithub repository."""

    def __init__(self, repo):
        self.repo = repo

    @property
    def owner(self) -> str:
        return self.repo.owner.login

    def fetch_diff(self, base_sha: str, head_sha: str) -> str:
        try:
            comparison = self.repo.compare(base_sha, head_sha)
            return build_diff_text(comparison.files)
        except GithubException as e:
            raise DiffSourceUnavailable(f"Could not diff {base_sha[:7]}..{head_sha[:7]}: {e}") from e

    def compare(self, base_sha: str, head_sha: str) -> Ancestry:
        try:
            comparison = self.repo.compare(base_sha, head_sha)
        except GithubException as e:
            raise DiffSourceUnavailable(f"Could not compare {base_sha[:7]}..{head_sha[:7]}: {e}") from e

        status = comparison.status
        if status == "behind":
            return Ancestry(status="behind", distance=comparison.behind_by)
        if status == "identical":
            return Ancestry(status="identical")
        if status == "diverged":
            return Ancestry(status="diverged", distance=comparison.ahead_by)
        return Ancestry(status="ahead", distance=comparison.ahead_by)

    def fetch_metadata(self, number: int) -> ReviewMetadata:
        try:
            pull = self.repo.get_pull(number)
            return ReviewMetadata.from_github(self.owner, self.repo.name, pull)
        except GithubException as e:
            raise DiffSourceUnavailable(f"Could not fetch pull request #{number}: {e}") from e

    def get_line_content(self, path: str, sha: str, line: int) -> str:
        try:
            contents = self.repo.get_contents(path, ref=sha)
        except GithubException as e:
            raise DiffSourceUnavailable(f"Could not read {path}@{sha[:7]}: {e}") from e

        lines = contents.decoded_content.decode("utf-8", errors="replace").splitlines()
        if 1 <= line <= len(lines):
            return lines[line - 1]
        return ""

    def post_or_update_review_summary(self, number: int, body: str, event: str | None = None) -> None:
        try:
            pull = self.repo.get_pull(number)
            existing = next((c for c in pull.get_issue_comments() if SUMMARY_MARKER in (c.body or "")), None)
            if existing is not None:
                existing.edit(body)
            else:
                pull.create_issue_comment(body)
            if event:
                pull.create_review(body=body, event=event)
        except GithubException as e:
            raise PRThreadsError(f"Could not publish summary to #{number}: {e}") from e
        logger.info("Published summary to %s#%d (event=%s)", self.repo.full_name, number, event)
