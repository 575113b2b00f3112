"""Markdown summary of a review, posted to the pull request."""

from __future__ import annotations

from typing import TYPE_CHECKING

from prthreads_core.models import ReviewStatus
from prthreads_core.status import describe_status, status_emoji

if TYPE_CHECKING:
    from prthreads_core.models import ReviewMetadata, ReviewState, Thread

SUMMARY_MARKER = "<!-- prthreads-summary -->"


def review_url(metadata: ReviewMetadata, base_url: str = "") -> str:
    return f"{base_url.rstrip('/')}/pr/{metadata.owner}/{metadata.repo}/{metadata.number}"


def reviewers_table(state: ReviewState) -> str:
    if not state.reviewers and not state.approvers:
        return "None"

    rows = ["| User | Status |", "|---|---|"]
    for login in state.approvers:
        rows.append(f"| @{login} | {status_emoji(ReviewStatus.APPROVED)} Approved |")
    for login in state.reviewers:
        if login not in state.approvers:
            rows.append(f"| @{login} | {status_emoji(ReviewStatus.NEEDS_APPROVAL)} Pending |")
    return "\n".join(rows)


def threads_table(threads: list[Thread]) -> str:
    """Per-file comment and unresolved counts over sent threads, in first-seen file order."""
    sent = [t for t in threads if not t.draft]
    if not sent:
        return "None"

    files: dict[str, list[int]] = {}
    for thread in sent:
        totals = files.setdefault(thread.current_args.file, [0, 0])
        totals[0] += 1
        if not thread.resolved:
            totals[1] += 1

    rows = ["| File | # Comments | # Unresolved |", "|---|---|---|"]
    for path, (total, unresolved) in files.items():
        rows.append(f"| `{path}` | {total} | {unresolved} |")
    return "\n".join(rows)


def build_review_comment(
    metadata: ReviewMetadata, state: ReviewState, threads: list[Thread], base_url: str = ""
) -> str:
    return "\n".join(
        [
            SUMMARY_MARKER,
            "#### Status",
            f"[{describe_status(state.status)}]({review_url(metadata, base_url)})",
            "",
            "#### Reviewers",
            reviewers_table(state),
            "",
            "#### Comments",
            threads_table(threads),
        ]
    )
