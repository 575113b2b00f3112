"""Review status derivation.

``calculate_review_status`` is the single source of truth for the aggregate
status. It runs authoritatively inside the store's status transaction and
optimistically over a local snapshot (see :mod:`prthreads_core.views`).
"""

from __future__ import annotations

import logging
from dataclasses import replace

from prthreads_core.models import ReviewState, ReviewStatus

logger = logging.getLogger(__name__)

_STATUS_TEXT = {
    ReviewStatus.APPROVED: "Approved",
    ReviewStatus.CLOSED_MERGED: "Merged",
    ReviewStatus.CLOSED_UNMERGED: "Closed",
    ReviewStatus.NEEDS_REVIEW: "Needs Review",
    ReviewStatus.NEEDS_RESOLUTION: "Needs Resolution",
    ReviewStatus.NEEDS_APPROVAL: "Needs Approval",
}

_STATUS_EMOJI = {
    ReviewStatus.APPROVED: "✔️",
    ReviewStatus.CLOSED_MERGED: "🚀",
    ReviewStatus.CLOSED_UNMERGED: "🗑️",
    ReviewStatus.NEEDS_APPROVAL: "⏳",
    ReviewStatus.NEEDS_REVIEW: "⏳",
    ReviewStatus.NEEDS_RESOLUTION: "❌",
}


def stray_approvers(state: ReviewState) -> list[str]:
    """Approvers who are not listed as reviewers."""
    return [a for a in state.approvers if a not in state.reviewers]


def calculate_review_status(state: ReviewState) -> ReviewStatus:
    # Closed reviews keep whatever closure status the close handler recorded.
    if state.closed:
        return state.status

    stray = stray_approvers(state)
    if stray:
        logger.warning("Approvers %s are not reviewers of this review", ", ".join(stray))

    if not state.reviewers:
        return ReviewStatus.NEEDS_REVIEW
    if state.approvers:
        if state.unresolved > 0:
            return ReviewStatus.NEEDS_RESOLUTION
        return ReviewStatus.APPROVED
    return ReviewStatus.NEEDS_APPROVAL


def review_states_equal(a: ReviewState | None, b: ReviewState | None) -> bool:
    if a is None or b is None:
        return a is b
    return (
        a.status == b.status
        and a.closed == b.closed
        and a.unresolved == b.unresolved
        and set(a.reviewers) == set(b.reviewers)
        and set(a.approvers) == set(b.approvers)
    )


def review_event_for(status: ReviewStatus) -> str:
    """The platform review event that reflects ``status``."""
    return "APPROVE" if status == ReviewStatus.APPROVED else "REQUEST_CHANGES"


def status_text(status: ReviewStatus) -> str:
    return _STATUS_TEXT[status]


def status_emoji(status: ReviewStatus) -> str:
    return _STATUS_EMOJI[status]


def describe_status(status: ReviewStatus) -> str:
    return f"{status_emoji(status)} {status_text(status)}"


def _add(items: tuple[str, ...], login: str) -> tuple[str, ...]:
    return items if login in items else (*items, login)


def _remove(items: tuple[str, ...], login: str) -> tuple[str, ...]:
    return tuple(i for i in items if i != login)


def add_reviewer(state: ReviewState, login: str) -> ReviewState:
    return replace(state, reviewers=_add(state.reviewers, login))


def remove_reviewer(state: ReviewState, login: str) -> ReviewState:
    return replace(state, reviewers=_remove(state.reviewers, login))


def add_approver(state: ReviewState, login: str) -> ReviewState:
    return replace(state, approvers=_add(state.approvers, login))


def remove_approver(state: ReviewState, login: str) -> ReviewState:
    return replace(state, approvers=_remove(state.approvers, login))
