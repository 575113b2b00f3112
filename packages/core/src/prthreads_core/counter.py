"""Unresolved-thread counter and authoritative status recompute.

The counter is maintained incrementally: every change to whether a thread
counts as unresolved (non-draft and not resolved) issues one signed atomic
increment against its review. Status is then recomputed from the counter
inside the store's state transaction. The two steps are separate writes,
so a crash or a duplicated event between them can leave the counter out of
step with the threads; :func:`recount_unresolved` is the operator's sweep
that repairs it.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from typing import TYPE_CHECKING

from prthreads_core.errors import ReviewNotFound
from prthreads_core.events import CommentPosted, StatusChanged, publish
from prthreads_core.models import Comment, ReviewStatus, Thread
from prthreads_core.status import (
    add_approver,
    add_reviewer,
    calculate_review_status,
    remove_approver,
    remove_reviewer,
    review_event_for,
    review_states_equal,
)
from prthreads_core.summary import build_review_comment
from prthreads_core.views import thread_at

if TYPE_CHECKING:
    from prthreads_core.events import Channel
    from prthreads_core.models import ReviewKey, ReviewState, ThreadArgs
    from prthreads_core.source import ReviewPublisher
    from prthreads_store.base import BaseStore

logger = logging.getLogger(__name__)


def counts_as_unresolved(thread: Thread | None) -> bool:
    return thread is not None and not thread.draft and not thread.resolved


def on_thread_write(store: BaseStore, key: ReviewKey, before: Thread | None, after: Thread) -> int:
    """Apply the counter change implied by one thread write; returns the delta."""
    delta = int(counts_as_unresolved(after)) - int(counts_as_unresolved(before))
    if delta:
        logger.info("Incrementing unresolved count of %s by %d", key, delta)
        store.increment_unresolved(key, delta)
    return delta


def recompute_status(
    store: BaseStore, key: ReviewKey, channel: Channel | None = None
) -> tuple[ReviewState, ReviewState]:
    """Transactionally derive ``status`` from the stored reviewers, approvers and counter."""

    def _apply(state: ReviewState) -> ReviewState:
        return replace(state, status=calculate_review_status(state))

    before, after = store.update_state(key, _apply)
    if before.status != after.status:
        logger.info("Status of %s: %s -> %s", key, before.status.value, after.status.value)
        publish(channel, StatusChanged(key=key, before=before.status, after=after.status))
    return before, after


def publish_summary(
    store: BaseStore,
    publisher: ReviewPublisher,
    key: ReviewKey,
    state: ReviewState,
    event: str | None = None,
    base_url: str = "",
) -> None:
    review = store.get_review(key)
    if review is None:
        raise ReviewNotFound(key)
    body = build_review_comment(review.metadata, state, store.list_threads(key), base_url=base_url)
    publisher.post_or_update_review_summary(key.number, body, event)


def on_review_write(
    store: BaseStore,
    publisher: ReviewPublisher | None,
    key: ReviewKey,
    before: ReviewState | None,
    after: ReviewState,
    new_comment: bool = False,
    base_url: str = "",
    channel: Channel | None = None,
) -> ReviewStatus | None:
    """React to a review state write.

    Recomputes the status when the state changed, and posts or updates the
    platform summary when the status changed or a non-draft comment arrived.
    Returns the new status when it changed.
    """
    if review_states_equal(before, after) and not new_comment:
        return None

    _, recomputed = recompute_status(store, key, channel=channel)
    changed = recomputed.status != after.status
    if publisher is None or not (changed or new_comment):
        return recomputed.status if changed else None

    event = review_event_for(recomputed.status) if changed and not recomputed.closed else None
    publish_summary(store, publisher, key, recomputed, event=event, base_url=base_url)
    return recomputed.status if changed else None


def close_review(store: BaseStore, key: ReviewKey, merged: bool) -> tuple[ReviewState, ReviewState]:
    status = ReviewStatus.CLOSED_MERGED if merged else ReviewStatus.CLOSED_UNMERGED
    logger.info("Closing %s as %s", key, status.value)
    return store.update_state(key, lambda state: replace(state, closed=True, status=status))


def reopen_review(store: BaseStore, key: ReviewKey) -> tuple[ReviewState, ReviewState]:
    """Reopen a closed review and derive its status again in the same transaction."""

    def _apply(state: ReviewState) -> ReviewState:
        reopened = replace(state, closed=False)
        return replace(reopened, status=calculate_review_status(reopened))

    logger.info("Reopening %s", key)
    return store.update_state(key, _apply)


def request_review(store: BaseStore, key: ReviewKey, login: str) -> tuple[ReviewState, ReviewState]:
    logger.info("Requesting review of %s from %s", key, login)
    return store.update_state(key, lambda state: add_reviewer(state, login))


def record_review(
    store: BaseStore, key: ReviewKey, login: str, approved: bool
) -> tuple[ReviewState, ReviewState]:
    """Record a submitted review by ``login``.

    The reviewer joins the reviewers. An approval adds them to the approvers;
    any other verdict withdraws an approval they gave earlier.
    """

    def _apply(state: ReviewState) -> ReviewState:
        state = add_reviewer(state, login)
        return add_approver(state, login) if approved else remove_approver(state, login)

    logger.info("%s %s %s", login, "approved" if approved else "reviewed", key)
    return store.update_state(key, _apply)


def withdraw_reviewer(store: BaseStore, key: ReviewKey, login: str) -> tuple[ReviewState, ReviewState]:
    """Remove ``login`` from the reviewers, together with any approval."""
    logger.info("Removing reviewer %s from %s", login, key)
    return store.update_state(key, lambda state: remove_approver(remove_reviewer(state, login), login))


def add_comment(
    store: BaseStore,
    key: ReviewKey,
    username: str,
    args: ThreadArgs,
    text: str,
    timestamp: int,
    draft: bool = True,
    resolve: bool | None = None,
    channel: Channel | None = None,
) -> tuple[Thread, Comment]:
    """Comment on a line, starting a thread there unless one already exists.

    ``resolve`` stages the thread's resolution; it takes effect when the
    author's drafts are published.
    """
    existing = thread_at(store.list_threads(key), args.file, args.sha, args.line)
    if existing is None:
        thread = Thread.create(id=str(uuid.uuid4()), username=username, args=args, draft=draft)
        thread = store.create_thread(key, thread)
        on_thread_write(store, key, None, thread)
    else:
        thread = existing

    if resolve is not None:
        staged = replace(thread, pending_resolved=resolve)
        if not draft:
            staged = replace(staged, resolved=resolve)
        saved = store.save_thread(key, staged)
        on_thread_write(store, key, thread, saved)
        thread = saved

    comment = Comment(
        id=str(uuid.uuid4()),
        thread_id=thread.id,
        username=username,
        text=text,
        timestamp=timestamp,
        draft=draft,
    )
    store.save_comment(key, comment)
    if not draft:
        store.update_state(key, lambda state: replace(state, last_comment=max(state.last_comment, timestamp)))
        publish(channel, CommentPosted(key=key, thread_id=thread.id, comment_id=comment.id))
    return thread, comment


def publish_drafts(
    store: BaseStore, key: ReviewKey, author: str, timestamp: int, channel: Channel | None = None
) -> int:
    """Send every draft comment of ``author``.

    Threads they started stop being drafts and take their staged resolution;
    each resulting resolved toggle moves the counter. Returns the number of
    comments sent.
    """
    comments = [c for c in store.list_comments(key) if c.draft and c.username == author]
    thread_ids = {c.thread_id for c in comments}

    for thread in store.list_threads(key):
        if thread.id not in thread_ids and not (thread.draft and thread.username == author):
            continue
        resolved = thread.resolved if thread.pending_resolved is None else thread.pending_resolved
        sent = replace(thread, draft=False, resolved=resolved)
        if sent == thread:
            continue
        saved = store.save_thread(key, sent)
        on_thread_write(store, key, thread, saved)

    for comment in comments:
        store.save_comment(key, replace(comment, draft=False))
        publish(channel, CommentPosted(key=key, thread_id=comment.thread_id, comment_id=comment.id))

    if comments:
        store.update_state(key, lambda state: replace(state, last_comment=max(state.last_comment, timestamp)))
    logger.info("Published %d draft comment(s) by %s on %s", len(comments), author, key)
    return len(comments)


def recount_unresolved(store: BaseStore, key: ReviewKey) -> tuple[int, int]:
    """Recount unresolved threads from scratch and correct the stored counter.

    Returns ``(stored, actual)``. Never called implicitly.
    """
    actual = sum(1 for t in store.list_threads(key) if counts_as_unresolved(t))

    before, _ = store.update_state(key, lambda state: replace(state, unresolved=actual))
    stored = before.unresolved
    if stored != actual:
        logger.warning("Unresolved count of %s had drifted: stored %d, actual %d", key, stored, actual)
    return stored, actual
