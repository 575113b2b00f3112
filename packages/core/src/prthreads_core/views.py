"""Pure views over an immutable snapshot of one review.

A :class:`ReviewSnapshot` is what a reader (the CLI, a UI) holds: the
review plus its threads and comments at one instant. Every function here
derives something from a snapshot or returns a new one; nothing mutates.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

from prthreads_core.status import calculate_review_status

if TYPE_CHECKING:
    from prthreads_core.models import Comment, Review, ReviewStatus, Thread
    from prthreads_store.base import BaseStore


@dataclass(frozen=True)
class ReviewSnapshot:
    review: Review
    threads: tuple[Thread, ...] = ()
    comments: tuple[Comment, ...] = ()

    @classmethod
    def load(cls, store: BaseStore, key) -> ReviewSnapshot | None:
        review = store.get_review(key)
        if review is None:
            return None
        return cls(review=review, threads=tuple(store.list_threads(key)), comments=tuple(store.list_comments(key)))


def drafts(snapshot: ReviewSnapshot, username: str | None = None) -> list[Comment]:
    return [c for c in snapshot.comments if c.draft and (username is None or c.username == username)]


def comments_for_thread(snapshot: ReviewSnapshot, thread_id: str) -> list[Comment]:
    return sorted((c for c in snapshot.comments if c.thread_id == thread_id), key=lambda c: c.timestamp)


def thread_by_id(snapshot: ReviewSnapshot, thread_id: str) -> Thread | None:
    return next((t for t in snapshot.threads if t.id == thread_id), None)


def thread_at(threads, file: str, sha: str, line: int) -> Thread | None:
    """The thread currently anchored at ``file:line`` of ``sha``, if any."""
    for thread in threads:
        args = thread.current_args
        if args.file == file and args.sha == sha and args.line == line:
            return thread
    return None


def threads_by_file(snapshot: ReviewSnapshot) -> dict[str, list[Thread]]:
    grouped: dict[str, list[Thread]] = {}
    for thread in snapshot.threads:
        grouped.setdefault(thread.current_args.file, []).append(thread)
    return grouped


def estimate_status(snapshot: ReviewSnapshot) -> ReviewStatus:
    """Optimistic status from the local thread list rather than the stored counter.

    Only for display until the authoritative recompute lands; never written back.
    """
    unresolved = sum(1 for t in snapshot.threads if not t.draft and not t.resolved)
    return calculate_review_status(replace(snapshot.review.state, unresolved=unresolved))


def with_drafts_sent(snapshot: ReviewSnapshot, username: str | None = None) -> ReviewSnapshot:
    """The snapshot as it will look once drafts are published."""
    pending = drafts(snapshot, username)
    thread_ids = {c.thread_id for c in pending}
    sent_threads = []
    for thread in snapshot.threads:
        if thread.id in thread_ids or (thread.draft and (username is None or thread.username == username)):
            resolved = thread.resolved if thread.pending_resolved is None else thread.pending_resolved
            thread = replace(thread, draft=False, resolved=resolved)
        sent_threads.append(thread)

    sent_ids = {c.id for c in pending}
    sent_comments = [replace(c, draft=False) if c.id in sent_ids else c for c in snapshot.comments]
    return replace(snapshot, threads=tuple(sent_threads), comments=tuple(sent_comments))
