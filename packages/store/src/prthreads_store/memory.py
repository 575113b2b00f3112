"""In-memory store, selected with `store: memory`.

Holds everything in process dictionaries behind one lock, so it is safe to
share between threads. Useful for tests, for one-shot CLI runs and as the
reference implementation of BaseStore's concurrency contract.
"""

from __future__ import annotations

import threading
from dataclasses import replace
from typing import TYPE_CHECKING, Callable

from prthreads_core.errors import ReviewNotFound, StaleThreadWrite
from prthreads_store.base import BaseStore

if TYPE_CHECKING:
    from prthreads_core.models import Comment, Review, ReviewKey, ReviewMetadata, ReviewState, Thread


class MemoryStore(BaseStore):
    """Keeps reviews, threads and comments in dictionaries keyed by ReviewKey."""

    def __init__(self):
        self._lock = threading.RLock()
        self._reviews: dict[ReviewKey, Review] = {}
        self._threads: dict[ReviewKey, dict[str, Thread]] = {}
        self._comments: dict[ReviewKey, dict[str, Comment]] = {}

    def _require(self, key: ReviewKey) -> Review:
        review = self._reviews.get(key)
        if review is None:
            raise ReviewNotFound(key)
        return review

    def save_review(self, review: Review) -> None:
        with self._lock:
            self._reviews[review.key] = review

    def get_review(self, key: ReviewKey) -> Review | None:
        with self._lock:
            return self._reviews.get(key)

    def list_reviews(
        self, owner: str, repo: str, base_label: str | None = None, open_only: bool = False
    ) -> list[Review]:
        with self._lock:
            reviews = [r for r in self._reviews.values() if r.metadata.owner == owner and r.metadata.repo == repo]
        if base_label is not None:
            reviews = [r for r in reviews if r.metadata.base.label == base_label]
        if open_only:
            reviews = [r for r in reviews if not r.state.closed]
        return sorted(reviews, key=lambda r: r.metadata.number)

    def update_metadata(self, metadata: ReviewMetadata) -> bool:
        with self._lock:
            review = self._require(metadata.key)
            if review.metadata.updated_at > metadata.updated_at:
                return False
            self._reviews[metadata.key] = replace(review, metadata=metadata)
            return True

    def update_state(
        self, key: ReviewKey, fn: Callable[[ReviewState], ReviewState]
    ) -> tuple[ReviewState, ReviewState]:
        with self._lock:
            review = self._require(key)
            after = fn(review.state)
            self._reviews[key] = replace(review, state=after)
            return review.state, after

    def increment_unresolved(self, key: ReviewKey, delta: int) -> None:
        with self._lock:
            review = self._require(key)
            state = replace(review.state, unresolved=review.state.unresolved + delta)
            self._reviews[key] = replace(review, state=state)

    def create_thread(self, key: ReviewKey, thread: Thread) -> Thread:
        with self._lock:
            self._require(key)
            self._threads.setdefault(key, {})[thread.id] = thread
            return thread

    def get_thread(self, key: ReviewKey, thread_id: str) -> Thread | None:
        with self._lock:
            return self._threads.get(key, {}).get(thread_id)

    def list_threads(self, key: ReviewKey) -> list[Thread]:
        with self._lock:
            return list(self._threads.get(key, {}).values())

    def save_thread(self, key: ReviewKey, thread: Thread) -> Thread:
        with self._lock:
            stored = self._threads.get(key, {}).get(thread.id)
            if stored is None or stored.version != thread.version:
                raise StaleThreadWrite(thread.id, thread.version)
            saved = replace(thread, original_args=stored.original_args, version=stored.version + 1)
            self._threads[key][thread.id] = saved
            return saved

    def save_comment(self, key: ReviewKey, comment: Comment) -> None:
        with self._lock:
            self._require(key)
            self._comments.setdefault(key, {})[comment.id] = comment

    def list_comments(self, key: ReviewKey, thread_id: str | None = None) -> list[Comment]:
        with self._lock:
            comments = list(self._comments.get(key, {}).values())
        if thread_id is not None:
            comments = [c for c in comments if c.thread_id == thread_id]
        return sorted(comments, key=lambda c: c.timestamp)
