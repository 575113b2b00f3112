"""Abstract store interface.

Any storage backend (SQLite, in-memory, a document database) implements
this interface. prthreads_core is written against these operations only, so
backends are swappable without touching the reconciler or the status engine.

Logical layout: one review (metadata + state) per pull request, keyed by
repository and number; many threads per review; many comments per thread.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import replace
from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    from prthreads_core.models import Comment, Review, ReviewKey, ReviewMetadata, ReviewState, Thread, ThreadArgs


class BaseStore(ABC):
    """Pluggable persistence layer for reviews, threads and comments.

    Two pieces of state are contended: a review's ``unresolved`` counter and
    its ``status``. The counter only ever moves through
    :meth:`increment_unresolved`; the status only through :meth:`update_state`.
    Thread writes are compare-and-set on ``Thread.version``.
    """

    # ------------------------------------------------------------------ #
    # Reviews                                                              #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def save_review(self, review: Review) -> None:
        """Create or overwrite a review."""

    @abstractmethod
    def get_review(self, key: ReviewKey) -> Review | None:
        """Return the review, or None when it does not exist."""

    @abstractmethod
    def list_reviews(
        self, owner: str, repo: str, base_label: str | None = None, open_only: bool = False
    ) -> list[Review]:
        """Return reviews of a repository, optionally filtered by base label and open state."""

    @abstractmethod
    def update_metadata(self, metadata: ReviewMetadata) -> bool:
        """Replace a review's metadata wholesale.

        Returns False without writing when the stored metadata has a later
        ``updated_at`` than ``metadata``. Raises ReviewNotFound when missing.
        """

    @abstractmethod
    def update_state(
        self, key: ReviewKey, fn: Callable[[ReviewState], ReviewState]
    ) -> tuple[ReviewState, ReviewState]:
        """Transactionally read the state, apply ``fn`` and write the result.

        Returns ``(before, after)``. Raises ReviewNotFound when missing.
        """

    @abstractmethod
    def increment_unresolved(self, key: ReviewKey, delta: int) -> None:
        """Atomically add ``delta`` to the review's unresolved counter."""

    # ------------------------------------------------------------------ #
    # Threads                                                              #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def create_thread(self, key: ReviewKey, thread: Thread) -> Thread:
        """Insert a new thread and return it as stored."""

    @abstractmethod
    def get_thread(self, key: ReviewKey, thread_id: str) -> Thread | None:
        """Return one thread, or None."""

    @abstractmethod
    def list_threads(self, key: ReviewKey) -> list[Thread]:
        """Return every thread of a review."""

    @abstractmethod
    def save_thread(self, key: ReviewKey, thread: Thread) -> Thread:
        """Overwrite a thread's flags and position if its version is unchanged.

        ``original_args`` is never rewritten. Returns the stored thread with
        its version bumped; raises StaleThreadWrite when another writer got
        there first.
        """

    def update_thread_position(self, key: ReviewKey, thread: Thread, args: ThreadArgs) -> Thread:
        """Compare-and-set a thread's ``current_args``."""
        return self.save_thread(key, replace(thread, current_args=args))

    # ------------------------------------------------------------------ #
    # Comments                                                             #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def save_comment(self, key: ReviewKey, comment: Comment) -> None:
        """Create or overwrite a comment."""

    @abstractmethod
    def list_comments(self, key: ReviewKey, thread_id: str | None = None) -> list[Comment]:
        """Return comments of a review (optionally one thread) in timestamp order."""

    def close(self) -> None:
        """Release any resources held by the store (connections, file handles).

        Optional: subclasses that need cleanup should override this.
        Default is a no-op so callers can always call close() safely.
        """
