"""Messages emitted by the reconciler and the status engine.

Producers publish onto a :class:`Channel`; consumers (the CLI, a
notification dispatcher) drain it. Each event type has its own message
class so a consumer can match on type rather than on a string name.
"""

from __future__ import annotations

import queue
from dataclasses import dataclass

from prthreads_core.models import ReviewKey, ReviewStatus, ThreadArgs


@dataclass(frozen=True)
class ThreadMoved:
    key: ReviewKey
    thread_id: str
    before: ThreadArgs
    after: ThreadArgs


@dataclass(frozen=True)
class ThreadOutdated:
    key: ReviewKey
    thread_id: str
    before: ThreadArgs


@dataclass(frozen=True)
class StatusChanged:
    key: ReviewKey
    before: ReviewStatus
    after: ReviewStatus


@dataclass(frozen=True)
class CommentPosted:
    key: ReviewKey
    thread_id: str
    comment_id: str


class Channel:
    """Thread-safe FIFO of event messages."""

    def __init__(self):
        self._queue: queue.Queue = queue.Queue()

    def publish(self, message) -> None:
        self._queue.put(message)

    def drain(self) -> list:
        """Remove and return every message published so far, oldest first."""
        messages = []
        while True:
            try:
                messages.append(self._queue.get_nowait())
            except queue.Empty:
                return messages


def publish(channel: Channel | None, message) -> None:
    if channel is not None:
        channel.publish(message)
