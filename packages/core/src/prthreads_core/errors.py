"""Exception hierarchy shared by every prthreads package.

Nothing in the core retries: errors propagate to whoever handled the
triggering event (the CLI or a webhook receiver), which decides whether the
event is redelivered.
"""

from __future__ import annotations


class PRThreadsError(Exception):
    """Base class for all prthreads errors."""


class ReviewNotFound(PRThreadsError):
    """The review record for a pull request does not exist in the store."""

    def __init__(self, key):
        super().__init__(f"No such review: {key}")
        self.key = key


class DiffSourceUnavailable(PRThreadsError):
    """The platform could not produce a diff, comparison or pull request."""


class DiffParseError(PRThreadsError):
    """Unified diff text could not be parsed."""


class StaleThreadWrite(PRThreadsError):
    """A compare-and-set on a thread position lost against another writer."""

    def __init__(self, thread_id: str, expected_version: int):
        super().__init__(f"Thread {thread_id} changed since version {expected_version}")
        self.thread_id = thread_id
        self.expected_version = expected_version
