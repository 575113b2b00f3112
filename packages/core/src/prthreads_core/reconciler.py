"""Thread position reconciliation.

When a pull request's base or head moves, every thread anchored to it is
re-examined once, in the order below (first match wins):

1. Already outdated: carry the anchor sha forward, never revive.
2. Anchor already at the relevant commit and nothing moved: no-op.
3. The whole pull request diff touches the file but shows no surviving
   line at the anchor: outdated.
4. Anchor behind the relevant commit: diff the current anchor against the
   new one (read backwards when the new commit is an ancestor), outdate the
   thread if its line was removed in between, otherwise translate it.

Only ``current_args`` is ever written, with compare-and-set on the thread
version, and every pass for a pull request holds that pull request's lock.
"""

from __future__ import annotations

import logging
import threading
import weakref
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

from prthreads_core.diff import FileDiff, find_file_diff, parse_diff
from prthreads_core.errors import ReviewNotFound, StaleThreadWrite
from prthreads_core.events import ThreadMoved, ThreadOutdated, publish
from prthreads_core.lines import has_change_at, translate_across_base_move, translate_across_head_move

if TYPE_CHECKING:
    from prthreads_core.events import Channel
    from prthreads_core.models import ReviewKey, ReviewMetadata, Thread, ThreadArgs
    from prthreads_core.source import DiffSource
    from prthreads_store.base import BaseStore

logger = logging.getLogger(__name__)


class PullRequestLocks:
    """One lock per pull request, created on first use.

    Entries are held weakly: a lock lives as long as some pass holds or waits
    on it, so the registry does not grow with every pull request ever seen.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: weakref.WeakValueDictionary[ReviewKey, threading.Lock] = weakref.WeakValueDictionary()

    def __len__(self) -> int:
        return len(self._locks)

    def lock_for(self, key: ReviewKey) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock


_DEFAULT_LOCKS = PullRequestLocks()


class DiffCache:
    """Parsed diffs between commit pairs, fetched at most once per pass."""

    def __init__(self, source: DiffSource):
        self.source = source
        self._diffs: dict[tuple[str, str], list[FileDiff]] = {}

    def diff(self, base_sha: str, head_sha: str) -> list[FileDiff]:
        pair = (base_sha, head_sha)
        if pair not in self._diffs:
            logger.debug("Fetching diff %s..%s", base_sha[:7], head_sha[:7])
            self._diffs[pair] = parse_diff(self.source.fetch_diff(base_sha, head_sha))
        return self._diffs[pair]


@dataclass
class ReconcileReport:
    key: ReviewKey
    moved: int = 0
    outdated: int = 0
    unchanged: int = 0
    conflicts: int = 0
    stale: bool = False


def relevant_sha(args: ThreadArgs, metadata: ReviewMetadata) -> str:
    return metadata.head.sha if args.side == "right" else metadata.base.sha


def reconcile_thread(
    thread: Thread,
    old: ReviewMetadata,
    new: ReviewMetadata,
    source: DiffSource,
    force: bool = False,
    cache: DiffCache | None = None,
) -> ThreadArgs | None:
    """Compute a thread's new position, or None when it should not be written."""
    diffs = cache if cache is not None else DiffCache(source)
    current = thread.current_args
    target = relevant_sha(current, new)

    if current.is_outdated:
        return None if current.sha == target else replace(current, sha=target)

    base_changed = old.base.sha != new.base.sha
    head_changed = old.head.sha != new.head.sha
    if current.sha == target and not (base_changed or head_changed or force):
        return None

    # A right-side line must still be added or kept in the pull request diff;
    # a left-side line must still be one the pull request deletes.
    whole = diffs.diff(new.base.sha, new.head.sha)
    if current.side == "right":
        file_diff = find_file_diff(whole, current.file, side="to")
        required = ("add", "normal")
    else:
        file_diff = find_file_diff(whole, current.file, side="from")
        required = ("del",)
    if file_diff is not None and not has_change_at(file_diff, current.line, current.side, required):
        logger.info("Thread %s is outdated: %s:%d is gone from the diff", thread.id, current.file, current.line)
        return current.outdated(target)

    if current.sha == target:
        return None

    ancestry = source.compare(current.sha, target)
    reversed_diff = ancestry.status == "behind"
    if ancestry.status == "diverged":
        logger.info("Thread %s: %s and %s have diverged", thread.id, current.sha[:7], target[:7])

    if reversed_diff:
        # The platform cannot diff towards an ancestor, so diff the other way
        # and look for the anchor on the "to" side.
        step = diffs.diff(target, current.sha)
        step_file = find_file_diff(step, current.file, side="to")
        disqualifier = "add"
    else:
        step = diffs.diff(current.sha, target)
        step_file = find_file_diff(step, current.file, side="from")
        disqualifier = "del"

    if step_file is not None and has_change_at(step_file, current.line, current.side, (disqualifier,)):
        logger.info("Thread %s is outdated: %s:%d was removed", thread.id, current.file, current.line)
        return current.outdated(target)

    if current.side == "right" and not reversed_diff:
        translation = translate_across_head_move(step, current.file, current.line)
    else:
        translation = translate_across_base_move(step, current.file, current.line, reversed_diff)

    if translation is None:
        # File untouched between the two anchors: same file, same line.
        return replace(current, sha=target)

    line_content = source.get_line_content(translation.file, target, translation.line)
    return replace(current, sha=target, file=translation.file, line=translation.line, line_content=line_content)


def reconcile_pull_request(
    store: BaseStore,
    source: DiffSource,
    key: ReviewKey,
    force: bool = False,
    channel: Channel | None = None,
    locks: PullRequestLocks | None = None,
) -> ReconcileReport:
    """Refresh a review's metadata and reconcile every thread against it.

    Errors from the platform abort the pass; threads written before the
    failure keep their new positions. The new metadata is stored only once
    every thread has been examined, so a redelivered event repeats the
    whole pass against the same old anchors.
    """
    lock = (locks or _DEFAULT_LOCKS).lock_for(key)
    with lock:
        review = store.get_review(key)
        if review is None:
            raise ReviewNotFound(key)

        # Fetched inside the lock so that a queued pass sees the newest commits.
        new = source.fetch_metadata(key.number)
        report = ReconcileReport(key=key)
        old = review.metadata
        if new.updated_at < old.updated_at:
            logger.warning("Skipping reconciliation of %s: stored metadata is newer", key)
            report.stale = True
            return report

        logger.info(
            "Reconciling %s: base %s -> %s, head %s -> %s",
            key,
            old.base.sha[:7],
            new.base.sha[:7],
            old.head.sha[:7],
            new.head.sha[:7],
        )

        cache = DiffCache(source)
        for thread in store.list_threads(key):
            new_args = reconcile_thread(thread, old, new, source, force=force, cache=cache)
            if new_args is None or new_args == thread.current_args:
                report.unchanged += 1
                continue

            try:
                store.update_thread_position(key, thread, new_args)
            except StaleThreadWrite:
                logger.warning("Thread %s was written concurrently; keeping the other write", thread.id)
                report.conflicts += 1
                continue

            if new_args.is_outdated and not thread.current_args.is_outdated:
                report.outdated += 1
                publish(channel, ThreadOutdated(key=key, thread_id=thread.id, before=thread.current_args))
            else:
                report.moved += 1
                publish(channel, ThreadMoved(key=key, thread_id=thread.id, before=thread.current_args, after=new_args))

        if not store.update_metadata(new):
            logger.warning("Metadata of %s moved on during reconciliation; keeping the newer copy", key)

    logger.info(
        "Reconciled %s: %d moved, %d outdated, %d unchanged, %d conflicts",
        key,
        report.moved,
        report.outdated,
        report.unchanged,
        report.conflicts,
    )
    return report
