"""Dispatch of GitHub webhook deliveries.

Each handler is one event: it either creates or updates review state, or
runs reconciliation passes. Errors propagate to the receiver, which decides
whether GitHub should redeliver.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable

from prthreads_core.counter import (
    close_review,
    on_review_write,
    publish_summary,
    record_review,
    reopen_review,
    request_review,
    withdraw_reviewer,
)
from prthreads_core.models import Review, ReviewKey, ReviewMetadata, ReviewState
from prthreads_core.reconciler import reconcile_pull_request
from prthreads_core.source import ReviewPublisher
from prthreads_core.status import review_event_for

if TYPE_CHECKING:
    from prthreads_core.events import Channel
    from prthreads_core.reconciler import PullRequestLocks, ReconcileReport
    from prthreads_core.source import DiffSource
    from prthreads_store.base import BaseStore

logger = logging.getLogger(__name__)

BRANCH_PREFIX = "refs/heads/"

# (owner, repo, installation_id) -> source for that repository
SourceFactory = Callable[[str, str, "int | None"], "DiffSource"]


def _repository(payload: dict) -> tuple[str, str]:
    repository = payload["repository"]
    return repository["owner"]["login"], repository["name"]


def _installation_id(payload: dict) -> int | None:
    return (payload.get("installation") or {}).get("id")


def _publisher(payload: dict, owner: str, repo: str, source_factory: SourceFactory, post_summary: bool):
    if not post_summary:
        return None
    source = source_factory(owner, repo, _installation_id(payload))
    return source if isinstance(source, ReviewPublisher) else None


def handle_event(
    name: str,
    payload: dict,
    store: BaseStore,
    source_factory: SourceFactory,
    base_url: str = "",
    post_summary: bool = True,
    channel: Channel | None = None,
    locks: PullRequestLocks | None = None,
) -> list[ReconcileReport]:
    """Handle one delivery of event ``name`` (the ``X-GitHub-Event`` header).

    Returns the reports of any reconciliation passes that ran.
    """
    action = payload.get("action")
    event = f"{name}.{action}" if action else name
    owner, repo = _repository(payload)

    if name == "push":
        return _on_push(payload, owner, repo, store, source_factory, channel, locks)

    if name == "pull_request_review":
        return _on_review(payload, owner, repo, store, source_factory, base_url, post_summary, channel)

    if name != "pull_request":
        logger.info("Ignoring %s event for %s/%s", event, owner, repo)
        return []

    pull = payload["pull_request"]
    key = ReviewKey(owner, repo, pull["number"])
    logger.info("Handling %s for %s", event, key)

    if action == "opened":
        metadata = ReviewMetadata.from_payload(owner, repo, pull)
        # Deliveries can repeat; a known review keeps its state and threads.
        if store.get_review(key) is None:
            store.save_review(Review(metadata=metadata, state=ReviewState()))
        elif not store.update_metadata(metadata):
            logger.info("Ignoring stale %s for %s", event, key)
        return []

    if action == "closed":
        close_review(store, key, merged=bool(pull.get("merged")))
        return []

    if action == "reopened":
        before, after = reopen_review(store, key)
        if before.status == after.status:
            return []
        publisher = _publisher(payload, owner, repo, source_factory, post_summary)
        if publisher is not None:
            publish_summary(store, publisher, key, after, event=review_event_for(after.status), base_url=base_url)
        return []

    if action in ("review_requested", "review_request_removed"):
        reviewer = (payload.get("requested_reviewer") or {}).get("login")
        if reviewer is None:
            logger.info("Ignoring %s for %s: team review requests are not tracked", event, key)
            return []
        if action == "review_requested":
            states = request_review(store, key, reviewer)
        else:
            states = withdraw_reviewer(store, key, reviewer)
        publisher = _publisher(payload, owner, repo, source_factory, post_summary)
        on_review_write(store, publisher, key, *states, base_url=base_url, channel=channel)
        return []

    # A retarget arrives as "edited" with the previous base under "changes".
    if action == "synchronize" or (action == "edited" and "base" in (payload.get("changes") or {})):
        source = source_factory(owner, repo, _installation_id(payload))
        return [reconcile_pull_request(store, source, key, channel=channel, locks=locks)]

    logger.info("Ignoring %s event for %s", event, key)
    return []


def _on_review(payload, owner, repo, store, source_factory, base_url, post_summary, channel) -> list:
    """A submitted review makes its author a reviewer; its verdict sets their approval."""
    action = payload.get("action")
    key = ReviewKey(owner, repo, payload["pull_request"]["number"])
    review = payload["review"]
    login = review["user"]["login"]
    verdict = (review.get("state") or "").lower()

    if action == "submitted" and verdict == "commented":
        states = request_review(store, key, login)
    elif action == "submitted":
        states = record_review(store, key, login, approved=verdict == "approved")
    elif action == "dismissed":
        states = record_review(store, key, login, approved=False)
    else:
        logger.info("Ignoring pull_request_review.%s for %s", action, key)
        return []

    publisher = _publisher(payload, owner, repo, source_factory, post_summary)
    on_review_write(store, publisher, key, *states, base_url=base_url, channel=channel)
    return []


def _on_push(payload, owner, repo, store, source_factory, channel, locks) -> list[ReconcileReport]:
    """A push to a branch moves the base of every open review targeting it.

    Pushes to a pull request's head arrive as ``pull_request.synchronize``.
    """
    ref = payload.get("ref", "")
    if not ref.startswith(BRANCH_PREFIX):
        logger.info("push: ignoring non-branch ref %s", ref)
        return []

    label = f"{owner}:{ref[len(BRANCH_PREFIX):]}"
    reviews = store.list_reviews(owner, repo, base_label=label, open_only=True)
    if not reviews:
        logger.debug("push: no open reviews based on %s", label)
        return []

    source = source_factory(owner, repo, _installation_id(payload))
    reports = []
    for review in reviews:
        logger.info("Updating %s after push to %s", review.key, label)
        reports.append(reconcile_pull_request(store, source, review.key, channel=channel, locks=locks))
    return reports
