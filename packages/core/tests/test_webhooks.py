"""Tests for webhook event dispatch."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from prthreads_core.errors import ReviewNotFound
from prthreads_core.models import Ref, Review, ReviewKey, ReviewMetadata, ReviewState, ReviewStatus, Thread, ThreadArgs
from prthreads_core.reconciler import ReconcileReport
from prthreads_core.source import DiffSource, ReviewPublisher
from prthreads_core.webhooks import handle_event
from prthreads_store.memory import MemoryStore

KEY = ReviewKey("acme", "api", 5)


class _PublishingSource(DiffSource, ReviewPublisher):
    def __init__(self):
        self.published = []

    def fetch_diff(self, base_sha, head_sha):
        return ""

    def compare(self, base_sha, head_sha):
        raise AssertionError("not expected")

    def fetch_metadata(self, number):
        raise AssertionError("not expected")

    def get_line_content(self, path, sha, line):
        return ""

    def post_or_update_review_summary(self, number, body, event=None):
        self.published.append((number, event))


def _pull_payload(action, number=5, merged=False, base_label="acme:main"):
    return {
        "action": action,
        "number": number,
        "installation": {"id": 99},
        "repository": {"name": "api", "owner": {"login": "acme"}},
        "pull_request": {
            "number": number,
            "title": "Add limits",
            "merged": merged,
            "updated_at": "2024-01-01T00:00:00Z",
            "user": {"login": "alice"},
            "base": {"label": base_label, "sha": "b" * 40},
            "head": {"label": "alice:limits", "sha": "h" * 40},
        },
    }


def _review_payload(action, state, login="carol"):
    return {
        "action": action,
        "installation": {"id": 99},
        "repository": {"name": "api", "owner": {"login": "acme"}},
        "pull_request": {"number": 5},
        "review": {"state": state, "user": {"login": login}},
    }


def _push_payload(ref="refs/heads/main"):
    return {
        "ref": ref,
        "installation": {"id": 99},
        "repository": {"name": "api", "owner": {"login": "acme"}},
    }


def _save(store, number=5, base_label="acme:main", state=None):
    metadata = ReviewMetadata(
        owner="acme",
        repo="api",
        number=number,
        author="alice",
        title="t",
        base=Ref(base_label, "b" * 40),
        head=Ref("alice:x", "h" * 40),
    )
    store.save_review(Review(metadata=metadata, state=state or ReviewState()))


class TestPullRequestEvents:
    def test_opened_creates_review(self):
        store = MemoryStore()
        factory = MagicMock()

        assert handle_event("pull_request", _pull_payload("opened"), store, factory) == []

        review = store.get_review(KEY)
        assert review.metadata.author == "alice"
        assert review.metadata.updated_at == 1704067200000
        assert review.state.status == ReviewStatus.NEEDS_REVIEW
        factory.assert_not_called()

    def test_opened_redelivery_keeps_state(self):
        store = MemoryStore()
        handle_event("pull_request", _pull_payload("opened"), store, MagicMock())
        store.create_thread(KEY, Thread.create("t1", "bob", ThreadArgs(file="a.py", sha="h" * 40, line=3), draft=False))
        store.update_state(KEY, lambda s: ReviewState(reviewers=("carol",), unresolved=1))

        handle_event("pull_request", _pull_payload("opened"), store, MagicMock())

        review = store.get_review(KEY)
        assert review.state.unresolved == 1
        assert review.state.reviewers == ("carol",)
        assert len(store.list_threads(KEY)) == 1

    @pytest.mark.parametrize(
        "merged, status", [(True, ReviewStatus.CLOSED_MERGED), (False, ReviewStatus.CLOSED_UNMERGED)]
    )
    def test_closed(self, merged, status):
        store = MemoryStore()
        _save(store)

        handle_event("pull_request", _pull_payload("closed", merged=merged), store, MagicMock())

        state = store.get_review(KEY).state
        assert state.closed
        assert state.status == status

    def test_closed_without_review_raises(self):
        with pytest.raises(ReviewNotFound):
            handle_event("pull_request", _pull_payload("closed"), MemoryStore(), MagicMock())

    def test_reopened_recomputes_and_publishes(self):
        store = MemoryStore()
        _save(store, state=ReviewState(reviewers=("carol",), closed=True, status=ReviewStatus.CLOSED_UNMERGED))
        source = _PublishingSource()
        factory = MagicMock(return_value=source)

        handle_event("pull_request", _pull_payload("reopened"), store, factory)

        state = store.get_review(KEY).state
        assert not state.closed
        assert state.status == ReviewStatus.NEEDS_APPROVAL
        factory.assert_called_once_with("acme", "api", 99)
        assert source.published == [(5, "REQUEST_CHANGES")]

    def test_reopened_without_summary(self):
        store = MemoryStore()
        _save(store, state=ReviewState(closed=True, status=ReviewStatus.CLOSED_UNMERGED))
        factory = MagicMock()

        handle_event("pull_request", _pull_payload("reopened"), store, factory, post_summary=False)

        factory.assert_not_called()

    def test_synchronize_reconciles(self, mocker):
        store = MemoryStore()
        report = ReconcileReport(key=KEY, moved=1)
        reconcile = mocker.patch("prthreads_core.webhooks.reconcile_pull_request", return_value=report)
        factory = MagicMock()

        reports = handle_event("pull_request", _pull_payload("synchronize"), store, factory)

        assert reports == [report]
        reconcile.assert_called_once_with(store, factory.return_value, KEY, channel=None, locks=None)

    def test_base_retarget_reconciles(self, mocker):
        store = MemoryStore()
        report = ReconcileReport(key=KEY, moved=2)
        reconcile = mocker.patch("prthreads_core.webhooks.reconcile_pull_request", return_value=report)
        factory = MagicMock()
        payload = _pull_payload("edited", base_label="acme:release")
        payload["changes"] = {"base": {"ref": {"from": "main"}, "sha": {"from": "b" * 40}}}

        reports = handle_event("pull_request", payload, store, factory)

        assert reports == [report]
        factory.assert_called_once_with("acme", "api", 99)
        reconcile.assert_called_once_with(store, factory.return_value, KEY, channel=None, locks=None)

    def test_title_edit_ignored(self, mocker):
        reconcile = mocker.patch("prthreads_core.webhooks.reconcile_pull_request")
        payload = _pull_payload("edited")
        payload["changes"] = {"title": {"from": "Old title"}}

        assert handle_event("pull_request", payload, MemoryStore(), MagicMock()) == []
        reconcile.assert_not_called()

    def test_unhandled_action_ignored(self):
        store = MemoryStore()
        assert handle_event("pull_request", _pull_payload("labeled"), store, MagicMock()) == []
        assert store.get_review(KEY) is None


class TestReviewEvents:
    def test_review_requested_adds_reviewer(self):
        store = MemoryStore()
        _save(store)
        payload = _pull_payload("review_requested")
        payload["requested_reviewer"] = {"login": "carol"}

        handle_event("pull_request", payload, store, MagicMock(), post_summary=False)

        state = store.get_review(KEY).state
        assert state.reviewers == ("carol",)
        assert state.status == ReviewStatus.NEEDS_APPROVAL

    def test_team_review_request_ignored(self):
        store = MemoryStore()
        _save(store)
        payload = _pull_payload("review_requested")
        payload["requested_team"] = {"slug": "core"}

        handle_event("pull_request", payload, store, MagicMock())

        assert store.get_review(KEY).state.reviewers == ()

    def test_review_request_removed(self):
        store = MemoryStore()
        _save(store, state=ReviewState(reviewers=("carol",), status=ReviewStatus.NEEDS_APPROVAL))
        payload = _pull_payload("review_request_removed")
        payload["requested_reviewer"] = {"login": "carol"}

        handle_event("pull_request", payload, store, MagicMock(), post_summary=False)

        state = store.get_review(KEY).state
        assert state.reviewers == ()
        assert state.status == ReviewStatus.NEEDS_REVIEW

    def test_approval_publishes_summary(self):
        store = MemoryStore()
        _save(store, state=ReviewState(reviewers=("carol",), status=ReviewStatus.NEEDS_APPROVAL))
        source = _PublishingSource()

        payload = _review_payload("submitted", "approved")
        handle_event("pull_request_review", payload, store, MagicMock(return_value=source))

        state = store.get_review(KEY).state
        assert state.approvers == ("carol",)
        assert state.status == ReviewStatus.APPROVED
        assert source.published == [(5, "APPROVE")]

    @pytest.mark.parametrize("action, verdict", [("submitted", "changes_requested"), ("dismissed", "dismissed")])
    def test_withdrawn_approval(self, action, verdict):
        store = MemoryStore()
        _save(store, state=ReviewState(reviewers=("carol",), approvers=("carol",), status=ReviewStatus.APPROVED))

        handle_event("pull_request_review", _review_payload(action, verdict), store, MagicMock(), post_summary=False)

        state = store.get_review(KEY).state
        assert state.approvers == ()
        assert state.status == ReviewStatus.NEEDS_APPROVAL

    def test_comment_review_keeps_approval(self):
        store = MemoryStore()
        _save(store, state=ReviewState(reviewers=("carol",), approvers=("carol",), status=ReviewStatus.APPROVED))

        handle_event(
            "pull_request_review", _review_payload("submitted", "commented"), store, MagicMock(), post_summary=False
        )

        assert store.get_review(KEY).state.approvers == ("carol",)


class TestPushEvents:
    def test_push_reconciles_open_reviews_on_base(self, mocker):
        store = MemoryStore()
        _save(store, number=1)
        _save(store, number=2, base_label="acme:release")
        _save(store, number=3, state=ReviewState(closed=True, status=ReviewStatus.CLOSED_MERGED))
        _save(store, number=4)
        reconcile = mocker.patch(
            "prthreads_core.webhooks.reconcile_pull_request",
            side_effect=lambda store, source, key, **kwargs: ReconcileReport(key=key),
        )

        reports = handle_event("push", _push_payload(), store, MagicMock())

        assert [r.key.number for r in reports] == [1, 4]
        assert reconcile.call_count == 2

    def test_push_to_tag_ignored(self, mocker):
        reconcile = mocker.patch("prthreads_core.webhooks.reconcile_pull_request")
        store = MemoryStore()
        _save(store)

        assert handle_event("push", _push_payload("refs/tags/v1.0"), store, MagicMock()) == []
        reconcile.assert_not_called()

    def test_push_without_reviews_does_not_build_source(self):
        factory = MagicMock()
        assert handle_event("push", _push_payload(), MemoryStore(), factory) == []
        factory.assert_not_called()


def test_unknown_event_ignored():
    payload = {"action": "created", "repository": {"name": "api", "owner": {"login": "acme"}}}
    assert handle_event("issue_comment", payload, MemoryStore(), MagicMock()) == []
