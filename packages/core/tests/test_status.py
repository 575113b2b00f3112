"""Tests for review status derivation."""

import logging

from prthreads_core.models import ReviewState, ReviewStatus
from prthreads_core.status import (
    add_approver,
    add_reviewer,
    calculate_review_status,
    describe_status,
    remove_approver,
    remove_reviewer,
    review_event_for,
    review_states_equal,
    stray_approvers,
)


class TestCalculateReviewStatus:
    def test_no_reviewers_needs_review(self):
        assert calculate_review_status(ReviewState()) == ReviewStatus.NEEDS_REVIEW

    def test_approved_with_unresolved_needs_resolution(self):
        state = ReviewState(reviewers=("a",), approvers=("a",), unresolved=2)
        assert calculate_review_status(state) == ReviewStatus.NEEDS_RESOLUTION

    def test_approved_and_resolved(self):
        state = ReviewState(reviewers=("a",), approvers=("a",), unresolved=0)
        assert calculate_review_status(state) == ReviewStatus.APPROVED

    def test_reviewers_without_approval_need_approval(self):
        state = ReviewState(reviewers=("a", "b"), unresolved=3)
        assert calculate_review_status(state) == ReviewStatus.NEEDS_APPROVAL

    def test_closed_status_is_frozen(self):
        for recorded in (ReviewStatus.CLOSED_MERGED, ReviewStatus.CLOSED_UNMERGED):
            state = ReviewState(status=recorded, closed=True, reviewers=("a",), approvers=("a",))
            assert calculate_review_status(state) == recorded

    def test_ignores_recorded_status_when_open(self):
        state = ReviewState(status=ReviewStatus.APPROVED)
        assert calculate_review_status(state) == ReviewStatus.NEEDS_REVIEW

    def test_stray_approver_warns_without_changing_result(self, caplog):
        state = ReviewState(reviewers=("a",), approvers=("a", "zed"))
        with caplog.at_level(logging.WARNING, logger="prthreads_core.status"):
            assert calculate_review_status(state) == ReviewStatus.APPROVED
        assert "zed" in caplog.text
        assert stray_approvers(state) == ["zed"]


class TestReviewStatesEqual:
    def test_order_insensitive(self):
        a = ReviewState(reviewers=("a", "b"), approvers=("b", "a"))
        b = ReviewState(reviewers=("b", "a"), approvers=("a", "b"))
        assert review_states_equal(a, b)

    def test_counter_difference(self):
        assert not review_states_equal(ReviewState(unresolved=1), ReviewState(unresolved=2))

    def test_none_handling(self):
        assert review_states_equal(None, None)
        assert not review_states_equal(None, ReviewState())
        assert not review_states_equal(ReviewState(), None)


class TestHelpers:
    def test_review_event(self):
        assert review_event_for(ReviewStatus.APPROVED) == "APPROVE"
        assert review_event_for(ReviewStatus.NEEDS_RESOLUTION) == "REQUEST_CHANGES"
        assert review_event_for(ReviewStatus.NEEDS_REVIEW) == "REQUEST_CHANGES"

    def test_describe(self):
        assert describe_status(ReviewStatus.CLOSED_MERGED) == "🚀 Merged"
        assert describe_status(ReviewStatus.NEEDS_RESOLUTION) == "❌ Needs Resolution"

    def test_reviewer_mutations_return_new_states(self):
        state = ReviewState()
        added = add_approver(add_reviewer(add_reviewer(state, "a"), "a"), "a")
        assert state.reviewers == ()
        assert added.reviewers == ("a",)
        assert added.approvers == ("a",)
        assert remove_approver(added, "a").approvers == ()
        assert remove_reviewer(added, "a").reviewers == ()
