"""Tests for the Markdown review summary."""

from dataclasses import replace

from prthreads_core.models import Ref, ReviewMetadata, ReviewState, ReviewStatus, Thread, ThreadArgs
from prthreads_core.summary import SUMMARY_MARKER, build_review_comment, reviewers_table, threads_table

METADATA = ReviewMetadata(
    owner="acme",
    repo="api",
    number=12,
    author="alice",
    title="Rate limits",
    base=Ref("acme:main", "b" * 40),
    head=Ref("alice:limits", "h" * 40),
)


def _thread(thread_id, file, draft=False, resolved=False):
    args = ThreadArgs(file=file, sha="h" * 40, line=1)
    return replace(Thread.create(thread_id, "bob", args, draft=draft), resolved=resolved)


class TestReviewersTable:
    def test_none_when_empty(self):
        assert reviewers_table(ReviewState()) == "None"

    def test_approvers_first_then_pending(self):
        table = reviewers_table(ReviewState(reviewers=("bob", "carol"), approvers=("carol",)))
        assert table.splitlines() == [
            "| User | Status |",
            "|---|---|",
            "| @carol | ✔️ Approved |",
            "| @bob | ⏳ Pending |",
        ]


class TestThreadsTable:
    def test_none_without_sent_threads(self):
        assert threads_table([]) == "None"
        assert threads_table([_thread("t1", "a.py", draft=True)]) == "None"

    def test_counts_per_file(self):
        threads = [
            _thread("t1", "a.py"),
            _thread("t2", "a.py", resolved=True),
            _thread("t3", "b.py"),
            _thread("t4", "b.py", draft=True),
        ]
        assert threads_table(threads).splitlines() == [
            "| File | # Comments | # Unresolved |",
            "|---|---|---|",
            "| `a.py` | 2 | 1 |",
            "| `b.py` | 1 | 1 |",
        ]


class TestBuildReviewComment:
    def test_layout(self):
        state = ReviewState(status=ReviewStatus.NEEDS_RESOLUTION, reviewers=("bob",), approvers=("bob",))
        body = build_review_comment(METADATA, state, [_thread("t1", "a.py")], base_url="https://review.example/")

        lines = body.splitlines()
        assert lines[0] == SUMMARY_MARKER
        assert lines[1] == "#### Status"
        assert lines[2] == "[❌ Needs Resolution](https://review.example/pr/acme/api/12)"
        assert "#### Reviewers" in lines
        assert "#### Comments" in lines
        assert "| `a.py` | 1 | 1 |" in lines
