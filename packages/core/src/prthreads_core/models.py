"""Review, thread and comment data model.

Every value here is immutable: updates go through ``dataclasses.replace``
so that a snapshot handed to a reader never changes underneath it.
Timestamps are integer milliseconds since the epoch, which keeps them
sortable in every store backend.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Literal

Side = Literal["left", "right"]

OUTDATED_LINE = -1


class ReviewStatus(str, Enum):
    # Approved and all comments resolved
    APPROVED = "approved"
    # Closed and all commits merged into the target branch
    CLOSED_MERGED = "closed_merged"
    # Closed before merging (abandoned)
    CLOSED_UNMERGED = "closed_unmerged"
    # Approved by someone, but has unresolved comments
    NEEDS_RESOLUTION = "needs_resolution"
    # Has reviewers, but not yet approved by any
    NEEDS_APPROVAL = "needs_approval"
    # Nobody has reviewed this yet
    NEEDS_REVIEW = "needs_review"


@dataclass(frozen=True)
class ReviewKey:
    owner: str
    repo: str
    number: int

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    def __str__(self) -> str:
        return f"{self.owner}/{self.repo}#{self.number}"


@dataclass(frozen=True)
class Ref:
    label: str  # "owner:branch", which also identifies forks
    sha: str


@dataclass(frozen=True)
class ReviewMetadata:
    owner: str
    repo: str
    number: int
    author: str
    title: str
    base: Ref
    head: Ref
    updated_at: int = 0

    @property
    def key(self) -> ReviewKey:
        return ReviewKey(self.owner, self.repo, self.number)

    @classmethod
    def from_github(cls, owner: str, repo: str, pull) -> ReviewMetadata:
        """Build metadata from a PyGithub ``PullRequest``."""
        return cls(
            owner=owner,
            repo=repo,
            number=pull.number,
            author=pull.user.login,
            title=pull.title or "",
            base=Ref(label=pull.base.label, sha=pull.base.sha),
            head=Ref(label=pull.head.label, sha=pull.head.sha),
            updated_at=to_millis(pull.updated_at),
        )

    @classmethod
    def from_payload(cls, owner: str, repo: str, pull: dict) -> ReviewMetadata:
        """Build metadata from the ``pull_request`` object of a webhook payload."""
        return cls(
            owner=owner,
            repo=repo,
            number=pull["number"],
            author=pull["user"]["login"],
            title=pull.get("title") or "",
            base=Ref(label=pull["base"]["label"], sha=pull["base"]["sha"]),
            head=Ref(label=pull["head"]["label"], sha=pull["head"]["sha"]),
            updated_at=to_millis(pull.get("updated_at")),
        )


@dataclass(frozen=True)
class ReviewState:
    status: ReviewStatus = ReviewStatus.NEEDS_REVIEW
    closed: bool = False
    reviewers: tuple[str, ...] = ()
    approvers: tuple[str, ...] = ()
    unresolved: int = 0
    last_comment: int = 0


@dataclass(frozen=True)
class Review:
    metadata: ReviewMetadata
    state: ReviewState = field(default_factory=ReviewState)

    @property
    def key(self) -> ReviewKey:
        return self.metadata.key


@dataclass(frozen=True)
class ThreadArgs:
    """Where a thread is anchored: a line of a file at a commit, on one side of the diff."""

    file: str
    sha: str
    line: int
    side: Side = "right"
    line_content: str = ""

    @property
    def is_outdated(self) -> bool:
        return self.line == OUTDATED_LINE

    def outdated(self, sha: str | None = None) -> ThreadArgs:
        return replace(self, sha=sha or self.sha, line=OUTDATED_LINE, line_content="")


@dataclass(frozen=True)
class Thread:
    id: str
    username: str
    original_args: ThreadArgs
    current_args: ThreadArgs
    draft: bool = True
    resolved: bool = False
    pending_resolved: bool | None = None
    version: int = 0

    @classmethod
    def create(cls, id: str, username: str, args: ThreadArgs, draft: bool = True) -> Thread:
        # A new thread is tracked exactly where it was authored.
        return cls(id=id, username=username, original_args=args, current_args=args, draft=draft)


@dataclass(frozen=True)
class Comment:
    id: str
    thread_id: str
    username: str
    text: str
    timestamp: int
    draft: bool = True


def to_millis(value) -> int:
    """Normalise a datetime, ISO-8601 string or number into epoch milliseconds."""
    if value is None or value == "":
        return 0
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return int(value.timestamp() * 1000)
