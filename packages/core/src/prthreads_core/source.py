"""Capabilities the core consumes from the hosting platform.

The reconciler and the status engine never talk to GitHub directly; they
are handed objects implementing these interfaces. ``GithubSource`` in
:mod:`prthreads_core.gh.pull_request` is the production implementation and
tests use small in-memory fakes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from prthreads_core.models import ReviewMetadata

AncestryStatus = Literal["ahead", "behind", "identical", "diverged"]


@dataclass(frozen=True)
class Ancestry:
    """How ``head`` relates to ``base`` in a comparison of the two."""

    status: AncestryStatus
    distance: int = 0


class DiffSource(ABC):
    """Read access to one repository's commits and pull requests."""

    @abstractmethod
    def fetch_diff(self, base_sha: str, head_sha: str) -> str:
        """Return unified diff text from ``base_sha`` to ``head_sha``."""

    @abstractmethod
    def compare(self, base_sha: str, head_sha: str) -> Ancestry:
        """Return whether ``head_sha`` is ahead of, behind or identical to ``base_sha``."""

    @abstractmethod
    def fetch_metadata(self, number: int) -> ReviewMetadata:
        """Return the latest metadata of pull request ``number``."""

    @abstractmethod
    def get_line_content(self, path: str, sha: str, line: int) -> str:
        """Return the text of 1-based ``line`` of ``path`` at ``sha`` ("" past the end)."""


class ReviewPublisher(ABC):
    """Write access used to mirror review state onto the platform."""

    @abstractmethod
    def post_or_update_review_summary(self, number: int, body: str, event: str | None = None) -> None:
        """Create or update the single summary for pull request ``number``.

        When ``event`` is given ("APPROVE" / "REQUEST_CHANGES") a platform
        review carrying that verdict is submitted as well.
        """
