"""Unified diff model.

Parses the text the platform returns for a commit comparison into an
ordered list of :class:`FileDiff`, each holding hunks of add/del/normal
changes. This module only describes the diff; deciding what a change means
for a comment thread lives in :mod:`prthreads_core.lines`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Literal

from unidiff import PatchSet
from unidiff.errors import UnidiffParseError

from prthreads_core.errors import DiffParseError

logger = logging.getLogger(__name__)

ChangeType = Literal["add", "del", "normal"]

_DEV_NULL = "/dev/null"


@dataclass(frozen=True)
class Change:
    """One line of a hunk.

    ``add`` changes carry ``ln`` in the new file, ``del`` changes carry ``ln``
    in the old file, and ``normal`` (context) changes carry both ``ln1`` (old)
    and ``ln2`` (new).
    """

    type: ChangeType
    content: str = ""
    ln: int | None = None
    ln1: int | None = None
    ln2: int | None = None

    def reversed(self) -> Change:
        if self.type == "add":
            return replace(self, type="del")
        if self.type == "del":
            return replace(self, type="add")
        return replace(self, ln1=self.ln2, ln2=self.ln1)


@dataclass(frozen=True)
class Hunk:
    old_start: int
    new_start: int
    changes: tuple[Change, ...] = ()

    def reversed(self) -> Hunk:
        return Hunk(
            old_start=self.new_start,
            new_start=self.old_start,
            changes=tuple(c.reversed() for c in self.changes),
        )


@dataclass(frozen=True)
class FileDiff:
    from_path: str | None  # None when the file was added
    to_path: str | None  # None when the file was deleted
    hunks: tuple[Hunk, ...] = field(default_factory=tuple)

    def reversed(self) -> FileDiff:
        """The same diff read from the newer commit back to the older one."""
        return FileDiff(
            from_path=self.to_path,
            to_path=self.from_path,
            hunks=tuple(h.reversed() for h in self.hunks),
        )

    def changes(self):
        for hunk in self.hunks:
            yield from hunk.changes


def _strip_prefix(path: str, prefix: str) -> str | None:
    if path == _DEV_NULL:
        return None
    if path.startswith(prefix):
        return path[len(prefix) :]
    return path


def parse_diff(diff_text: str) -> list[FileDiff]:
    """Parse unified diff text into file diffs, in file order.

    Raises DiffParseError when the text is not a diff at all or a hunk is
    malformed. Empty text is a valid, empty diff.
    """
    if not diff_text or not diff_text.strip():
        return []

    try:
        patch_set = PatchSet(diff_text)
    except UnidiffParseError as e:
        logger.debug("Unparseable diff text (first 500 chars): %s", diff_text[:500])
        raise DiffParseError(f"Malformed diff: {e}") from e

    if len(patch_set) == 0:
        raise DiffParseError("Text does not contain any file diffs")

    file_diffs: list[FileDiff] = []
    for patched_file in patch_set:
        hunks = []
        for hunk in patched_file:
            changes = []
            for line in hunk:
                if line.is_added:
                    changes.append(Change(type="add", content=line.value.rstrip("\n"), ln=line.target_line_no))
                elif line.is_removed:
                    changes.append(Change(type="del", content=line.value.rstrip("\n"), ln=line.source_line_no))
                elif line.is_context:
                    changes.append(
                        Change(
                            type="normal",
                            content=line.value.rstrip("\n"),
                            ln1=line.source_line_no,
                            ln2=line.target_line_no,
                        )
                    )
                # "\ No newline at end of file" markers carry no line number.
            hunks.append(Hunk(old_start=hunk.source_start, new_start=hunk.target_start, changes=tuple(changes)))

        file_diffs.append(
            FileDiff(
                from_path=_strip_prefix(patched_file.source_file, "a/"),
                to_path=_strip_prefix(patched_file.target_file, "b/"),
                hunks=tuple(hunks),
            )
        )

    logger.debug("Parsed %d file diff(s)", len(file_diffs))
    return file_diffs


def find_file_diff(diffs: list[FileDiff], path: str, side: Literal["from", "to"] = "from") -> FileDiff | None:
    """Return the first file diff whose ``from`` or ``to`` path equals ``path``."""
    for file_diff in diffs:
        candidate = file_diff.from_path if side == "from" else file_diff.to_path
        if candidate == path:
            return file_diff
    return None
