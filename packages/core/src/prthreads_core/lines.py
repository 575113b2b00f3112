"""Line position arithmetic over a parsed diff.

Answers two questions only: where did this exact line go, and is this exact
line still meaningfully present. Translators return ``None`` ("no match")
when a diff does not touch the file at all, which callers must keep apart
from the outdated sentinel (line ``-1``): an untouched file keeps its line.
"""

from __future__ import annotations

from dataclasses import dataclass

from prthreads_core.diff import Change, ChangeType, FileDiff, find_file_diff
from prthreads_core.models import Side


@dataclass(frozen=True)
class LineTranslation:
    file: str
    line: int


def calculate_line_nudge(file_diff: FileDiff, line: int) -> int:
    """How far ``line`` (in the diff's "from" numbering) has moved.

    Scans changes in file order keeping a running delta of adds and dels.
    A context line matching ``line`` exactly gives the authoritative answer
    and stops the scan; a context line past ``line`` means the target sat in
    a span with no surviving anchor, so the delta so far is the best guess.
    """
    if not file_diff.hunks:
        return 0

    # Lines above the first hunk are untouched.
    if line < file_diff.hunks[0].old_start:
        return 0

    nudge = 0
    for change in file_diff.changes():
        if change.type == "normal":
            if change.ln1 == line:
                return change.ln2 - change.ln1
            if change.ln1 > line:
                return nudge
        elif change.type == "add":
            nudge += 1
        elif change.type == "del":
            nudge -= 1

    # Off the end of the diff: the nudge can no longer change.
    return nudge


def translate_line(file_diff: FileDiff, file: str, line: int) -> LineTranslation:
    return LineTranslation(file=file_diff.to_path or file, line=line + calculate_line_nudge(file_diff, line))


def translate_line_number(diffs: list[FileDiff], file: str, line: int) -> LineTranslation | None:
    """Translate ``file:line`` across a diff, or None when the file is not in it."""
    file_diff = find_file_diff(diffs, file, side="from")
    if file_diff is None:
        return None
    return translate_line(file_diff, file, line)


def translate_across_head_move(diffs: list[FileDiff], file: str, line: int) -> LineTranslation | None:
    """Head moves are diffed old head -> new head, so the stored file is the "from" side."""
    return translate_line_number(diffs, file, line)


def translate_across_base_move(
    diffs: list[FileDiff], file: str, line: int, reversed_diff: bool = False
) -> LineTranslation | None:
    """Translate a base-side anchor.

    When the new base is an ancestor of the stored one the platform can only
    diff new -> old, so the stored file is the "to" side and the file diff is
    read backwards before nudging.
    """
    if not reversed_diff:
        return translate_line_number(diffs, file, line)

    file_diff = find_file_diff(diffs, file, side="to")
    if file_diff is None:
        return None
    return translate_line(file_diff.reversed(), file, line)


def collect_line_changes(file_diff: FileDiff, line: int, side: Side) -> list[Change]:
    """Every change recorded at ``line``.

    add/del changes match on their single line number; context changes match
    on ``ln1`` for the left side and ``ln2`` for the right side.
    """
    changes = []
    for change in file_diff.changes():
        if change.type in ("add", "del"):
            if change.ln == line:
                changes.append(change)
        elif side == "left" and change.ln1 == line:
            changes.append(change)
        elif side == "right" and change.ln2 == line:
            changes.append(change)
    return changes


def has_change_at(file_diff: FileDiff, line: int, side: Side, types: tuple[ChangeType, ...]) -> bool:
    return any(c.type in types for c in collect_line_changes(file_diff, line, side))
