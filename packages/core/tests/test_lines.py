"""Tests for line nudging and translation: the arithmetic every thread move relies on."""

from prthreads_core.diff import Change, FileDiff, Hunk, parse_diff
from prthreads_core.lines import (
    LineTranslation,
    calculate_line_nudge,
    collect_line_changes,
    has_change_at,
    translate_across_base_move,
    translate_across_head_move,
    translate_line_number,
)


def _file_diff(*changes, old_start=1, new_start=1, from_path="f.txt", to_path="f.txt"):
    return FileDiff(from_path=from_path, to_path=to_path, hunks=(Hunk(old_start, new_start, tuple(changes)),))


def _scenario_a():
    """Hunk at old line 10: line 12 replaced in place, line 13 kept."""
    return _file_diff(
        Change(type="normal", ln1=10, ln2=10),
        Change(type="normal", ln1=11, ln2=11),
        Change(type="del", ln=12),
        Change(type="add", ln=12),
        Change(type="normal", ln1=13, ln2=13),
        old_start=10,
        new_start=10,
    )


class TestCalculateLineNudge:
    def test_exact_context_match(self):
        assert calculate_line_nudge(_scenario_a(), 13) == 0

    def test_line_before_first_hunk_is_untouched(self):
        assert calculate_line_nudge(_scenario_a(), 5) == 0

    def test_line_after_diff_uses_net_delta(self):
        assert calculate_line_nudge(_scenario_a(), 20) == 0

    def test_no_hunks(self):
        assert calculate_line_nudge(FileDiff(from_path="f.txt", to_path="g.txt"), 42) == 0

    def test_lines_before_first_hunk_never_move(self):
        file_diff = _file_diff(Change(type="add", ln=20), Change(type="add", ln=21), old_start=20, new_start=20)
        for line in range(1, 20):
            assert calculate_line_nudge(file_diff, line) == 0

    def test_exact_match_wins_over_running_delta(self):
        # Two adds then a context line whose ln2 - ln1 disagrees with the running count.
        file_diff = _file_diff(
            Change(type="add", ln=1),
            Change(type="add", ln=2),
            Change(type="normal", ln1=1, ln2=5),
        )
        assert calculate_line_nudge(file_diff, 1) == 4

    def test_overshoot_returns_delta_so_far(self):
        # Line 3 was deleted; the next surviving anchor is line 4.
        file_diff = _file_diff(
            Change(type="add", ln=1),
            Change(type="normal", ln1=1, ln2=2),
            Change(type="normal", ln1=2, ln2=3),
            Change(type="del", ln=3),
            Change(type="normal", ln1=4, ln2=4),
        )
        assert calculate_line_nudge(file_diff, 3) == 1

    def test_accumulates_across_hunks(self):
        (file_diff,) = parse_diff(
            "--- a/f.txt\n+++ b/f.txt\n"
            "@@ -1,2 +1,3 @@\n a\n+b\n c\n"
            "@@ -10,2 +11,4 @@\n j\n+k\n+l\n m\n"
        )
        assert calculate_line_nudge(file_diff, 30) == 3
        assert calculate_line_nudge(file_diff, 11) == 3
        assert calculate_line_nudge(file_diff, 10) == 1


class TestTranslateLineNumber:
    def test_scenario_a(self):
        diffs = [_scenario_a()]
        assert translate_line_number(diffs, "f.txt", 13) == LineTranslation("f.txt", 13)
        assert translate_line_number(diffs, "f.txt", 5) == LineTranslation("f.txt", 5)
        assert translate_line_number(diffs, "f.txt", 20) == LineTranslation("f.txt", 20)

    def test_file_absent_is_no_match_not_outdated(self):
        assert translate_line_number([_scenario_a()], "other.txt", 13) is None

    def test_follows_rename(self):
        renamed = _file_diff(Change(type="add", ln=1), from_path="old.py", to_path="new.py")
        assert translate_line_number([renamed], "old.py", 7) == LineTranslation("new.py", 8)


class TestMoves:
    def test_head_move_matches_from_path(self):
        renamed = _file_diff(Change(type="add", ln=1), from_path="old.py", to_path="new.py")
        assert translate_across_head_move([renamed], "old.py", 3) == LineTranslation("new.py", 4)
        assert translate_across_head_move([renamed], "new.py", 3) is None

    def test_forward_base_move(self):
        file_diff = _file_diff(Change(type="del", ln=1), Change(type="normal", ln1=2, ln2=1))
        assert translate_across_base_move([file_diff], "f.txt", 2) == LineTranslation("f.txt", 1)

    def test_reversed_base_move_reads_diff_backwards(self):
        # Diff from the older base to the newer one added two lines on top;
        # line 4 of the newer base is line 2 of the older one.
        (file_diff,) = parse_diff("--- a/f.txt\n+++ b/f.txt\n@@ -1,2 +1,4 @@\n+n1\n+n2\n a\n b\n")
        assert translate_across_base_move([file_diff], "f.txt", 4, reversed_diff=True) == LineTranslation("f.txt", 2)

    def test_reversed_base_move_matches_to_path(self):
        renamed = _file_diff(Change(type="normal", ln1=1, ln2=1), from_path="old.py", to_path="new.py")
        assert translate_across_base_move([renamed], "new.py", 1, reversed_diff=True) == LineTranslation("old.py", 1)
        assert translate_across_base_move([renamed], "old.py", 1, reversed_diff=True) is None


class TestChangesAtLine:
    def test_collects_add_and_del_by_line(self):
        changes = collect_line_changes(_scenario_a(), 12, "right")
        assert [c.type for c in changes] == ["del", "add"]

    def test_context_matches_by_side(self):
        file_diff = _file_diff(Change(type="add", ln=1), Change(type="normal", ln1=1, ln2=2))
        assert [c.type for c in collect_line_changes(file_diff, 2, "right")] == ["normal"]
        assert collect_line_changes(file_diff, 2, "left") == []
        assert [c.type for c in collect_line_changes(file_diff, 1, "left")] == ["normal"]

    def test_has_change_at(self):
        assert has_change_at(_scenario_a(), 12, "left", ("del",))
        assert not has_change_at(_scenario_a(), 13, "left", ("del",))
        assert has_change_at(_scenario_a(), 13, "right", ("add", "normal"))
