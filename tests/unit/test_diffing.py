from __future__ import annotations

import pytest

from patchflow.diffing import diff_stats, generate_diff, render_diff
from patchflow.models import DiffKind, DiffLine


def test_single_line_change_emits_removal_before_addition() -> None:
    lines = generate_diff("a\nb\nc", "a\nx\nc")

    assert lines == [
        DiffLine(DiffKind.UNCHANGED, "a", 1, 1),
        DiffLine(DiffKind.REMOVED, "b", old_line_number=2),
        DiffLine(DiffKind.ADDED, "x", new_line_number=2),
        DiffLine(DiffKind.UNCHANGED, "c", 3, 3),
    ]


def test_disjoint_texts_walk_all_removals_first() -> None:
    kinds = [(line.kind, line.text) for line in generate_diff("a\nb", "c\nd")]

    assert kinds == [
        (DiffKind.REMOVED, "a"),
        (DiffKind.REMOVED, "b"),
        (DiffKind.ADDED, "c"),
        (DiffKind.ADDED, "d"),
    ]


def test_both_empty_yields_nothing() -> None:
    assert generate_diff("", "") == []
    assert generate_diff(None, None) == []


def test_missing_original_marks_everything_added() -> None:
    lines = generate_diff(None, "one\ntwo")

    assert lines == [
        DiffLine(DiffKind.ADDED, "one", new_line_number=1),
        DiffLine(DiffKind.ADDED, "two", new_line_number=2),
    ]


def test_empty_modified_marks_everything_removed() -> None:
    lines = generate_diff("one\ntwo", "")

    assert [(line.kind, line.old_line_number, line.new_line_number) for line in lines] == [
        (DiffKind.REMOVED, 1, None),
        (DiffKind.REMOVED, 2, None),
    ]


def test_insertion_in_the_middle() -> None:
    lines = generate_diff("a\nc", "a\nb\nc")

    assert lines[1] == DiffLine(DiffKind.ADDED, "b", new_line_number=2)
    assert lines[2] == DiffLine(DiffKind.UNCHANGED, "c", 2, 3)


@pytest.mark.parametrize(
    "original, modified",
    [
        ("a\nb\nc", "a\nx\nc"),
        ("x\na", "a\nx"),
        ("1\n2\n3\n4\n5", "0\n2\n4\n4\n6\n"),
        ("same\nsame\nsame", "same"),
        ("def f():\n    pass\n", "def f():\n    return 1\n\n"),
    ],
)
def test_line_counts_are_conserved(original: str, modified: str) -> None:
    stats = diff_stats(generate_diff(original, modified))

    assert stats.unchanged + stats.removed == len(original.split("\n"))
    assert stats.unchanged + stats.added == len(modified.split("\n"))


def test_line_numbers_are_sequential_per_side() -> None:
    lines = generate_diff("1\n2\n3\n4\n5", "0\n2\n4\n4\n6")

    old_numbers = [line.old_line_number for line in lines if line.old_line_number is not None]
    new_numbers = [line.new_line_number for line in lines if line.new_line_number is not None]
    assert old_numbers == [1, 2, 3, 4, 5]
    assert new_numbers == [1, 2, 3, 4, 5]


def test_render_diff_shows_stats_and_prefixes() -> None:
    rendered = render_diff(generate_diff("a\nb", "a\nc"))

    lines = rendered.splitlines()
    assert lines[0] == "+1 -1"
    assert lines[1].endswith("  a")
    assert lines[2].endswith("- b")
    assert lines[3].endswith("+ c")


def test_render_diff_collapses_distant_context() -> None:
    original = "\n".join(str(number) for number in range(10))
    modified = original.replace("9", "nine")

    rendered = render_diff(generate_diff(original, modified), context=1)

    assert "..." in rendered
    assert "    1     1" not in rendered
    assert "+ nine" in rendered


def test_render_diff_without_lines() -> None:
    assert render_diff([]) == "(no differences)"
