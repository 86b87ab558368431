from __future__ import annotations

import pytest

from patchflow.merger import PatchMerger, apply
from patchflow.models import AnchorMode, Instruction, MergeErrorKind, Operation, StrictAnchorMode


def _insert_after(anchor: str, content: str, **kwargs) -> Instruction:
    return Instruction("f.txt", Operation.INSERT_AFTER, content=content, anchor=anchor, **kwargs)


def _insert_before(anchor: str, content: str) -> Instruction:
    return Instruction("f.txt", Operation.INSERT_BEFORE, content=content, anchor=anchor)


def _find_replace(start: str, end: str, content: str) -> Instruction:
    return Instruction("f.txt", Operation.FIND_REPLACE, content=content, anchor=start, anchor_end=end)


def _delete_content(start: str, end: str) -> Instruction:
    return Instruction("f.txt", Operation.DELETE_CONTENT, anchor=start, anchor_end=end)


@pytest.mark.parametrize("operation", [Operation.CREATE, Operation.REPLACE])
def test_whole_file_operations_ignore_current_text_and_are_idempotent(operation) -> None:
    instruction = Instruction("f.txt", operation, content="fresh\n")

    once = apply(instruction, "old content")
    twice = apply(instruction, once.new_content)

    assert once.success
    assert once.new_content == "fresh\n"
    assert twice.new_content == once.new_content


def test_create_without_content_yields_empty_text() -> None:
    outcome = apply(Instruction("f.txt", Operation.CREATE), None)

    assert outcome.success
    assert outcome.new_content == ""
    assert not outcome.deleted


def test_delete_file_signals_removal() -> None:
    outcome = apply(Instruction("f.txt", Operation.DELETE_FILE), "anything")

    assert outcome.success
    assert outcome.deleted
    assert outcome.new_content is None


def test_insert_after_adds_new_line_after_anchor_line() -> None:
    outcome = apply(_insert_after("start", "NEW"), "start\nmiddle\nend")

    assert outcome.new_content == "start\nNEW\nmiddle\nend"


def test_insert_after_at_end_of_text() -> None:
    outcome = apply(_insert_after("end", "tail"), "start\nend")

    assert outcome.new_content == "start\nend\ntail"


def test_insert_after_mid_line_is_a_literal_splice() -> None:
    outcome = apply(_insert_after("foo(", "bar, "), "x = foo(1)")

    assert outcome.new_content == "x = foo(bar, 1)"


def test_insert_before_mid_line_is_a_literal_splice() -> None:
    outcome = apply(_insert_before("1)", "2, "), "f(1)")

    assert outcome.success
    assert outcome.new_content == "f(2, 1)"


def test_insert_before_adds_new_line_before_anchor_line() -> None:
    outcome = apply(_insert_before("b", "NEW"), "a\nb\nc")

    assert outcome.new_content == "a\nNEW\nb\nc"


def test_ambiguous_anchor_fails_with_count() -> None:
    outcome = apply(_insert_after("foo", "x"), "foo\nbar\nfoo")

    assert not outcome.success
    assert outcome.error_kind is MergeErrorKind.ANCHOR_AMBIGUOUS
    assert outcome.occurrence_count == 2
    assert "insert_after" in outcome.message
    assert "2 occurrences" in outcome.message


def test_missing_anchor_fails() -> None:
    outcome = apply(_insert_before("nowhere", "x"), "a\nb")

    assert outcome.error_kind is MergeErrorKind.ANCHOR_NOT_FOUND
    assert outcome.error_detail == "anchor not found"


@pytest.mark.parametrize("base", [None, ""])
def test_anchor_operations_require_base_content(base) -> None:
    outcome = apply(_find_replace("a", "b", "c"), base)

    assert outcome.error_kind is MergeErrorKind.EMPTY_BASE_CONTENT


def test_find_replace_splices_between_anchors() -> None:
    pre, start, mid, end, post = "alpha\n", "<<A>>", "\nmiddle stuff\n", "<<B>>", "\nomega"

    outcome = apply(_find_replace(start, end, "NEW"), pre + start + mid + end + post)

    assert outcome.new_content == pre + "NEW" + post


def test_delete_content_removes_anchors_and_span() -> None:
    text = "keep\n<!--start-->\ndrop\n<!--end-->\nkeep2"

    outcome = apply(_delete_content("<!--start-->", "<!--end-->"), text)

    assert outcome.new_content == "keep\n\nkeep2"


def test_end_anchor_is_only_searched_after_start() -> None:
    outcome = apply(_find_replace("START", "END", "X"), "END\nSTART\nbody\nEND\n")

    assert outcome.success
    assert outcome.new_content == "END\nX\n"


def test_end_anchor_before_start_is_not_found() -> None:
    outcome = apply(_delete_content("START", "END"), "END\nSTART\nbody")

    assert outcome.error_kind is MergeErrorKind.ANCHOR_NOT_FOUND
    assert outcome.error_detail == "end anchor not found"


def test_end_anchor_must_be_unique_after_start() -> None:
    outcome = apply(_delete_content("S", "E"), "S\nE\nE")

    assert outcome.error_kind is MergeErrorKind.ANCHOR_AMBIGUOUS
    assert outcome.occurrence_count == 2


def test_ambiguous_start_anchor_stops_before_end_search() -> None:
    outcome = apply(_find_replace("S", "E", "x"), "S\nS\nE")

    assert outcome.error_detail == "start anchor is ambiguous (2 occurrences)"


def test_normalized_fallback_matches_reindented_anchor() -> None:
    text = "def f():\n    x = 1\n    return x"
    instruction = _insert_after("  x = 1\n  return x", "    # done")

    outcome = PatchMerger(StrictAnchorMode.EXACT_THEN_NORMALIZED).apply(instruction, text)

    assert outcome.new_content == "def f():\n    x = 1\n    return x\n    # done"


def test_exact_only_policy_rejects_reindented_anchor() -> None:
    text = "def f():\n    x = 1\n    return x"

    outcome = PatchMerger(StrictAnchorMode.EXACT_ONLY).apply(_insert_after("  x = 1\n  return x", "#"), text)

    assert outcome.error_kind is MergeErrorKind.ANCHOR_NOT_FOUND


def test_instruction_anchor_mode_overrides_policy() -> None:
    instruction = _insert_after("value  =  1", "# set", anchor_mode=AnchorMode.REGEX)

    outcome = PatchMerger(StrictAnchorMode.EXACT_ONLY).apply(instruction, "value = 1\nother = 2")

    assert outcome.new_content == "value = 1\n# set\nother = 2"


def test_apply_all_pipes_outcomes_in_order() -> None:
    merger = PatchMerger()
    instructions = [
        _insert_after("one", "two"),
        _insert_after("two", "three"),
    ]

    result = merger.apply_all(instructions, "one")

    assert result.success
    assert result.content == "one\ntwo\nthree"


def test_apply_all_stops_at_first_failure() -> None:
    merger = PatchMerger()
    instructions = [
        _insert_after("one", "two"),
        _insert_after("missing", "x"),
        _insert_after("two", "never"),
    ]

    result = merger.apply_all(instructions, "one")

    assert not result.success
    assert result.failed_index == 1
    assert result.content == "one\ntwo"
    assert result.failure.error_kind is MergeErrorKind.ANCHOR_NOT_FOUND


def test_apply_all_tracks_deletion_then_recreation() -> None:
    merger = PatchMerger()

    deleted = merger.apply_all([Instruction("f.txt", Operation.DELETE_FILE)], "x")
    recreated = merger.apply_all(
        [Instruction("f.txt", Operation.DELETE_FILE), Instruction("f.txt", Operation.CREATE, content="y")],
        "x",
    )

    assert deleted.deleted and deleted.content is None
    assert not recreated.deleted and recreated.content == "y"


def test_missing_handler_reports_unsupported_operation() -> None:
    merger = PatchMerger()
    del merger._handlers[Operation.INSERT_BEFORE]

    outcome = merger.apply(_insert_before("a", "b"), "a")

    assert outcome.error_kind is MergeErrorKind.UNSUPPORTED_OPERATION
