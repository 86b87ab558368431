"""Line-level preview diffs based on the longest common subsequence."""
from __future__ import annotations

from typing import Iterable, List, Optional, Sequence

from patchflow.models import DiffKind, DiffLine, DiffStats


def _lcs(original: Sequence[str], modified: Sequence[str]) -> List[str]:
    rows, cols = len(original), len(modified)
    table = [[0] * (cols + 1) for _ in range(rows + 1)]
    for i in range(1, rows + 1):
        for j in range(1, cols + 1):
            if original[i - 1] == modified[j - 1]:
                table[i][j] = table[i - 1][j - 1] + 1
            else:
                table[i][j] = max(table[i - 1][j], table[i][j - 1])

    common: List[str] = []
    i, j = rows, cols
    while i > 0 and j > 0:
        if original[i - 1] == modified[j - 1]:
            common.append(original[i - 1])
            i -= 1
            j -= 1
        elif table[i - 1][j] >= table[i][j - 1]:
            i -= 1
        else:
            j -= 1
    common.reverse()
    return common


def generate_diff(original: Optional[str], modified: Optional[str]) -> List[DiffLine]:
    """Align ``original`` and ``modified`` line by line.

    At any position where neither side continues the common subsequence,
    removals are emitted before additions.
    """

    if not original and not modified:
        return []
    if not original:
        return [
            DiffLine(DiffKind.ADDED, text, new_line_number=number)
            for number, text in enumerate((modified or "").split("\n"), start=1)
        ]
    if not modified:
        return [
            DiffLine(DiffKind.REMOVED, text, old_line_number=number)
            for number, text in enumerate(original.split("\n"), start=1)
        ]

    old_lines = original.split("\n")
    new_lines = modified.split("\n")
    common = _lcs(old_lines, new_lines)

    result: List[DiffLine] = []
    i = j = k = 0
    old_number = new_number = 1
    while i < len(old_lines) or j < len(new_lines):
        target = common[k] if k < len(common) else None
        old_line = old_lines[i] if i < len(old_lines) else None
        new_line = new_lines[j] if j < len(new_lines) else None
        if target is not None and old_line == target and new_line == target:
            result.append(DiffLine(DiffKind.UNCHANGED, target, old_number, new_number))
            i, j, k = i + 1, j + 1, k + 1
            old_number += 1
            new_number += 1
        elif old_line is not None and (target is None or old_line != target):
            result.append(DiffLine(DiffKind.REMOVED, old_line, old_line_number=old_number))
            i += 1
            old_number += 1
        else:
            result.append(DiffLine(DiffKind.ADDED, new_line, new_line_number=new_number))
            j += 1
            new_number += 1
    return result


def diff_stats(lines: Iterable[DiffLine]) -> DiffStats:
    added = removed = unchanged = 0
    for line in lines:
        if line.kind is DiffKind.ADDED:
            added += 1
        elif line.kind is DiffKind.REMOVED:
            removed += 1
        else:
            unchanged += 1
    return DiffStats(added=added, removed=removed, unchanged=unchanged)


_PREFIX = {DiffKind.ADDED: "+", DiffKind.REMOVED: "-", DiffKind.UNCHANGED: " "}


def render_diff(lines: Sequence[DiffLine], *, context: Optional[int] = None) -> str:
    """Render diff lines as plain text with old/new line number gutters.

    When ``context`` is given, unchanged lines further than ``context`` lines
    from any change are collapsed into a ``...`` marker.
    """

    if not lines:
        return "(no differences)"
    keep = [True] * len(lines)
    if context is not None:
        changed = [index for index, line in enumerate(lines) if line.kind is not DiffKind.UNCHANGED]
        keep = [
            line.kind is not DiffKind.UNCHANGED
            or any(abs(index - position) <= context for position in changed)
            for index, line in enumerate(lines)
        ]

    stats = diff_stats(lines)
    rendered = [f"+{stats.added} -{stats.removed}"]
    skipping = False
    for line, visible in zip(lines, keep):
        if not visible:
            if not skipping:
                rendered.append("...")
            skipping = True
            continue
        skipping = False
        old = "" if line.old_line_number is None else str(line.old_line_number)
        new = "" if line.new_line_number is None else str(line.new_line_number)
        rendered.append(f"{old:>5} {new:>5} {_PREFIX[line.kind]} {line.text}")
    return "\n".join(rendered)


diff = generate_diff

__all__ = ["diff", "diff_stats", "generate_diff", "render_diff"]
