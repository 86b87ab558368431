"""Anchor-based file patching driven by tagged assistant replies.

The three pure entry points are :func:`parse`, :func:`apply` and :func:`diff`.
:class:`PatchSession` wires them to a content store.
"""

from __future__ import annotations

from patchflow.diffing import diff, render_diff
from patchflow.merger import PatchMerger, apply
from patchflow.models import (
    AnchorMatch,
    AnchorMode,
    DiffKind,
    DiffLine,
    FileParseError,
    Instruction,
    MergeErrorKind,
    MergeOutcome,
    Operation,
    ParseOutcome,
    StrictAnchorMode,
)
from patchflow.parser import InstructionParser, parse
from patchflow.session import BatchResult, FileChange, FileChangeStatus, PatchSession

__all__ = [
    "AnchorMatch",
    "AnchorMode",
    "BatchResult",
    "DiffKind",
    "DiffLine",
    "FileChange",
    "FileChangeStatus",
    "FileParseError",
    "Instruction",
    "InstructionParser",
    "MergeErrorKind",
    "MergeOutcome",
    "Operation",
    "ParseOutcome",
    "PatchMerger",
    "PatchSession",
    "StrictAnchorMode",
    "apply",
    "diff",
    "parse",
    "render_diff",
]
