"""Apply parsed instructions to file text."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Sequence, Tuple, Union

from patchflow.anchors import locate, locate_with_policy
from patchflow.logging_utils import MERGE_LOGGER_NAME
from patchflow.models import (
    AnchorMatch,
    Instruction,
    MergeErrorKind,
    MergeOutcome,
    Operation,
    StrictAnchorMode,
)

logger = logging.getLogger(MERGE_LOGGER_NAME)

DEFAULT_ANCHOR_MODE = StrictAnchorMode.EXACT_THEN_NORMALIZED

_Located = Union[AnchorMatch, MergeOutcome]


def _at_line_end(text: str, index: int) -> bool:
    return index >= len(text) or text[index] == "\n"


def _at_line_start(text: str, index: int) -> bool:
    return index == 0 or text[index - 1] == "\n"


@dataclass(frozen=True)
class FileMergeResult:
    """Result of piping every instruction for one file through the merger."""

    content: Optional[str]
    deleted: bool = False
    failed_index: Optional[int] = None
    failure: Optional[MergeOutcome] = None

    @property
    def success(self) -> bool:
        return self.failure is None


class PatchMerger:
    """Pure text transformations for each :class:`Operation`."""

    def __init__(self, anchor_mode: StrictAnchorMode = DEFAULT_ANCHOR_MODE):
        self.anchor_mode = StrictAnchorMode(anchor_mode)
        self._handlers: Dict[Operation, Callable[[Instruction, Optional[str]], MergeOutcome]] = {
            Operation.CREATE: self._whole_file,
            Operation.REPLACE: self._whole_file,
            Operation.DELETE_FILE: self._delete_file,
            Operation.FIND_REPLACE: self._find_replace,
            Operation.DELETE_CONTENT: self._delete_content,
            Operation.INSERT_AFTER: self._insert_after,
            Operation.INSERT_BEFORE: self._insert_before,
        }

    def apply(self, instruction: Instruction, current_text: Optional[str]) -> MergeOutcome:
        handler = self._handlers.get(instruction.operation)
        if handler is None:
            return MergeOutcome.failure(
                instruction.operation,
                MergeErrorKind.UNSUPPORTED_OPERATION,
                f"unsupported operation {instruction.operation!r}",
            )
        if instruction.operation.requires_anchor and not current_text:
            outcome = MergeOutcome.failure(
                instruction.operation,
                MergeErrorKind.EMPTY_BASE_CONTENT,
                f"{instruction.file_path} has no existing content to edit",
            )
        else:
            outcome = handler(instruction, current_text)
        if outcome.success:
            logger.debug("%s applied to %s", instruction.operation.value, instruction.file_path)
        else:
            logger.warning("%s failed for %s: %s", instruction.operation.value, instruction.file_path, outcome.message)
        return outcome

    def apply_all(self, instructions: Sequence[Instruction], current_text: Optional[str]) -> FileMergeResult:
        """Feed each outcome into the next instruction, stopping at the first failure."""

        text = current_text
        deleted = False
        for index, instruction in enumerate(instructions):
            outcome = self.apply(instruction, text)
            if not outcome.success:
                return FileMergeResult(content=text, deleted=deleted, failed_index=index, failure=outcome)
            if outcome.deleted:
                text, deleted = None, True
            else:
                text, deleted = outcome.new_content, False
        return FileMergeResult(content=text, deleted=deleted)

    # ------------------------------------------------------------------
    # Anchor resolution

    def _find(self, text: str, anchor: str, instruction: Instruction) -> Optional[AnchorMatch]:
        if instruction.anchor_mode is not None:
            return locate(text, anchor, instruction.anchor_mode)
        return locate_with_policy(text, anchor, self.anchor_mode)

    def _locate_unique(self, text: str, anchor: Optional[str], instruction: Instruction, label: str) -> _Located:
        if not anchor:
            return MergeOutcome.failure(
                instruction.operation, MergeErrorKind.ANCHOR_NOT_FOUND, f"{label} is empty"
            )
        match = self._find(text, anchor, instruction)
        if match is None:
            return MergeOutcome.failure(
                instruction.operation, MergeErrorKind.ANCHOR_NOT_FOUND, f"{label} not found"
            )
        if match.occurrence_count != 1:
            return MergeOutcome.failure(
                instruction.operation,
                MergeErrorKind.ANCHOR_AMBIGUOUS,
                f"{label} is ambiguous ({match.occurrence_count} occurrences)",
                occurrence_count=match.occurrence_count,
            )
        return match

    def _span(self, text: str, instruction: Instruction) -> Union[Tuple[int, int], MergeOutcome]:
        start = self._locate_unique(text, instruction.anchor, instruction, "start anchor")
        if isinstance(start, MergeOutcome):
            return start
        # The end anchor is only searched from the start anchor onwards.
        remainder = text[start.start :]
        end = self._locate_unique(remainder, instruction.anchor_end, instruction, "end anchor")
        if isinstance(end, MergeOutcome):
            return end
        return start.start, start.start + end.end

    # ------------------------------------------------------------------
    # Operation handlers

    def _whole_file(self, instruction: Instruction, current_text: Optional[str]) -> MergeOutcome:
        return MergeOutcome.ok(instruction.operation, instruction.content or "")

    def _delete_file(self, instruction: Instruction, current_text: Optional[str]) -> MergeOutcome:
        return MergeOutcome.removal()

    def _find_replace(self, instruction: Instruction, current_text: str) -> MergeOutcome:
        span = self._span(current_text, instruction)
        if isinstance(span, MergeOutcome):
            return span
        start, end = span
        replacement = instruction.content or ""
        return MergeOutcome.ok(instruction.operation, current_text[:start] + replacement + current_text[end:])

    def _delete_content(self, instruction: Instruction, current_text: str) -> MergeOutcome:
        span = self._span(current_text, instruction)
        if isinstance(span, MergeOutcome):
            return span
        start, end = span
        return MergeOutcome.ok(instruction.operation, current_text[:start] + current_text[end:])

    def _insert_after(self, instruction: Instruction, current_text: str) -> MergeOutcome:
        match = self._locate_unique(current_text, instruction.anchor, instruction, "anchor")
        if isinstance(match, MergeOutcome):
            return match
        content = instruction.content or ""
        if _at_line_end(current_text, match.end) and not content.startswith("\n"):
            content = "\n" + content
        return MergeOutcome.ok(
            instruction.operation, current_text[: match.end] + content + current_text[match.end :]
        )

    def _insert_before(self, instruction: Instruction, current_text: str) -> MergeOutcome:
        match = self._locate_unique(current_text, instruction.anchor, instruction, "anchor")
        if isinstance(match, MergeOutcome):
            return match
        content = instruction.content or ""
        if _at_line_start(current_text, match.start) and not content.endswith("\n"):
            content = content + "\n"
        return MergeOutcome.ok(
            instruction.operation, current_text[: match.start] + content + current_text[match.start :]
        )


_DEFAULT_MERGER = PatchMerger()


def apply(
    instruction: Instruction,
    current_text: Optional[str],
    anchor_mode: Optional[StrictAnchorMode] = None,
) -> MergeOutcome:
    """Apply one instruction to ``current_text`` without side effects."""

    merger = _DEFAULT_MERGER if anchor_mode is None else PatchMerger(anchor_mode)
    return merger.apply(instruction, current_text)


__all__ = ["DEFAULT_ANCHOR_MODE", "FileMergeResult", "PatchMerger", "apply"]
