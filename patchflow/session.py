"""Parse -> fetch -> merge -> write orchestration over an injected store."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional

from patchflow.config import PatchflowConfig
from patchflow.diffing import diff_stats, generate_diff
from patchflow.errors import StoreError
from patchflow.logging_utils import SESSION_LOGGER_NAME, format_merge_failure, summarize_message
from patchflow.merger import PatchMerger
from patchflow.models import (
    DiffLine,
    DiffStats,
    FileParseError,
    Instruction,
    MergeErrorKind,
    Operation,
)
from patchflow.parser import InstructionParser
from patchflow.stores.base import ContentStore

logger = logging.getLogger(SESSION_LOGGER_NAME)


class FileChangeStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    ANCHOR_NOT_FOUND = "anchor_not_found"
    SKIPPED = "skipped"

    @property
    def is_failure(self) -> bool:
        return self in (FileChangeStatus.FAILED, FileChangeStatus.ANCHOR_NOT_FOUND)


@dataclass
class FileChange:
    """Everything known about one file between prepare and commit."""

    path: str
    instructions: List[Instruction]
    original_content: Optional[str] = None
    modified_content: Optional[str] = None
    status: FileChangeStatus = FileChangeStatus.PENDING
    error_message: Optional[str] = None
    error_kind: Optional[MergeErrorKind] = None
    identity_token: Optional[str] = None
    existed: bool = False
    delete: bool = False

    @property
    def operation(self) -> Operation:
        return self.instructions[0].operation

    def diff(self) -> List[DiffLine]:
        modified = None if self.delete else self.modified_content
        return generate_diff(self.original_content, modified)

    def stats(self) -> DiffStats:
        return diff_stats(self.diff())


@dataclass
class BatchResult:
    changes: List[FileChange] = field(default_factory=list)
    parse_errors: List[FileParseError] = field(default_factory=list)
    ignored_selection: List[int] = field(default_factory=list)

    def get(self, path: str) -> Optional[FileChange]:
        for change in self.changes:
            if change.path == path:
                return change
        return None

    def with_status(self, *statuses: FileChangeStatus) -> List[FileChange]:
        return [change for change in self.changes if change.status in statuses]

    @property
    def pending(self) -> List[FileChange]:
        return self.with_status(FileChangeStatus.PENDING)

    @property
    def succeeded(self) -> List[FileChange]:
        return self.with_status(FileChangeStatus.SUCCESS)

    @property
    def failed(self) -> List[FileChange]:
        return [change for change in self.changes if change.status.is_failure]

    @property
    def has_failures(self) -> bool:
        return bool(self.failed or self.parse_errors)


def group_by_path(instructions: Iterable[Instruction]) -> Dict[str, List[Instruction]]:
    """Group instructions per file, keeping first-seen path order and source order."""

    grouped: Dict[str, List[Instruction]] = {}
    for instruction in instructions:
        grouped.setdefault(instruction.file_path, []).append(instruction)
    return grouped


class PatchSession:
    """Apply an assistant message to files held by ``store``."""

    def __init__(
        self,
        store: ContentStore,
        config: Optional[PatchflowConfig] = None,
        *,
        parser: Optional[InstructionParser] = None,
        merger: Optional[PatchMerger] = None,
    ):
        self.store = store
        self.config = config or PatchflowConfig()
        self.parser = parser or InstructionParser(self.config.file_tag)
        self.merger = merger or PatchMerger(self.config.anchor_mode)

    def prepare(
        self,
        message: str,
        ref: Optional[str] = None,
        select: Optional[Iterable[int]] = None,
    ) -> BatchResult:
        """Parse ``message`` and compute new content per file without writing.

        ``select`` restricts the batch to the given instruction indices; indices
        outside the parsed range end up in ``BatchResult.ignored_selection``.
        """

        active_ref = ref or self.config.branch
        outcome = self.parser.parse(message)
        instructions = outcome.instructions
        ignored: List[int] = []
        if select is not None:
            requested = set(select)
            wanted = sorted(index for index in requested if 0 <= index < len(instructions))
            ignored = sorted(requested.difference(wanted))
            if ignored:
                logger.warning(
                    "ignoring instruction indices %s (message has %d instruction(s))", ignored, len(instructions)
                )
            instructions = [instructions[index] for index in wanted]

        logger.info(
            "prepare %s: %d instruction(s) on %s",
            summarize_message(message),
            len(instructions),
            self.store.describe(),
        )
        batch = BatchResult(parse_errors=list(outcome.file_errors), ignored_selection=ignored)
        for path, file_instructions in group_by_path(instructions).items():
            change = self._prepare_file(path, file_instructions, active_ref)
            logger.info("prepared %s: %s", path, change.status.value)
            batch.changes.append(change)
        return batch

    def _prepare_file(self, path: str, instructions: List[Instruction], ref: Optional[str]) -> FileChange:
        change = FileChange(path=path, instructions=instructions)
        if not all(instruction.operation is Operation.CREATE for instruction in instructions):
            try:
                fetched = self.store.fetch(path, ref=ref)
            except StoreError as exc:
                change.status = FileChangeStatus.FAILED
                change.error_message = str(exc)
                return change
            if fetched.found:
                change.existed = True
                change.original_content = fetched.text
                change.identity_token = fetched.identity_token

        result = self.merger.apply_all(instructions, change.original_content)
        if not result.success:
            failure = result.failure
            change.error_kind = failure.error_kind
            change.status = (
                FileChangeStatus.ANCHOR_NOT_FOUND
                if failure.error_kind.is_anchor_failure
                else FileChangeStatus.FAILED
            )
            change.error_message = format_merge_failure(
                result.failed_index, instructions[result.failed_index], failure
            )
            return change

        if result.deleted:
            if not change.existed:
                change.status = FileChangeStatus.SKIPPED
                change.error_message = "file does not exist; nothing to delete"
            else:
                change.delete = True
            return change

        change.modified_content = result.content
        if change.existed and change.modified_content == change.original_content:
            change.status = FileChangeStatus.SKIPPED
            change.error_message = "no changes"
        return change

    def commit(self, batch: BatchResult, ref: Optional[str] = None) -> BatchResult:
        """Write or delete every pending change through the store."""

        active_ref = ref or self.config.branch
        for change in batch.pending:
            message = self.config.format_commit_message(change.path, change.operation.value)
            try:
                if change.delete:
                    self.store.delete(change.path, change.identity_token, ref=active_ref, message=message)
                    change.identity_token = None
                else:
                    written = self.store.write(
                        change.path,
                        change.modified_content or "",
                        identity_token=change.identity_token,
                        ref=active_ref,
                        message=message,
                    )
                    change.identity_token = written.identity_token
            except StoreError as exc:
                change.status = FileChangeStatus.FAILED
                change.error_message = str(exc)
                logger.warning("commit %s failed: %s", change.path, exc)
                continue
            change.status = FileChangeStatus.SUCCESS
            logger.info("committed %s (%s)", change.path, "deleted" if change.delete else "written")
        return batch

    def run(self, message: str, ref: Optional[str] = None, *, dry_run: bool = False) -> BatchResult:
        batch = self.prepare(message, ref=ref)
        if dry_run:
            return batch
        return self.commit(batch, ref=ref)


__all__ = [
    "BatchResult",
    "FileChange",
    "FileChangeStatus",
    "PatchSession",
    "group_by_path",
]
