"""Value types shared by the parser, merger and diff generator."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class Operation(str, Enum):
    CREATE = "create"
    REPLACE = "replace"
    DELETE_FILE = "delete_file"
    FIND_REPLACE = "find_replace"
    DELETE_CONTENT = "delete_content"
    INSERT_BEFORE = "insert_before"
    INSERT_AFTER = "insert_after"

    @property
    def description(self) -> str:
        return _OPERATION_DESCRIPTIONS[self]

    @property
    def requires_anchor(self) -> bool:
        return self not in (Operation.CREATE, Operation.REPLACE, Operation.DELETE_FILE)


_OPERATION_DESCRIPTIONS = {
    Operation.CREATE: "Create file",
    Operation.REPLACE: "Replace file",
    Operation.DELETE_FILE: "Delete file",
    Operation.FIND_REPLACE: "Replace between anchors",
    Operation.DELETE_CONTENT: "Delete between anchors",
    Operation.INSERT_BEFORE: "Insert before anchor",
    Operation.INSERT_AFTER: "Insert after anchor",
}


class AnchorMode(str, Enum):
    EXACT = "exact"
    NORMALIZED = "normalized"
    REGEX = "regex"


class StrictAnchorMode(str, Enum):
    """Which looser search, if any, runs when an exact anchor is missing."""

    EXACT_ONLY = "exact-only"
    EXACT_THEN_NORMALIZED = "exact-then-normalized"
    EXACT_THEN_WHITESPACE = "exact-then-whitespace"

    @property
    def fallback(self) -> Optional[AnchorMode]:
        if self is StrictAnchorMode.EXACT_THEN_NORMALIZED:
            return AnchorMode.NORMALIZED
        if self is StrictAnchorMode.EXACT_THEN_WHITESPACE:
            return AnchorMode.REGEX
        return None


@dataclass(frozen=True)
class Instruction:
    """One parsed edit bound to a single file path."""

    file_path: str
    operation: Operation
    content: Optional[str] = None
    anchor: Optional[str] = None
    anchor_end: Optional[str] = None
    anchor_mode: Optional[AnchorMode] = None


@dataclass(frozen=True)
class FileParseError:
    context: str
    message: str

    def __str__(self) -> str:
        return f"{self.context}: {self.message}"


@dataclass
class ParseOutcome:
    instructions: List[Instruction] = field(default_factory=list)
    file_errors: List[FileParseError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.file_errors

    def paths(self) -> List[str]:
        """Distinct instruction paths in first-seen order."""

        seen: List[str] = []
        for instruction in self.instructions:
            if instruction.file_path not in seen:
                seen.append(instruction.file_path)
        return seen


@dataclass(frozen=True)
class AnchorMatch:
    """Located span inside the searched text.

    ``start`` and ``end`` are character offsets into the search subject, which
    may be a suffix of the document rather than the whole file.
    """

    start: int
    end: int
    occurrence_count: int
    is_exact: bool
    mode: AnchorMode = AnchorMode.EXACT

    @property
    def is_unique(self) -> bool:
        return self.occurrence_count == 1


class MergeErrorKind(str, Enum):
    ANCHOR_NOT_FOUND = "anchor_not_found"
    ANCHOR_AMBIGUOUS = "anchor_ambiguous"
    EMPTY_BASE_CONTENT = "empty_base_content"
    UNSUPPORTED_OPERATION = "unsupported_operation"

    @property
    def is_anchor_failure(self) -> bool:
        return self in (MergeErrorKind.ANCHOR_NOT_FOUND, MergeErrorKind.ANCHOR_AMBIGUOUS)


@dataclass(frozen=True)
class MergeOutcome:
    success: bool
    operation: Operation
    new_content: Optional[str] = None
    deleted: bool = False
    error_kind: Optional[MergeErrorKind] = None
    error_detail: Optional[str] = None
    occurrence_count: Optional[int] = None

    @classmethod
    def ok(cls, operation: Operation, new_content: str) -> "MergeOutcome":
        return cls(success=True, operation=operation, new_content=new_content)

    @classmethod
    def removal(cls) -> "MergeOutcome":
        return cls(success=True, operation=Operation.DELETE_FILE, deleted=True)

    @classmethod
    def failure(
        cls,
        operation: Operation,
        kind: MergeErrorKind,
        detail: str,
        occurrence_count: Optional[int] = None,
    ) -> "MergeOutcome":
        return cls(
            success=False,
            operation=operation,
            error_kind=kind,
            error_detail=detail,
            occurrence_count=occurrence_count,
        )

    @property
    def message(self) -> str:
        if self.success:
            return f"{self.operation.value}: ok"
        return f"{self.operation.value}: {self.error_detail}"


class DiffKind(str, Enum):
    UNCHANGED = "unchanged"
    ADDED = "added"
    REMOVED = "removed"


@dataclass(frozen=True)
class DiffLine:
    kind: DiffKind
    text: str
    old_line_number: Optional[int] = None
    new_line_number: Optional[int] = None


@dataclass(frozen=True)
class DiffStats:
    added: int = 0
    removed: int = 0
    unchanged: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.added or self.removed)


__all__ = [
    "AnchorMatch",
    "AnchorMode",
    "DiffKind",
    "DiffLine",
    "DiffStats",
    "FileParseError",
    "Instruction",
    "MergeErrorKind",
    "MergeOutcome",
    "Operation",
    "ParseOutcome",
    "StrictAnchorMode",
]
