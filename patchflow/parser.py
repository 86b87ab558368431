"""Tag-based instruction parser for assistant replies.

A message is a sequence of file blocks::

    [FILE] src/app.py
    [INSERT_AFTER]
    [ANCHOR]import os[/ANCHOR]
    [CONTENT]
    import sys
    [/CONTENT]

Each block starts at a file marker and runs until the next marker or the end
of the message. Exactly one operation is recognised per block. Blocks that
match nothing are reported as errors, and so are extra operations in a block
that already has one; parsing carries on either way.
"""
from __future__ import annotations

import logging
import re
from typing import List, Match, Optional, Pattern, Tuple

from patchflow.logging_utils import PARSE_LOGGER_NAME, summarize_message
from patchflow.models import FileParseError, Instruction, Operation, ParseOutcome

logger = logging.getLogger(PARSE_LOGGER_NAME)

DEFAULT_FILE_TAG = "FILE"
NO_MARKER_CONTEXT = "<message>"

_FLAGS = re.IGNORECASE | re.DOTALL
# Horizontal whitespace plus at most one newline after an opening body tag.
_OPEN = r"[ \t]*(?:\r?\n)?"
_TWO_ANCHORS = (
    r"\s*\[ANCHOR_START\](?P<anchor>.*?)\[/ANCHOR_START\]"
    r"\s*\[ANCHOR_END\](?P<anchor_end>.*?)\[/ANCHOR_END\]"
)
_ONE_ANCHOR = r"\s*\[ANCHOR\](?P<anchor>.*?)\[/ANCHOR\]"
_CONTENT = rf"\s*\[CONTENT\]{_OPEN}(?P<content>.*?)\[/CONTENT\]"

# Priority order matters: the first rule that matches wins.
_RULES: Tuple[Tuple[Operation, Pattern[str]], ...] = (
    (Operation.DELETE_FILE, re.compile(r"\[DELETE_FILE\]", _FLAGS)),
    (Operation.CREATE, re.compile(rf"\[CREATE\]{_OPEN}(?P<content>.*?)\[/CREATE\]", _FLAGS)),
    (Operation.REPLACE, re.compile(rf"\[REPLACE\]{_OPEN}(?P<content>.*?)\[/REPLACE\]", _FLAGS)),
    (Operation.FIND_REPLACE, re.compile(rf"\[MODIFY\]{_TWO_ANCHORS}{_CONTENT}", _FLAGS)),
    (Operation.DELETE_CONTENT, re.compile(rf"\[DELETE\]{_TWO_ANCHORS}", _FLAGS)),
    (Operation.INSERT_AFTER, re.compile(rf"\[INSERT_AFTER\]{_ONE_ANCHOR}{_CONTENT}", _FLAGS)),
    (Operation.INSERT_BEFORE, re.compile(rf"\[INSERT_BEFORE\]{_ONE_ANCHOR}{_CONTENT}", _FLAGS)),
)


class BlockError(ValueError):
    """A single file block could not be turned into an instruction."""


def _drop_closing_newline(body: str) -> str:
    if body.endswith("\r\n"):
        return body[:-2]
    if body.endswith("\n"):
        return body[:-1]
    return body


def _clean_content(operation: Operation, body: Optional[str]) -> Optional[str]:
    if body is None:
        return None
    if operation is Operation.CREATE:
        return body.rstrip()
    return _drop_closing_newline(body)


def _clean_anchor(body: Optional[str], label: str) -> Optional[str]:
    if body is None:
        return None
    anchor = body.strip()
    if not anchor:
        raise BlockError(f"empty {label}")
    return anchor


def _first_rule(body: str) -> Optional[Tuple[Operation, Match[str]]]:
    for operation, pattern in _RULES:
        match = pattern.search(body)
        if match is not None:
            return operation, match
    return None


def _extra_operations(body: str) -> List[Operation]:
    """Operations still recognisable once the winning rule's text is cut out."""

    found = _first_rule(body)
    if found is None:
        return []
    match = found[1]
    rest = body[: match.start()] + body[match.end() :]
    return [operation for operation, pattern in _RULES if pattern.search(rest)]


def _file_marker_pattern(file_tag: str) -> Pattern[str]:
    return re.compile(
        rf"^[ \t]*\[{re.escape(file_tag)}\][ \t]*(?P<path>[^\n\[]*)",
        re.IGNORECASE | re.MULTILINE,
    )


class InstructionParser:
    """Turn a raw assistant message into ordered per-file instructions."""

    def __init__(self, file_tag: str = DEFAULT_FILE_TAG):
        if not file_tag or not file_tag.strip():
            raise ValueError("file_tag must be a non-empty tag name")
        self.file_tag = file_tag.strip()
        self._marker = _file_marker_pattern(self.file_tag)

    def parse(self, text: Optional[str]) -> ParseOutcome:
        message = text or ""
        outcome = ParseOutcome()
        markers = list(self._marker.finditer(message))
        if not markers:
            outcome.file_errors.append(
                FileParseError(NO_MARKER_CONTEXT, f"no [{self.file_tag}] marker found")
            )
            logger.info("parse found no file markers in %s", summarize_message(message))
            return outcome

        for position, marker in enumerate(markers):
            block_end = markers[position + 1].start() if position + 1 < len(markers) else len(message)
            path = marker.group("path").strip()
            if not path:
                outcome.file_errors.append(
                    FileParseError(f"<block {position + 1}>", "empty file path")
                )
                continue
            body = message[marker.end() : block_end]
            try:
                instruction = self.parse_block(path, body)
            except BlockError as exc:
                outcome.file_errors.append(FileParseError(path, str(exc)))
                continue
            outcome.instructions.append(instruction)
            extras = _extra_operations(body)
            if extras:
                names = ", ".join(operation.value for operation in extras)
                outcome.file_errors.append(FileParseError(path, f"ignored extra operation(s): {names}"))

        logger.info(
            "parsed %d instruction(s) with %d error(s)",
            len(outcome.instructions),
            len(outcome.file_errors),
        )
        for error in outcome.file_errors:
            logger.warning("parse error %s", error)
        return outcome

    def parse_block(self, path: str, body: str) -> Instruction:
        """Match one block body against the operation rules in priority order."""

        found = _first_rule(body)
        if found is None:
            raise BlockError("no recognized operation")
        operation, match = found
        groups = match.groupdict()
        return Instruction(
            file_path=path,
            operation=operation,
            content=_clean_content(operation, groups.get("content")),
            anchor=_clean_anchor(groups.get("anchor"), "anchor"),
            anchor_end=_clean_anchor(groups.get("anchor_end"), "end anchor"),
        )


_DEFAULT_PARSER = InstructionParser()


def parse(text: Optional[str], file_tag: Optional[str] = None) -> ParseOutcome:
    """Parse ``text`` with the default grammar or a custom file marker tag."""

    parser = _DEFAULT_PARSER if file_tag is None else InstructionParser(file_tag)
    return parser.parse(text)


__all__ = ["DEFAULT_FILE_TAG", "InstructionParser", "NO_MARKER_CONTEXT", "parse"]
