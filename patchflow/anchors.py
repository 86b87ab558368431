"""Anchor search over raw document text.

Three strategies are available:

* ``exact`` -- literal substring search.
* ``normalized`` -- line-block search where every line is compared after
  trimming surrounding whitespace and blank anchor lines are ignored.
* ``regex`` -- the anchor's whitespace-separated tokens must appear in order,
  separated by any run of whitespace.

The locator only reports what it found. Callers decide whether an
``occurrence_count`` other than one is acceptable; nothing here resolves
ambiguity by picking the first hit.
"""
from __future__ import annotations

import logging
import re
from typing import List, Optional

from patchflow.logging_utils import MERGE_LOGGER_NAME
from patchflow.models import AnchorMatch, AnchorMode, StrictAnchorMode

logger = logging.getLogger(MERGE_LOGGER_NAME)


def _locate_exact(haystack: str, anchor: str) -> Optional[AnchorMatch]:
    index = haystack.find(anchor)
    if index == -1:
        return None
    return AnchorMatch(
        start=index,
        end=index + len(anchor),
        occurrence_count=haystack.count(anchor),
        is_exact=True,
        mode=AnchorMode.EXACT,
    )


def _anchor_lines(anchor: str) -> List[str]:
    return [line.strip() for line in anchor.split("\n") if line.strip()]


def _locate_normalized(haystack: str, anchor: str) -> Optional[AnchorMatch]:
    wanted = _anchor_lines(anchor)
    if not wanted:
        return None
    lines = haystack.split("\n")
    trimmed = [line.strip() for line in lines]
    width = len(wanted)

    offsets: List[int] = []
    position = 0
    for line in lines:
        offsets.append(position)
        position += len(line) + 1

    candidates = [
        index
        for index in range(len(lines) - width + 1)
        if trimmed[index : index + width] == wanted
    ]
    if not candidates:
        return None

    first = candidates[0]
    start = offsets[first]
    span = sum(len(line) + 1 for line in lines[first : first + width])
    return AnchorMatch(
        start=start,
        end=start + span - 1,
        occurrence_count=len(candidates),
        is_exact=False,
        mode=AnchorMode.NORMALIZED,
    )


def whitespace_pattern(anchor: str) -> Optional[re.Pattern]:
    """Compile ``anchor`` into a pattern that tolerates any whitespace run."""

    tokens = anchor.split()
    if not tokens:
        return None
    return re.compile(r"\s+".join(re.escape(token) for token in tokens))


def _locate_regex(haystack: str, anchor: str) -> Optional[AnchorMatch]:
    pattern = whitespace_pattern(anchor)
    if pattern is None:
        return None
    matches = list(pattern.finditer(haystack))
    if not matches:
        return None
    first = matches[0]
    return AnchorMatch(
        start=first.start(),
        end=first.end(),
        occurrence_count=len(matches),
        is_exact=first.group(0) == anchor,
        mode=AnchorMode.REGEX,
    )


_LOCATORS = {
    AnchorMode.EXACT: _locate_exact,
    AnchorMode.NORMALIZED: _locate_normalized,
    AnchorMode.REGEX: _locate_regex,
}


def locate(haystack: str, anchor: str, mode: AnchorMode = AnchorMode.EXACT) -> Optional[AnchorMatch]:
    """Find ``anchor`` in ``haystack`` using a single strategy."""

    if not anchor or not haystack:
        return None
    return _LOCATORS[AnchorMode(mode)](haystack, anchor)


def locate_with_policy(
    haystack: str,
    anchor: str,
    policy: StrictAnchorMode = StrictAnchorMode.EXACT_THEN_NORMALIZED,
) -> Optional[AnchorMatch]:
    """Exact search, then the policy's fallback when nothing matched exactly.

    An ambiguous exact result is returned as-is; the fallback never runs to
    "resolve" it.
    """

    match = locate(haystack, anchor, AnchorMode.EXACT)
    if match is not None:
        return match
    fallback = StrictAnchorMode(policy).fallback
    if fallback is None:
        return None
    match = locate(haystack, anchor, fallback)
    if match is not None:
        logger.debug(
            "anchor matched via %s fallback (occurrences=%s)",
            fallback.value,
            match.occurrence_count,
        )
    return match


__all__ = ["locate", "locate_with_policy", "whitespace_pattern"]
