"""JSON-lines history of committed batches, capped to the newest entries."""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, Field, ValidationError

from patchflow.logging_utils import SESSION_LOGGER_NAME
from patchflow.models import Operation
from patchflow.session import BatchResult, FileChangeStatus

logger = logging.getLogger(SESSION_LOGGER_NAME)

DEFAULT_MAX_ENTRIES = 50


class FileChangeRecord(BaseModel):
    path: str
    operation: Operation
    status: FileChangeStatus
    original_content: Optional[str] = None
    modified_content: Optional[str] = None


class HistoryEntry(BaseModel):
    id: str = Field(default_factory=lambda: uuid4().hex)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    repository: str
    is_successful: bool
    changes: List[FileChangeRecord] = Field(default_factory=list)


def _is_recorded(status: FileChangeStatus) -> bool:
    return status is FileChangeStatus.SUCCESS or status.is_failure


def entry_from_batch(batch: BatchResult, repository: str) -> HistoryEntry:
    """Snapshot every change that was written or failed; skipped files are left out."""

    records = [
        FileChangeRecord(
            path=change.path,
            operation=change.operation,
            status=change.status,
            original_content=change.original_content,
            modified_content=None if change.delete else change.modified_content,
        )
        for change in batch.changes
        if _is_recorded(change.status)
    ]
    return HistoryEntry(repository=repository, is_successful=not batch.has_failures, changes=records)


def _read_entries(history_path: Path) -> List[HistoryEntry]:
    entries: List[HistoryEntry] = []
    with open(history_path, "r", encoding="utf-8") as handle:
        for number, line in enumerate(handle, start=1):
            if not line.strip():
                continue
            try:
                entries.append(HistoryEntry.model_validate(json.loads(line)))
            except (json.JSONDecodeError, ValidationError) as exc:
                raise ValueError(f"Corrupt history entry at {history_path}:{number}: {exc}") from exc
    return entries


def append_entry(
    path: Union[str, Path],
    entry: HistoryEntry,
    max_entries: int = DEFAULT_MAX_ENTRIES,
) -> Path:
    """Append ``entry``; when the file holds more than ``max_entries`` only the newest are kept."""

    history_path = Path(path)
    history_path.parent.mkdir(parents=True, exist_ok=True)
    with open(history_path, "a", encoding="utf-8") as handle:
        handle.write(entry.model_dump_json())
        handle.write("\n")

    entries = _read_entries(history_path)
    if max_entries > 0 and len(entries) > max_entries:
        kept = entries[-max_entries:]
        with open(history_path, "w", encoding="utf-8") as handle:
            handle.writelines(f"{item.model_dump_json()}\n" for item in kept)
        logger.info("history trimmed to %d entries (dropped %d)", len(kept), len(entries) - len(kept))
    return history_path


def record_batch(
    batch: BatchResult,
    path: Union[str, Path],
    repository: str,
    max_entries: int = DEFAULT_MAX_ENTRIES,
) -> HistoryEntry:
    """Build a history entry for a committed batch and append it to ``path``."""

    entry = entry_from_batch(batch, repository)
    append_entry(path, entry, max_entries=max_entries)
    logger.info("history entry %s recorded (%d file(s))", entry.id, len(entry.changes))
    return entry


def load_history(path: Union[str, Path]) -> List[HistoryEntry]:
    """Return stored entries, newest first. A missing file means no history."""

    history_path = Path(path)
    if not history_path.exists():
        return []
    entries = _read_entries(history_path)
    entries.sort(key=lambda entry: entry.timestamp, reverse=True)
    return entries


def clear_history(path: Union[str, Path]) -> int:
    """Delete the history file and return how many entries it held."""

    history_path = Path(path)
    if not history_path.exists():
        return 0
    count = len(_read_entries(history_path))
    history_path.unlink()
    logger.info("history cleared (%d entries)", count)
    return count


__all__ = [
    "DEFAULT_MAX_ENTRIES",
    "FileChangeRecord",
    "HistoryEntry",
    "append_entry",
    "clear_history",
    "entry_from_batch",
    "load_history",
    "record_batch",
]
