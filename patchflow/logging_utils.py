"""Centralized logging helpers for patchflow runs."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Optional
from uuid import uuid4

if TYPE_CHECKING:  # pragma: no cover
    from patchflow.models import Instruction, MergeOutcome
    from patchflow.session import BatchResult

PARSE_LOGGER_NAME = "patchflow.parse"
MERGE_LOGGER_NAME = "patchflow.merge"
STORE_LOGGER_NAME = "patchflow.store"
SESSION_LOGGER_NAME = "patchflow.session"

_LOG_FILE_SPEC = (
    (PARSE_LOGGER_NAME, "parse.log", "parse"),
    (MERGE_LOGGER_NAME, "merge.log", "merge"),
    (STORE_LOGGER_NAME, "store.log", "store"),
    (SESSION_LOGGER_NAME, "session.log", "session"),
)


@dataclass
class RunLogContext:
    """Holds per-run logging metadata and output paths."""

    run_id: str
    logs_root: Path
    run_dir: Path
    parse_log: Path
    merge_log: Path
    store_log: Path
    session_log: Path

    @property
    def summary_path(self) -> Path:
        return self.run_dir / "summary.txt"


def setup_run_logging(
    *,
    run_id: Optional[str] = None,
    logs_root: Optional[Path] = None,
    level: int = logging.INFO,
    max_bytes: int = 5 * 1024 * 1024,
    backup_count: int = 5,
) -> RunLogContext:
    """Configure per-run file loggers for parsing, merging, stores and sessions."""

    resolved_root = Path(logs_root or "logs").resolve()
    resolved_root.mkdir(parents=True, exist_ok=True)

    active_run_id = run_id or uuid4().hex
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    run_dir = resolved_root / f"{timestamp}-{active_run_id[:6]}"
    run_dir.mkdir(parents=True, exist_ok=True)

    log_paths = {key: run_dir / filename for _, filename, key in _LOG_FILE_SPEC}

    for logger_name, _, key in _LOG_FILE_SPEC:
        logger = logging.getLogger(logger_name)
        logger.setLevel(level)
        logger.propagate = False
        for handler in [h for h in logger.handlers if isinstance(h, RotatingFileHandler)]:
            logger.removeHandler(handler)
            handler.close()
        file_handler = RotatingFileHandler(
            log_paths[key], maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
        )
        file_handler.setFormatter(logging.Formatter("%(asctime)s | %(levelname)s | %(message)s"))
        logger.addHandler(file_handler)

    return RunLogContext(
        run_id=active_run_id,
        logs_root=resolved_root,
        run_dir=run_dir,
        parse_log=log_paths["parse"],
        merge_log=log_paths["merge"],
        store_log=log_paths["store"],
        session_log=log_paths["session"],
    )


def summarize_message(text: str, limit: int = 120) -> str:
    """Return a concise single-line preview of an assistant message."""

    candidate = (text or "").strip()
    if not candidate:
        return "(empty message)"
    candidate = candidate.replace("\n", " ")
    return candidate[:limit] + ("…" if len(candidate) > limit else "")


def _anchor_preview(value: Optional[str], limit: int = 60) -> str:
    text = (value or "").strip()
    if not text:
        return "-"
    first_line = text.splitlines()[0]
    truncated = len(first_line) > limit or "\n" in text
    return first_line[:limit] + ("…" if truncated else "")


def format_merge_failure(index: int, instruction: "Instruction", outcome: "MergeOutcome") -> str:
    """Human-readable reason naming the failing instruction and its anchor."""

    parts = [f"instruction #{index + 1} ({outcome.message})"]
    if instruction.anchor:
        parts.append(f"anchor={_anchor_preview(instruction.anchor)!r}")
    if instruction.anchor_end:
        parts.append(f"anchor_end={_anchor_preview(instruction.anchor_end)!r}")
    return " ".join(parts)


def write_run_summary(context: RunLogContext, batch: "BatchResult") -> Path:
    """Write a plain-text run summary and log it as JSON to the session logger."""

    lines = [
        f"Run ID: {context.run_id}",
        f"Status: {'failed' if batch.has_failures else 'success'}",
        "",
        "Files:",
    ]
    payload: Dict[str, Any] = {}
    for change in batch.changes:
        line = f"- {change.path}: {change.status.value}"
        if change.error_message:
            line += f" ({change.error_message})"
        lines.append(line)
        payload[change.path] = change.status.value
    if batch.parse_errors:
        lines.extend(["", "Parse errors:"])
        lines.extend(f"- {error}" for error in batch.parse_errors)
    context.summary_path.write_text("\n".join(lines), encoding="utf-8")

    logging.getLogger(SESSION_LOGGER_NAME).info(
        json.dumps(
            {
                "run_id": context.run_id,
                "success": not batch.has_failures,
                "files": payload,
                "parse_errors": len(batch.parse_errors),
            },
            ensure_ascii=False,
        )
    )
    return context.summary_path


__all__ = [
    "MERGE_LOGGER_NAME",
    "PARSE_LOGGER_NAME",
    "SESSION_LOGGER_NAME",
    "STORE_LOGGER_NAME",
    "RunLogContext",
    "format_merge_failure",
    "setup_run_logging",
    "summarize_message",
    "write_run_summary",
]
