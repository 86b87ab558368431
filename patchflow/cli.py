"""Command line entry point for previewing and applying assistant edits."""
from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from patchflow.config import PatchflowConfig, load_config_or_default
from patchflow.diffing import render_diff
from patchflow.errors import StoreError
from patchflow.history import clear_history, load_history, record_batch
from patchflow.logging_utils import RunLogContext, setup_run_logging, write_run_summary
from patchflow.models import StrictAnchorMode
from patchflow.parser import InstructionParser
from patchflow.session import BatchResult, PatchSession
from patchflow.stores import GitWorktreeStore, build_store

EXIT_OK = 0
EXIT_FAILURES = 1
EXIT_USAGE = 2


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="patchflow",
        description="Apply tag-based file edits from an assistant reply.",
    )
    parser.add_argument("--config", help="YAML config file (default: ./patchflow.yaml when present)")
    parser.add_argument("--store", choices=["local", "git", "github"], help="Where files are read and written")
    parser.add_argument("--root", help="Workspace root for the local and git stores")
    parser.add_argument("--repository", help="owner/name for the github store")
    parser.add_argument("--ref", help="Branch or revision to read from and write to")
    parser.add_argument(
        "--anchor-mode",
        choices=[mode.value for mode in StrictAnchorMode],
        help="Fallback used when an anchor has no exact match",
    )
    parser.add_argument("--file-tag", help="Tag that opens a file block (default: FILE)")
    parser.add_argument("--log", action="store_true", help="Write per-run log files below the configured logs_root")
    parser.add_argument("--log-dir", help="Write per-run log files below this directory (implies --log)")

    subcommands = parser.add_subparsers(dest="command", required=True)

    parse_cmd = subcommands.add_parser("parse", help="List the instructions found in a message")
    parse_cmd.add_argument("message", help="Message file, or '-' for stdin")

    preview_cmd = subcommands.add_parser("preview", help="Show the diff each file would receive")
    preview_cmd.add_argument("message", help="Message file, or '-' for stdin")
    preview_cmd.add_argument("--context", type=int, default=3, help="Unchanged lines to show around changes")
    preview_cmd.add_argument("--only", type=int, nargs="+", help="Instruction indices to include")

    apply_cmd = subcommands.add_parser("apply", help="Write the edited files back to the store")
    apply_cmd.add_argument("message", help="Message file, or '-' for stdin")
    apply_cmd.add_argument("--only", type=int, nargs="+", help="Instruction indices to include")
    apply_cmd.add_argument(
        "--commit-git",
        metavar="MESSAGE",
        help="With the git store, commit the staged changes using this message",
    )

    history_cmd = subcommands.add_parser("history", help="List or clear the recorded apply history")
    history_cmd.add_argument("--clear", action="store_true", help="Delete every recorded entry")
    history_cmd.add_argument("--limit", type=int, help="Show at most this many entries")
    history_cmd.add_argument("--changes", action="store_true", help="List the files of each entry")
    return parser


def _read_message(source: str) -> str:
    if source == "-":
        return sys.stdin.read()
    return Path(source).read_text(encoding="utf-8")


def _resolve_config(args: argparse.Namespace) -> PatchflowConfig:
    config = load_config_or_default(args.config)
    return config.with_overrides(
        store=args.store,
        root=args.root,
        repository=args.repository,
        branch=args.ref,
        anchor_mode=args.anchor_mode,
        file_tag=args.file_tag,
    )


def _print_parse_errors(batch_errors: Sequence[object]) -> None:
    for error in batch_errors:
        print(f"parse error: {error}", file=sys.stderr)


def _print_batch(batch: BatchResult, *, context: Optional[int] = None, show_diff: bool = True) -> None:
    for change in batch.changes:
        print(f"== {change.path} [{change.status.value}] {change.operation.description}")
        if change.error_message:
            print(f"   {change.error_message}")
        if show_diff and not change.status.is_failure and change.stats().changed:
            print(render_diff(change.diff(), context=context))
    _print_parse_errors(batch.parse_errors)


def _reject_ignored_selection(batch: BatchResult) -> bool:
    if not batch.ignored_selection:
        return False
    indices = ", ".join(str(index) for index in batch.ignored_selection)
    print(f"--only: no instruction with index {indices}", file=sys.stderr)
    return True


def _cmd_parse(args: argparse.Namespace, config: PatchflowConfig) -> int:
    outcome = InstructionParser(config.file_tag).parse(_read_message(args.message))
    for index, instruction in enumerate(outcome.instructions):
        print(f"{index}: {instruction.operation.value} {instruction.file_path}")
    _print_parse_errors(outcome.file_errors)
    return EXIT_OK if outcome.ok else EXIT_FAILURES


def _cmd_preview(args: argparse.Namespace, config: PatchflowConfig) -> int:
    session = PatchSession(build_store(config), config)
    batch = session.prepare(_read_message(args.message), select=args.only)
    if _reject_ignored_selection(batch):
        return EXIT_USAGE
    _print_batch(batch, context=args.context)
    return EXIT_FAILURES if batch.has_failures else EXIT_OK


def _cmd_apply(args: argparse.Namespace, config: PatchflowConfig, log_context: Optional[RunLogContext]) -> int:
    store = build_store(config)
    if args.commit_git and not isinstance(store, GitWorktreeStore):
        print("--commit-git requires the git store", file=sys.stderr)
        return EXIT_USAGE
    session = PatchSession(store, config)
    batch = session.prepare(_read_message(args.message), select=args.only)
    if _reject_ignored_selection(batch):
        return EXIT_USAGE
    session.commit(batch)
    _print_batch(batch, show_diff=False)

    if args.commit_git and batch.succeeded:
        print(f"commit {store.commit(args.commit_git)}")
    if config.history_file:
        record_batch(
            batch,
            config.history_file,
            repository=config.repository or store.describe(),
            max_entries=config.history_limit,
        )
    if log_context is not None:
        write_run_summary(log_context, batch)
    return EXIT_FAILURES if batch.has_failures else EXIT_OK


def _cmd_history(args: argparse.Namespace, config: PatchflowConfig) -> int:
    if not config.history_file:
        print("history_file is not configured", file=sys.stderr)
        return EXIT_USAGE
    if args.clear:
        print(f"cleared {clear_history(config.history_file)} entries")
        return EXIT_OK
    entries = load_history(config.history_file)
    if args.limit is not None:
        entries = entries[: max(args.limit, 0)]
    if not entries:
        print("(no history)")
    for entry in entries:
        status = "ok" if entry.is_successful else "failed"
        stamp = entry.timestamp.strftime("%Y-%m-%d %H:%M:%S")
        print(f"{entry.id[:8]} {stamp} {status} {entry.repository} ({len(entry.changes)} file(s))")
        if args.changes:
            for change in entry.changes:
                print(f"   {change.status.value} {change.operation.value} {change.path}")
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    args = build_arg_parser().parse_args(argv)
    try:
        config = _resolve_config(args)
        log_context = None
        if args.log or args.log_dir:
            log_context = setup_run_logging(logs_root=Path(args.log_dir or config.logs_root))
        if args.command == "parse":
            return _cmd_parse(args, config)
        if args.command == "preview":
            return _cmd_preview(args, config)
        if args.command == "history":
            return _cmd_history(args, config)
        return _cmd_apply(args, config, log_context)
    except (FileNotFoundError, ValueError, StoreError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_USAGE


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
