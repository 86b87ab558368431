from __future__ import annotations

from typing import Dict, List, Optional, Tuple

import pytest

from patchflow.config import PatchflowConfig
from patchflow.errors import StoreError
from patchflow.models import Instruction, MergeErrorKind, Operation
from patchflow.session import FileChangeStatus, PatchSession, group_by_path
from patchflow.stores.base import ContentStore, FetchResult, WriteResult, blob_sha


class _MemoryStore(ContentStore):
    name = "memory"

    def __init__(self, files: Optional[Dict[str, str]] = None, fail_fetch: bool = False):
        self.files = dict(files or {})
        self.fail_fetch = fail_fetch
        self.fetches: List[Tuple[str, Optional[str]]] = []
        self.writes: List[Tuple[str, str, Optional[str], Optional[str]]] = []
        self.deletes: List[Tuple[str, Optional[str]]] = []

    @staticmethod
    def _token(text: str) -> str:
        return blob_sha(text.encode("utf-8"))

    def fetch(self, path, ref=None):
        self.fetches.append((path, ref))
        if self.fail_fetch:
            raise StoreError("backend unavailable", path=path)
        if path not in self.files:
            return FetchResult.missing()
        text = self.files[path]
        return FetchResult(found=True, text=text, identity_token=self._token(text))

    def write(self, path, text, identity_token=None, ref=None, message=None):
        if identity_token is not None and self._token(self.files.get(path, "")) != identity_token:
            raise StoreError(f"'{path}' changed since it was fetched.", path=path)
        self.files[path] = text
        self.writes.append((path, text, identity_token, message))
        return WriteResult(identity_token=self._token(text))

    def delete(self, path, identity_token, ref=None, message=None):
        self.files.pop(path)
        self.deletes.append((path, identity_token))


CREATE_MESSAGE = "[FILE] new.txt\n[CREATE]\nhello\n[/CREATE]"


def test_create_only_group_skips_fetch_and_writes() -> None:
    store = _MemoryStore()
    session = PatchSession(store)

    batch = session.run(CREATE_MESSAGE)

    assert store.fetches == []
    assert store.files["new.txt"] == "hello"
    change = batch.get("new.txt")
    assert change.status is FileChangeStatus.SUCCESS
    assert change.identity_token == blob_sha(b"hello")
    assert store.writes[0][3] == "patchflow: create new.txt"


def test_insert_uses_fetched_token_for_write() -> None:
    store = _MemoryStore({"app.py": "import os\n\nmain()\n"})
    session = PatchSession(store)
    message = "[FILE] app.py\n[INSERT_AFTER]\n[ANCHOR]import os[/ANCHOR]\n[CONTENT]\nimport sys\n[/CONTENT]"

    batch = session.prepare(message)

    change = batch.get("app.py")
    assert change.status is FileChangeStatus.PENDING
    assert change.existed
    assert change.modified_content == "import os\nimport sys\n\nmain()\n"
    assert change.stats().added == 1
    assert store.writes == []

    session.commit(batch)

    assert change.status is FileChangeStatus.SUCCESS
    assert store.writes[0][2] == blob_sha(b"import os\n\nmain()\n")
    assert store.files["app.py"] == "import os\nimport sys\n\nmain()\n"


def test_anchor_failure_marks_file_and_skips_commit() -> None:
    store = _MemoryStore({"app.py": "x = 1\n"})
    session = PatchSession(store)
    message = "[FILE] app.py\n[INSERT_BEFORE]\n[ANCHOR]y = 2[/ANCHOR]\n[CONTENT]\nz\n[/CONTENT]"

    batch = session.run(message)

    change = batch.get("app.py")
    assert change.status is FileChangeStatus.ANCHOR_NOT_FOUND
    assert change.error_kind is MergeErrorKind.ANCHOR_NOT_FOUND
    assert change.error_message.startswith("instruction #1 (insert_before: anchor not found)")
    assert "'y = 2'" in change.error_message
    assert batch.has_failures
    assert store.writes == []


def test_anchor_edit_on_missing_file_fails() -> None:
    store = _MemoryStore()
    message = "[FILE] ghost.py\n[INSERT_AFTER]\n[ANCHOR]a[/ANCHOR]\n[CONTENT]\nb\n[/CONTENT]"

    batch = PatchSession(store).prepare(message)

    change = batch.get("ghost.py")
    assert change.status is FileChangeStatus.FAILED
    assert change.error_kind is MergeErrorKind.EMPTY_BASE_CONTENT


def test_fetch_error_is_reported_per_file() -> None:
    store = _MemoryStore(fail_fetch=True)

    batch = PatchSession(store).prepare("[FILE] a.txt\n[REPLACE]\nx\n[/REPLACE]\n" + CREATE_MESSAGE)

    assert batch.get("a.txt").status is FileChangeStatus.FAILED
    assert batch.get("a.txt").error_message == "backend unavailable"
    assert batch.get("new.txt").status is FileChangeStatus.PENDING


def test_delete_missing_file_is_skipped() -> None:
    store = _MemoryStore()

    batch = PatchSession(store).run("[FILE] gone.txt\n[DELETE_FILE]")

    change = batch.get("gone.txt")
    assert change.status is FileChangeStatus.SKIPPED
    assert store.deletes == []
    assert not batch.has_failures


def test_delete_existing_file_passes_token() -> None:
    store = _MemoryStore({"old.txt": "bye"})

    batch = PatchSession(store).run("[FILE] old.txt\n[DELETE_FILE]")

    assert batch.get("old.txt").status is FileChangeStatus.SUCCESS
    assert store.deletes == [("old.txt", blob_sha(b"bye"))]
    assert "old.txt" not in store.files


def test_unchanged_result_is_skipped() -> None:
    store = _MemoryStore({"a.txt": "same"})

    batch = PatchSession(store).run("[FILE] a.txt\n[REPLACE]\nsame\n[/REPLACE]")

    assert batch.get("a.txt").status is FileChangeStatus.SKIPPED
    assert store.writes == []


def test_concurrent_change_fails_at_commit() -> None:
    store = _MemoryStore({"a.txt": "v1"})
    session = PatchSession(store)
    batch = session.prepare("[FILE] a.txt\n[REPLACE]\nv2\n[/REPLACE]")

    store.files["a.txt"] = "edited elsewhere"
    session.commit(batch)

    change = batch.get("a.txt")
    assert change.status is FileChangeStatus.FAILED
    assert "changed since it was fetched" in change.error_message
    assert store.files["a.txt"] == "edited elsewhere"


def test_instructions_for_one_file_are_applied_in_order() -> None:
    store = _MemoryStore({"list.txt": "one"})
    message = (
        "[FILE] list.txt\n[INSERT_AFTER]\n[ANCHOR]one[/ANCHOR]\n[CONTENT]\ntwo\n[/CONTENT]\n"
        "[FILE] list.txt\n[INSERT_AFTER]\n[ANCHOR]two[/ANCHOR]\n[CONTENT]\nthree\n[/CONTENT]"
    )

    batch = PatchSession(store).run(message)

    assert len(batch.changes) == 1
    assert store.files["list.txt"] == "one\ntwo\nthree"
    assert len(store.fetches) == 1


def test_select_limits_instructions() -> None:
    store = _MemoryStore()
    message = CREATE_MESSAGE + "\n[FILE] other.txt\n[CREATE]\nx\n[/CREATE]"

    batch = PatchSession(store).prepare(message, select=[1, 7])

    assert [change.path for change in batch.changes] == ["other.txt"]
    assert batch.ignored_selection == [7]


def test_selection_within_range_ignores_nothing() -> None:
    batch = PatchSession(_MemoryStore()).prepare(CREATE_MESSAGE, select=[0])

    assert batch.ignored_selection == []
    assert len(batch.changes) == 1


def test_parse_errors_are_carried_into_batch() -> None:
    batch = PatchSession(_MemoryStore()).prepare("no markers here")

    assert batch.changes == []
    assert len(batch.parse_errors) == 1
    assert batch.has_failures


def test_ref_defaults_to_configured_branch() -> None:
    store = _MemoryStore({"a.txt": "x"})
    session = PatchSession(store, PatchflowConfig(branch="develop"))

    session.prepare("[FILE] a.txt\n[REPLACE]\ny\n[/REPLACE]")
    session.prepare("[FILE] a.txt\n[REPLACE]\ny\n[/REPLACE]", ref="feature")

    assert store.fetches == [("a.txt", "develop"), ("a.txt", "feature")]


def test_custom_commit_message_and_file_tag() -> None:
    store = _MemoryStore()
    config = PatchflowConfig(file_tag="[FILESISU]", commit_message="edit {path} via {operation}")

    PatchSession(store, config).run("[FILESISU] lib/a.dart\n[CREATE]\nvoid main() {}\n[/CREATE]")

    assert store.writes[0][3] == "edit lib/a.dart via create"


@pytest.mark.parametrize("dry_run, expected_writes", [(True, 0), (False, 1)])
def test_dry_run_never_writes(dry_run: bool, expected_writes: int) -> None:
    store = _MemoryStore()

    PatchSession(store).run(CREATE_MESSAGE, dry_run=dry_run)

    assert len(store.writes) == expected_writes


def test_group_by_path_keeps_first_seen_order() -> None:
    instructions = [
        Instruction("b.txt", Operation.CREATE, content="1"),
        Instruction("a.txt", Operation.CREATE, content="2"),
        Instruction("b.txt", Operation.REPLACE, content="3"),
    ]

    grouped = group_by_path(instructions)

    assert list(grouped) == ["b.txt", "a.txt"]
    assert [i.content for i in grouped["b.txt"]] == ["1", "3"]
