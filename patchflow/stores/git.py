"""Content store for a local git working tree."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

from git import Actor, Repo
from git.exc import BadName, GitCommandError, InvalidGitRepositoryError, NoSuchPathError

from patchflow.errors import StoreError
from patchflow.logging_utils import STORE_LOGGER_NAME
from patchflow.stores.base import FetchResult, WriteResult
from patchflow.stores.local import LocalFileStore

logger = logging.getLogger(STORE_LOGGER_NAME)


def _open_repo(root: Path) -> Repo:
    try:
        return Repo(root)
    except (InvalidGitRepositoryError, NoSuchPathError) as exc:
        raise StoreError(f"Failed to open git repository at {root}: {exc}") from exc


def _actor(name: Optional[str], email: Optional[str]) -> Optional[Actor]:
    if not name or not email:
        return None
    return Actor(name, email)


class GitWorktreeStore(LocalFileStore):
    """Working-tree store that stages every write and delete.

    ``fetch`` with a ``ref`` reads the committed blob at that revision instead
    of the working tree. Identity tokens are git blob ids either way.
    """

    name = "git"

    def __init__(self, root: Union[Path, str] = ".", encoding: str = "utf-8"):
        super().__init__(root, encoding=encoding)
        self.repo = _open_repo(self.root)
        working_dir = Path(self.repo.working_tree_dir or self.root).resolve()
        if working_dir != self.root:
            raise StoreError(f"{self.root} is not the top level of its git repository ({working_dir}).")

    def _relative(self, path: str) -> str:
        return self.resolve(path).relative_to(self.root).as_posix()

    def _is_tracked(self, relative: str) -> bool:
        return (relative, 0) in self.repo.index.entries

    def fetch(self, path: str, ref: Optional[str] = None) -> FetchResult:
        if ref is None:
            return super().fetch(path)
        relative = self._relative(path)
        try:
            tree = self.repo.commit(ref).tree
        except (BadName, ValueError) as exc:
            raise StoreError(f"Unknown revision '{ref}': {exc}", path=path) from exc
        try:
            blob = tree / relative
        except KeyError:
            logger.info("fetch %s@%s: not found", path, ref)
            return FetchResult.missing()
        data = blob.data_stream.read()
        try:
            text = data.decode(self.encoding)
        except UnicodeDecodeError as exc:
            raise StoreError(f"'{path}' at {ref} is not valid {self.encoding} text: {exc}", path=path) from exc
        logger.info("fetch %s@%s: %d bytes", path, ref, len(data))
        return FetchResult(found=True, text=text, identity_token=blob.hexsha)

    def write(
        self,
        path: str,
        text: str,
        identity_token: Optional[str] = None,
        ref: Optional[str] = None,
        message: Optional[str] = None,
    ) -> WriteResult:
        result = super().write(path, text, identity_token=identity_token, ref=ref, message=message)
        relative = self._relative(path)
        try:
            self.repo.index.add([relative])
            self.repo.index.write()
        except (GitCommandError, OSError) as exc:
            raise StoreError(f"Failed to stage '{path}': {exc}", path=path) from exc
        return result

    def delete(
        self,
        path: str,
        identity_token: Optional[str],
        ref: Optional[str] = None,
        message: Optional[str] = None,
    ) -> None:
        relative = self._relative(path)
        tracked = self._is_tracked(relative)
        super().delete(path, identity_token, ref=ref, message=message)
        if not tracked:
            return
        try:
            self.repo.index.remove([relative])
            self.repo.index.write()
        except (GitCommandError, OSError) as exc:
            raise StoreError(f"Failed to stage removal of '{path}': {exc}", path=path) from exc

    def commit(
        self,
        message: str,
        author_name: Optional[str] = None,
        author_email: Optional[str] = None,
    ) -> str:
        """Commit whatever is staged and return the new commit id."""

        if self.repo.head.is_valid() and not self.repo.index.diff("HEAD"):
            raise StoreError("No staged changes to commit.")
        author = _actor(author_name, author_email)
        commit = self.repo.index.commit(message, author=author, committer=author)
        logger.info("commit %s: %s", commit.hexsha[:10], message)
        return commit.hexsha


__all__ = ["GitWorktreeStore"]
