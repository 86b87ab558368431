"""Filesystem-backed content store rooted at a workspace directory."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

from patchflow.errors import StoreError
from patchflow.logging_utils import STORE_LOGGER_NAME
from patchflow.stores.base import ContentStore, FetchResult, WriteResult, blob_sha

logger = logging.getLogger(STORE_LOGGER_NAME)


def _resolve_within_root(root: Path, relative_path: str) -> Path:
    candidate = (Path(relative_path) if Path(relative_path).is_absolute() else (root / relative_path)).resolve()
    try:
        candidate.relative_to(root)
    except ValueError as exc:
        raise StoreError(f"Path '{relative_path}' escapes root '{root}'.", path=relative_path) from exc
    return candidate


class LocalFileStore(ContentStore):
    """Read and write files below ``root``.

    Identity tokens are git-style blob ids of the bytes on disk, so a write
    carrying a token fails when the file changed after it was fetched.
    """

    name = "local"

    def __init__(self, root: Union[Path, str] = ".", encoding: str = "utf-8"):
        self.root = Path(root).expanduser().resolve()
        self.encoding = encoding
        if not self.root.is_dir():
            raise StoreError(f"Workspace root '{self.root}' is not a directory.")

    def describe(self) -> str:
        return f"{self.name}:{self.root}"

    def resolve(self, path: str) -> Path:
        return _resolve_within_root(self.root, path)

    def _read(self, path: str, resolved: Path) -> bytes:
        try:
            return resolved.read_bytes()
        except OSError as exc:
            raise StoreError(f"Failed to read '{path}': {exc}", path=path) from exc

    def token_for(self, path: str, resolved: Path) -> str:
        return blob_sha(self._read(path, resolved))

    def fetch(self, path: str, ref: Optional[str] = None) -> FetchResult:
        resolved = self.resolve(path)
        if not resolved.exists():
            logger.info("fetch %s: not found", path)
            return FetchResult.missing()
        if not resolved.is_file():
            raise StoreError(f"'{path}' is not a regular file.", path=path)
        data = self._read(path, resolved)
        try:
            text = data.decode(self.encoding)
        except UnicodeDecodeError as exc:
            raise StoreError(f"'{path}' is not valid {self.encoding} text: {exc}", path=path) from exc
        logger.info("fetch %s: %d bytes", path, len(data))
        return FetchResult(found=True, text=text, identity_token=blob_sha(data))

    def _check_token(self, path: str, resolved: Path, identity_token: Optional[str]) -> None:
        if identity_token is None:
            return
        if not resolved.exists():
            raise StoreError(f"'{path}' no longer exists.", path=path)
        current = self.token_for(path, resolved)
        if current != identity_token:
            raise StoreError(
                f"'{path}' changed since it was fetched (expected {identity_token[:10]}, found {current[:10]}).",
                path=path,
            )

    def write(
        self,
        path: str,
        text: str,
        identity_token: Optional[str] = None,
        ref: Optional[str] = None,
        message: Optional[str] = None,
    ) -> WriteResult:
        resolved = self.resolve(path)
        self._check_token(path, resolved, identity_token)
        data = text.encode(self.encoding)
        try:
            resolved.parent.mkdir(parents=True, exist_ok=True)
            resolved.write_bytes(data)
        except OSError as exc:
            raise StoreError(f"Failed to write '{path}': {exc}", path=path) from exc
        logger.info("write %s: %d bytes", path, len(data))
        return WriteResult(identity_token=blob_sha(data))

    def delete(
        self,
        path: str,
        identity_token: Optional[str],
        ref: Optional[str] = None,
        message: Optional[str] = None,
    ) -> None:
        resolved = self.resolve(path)
        if not resolved.exists():
            raise StoreError(f"'{path}' not found for deletion.", path=path)
        self._check_token(path, resolved, identity_token)
        try:
            resolved.unlink()
        except OSError as exc:
            raise StoreError(f"Failed to delete '{path}': {exc}", path=path) from exc
        logger.info("delete %s", path)


__all__ = ["LocalFileStore"]
