"""Content stores that fetch and persist the files a session edits."""
from __future__ import annotations

from patchflow.config import PatchflowConfig
from patchflow.errors import StoreError
from patchflow.stores.base import ContentStore, FetchResult, WriteResult, blob_sha
from patchflow.stores.git import GitWorktreeStore
from patchflow.stores.github import GitHubStore
from patchflow.stores.local import LocalFileStore


def build_store(config: PatchflowConfig) -> ContentStore:
    """Instantiate the store selected by ``config.store``."""

    if config.store == "local":
        return LocalFileStore(config.root)
    if config.store == "git":
        return GitWorktreeStore(config.root)
    if config.store == "github":
        if not config.repository:
            raise StoreError("The github store needs 'repository' (owner/name) in the configuration.")
        return GitHubStore(config.repository, token_env_var=config.token_env_var)
    raise StoreError(f"Unsupported store '{config.store}'. Choose 'local', 'git', or 'github'.")


__all__ = [
    "ContentStore",
    "FetchResult",
    "GitHubStore",
    "GitWorktreeStore",
    "LocalFileStore",
    "WriteResult",
    "blob_sha",
    "build_store",
]
