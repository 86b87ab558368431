"""GitHub contents API store backed by PyGithub."""
from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional

from github import Auth, Github, GithubException, UnknownObjectException

from patchflow.errors import StoreError
from patchflow.logging_utils import STORE_LOGGER_NAME
from patchflow.stores.base import ContentStore, FetchResult, WriteResult

logger = logging.getLogger(STORE_LOGGER_NAME)

DEFAULT_TOKEN_ENV_VAR = "GITHUB_TOKEN"


def _branch_kwargs(ref: Optional[str], key: str) -> Dict[str, Any]:
    return {key: ref} if ref else {}


def _describe_github_error(exc: GithubException) -> str:
    data = exc.data if isinstance(exc.data, dict) else {}
    message = data.get("message") or str(exc)
    return f"HTTP {exc.status}: {message}"


class GitHubStore(ContentStore):
    """Read and commit files through the GitHub contents API.

    Identity tokens are blob SHAs as reported by GitHub. ``ref`` is the branch
    (or any ref for reads); when omitted the repository default branch is used.

    Args:
        repository: Full repo name in the form "owner/name".
        token: Personal access token. Falls back to ``token_env_var``.
        repo: Pre-built repository object (mainly for tests); skips auth.
    """

    name = "github"

    def __init__(
        self,
        repository: str,
        token: Optional[str] = None,
        *,
        token_env_var: str = DEFAULT_TOKEN_ENV_VAR,
        repo: Any = None,
    ):
        if not repository or "/" not in repository:
            raise StoreError(f"Repository must look like 'owner/name', got {repository!r}.")
        self.repository = repository
        self._repo = repo
        self._client: Optional[Github] = None
        if repo is None:
            resolved_token = (token or os.getenv(token_env_var) or "").strip()
            if not resolved_token:
                raise StoreError(
                    f"Environment variable '{token_env_var}' is not set. Provide a GitHub token to use the github store."
                )
            self._client = Github(auth=Auth.Token(resolved_token))

    def describe(self) -> str:
        return f"{self.name}:{self.repository}"

    @property
    def repo(self) -> Any:
        if self._repo is None:
            try:
                self._repo = self._client.get_repo(self.repository)
            except GithubException as exc:
                raise StoreError(
                    f"Cannot open repository '{self.repository}': {_describe_github_error(exc)}"
                ) from exc
        return self._repo

    def fetch(self, path: str, ref: Optional[str] = None) -> FetchResult:
        try:
            contents = self.repo.get_contents(path, **_branch_kwargs(ref, "ref"))
        except UnknownObjectException:
            logger.info("fetch %s@%s: not found", path, ref or "default")
            return FetchResult.missing()
        except GithubException as exc:
            raise StoreError(f"Failed to fetch '{path}': {_describe_github_error(exc)}", path=path) from exc
        if isinstance(contents, list):
            raise StoreError(f"'{path}' is a directory.", path=path)
        try:
            text = contents.decoded_content.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise StoreError(f"'{path}' is not valid utf-8 text: {exc}", path=path) from exc
        logger.info("fetch %s@%s: sha=%s", path, ref or "default", contents.sha)
        return FetchResult(found=True, text=text, identity_token=contents.sha)

    def write(
        self,
        path: str,
        text: str,
        identity_token: Optional[str] = None,
        ref: Optional[str] = None,
        message: Optional[str] = None,
    ) -> WriteResult:
        token = identity_token
        if token is None:
            existing = self.fetch(path, ref=ref)
            token = existing.identity_token if existing.found else None
        branch = _branch_kwargs(ref, "branch")
        try:
            if token is None:
                result = self.repo.create_file(path, message or f"Create {path}", text, **branch)
            else:
                result = self.repo.update_file(path, message or f"Update {path}", text, token, **branch)
        except GithubException as exc:
            raise StoreError(f"Failed to write '{path}': {_describe_github_error(exc)}", path=path) from exc
        new_sha = result["content"].sha
        logger.info("write %s@%s: sha=%s commit=%s", path, ref or "default", new_sha, result["commit"].sha)
        return WriteResult(identity_token=new_sha)

    def delete(
        self,
        path: str,
        identity_token: Optional[str],
        ref: Optional[str] = None,
        message: Optional[str] = None,
    ) -> None:
        if not identity_token:
            raise StoreError(f"Deleting '{path}' requires the blob sha from a previous fetch.", path=path)
        try:
            self.repo.delete_file(
                path, message or f"Delete {path}", identity_token, **_branch_kwargs(ref, "branch")
            )
        except GithubException as exc:
            raise StoreError(f"Failed to delete '{path}': {_describe_github_error(exc)}", path=path) from exc
        logger.info("delete %s@%s", path, ref or "default")


__all__ = ["DEFAULT_TOKEN_ENV_VAR", "GitHubStore"]
