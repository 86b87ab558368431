"""Content store interface used by :class:`patchflow.session.PatchSession`."""
from __future__ import annotations

import hashlib
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class FetchResult:
    """Current text of a file plus the token required to change it later."""

    found: bool
    text: Optional[str] = None
    identity_token: Optional[str] = None

    @classmethod
    def missing(cls) -> "FetchResult":
        return cls(found=False)


@dataclass(frozen=True)
class WriteResult:
    identity_token: Optional[str]


def blob_sha(data: bytes) -> str:
    """Git-style blob id for ``data``."""

    header = f"blob {len(data)}\0".encode("utf-8")
    return hashlib.sha1(header + data).hexdigest()


class ContentStore(ABC):
    """Fetch, write and delete files by path.

    Implementations raise :class:`patchflow.errors.StoreError` on failure. A
    missing file is not an error for :meth:`fetch`; it returns
    :meth:`FetchResult.missing` instead.
    """

    name = "store"

    @abstractmethod
    def fetch(self, path: str, ref: Optional[str] = None) -> FetchResult:
        raise NotImplementedError

    @abstractmethod
    def write(
        self,
        path: str,
        text: str,
        identity_token: Optional[str] = None,
        ref: Optional[str] = None,
        message: Optional[str] = None,
    ) -> WriteResult:
        raise NotImplementedError

    @abstractmethod
    def delete(
        self,
        path: str,
        identity_token: Optional[str],
        ref: Optional[str] = None,
        message: Optional[str] = None,
    ) -> None:
        raise NotImplementedError

    def describe(self) -> str:
        return self.name


__all__ = ["ContentStore", "FetchResult", "WriteResult", "blob_sha"]
