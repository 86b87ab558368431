"""Shared exceptions."""
from __future__ import annotations

from typing import Optional


class PatchflowError(Exception):
    """Base class for infrastructure failures outside the pure core."""


class StoreError(PatchflowError):
    """Raised when a content store cannot fetch, write or delete a file."""

    def __init__(self, message: str, *, path: Optional[str] = None):
        super().__init__(message)
        self.path = path


__all__ = ["PatchflowError", "StoreError"]
