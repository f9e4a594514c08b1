"""Exception hierarchy shared across menupub."""

from __future__ import annotations

import json
from typing import Any, Mapping


class MenuPubError(RuntimeError):
    """Base error carrying a structured ``details`` mapping."""

    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details = dict(details or {})

    def __str__(self) -> str:
        base = super().__str__()
        if not self.details:
            return base
        try:
            detail_repr = json.dumps(self.details, ensure_ascii=False, default=str)
        except TypeError:
            detail_repr = str(self.details)
        return f"{base} | details: {detail_repr}"


class StoreError(MenuPubError):
    """Raised when the catalog store rejects or fails a read or commit."""


class UploadError(MenuPubError):
    """Raised when a media upload fails."""


class ConfigError(MenuPubError):
    """Raised for invalid or incomplete configuration."""


class PublishError(MenuPubError):
    """Base class for failures during a publish run."""

    def __init__(
        self,
        message: str,
        *,
        item_id: str | None = None,
        details: Mapping[str, Any] | None = None,
    ) -> None:
        merged = dict(details or {})
        if item_id is not None:
            merged.setdefault("item_id", item_id)
        super().__init__(message, details=merged)
        self.item_id = item_id


class MediaResolutionError(PublishError):
    """An upload failed; nothing was committed."""


class BatchCommitError(PublishError):
    """A chunk commit failed; earlier chunks remain applied."""


class PublishCancelled(PublishError):
    """The run was cancelled between two chunk commits."""


class UnknownItemError(AssertionError):
    """An id was referenced that is neither staged nor in the snapshot.

    This signals caller misuse and is never retried.
    """

    def __init__(self, item_id: str, *, operation: str) -> None:
        super().__init__(f"{operation}: unknown item {item_id!r}")
        self.item_id = item_id
        self.operation = operation


__all__ = [
    "BatchCommitError",
    "ConfigError",
    "MediaResolutionError",
    "MenuPubError",
    "PublishCancelled",
    "PublishError",
    "StoreError",
    "UnknownItemError",
    "UploadError",
]
