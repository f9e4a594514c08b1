"""Contracts for the remote store and media upload collaborators."""

from __future__ import annotations

import mimetypes
import secrets
import string
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, Sequence, Union

from ..catalog.models import CatalogItem, ItemId, StoredItem

DEFAULT_MAX_BATCH_SIZE = 500
_AUTO_ID_ALPHABET = string.ascii_letters + string.digits


def new_document_id(length: int = 20) -> str:
    """Return a random document id in the style of Firestore auto-ids."""
    return "".join(secrets.choice(_AUTO_ID_ALPHABET) for _ in range(length))


@dataclass(slots=True, frozen=True)
class MediaBlob:
    """Binary content handed to an upload client."""

    filename: str
    content: bytes
    content_type: str
    kind: str = "image"

    @property
    def size(self) -> int:
        return len(self.content)

    @classmethod
    def from_path(cls, path: Path, *, kind: str = "image") -> "MediaBlob":
        content_type = mimetypes.guess_type(path.name)[0] or (
            "video/mp4" if kind == "video" else "image/jpeg"
        )
        return cls(filename=path.name, content=path.read_bytes(), content_type=content_type, kind=kind)


@dataclass(slots=True, frozen=True)
class UploadResult:
    """Outcome of a single media upload."""

    url: str
    public_id: str | None = None
    size: int | None = None


@dataclass(slots=True, frozen=True)
class InsertOp:
    payload: CatalogItem
    source_id: str | None = None


@dataclass(slots=True, frozen=True)
class UpdateOp:
    item_id: ItemId
    payload: CatalogItem


@dataclass(slots=True, frozen=True)
class DeleteOp:
    item_id: ItemId


Op = Union[InsertOp, UpdateOp, DeleteOp]


class UploadClient(Protocol):
    """Uploads one blob and returns its durable URL. No implicit retry."""

    def upload(self, blob: MediaBlob) -> UploadResult:
        """Upload ``blob`` or raise :class:`~menupub.core.errors.UploadError`."""


class CatalogStore(Protocol):
    """Document store keyed by tenant and item id with atomic batch commits."""

    def read_all(self, tenant: str) -> list[StoredItem]:
        """Return every published item for ``tenant``."""

    def commit_batch(self, tenant: str, ops: Sequence[Op]) -> list[ItemId | None]:
        """Apply ``ops`` all-or-nothing.

        Returns one entry per op: the store-assigned id for inserts, ``None``
        otherwise. Raises :class:`~menupub.core.errors.StoreError` on failure.
        """


__all__ = [
    "CatalogStore",
    "DEFAULT_MAX_BATCH_SIZE",
    "DeleteOp",
    "InsertOp",
    "MediaBlob",
    "Op",
    "UpdateOp",
    "UploadClient",
    "UploadResult",
    "new_document_id",
]
