"""Store and media upload backends."""

from __future__ import annotations

from .base import (
    DEFAULT_MAX_BATCH_SIZE,
    CatalogStore,
    DeleteOp,
    InsertOp,
    MediaBlob,
    Op,
    UpdateOp,
    UploadClient,
    UploadResult,
)
from .factory import build_backends
from .local import LocalCatalogStore, LocalUploadClient

__all__ = [
    "CatalogStore",
    "DEFAULT_MAX_BATCH_SIZE",
    "DeleteOp",
    "InsertOp",
    "LocalCatalogStore",
    "LocalUploadClient",
    "MediaBlob",
    "Op",
    "UpdateOp",
    "UploadClient",
    "UploadResult",
    "build_backends",
]
