"""Filesystem-backed store and upload client for offline use and dry runs."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Sequence

from ..catalog.models import CatalogItem, ItemId, StoredItem
from ..core.errors import StoreError, UploadError
from ..utils.logging import get_logger
from .base import DeleteOp, InsertOp, MediaBlob, Op, UpdateOp, UploadResult, new_document_id

LOGGER = get_logger(__name__)


class LocalCatalogStore:
    """Keeps each tenant's catalog in ``<root>/<tenant>.json``.

    A commit rewrites the whole file through a temporary file and an atomic
    rename, so a batch is applied entirely or not at all.
    """

    def __init__(self, root: Path, *, id_factory: Callable[[], str] = new_document_id) -> None:
        self._root = root
        self._id_factory = id_factory

    def path_for(self, tenant: str) -> Path:
        return self._root / f"{tenant}.json"

    def read_all(self, tenant: str) -> list[StoredItem]:
        documents = self._load(tenant)
        try:
            return [
                StoredItem(id=item_id, item=CatalogItem.from_document(doc))
                for item_id, doc in documents.items()
            ]
        except (TypeError, ValueError) as exc:
            raise StoreError(
                "Catalog file contains an invalid item",
                details={"path": str(self.path_for(tenant)), "reason": str(exc)},
            ) from exc

    def commit_batch(self, tenant: str, ops: Sequence[Op]) -> list[ItemId | None]:
        documents = self._load(tenant)
        assigned: list[ItemId | None] = []
        for op in ops:
            if isinstance(op, InsertOp):
                item_id = self._id_factory()
                while item_id in documents:
                    item_id = self._id_factory()
                documents[item_id] = op.payload.to_document()
                assigned.append(item_id)
            elif isinstance(op, UpdateOp):
                if op.item_id not in documents:
                    raise StoreError(
                        "Cannot update a missing document", details={"item_id": op.item_id}
                    )
                documents[op.item_id] = {**documents[op.item_id], **op.payload.to_document()}
                assigned.append(None)
            elif isinstance(op, DeleteOp):
                documents.pop(op.item_id, None)
                assigned.append(None)
            else:  # pragma: no cover - exhaustive over Op
                raise StoreError("Unsupported operation", details={"op": repr(op)})
        self._save(tenant, documents)
        return assigned

    def _load(self, tenant: str) -> dict[str, dict[str, Any]]:
        path = self.path_for(tenant)
        if not path.exists():
            return {}
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise StoreError(
                "Failed to read catalog file", details={"path": str(path), "reason": str(exc)}
            ) from exc
        items = data.get("items", {})
        if not isinstance(items, dict):
            raise StoreError("Catalog file 'items' must be a mapping", details={"path": str(path)})
        return items

    def _save(self, tenant: str, documents: dict[str, dict[str, Any]]) -> None:
        path = self.path_for(tenant)
        path.parent.mkdir(parents=True, exist_ok=True)
        body = json.dumps({"tenant": tenant, "items": documents}, ensure_ascii=False, indent=2)
        try:
            with tempfile.NamedTemporaryFile(
                "w", delete=False, dir=str(path.parent), encoding="utf-8", suffix=".tmp"
            ) as tmp:
                tmp.write(body)
                tmp_path = Path(tmp.name)
            os.replace(tmp_path, path)
        except OSError as exc:
            raise StoreError(
                "Failed to write catalog file", details={"path": str(path), "reason": str(exc)}
            ) from exc


class LocalUploadClient:
    """Copies blobs into a media directory and returns ``file://`` URLs."""

    def __init__(self, media_root: Path, *, tenant: str) -> None:
        self._root = media_root / tenant
        self._tenant = tenant

    def upload(self, blob: MediaBlob) -> UploadResult:
        subdir = "videos" if blob.kind == "video" else "menu-items"
        target_dir = self._root / subdir
        public_id = f"{new_document_id(12)}-{blob.filename}"
        target = target_dir / public_id
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            target.write_bytes(blob.content)
        except OSError as exc:
            raise UploadError(
                "Failed to store media locally",
                details={"filename": blob.filename, "reason": str(exc)},
            ) from exc
        LOGGER.debug("Stored %s at %s", blob.filename, target, extra={"event": "upload.local"})
        return UploadResult(url=target.resolve().as_uri(), public_id=public_id, size=blob.size)


__all__ = ["LocalCatalogStore", "LocalUploadClient"]
