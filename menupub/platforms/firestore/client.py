"""Catalog store backed by the Firestore REST API."""

from __future__ import annotations

import re
from typing import Any, Callable, Sequence

from ...catalog.models import CatalogItem, ItemId, StoredItem
from ...core.errors import StoreError
from ...core.http import HttpSession
from ...security import SecretNotFoundError, SecretProvider
from ...utils.logging import get_logger
from ..base import DeleteOp, InsertOp, Op, UpdateOp, new_document_id
from .codec import decode_fields, document_id, encode_fields

LOGGER = get_logger(__name__)

_SIMPLE_FIELD = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _field_path(name: str) -> str:
    if _SIMPLE_FIELD.match(name):
        return name
    escaped = name.replace("\\", "\\\\").replace("`", "\\`")
    return f"`{escaped}`"


class FirestoreCatalogStore:
    """Reads and commits ``restaurants/{tenant}/menu_items`` documents.

    ``commit_batch`` maps to a single ``documents:commit`` call, which Firestore
    applies atomically. Inserts receive a client-generated id guarded by an
    ``exists: false`` precondition; updates merge the given fields and require
    the document to exist, mirroring ``updateDoc`` semantics.
    """

    _API_ROOT = "https://firestore.googleapis.com/v1"
    _PAGE_SIZE = 300

    def __init__(
        self,
        *,
        project_id: str,
        secrets: SecretProvider,
        http: HttpSession,
        database: str = "(default)",
        id_factory: Callable[[], str] = new_document_id,
    ) -> None:
        self._project_id = project_id
        self._database = database
        self._secrets = secrets
        self._http = http
        self._id_factory = id_factory

    @property
    def database_path(self) -> str:
        return f"projects/{self._project_id}/databases/{self._database}"

    def collection_path(self, tenant: str) -> str:
        return f"{self.database_path}/documents/restaurants/{tenant}/menu_items"

    def read_all(self, tenant: str) -> list[StoredItem]:
        url = f"{self._API_ROOT}/{self.collection_path(tenant)}"
        items: list[StoredItem] = []
        page_token: str | None = None
        while True:
            params: dict[str, Any] = {"pageSize": self._PAGE_SIZE}
            if page_token:
                params["pageToken"] = page_token
            response = self._http.request_json(
                "GET",
                url,
                error_cls=StoreError,
                context={"tenant": tenant, "operation": "read_all"},
                headers=self._auth_headers(),
                params=params,
            )
            for raw in response.data.get("documents", []):
                items.append(self._decode_document(raw))
            page_token = response.data.get("nextPageToken")
            if not page_token:
                return items

    def commit_batch(self, tenant: str, ops: Sequence[Op]) -> list[ItemId | None]:
        writes: list[dict[str, Any]] = []
        assigned: list[ItemId | None] = []
        for op in ops:
            write, item_id = self._build_write(tenant, op)
            writes.append(write)
            assigned.append(item_id)

        response = self._http.request_json(
            "POST",
            f"{self._API_ROOT}/{self.database_path}/documents:commit",
            error_cls=StoreError,
            context={"tenant": tenant, "operation": "commit", "writes": len(writes)},
            headers=self._auth_headers(),
            json={"writes": writes},
        )
        results = response.data.get("writeResults", [])
        if len(results) != len(writes):
            raise StoreError(
                "Commit response does not match the submitted writes",
                details={"expected": len(writes), "received": len(results)},
            )
        LOGGER.debug(
            "Firestore commit applied",
            extra={"event": "firestore.commit", "tenant": tenant, "writes": len(writes)},
        )
        return assigned

    def _build_write(self, tenant: str, op: Op) -> tuple[dict[str, Any], ItemId | None]:
        collection = self.collection_path(tenant)
        if isinstance(op, InsertOp):
            item_id = self._id_factory()
            write = {
                "update": {
                    "name": f"{collection}/{item_id}",
                    "fields": encode_fields(op.payload.to_document()),
                },
                "currentDocument": {"exists": False},
            }
            return write, item_id
        if isinstance(op, UpdateOp):
            document = op.payload.to_document()
            write = {
                "update": {
                    "name": f"{collection}/{op.item_id}",
                    "fields": encode_fields(document),
                },
                "updateMask": {"fieldPaths": [_field_path(key) for key in document]},
                "currentDocument": {"exists": True},
            }
            return write, None
        if isinstance(op, DeleteOp):
            return {"delete": f"{collection}/{op.item_id}"}, None
        raise StoreError("Unsupported operation", details={"op": repr(op)})

    def _decode_document(self, raw: dict[str, Any]) -> StoredItem:
        name = str(raw.get("name", ""))
        try:
            item = CatalogItem.from_document(decode_fields(raw.get("fields", {})))
        except (TypeError, ValueError) as exc:
            raise StoreError(
                "Stored menu item could not be decoded",
                details={"document": name, "reason": str(exc)},
            ) from exc
        return StoredItem(id=document_id(name), item=item)

    def _auth_headers(self) -> dict[str, str]:
        try:
            token = self._secrets.get_secret("firestore.access_token")
        except SecretNotFoundError as exc:
            raise StoreError(
                "Missing Firestore access token",
                details={"secret": "firestore.access_token"},
            ) from exc
        return {"Authorization": f"Bearer {token}"}


__all__ = ["FirestoreCatalogStore"]
