"""Tests for the store and upload backends."""

from __future__ import annotations

import json
import threading
from decimal import Decimal
from pathlib import Path
from typing import Any

import pytest
import requests

from menupub.catalog.models import CatalogItem
from menupub.core.errors import StoreError, UploadError
from menupub.core.http import HttpSession
from menupub.platforms.base import DeleteOp, InsertOp, MediaBlob, UpdateOp
from menupub.platforms.cloudinary import CloudinaryUploader
from menupub.platforms.firestore import FirestoreCatalogStore
from menupub.platforms.firestore.codec import decode_fields, encode_fields
from menupub.platforms.local import LocalCatalogStore, LocalUploadClient
from menupub.security import MappingSecretProvider


def _item(name: str, price: str = "100", **changes: Any) -> CatalogItem:
    return CatalogItem(name=name, section="Mains", price=Decimal(price), **changes)


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None) -> None:
        self.status_code = status_code
        self._payload = payload if payload is not None else {}
        self.text = json.dumps(self._payload)
        self.content = self.text.encode("utf-8")

    def json(self) -> Any:
        return self._payload


class FakeSession:
    def __init__(self, responses: list[FakeResponse]) -> None:
        self.headers: dict[str, str] = {}
        self.calls: list[dict[str, Any]] = []
        self._responses = list(responses)

    def request(self, method: str, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append({"method": method, "url": url, **kwargs})
        if not self._responses:
            raise requests.ConnectionError("no more responses")
        return self._responses.pop(0)

    def close(self) -> None:
        pass


def _write_catalog(store: LocalCatalogStore, items: dict[str, Any], tenant: str = "resto") -> None:
    path = store.path_for(tenant)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps({"tenant": tenant, "items": items}), encoding="utf-8")


def _ids(*values: str):
    pending = list(values)
    return lambda: pending.pop(0)


class TestLocalCatalogStore:
    def test_commit_and_read_back(self, tmp_path: Path) -> None:
        store = LocalCatalogStore(tmp_path, id_factory=_ids("a1", "b2"))

        assigned = store.commit_batch("resto", [InsertOp(_item("Soup")), InsertOp(_item("Naan", "40"))])

        assert assigned == ["a1", "b2"]
        items = {entry.id: entry.item for entry in store.read_all("resto")}
        assert items["a1"].name == "Soup"
        assert items["b2"].price == Decimal("40")
        saved = json.loads(store.path_for("resto").read_text(encoding="utf-8"))
        assert saved["tenant"] == "resto"

    def test_update_and_delete(self, tmp_path: Path) -> None:
        store = LocalCatalogStore(tmp_path, id_factory=_ids("a1", "b2"))
        store.commit_batch("resto", [InsertOp(_item("Soup")), InsertOp(_item("Naan"))])

        store.commit_batch("resto", [UpdateOp("a1", _item("Soup", "90")), DeleteOp("b2")])

        items = {entry.id: entry.item for entry in store.read_all("resto")}
        assert list(items) == ["a1"]
        assert items["a1"].price == Decimal("90")

    def test_failed_batch_applies_nothing(self, tmp_path: Path) -> None:
        store = LocalCatalogStore(tmp_path, id_factory=_ids("a1", "b2"))
        store.commit_batch("resto", [InsertOp(_item("Soup"))])
        before = store.path_for("resto").read_text(encoding="utf-8")

        with pytest.raises(StoreError) as excinfo:
            store.commit_batch("resto", [InsertOp(_item("Naan")), UpdateOp("missing", _item("X"))])

        assert excinfo.value.details["item_id"] == "missing"
        assert store.path_for("resto").read_text(encoding="utf-8") == before

    def test_missing_catalog_reads_empty(self, tmp_path: Path) -> None:
        assert LocalCatalogStore(tmp_path).read_all("nobody") == []

    def test_ingredient_lists_survive_an_update(self, tmp_path: Path) -> None:
        store = LocalCatalogStore(tmp_path)
        _write_catalog(
            store,
            {"d1": {"name": "Dal", "section": "Mains", "price": "180", "ingredients": ["Lentils", " Cumin"]}},
        )

        (entry,) = store.read_all("resto")
        assert entry.item.ingredients == "Lentils, Cumin"

        store.commit_batch("resto", [UpdateOp("d1", entry.item.with_changes(price=Decimal("200")))])

        saved = json.loads(store.path_for("resto").read_text(encoding="utf-8"))["items"]["d1"]
        assert saved["ingredients"] == ["Lentils", "Cumin"]
        assert saved["price"] == "200"

    def test_invalid_stored_fields_do_not_block_the_catalog(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        store = LocalCatalogStore(tmp_path)
        store.path_for("resto").parent.mkdir(parents=True, exist_ok=True)
        store.path_for("resto").write_text(
            '{"tenant": "resto", "items": {'
            '"bad": {"name": "Vindaloo", "section": "Mains", "price": "300", "spice": 9,'
            ' "sweet": NaN, "dietType": "Veg", "currency": "Rs"},'
            '"ok": {"name": "Naan", "section": "Breads", "price": "40", "spice": 1}}}',
            encoding="utf-8",
        )

        with caplog.at_level("WARNING"):
            items = {entry.id: entry.item for entry in store.read_all("resto")}

        assert items["ok"].spice_level == 1
        bad = items["bad"]
        assert bad.spice_level is None and bad.sweet_level is None
        assert bad.diet_type == "veg"
        assert bad.currency == "INR"
        ignored = sorted(r.field for r in caplog.records if getattr(r, "event", None) == "catalog.field_ignored")
        assert ignored == ["currency", "spice", "sweet"]

        store.commit_batch("resto", [UpdateOp("bad", bad.with_changes(is_unavailable=True))])

        saved = json.loads(store.path_for("resto").read_text(encoding="utf-8"))["items"]["bad"]
        assert saved["spice"] == 9
        assert saved["currency"] == "Rs"
        assert saved["dietType"] == "veg"
        assert saved["is_unavailable"] is True

    def test_owner_input_is_still_validated(self) -> None:
        with pytest.raises(ValueError):
            _item("Soup", currency="Rs")
        with pytest.raises(ValueError):
            _item("Soup", diet_type="Veg")


def test_local_upload_client_writes_file(tmp_path: Path) -> None:
    client = LocalUploadClient(tmp_path, tenant="resto")

    result = client.upload(MediaBlob(filename="clip.mp4", content=b"abc", content_type="video/mp4", kind="video"))

    assert result.url.startswith("file://")
    assert result.size == 3
    stored = list((tmp_path / "resto" / "videos").iterdir())
    assert len(stored) == 1 and stored[0].read_bytes() == b"abc"


def test_http_session_opens_one_session_per_thread() -> None:
    opened: list[FakeSession] = []

    def factory() -> FakeSession:
        session = FakeSession([FakeResponse(payload={"ok": True})])
        opened.append(session)
        return session

    http = HttpSession(session_factory=factory, headers={"X-Tenant": "resto"})  # type: ignore[arg-type]

    def call() -> None:
        http.request_json("GET", "https://api.test/ping", error_cls=StoreError)

    call()
    worker = threading.Thread(target=call)
    worker.start()
    worker.join()

    assert len(opened) == 2
    assert [len(session.calls) for session in opened] == [1, 1]
    assert all(session.headers == {"X-Tenant": "resto"} for session in opened)
    http.close()


def test_firestore_codec_round_trip() -> None:
    document = _item("Soup", spice_level=2, images=("https://cdn.test/a.png",)).to_document()

    fields = encode_fields(document)

    assert fields["price"] == {"stringValue": "100"}
    assert fields["spice"] == {"integerValue": "2"}
    assert fields["is_new"] == {"booleanValue": False}
    assert fields["images"] == {"arrayValue": {"values": [{"stringValue": "https://cdn.test/a.png"}]}}
    assert decode_fields(fields) == {**document, "images": ["https://cdn.test/a.png"]}


class TestFirestoreCatalogStore:
    def _store(self, session: FakeSession, *ids: str) -> FirestoreCatalogStore:
        return FirestoreCatalogStore(
            project_id="proj",
            secrets=MappingSecretProvider({"firestore.access_token": "tok"}),
            http=HttpSession(session=session),  # type: ignore[arg-type]
            id_factory=_ids(*ids),
        )

    def test_read_all_follows_pages(self) -> None:
        prefix = "projects/proj/databases/(default)/documents/restaurants/resto/menu_items"
        session = FakeSession(
            [
                FakeResponse(
                    payload={
                        "documents": [
                            {"name": f"{prefix}/a1", "fields": encode_fields(_item("Soup").to_document())}
                        ],
                        "nextPageToken": "next",
                    }
                ),
                FakeResponse(
                    payload={
                        "documents": [
                            {"name": f"{prefix}/b2", "fields": encode_fields(_item("Naan").to_document())}
                        ]
                    }
                ),
            ]
        )

        items = self._store(session).read_all("resto")

        assert [(entry.id, entry.item.name) for entry in items] == [("a1", "Soup"), ("b2", "Naan")]
        assert session.calls[0]["url"].endswith(prefix)
        assert session.calls[0]["headers"]["Authorization"] == "Bearer tok"
        assert session.calls[1]["params"]["pageToken"] == "next"

    def test_commit_batch_builds_single_commit(self) -> None:
        session = FakeSession([FakeResponse(payload={"writeResults": [{}, {}, {}]})])
        store = self._store(session, "newid")

        assigned = store.commit_batch(
            "resto",
            [InsertOp(_item("Soup")), UpdateOp("42", _item("Bread")), DeleteOp("7")],
        )

        assert assigned == ["newid", None, None]
        call = session.calls[0]
        assert call["method"] == "POST"
        assert call["url"].endswith("/documents:commit")
        insert, update, delete = call["json"]["writes"]
        assert insert["update"]["name"].endswith("/menu_items/newid")
        assert insert["currentDocument"] == {"exists": False}
        assert "name" in update["updateMask"]["fieldPaths"]
        assert update["currentDocument"] == {"exists": True}
        assert delete["delete"].endswith("/menu_items/7")

    def test_commit_rejection_raises_store_error(self) -> None:
        session = FakeSession([FakeResponse(status_code=409, payload={"error": {"status": "ABORTED"}})])

        with pytest.raises(StoreError) as excinfo:
            self._store(session).commit_batch("resto", [DeleteOp("7")])

        assert "HTTP 409" in str(excinfo.value)

    def test_missing_token_raises_store_error(self) -> None:
        store = FirestoreCatalogStore(
            project_id="proj",
            secrets=MappingSecretProvider({}),
            http=HttpSession(session=FakeSession([])),  # type: ignore[arg-type]
        )

        with pytest.raises(StoreError):
            store.read_all("resto")


class TestCloudinaryUploader:
    def _uploader(self, session: FakeSession, **kwargs: Any) -> CloudinaryUploader:
        return CloudinaryUploader(
            tenant="resto",
            secrets=MappingSecretProvider(
                {"cloudinary.cloud_name": "demo", "cloudinary.upload_preset": "unsigned"}
            ),
            http=HttpSession(session=session),  # type: ignore[arg-type]
            **kwargs,
        )

    def test_upload_posts_to_tenant_folder(self) -> None:
        session = FakeSession(
            [FakeResponse(payload={"secure_url": "https://res.test/x.png", "public_id": "x", "bytes": 4})]
        )
        blob = MediaBlob(filename="x.png", content=b"data", content_type="image/png")

        result = self._uploader(session).upload(blob)

        assert result.url == "https://res.test/x.png"
        assert result.public_id == "x"
        call = session.calls[0]
        assert call["url"] == "https://api.cloudinary.com/v1_1/demo/auto/upload"
        assert call["data"]["folder"] == "menu-cards/restaurants/resto/menu-items"
        assert call["data"]["upload_preset"] == "unsigned"

    def test_video_folder(self) -> None:
        uploader = self._uploader(FakeSession([]))
        assert uploader.folder_for("video") == "menu-cards/restaurants/resto/videos"

    def test_oversized_image_is_rejected_without_request(self) -> None:
        session = FakeSession([])
        blob = MediaBlob(filename="big.png", content=b"x" * 11, content_type="image/png")

        with pytest.raises(UploadError):
            self._uploader(session, max_image_bytes=10).upload(blob)

        assert session.calls == []

    def test_api_error_is_raised(self) -> None:
        session = FakeSession([FakeResponse(payload={"error": {"message": "Invalid preset"}})])
        blob = MediaBlob(filename="x.png", content=b"data", content_type="image/png")

        with pytest.raises(UploadError) as excinfo:
            self._uploader(session).upload(blob)

        assert "Invalid preset" in str(excinfo.value)

    def test_transport_error_is_wrapped(self) -> None:
        blob = MediaBlob(filename="x.png", content=b"data", content_type="image/png")

        with pytest.raises(UploadError) as excinfo:
            self._uploader(FakeSession([])).upload(blob)

        assert isinstance(excinfo.value.__cause__, requests.ConnectionError)
