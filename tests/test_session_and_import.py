"""Tests for the edit session and CSV bulk import."""

from __future__ import annotations

import json
from decimal import Decimal
from pathlib import Path

import pytest

from menupub.catalog.models import CatalogItem, ChangeKind, RowStatus
from menupub.catalog.snapshot import SnapshotLoader
from menupub.core.errors import UnknownItemError
from menupub.platforms.base import InsertOp
from menupub.platforms.local import LocalCatalogStore, LocalUploadClient
from menupub.services.importer import ImportValidationError, import_csv, parse_csv
from menupub.services.media import MediaResolver
from menupub.services.publishing import PublishOrchestrator
from menupub.services.session import EditSession

TENANT = "resto"


def _item(name: str, price: str = "100", **changes) -> CatalogItem:
    return CatalogItem(name=name, section="Mains", price=Decimal(price), **changes)


@pytest.fixture
def store(tmp_path: Path) -> LocalCatalogStore:
    ids = iter(["p1", "p2", "n1", "n2", "n3", "n4"])
    store = LocalCatalogStore(tmp_path / "catalog", id_factory=lambda: next(ids))
    store.commit_batch(
        TENANT,
        [
            InsertOp(_item("Paneer Tikka", "220", created_at="2023-01-01T00:00:00Z")),
            InsertOp(_item("Masala Chai", "30")),
        ],
    )
    return store


@pytest.fixture
def session(store: LocalCatalogStore, tmp_path: Path) -> EditSession:
    return EditSession(SnapshotLoader(store, TENANT), staging_dir=tmp_path / "staging")


def _photo(tmp_path: Path, name: str = "dish.jpg") -> Path:
    path = tmp_path / name
    path.write_bytes(b"jpeg-bytes")
    return path


class TestEditSession:
    def test_attach_media_copies_into_staging(self, session: EditSession, tmp_path: Path) -> None:
        source = _photo(tmp_path)

        (ref,) = session.attach_media([source])

        assert ref.owned
        assert ref.path.parent == tmp_path / "staging"
        assert ref.path.read_bytes() == b"jpeg-bytes"
        assert source.exists()

    def test_attach_missing_file_raises(self, session: EditSession, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            session.attach_media([tmp_path / "nope.jpg"])

    def test_deleting_new_item_releases_its_media(self, session: EditSession, tmp_path: Path) -> None:
        refs = session.attach_media([_photo(tmp_path)])
        local_id = session.create(_item("Soup"), refs)

        session.delete(local_id)

        assert local_id not in session.ledger
        assert not refs[0].path.exists()

    def test_replacing_media_releases_old_copy(self, session: EditSession, tmp_path: Path) -> None:
        first = session.attach_media([_photo(tmp_path, "a.jpg")])
        local_id = session.create(_item("Soup"), first)
        second = session.attach_media([_photo(tmp_path, "b.jpg")])

        session.update(local_id, _item("Soup"), second)

        assert not first[0].path.exists()
        assert second[0].path.exists()

    def test_discard_releases_everything(self, session: EditSession, tmp_path: Path) -> None:
        refs = session.attach_media([_photo(tmp_path)])
        session.create(_item("Soup"), refs)
        session.delete("p1")

        assert session.discard() == 2
        assert not session.ledger
        assert not refs[0].path.exists()

    def test_payload_for_prefers_staged_content(self, session: EditSession) -> None:
        session.update("p2", _item("Masala Chai", "35"))

        assert session.payload_for("p2").price == Decimal("35")
        assert session.payload_for("p1").name == "Paneer Tikka"
        with pytest.raises(UnknownItemError):
            session.payload_for("ghost")

    def test_rows_and_search(self, session: EditSession) -> None:
        session.delete("p1")

        rows = session.rows()
        assert rows[0].id == "p1" and rows[0].status is RowStatus.PENDING_DELETE
        assert [row.id for row in session.rows("chai")] == ["p2"]

    def test_publish_updates_snapshot_and_clears_ledger(
        self, session: EditSession, store: LocalCatalogStore, tmp_path: Path
    ) -> None:
        refs = session.attach_media([_photo(tmp_path)])
        session.create(_item("Soup"), refs)
        session.delete("p2")
        orchestrator = PublishOrchestrator(
            store,
            SnapshotLoader(store, TENANT),
            MediaResolver(LocalUploadClient(tmp_path / "media", tenant=TENANT)),
        )

        result = session.publish(orchestrator)

        assert result.ok
        assert not session.ledger
        names = sorted(item.name for item in session.snapshot.items.values())
        assert names == ["Paneer Tikka", "Soup"]
        soup = next(item for item in session.snapshot.items.values() if item.name == "Soup")
        assert soup.image is not None and soup.image.startswith("file://")
        assert not refs[0].path.exists()

    def test_price_edit_keeps_ingredient_list(self, tmp_path: Path) -> None:
        store = LocalCatalogStore(tmp_path / "catalog")
        path = store.path_for(TENANT)
        path.parent.mkdir(parents=True)
        path.write_text(
            json.dumps(
                {
                    "tenant": TENANT,
                    "items": {
                        "d1": {
                            "name": "Dal Tadka",
                            "section": "Mains",
                            "price": "180",
                            "ingredients": ["Lentils", "Cumin"],
                        }
                    },
                }
            ),
            encoding="utf-8",
        )
        loader = SnapshotLoader(store, TENANT)
        session = EditSession(loader)

        session.update("d1", session.payload_for("d1").with_changes(price=Decimal("190")))
        result = session.publish(
            PublishOrchestrator(
                store, loader, MediaResolver(LocalUploadClient(tmp_path / "media", tenant=TENANT))
            )
        )

        assert result.ok and result.updated == 1
        saved = json.loads(path.read_text(encoding="utf-8"))["items"]["d1"]
        assert saved["ingredients"] == ["Lentils", "Cumin"]
        assert saved["price"] == "190"
        assert session.snapshot.get("d1").ingredients == "Lentils, Cumin"


CSV_HEADER = "name,section,price,description,ingredients,dietType,spice_level,sweet_level,is_todays_special\n"


class TestCsvImport:
    def test_parse_valid_rows(self) -> None:
        rows = parse_csv(
            CSV_HEADER
            + "Dal Fry,Mains,180,Comfort food,lentils,VEG,2,,TRUE\n"
            + "Kulfi,Desserts,90.50,,,,,4,false\n"
        )

        assert [row.name for row in rows] == ["Dal Fry", "Kulfi"]
        assert rows[0].diet_type == "veg"
        assert rows[0].spice_level == 2
        assert rows[0].is_todays_special is True
        assert rows[1].price == Decimal("90.50")
        assert rows[1].sweet_level == 4
        assert rows[1].is_todays_special is False

    def test_errors_carry_line_numbers(self) -> None:
        with pytest.raises(ImportValidationError) as excinfo:
            parse_csv(
                CSV_HEADER
                + "Dal Fry,Mains,180,,,,,,\n"
                + ",Mains,abc,,,spicy,9,,\n"
            )

        assert excinfo.value.errors == [
            'Row 3: "name" is required',
            'Row 3: "price" must be a valid number',
            'Row 3: "dietType" must be veg, non-veg, or vegan',
            'Row 3: "spice_level" must be between 1-5',
        ]

    def test_missing_required_column(self) -> None:
        with pytest.raises(ImportValidationError) as excinfo:
            parse_csv("name,section\nSoup,Starters\n")
        assert "price" in excinfo.value.errors[0]

    def test_empty_file_is_rejected(self) -> None:
        with pytest.raises(ImportValidationError) as excinfo:
            parse_csv("name,section,price\n")
        assert excinfo.value.errors == ["CSV file is empty"]

    def test_invalid_rows_stage_nothing(self, session: EditSession) -> None:
        with pytest.raises(ImportValidationError):
            import_csv(session, "name,section,price\nSoup,Starters,50\nBad,,\n")
        assert not session.ledger

    def test_upsert_by_name(self, session: EditSession, tmp_path: Path) -> None:
        csv_path = tmp_path / "menu.csv"
        csv_path.write_text(
            "name,section,price\n Paneer Tikka ,Starters,240\nVeg Biryani,Rice,260\n",
            encoding="utf-8",
        )

        summary = import_csv(session, csv_path)

        assert (summary.created, summary.updated) == (1, 1)
        updated = session.ledger.get("p1")
        assert updated.kind is ChangeKind.MODIFIED
        assert updated.payload.price == Decimal("240")
        assert updated.payload.section == "Starters"
        assert updated.payload.created_at == "2023-01-01T00:00:00Z"
        created = session.ledger.get(summary.ids[1])
        assert created.kind is ChangeKind.NEW
        assert created.payload.name == "Veg Biryani"
