"""Bulk menu import from CSV, staged as creates or updates."""

from __future__ import annotations

import csv
import io
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Mapping, Sequence

from ..catalog.models import DIET_TYPES, CatalogItem, ItemId
from ..catalog.snapshot import CatalogSnapshot
from ..core.errors import MenuPubError
from ..utils.logging import get_logger
from .session import EditSession

LOGGER = get_logger(__name__)

REQUIRED_COLUMNS = ("name", "section", "price")


class ImportValidationError(MenuPubError):
    """One or more CSV rows were rejected; nothing was staged."""

    def __init__(self, errors: Sequence[str]) -> None:
        super().__init__(
            f"CSV import rejected with {len(errors)} error(s)",
            details={"errors": list(errors)},
        )
        self.errors = list(errors)


@dataclass(slots=True, frozen=True)
class ImportRow:
    line: int
    name: str
    section: str
    price: Decimal
    description: str = ""
    ingredients: str = ""
    diet_type: str | None = None
    spice_level: int | None = None
    sweet_level: int | None = None
    is_todays_special: bool = False

    def fields(self) -> dict[str, object]:
        return {
            "name": self.name,
            "section": self.section,
            "price": self.price,
            "description": self.description,
            "ingredients": self.ingredients,
            "diet_type": self.diet_type,
            "spice_level": self.spice_level,
            "sweet_level": self.sweet_level,
            "is_todays_special": self.is_todays_special,
        }


@dataclass(slots=True, frozen=True)
class ImportSummary:
    created: int
    updated: int
    ids: tuple[str, ...]


def _cell(row: Mapping[str, str | None], key: str) -> str:
    return (row.get(key) or "").strip()


def _level(row: Mapping[str, str | None], key: str, line: int, errors: list[str]) -> int | None:
    raw = _cell(row, key)
    if not raw:
        return None
    try:
        level = int(raw)
    except ValueError:
        level = 0
    if not 1 <= level <= 5:
        errors.append(f'Row {line}: "{key}" must be between 1-5')
        return None
    return level


def _parse_row(row: Mapping[str, str | None], line: int, errors: list[str]) -> ImportRow | None:
    before = len(errors)
    name = _cell(row, "name")
    section = _cell(row, "section")
    if not name:
        errors.append(f'Row {line}: "name" is required')
    if not section:
        errors.append(f'Row {line}: "section" is required')

    price = Decimal("0")
    try:
        price = Decimal(_cell(row, "price"))
        if not price.is_finite():
            raise InvalidOperation
    except InvalidOperation:
        errors.append(f'Row {line}: "price" must be a valid number')

    diet = _cell(row, "dietType").lower() or None
    if diet is not None and diet not in DIET_TYPES:
        errors.append(f'Row {line}: "dietType" must be veg, non-veg, or vegan')

    spice = _level(row, "spice_level", line, errors)
    sweet = _level(row, "sweet_level", line, errors)
    if len(errors) > before:
        return None
    return ImportRow(
        line=line,
        name=name,
        section=section,
        price=price,
        description=_cell(row, "description"),
        ingredients=_cell(row, "ingredients"),
        diet_type=diet,
        spice_level=spice,
        sweet_level=sweet,
        is_todays_special=_cell(row, "is_todays_special").lower() == "true",
    )


def parse_csv(text: str) -> list[ImportRow]:
    """Parse and validate every row; raise with all messages if any row is bad.

    Line numbers count the header as line 1, so the first data row is line 2.
    """
    reader = csv.DictReader(io.StringIO(text))
    header = [column.strip() for column in reader.fieldnames or ()]
    missing = [column for column in REQUIRED_COLUMNS if column not in header]
    if missing:
        raise ImportValidationError([f"Missing required column(s): {', '.join(missing)}"])
    reader.fieldnames = header

    errors: list[str] = []
    rows: list[ImportRow] = []
    for index, raw in enumerate(reader):
        parsed = _parse_row(raw, index + 2, errors)
        if parsed is not None:
            rows.append(parsed)
    if not rows and not errors:
        errors.append("CSV file is empty")
    if errors:
        raise ImportValidationError(errors)
    return rows


def match_existing(snapshot: CatalogSnapshot, rows: Sequence[ImportRow]) -> list[ItemId | None]:
    """Return, per row, the published item sharing its name, if any."""
    return [snapshot.find_by_name(row.name) for row in rows]


def import_csv(session: EditSession, source: Path | str) -> ImportSummary:
    """Stage every row of ``source``: update by name where possible, create otherwise."""
    text = source.read_text(encoding="utf-8-sig") if isinstance(source, Path) else source
    rows = parse_csv(text)
    targets = match_existing(session.snapshot, rows)

    created = updated = 0
    ids: list[str] = []
    for row, item_id in zip(rows, targets):
        if item_id is None:
            ids.append(session.create(CatalogItem(**row.fields())))
            created += 1
            continue
        current = session.payload_for(item_id)
        session.update(item_id, current.with_changes(**row.fields()))
        ids.append(item_id)
        updated += 1

    LOGGER.info(
        "CSV import staged",
        extra={
            "event": "import.staged",
            "tenant": session.tenant,
            "items_created": created,
            "items_updated": updated,
        },
    )
    return ImportSummary(created=created, updated=updated, ids=tuple(ids))


__all__ = [
    "ImportRow",
    "ImportSummary",
    "ImportValidationError",
    "import_csv",
    "match_existing",
    "parse_csv",
]
